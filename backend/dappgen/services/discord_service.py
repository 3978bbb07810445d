"""
Discord OAuth.

Exchanges an authorization code for an access token, fetches the Discord
identity and hands it to the AccountService to find or create the user
record.
"""

from __future__ import annotations

from urllib.parse import urlencode

import httpx

from dappgen.config import Settings
from dappgen.middleware.error_handler import AppException, upstream_message
from dappgen.models.schemas import DiscordUser, UserData
from dappgen.services.account_service import AccountService
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

_DISCORD_API = "https://discord.com/api"
_DISCORD_TIMEOUT = httpx.Timeout(15.0)


class DiscordAuthService:
    """Discord OAuth2 authorization-code flow."""

    def __init__(
        self,
        settings: Settings,
        accounts: AccountService,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client_id = settings.DISCORD_CLIENT_ID
        self._client_secret = settings.DISCORD_CLIENT_SECRET
        self._redirect_uri = settings.redirect_uri
        self._accounts = accounts
        self._client = client or httpx.AsyncClient(timeout=_DISCORD_TIMEOUT)
        logger.info("DiscordAuthService initialised  redirect_uri=%s", self._redirect_uri)

    def authorize_url(self) -> str:
        query = urlencode(
            {
                "client_id": self._client_id,
                "redirect_uri": self._redirect_uri,
                "response_type": "code",
                "scope": "identify",
            }
        )
        return f"{_DISCORD_API}/oauth2/authorize?{query}"

    async def exchange_code(self, code: str) -> str:
        """Trade an authorization code for an access token."""
        try:
            response = await self._client.post(
                f"{_DISCORD_API}/oauth2/token",
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self._redirect_uri,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as exc:
            logger.error("Discord token request failed: %s", exc)
            raise AppException(
                status_code=502,
                error_code="OAUTH_FAILED",
                message="Unable to reach Discord.",
            )

        if not response.is_success:
            message = upstream_message(response, "Failed to get token")
            logger.error("Discord token error %d: %s", response.status_code, message)
            raise AppException(
                status_code=502,
                error_code="OAUTH_FAILED",
                message=f"Failed to get token: {message}",
            )

        token = response.json().get("access_token")
        if not token:
            raise AppException(
                status_code=502,
                error_code="OAUTH_FAILED",
                message="Discord did not return an access token.",
            )
        return token

    async def fetch_identity(self, access_token: str) -> DiscordUser:
        try:
            response = await self._client.get(
                f"{_DISCORD_API}/users/@me",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("Discord user request failed: %s", exc)
            raise AppException(
                status_code=502,
                error_code="OAUTH_FAILED",
                message="Unable to reach Discord.",
            )

        if not response.is_success:
            logger.error("Discord user info error %d", response.status_code)
            raise AppException(
                status_code=502,
                error_code="OAUTH_FAILED",
                message="Failed to get user info",
            )
        return DiscordUser.model_validate(response.json())

    async def authenticate(self, code: str) -> UserData:
        """Full login: code -> token -> identity -> user record."""
        token = await self.exchange_code(code)
        identity = await self.fetch_identity(token)
        logger.info("Discord login  id=%s", identity.id)
        return await self._accounts.login(identity)
