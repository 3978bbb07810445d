"""
Per-user token accounting on top of a UserStore.

Every method is a read-modify-write against the store with no concurrency
control: two concurrent updates for the same user can lose one of them.
"""

from __future__ import annotations

from typing import Callable

from dappgen.middleware.error_handler import AppException
from dappgen.models.schemas import DiscordUser, TokenStatus, UserData
from dappgen.services.token_budget import now_ms, roll_window, token_status
from dappgen.services.user_store import UserStore
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

_AVATAR_URL = "https://cdn.discordapp.com/avatars/{id}/{avatar}.png"


class AccountService:
    """User lookup, creation and usage metering."""

    def __init__(self, store: UserStore, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self._clock = clock

    async def get_user(self, user_id: str) -> UserData | None:
        return await self.store.get(user_id)

    async def save_user(self, user: UserData) -> UserData:
        return await self.store.upsert(user)

    async def initialize_new_user(self, discord_user: DiscordUser) -> UserData:
        now = self._clock()
        avatar = (
            _AVATAR_URL.format(id=discord_user.id, avatar=discord_user.avatar)
            if discord_user.avatar
            else ""
        )
        user = UserData(
            id=discord_user.id,
            username=discord_user.username,
            avatar=avatar,
            token_usage=0,
            last_token_reset=now,
            last_updated=now,
        )
        logger.info("Creating user record  id=%s", discord_user.id)
        return await self.store.upsert(user)

    async def login(self, discord_user: DiscordUser) -> UserData:
        """Find or create the record for a freshly authenticated Discord user."""
        user = await self.store.get(discord_user.id)
        if user is None:
            return await self.initialize_new_user(discord_user)

        if roll_window(user, self._clock()):
            logger.info("Usage window reset on login  id=%s", user.id)
            await self.store.upsert(user)
        return user

    async def update_token_usage(self, user_id: str, tokens_used: int) -> UserData:
        """Add *tokens_used*; on rollover usage restarts at *tokens_used*."""
        now = self._clock()
        user = await self.store.get(user_id)
        if user is None:
            user = UserData(id=user_id, token_usage=0, last_token_reset=now, last_updated=now)

        if roll_window(user, now, incoming=tokens_used):
            logger.info("Usage window reset on update  id=%s  usage=%d", user_id, tokens_used)
        user.last_updated = now
        return await self.store.upsert(user)

    async def check_tokens(self, user_id: str, required: int) -> TokenStatus:
        now = self._clock()
        user = await self.store.get(user_id)
        if user is not None and roll_window(user, now):
            logger.info("Usage window reset on read  id=%s", user_id)
            await self.store.upsert(user)
        return token_status(user, now, required)

    async def apply_usage_delta(
        self, user_id: str, delta: int, user_data: UserData | None = None
    ) -> UserData:
        """Store PUT semantics: existing usage + delta, or upsert *user_data*."""
        current = await self.store.get(user_id)
        if current is None:
            if user_data is None:
                raise AppException(
                    status_code=404,
                    error_code="USER_NOT_FOUND",
                    message="User not found",
                )
            current = user_data.model_copy(update={"id": user_id, "token_usage": 0})

        updated = current.model_copy(
            update={
                "token_usage": current.token_usage + delta,
                "last_updated": self._clock(),
            }
        )
        return await self.store.upsert(updated)
