import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from dappgen.middleware.error_handler import AppException
from dappgen.services.discord_service import DiscordAuthService


def _service(settings, accounts, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DiscordAuthService(settings, accounts, client=client)


def _discord(request):
    if request.url.path == "/api/oauth2/token":
        form = parse_qs(request.content.decode())
        if form["code"] != ["good-code"]:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid code"})
        return httpx.Response(200, json={"access_token": "access-123", "token_type": "Bearer"})
    if request.url.path == "/api/users/@me":
        assert request.headers["Authorization"] == "Bearer access-123"
        return httpx.Response(200, json={"id": "42", "username": "alice", "avatar": "abc"})
    return httpx.Response(404)


def test_authorize_url(settings, accounts):
    url = urlparse(_service(settings, accounts, _discord).authorize_url())
    query = parse_qs(url.query)

    assert url.netloc == "discord.com"
    assert url.path == "/api/oauth2/authorize"
    assert query["client_id"] == ["client-id"]
    assert query["scope"] == ["identify"]
    assert query["redirect_uri"] == ["http://localhost:3000"]


def test_authenticate_creates_user(settings, accounts):
    user = asyncio.run(_service(settings, accounts, _discord).authenticate("good-code"))

    assert user.id == "42"
    assert user.avatar == "https://cdn.discordapp.com/avatars/42/abc.png"
    assert asyncio.run(accounts.get_user("42")) == user


def test_token_exchange_posts_form(settings, accounts):
    seen = []

    def handler(request):
        seen.append(request)
        return _discord(request)

    asyncio.run(_service(settings, accounts, handler).exchange_code("good-code"))

    form = parse_qs(seen[0].content.decode())
    assert seen[0].headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert form["grant_type"] == ["authorization_code"]
    assert form["client_secret"] == ["client-secret"]


def test_rejected_code(settings, accounts):
    with pytest.raises(AppException) as exc_info:
        asyncio.run(_service(settings, accounts, _discord).authenticate("bad-code"))

    assert exc_info.value.error_code == "OAUTH_FAILED"
    assert exc_info.value.message == "Failed to get token: invalid_grant"
    assert asyncio.run(accounts.get_user("42")) is None
