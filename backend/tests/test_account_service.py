"""Per-user token accounting."""

import asyncio

import pytest

from dappgen.middleware.error_handler import AppException
from dappgen.models.schemas import DiscordUser, UserData
from dappgen.services.token_budget import RESET_WINDOW_MS, TOTAL_MAX

from fakes import NOW

ALICE = DiscordUser(id="42", username="alice", avatar="abc123")


def test_first_login_creates_record(accounts):
    user = asyncio.run(accounts.login(ALICE))

    assert user.id == "42"
    assert user.username == "alice"
    assert user.avatar == "https://cdn.discordapp.com/avatars/42/abc123.png"
    assert user.token_usage == 0
    assert user.last_token_reset == NOW
    assert asyncio.run(accounts.get_user("42")) == user


def test_login_without_avatar(accounts):
    user = asyncio.run(accounts.login(DiscordUser(id="7", username="bob")))
    assert user.avatar == ""


def test_login_after_window_resets_usage(accounts, clock):
    asyncio.run(accounts.login(ALICE))
    asyncio.run(accounts.update_token_usage("42", 5000))

    clock.now = NOW + RESET_WINDOW_MS
    user = asyncio.run(accounts.login(ALICE))

    assert user.token_usage == 0
    assert user.last_token_reset == NOW + RESET_WINDOW_MS
    assert asyncio.run(accounts.get_user("42")).token_usage == 0


def test_update_accumulates_inside_window(accounts, clock):
    asyncio.run(accounts.login(ALICE))
    asyncio.run(accounts.update_token_usage("42", 1200))
    clock.now = NOW + 1000
    user = asyncio.run(accounts.update_token_usage("42", 300))

    assert user.token_usage == 1500
    assert user.last_updated == NOW + 1000


def test_update_after_window_starts_from_incoming(accounts, clock):
    asyncio.run(accounts.login(ALICE))
    asyncio.run(accounts.update_token_usage("42", 9000))

    clock.now = NOW + RESET_WINDOW_MS + 5
    user = asyncio.run(accounts.update_token_usage("42", 700))

    assert user.token_usage == 700
    assert user.last_token_reset == NOW + RESET_WINDOW_MS + 5


def test_update_unknown_user_creates_record(accounts):
    user = asyncio.run(accounts.update_token_usage("99", 250))
    assert user.token_usage == 250
    assert user.last_token_reset == NOW


def test_check_tokens(accounts, clock):
    assert asyncio.run(accounts.check_tokens("nobody", 7000)).remaining_tokens == TOTAL_MAX

    asyncio.run(accounts.login(ALICE))
    asyncio.run(accounts.update_token_usage("42", 12_000))
    status = asyncio.run(accounts.check_tokens("42", 7000))
    assert not status.can_use
    assert status.remaining_tokens == 5500

    clock.now = NOW + RESET_WINDOW_MS
    status = asyncio.run(accounts.check_tokens("42", 7000))
    assert status.can_use
    assert status.remaining_tokens == TOTAL_MAX
    # A reset window reports when the new one ends, not the moment of reset
    assert status.next_reset_time == NOW + 2 * RESET_WINDOW_MS
    assert asyncio.run(accounts.get_user("42")).token_usage == 0


def test_apply_usage_delta_adds_to_stored_total(accounts, clock):
    asyncio.run(accounts.login(ALICE))
    asyncio.run(accounts.apply_usage_delta("42", 100))
    clock.now = NOW + 60_000
    user = asyncio.run(accounts.apply_usage_delta("42", 50))

    assert user.token_usage == 150
    assert user.last_updated == NOW + 60_000


def test_apply_usage_delta_unknown_user(accounts):
    with pytest.raises(AppException) as exc_info:
        asyncio.run(accounts.apply_usage_delta("404", 10))
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "User not found"

    seed = UserData(id="ignored", username="carol", last_token_reset=NOW, token_usage=999)
    user = asyncio.run(accounts.apply_usage_delta("404", 10, seed))
    assert user.id == "404"
    assert user.username == "carol"
    assert user.token_usage == 10
