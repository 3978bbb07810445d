"""User store backends."""

import asyncio
import json

import httpx
import pytest

from dappgen.config import Settings
from dappgen.middleware.error_handler import AppException
from dappgen.models.schemas import UserData
from dappgen.services.user_store import (
    EdgeConfigUserStore,
    FileUserStore,
    MemoryUserStore,
    build_user_store,
    storage_key,
)

from fakes import NOW

EDGE_URL = "https://edge-config.vercel.com/ecfg_test?token=read-token"


def _user(**overrides):
    data = dict(id="123456789", username="alice", avatar="", token_usage=42, last_token_reset=NOW, last_updated=NOW)
    data.update(overrides)
    return UserData(**data)


def test_storage_key_is_sanitised():
    assert storage_key("123456789") == "discord_user_123456789"
    assert storage_key("a.b:c") == "discord_user_a_b_c"


@pytest.mark.parametrize("make_store", [MemoryUserStore, None])
def test_save_then_fetch_returns_equal_record(make_store, tmp_path):
    store = make_store() if make_store else FileUserStore(tmp_path / "users.json")
    user = _user()

    asyncio.run(store.upsert(user))
    assert asyncio.run(store.get(user.id)) == user
    assert asyncio.run(store.get("unknown")) is None


def test_file_store_writes_camel_case(tmp_path):
    path = tmp_path / "users.json"
    asyncio.run(FileUserStore(path).upsert(_user()))

    record = json.loads(path.read_text())["discord_user_123456789"]
    assert record["tokenUsage"] == 42
    assert record["lastTokenReset"] == NOW


def test_file_store_replaces_file_atomically(tmp_path):
    path = tmp_path / "users.json"
    store = FileUserStore(path)

    asyncio.run(store.upsert(_user()))
    asyncio.run(store.upsert(_user(id="987", username="bob")))

    assert sorted(json.loads(path.read_text())) == ["discord_user_123456789", "discord_user_987"]
    assert [p.name for p in tmp_path.iterdir()] == ["users.json"]


def test_file_store_corrupt_file(tmp_path):
    path = tmp_path / "users.json"
    path.write_text("{not json")
    with pytest.raises(AppException) as exc_info:
        asyncio.run(FileUserStore(path).get("1"))
    assert exc_info.value.error_code == "USER_STORE_ERROR"


def _edge_store(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EdgeConfigUserStore(EDGE_URL, "ecfg_test", "api-token", client=client)


def test_edge_get_reads_item_endpoint():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_user().model_dump(by_alias=True))

    user = asyncio.run(_edge_store(handler).get("123456789"))

    assert user == _user()
    assert seen[0].url.path == "/ecfg_test/item/discord_user_123456789"
    assert seen[0].url.params["token"] == "read-token"


def test_edge_get_missing_item_is_none():
    store = _edge_store(lambda request: httpx.Response(404, json={"error": {"code": "not_found"}}))
    assert asyncio.run(store.get("nobody")) is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json=["discord_user_123456789"]),
    ],
)
def test_edge_get_malformed_body(response):
    with pytest.raises(AppException) as exc_info:
        asyncio.run(_edge_store(lambda request: response).get("123456789"))

    assert exc_info.value.status_code == 502
    assert exc_info.value.error_code == "USER_STORE_ERROR"


def test_edge_upsert_patches_management_api():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"status": "ok"})

    asyncio.run(_edge_store(handler).upsert(_user()))

    request = seen[0]
    assert request.method == "PATCH"
    assert str(request.url) == "https://api.vercel.com/v1/edge-config/ecfg_test/items"
    assert request.headers["Authorization"] == "Bearer api-token"
    item = json.loads(request.content)["items"][0]
    assert item["operation"] == "upsert"
    assert item["key"] == "discord_user_123456789"
    assert item["value"]["tokenUsage"] == 42


def test_edge_upsert_failure_surfaces_upstream_message():
    store = _edge_store(lambda request: httpx.Response(403, json={"error": {"message": "Forbidden token"}}))
    with pytest.raises(AppException) as exc_info:
        asyncio.run(store.upsert(_user()))
    assert exc_info.value.status_code == 502
    assert "Forbidden token" in exc_info.value.message


def test_build_user_store_selection(tmp_path):
    assert isinstance(build_user_store(Settings(USER_STORE_BACKEND="memory")), MemoryUserStore)
    assert isinstance(
        build_user_store(Settings(USER_STORE_BACKEND="", EDGE_CONFIG_URL="", USER_STORE_PATH=str(tmp_path / "u.json"))),
        FileUserStore,
    )
    edge = Settings(USER_STORE_BACKEND="", EDGE_CONFIG_URL=EDGE_URL, EDGE_CONFIG_ID="ecfg_test", EDGE_CONFIG_TOKEN="t")
    assert isinstance(build_user_store(edge), EdgeConfigUserStore)

    with pytest.raises(ValueError):
        build_user_store(Settings(USER_STORE_BACKEND="edge", EDGE_CONFIG_URL=""))
