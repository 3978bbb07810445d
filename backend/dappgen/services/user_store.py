"""
User record storage.

One interface (get / upsert) with interchangeable backends, selected once at
startup from settings:

* ``edge``   – Vercel Edge Config. Reads go to the edge read endpoint named by
  the connection string, writes go through the management API item upsert.
* ``file``   – a local JSON file, used when Edge Config is not configured.
* ``memory`` – process-local dict, for tests and throwaway runs.

All backends use the same canonical storage key so records can be moved
between them.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Protocol

import httpx

from dappgen.config import Settings
from dappgen.middleware.error_handler import AppException, upstream_message
from dappgen.models.schemas import UserData
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

_EDGE_TIMEOUT = httpx.Timeout(10.0)

_VERCEL_API = "https://api.vercel.com/v1/edge-config"

# Bump together with storage_key() if the derivation ever changes.
KEY_SCHEME_VERSION = 1
_KEY_PREFIX = "discord_user_"
_INVALID_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def storage_key(user_id: str) -> str:
    """Edge Config keys only allow [a-zA-Z0-9_-]."""
    return _KEY_PREFIX + _INVALID_KEY_CHARS.sub("_", user_id)


class UserStore(Protocol):
    async def get(self, user_id: str) -> UserData | None: ...

    async def upsert(self, user: UserData) -> UserData: ...


class MemoryUserStore:
    """Dict-backed store."""

    def __init__(self) -> None:
        self._items: dict[str, dict] = {}

    async def get(self, user_id: str) -> UserData | None:
        raw = self._items.get(storage_key(user_id))
        return UserData.model_validate(raw) if raw is not None else None

    async def upsert(self, user: UserData) -> UserData:
        self._items[storage_key(user.id)] = user.model_dump(by_alias=True)
        return user


class FileUserStore:
    """JSON file of ``{storage_key: record}``, rewritten on every upsert."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.error("User store file %s is corrupt: %s", self.path, exc)
            raise AppException(
                status_code=500,
                error_code="USER_STORE_ERROR",
                message="Local user store is unreadable.",
            )

    async def get(self, user_id: str) -> UserData | None:
        raw = self._load().get(storage_key(user_id))
        return UserData.model_validate(raw) if raw is not None else None

    async def upsert(self, user: UserData) -> UserData:
        items = self._load()
        items[storage_key(user.id)] = user.model_dump(by_alias=True)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic swap; readers never see a partial file
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(items, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        return user


class EdgeConfigUserStore:
    """Vercel Edge Config backend."""

    def __init__(
        self,
        connection_url: str,
        config_id: str,
        api_token: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._read_url = httpx.URL(connection_url)
        self._config_id = config_id
        self._api_token = api_token
        self._client = client or httpx.AsyncClient(timeout=_EDGE_TIMEOUT)
        logger.info("EdgeConfigUserStore initialised  config=%s", config_id)

    def _item_url(self, key: str) -> httpx.URL:
        path = self._read_url.path.rstrip("/") + f"/item/{key}"
        return self._read_url.copy_with(path=path)

    async def get(self, user_id: str) -> UserData | None:
        key = storage_key(user_id)
        try:
            response = await self._client.get(self._item_url(key))
        except httpx.HTTPError as exc:
            logger.error("Edge Config read failed  key=%s  error=%s", key, exc)
            raise AppException(
                status_code=502,
                error_code="USER_STORE_ERROR",
                message="Unable to reach the user store.",
            )

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            message = upstream_message(response, f"Edge Config returned HTTP {response.status_code}.")
            logger.error("Edge Config read error %d  key=%s: %s", response.status_code, key, message)
            raise AppException(
                status_code=502,
                error_code="USER_STORE_ERROR",
                message=message,
            )

        try:
            data = response.json()
            malformed = bool(data) and not isinstance(data, dict)
        except ValueError:
            malformed = True
        if malformed:
            logger.error("Edge Config returned a malformed item  key=%s", key)
            raise AppException(
                status_code=502,
                error_code="USER_STORE_ERROR",
                message="User store returned a malformed record.",
            )
        return UserData.model_validate(data) if data else None

    async def upsert(self, user: UserData) -> UserData:
        key = storage_key(user.id)
        body = {
            "items": [
                {
                    "operation": "upsert",
                    "key": key,
                    "value": user.model_dump(by_alias=True),
                }
            ]
        }
        logger.debug("Edge Config upsert  key=%s", key)
        try:
            response = await self._client.patch(
                f"{_VERCEL_API}/{self._config_id}/items",
                json=body,
                headers={"Authorization": f"Bearer {self._api_token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("Edge Config write failed  key=%s  error=%s", key, exc)
            raise AppException(
                status_code=502,
                error_code="USER_STORE_ERROR",
                message="Unable to reach the user store.",
            )

        if not response.is_success:
            message = upstream_message(response, f"Edge Config returned HTTP {response.status_code}.")
            logger.error("Edge Config update failed %d  key=%s: %s", response.status_code, key, message)
            raise AppException(
                status_code=502,
                error_code="USER_STORE_ERROR",
                message=f"Failed to update Edge Config: {message}",
            )
        return user


def build_user_store(settings: Settings) -> UserStore:
    """Pick the configured backend."""
    backend = settings.user_store_backend
    if backend == "edge":
        if not settings.edge_config_enabled:
            raise ValueError(
                "USER_STORE_BACKEND=edge requires EDGE_CONFIG_URL, EDGE_CONFIG_ID and EDGE_CONFIG_TOKEN"
            )
        return EdgeConfigUserStore(
            settings.EDGE_CONFIG_URL,
            settings.EDGE_CONFIG_ID,
            settings.EDGE_CONFIG_TOKEN,
        )
    if backend == "file":
        logger.warning("Edge Config not configured; storing users in %s", settings.USER_STORE_PATH)
        return FileUserStore(settings.USER_STORE_PATH)
    if backend == "memory":
        return MemoryUserStore()
    raise ValueError(f"Unknown USER_STORE_BACKEND: {backend!r}")
