"""
Configuration loader.

Uses pydantic-settings to read environment variables from .env and expose
them as a typed Settings object. Provides a cached get_settings() accessor.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Discord OAuth ─────────────────────────────────────────
    DISCORD_CLIENT_ID: str = ""
    DISCORD_CLIENT_SECRET: str = ""
    DISCORD_REDIRECT_URI: str = ""
    APP_URL: str = ""

    # ── User store (Vercel Edge Config) ───────────────────────
    EDGE_CONFIG_URL: str = ""
    EDGE_CONFIG_ID: str = ""
    EDGE_CONFIG_TOKEN: str = ""
    USER_STORE_BACKEND: str = ""
    USER_STORE_PATH: str = str(Path(__file__).resolve().parent.parent / ".users.json")

    # ── LLM (OpenRouter) ──────────────────────────────────────
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_MODEL: str = "anthropic/claude-3-sonnet"

    # ── TEN network ───────────────────────────────────────────
    TEN_RPC_URL: str = "https://testnet.ten.xyz/v1/"
    TEN_NETWORK_ID: int = 443
    DEPLOYER_PRIVATE_KEY: str = ""

    # ── Compiler ──────────────────────────────────────────────
    COMPILER_URL: str = ""
    SOLC_VERSION: str = "0.8.19"

    # ── CORS ──────────────────────────────────────────────────
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # ── Limits ────────────────────────────────────────────────
    MAX_REQUEST_BYTES: int = 100_000
    RATE_LIMIT_ENABLED: bool = True

    # ── Wizard sessions ───────────────────────────────────────
    SESSION_TTL_HOURS: int = 24
    MAX_SESSIONS: int = 10_000

    # ── Environment ───────────────────────────────────────────
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = ""

    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def redirect_uri(self) -> str:
        """OAuth redirect URI; local dev server in development."""
        if self.is_development:
            return "http://localhost:3000"
        return self.DISCORD_REDIRECT_URI or self.APP_URL

    @property
    def edge_config_enabled(self) -> bool:
        return bool(self.EDGE_CONFIG_URL and self.EDGE_CONFIG_ID and self.EDGE_CONFIG_TOKEN)

    @property
    def user_store_backend(self) -> str:
        """Selected user store backend: edge, file or memory."""
        if self.USER_STORE_BACKEND:
            return self.USER_STORE_BACKEND.lower()
        return "edge" if self.edge_config_enabled else "file"


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
