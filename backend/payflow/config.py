"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and .env file support.
Access the singleton via get_settings() and hand it to create_app();
nothing below the composition root reads the environment itself.
"""

import json
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Origins always trusted besides FRONTEND_URL: local dev servers and the
# deployed frontend.
LOCAL_DEV_ORIGINS = (
    "http://localhost:3002",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3002",
    "https://afripayflow-frontend.vercel.app",
)


def _split_list(value: str) -> list[str]:
    """Parse a JSON array or a comma-separated string into a list."""
    v = value.strip()
    if not v:
        return []
    if v.startswith("["):
        try:
            items = json.loads(v)
            return [x.strip() for x in items if isinstance(x, str) and x.strip()]
        except json.JSONDecodeError:
            pass
    return [x.strip() for x in v.split(",") if x.strip()]


class Settings(BaseSettings):
    """Central configuration for the PayFlow backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Project descriptor
    project_name: str = "AfriPayFlow"
    project_description: str = "Gasless crypto payments for Africa with Hedera integration"
    version: str = "1.0.0"

    # Runtime profile: "production" or anything else
    environment: str = "development"

    # CORS
    # FRONTEND_URL=https://app.example.com
    # CORS_EXTRA_ORIGINS=https://a.example.com,https://b.example.com  (or a JSON array)
    # Stored as str so pydantic-settings doesn't JSON-decode plain comma values.
    frontend_url: str = "http://localhost:3000"
    cors_extra_origins: str = ""
    cors_preview_origin_pattern: str = r"https://.+\.vercel\.app"

    # Listener
    host: str = "0.0.0.0"
    port: int = 3001

    # Rate limiting (applies under api_prefix)
    api_prefix: str = "/api"
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 1000

    # Request bodies
    max_body_bytes: int = 1024 * 1024

    # Storage
    database_url: str = "sqlite+aiosqlite:///./payflow.db"
    redis_url: Optional[str] = None

    # Startup sequence
    startup_step_timeout_seconds: float = 30.0
    custodial_accounts: str = "test_merchant,test_customer"
    mock_tokens: str = "USDC,USDT"

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _normalize(self) -> "Settings":
        """Force the asyncpg driver on bare postgres URLs and tidy the API prefix.

        PaaS providers set DATABASE_URL as ``postgres://...`` which
        SQLAlchemy cannot use with an async engine.
        """
        url = self.database_url
        if url.startswith("postgres://"):
            self.database_url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            self.database_url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        self.api_prefix = "/" + self.api_prefix.strip("/")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def show_error_details(self) -> bool:
        """Expose exception messages to callers outside production."""
        return not self.is_production

    @property
    def allowed_origins(self) -> list[str]:
        """Exact-match CORS origins, in priority order, without duplicates."""
        raw = [self.frontend_url, *LOCAL_DEV_ORIGINS, *_split_list(self.cors_extra_origins)]
        origins: list[str] = []
        for origin in raw:
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def custodial_account_names(self) -> list[str]:
        return _split_list(self.custodial_accounts)

    @property
    def mock_token_symbols(self) -> list[str]:
        return [s.upper() for s in _split_list(self.mock_tokens)]


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings singleton."""
    return Settings()


def reset_settings() -> None:
    """Clear the settings cache. Used in tests."""
    get_settings.cache_clear()
