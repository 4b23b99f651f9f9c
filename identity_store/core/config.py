"""Application configuration using Pydantic Settings.

Configuration is loaded from environment variables.

Optionally, point `ENV_FILE` at a local env file (for development); it is
read by pydantic-settings and never overrides variables already exported.
"""

from __future__ import annotations

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

# Async drivers substituted for plain or sync URLs.
_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}

# Pool settings come from Settings, not from the URL.
_ENGINE_ONLY_QUERY_OPTIONS = frozenset(
    {"pool_size", "max_overflow", "pool_timeout", "pool_recycle"}
)


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Identity store settings with type validation.

    Configuration is loaded from environment variables, with support
    for an explicit env file in development.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "identity-store"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True

    # Database
    database_url: str = "sqlite+aiosqlite:///./identity.db"
    database_schema: str | None = None
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600
    db_echo: bool = False

    # Queries
    # Applied only when the caller supplies no cancel scope. None leaves
    # worst-case latency to the store's own statement timeout.
    query_timeout_seconds: float | None = None
    max_filter_length: int = 256

    @property
    def async_url(self) -> str:
        """Database URL with an async driver selected and engine-only options removed."""
        url = make_url(self.database_url)
        query = {k: v for k, v in url.query.items() if k not in _ENGINE_ONLY_QUERY_OPTIONS}
        return url.set(
            drivername=_ASYNC_DRIVERS.get(url.drivername, url.drivername), query=query
        ).render_as_string(hide_password=False)

    @property
    def is_sqlite(self) -> bool:
        return self.async_url.startswith("sqlite")

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("query_timeout_seconds")
    @classmethod
    def validate_query_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("query_timeout_seconds must be positive when set")
        return v

    @field_validator("max_filter_length")
    @classmethod
    def validate_max_filter_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_filter_length must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> Settings:
        """
        Validate production-specific settings.

        These checks prevent development configurations from being deployed to production.
        """
        if self.app_env == AppEnvironment.PROD:
            if make_url(self.database_url).get_backend_name() != "postgresql":
                raise ValueError("DATABASE_URL must use a PostgreSQL scheme in production")
            if self.db_echo:
                raise ValueError("DB_ECHO must be disabled in production")

        return self


settings = Settings()
