"""Tests for async database engine and session management."""

from unittest.mock import patch

import pytest
from sqlalchemy import inspect

from identity_store.core.config import Settings
from identity_store.core.db import (
    _engine_kwargs,
    create_fresh_async_engine,
    create_schema,
    get_async_db_session,
    get_async_engine,
    get_async_sessionmaker,
    reset_async_engine,
)


def _sqlite_settings(tmp_path) -> Settings:
    return Settings(app_env="test", database_url=f"sqlite:///{tmp_path / 'identity.db'}")


class TestEngineKwargs:
    """Tests for backend-specific engine configuration."""

    def test_sqlite_has_no_pool_sizing(self, tmp_path):
        kwargs = _engine_kwargs(_sqlite_settings(tmp_path))
        assert "pool_size" not in kwargs

    def test_postgresql_pool_and_search_path(self):
        settings = Settings(
            app_env="test",
            database_url="postgresql://u:p@localhost/identity",
            database_schema="identity",
            db_pool_size=7,
        )

        kwargs = _engine_kwargs(settings)

        assert kwargs["pool_size"] == 7
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["connect_args"]["server_settings"]["search_path"] == "identity,public"


class TestAsyncEngine:
    """Tests for engine caching and session lifecycle."""

    @pytest.mark.anyio
    async def test_get_async_engine_reuses_existing(self, tmp_path):
        with patch("identity_store.core.db.settings", _sqlite_settings(tmp_path)):
            await reset_async_engine()
            try:
                assert get_async_engine() is get_async_engine()
                assert get_async_sessionmaker() is get_async_sessionmaker()
            finally:
                await reset_async_engine()

    @pytest.mark.anyio
    async def test_create_schema_creates_identity_tables(self, tmp_path):
        engine = create_fresh_async_engine(_sqlite_settings(tmp_path))
        try:
            await create_schema(engine)
            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda c: inspect(c).get_table_names())
        finally:
            await engine.dispose()

        assert {
            "identity_users",
            "identity_roles",
            "organization_units",
            "identity_user_roles",
            "identity_user_organization_units",
            "organization_unit_roles",
            "identity_user_logins",
            "identity_user_claims",
            "identity_role_claims",
        } <= set(tables)

    @pytest.mark.anyio
    async def test_session_rolls_back_on_error(self, tmp_path):
        with patch("identity_store.core.db.settings", _sqlite_settings(tmp_path)):
            await reset_async_engine()
            try:
                with pytest.raises(RuntimeError):
                    async with get_async_db_session():
                        raise RuntimeError("boom")
            finally:
                await reset_async_engine()
