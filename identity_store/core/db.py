"""
Database connection and session management.

Provides the async SQLAlchemy engine, session factory, and a session
context manager for repository callers.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from identity_store.core.config import Settings, settings

logger = logging.getLogger(__name__)

_async_engine: AsyncEngine | None = None
_async_sessionmaker: async_sessionmaker | None = None


def _engine_kwargs(config: Settings) -> dict[str, Any]:
    """Build engine keyword arguments for the configured backend."""
    if config.is_sqlite:
        # SQLite uses a per-file connection and does not accept pool sizing.
        return {"echo": config.db_echo}

    kwargs: dict[str, Any] = {
        "pool_size": config.db_pool_size,
        "max_overflow": config.db_max_overflow,
        "pool_timeout": config.db_pool_timeout,
        "pool_recycle": config.db_pool_recycle,
        "pool_pre_ping": True,  # Verify connections before use
        "echo": config.db_echo,
        "connect_args": {"server_settings": {"timezone": "UTC"}, "timeout": 30},
    }
    if config.database_schema:
        kwargs["connect_args"]["server_settings"]["search_path"] = (
            f"{config.database_schema},public"
        )
    return kwargs


def create_fresh_async_engine(config: Settings | None = None) -> AsyncEngine:
    """Create a fresh async engine without caching.

    Used for tests to ensure each test gets its own engine bound to its event loop.
    """
    config = config or settings
    url = config.async_url
    if not url:
        raise RuntimeError("DATABASE_URL is required")

    return create_async_engine(url, **_engine_kwargs(config))


def get_async_engine() -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    Uses asyncpg for PostgreSQL and aiosqlite for SQLite URLs.

    Returns:
        Configured async SQLAlchemy engine
    """
    global _async_engine

    if _async_engine is not None:
        return _async_engine

    _async_engine = create_fresh_async_engine(settings)
    logger.info(
        "Created async database engine",
        extra={"dialect": _async_engine.dialect.name},
    )
    return _async_engine


def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async sessionmaker.

    Returns:
        Async sessionmaker factory
    """
    global _async_sessionmaker
    if _async_sessionmaker is not None:
        return _async_sessionmaker

    _async_sessionmaker = async_sessionmaker(
        bind=get_async_engine(),
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _async_sessionmaker


async def reset_async_engine() -> None:
    """Reset the async database engine and sessionmaker.

    Useful for tests to ensure fresh connections on new event loops.
    """
    global _async_engine, _async_sessionmaker

    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_sessionmaker = None


async def create_schema(engine: AsyncEngine) -> None:
    """Create every identity table that does not exist yet."""
    from identity_store.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_async_db_session() -> AsyncIterator[AsyncSession]:
    """Async database session context manager.

    Usage:
        async with get_async_db_session() as db:
            user = await identity_user_repo.find_by_normalized_email(db, "ANN@EXAMPLE.COM")

    Yields:
        Async database session

    Ensures:
        Session is committed on success, rolled back on error, and closed
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
