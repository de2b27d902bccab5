"""
Async SQLAlchemy database setup.

Supports PostgreSQL (production) and SQLite (development).
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from scenevault.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


# Global engine and session factory (initialized on startup)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Get the database URL from settings."""
    url = settings.database_url
    if not url:
        # Default to SQLite for development
        url = "sqlite+aiosqlite:///./scenevault.db"
        logger.warning(f"No database URL configured, using SQLite: {url}")
    return url


async def init_db(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Initialize database engine and session factory.

    Schema is managed by Alembic (``alembic upgrade head``).  This function
    only creates the async engine and session factory, and is a no-op when
    they already exist.
    """
    global _engine, _async_session_factory

    if _async_session_factory is not None:
        return _async_session_factory

    database_url = url or get_database_url()
    logger.info(f"Initializing database: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    _engine = create_async_engine(
        database_url,
        echo=settings.debug,
        connect_args=connect_args,
    )

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Import models so the table metadata is registered even though Alembic owns DDL.
    from scenevault.db import models  # noqa: F401

    logger.info("Database initialized successfully")
    return _async_session_factory


async def create_tables() -> None:
    """Create all tables directly (SQLite dev databases without Alembic)."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection."""
    global _engine, _async_session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the initialized session factory."""
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _async_session_factory


def AsyncSessionLocal() -> AsyncSession:
    """
    Get a new async session directly.

    Usage:
        async with AsyncSessionLocal() as session:
            ...
    """
    return get_session_factory()()
