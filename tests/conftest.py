"""Pytest configuration and fixtures."""
from __future__ import annotations

import itertools
import logging
import time
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scenevault.backends.memory import InMemoryBlobBackend, InMemoryRecordBackend
from scenevault.contracts.elements import ElementDict
from scenevault.db.database import Base
from scenevault.db import models  # noqa: F401 — register tables with Base
from scenevault.services.scene_crypto import generate_room_key


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("botocore").setLevel(logging.WARNING)


ElementFactory = Callable[..., ElementDict]

_nonce = itertools.count(1)


@pytest.fixture
def make_element() -> ElementFactory:
    """Factory for fully-populated rectangle elements.

    Every default key is present so restoring a stored copy yields an
    identical dict (and therefore the same scene version).
    """

    def _make(element_id: str, **overrides: Any) -> ElementDict:
        element: dict[str, Any] = {
            "id": element_id,
            "type": "rectangle",
            "x": 0.0,
            "y": 0.0,
            "width": 100.0,
            "height": 50.0,
            "version": 1,
            "versionNonce": next(_nonce),
            "isDeleted": False,
            "updated": int(time.time() * 1000),
            "index": None,
        }
        element.update(overrides)
        return element  # type: ignore[return-value]

    return _make


@pytest.fixture
def room_key() -> str:
    return generate_room_key()


@pytest.fixture
def record_backend() -> InMemoryRecordBackend:
    return InMemoryRecordBackend()


@pytest.fixture
def blob_backend() -> InMemoryBlobBackend:
    return InMemoryBlobBackend()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite session factory with all tables created.

    Isolated per test: tables are created fresh and dropped on teardown.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
