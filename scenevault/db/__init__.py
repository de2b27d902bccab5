"""
Database module for SceneVault.

Provides async SQLAlchemy support with PostgreSQL and SQLite.
"""
from __future__ import annotations

from scenevault.db.database import (
    AsyncSessionLocal,
    close_db,
    get_session_factory,
    init_db,
)
from scenevault.db.models import StoredSceneRow

__all__ = [
    "AsyncSessionLocal",
    "close_db",
    "get_session_factory",
    "init_db",
    "StoredSceneRow",
]
