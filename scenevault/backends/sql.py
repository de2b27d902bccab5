"""SQLAlchemy record backend.

Maps logical table names onto ORM models and runs each operation in its own
short-lived ``AsyncSession`` so a failed write never leaves a half-committed
transaction behind.  Driver errors are translated into the storage taxonomy.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scenevault.backends.base import Record, RecordBackend
from scenevault.config import SCENES_TABLE
from scenevault.db.database import Base
from scenevault.db.models import StoredSceneRow
from scenevault.errors import (
    ConfigurationError,
    StorageReadError,
    StorageWriteError,
    WriteConflictError,
)

logger = logging.getLogger(__name__)

_MODELS: dict[str, type[Base]] = {
    SCENES_TABLE: StoredSceneRow,
}


def _model_for(table: str) -> type[Base]:
    try:
        return _MODELS[table]
    except KeyError:
        raise ConfigurationError(f"Unknown table {table!r}") from None


def _row_to_record(row: Base) -> Record:
    mapper = sa_inspect(type(row))
    return {column.key: getattr(row, column.key) for column in mapper.column_attrs}


class SqlRecordBackend(RecordBackend):
    """Record backend over an async SQLAlchemy session factory."""

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def select_one(self, table: str, key: str) -> Record | None:
        model = _model_for(table)
        try:
            async with self._session_factory() as session:
                row = await session.get(model, key)
                return _row_to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error(f"❌ Failed to read {table}/{key}: {exc}")
            raise StorageReadError(f"Failed to read {table}/{key}") from exc

    async def insert(self, table: str, record: Mapping[str, Any]) -> None:
        model = _model_for(table)
        try:
            async with self._session_factory() as session:
                session.add(model(**record))
                await session.commit()
        except IntegrityError as exc:
            logger.warning(f"⚠️ Insert into {table} conflicted with an existing row")
            raise WriteConflictError(f"{table} row already exists") from exc
        except SQLAlchemyError as exc:
            logger.error(f"❌ Failed to insert into {table}: {exc}")
            raise StorageWriteError(f"Failed to insert into {table}") from exc
        logger.debug("✅ Inserted row into %s", table)

    async def update(
        self,
        table: str,
        key: str,
        fields: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        model = _model_for(table)
        pk_column = sa_inspect(model).primary_key[0]
        stmt = update(model).where(pk_column == key).values(**fields)
        for column, value in (expected or {}).items():
            stmt = stmt.where(getattr(model, column) == value)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(f"❌ Failed to update {table}/{key}: {exc}")
            raise StorageWriteError(f"Failed to update {table}/{key}") from exc

        # rowcount is reported by every dialect we support for UPDATE ... WHERE.
        if result.rowcount == 0:  # type: ignore[attr-defined]
            if expected:
                raise WriteConflictError(f"{table}/{key} changed since it was read")
            raise StorageWriteError(f"{table}/{key} does not exist")
        logger.debug("✅ Updated %s/%s", table, key)
