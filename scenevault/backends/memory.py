"""In-process record and blob backends.

Used for local development (``SCENEVAULT_SCENE_BACKENDS=["memory"]``) and as
the storage layer in tests.  State lives on the instance and is lost with it.
Records are copied on the way in and out so callers cannot mutate stored
state by holding on to a returned dict.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from scenevault.backends.base import BlobBackend, Record, RecordBackend
from scenevault.config import SCENES_TABLE
from scenevault.errors import BlobNotFoundError, StorageWriteError, WriteConflictError

logger = logging.getLogger(__name__)

# Primary-key column per logical table.
_TABLE_KEYS: dict[str, str] = {SCENES_TABLE: "room_id"}


class InMemoryRecordBackend(RecordBackend):
    """Dict-of-dicts record store keyed by each table's primary-key column."""

    name = "memory"

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Record]] = {}

    def _table(self, table: str) -> dict[str, Record]:
        return self._tables.setdefault(table, {})

    async def select_one(self, table: str, key: str) -> Record | None:
        row = self._table(table).get(key)
        return dict(row) if row is not None else None

    async def insert(self, table: str, record: Mapping[str, Any]) -> None:
        key_column = _TABLE_KEYS.get(table, "id")
        key = record.get(key_column)
        if not isinstance(key, str):
            raise StorageWriteError(f"Record for {table} is missing its {key_column!r} key")
        rows = self._table(table)
        if key in rows:
            raise WriteConflictError(f"{table}/{key} already exists")
        rows[key] = dict(record)
        logger.debug("✅ Inserted %s/%s", table, key)

    async def update(
        self,
        table: str,
        key: str,
        fields: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        rows = self._table(table)
        row = rows.get(key)
        if row is None:
            raise StorageWriteError(f"{table}/{key} does not exist")
        if expected and any(row.get(col) != value for col, value in expected.items()):
            raise WriteConflictError(f"{table}/{key} changed since it was read")
        rows[key] = {**row, **fields}
        logger.debug("✅ Updated %s/%s", table, key)


class InMemoryBlobBackend(BlobBackend):
    """Blob store keyed by ``(bucket, path)``."""

    name = "memory"

    def __init__(self) -> None:
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.cache_control: dict[tuple[str, str], str | None] = {}

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        cache_control: str | None = None,
        upsert: bool = True,
    ) -> None:
        if not upsert and (bucket, path) in self.blobs:
            raise WriteConflictError(f"{bucket}/{path} already exists")
        self.blobs[(bucket, path)] = bytes(data)
        self.cache_control[(bucket, path)] = cache_control

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            return self.blobs[(bucket, path)]
        except KeyError:
            raise BlobNotFoundError(f"{bucket}/{path} not found") from None
