"""Base classes for record and blob storage backends.

The persistence core only needs a narrow operation set from the outside
world: select/insert/update a record by key, and upload/download a blob by
path.  Concrete backends translate their library's exceptions into the
``scenevault.errors`` taxonomy so callers never see driver-specific errors.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

Record = dict[str, Any]


class RecordBackend(ABC):
    """Keyed record storage (one logical table per record kind)."""

    name: str = "record"

    @abstractmethod
    async def select_one(self, table: str, key: str) -> Record | None:
        """Return the record stored under ``key`` or None when absent.

        Raises:
            StorageReadError: The backend could not be queried.
        """
        ...

    @abstractmethod
    async def insert(self, table: str, record: Mapping[str, Any]) -> None:
        """Insert a new record.

        Raises:
            WriteConflictError: A record with the same key already exists.
            StorageWriteError: Any other write failure.
        """
        ...

    @abstractmethod
    async def update(
        self,
        table: str,
        key: str,
        fields: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> None:
        """Replace ``fields`` of the record under ``key`` atomically.

        When ``expected`` is given the update only applies if every listed
        column still holds the expected value.

        Raises:
            WriteConflictError: ``expected`` no longer matches.
            StorageWriteError: The record is missing or the write failed.
        """
        ...


class BlobBackend(ABC):
    """Path-addressed binary object storage."""

    name: str = "blob"

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        cache_control: str | None = None,
        upsert: bool = True,
    ) -> None:
        """Store ``data`` at ``bucket/path``; with ``upsert`` an existing blob is replaced.

        Raises:
            WriteConflictError: The blob exists and ``upsert`` is False.
            StorageWriteError: Any other upload failure.
        """
        ...

    @abstractmethod
    async def download(self, bucket: str, path: str) -> bytes:
        """Return the bytes stored at ``bucket/path``.

        Raises:
            BlobNotFoundError: Nothing is stored at that path.
            StorageReadError: Any other download failure.
        """
        ...
