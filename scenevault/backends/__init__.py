"""Storage backends consumed by the persistence core."""
from __future__ import annotations

from scenevault.backends.base import BlobBackend, Record, RecordBackend
from scenevault.backends.memory import InMemoryBlobBackend, InMemoryRecordBackend

__all__ = [
    "BlobBackend",
    "Record",
    "RecordBackend",
    "InMemoryBlobBackend",
    "InMemoryRecordBackend",
]
