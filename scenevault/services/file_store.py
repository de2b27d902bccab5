"""File Blob Store — per-file upload/download of encrypted attachments.

Every file in a batch is transferred independently and concurrently; one
file's failure is recorded against its id and never aborts its siblings.
Each task returns its own outcome and the batch is partitioned only after
``asyncio.gather`` completes, so no collection is shared between tasks.

Blobs live at ``{prefix}/{file_id}`` where the prefix names the room.
Uploads are upserts, so re-saving an id simply replaces its content.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from scenevault.backends.base import BlobBackend
from scenevault.config import FILE_CACHE_MAX_AGE_SEC
from scenevault.contracts.elements import MIME_TYPE_BINARY, BinaryFileData, FileToSave
from scenevault.services.file_codec import decompress_data
from scenevault.services.scene_elements import now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileSaveResult:
    """Outcome of ``save_files``: every input id is in exactly one tuple."""

    saved_files: tuple[str, ...]
    errored_files: tuple[str, ...]


@dataclass(frozen=True)
class FileLoadResult:
    """Outcome of ``load_files``: every requested id is in exactly one place."""

    loaded_files: tuple[BinaryFileData, ...]
    errored_files: tuple[str, ...]


def file_path(prefix: str, file_id: str) -> str:
    """Return the blob path for ``file_id`` under ``prefix``."""
    return f"{prefix.rstrip('/')}/{file_id}"


def unique_ids(file_ids: Iterable[str]) -> list[str]:
    """Deduplicate ``file_ids`` keeping first-seen order."""
    return list(dict.fromkeys(file_ids))


class FileBlobStore:
    """Save and load encrypted file blobs through a single blob backend."""

    def __init__(
        self,
        blobs: BlobBackend,
        *,
        bucket: str,
        cache_max_age_sec: int = FILE_CACHE_MAX_AGE_SEC,
        concurrency: int = 8,
        name: str | None = None,
    ) -> None:
        self.blobs = blobs
        self.bucket = bucket
        self.cache_control = f"public, max-age={cache_max_age_sec}"
        self._concurrency = max(1, concurrency)
        self.name = name or blobs.name

    async def _save_one(self, prefix: str, file: FileToSave, gate: asyncio.Semaphore) -> tuple[str, bool]:
        file_id = file["id"]
        try:
            async with gate:
                await self.blobs.upload(
                    self.bucket,
                    file_path(prefix, file_id),
                    file["buffer"],
                    cache_control=self.cache_control,
                    upsert=True,
                )
        except Exception as exc:
            logger.error(f"❌ Error saving file {file_id}: {exc}")
            return file_id, False
        return file_id, True

    async def save_files(self, prefix: str, files: Sequence[FileToSave]) -> FileSaveResult:
        """Upload ``files`` under ``prefix``; failures are reported per id."""
        gate = asyncio.Semaphore(self._concurrency)
        outcomes = await asyncio.gather(*(self._save_one(prefix, f, gate) for f in files))

        saved = tuple(file_id for file_id, ok in outcomes if ok)
        errored = tuple(file_id for file_id, ok in outcomes if not ok)
        if errored:
            logger.warning(f"⚠️ Saved {len(saved)}/{len(outcomes)} file(s) under {prefix}")
        else:
            logger.info(f"✅ Saved {len(saved)} file(s) under {prefix}")
        return FileSaveResult(saved_files=saved, errored_files=errored)

    async def _load_one(
        self,
        prefix: str,
        decryption_key: str,
        file_id: str,
        gate: asyncio.Semaphore,
    ) -> tuple[str, BinaryFileData | None]:
        try:
            async with gate:
                payload = await self.blobs.download(self.bucket, file_path(prefix, file_id))
            data, metadata = decompress_data(payload, decryption_key=decryption_key)
            data_url = data.decode("utf-8")
        except Exception as exc:
            logger.error(f"❌ Error loading file {file_id}: {exc}")
            return file_id, None

        created = metadata.get("created") or now_ms()
        return file_id, BinaryFileData(
            id=file_id,
            mimeType=metadata.get("mimeType") or MIME_TYPE_BINARY,
            dataURL=data_url,
            created=created,
            lastRetrieved=created,
        )

    async def load_files(
        self,
        prefix: str,
        decryption_key: str,
        file_ids: Iterable[str],
    ) -> FileLoadResult:
        """Download and decode ``file_ids``; repeated ids cost one fetch."""
        ids = unique_ids(file_ids)
        gate = asyncio.Semaphore(self._concurrency)
        outcomes = await asyncio.gather(
            *(self._load_one(prefix, decryption_key, file_id, gate) for file_id in ids)
        )

        loaded = tuple(data for _, data in outcomes if data is not None)
        errored = tuple(file_id for file_id, data in outcomes if data is None)
        if errored:
            logger.warning(f"⚠️ Loaded {len(loaded)}/{len(ids)} file(s) under {prefix}")
        return FileLoadResult(loaded_files=loaded, errored_files=errored)
