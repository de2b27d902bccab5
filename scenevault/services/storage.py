"""
Storage facade — backend selection and ordered fallback.

Backends are chosen once, from ``settings.scene_backends`` and
``settings.file_backends``, when the facade is built.  Each list is ordered:
the first entry is the primary and later entries are only consulted when an
earlier one fails.

Fallback rules
--------------
- Scenes: only ``StorageError`` subclasses (configuration, read, write) move
  on to the next backend.  ``DecryptionError`` propagates immediately: the
  same key will not decrypt a copy held elsewhere either.
- ``load_scene`` also moves on when a backend has no record.  It returns
  None when every backend answered "absent" and re-raises the last error
  when none produced an answer.
- Files: the per-file result is the structured error.  Ids that errored on
  one backend are retried on the next; the final result merges all passes.

The backend record/blob clients are external collaborators; everything the
persistence protocol does lives in ``SceneStore`` and ``FileBlobStore``.
"""
from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator, Iterable, Sequence

from scenevault.backends.base import BlobBackend, RecordBackend
from scenevault.backends.memory import InMemoryBlobBackend, InMemoryRecordBackend
from scenevault.config import Settings, settings as default_settings
from scenevault.contracts.elements import AppStateDict, BinaryFileData, ElementDict, FileToSave
from scenevault.errors import ConfigurationError, StorageError
from scenevault.services.file_store import FileBlobStore, FileLoadResult, FileSaveResult, unique_ids
from scenevault.services.scene_store import RoomPortal, SceneStore

logger = logging.getLogger(__name__)


class SceneStorage:
    """Ordered list of scene and file stores exposing the five persistence operations."""

    def __init__(
        self,
        scene_stores: Sequence[SceneStore],
        file_stores: Sequence[FileBlobStore],
    ) -> None:
        self.scene_stores = list(scene_stores)
        self.file_stores = list(file_stores)

    # ── Scenes ────────────────────────────────────────────────────────

    async def save_scene(
        self,
        portal: RoomPortal,
        elements: Sequence[ElementDict],
        app_state: AppStateDict | None = None,
    ) -> list[ElementDict] | None:
        """Save through the first backend that accepts the write.

        Raises:
            ConfigurationError: No scene backend is configured.
            StorageError: Every backend failed (the last error is raised).
            DecryptionError: The stored scene cannot be decrypted.
        """
        if not self.scene_stores:
            raise ConfigurationError("No scene storage backend configured")

        last_error: StorageError | None = None
        for store in self.scene_stores:
            try:
                return await store.save(portal, elements, app_state)
            except StorageError as exc:
                logger.warning(f"⚠️ Scene save via {store.name} failed, trying next backend: {exc}")
                last_error = exc
        assert last_error is not None
        raise last_error

    async def load_scene(
        self,
        room_id: str,
        room_key: str,
        connection_id: str | None = None,
        *,
        delete_invisible: bool = True,
    ) -> list[ElementDict] | None:
        """Load from the first backend that has the scene."""
        if not self.scene_stores:
            logger.warning("⚠️ No scene storage backend configured, nothing to load")
            return None

        last_error: StorageError | None = None
        answered = False
        for store in self.scene_stores:
            try:
                elements = await store.load(
                    room_id, room_key, connection_id, delete_invisible=delete_invisible
                )
            except StorageError as exc:
                logger.warning(f"⚠️ Scene load via {store.name} failed, trying next backend: {exc}")
                last_error = exc
                continue
            answered = True
            if elements is not None:
                return elements
        if not answered and last_error is not None:
            raise last_error
        return None

    def is_scene_saved(self, portal: RoomPortal, elements: Sequence[ElementDict]) -> bool:
        """True when any backend has durably stored exactly these elements."""
        if not portal.is_open or not self.scene_stores:
            return True
        return any(store.is_saved(portal, elements) for store in self.scene_stores)

    def forget_connection(self, connection_id: str) -> None:
        """Release cached state for a closed collaboration connection."""
        for store in self.scene_stores:
            store.forget_connection(connection_id)

    # ── Files ─────────────────────────────────────────────────────────

    async def save_files(self, prefix: str, files: Sequence[FileToSave]) -> FileSaveResult:
        """Upload ``files``; ids that fail on one backend are retried on the next.

        Raises:
            ConfigurationError: No file backend is configured.
        """
        if not self.file_stores:
            raise ConfigurationError("No file storage backend configured")

        saved: list[str] = []
        pending = list(files)
        for store in self.file_stores:
            if not pending:
                break
            result = await store.save_files(prefix, pending)
            saved.extend(result.saved_files)
            errored = set(result.errored_files)
            pending = [f for f in pending if f["id"] in errored]
            if pending:
                logger.warning(f"⚠️ {len(pending)} file(s) failed via {store.name}")
        return FileSaveResult(
            saved_files=tuple(saved),
            errored_files=tuple(f["id"] for f in pending),
        )

    async def load_files(
        self,
        prefix: str,
        decryption_key: str,
        file_ids: Iterable[str],
    ) -> FileLoadResult:
        """Download ``file_ids``; ids that fail on one backend are retried on the next."""
        pending = unique_ids(file_ids)
        if not self.file_stores:
            logger.warning("⚠️ No file storage backend configured, all files errored")
            return FileLoadResult(loaded_files=(), errored_files=tuple(pending))

        loaded: list[BinaryFileData] = []
        for store in self.file_stores:
            if not pending:
                break
            result = await store.load_files(prefix, decryption_key, pending)
            loaded.extend(result.loaded_files)
            pending = list(result.errored_files)
        return FileLoadResult(loaded_files=tuple(loaded), errored_files=tuple(pending))


# ---------------------------------------------------------------------------
# Construction from settings
# ---------------------------------------------------------------------------


async def _record_backend(name: str, cfg: Settings) -> RecordBackend:
    if name == "memory":
        return InMemoryRecordBackend()
    if name == "sql":
        from scenevault.backends.sql import SqlRecordBackend
        from scenevault.db.database import init_db

        return SqlRecordBackend(await init_db(cfg.database_url))
    raise ConfigurationError(f"Unknown scene backend {name!r}")


def _blob_backend(name: str, cfg: Settings) -> BlobBackend:
    if name == "memory":
        return InMemoryBlobBackend()
    if name == "s3":
        from scenevault.backends.s3 import S3BlobBackend

        return S3BlobBackend(config=cfg)
    raise ConfigurationError(f"Unknown file backend {name!r}")


async def build_storage(config: Settings | None = None) -> SceneStorage:
    """Resolve the configured backends into a ready ``SceneStorage``."""
    cfg = config or default_settings
    scene_stores = [
        SceneStore(
            await _record_backend(name, cfg),
            conditional_writes=cfg.scene_conditional_writes,
            max_write_attempts=cfg.scene_write_max_attempts,
            deleted_element_timeout_ms=cfg.deleted_element_timeout_ms,
            name=name,
        )
        for name in cfg.scene_backends
    ]
    file_stores = [
        FileBlobStore(
            _blob_backend(name, cfg),
            bucket=cfg.files_bucket,
            cache_max_age_sec=cfg.file_cache_max_age_sec,
            concurrency=cfg.file_transfer_concurrency,
            name=name,
        )
        for name in cfg.file_backends
    ]
    logger.info(
        f"Storage ready: scenes via {cfg.scene_backends or ['<none>']}, "
        f"files via {cfg.file_backends or ['<none>']}"
    )
    return SceneStorage(scene_stores, file_stores)


@contextlib.asynccontextmanager
async def open_storage(config: Settings | None = None) -> AsyncGenerator[SceneStorage, None]:
    """Build storage for a standalone process and dispose the database on exit."""
    cfg = config or default_settings
    try:
        yield await build_storage(cfg)
    finally:
        if "sql" in cfg.scene_backends:
            from scenevault.db.database import close_db

            await close_db()
