"""
Scene Store — read-modify-write of a room's encrypted scene record.

``save`` fetches the stored record, decrypts it, reconciles it with the
caller's elements, re-encrypts the result and writes it back.  The sequence
is not atomic across concurrent writers: whichever write lands last wins at
the storage layer.  That race is benign because reconciliation converges and
every client's next save re-reads and re-reconciles.  When
``conditional_writes`` is enabled, updates are additionally preconditioned on
the ``scene_version`` that was read, and a lost race re-runs the sequence.

Failure semantics:
- A write failure raises ``StorageWriteError`` and leaves the version cache
  untouched, so the next save repeats the full sequence.
- ``load`` returns None only when no record exists; fetch failures raise
  ``StorageReadError`` and undecryptable records raise ``DecryptionError``.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from scenevault.backends.base import RecordBackend
from scenevault.config import DELETED_ELEMENT_TIMEOUT_MS, SCENES_TABLE
from scenevault.contracts.elements import AppStateDict, ElementDict
from scenevault.errors import StorageWriteError, WriteConflictError
from scenevault.services.scene_crypto import decrypt_elements, encrypt_elements
from scenevault.services.scene_elements import get_syncable_elements, restore_elements
from scenevault.services.scene_reconcile import reconcile_elements
from scenevault.services.scene_version import get_scene_version
from scenevault.services.scene_version_cache import SceneVersionCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomPortal:
    """A client's handle on a collaboration room.

    Any of the three fields may be missing while the client is still
    joining; a portal without all of them cannot save.
    """

    room_id: str | None
    room_key: str | None
    connection_id: str | None

    @property
    def is_open(self) -> bool:
        return bool(self.room_id and self.room_key and self.connection_id)


@dataclass(frozen=True)
class StoredScene:
    """The encrypted unit persisted per room."""

    scene_version: int
    iv: bytes
    ciphertext: bytes

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "StoredScene":
        return cls(
            scene_version=int(record["scene_version"]),
            iv=bytes(record["iv"]),
            ciphertext=bytes(record["ciphertext"]),
        )

    def to_fields(self) -> dict[str, Any]:
        return {
            "scene_version": self.scene_version,
            "iv": self.iv,
            "ciphertext": self.ciphertext,
        }


def create_stored_scene(elements: Sequence[ElementDict], room_key: str) -> StoredScene:
    """Encrypt ``elements`` and stamp them with their scene version."""
    ciphertext, iv = encrypt_elements(room_key, list(elements))
    return StoredScene(scene_version=get_scene_version(elements), iv=iv, ciphertext=ciphertext)


class SceneStore:
    """Load/save encrypted scenes through a single record backend."""

    def __init__(
        self,
        records: RecordBackend,
        *,
        cache: SceneVersionCache | None = None,
        conditional_writes: bool = False,
        max_write_attempts: int = 3,
        deleted_element_timeout_ms: int = DELETED_ELEMENT_TIMEOUT_MS,
        name: str | None = None,
    ) -> None:
        self.records = records
        self.cache = cache if cache is not None else SceneVersionCache()
        self.conditional_writes = conditional_writes
        self.max_write_attempts = max(1, max_write_attempts)
        self.deleted_element_timeout_ms = deleted_element_timeout_ms
        self.name = name or records.name

    def _syncable(self, elements: Sequence[ElementDict]) -> list[ElementDict]:
        return get_syncable_elements(elements, deleted_timeout_ms=self.deleted_element_timeout_ms)

    def _normalise(self, elements: Sequence[ElementDict]) -> list[ElementDict]:
        """Restore and filter caller elements into the form that gets persisted."""
        return self._syncable(restore_elements(elements))

    def is_saved(self, portal: RoomPortal, elements: Sequence[ElementDict]) -> bool:
        """True when ``elements`` match what this store last persisted for the portal."""
        if not portal.is_open:
            return True
        return self.cache.is_saved(portal.connection_id, self._normalise(elements))

    def forget_connection(self, connection_id: str) -> None:
        self.cache.forget(connection_id)

    async def _fetch(self, room_id: str) -> StoredScene | None:
        record = await self.records.select_one(SCENES_TABLE, room_id)
        return StoredScene.from_record(record) if record is not None else None

    async def _write_reconciled(
        self,
        room_id: str,
        room_key: str,
        elements: Sequence[ElementDict],
        app_state: AppStateDict | None,
    ) -> StoredScene:
        """One read → reconcile → write pass. Raises ``WriteConflictError`` on a lost race."""
        existing = await self._fetch(room_id)

        if existing is None:
            stored = create_stored_scene(elements, room_key)
            await self.records.insert(SCENES_TABLE, {"room_id": room_id, **stored.to_fields()})
            logger.info(f"✅ Created scene for room {room_id} (version {stored.scene_version})")
            return stored

        previous = self._syncable(restore_elements(decrypt_elements(existing, room_key)))
        reconciled = self._syncable(reconcile_elements(elements, previous, app_state))
        stored = create_stored_scene(reconciled, room_key)
        expected = {"scene_version": existing.scene_version} if self.conditional_writes else None
        await self.records.update(SCENES_TABLE, room_id, stored.to_fields(), expected=expected)
        logger.info(
            f"✅ Updated scene for room {room_id} "
            f"(version {existing.scene_version} → {stored.scene_version}, {len(reconciled)} elements)"
        )
        return stored

    async def save(
        self,
        portal: RoomPortal,
        elements: Sequence[ElementDict],
        app_state: AppStateDict | None = None,
    ) -> list[ElementDict] | None:
        """Persist ``elements`` for the portal's room, merging with what is stored.

        Returns the elements as stored (after reconciliation), or None when
        there is nothing to do: no open room, or the elements are already
        saved.

        Raises:
            StorageReadError: The existing record could not be fetched.
            StorageWriteError: The write failed (cache left untouched).
            DecryptionError: The existing record cannot be decrypted with
                the portal's key.
        """
        if not portal.is_open:
            return None
        assert portal.room_id and portal.room_key and portal.connection_id
        elements = self._normalise(elements)
        if self.cache.is_saved(portal.connection_id, elements):
            return None

        stored: StoredScene | None = None
        for attempt in range(1, self.max_write_attempts + 1):
            try:
                stored = await self._write_reconciled(portal.room_id, portal.room_key, elements, app_state)
                break
            except WriteConflictError:
                if attempt == self.max_write_attempts:
                    logger.error(
                        f"❌ Scene write for room {portal.room_id} lost {attempt} race(s), giving up"
                    )
                    raise
                logger.warning(
                    f"⚠️ Scene for room {portal.room_id} changed concurrently, "
                    f"re-reconciling (attempt {attempt + 1}/{self.max_write_attempts})"
                )
        if stored is None:
            raise StorageWriteError(f"Scene for room {portal.room_id} was not written")

        stored_elements = self._syncable(restore_elements(decrypt_elements(stored, portal.room_key)))
        self.cache.set(portal.connection_id, stored_elements)
        return stored_elements

    async def load(
        self,
        room_id: str,
        room_key: str,
        connection_id: str | None = None,
        *,
        delete_invisible: bool = True,
    ) -> list[ElementDict] | None:
        """Fetch and decrypt the scene for ``room_id``.

        With ``delete_invisible`` (the default, for hydrating a display)
        deleted and invisibly small elements are dropped.  Pass False when
        the result feeds reconciliation, which must see tombstones.

        Raises:
            StorageReadError: The record could not be fetched.
            DecryptionError: The record cannot be decrypted with ``room_key``.
        """
        stored = await self._fetch(room_id)
        if stored is None:
            logger.info(f"No stored scene for room {room_id}")
            return None

        elements = self._syncable(
            restore_elements(decrypt_elements(stored, room_key), delete_invisible=delete_invisible)
        )
        if connection_id is not None:
            self.cache.set(connection_id, elements)
        logger.debug("Loaded %d element(s) for room %s", len(elements), room_id)
        return elements
