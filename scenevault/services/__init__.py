"""Persistence services for SceneVault."""
from __future__ import annotations

from scenevault.services.file_store import FileBlobStore, FileLoadResult, FileSaveResult
from scenevault.services.scene_reconcile import reconcile_elements
from scenevault.services.scene_store import RoomPortal, SceneStore, StoredScene
from scenevault.services.scene_version import get_scene_version
from scenevault.services.scene_version_cache import SceneVersionCache
from scenevault.services.storage import SceneStorage, build_storage, open_storage

__all__ = [
    "FileBlobStore",
    "FileLoadResult",
    "FileSaveResult",
    "reconcile_elements",
    "RoomPortal",
    "SceneStore",
    "StoredScene",
    "get_scene_version",
    "SceneVersionCache",
    "SceneStorage",
    "build_storage",
    "open_storage",
]
