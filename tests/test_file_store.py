"""Tests for FileBlobStore — per-file isolated uploads and downloads."""
from __future__ import annotations

import asyncio

import pytest

from scenevault.backends.memory import InMemoryBlobBackend
from scenevault.contracts.elements import MIME_TYPE_BINARY
from scenevault.errors import StorageReadError, StorageWriteError
from scenevault.services.file_codec import compress_data, encode_data_url, prepare_file
from scenevault.services.file_store import FileBlobStore, file_path, unique_ids
from scenevault.services.scene_crypto import generate_room_key

BUCKET = "files"
PREFIX = "/files/rooms/room-1"


class FlakyBlobBackend(InMemoryBlobBackend):
    """Fails uploads/downloads for selected paths and counts downloads."""

    def __init__(self, fail_paths: set[str] | None = None) -> None:
        super().__init__()
        self.fail_paths = fail_paths or set()
        self.downloads: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, bucket, path, data, *, cache_control=None, upsert=True) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if path in self.fail_paths:
                raise StorageWriteError(f"upload of {path} refused")
            await super().upload(bucket, path, data, cache_control=cache_control, upsert=upsert)
        finally:
            self.in_flight -= 1

    async def download(self, bucket, path) -> bytes:
        self.downloads.append(path)
        if path in self.fail_paths:
            raise StorageReadError(f"download of {path} refused")
        return await super().download(bucket, path)


def _files(room_key: str, *contents: bytes):
    return [prepare_file(c, mime_type="image/png", encryption_key=room_key) for c in contents]


def test_file_path_joins_prefix() -> None:
    assert file_path("/files/rooms/r/", "abc") == "/files/rooms/r/abc"


def test_unique_ids_keeps_first_seen_order() -> None:
    assert unique_ids(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


class TestSaveFiles:

    @pytest.mark.asyncio
    async def test_all_saved(self, blob_backend, room_key) -> None:
        files = _files(room_key, b"one", b"two")
        result = await FileBlobStore(blob_backend, bucket=BUCKET).save_files(PREFIX, files)

        assert sorted(result.saved_files) == sorted(f["id"] for f in files)
        assert result.errored_files == ()
        assert (BUCKET, file_path(PREFIX, files[0]["id"])) in blob_backend.blobs

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_siblings(self, room_key) -> None:
        files = _files(room_key, b"one", b"two", b"three")
        backend = FlakyBlobBackend({file_path(PREFIX, files[1]["id"])})

        result = await FileBlobStore(backend, bucket=BUCKET).save_files(PREFIX, files)

        assert sorted(result.saved_files) == sorted([files[0]["id"], files[2]["id"]])
        assert result.errored_files == (files[1]["id"],)

    @pytest.mark.asyncio
    async def test_cache_control_is_long_lived(self, blob_backend, room_key) -> None:
        files = _files(room_key, b"one")
        await FileBlobStore(blob_backend, bucket=BUCKET, cache_max_age_sec=60).save_files(PREFIX, files)
        assert blob_backend.cache_control[(BUCKET, file_path(PREFIX, files[0]["id"]))] == "public, max-age=60"

    @pytest.mark.asyncio
    async def test_resave_replaces_existing_blob(self, blob_backend, room_key) -> None:
        store = FileBlobStore(blob_backend, bucket=BUCKET)
        files = _files(room_key, b"one")
        await store.save_files(PREFIX, files)
        result = await store.save_files(PREFIX, files)
        assert result.saved_files == (files[0]["id"],)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, room_key) -> None:
        backend = FlakyBlobBackend()
        files = _files(room_key, *(bytes([i]) for i in range(10)))
        await FileBlobStore(backend, bucket=BUCKET, concurrency=2).save_files(PREFIX, files)
        assert backend.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, blob_backend) -> None:
        result = await FileBlobStore(blob_backend, bucket=BUCKET).save_files(PREFIX, [])
        assert result.saved_files == () and result.errored_files == ()


class TestLoadFiles:

    @pytest.mark.asyncio
    async def test_loads_data_url_and_metadata(self, blob_backend, room_key) -> None:
        prepared = prepare_file(b"png-bytes", mime_type="image/png", encryption_key=room_key, created=123)
        store = FileBlobStore(blob_backend, bucket=BUCKET)
        await store.save_files(PREFIX, [prepared])

        result = await store.load_files(PREFIX, room_key, [prepared["id"]])

        assert result.errored_files == ()
        (loaded,) = result.loaded_files
        assert loaded["id"] == prepared["id"]
        assert loaded["mimeType"] == "image/png"
        assert loaded["dataURL"] == encode_data_url(b"png-bytes", "image/png")
        assert loaded["created"] == 123
        assert loaded["lastRetrieved"] == 123

    @pytest.mark.asyncio
    async def test_missing_metadata_uses_defaults(self, blob_backend, room_key) -> None:
        data_url = encode_data_url(b"raw", "image/png")
        blob_backend.blobs[(BUCKET, file_path(PREFIX, "bare"))] = compress_data(
            data_url.encode(), encryption_key=room_key
        )

        result = await FileBlobStore(blob_backend, bucket=BUCKET).load_files(PREFIX, room_key, ["bare"])

        (loaded,) = result.loaded_files
        assert loaded["mimeType"] == MIME_TYPE_BINARY
        assert loaded["created"] > 0
        assert loaded["lastRetrieved"] == loaded["created"]

    @pytest.mark.asyncio
    async def test_failures_are_per_id(self, room_key) -> None:
        good, bad = _files(room_key, b"good", b"bad")
        backend = FlakyBlobBackend({file_path(PREFIX, bad["id"])})
        store = FileBlobStore(backend, bucket=BUCKET)
        await store.save_files(PREFIX, [good])

        result = await store.load_files(PREFIX, room_key, [good["id"], bad["id"], "missing"])

        assert [f["id"] for f in result.loaded_files] == [good["id"]]
        assert sorted(result.errored_files) == sorted([bad["id"], "missing"])

    @pytest.mark.asyncio
    async def test_wrong_key_is_per_file_error(self, blob_backend, room_key) -> None:
        files = _files(room_key, b"one")
        store = FileBlobStore(blob_backend, bucket=BUCKET)
        await store.save_files(PREFIX, files)

        result = await store.load_files(PREFIX, generate_room_key(), [files[0]["id"]])

        assert result.loaded_files == ()
        assert result.errored_files == (files[0]["id"],)

    @pytest.mark.asyncio
    async def test_duplicate_ids_fetched_once(self, room_key) -> None:
        backend = FlakyBlobBackend()
        files = _files(room_key, b"one")
        store = FileBlobStore(backend, bucket=BUCKET)
        await store.save_files(PREFIX, files)

        file_id = files[0]["id"]
        result = await store.load_files(PREFIX, room_key, [file_id, file_id, file_id])

        assert len(result.loaded_files) == 1
        assert backend.downloads == [file_path(PREFIX, file_id)]
