"""Tests for the encrypted file envelope (scenevault/services/file_codec.py)."""
from __future__ import annotations

import hashlib
import struct

import pytest

from scenevault.errors import DecryptionError, FileDecodeError
from scenevault.services.file_codec import (
    compress_data,
    concat_buffers,
    decode_data_url,
    decompress_data,
    encode_data_url,
    prepare_file,
    split_buffers,
)
from scenevault.services.scene_crypto import generate_room_key


class TestBuffers:

    def test_concat_layout(self) -> None:
        blob = concat_buffers(b"ab", b"")
        assert blob == struct.pack(">I", 1) + struct.pack(">I", 2) + b"ab" + struct.pack(">I", 0)
        assert split_buffers(blob) == [b"ab", b""]

    def test_unknown_version_rejected(self) -> None:
        with pytest.raises(FileDecodeError):
            split_buffers(struct.pack(">I", 9) + struct.pack(">I", 0))

    def test_truncated_chunk_rejected(self) -> None:
        blob = concat_buffers(b"hello")
        with pytest.raises(FileDecodeError):
            split_buffers(blob[:-2])

    def test_too_short_rejected(self) -> None:
        with pytest.raises(FileDecodeError):
            split_buffers(b"\x00")


class TestEnvelope:

    def test_data_and_metadata_survive(self, room_key: str) -> None:
        payload = compress_data(b"\x89PNG...", encryption_key=room_key, metadata={"mimeType": "image/png"})
        data, metadata = decompress_data(payload, decryption_key=room_key)
        assert data == b"\x89PNG..."
        assert metadata == {"mimeType": "image/png"}

    def test_missing_metadata_is_empty_dict(self, room_key: str) -> None:
        _, metadata = decompress_data(compress_data(b"x", encryption_key=room_key), decryption_key=room_key)
        assert metadata == {}

    def test_content_is_not_visible_in_envelope(self, room_key: str) -> None:
        secret = b"top secret drawing bytes" * 4
        assert secret not in compress_data(secret, encryption_key=room_key)

    def test_wrong_key(self, room_key: str) -> None:
        payload = compress_data(b"x", encryption_key=room_key)
        with pytest.raises(DecryptionError):
            decompress_data(payload, decryption_key=generate_room_key())

    def test_garbage_payload(self, room_key: str) -> None:
        with pytest.raises(FileDecodeError):
            decompress_data(concat_buffers(b"{}", b"iv"), decryption_key=room_key)


class TestDataUrl:

    def test_encode_decode(self) -> None:
        url = encode_data_url(b"\x00\x01", "image/png")
        assert url == "data:image/png;base64,AAE="
        assert decode_data_url(url) == ("image/png", b"\x00\x01")

    @pytest.mark.parametrize("bad", ["hello", "data:image/png,AAE=", "data:image/png;base64,@@@"])
    def test_rejects_invalid(self, bad: str) -> None:
        with pytest.raises(FileDecodeError):
            decode_data_url(bad)


def test_prepare_file_id_is_sha1_of_data_url(room_key: str) -> None:
    prepared = prepare_file(b"abc", mime_type="text/plain", encryption_key=room_key, created=42)

    assert prepared["id"] == hashlib.sha1(b"data:text/plain;base64,YWJj").hexdigest()
    data, metadata = decompress_data(prepared["buffer"], decryption_key=room_key)
    assert data == b"data:text/plain;base64,YWJj"
    assert metadata == {"id": prepared["id"], "mimeType": "text/plain", "created": 42}


def test_prepare_file_same_content_same_id(room_key: str) -> None:
    a = prepare_file(b"abc", mime_type="text/plain", encryption_key=room_key)
    b = prepare_file(b"abc", mime_type="text/plain", encryption_key=generate_room_key())
    assert a["id"] == b["id"]
    assert a["buffer"] != b["buffer"]
