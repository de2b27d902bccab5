"""Compressed + encrypted envelope for file attachments.

Wire layout (all integers unsigned 32-bit big-endian)::

    u32 format_version
    u32 len | encoding-info JSON   {"version": 2, "compression": "zlib", "encryption": "AES-GCM"}
    u32 len | iv
    u32 len | ciphertext

The ciphertext decrypts to a zlib stream whose inflated body is itself a
concatenation (same chunk format) of the metadata JSON and the raw file
bytes, so metadata is encrypted along with the content.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import struct
import time
import zlib
from typing import Any

from scenevault.contracts.elements import FileToSave
from scenevault.errors import FileDecodeError
from scenevault.services.scene_crypto import decrypt_data, encrypt_data

logger = logging.getLogger(__name__)

CONCAT_BUFFERS_VERSION = 1
ENCODING_INFO: dict[str, Any] = {
    "version": 2,
    "compression": "zlib",
    "encryption": "AES-GCM",
}

_U32 = struct.Struct(">I")


def concat_buffers(*buffers: bytes) -> bytes:
    """Join ``buffers`` into one length-prefixed blob."""
    parts = [_U32.pack(CONCAT_BUFFERS_VERSION)]
    for buf in buffers:
        parts.append(_U32.pack(len(buf)))
        parts.append(bytes(buf))
    return b"".join(parts)


def split_buffers(payload: bytes) -> list[bytes]:
    """Inverse of ``concat_buffers``.

    Raises:
        FileDecodeError: Unknown format version, or a chunk runs past the end.
    """
    if len(payload) < _U32.size:
        raise FileDecodeError("Envelope too short to contain a version header")
    (version,) = _U32.unpack_from(payload, 0)
    if version != CONCAT_BUFFERS_VERSION:
        raise FileDecodeError(f"Unsupported envelope version {version}")

    buffers: list[bytes] = []
    cursor = _U32.size
    while cursor < len(payload):
        if cursor + _U32.size > len(payload):
            raise FileDecodeError("Truncated chunk length")
        (length,) = _U32.unpack_from(payload, cursor)
        cursor += _U32.size
        if cursor + length > len(payload):
            raise FileDecodeError("Truncated chunk body")
        buffers.append(payload[cursor:cursor + length])
        cursor += length
    return buffers


def compress_data(
    data: bytes,
    *,
    encryption_key: str,
    metadata: dict[str, Any] | None = None,
) -> bytes:
    """Encode ``data`` (plus optional ``metadata``) into an encrypted envelope."""
    metadata_json = json.dumps(metadata, separators=(",", ":")).encode("utf-8")
    deflated = zlib.compress(concat_buffers(metadata_json, data))
    ciphertext, iv = encrypt_data(encryption_key, deflated)
    encoding_info = json.dumps(ENCODING_INFO, separators=(",", ":")).encode("utf-8")
    return concat_buffers(encoding_info, iv, ciphertext)


def decompress_data(payload: bytes, *, decryption_key: str) -> tuple[bytes, dict[str, Any]]:
    """Decode an envelope produced by ``compress_data``.

    Returns:
        ``(data, metadata)``; metadata is ``{}`` when none was stored.

    Raises:
        FileDecodeError: The envelope is malformed.
        DecryptionError: ``decryption_key`` does not match.
    """
    chunks = split_buffers(payload)
    if len(chunks) != 3:
        raise FileDecodeError(f"Expected 3 envelope chunks, found {len(chunks)}")
    encoding_raw, iv, ciphertext = chunks

    try:
        encoding = json.loads(encoding_raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FileDecodeError("Envelope encoding header is not JSON") from exc
    if not isinstance(encoding, dict) or encoding.get("compression") != ENCODING_INFO["compression"]:
        raise FileDecodeError(f"Unsupported envelope encoding {encoding!r}")

    deflated = decrypt_data(iv, ciphertext, decryption_key)
    try:
        inflated = zlib.decompress(deflated)
    except zlib.error as exc:
        raise FileDecodeError("Envelope body is not a valid zlib stream") from exc

    inner = split_buffers(inflated)
    if len(inner) != 2:
        raise FileDecodeError(f"Expected metadata and content chunks, found {len(inner)}")
    metadata_raw, data = inner
    try:
        metadata = json.loads(metadata_raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FileDecodeError("Envelope metadata is not JSON") from exc
    return data, metadata if isinstance(metadata, dict) else {}


def encode_data_url(data: bytes, mime_type: str) -> str:
    """Return ``data`` as a base64 ``data:`` URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 ``data:`` URL into ``(mime_type, bytes)``.

    Raises:
        FileDecodeError: Not a base64 data URL.
    """
    header, sep, body = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise FileDecodeError("Not a base64 data URL")
    try:
        return header[len("data:"):-len(";base64")], base64.b64decode(body, validate=True)
    except binascii.Error as exc:
        raise FileDecodeError("Data URL body is not valid base64") from exc


def prepare_file(
    data: bytes,
    *,
    mime_type: str,
    encryption_key: str,
    created: int | None = None,
) -> FileToSave:
    """Encode raw file bytes into an upload-ready envelope.

    The file id is the SHA-1 of the data URL, so the same file always maps
    to the same blob path and re-uploads are idempotent.
    """
    data_url = encode_data_url(data, mime_type)
    file_id = hashlib.sha1(data_url.encode("ascii")).hexdigest()
    metadata = {
        "id": file_id,
        "mimeType": mime_type,
        "created": created if created is not None else int(time.time() * 1000),
    }
    buffer = compress_data(data_url.encode("ascii"), encryption_key=encryption_key, metadata=metadata)
    return FileToSave(id=file_id, buffer=buffer)
