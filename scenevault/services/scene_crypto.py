"""Scene payload encryption — AES-GCM with a per-room shared key.

The room key is shared out-of-band between collaborators (it travels in the
URL fragment of the room link) and is never sent to, or stored by, the
backend.  Losing it makes the stored scene unrecoverable.

Encryption contract
-------------------
- ``encrypt_data(key, plaintext)`` → ``(ciphertext, iv)`` with a fresh
  random 12-byte IV per call.  Encrypting the same plaintext twice yields
  different ciphertext, so ciphertext equality must never be used to decide
  whether a scene changed; use ``get_scene_version`` for that.
- ``decrypt_data(iv, ciphertext, key)`` → plaintext, or ``DecryptionError``
  when the key is wrong or the payload/IV is corrupt.  GCM authenticates the
  ciphertext, so no partial plaintext is ever returned.
- All functions are pure (no I/O) and synchronous.

Key format
----------
A room key is 128 random bits encoded as unpadded URL-safe base64
(22 characters), matching the JWK ``k`` value the browser clients export.
"""
from __future__ import annotations

import base64
import json
import logging
import os
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from scenevault.contracts.elements import ElementDict
from scenevault.errors import DecryptionError, RoomKeyError

logger = logging.getLogger(__name__)

IV_LENGTH_BYTES = 12
ROOM_KEY_BITS = 128


class EncryptedPayload(Protocol):
    """Anything carrying an IV and ciphertext (stored scene records)."""

    iv: bytes
    ciphertext: bytes


def generate_room_key() -> str:
    """Return a new random room key in its encoded string form."""
    raw = AESGCM.generate_key(bit_length=ROOM_KEY_BITS)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _import_key(key: str) -> AESGCM:
    """Decode an encoded room key into an AES-GCM cipher.

    Raises:
        RoomKeyError: The key is not valid base64 or has the wrong length.
    """
    padded = key + "=" * (-len(key) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise RoomKeyError("Room key is not valid URL-safe base64") from exc
    if len(raw) not in (16, 24, 32):
        raise RoomKeyError(f"Room key decodes to {len(raw)} bytes; expected a 128/192/256-bit AES key")
    return AESGCM(raw)


def encrypt_data(key: str, plaintext: bytes) -> tuple[bytes, bytes]:
    """Encrypt ``plaintext`` under the room key.

    Returns:
        ``(ciphertext, iv)``; the ciphertext includes the GCM tag.
    """
    cipher = _import_key(key)
    iv = os.urandom(IV_LENGTH_BYTES)
    return cipher.encrypt(iv, plaintext, None), iv


def decrypt_data(iv: bytes, ciphertext: bytes, key: str) -> bytes:
    """Decrypt a payload produced by ``encrypt_data``.

    Raises:
        DecryptionError: Wrong key, or corrupted ciphertext / IV.
    """
    cipher = _import_key(key)
    if len(iv) != IV_LENGTH_BYTES:
        raise DecryptionError(f"Invalid IV length {len(iv)}; expected {IV_LENGTH_BYTES}")
    try:
        return cipher.decrypt(bytes(iv), bytes(ciphertext), None)
    except InvalidTag as exc:
        raise DecryptionError() from exc


def encrypt_elements(key: str, elements: list[ElementDict]) -> tuple[bytes, bytes]:
    """Serialise an element list to JSON and encrypt it."""
    encoded = json.dumps(elements, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return encrypt_data(key, encoded)


def decrypt_elements(stored: EncryptedPayload, room_key: str) -> list[ElementDict]:
    """Decrypt a stored scene payload back into its element list.

    Raises:
        DecryptionError: The payload cannot be decrypted, or decrypts to
            something that is not a JSON array.
    """
    plaintext = decrypt_data(stored.iv, stored.ciphertext, room_key)
    try:
        decoded = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecryptionError("Decrypted scene payload is not valid JSON") from exc
    if not isinstance(decoded, list):
        raise DecryptionError("Decrypted scene payload is not an element list")
    return decoded
