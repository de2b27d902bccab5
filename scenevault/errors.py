"""Exception taxonomy and exit-code contract for SceneVault.

Storage errors (configuration, read, write) are the only failures the
fallback facade in ``scenevault.services.storage`` moves past.  Decryption
and decode errors mean the payload itself is unusable, so retrying against
another backend with the same key cannot help.
"""
from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Standardised CLI exit codes.

    0 — success
    1 — user error (bad arguments, invalid input)
    2 — configuration invalid / backend unavailable
    3 — storage or internal error
    4 — payload could not be decrypted or decoded
    """

    SUCCESS = 0
    USER_ERROR = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 3
    DECRYPTION_ERROR = 4


class SceneVaultError(Exception):
    """Base exception for SceneVault errors."""

    def __init__(self, message: str, exit_code: ExitCode = ExitCode.INTERNAL_ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class StorageError(SceneVaultError):
    """A backend could not serve the request."""


class ConfigurationError(StorageError):
    """Backend credentials or client are unavailable. Never retried automatically."""

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=ExitCode.CONFIG_ERROR)


class RoomKeyError(ConfigurationError):
    """The room key is not a valid encoded AES key."""


class StorageReadError(StorageError):
    """A backend read (record select or blob download) failed."""


class BlobNotFoundError(StorageReadError):
    """No blob exists at the requested path."""


class StorageWriteError(StorageError):
    """A backend write (record insert/update or blob upload) failed."""


class WriteConflictError(StorageWriteError):
    """A concurrent writer got there first: duplicate insert or stale precondition."""


class DecryptionError(SceneVaultError):
    """Wrong key, or corrupted ciphertext / IV."""

    def __init__(self, message: str = "Failed to decrypt payload: wrong room key or corrupt data.") -> None:
        super().__init__(message, exit_code=ExitCode.DECRYPTION_ERROR)


class FileDecodeError(SceneVaultError):
    """A stored file envelope is truncated or structurally invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=ExitCode.DECRYPTION_ERROR)
