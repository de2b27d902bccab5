"""Typed payload shapes shared with the drawing client."""

from scenevault.contracts.elements import (
    MIME_TYPE_BINARY,
    AppStateDict,
    BinaryFileData,
    BinaryFileMetadata,
    ElementDict,
    FileToSave,
)

__all__ = [
    "MIME_TYPE_BINARY",
    "AppStateDict",
    "BinaryFileData",
    "BinaryFileMetadata",
    "ElementDict",
    "FileToSave",
]
