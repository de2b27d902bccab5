"""Typed shapes for the JSON payloads exchanged with the drawing client.

Elements are owned by the client application; the core reads a handful of
keys and carries everything else through untouched.  Keys keep the client's
camelCase spelling because these dicts are serialised verbatim into the
encrypted scene payload.
"""
from __future__ import annotations

from typing import Optional

from typing_extensions import TypedDict

MIME_TYPE_BINARY = "application/octet-stream"


class ElementDict(TypedDict, total=False):
    """A single drawable element as produced by the client.

    ``version`` is bumped on every local edit and ``versionNonce`` is
    re-randomised with it; together they decide conflicts during
    reconciliation.  ``index`` is the fractional z-order key.
    """

    id: str
    type: str
    version: int
    versionNonce: int
    isDeleted: bool
    updated: int
    index: Optional[str]
    x: float
    y: float
    width: float
    height: float
    points: list[list[float]]
    text: str
    fileId: Optional[str]


class AppStateDict(TypedDict, total=False):
    """Subset of the client's app state consulted by reconciliation."""

    editingTextElement: Optional[ElementDict]
    resizingElement: Optional[ElementDict]
    newElement: Optional[ElementDict]


class BinaryFileMetadata(TypedDict, total=False):
    """Metadata stored alongside an encoded file blob."""

    id: str
    mimeType: str
    created: int
    lastRetrieved: int


class BinaryFileData(TypedDict):
    """A file attachment decoded for the client."""

    id: str
    mimeType: str
    dataURL: str
    created: int
    lastRetrieved: int


class FileToSave(TypedDict):
    """An already-encoded file blob queued for upload."""

    id: str
    buffer: bytes
