"""Element hygiene: restoring decrypted payloads and selecting syncable elements.

Restoring normalises whatever came out of a decrypted payload into
well-formed ``ElementDict`` values; it never mutates its input.  Pruning
(dropping old tombstones and invisible elements) lives here as explicit
operations so that reconciliation always sees the full tombstone set.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

from scenevault.config import DELETED_ELEMENT_TIMEOUT_MS
from scenevault.contracts.elements import ElementDict
from scenevault.services.scene_version import hash_element

logger = logging.getLogger(__name__)

_LINEAR_TYPES = frozenset({"line", "arrow", "freedraw"})

_ELEMENT_DEFAULTS: dict[str, Any] = {
    "version": 1,
    "versionNonce": 0,
    "isDeleted": False,
    "index": None,
}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def element_precedence(element: ElementDict) -> tuple[int, int, int, str]:
    """Sort key deciding which of two copies of the same element wins.

    Higher ``version`` wins; on a tie the lower ``versionNonce`` wins, then
    the later ``updated`` stamp, then the greater content digest.  Every
    client therefore picks the same copy without looking at arrival order.
    """
    return (
        int(element.get("version", 1)),
        -int(element.get("versionNonce", 0)),
        int(element.get("updated", 0)),
        hash_element(element),
    )


def is_invisibly_small(element: ElementDict) -> bool:
    """True for elements that would render as nothing."""
    el_type = element.get("type")
    if el_type in _LINEAR_TYPES:
        return len(element.get("points") or []) < 2
    if el_type == "text":
        return not element.get("text")
    return not element.get("width") and not element.get("height")


def restore_elements(
    elements: Iterable[Any] | None,
    *,
    delete_invisible: bool = False,
) -> list[ElementDict]:
    """Normalise a decoded element list.

    Drops entries that are not objects or lack a string ``id``, fills the
    defaults the core relies on and collapses duplicated ids to their
    highest-precedence copy (first position kept).  A missing ``updated`` is
    stamped with the current time, so a fresh deletion is never mistaken for
    an expired one.  With ``delete_invisible`` deleted and invisibly small
    elements are dropped, which is only appropriate for hydrating a scene
    for display.
    """
    restored: dict[str, ElementDict] = {}
    skipped = 0
    stamp = now_ms()
    for raw in elements or []:
        if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
            skipped += 1
            continue
        element: ElementDict = {**_ELEMENT_DEFAULTS, "updated": stamp, **raw}  # type: ignore[typeddict-item]
        existing = restored.get(element["id"])
        if existing is None or element_precedence(element) > element_precedence(existing):
            restored[element["id"]] = element

    if skipped:
        logger.warning(f"⚠️ Skipped {skipped} malformed element(s) while restoring scene")

    result = list(restored.values())
    if delete_invisible:
        result = [el for el in result if not el["isDeleted"] and not is_invisibly_small(el)]
    return result


def is_syncable_element(
    element: ElementDict,
    *,
    now: int,
    deleted_timeout_ms: int = DELETED_ELEMENT_TIMEOUT_MS,
) -> bool:
    """True when ``element`` should be persisted.

    Tombstones are kept until they are older than ``deleted_timeout_ms`` so
    peers that have not yet seen the deletion cannot resurrect the element.
    """
    if element.get("isDeleted"):
        updated = element.get("updated")
        return updated is None or int(updated) > now - deleted_timeout_ms
    return not is_invisibly_small(element)


def get_syncable_elements(
    elements: Iterable[ElementDict],
    *,
    now: int | None = None,
    deleted_timeout_ms: int = DELETED_ELEMENT_TIMEOUT_MS,
) -> list[ElementDict]:
    """Return the subset of ``elements`` that should be persisted."""
    current = now_ms() if now is None else now
    return [
        el
        for el in elements
        if is_syncable_element(el, now=current, deleted_timeout_ms=deleted_timeout_ms)
    ]
