"""Scene Reconciler — merge a local element set with the stored one.

Produces a single element set containing every identifier from either side
exactly once.  Per identifier the winner is chosen by
``element_precedence`` (version, then lowest versionNonce, then content
digest), so two clients reconciling the same pair of snapshots in either
order end up with the same identifier→content mapping.

The only exception is the element the local user is in the middle of
editing, resizing or drawing (read from ``app_state``): the local copy is
kept so an in-flight gesture is not yanked away.  That exception is
transient; once the gesture ends, ordinary precedence applies again.

Tombstones (``isDeleted``) are ordinary elements here and are never dropped.

Boundary rules:
  - Must NOT perform I/O or touch the version cache.
  - Must NOT prune tombstones (see ``scene_elements.get_syncable_elements``).
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from scenevault.contracts.elements import AppStateDict, ElementDict
from scenevault.services.scene_elements import element_precedence

logger = logging.getLogger(__name__)

_IN_PROGRESS_KEYS = ("editingTextElement", "resizingElement", "newElement")


def _in_progress_ids(app_state: AppStateDict | None) -> frozenset[str]:
    """Ids of elements the local user is actively manipulating."""
    if not app_state:
        return frozenset()
    ids: set[str] = set()
    for key in _IN_PROGRESS_KEYS:
        element = app_state.get(key)  # type: ignore[misc]
        if isinstance(element, dict) and isinstance(element.get("id"), str):
            ids.add(element["id"])
    return frozenset(ids)


def _z_order_key(element: ElementDict) -> tuple[bool, str, str]:
    """Order by fractional index; unindexed elements last; id breaks ties."""
    index = element.get("index")
    return (index is None, index or "", element["id"])


def order_by_fractional_index(elements: Sequence[ElementDict]) -> list[ElementDict]:
    """Return ``elements`` sorted into deterministic z-order."""
    return sorted(elements, key=_z_order_key)


def reconcile_elements(
    local_elements: Sequence[ElementDict],
    remote_elements: Sequence[ElementDict],
    app_state: AppStateDict | None = None,
) -> list[ElementDict]:
    """Merge ``local_elements`` with ``remote_elements``.

    Returns a new list; the inputs are not modified.
    """
    in_progress = _in_progress_ids(app_state)
    local_by_id: dict[str, ElementDict] = {el["id"]: el for el in local_elements}
    merged: dict[str, ElementDict] = {}
    kept_local = 0

    for remote in remote_elements:
        element_id = remote["id"]
        # Duplicates within the remote set resolve by precedence as well.
        candidate = merged.get(element_id, remote)
        if element_precedence(remote) > element_precedence(candidate):
            candidate = remote

        local = local_by_id.get(element_id)
        if local is not None and (
            element_id in in_progress
            or element_precedence(local) >= element_precedence(candidate)
        ):
            candidate = local
            kept_local += 1
        merged[element_id] = candidate

    for local in local_elements:
        if local["id"] not in merged:
            merged[local["id"]] = local

    logger.debug(
        "Reconciled %d local / %d remote element(s) into %d (%d local wins)",
        len(local_elements),
        len(remote_elements),
        len(merged),
        kept_local,
    )
    return order_by_fractional_index(list(merged.values()))
