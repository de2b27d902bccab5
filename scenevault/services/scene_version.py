"""Content-derived scene versions.

Pure functions, no I/O.  Used to decide whether a local element set differs
from the one last known to be stored, never to order merges.

Derivation contract (deterministic, no random/clock components):

    element_digest = sha256(canonical_json(element minus local-only keys)).hexdigest()
    scene_version  = int(sha256("|".join(sorted(f"{id}:{digest}"))).digest()[:8]) >> 11

Sorting by id makes the version independent of list order; z-order is part
of the content through each element's fractional ``index`` key.  The result
is truncated to 53 bits so it survives a round trip through JSON numbers in
browser clients.
"""
from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

from scenevault.contracts.elements import ElementDict

# Keys that change without the element's persisted content changing.
LOCAL_ONLY_KEYS: frozenset[str] = frozenset({"updated"})

_VERSION_BITS = 53


def canonical_element(element: Mapping[str, Any]) -> str:
    """Return the canonical JSON text hashed for ``element``."""
    persisted = {k: v for k, v in element.items() if k not in LOCAL_ONLY_KEYS}
    return json.dumps(persisted, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_element(element: Mapping[str, Any]) -> str:
    """Return the sha256 hex digest of an element's persisted content."""
    return hashlib.sha256(canonical_element(element).encode("utf-8")).hexdigest()


def get_scene_version(elements: Iterable[ElementDict]) -> int:
    """Return the scene version for an element set.

    Two sets with the same elements (same ids, content and deleted flags)
    always produce the same version regardless of list order.
    """
    parts = sorted(f"{el['id']}:{hash_element(el)}" for el in elements)
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") >> (64 - _VERSION_BITS)
