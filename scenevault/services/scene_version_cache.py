"""Version Cache — last scene version known to be durably stored, per connection.

Purely an optimisation: a miss only costs a redundant save round trip, never
incorrect data.  Entries are keyed by the collaboration connection id and
must be removed with ``forget`` when that connection is torn down.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from scenevault.contracts.elements import ElementDict
from scenevault.services.scene_version import get_scene_version

logger = logging.getLogger(__name__)


class SceneVersionCache:
    """Mapping of ``connection_id -> scene_version``."""

    def __init__(self) -> None:
        self._versions: dict[str, int] = {}

    def get(self, connection_id: str) -> int | None:
        return self._versions.get(connection_id)

    def set(self, connection_id: str, elements: Iterable[ElementDict]) -> int:
        """Record ``elements`` as the stored state for this connection."""
        version = get_scene_version(elements)
        self._versions[connection_id] = version
        return version

    def forget(self, connection_id: str) -> None:
        """Drop the entry for a closed connection (no-op when absent)."""
        if self._versions.pop(connection_id, None) is not None:
            logger.debug("Forgot cached scene version for connection %s", connection_id)

    def is_saved(self, connection_id: str | None, elements: Iterable[ElementDict]) -> bool:
        """True when ``elements`` match the last stored version.

        Without a connection there is nothing to compare against, so the
        scene counts as saved; otherwise shutdown flows would block on a
        save that cannot happen.
        """
        if connection_id is None:
            return True
        return self._versions.get(connection_id) == get_scene_version(elements)

    def __len__(self) -> int:
        return len(self._versions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._versions
