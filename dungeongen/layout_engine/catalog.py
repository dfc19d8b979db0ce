"""
Room footprint catalog.

Maps ``(room_type, size)`` to one or more footprint variants.  Variant
choice avoids repeats within one layout attempt through a SpawnTracker
that the caller owns and recreates per attempt.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np

from .room_model import RoomFootprint, RoomNode

logger = logging.getLogger(__name__)

CatalogKey = Tuple[str, Optional[str]]


def default_footprint(size: float = 10.0) -> RoomFootprint:
    """Square footprint used when the catalog has no entry for a room type."""
    return RoomFootprint(width=size, height=size, name="default")


class SpawnTracker:
    """Which footprint variants one layout attempt has already used."""

    def __init__(self):
        self._used: Dict[CatalogKey, Set[int]] = {}

    def available(self, key: CatalogKey, count: int) -> List[int]:
        """
        Indices of unused variants for *key*.  Once every variant has been
        used the key is reset so repeats are allowed.
        """
        used = self._used.setdefault(key, set())
        free = [i for i in range(count) if i not in used]
        if not free:
            used.clear()
            free = list(range(count))
        return free

    def mark(self, key: CatalogKey, index: int):
        self._used.setdefault(key, set()).add(index)

    def used(self, key: CatalogKey) -> Set[int]:
        return set(self._used.get(key, set()))


class RoomCatalog(ABC):
    """Interface: resolve a node to a footprint, or None if unknown."""

    @abstractmethod
    def resolve(self, node: RoomNode, tracker: SpawnTracker,
                rng: np.random.Generator) -> Optional[RoomFootprint]:
        """Footprint for *node*, or None if the catalog has no entry."""


class InMemoryRoomCatalog(RoomCatalog):
    """
    Lookup-table catalog.

    Keys are matched case-insensitively.  A ``(type, size)`` lookup falls
    back to ``(type, None)`` when no size-specific entry exists.
    """

    def __init__(self, entries: Optional[Dict[CatalogKey, Iterable[RoomFootprint]]] = None):
        self._entries: Dict[CatalogKey, List[RoomFootprint]] = {}
        for (room_type, size), footprints in (entries or {}).items():
            for fp in footprints:
                self.add(room_type, fp, size)

    @staticmethod
    def _key(room_type: str, size: Optional[str]) -> CatalogKey:
        return (room_type.lower(), size.lower() if size else None)

    def add(self, room_type: str, footprint: RoomFootprint,
            size: Optional[str] = None):
        self._entries.setdefault(self._key(room_type, size), []).append(footprint)

    def variants(self, room_type: str, size: Optional[str] = None) -> List[RoomFootprint]:
        key = self._key(room_type, size)
        if key not in self._entries and size is not None:
            key = self._key(room_type, None)
        return list(self._entries.get(key, []))

    def resolve(self, node, tracker, rng):
        key = self._key(node.room_type, node.size)
        if key not in self._entries and node.size is not None:
            key = self._key(node.room_type, None)
        options = self._entries.get(key)
        if not options:
            return None

        free = tracker.available(key, len(options))
        index = free[int(rng.integers(len(free)))]
        tracker.mark(key, index)
        return options[index]

    def __len__(self) -> int:
        return sum(len(v) for v in self._entries.values())

    @staticmethod
    def from_dict(data: dict) -> "InMemoryRoomCatalog":
        """
        Build a catalog from ``{"Basic/Small": [{"width": .., "height": ..,
        "exits": {"north": [x, y]}}], "Start": [...]}``.

        Exit points use a bottom-left corner origin.
        """
        catalog = InMemoryRoomCatalog()
        for raw_key, items in data.items():
            room_type, _, size = raw_key.partition("/")
            for i, item in enumerate(items):
                exits = {k: tuple(v) for k, v in item.get("exits", {}).items()}
                fp = RoomFootprint.from_rect(
                    item["width"], item["height"],
                    name=item.get("name", f"{raw_key}#{i}"),
                    exits=exits,
                )
                catalog.add(room_type, fp, size or None)
        return catalog


def resolve_footprint(node: RoomNode, catalog: Optional[RoomCatalog],
                      tracker: SpawnTracker, rng: np.random.Generator,
                      fallback_size: float = 10.0) -> RoomFootprint:
    """Resolve *node* through *catalog*, falling back to the default box."""
    footprint = catalog.resolve(node, tracker, rng) if catalog is not None else None
    if footprint is None or footprint.width <= 0 or footprint.height <= 0:
        logger.warning(
            "No footprint for room type '%s'%s; using default %gx%g box",
            node.room_type,
            f" (size {node.size})" if node.size else "",
            fallback_size, fallback_size,
        )
        return default_footprint(fallback_size)
    return footprint
