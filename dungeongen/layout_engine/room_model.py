"""
Room model for dungeon layouts.

Nodes describe rooms at the graph level; footprints describe their physical
extent as an axis-aligned Shapely box.  A PlacementEntity binds the two to a
mutable world position for the duration of one layout attempt.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from shapely.geometry import Polygon, box

# Third coordinate of every world position.  The layout is planar.
PLANE_Z = 0.0


@dataclass
class RoomNode:
    """A single room in the dungeon graph (no geometry)."""

    node_id: str
    room_type: str
    size: Optional[str] = None
    spawn_chance: float = 100.0

    def __post_init__(self):
        self.spawn_chance = max(0.0, min(100.0, float(self.spawn_chance)))

    @property
    def always_spawns(self) -> bool:
        return self.spawn_chance >= 100.0

    def to_dict(self) -> dict:
        """Serialize node to a dictionary."""
        return {
            "id": self.node_id,
            "room_type": self.room_type,
            "size": self.size,
            "spawn_chance": round(self.spawn_chance, 2),
        }

    @staticmethod
    def from_dict(data: dict) -> "RoomNode":
        """
        Build a node from a dict with keys ``id``, ``room_type`` (or ``type``),
        ``size`` and ``spawn_chance`` (or ``spawnProbability``).
        """
        spawn = data.get("spawn_chance", data.get("spawnProbability", 100.0))
        return RoomNode(
            node_id=str(data["id"]),
            room_type=str(data.get("room_type", data.get("type", "Basic"))),
            size=data.get("size"),
            spawn_chance=100.0 if spawn is None else spawn,
        )


@dataclass
class RoomFootprint:
    """
    Resolved room geometry in local coordinates.

    ``center`` is the center of the bounding box and ``exits`` maps exit
    names to local anchor points, both in the same local frame.  When the
    room is placed, the box center is moved to the entity position.
    """

    width: float
    height: float
    center: Tuple[float, float] = (0.0, 0.0)
    exits: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    name: str = ""

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def radius(self) -> float:
        """Circle approximation used by the relaxation springs."""
        return max(self.width, self.height) / 2.0

    def exit_offsets(self) -> Dict[str, Tuple[float, float]]:
        """Exit anchors relative to the box center."""
        cx, cy = self.center
        return {
            name: (x - cx, y - cy) for name, (x, y) in self.exits.items()
        }

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "center": list(self.center),
            "exits": {k: list(v) for k, v in self.exits.items()},
        }

    @staticmethod
    def from_rect(width: float, height: float, name: str = "",
                  exits: Optional[Dict[str, Tuple[float, float]]] = None
                  ) -> "RoomFootprint":
        """
        Create a footprint for a ``width`` x ``height`` room whose local
        origin is its bottom-left corner.

        Exit points are given in the same corner-origin frame.
        """
        return RoomFootprint(
            width=float(width),
            height=float(height),
            center=(width / 2.0, height / 2.0),
            exits=dict(exits or {}),
            name=name,
        )


@dataclass
class PlacementEntity:
    """A node bound to a footprint and a world position."""

    node: RoomNode
    footprint: RoomFootprint
    position: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, PLANE_Z])
    )

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float).reshape(3)
        self.position[2] = PLANE_Z

    @property
    def node_id(self) -> str:
        return self.node.node_id

    @property
    def radius(self) -> float:
        return self.footprint.radius

    @property
    def center(self) -> Tuple[float, float]:
        return float(self.position[0]), float(self.position[1])

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """World bounding box (minx, miny, maxx, maxy)."""
        x, y = self.center
        hw = self.footprint.width / 2.0
        hh = self.footprint.height / 2.0
        return (x - hw, y - hh, x + hw, y + hh)

    @property
    def polygon(self) -> Polygon:
        """World bounding box as a Shapely polygon."""
        return box(*self.bounds)

    def exit_points(self) -> Dict[str, Tuple[float, float]]:
        """Exit anchors in world coordinates."""
        x, y = self.center
        return {
            name: (x + dx, y + dy)
            for name, (dx, dy) in self.footprint.exit_offsets().items()
        }

    def to_dict(self) -> dict:
        minx, miny, maxx, maxy = self.bounds
        return {
            "id": self.node_id,
            "room_type": self.node.room_type,
            "size": self.node.size,
            "footprint": self.footprint.name,
            "position": [round(float(v), 4) for v in self.position],
            "bounds": [round(v, 4) for v in (minx, miny, maxx, maxy)],
        }

    def __repr__(self) -> str:
        x, y = self.center
        return (
            f"PlacementEntity(id='{self.node_id}', type='{self.node.room_type}', "
            f"pos=({x:.2f}, {y:.2f}), size={self.footprint.width:g}x{self.footprint.height:g})"
        )


@dataclass
class CorridorPath:
    """A rasterized corridor between two placed rooms."""

    node_a: str
    node_b: str
    cells: List[Tuple[int, int]]
    width: int
    shape: str = "direct"
    anchor_a: Optional[str] = None
    anchor_b: Optional[str] = None
    attempts: int = 1
    clear: bool = True

    @property
    def length(self) -> int:
        return len(self.cells)

    def to_dict(self) -> dict:
        return {
            "from": self.node_a,
            "to": self.node_b,
            "cells": [list(c) for c in self.cells],
            "width": self.width,
            "shape": self.shape,
            "anchors": [self.anchor_a, self.anchor_b],
            "attempts": self.attempts,
            "clear": self.clear,
        }
