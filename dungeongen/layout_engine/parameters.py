"""
Tunable parameters for dungeon layout generation.
"""

import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Optional

from .exceptions import DungeonConfigurationError


class CorridorShape(str, Enum):
    DIRECT = "direct"
    ANGLED = "angled"
    MIXED = "mixed"

    @classmethod
    def parse(cls, value) -> "CorridorShape":
        if isinstance(value, CorridorShape):
            return value
        key = str(value).strip().lower().replace("-", "_")
        if key in ("right_angle", "rightangle", "l_shaped"):
            key = "angled"
        try:
            return cls(key)
        except ValueError:
            raise DungeonConfigurationError(
                f"Unknown corridor shape: {value!r}. "
                f"Supported: {', '.join(s.value for s in cls)}"
            ) from None


@dataclass
class LayoutParameters:
    """Parameters consumed by relaxation, regeneration and corridor routing."""

    ideal_gap: float = 20.0
    stiffness_factor: float = 1.0
    repulsion_factor: float = 1.0
    chaos_factor: float = 0.0
    iteration_count: int = 100
    force_mode: bool = False
    max_force_mode_iterations: int = 2096
    allow_overlap: bool = False
    max_room_regenerations: int = 3
    max_corridor_regenerations: int = 3
    corridor_width: int = 2
    corridor_shape: CorridorShape = CorridorShape.DIRECT
    area_placement_factor: float = 2.0
    incremental_rate: float = 10.0
    smoothing_speed: float = 8.0
    grid_cell_size: float = 1.0
    snap_to_grid: bool = True
    default_room_size: float = 10.0
    start_room_type: str = "Start"
    seed: Optional[int] = None

    def __post_init__(self):
        self.corridor_shape = CorridorShape.parse(self.corridor_shape)

    @property
    def max_iterations(self) -> int:
        """Iteration bound of one relaxation run."""
        return self.max_force_mode_iterations if self.force_mode else self.iteration_count

    def validate(self) -> "LayoutParameters":
        """Raise DungeonConfigurationError for out-of-range values."""
        problems = []
        for name in ("iteration_count", "max_force_mode_iterations",
                     "max_room_regenerations", "max_corridor_regenerations"):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be >= 0")
        for name in ("ideal_gap", "stiffness_factor", "repulsion_factor",
                     "chaos_factor", "area_placement_factor", "smoothing_speed"):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be >= 0")
        for name in ("corridor_width", "grid_cell_size", "incremental_rate",
                     "default_room_size"):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be > 0")
        if problems:
            raise DungeonConfigurationError("Invalid parameters: " + "; ".join(problems))
        return self

    def with_overrides(self, **changes) -> "LayoutParameters":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["corridor_shape"] = self.corridor_shape.value
        return out

    @staticmethod
    def from_dict(data: Optional[dict]) -> "LayoutParameters":
        """
        Build parameters from a dict.

        Keys may be snake_case (``ideal_gap``) or camelCase (``idealGap``).
        Unknown keys are ignored.
        """
        known = {f.name for f in fields(LayoutParameters)}
        kwargs = {}
        for key, value in (data or {}).items():
            name = _snake_case(key)
            if name == "max_force_iterations":
                name = "max_force_mode_iterations"
            if name in known and value is not None:
                kwargs[name] = value
        return LayoutParameters(**kwargs)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
