"""
Corridor routing between placed rooms.

Corridors are rasterized on an integer grid: either a straight Bresenham
line or two straight segments through one corner.  Each path cell is
widened into a square block before it is tested against the other rooms
or drawn.  Candidates that cut through a third room are retried with
different exit anchors, then different shapes.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon, box
from shapely.ops import unary_union

from .parameters import CorridorShape, LayoutParameters
from .room_model import CorridorPath, PlacementEntity

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]
Point = Tuple[float, float]

DIRECT = "direct"
HORIZONTAL_FIRST = "horizontal_first"
VERTICAL_FIRST = "vertical_first"

# Shapes tried, in order, once anchor variation is used up.
SHAPE_CYCLE = (DIRECT, HORIZONTAL_FIRST, VERTICAL_FIRST)

# Attempts below this vary the exit anchors; later ones vary the shape.
ANCHOR_ATTEMPTS = 2


# ---------------------------------------------------------------------------
# Rasterization
# ---------------------------------------------------------------------------

def bresenham_line(start: Cell, end: Cell) -> List[Cell]:
    """
    Bresenham's line algorithm.

    Args:
        start: Starting cell (x, y)
        end: Ending cell (x, y)

    Returns:
        Cells from start to end, both included
    """
    path = []
    x0, y0 = start
    x1, y1 = end

    dx = abs(x1 - x0)
    dy = abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx - dy

    while True:
        path.append((x0, y0))
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x0 += sx
        if e2 < dx:
            err += dx
            y0 += sy

    return path


def right_angle_path(start: Cell, end: Cell, horizontal_first: bool = True) -> List[Cell]:
    """Two straight segments through ``(end_x, start_y)`` or ``(start_x, end_y)``."""
    if horizontal_first:
        corner = (end[0], start[1])
    else:
        corner = (start[0], end[1])
    first = bresenham_line(start, corner)
    second = bresenham_line(corner, end)
    return first + second[1:]


def rasterize(shape: str, start: Cell, end: Cell) -> List[Cell]:
    if shape == HORIZONTAL_FIRST:
        return right_angle_path(start, end, horizontal_first=True)
    if shape == VERTICAL_FIRST:
        return right_angle_path(start, end, horizontal_first=False)
    return bresenham_line(start, end)


def expand_cells(cells: Iterable[Cell], width: int) -> List[Cell]:
    """Replace every cell by a ``width`` x ``width`` block (order kept, no repeats)."""
    low = -(width // 2)
    high = width - width // 2
    seen = set()
    out = []
    for cx, cy in cells:
        for dx in range(low, high):
            for dy in range(low, high):
                cell = (cx + dx, cy + dy)
                if cell not in seen:
                    seen.add(cell)
                    out.append(cell)
    return out


def cells_to_polygon(cells: Sequence[Cell], cell_size: float = 1.0):
    """Merge grid cells into one Shapely geometry."""
    boxes = [
        box(cx * cell_size, cy * cell_size, (cx + 1) * cell_size, (cy + 1) * cell_size)
        for cx, cy in cells
    ]
    if not boxes:
        return Polygon()
    return unary_union(boxes)


def world_to_cell(point: Point, cell_size: float = 1.0) -> Cell:
    return (math.floor(point[0] / cell_size), math.floor(point[1] / cell_size))


# ---------------------------------------------------------------------------
# Occupancy
# ---------------------------------------------------------------------------

class OccupancyGrid:
    """
    Shared cell occupancy for rooms and corridors.

    Backed by a numpy array that grows as cells outside it are written:
      * ``EMPTY``    → free cell
      * ``ROOM``     → covered by a room footprint
      * ``CORRIDOR`` → covered by a corridor
    """

    EMPTY = 0
    ROOM = 1
    CORRIDOR = 2

    def __init__(self, cell_size: float = 1.0):
        self.cell_size = cell_size
        self.origin = (0, 0)      # cell coordinates of data[0, 0]
        self.data = np.zeros((0, 0), dtype=np.int8)   # indexed [x, y]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def _ensure(self, min_cell: Cell, max_cell: Cell):
        """Grow the array so it covers the inclusive cell range."""
        if self.data.size == 0:
            self.origin = min_cell
            self.data = np.zeros((max_cell[0] - min_cell[0] + 1,
                                  max_cell[1] - min_cell[1] + 1), dtype=np.int8)
            return
        ox, oy = self.origin
        w, h = self.data.shape
        pad_left = max(0, ox - min_cell[0])
        pad_bottom = max(0, oy - min_cell[1])
        pad_right = max(0, max_cell[0] - (ox + w - 1))
        pad_top = max(0, max_cell[1] - (oy + h - 1))
        if pad_left or pad_bottom or pad_right or pad_top:
            self.data = np.pad(self.data, ((pad_left, pad_right), (pad_bottom, pad_top)))
            self.origin = (ox - pad_left, oy - pad_bottom)

    def get(self, cell: Cell) -> int:
        x = cell[0] - self.origin[0]
        y = cell[1] - self.origin[1]
        if 0 <= x < self.data.shape[0] and 0 <= y < self.data.shape[1]:
            return int(self.data[x, y])
        return self.EMPTY

    def is_empty(self, cell: Cell) -> bool:
        return self.get(cell) == self.EMPTY

    def stamp_room(self, entity: PlacementEntity) -> int:
        """Mark every cell covered by the entity's box.  Returns cell count."""
        minx, miny, maxx, maxy = entity.bounds
        cs = self.cell_size
        x0, y0 = math.floor(minx / cs), math.floor(miny / cs)
        x1, y1 = math.ceil(maxx / cs) - 1, math.ceil(maxy / cs) - 1
        if x1 < x0 or y1 < y0:
            return 0
        self._ensure((x0, y0), (x1, y1))
        ox, oy = self.origin
        self.data[x0 - ox:x1 - ox + 1, y0 - oy:y1 - oy + 1] = self.ROOM
        return (x1 - x0 + 1) * (y1 - y0 + 1)

    def draw_corridor(self, cells: Sequence[Cell]) -> int:
        """Fill empty cells with corridor.  Returns how many were filled."""
        if not cells:
            return 0
        xs = [c[0] for c in cells]
        ys = [c[1] for c in cells]
        self._ensure((min(xs), min(ys)), (max(xs), max(ys)))
        ox, oy = self.origin
        drawn = 0
        for cx, cy in cells:
            if self.data[cx - ox, cy - oy] == self.EMPTY:
                self.data[cx - ox, cy - oy] = self.CORRIDOR
                drawn += 1
        return drawn

    def count(self, value: int) -> int:
        return int(np.count_nonzero(self.data == value))

    def cells(self, value: int) -> List[Cell]:
        ox, oy = self.origin
        return [(int(x) + ox, int(y) + oy) for x, y in np.argwhere(self.data == value)]

    def to_dict(self) -> dict:
        return {
            "origin": list(self.origin),
            "cell_size": self.cell_size,
            "shape": list(self.data.shape),
            "room_cells": self.count(self.ROOM),
            "corridor_cells": self.count(self.CORRIDOR),
        }


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def anchor_candidates(entity: PlacementEntity,
                      other: PlacementEntity) -> List[Tuple[Optional[str], Point]]:
    """
    Exit anchors of *entity* ranked by distance to *other*'s center.

    Rooms without exits offer their bounding-box center only.
    """
    exits = entity.exit_points()
    if not exits:
        return [(None, entity.center)]
    ox, oy = other.center
    return sorted(exits.items(),
                  key=lambda kv: math.hypot(kv[1][0] - ox, kv[1][1] - oy))


class CorridorRouter:
    """Routes one corridor per connection into a shared OccupancyGrid."""

    def __init__(self, params: LayoutParameters,
                 rng: Optional[np.random.Generator] = None,
                 occupancy: Optional[OccupancyGrid] = None):
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng()
        self.occupancy = occupancy or OccupancyGrid(params.grid_cell_size)

    def base_shape(self, index: int) -> str:
        """Shape used while the anchors vary, from ``corridor_shape``."""
        shape = self.params.corridor_shape
        if shape is CorridorShape.MIXED:
            shape = CorridorShape.DIRECT if self.rng.random() < 0.5 else CorridorShape.ANGLED
        if shape is CorridorShape.ANGLED:
            return HORIZONTAL_FIRST if index % 2 == 0 else VERTICAL_FIRST
        return DIRECT

    def candidate_path(self, shape: str, start: Point, end: Point) -> List[Cell]:
        """Rasterize without drawing."""
        cs = self.params.grid_cell_size
        return rasterize(shape, world_to_cell(start, cs), world_to_cell(end, cs))

    def blocking_rooms(self, cells: Sequence[Cell],
                       others: Sequence[PlacementEntity]) -> List[str]:
        """IDs of rooms whose boxes the widened corridor cuts through."""
        geom = cells_to_polygon(cells, self.params.grid_cell_size)
        if geom.is_empty:
            return []
        hits = []
        for other in others:
            shared = geom.intersection(other.polygon)
            if not shared.is_empty and shared.area > 0.0:
                hits.append(other.node_id)
        return hits

    def route(self, room_a: PlacementEntity, room_b: PlacementEntity,
              index: int, others: Sequence[PlacementEntity]) -> CorridorPath:
        """
        Choose, draw and return the corridor between two rooms.

        Attempts 0 and 1 use the closest and second-closest exits with the
        base shape; later attempts keep the closest exits and cycle
        direct → horizontal-first → vertical-first.  The first candidate
        that avoids every room in *others* wins; otherwise the last one is
        drawn anyway.
        """
        anchors_a = anchor_candidates(room_a, room_b)
        anchors_b = anchor_candidates(room_b, room_a)
        base = self.base_shape(index)
        width = self.params.corridor_width
        max_attempts = self.params.max_corridor_regenerations + 1

        tried = set()
        chosen = None
        attempts = 0
        for attempt in range(max_attempts):
            attempts = attempt + 1
            if attempt < ANCHOR_ATTEMPTS:
                name_a, point_a = anchors_a[attempt % len(anchors_a)]
                name_b, point_b = anchors_b[attempt % len(anchors_b)]
                shape = base
            else:
                name_a, point_a = anchors_a[0]
                name_b, point_b = anchors_b[0]
                shape = SHAPE_CYCLE[(attempt - ANCHOR_ATTEMPTS) % len(SHAPE_CYCLE)]

            key = (shape, name_a, name_b, point_a, point_b)
            if key in tried:
                continue
            tried.add(key)

            cells = self.candidate_path(shape, point_a, point_b)
            widened = expand_cells(cells, width)
            blocked = self.blocking_rooms(widened, others)
            chosen = (shape, name_a, name_b, cells, widened, blocked)
            if not blocked:
                break
            logger.debug("Corridor %s-%s attempt %d (%s) cuts through %s",
                         room_a.node_id, room_b.node_id, attempts, shape, blocked)

        shape, name_a, name_b, cells, widened, blocked = chosen
        if blocked:
            logger.warning(
                "Corridor %s <-> %s still crosses %s after %d attempts; drawing it anyway",
                room_a.node_id, room_b.node_id, ", ".join(blocked), attempts,
            )
        self.occupancy.draw_corridor(widened)
        return CorridorPath(
            node_a=room_a.node_id,
            node_b=room_b.node_id,
            cells=cells,
            width=width,
            shape=shape,
            anchor_a=name_a,
            anchor_b=name_b,
            attempts=attempts,
            clear=not blocked,
        )

    def route_all(self, connections: Sequence[Tuple[str, str]],
                  entities: Sequence[PlacementEntity]) -> List[CorridorPath]:
        """One corridor per connection, in order.  Rooms are stamped first."""
        by_id: Dict[str, PlacementEntity] = {e.node_id: e for e in entities}
        for entity in entities:
            self.occupancy.stamp_room(entity)

        corridors = []
        for a, b in connections:
            if a not in by_id or b not in by_id:
                logger.warning("Connection references missing room: %s <-> %s", a, b)
                continue
            others = [e for e in entities if e.node_id not in (a, b)]
            corridors.append(self.route(by_id[a], by_id[b], len(corridors), others))

        logger.info("Generated %d corridors (%d clear)",
                    len(corridors), sum(1 for c in corridors if c.clear))
        return corridors
