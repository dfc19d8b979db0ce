"""
Layout Engine for dungeon generation.

Places a graph of rooms with a spring/repulsion relaxation, re-rolls
overlapping layouts, and routes grid corridors between connected rooms.
Room boxes use Shapely; graph distances use NetworkX.
"""

from .adjacency import DungeonGraph, compute_graph_distances
from .catalog import InMemoryRoomCatalog, RoomCatalog
from .exceptions import DungeonConfigurationError, DungeonGenerationError
from .generator import DungeonGenerator, DungeonLayout, IncrementalGeneration
from .parameters import CorridorShape, LayoutParameters
from .room_model import RoomFootprint, RoomNode

__all__ = [
    "CorridorShape",
    "DungeonConfigurationError",
    "DungeonGenerationError",
    "DungeonGenerator",
    "DungeonGraph",
    "DungeonLayout",
    "IncrementalGeneration",
    "InMemoryRoomCatalog",
    "LayoutParameters",
    "RoomCatalog",
    "RoomFootprint",
    "RoomNode",
    "compute_graph_distances",
]
