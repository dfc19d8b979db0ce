"""
Dungeon room layout generation.

Lays out a graph of rooms in 2D with a spring/repulsion relaxation and routes
corridors between connected rooms.
"""

from .layout_engine import DungeonGenerator, DungeonGraph, LayoutParameters

__all__ = ["DungeonGenerator", "DungeonGraph", "LayoutParameters"]
