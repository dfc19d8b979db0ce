"""
Spawn pruning pass.

Rooms with a spawn chance below 100% and at most two connections roll
once per generation request.  A room that fails its roll is removed; if it
was a pass-through room (exactly two neighbours) its neighbours are joined
directly so the graph keeps its shape.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from .adjacency import DungeonGraph
from .room_model import RoomNode

logger = logging.getLogger(__name__)

# Rooms with more connections than this always spawn.
MAX_PRUNABLE_DEGREE = 2


@dataclass
class PruneReport:
    """What the pruning pass changed."""

    removed: List[str] = field(default_factory=list)
    bypasses: List[Tuple[str, str]] = field(default_factory=list)
    protected: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "removed": list(self.removed),
            "bypasses": [list(p) for p in self.bypasses],
            "protected": list(self.protected),
        }


def prune_graph(
    graph: DungeonGraph,
    rng: Optional[np.random.Generator] = None,
    roll: Optional[Callable[[RoomNode], float]] = None,
) -> Tuple[DungeonGraph, PruneReport]:
    """
    Apply spawn chances to a copy of *graph*.

    Parameters
    ----------
    graph : DungeonGraph
        Input graph.  It is not modified.
    rng : numpy.random.Generator, optional
        Source of the uniform [0, 100) rolls.
    roll : callable, optional
        ``roll(node) -> float`` overriding the random draw.

    Returns
    -------
    (pruned_graph, report)
    """
    if roll is None:
        rng = rng if rng is not None else np.random.default_rng()
        roll = lambda _node: float(rng.uniform(0.0, 100.0))  # noqa: E731

    pruned = graph.copy()
    report = PruneReport()

    for node in graph.nodes:
        if node.always_spawns:
            continue

        neighbours = pruned.neighbours(node.node_id)
        if len(neighbours) > MAX_PRUNABLE_DEGREE:
            logger.info(
                "Node %s (%s) has %d connections; spawn chance %.1f%% ignored",
                node.node_id, node.room_type, len(neighbours), node.spawn_chance,
            )
            report.protected.append(node.node_id)
            continue

        value = roll(node)
        if value < node.spawn_chance:
            logger.debug("Node %s spawned (%.1f < %.1f)",
                         node.node_id, value, node.spawn_chance)
            continue

        logger.info(
            "Node %s (%s) failed spawn chance (%.1f%% >= %.1f%%)",
            node.node_id, node.room_type, value, node.spawn_chance,
        )
        pruned.remove_node(node.node_id)
        report.removed.append(node.node_id)

        if len(neighbours) == 2:
            a, b = neighbours
            if a != b and not pruned.has_connection(a, b):
                pruned.connect(a, b)
                report.bypasses.append((a, b))
                logger.info("Connecting neighbours: %s <-> %s", a, b)

    if report.removed:
        logger.info("Removed %d nodes due to spawn chance", len(report.removed))
    return pruned, report
