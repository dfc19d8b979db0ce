"""
Dungeon layout generator.

Runs the full pipeline for one request:
  validate → prune → graph distances → place (relax + regenerate)
  → snap to grid → stamp rooms → route corridors → score.

``generate`` does all of it before returning.  ``start_incremental``
returns a driver that the caller ticks; corridors are routed once the
placement completes.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from ..config import DEFAULT_SEED
from .adjacency import DungeonGraph, GraphDistanceTable, compute_graph_distances
from .catalog import RoomCatalog
from .corridors import CorridorRouter, OccupancyGrid
from .exceptions import DungeonConfigurationError
from .parameters import LayoutParameters
from .placement import IncrementalPlacement, PlacementResult, find_overlaps, place_rooms
from .pruning import PruneReport, prune_graph
from .room_model import PLANE_Z, CorridorPath, PlacementEntity
from .scoring import score_layout
from .simulation import StepperStatus

logger = logging.getLogger(__name__)


@dataclass
class DungeonLayout:
    """Everything one generation request produced."""

    entities: List[PlacementEntity]
    corridors: List[CorridorPath]
    graph: DungeonGraph
    distances: GraphDistanceTable
    room_attempts: int
    overlapping_pairs: List[Tuple[str, str]]
    prune_report: PruneReport
    occupancy: OccupancyGrid
    score: Dict[str, float] = field(default_factory=dict)

    @property
    def positions(self) -> Dict[str, Tuple[float, float, float]]:
        return {e.node_id: tuple(float(v) for v in e.position) for e in self.entities}

    def entity(self, node_id: str) -> PlacementEntity:
        for e in self.entities:
            if e.node_id == node_id:
                return e
        raise KeyError(node_id)

    def to_dict(self) -> dict:
        return {
            "rooms": [e.to_dict() for e in self.entities],
            "corridors": [c.to_dict() for c in self.corridors],
            "graph": self.graph.to_dict(),
            "room_attempts": self.room_attempts,
            "overlapping_pairs": [list(p) for p in self.overlapping_pairs],
            "pruned": self.prune_report.to_dict(),
            "occupancy": self.occupancy.to_dict(),
            "score": dict(self.score),
        }


def snap_to_grid(entities: List[PlacementEntity], cell_size: float):
    """Round x and y of every entity to the nearest multiple of *cell_size*."""
    for entity in entities:
        pos = entity.position
        pos[:2] = np.round(pos[:2] / cell_size) * cell_size
        pos[2] = PLANE_Z


def check_snapped_overlaps(entities: List[PlacementEntity],
                           accepted: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """
    Overlapping pairs after snapping.  Pairs that were not already present
    in the accepted placement are logged as a warning.
    """
    overlaps = find_overlaps(entities)
    accepted = set(accepted)
    introduced = [pair for pair in overlaps if pair not in accepted]
    if introduced:
        logger.warning(
            "Grid snapping introduced %d overlapping pairs: %s",
            len(introduced), ", ".join(f"{a}/{b}" for a, b in introduced),
        )
    return overlaps


class DungeonGenerator:
    """
    Generates dungeon layouts from room graphs.

    Parameters
    ----------
    params : LayoutParameters, optional
        Algorithm settings.  Defaults are used when omitted.
    catalog : RoomCatalog, optional
        Footprint source.  Without one every room gets the default box.
    on_complete : callable, optional
        ``on_complete(layout)`` called with every finished DungeonLayout.
    """

    def __init__(self, params: Optional[LayoutParameters] = None,
                 catalog: Optional[RoomCatalog] = None,
                 on_complete: Optional[Callable[["DungeonLayout"], None]] = None):
        self.params = (params or LayoutParameters()).validate()
        self.catalog = catalog
        self.on_complete = on_complete

    # ---- public API -------------------------------------------------------

    def generate(self, graph: Union[DungeonGraph, dict]) -> DungeonLayout:
        """Generate a complete layout for *graph* (a DungeonGraph or its dict form)."""
        graph = self._validate(graph)
        rng = self._make_rng()
        logger.info("Generating layout for %r", graph)

        pruned, report, distances = self._prepare_graph(graph, rng)
        placement = place_rooms(pruned, distances, self.params, self.catalog, rng)
        return self._finish(pruned, distances, report, placement, rng)

    def start_incremental(self, graph: Union[DungeonGraph, dict]) -> "IncrementalGeneration":
        """
        Prepare a tick-driven generation.  Nothing is placed until the
        returned driver is stepped.
        """
        graph = self._validate(graph)
        rng = self._make_rng()
        logger.info("Starting incremental layout for %r", graph)

        pruned, report, distances = self._prepare_graph(graph, rng)
        return IncrementalGeneration(self, pruned, distances, report, rng)

    # ---- pipeline steps ---------------------------------------------------

    def _validate(self, graph: Union[DungeonGraph, dict]) -> DungeonGraph:
        if isinstance(graph, dict):
            graph = DungeonGraph.from_dict(graph)
        if len(graph) == 0:
            raise DungeonConfigurationError("Graph has no nodes")
        if graph.find_start(self.params.start_room_type) is None:
            raise DungeonConfigurationError(
                f"Graph has no '{self.params.start_room_type}' node"
            )
        return graph

    def _make_rng(self) -> np.random.Generator:
        seed = self.params.seed if self.params.seed is not None else DEFAULT_SEED
        return np.random.default_rng(seed)

    def _prepare_graph(self, graph: DungeonGraph, rng: np.random.Generator
                       ) -> Tuple[DungeonGraph, PruneReport, GraphDistanceTable]:
        pruned, report = prune_graph(graph, rng)
        distances = compute_graph_distances(pruned)
        return pruned, report, distances

    def _finish(self, graph: DungeonGraph, distances: GraphDistanceTable,
                report: PruneReport, placement: PlacementResult,
                rng: np.random.Generator) -> DungeonLayout:
        entities = placement.entities
        if self.params.snap_to_grid:
            snap_to_grid(entities, self.params.grid_cell_size)
        overlaps = check_snapped_overlaps(entities, placement.overlapping_pairs)

        router = CorridorRouter(self.params, rng)
        corridors = router.route_all(graph.connections, entities)

        layout = DungeonLayout(
            entities=entities,
            corridors=corridors,
            graph=graph,
            distances=distances,
            room_attempts=placement.attempts,
            overlapping_pairs=overlaps,
            prune_report=report,
            occupancy=router.occupancy,
        )
        layout.score = score_layout(entities, graph.connections, corridors,
                                    self.params.ideal_gap, overlaps)
        logger.info(
            "Layout complete: %d rooms, %d corridors, %d attempts, score %.3f",
            len(entities), len(corridors), placement.attempts, layout.score["total"],
        )
        if self.on_complete is not None:
            self.on_complete(layout)
        return layout


class IncrementalGeneration:
    """
    Tick-driven generation returned by ``DungeonGenerator.start_incremental``.

    Wraps an IncrementalPlacement; when it completes the layout is
    finished exactly like ``generate`` and stored in ``layout``.
    """

    def __init__(self, generator: DungeonGenerator, graph: DungeonGraph,
                 distances: GraphDistanceTable, report: PruneReport,
                 rng: np.random.Generator):
        self._generator = generator
        self._graph = graph
        self._distances = distances
        self._report = report
        self._rng = rng
        self.layout: Optional[DungeonLayout] = None
        self.placement = IncrementalPlacement(
            graph, distances, generator.params, generator.catalog, rng,
            on_complete=self._placement_done,
        )

    @property
    def status(self) -> StepperStatus:
        return self.placement.status

    @property
    def finished(self) -> bool:
        return self.placement.finished

    def step(self) -> StepperStatus:
        return self.placement.step()

    def advance(self, dt: float) -> StepperStatus:
        return self.placement.advance(dt)

    def cancel(self):
        self.placement.cancel()

    def observed_positions(self) -> Dict[str, Tuple[float, float, float]]:
        if self.layout is not None:
            return self.layout.positions
        return self.placement.observed_positions()

    def run(self, dt: float = 0.1, max_ticks: Optional[int] = None) -> Optional[DungeonLayout]:
        """Tick until finished (or *max_ticks*) and return the layout, if any."""
        ticks = 0
        while not self.finished and (max_ticks is None or ticks < max_ticks):
            self.advance(dt)
            ticks += 1
        return self.layout

    def _placement_done(self, result: PlacementResult):
        self.layout = self._generator._finish(
            self._graph, self._distances, self._report, result, self._rng
        )
