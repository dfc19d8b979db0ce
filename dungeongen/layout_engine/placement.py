"""
Overlap-driven regeneration loop.

Each attempt resolves footprints, scatters the rooms uniformly inside a
disc sized from their total area, relaxes, and checks every pair of
bounding boxes.  Overlapping attempts are thrown away and re-rolled until
the regeneration budget runs out; the last attempt is then accepted with a
warning.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .adjacency import DungeonGraph, GraphDistanceTable
from .catalog import RoomCatalog, SpawnTracker, resolve_footprint
from .parameters import LayoutParameters
from .room_model import PLANE_Z, PlacementEntity, RoomFootprint
from .simulation import (
    IncrementalSimulation,
    RelaxationProblem,
    SimulationState,
    StepperStatus,
    build_problem,
    positions_to_dict,
    relax,
)

logger = logging.getLogger(__name__)


@dataclass
class PlacementResult:
    """Accepted room placement."""

    entities: List[PlacementEntity]
    attempts: int
    overlapping_pairs: List[Tuple[str, str]] = field(default_factory=list)
    iterations: int = 0
    converged: bool = False

    @property
    def positions(self) -> Dict[str, Tuple[float, float, float]]:
        return {e.node_id: tuple(float(v) for v in e.position) for e in self.entities}

    @property
    def has_overlap(self) -> bool:
        return bool(self.overlapping_pairs)


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def placement_radius(footprints: List[RoomFootprint], area_factor: float) -> float:
    """Radius of the initial scatter disc: ``sqrt(total_area * factor) / 2``."""
    total_area = sum(fp.area for fp in footprints)
    return math.sqrt(total_area * area_factor) / 2.0


def scatter_positions(count: int, radius: float,
                      rng: np.random.Generator) -> np.ndarray:
    """Random positions inside a disc (random angle, random distance)."""
    positions = np.zeros((count, 3))
    for i in range(count):
        angle = rng.uniform(0.0, 2.0 * math.pi)
        distance = rng.uniform(0.0, radius) if radius > 0 else 0.0
        positions[i] = (math.cos(angle) * distance, math.sin(angle) * distance, PLANE_Z)
    return positions


def boxes_overlap(a: PlacementEntity, b: PlacementEntity) -> bool:
    """True if the two bounding boxes share interior area."""
    shared = a.polygon.intersection(b.polygon)
    return not shared.is_empty and shared.area > 0.0


def find_overlaps(entities: List[PlacementEntity]) -> List[Tuple[str, str]]:
    """Every unordered pair of entities whose boxes overlap."""
    pairs = []
    for i in range(len(entities)):
        for j in range(i + 1, len(entities)):
            if boxes_overlap(entities[i], entities[j]):
                pairs.append((entities[i].node_id, entities[j].node_id))
    return pairs


# ---------------------------------------------------------------------------
# One attempt
# ---------------------------------------------------------------------------

@dataclass
class PlacementAttempt:
    """Fresh entities and initial positions for one attempt."""

    entities: List[PlacementEntity]
    problem: RelaxationProblem
    initial: np.ndarray
    tracker: SpawnTracker


def prepare_attempt(graph: DungeonGraph, distances: GraphDistanceTable,
                    params: LayoutParameters, catalog: Optional[RoomCatalog],
                    rng: np.random.Generator) -> PlacementAttempt:
    """Resolve footprints and scatter initial positions for a new attempt."""
    tracker = SpawnTracker()
    entities = [
        PlacementEntity(node, resolve_footprint(node, catalog, tracker, rng,
                                                params.default_room_size))
        for node in graph.nodes
    ]
    # A lone room stays at the origin.
    radius = 0.0
    if len(entities) > 1:
        radius = placement_radius([e.footprint for e in entities],
                                  params.area_placement_factor)
    initial = scatter_positions(len(entities), radius, rng)
    for entity, pos in zip(entities, initial):
        entity.position = pos.copy()

    problem = build_problem(
        [e.node_id for e in entities],
        {e.node_id: e.radius for e in entities},
        graph.connections,
        distances,
        params.ideal_gap,
    )
    return PlacementAttempt(entities, problem, initial, tracker)


def _apply_positions(entities: List[PlacementEntity], positions: np.ndarray):
    for entity, pos in zip(entities, positions):
        entity.position = pos.copy()


def _report_outcome(attempts: int, overlaps: List[Tuple[str, str]],
                    params: LayoutParameters):
    if overlaps and not params.allow_overlap:
        logger.warning(
            "Maximum regenerations (%d) reached with room overlap still present "
            "(%d overlapping pairs). Proceeding with current layout.",
            params.max_room_regenerations, len(overlaps),
        )
    elif attempts > 1:
        logger.info("Generated layout without overlap after %d regenerations",
                    attempts - 1)


# ---------------------------------------------------------------------------
# Batch driver
# ---------------------------------------------------------------------------

def place_rooms(graph: DungeonGraph, distances: GraphDistanceTable,
                params: LayoutParameters,
                catalog: Optional[RoomCatalog] = None,
                rng: Optional[np.random.Generator] = None) -> PlacementResult:
    """
    Lay out every room of *graph*, retrying on overlap.

    Runs at most ``max_room_regenerations + 1`` attempts.  With
    ``allow_overlap`` the first attempt is always accepted.

    Parameters
    ----------
    graph : DungeonGraph
        Pruned graph.
    distances : GraphDistanceTable
        Hop counts of *graph*.
    params : LayoutParameters
        Relaxation and regeneration settings.
    catalog : RoomCatalog, optional
        Footprint source.  Rooms it cannot resolve get the default box.
    rng : numpy.random.Generator, optional
        Random source for footprints, scatter and chaos.

    Returns
    -------
    PlacementResult
    """
    rng = rng if rng is not None else np.random.default_rng()
    max_attempts = 1 if params.allow_overlap else params.max_room_regenerations + 1

    attempt = None
    overlaps: List[Tuple[str, str]] = []
    state = SimulationState.zeros(0)
    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        attempt = prepare_attempt(graph, distances, params, catalog, rng)
        final, state = relax(attempt.initial, attempt.problem, params, rng)
        _apply_positions(attempt.entities, final)

        overlaps = find_overlaps(attempt.entities)
        if not overlaps:
            break
        if params.allow_overlap:
            logger.info("Accepting layout with %d overlapping pairs (overlap allowed)",
                        len(overlaps))
            break
        if attempts < max_attempts:
            logger.debug("Attempt %d/%d overlaps (%d pairs); regenerating",
                         attempts, max_attempts, len(overlaps))

    _report_outcome(attempts, overlaps, params)
    return PlacementResult(
        entities=attempt.entities,
        attempts=attempts,
        overlapping_pairs=overlaps,
        iterations=state.iteration,
        converged=state.converged,
    )


# ---------------------------------------------------------------------------
# Tick-driven driver
# ---------------------------------------------------------------------------

class IncrementalPlacement:
    """
    The regeneration loop advanced one iteration at a time.

    When a relaxation run finishes its layout is checked for overlap; if
    attempts remain the rooms are re-rolled and a new run begins, otherwise
    the placement completes and ``on_complete(result)`` is called once.
    """

    def __init__(self, graph: DungeonGraph, distances: GraphDistanceTable,
                 params: LayoutParameters,
                 catalog: Optional[RoomCatalog] = None,
                 rng: Optional[np.random.Generator] = None,
                 on_complete: Optional[Callable[[PlacementResult], None]] = None):
        self.graph = graph
        self.distances = distances
        self.params = params
        self.catalog = catalog
        self.rng = rng if rng is not None else np.random.default_rng()
        self.on_complete = on_complete
        self.max_attempts = 1 if params.allow_overlap else params.max_room_regenerations + 1

        self.status = StepperStatus.IDLE
        self.attempts = 0
        self.result: Optional[PlacementResult] = None
        self._attempt: Optional[PlacementAttempt] = None
        self._simulation: Optional[IncrementalSimulation] = None

    @property
    def simulation(self) -> Optional[IncrementalSimulation]:
        return self._simulation

    @property
    def finished(self) -> bool:
        return self.status in (StepperStatus.CONVERGED, StepperStatus.CANCELLED)

    def start(self) -> StepperStatus:
        if self.status is StepperStatus.IDLE:
            self.status = StepperStatus.RUNNING
            self._begin_attempt()
            self._after_tick()
        return self.status

    def step(self) -> StepperStatus:
        """Run one relaxation iteration of the current attempt."""
        if self.status is StepperStatus.IDLE:
            self.start()
        if self.status is not StepperStatus.RUNNING:
            return self.status
        self._simulation.step()
        self._after_tick()
        return self.status

    def advance(self, dt: float) -> StepperStatus:
        """Advance by *dt* seconds at ``incremental_rate`` iterations/second."""
        if self.status is StepperStatus.IDLE:
            self.start()
        if self.status is not StepperStatus.RUNNING:
            return self.status
        self._simulation.advance(dt)
        self._after_tick()
        return self.status

    def cancel(self):
        """Abandon the in-progress attempt.  Nothing is committed."""
        if self._simulation is not None:
            self._simulation.cancel()
        self._simulation = None
        self._attempt = None
        self.status = StepperStatus.CANCELLED

    def observed_positions(self) -> Dict[str, Tuple[float, float, float]]:
        """Smoothed positions for display."""
        if self._simulation is None:
            return self.result.positions if self.result else {}
        return positions_to_dict(self._attempt.problem.node_ids,
                                 self._simulation.observed)

    def _begin_attempt(self):
        self.attempts += 1
        self._attempt = prepare_attempt(self.graph, self.distances, self.params,
                                        self.catalog, self.rng)
        self._simulation = IncrementalSimulation(
            self._attempt.initial, self._attempt.problem, self.params, self.rng
        )
        self._simulation.start()
        logger.debug("Incremental attempt %d/%d started", self.attempts, self.max_attempts)

    def _after_tick(self):
        # Attempts that finish on their first tick restart here in a loop.
        while self._simulation.status is StepperStatus.CONVERGED:
            entities = self._attempt.entities
            _apply_positions(entities, self._simulation.target)
            overlaps = find_overlaps(entities)
            if overlaps and not self.params.allow_overlap and self.attempts < self.max_attempts:
                logger.debug("Attempt %d overlaps (%d pairs); restarting",
                             self.attempts, len(overlaps))
                self._begin_attempt()
                continue

            _report_outcome(self.attempts, overlaps, self.params)
            state = self._simulation.state
            self.result = PlacementResult(
                entities=entities,
                attempts=self.attempts,
                overlapping_pairs=overlaps,
                iterations=state.iteration,
                converged=state.converged,
            )
            self.status = StepperStatus.CONVERGED
            if self.on_complete is not None:
                self.on_complete(self.result)
            return
