"""
Spring/repulsion relaxation of room positions.

Every connection is a spring whose rest length is the edge-to-edge gap
``radius_a + radius_b + ideal_gap``.  Every pair of rooms repels with a
strength proportional to their graph distance, so rooms that are far apart
in the graph end up far apart on the map.

Positions are ``(N, 3)`` float arrays whose third column is locked to
PLANE_Z.  The batch driver (``relax``) and the tick-based driver
(``IncrementalSimulation``) share ``relax_step`` and produce identical
physics for the same inputs and random generator.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .adjacency import UNREACHABLE_DISTANCE, GraphDistanceTable
from .parameters import LayoutParameters
from .room_model import PLANE_Z

logger = logging.getLogger(__name__)

SPRING_STIFFNESS = 0.01       # scaled by stiffness_factor
REPULSION_STRENGTH = 50.0     # scaled by repulsion_factor
DAMPING = 0.9
ENERGY_THRESHOLD = 0.01       # force mode stops below this kinetic energy
MIN_SEPARATION = 0.01         # pairs closer than this exert no force
MAX_REPULSION_WEIGHT = 10     # weight for pairs with no path between them
CHAOS_SCALE = 5.0
LOG_INTERVAL = 20


# ---------------------------------------------------------------------------
# Static inputs
# ---------------------------------------------------------------------------

@dataclass
class RelaxationProblem:
    """Everything about one relaxation run that does not change per iteration."""

    node_ids: List[str]
    radii: np.ndarray           # (N,)
    springs: np.ndarray         # (E, 2) index pairs
    rest_lengths: np.ndarray    # (E,)
    weights: np.ndarray         # (N, N) repulsion weights

    @property
    def size(self) -> int:
        return len(self.node_ids)


def build_problem(
    node_ids: Sequence[str],
    radii: Dict[str, float],
    connections: Sequence[Tuple[str, str]],
    distances: GraphDistanceTable,
    ideal_gap: float,
) -> RelaxationProblem:
    """
    Assemble a RelaxationProblem.

    Parameters
    ----------
    node_ids : sequence of str
        Entity order used by the position arrays.
    radii : dict
        ``max(width, height) / 2`` per node.
    connections : sequence of (str, str)
        Spring endpoints.  Connections to unknown nodes are ignored.
    distances : GraphDistanceTable
        Hop counts of the pruned graph.
    ideal_gap : float
        Desired edge-to-edge gap between connected rooms.
    """
    node_ids = list(node_ids)
    index = {n: i for i, n in enumerate(node_ids)}
    radius = np.array([radii[n] for n in node_ids], dtype=float)

    pairs = [(index[a], index[b]) for a, b in connections
             if a in index and b in index]
    springs = np.array(pairs, dtype=int).reshape(-1, 2)
    rest = radius[springs[:, 0]] + radius[springs[:, 1]] + ideal_gap

    hops = distances.submatrix(node_ids).astype(float) if node_ids else np.zeros((0, 0))
    weights = np.where(hops >= UNREACHABLE_DISTANCE, MAX_REPULSION_WEIGHT, hops)

    return RelaxationProblem(node_ids, radius, springs, rest, weights)


# ---------------------------------------------------------------------------
# Per-run mutable state
# ---------------------------------------------------------------------------

@dataclass
class SimulationState:
    """Velocities and forces of one relaxation run."""

    velocities: np.ndarray
    forces: np.ndarray
    iteration: int = 0
    energy: float = math.inf
    converged: bool = False

    @staticmethod
    def zeros(n: int) -> "SimulationState":
        return SimulationState(np.zeros((n, 3)), np.zeros((n, 3)))


# ---------------------------------------------------------------------------
# Physics
# ---------------------------------------------------------------------------

def compute_forces(positions: np.ndarray, problem: RelaxationProblem,
                   params: LayoutParameters) -> np.ndarray:
    """Spring plus repulsion force on every entity."""
    n = problem.size
    forces = np.zeros((n, 3))
    if n < 2:
        return forces

    # Springs: pull/push each endpoint toward the pair's rest length.
    if len(problem.springs):
        a = problem.springs[:, 0]
        b = problem.springs[:, 1]
        delta = positions[b] - positions[a]
        dist = np.linalg.norm(delta, axis=1)
        ok = dist > MIN_SEPARATION
        if ok.any():
            direction = delta[ok] / dist[ok, None]
            stiffness = SPRING_STIFFNESS * params.stiffness_factor
            pull = (stiffness * (dist[ok] - problem.rest_lengths[ok]))[:, None] * direction
            np.add.at(forces, a[ok], pull)
            np.subtract.at(forces, b[ok], pull)

    # Repulsion: every unordered pair, weighted by graph distance.
    i, j = np.triu_indices(n, k=1)
    delta = positions[j] - positions[i]
    dist = np.linalg.norm(delta, axis=1)
    strength = REPULSION_STRENGTH * params.repulsion_factor
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        magnitude = strength * problem.weights[i, j] / (dist * dist)
    separated = dist > MIN_SEPARATION
    finite = np.isfinite(magnitude)

    for k in np.flatnonzero(separated & ~finite):
        logger.error(
            "Invalid repulsion between %s and %s (graph distance %g, distance %g); skipped",
            problem.node_ids[i[k]], problem.node_ids[j[k]],
            problem.weights[i[k], j[k]], dist[k],
        )

    ok = separated & finite
    if ok.any():
        direction = delta[ok] / dist[ok, None]
        push = magnitude[ok, None] * direction
        np.subtract.at(forces, i[ok], push)
        np.add.at(forces, j[ok], push)

    return forces


def relax_step(positions: np.ndarray, state: SimulationState,
               problem: RelaxationProblem, params: LayoutParameters,
               rng: np.random.Generator) -> np.ndarray:
    """
    Run one iteration.  Returns the new positions and updates *state*
    (velocities, forces, iteration, energy, converged) in place.
    """
    n = problem.size
    state.forces = compute_forces(positions, problem, params)
    velocities = state.velocities + state.forces

    if params.chaos_factor > 0.0:
        jitter = rng.uniform(-1.0, 1.0, size=(n, 2)) * params.chaos_factor * CHAOS_SCALE
        velocities[:, :2] += jitter

    velocities *= DAMPING
    updated = positions + velocities
    updated[:, 2] = PLANE_Z

    bad = ~np.isfinite(updated).all(axis=1)
    if bad.any():
        for k in np.flatnonzero(bad):
            logger.error("Non-finite position for %s at iteration %d; update skipped",
                         problem.node_ids[k], state.iteration)
        updated[bad] = positions[bad]
        velocities[bad] = 0.0

    state.velocities = velocities
    state.iteration += 1
    state.energy = float(np.sum(velocities * velocities))
    if params.force_mode and state.energy < ENERGY_THRESHOLD:
        state.converged = True

    if state.iteration % LOG_INTERVAL == 1:
        logger.debug("Iteration %d/%d, total energy: %.4f",
                     state.iteration, params.max_iterations, state.energy)
    return updated


def is_finished(state: SimulationState, params: LayoutParameters) -> bool:
    return state.converged or state.iteration >= params.max_iterations


def relax(positions: np.ndarray, problem: RelaxationProblem,
          params: LayoutParameters,
          rng: Optional[np.random.Generator] = None
          ) -> Tuple[np.ndarray, SimulationState]:
    """
    Run the full relaxation and return ``(final_positions, state)``.

    In force mode the loop stops once total kinetic energy drops below
    ENERGY_THRESHOLD or after ``max_force_mode_iterations``; otherwise it
    runs exactly ``iteration_count`` iterations.
    """
    rng = rng if rng is not None else np.random.default_rng()
    current = np.array(positions, dtype=float)
    current[:, 2] = PLANE_Z
    state = SimulationState.zeros(problem.size)

    logger.debug(
        "Starting simulation with %s",
        f"force mode (max {params.max_force_mode_iterations} iterations)"
        if params.force_mode else f"{params.iteration_count} iterations",
    )
    while not is_finished(state, params):
        current = relax_step(current, state, problem, params, rng)

    if state.converged:
        logger.debug("Force mode converged at iteration %d with energy %.4f",
                     state.iteration, state.energy)
    return current, state


# ---------------------------------------------------------------------------
# Tick-driven stepping
# ---------------------------------------------------------------------------

class StepperStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"
    CANCELLED = "cancelled"


class IncrementalSimulation:
    """
    One relaxation run advanced by an external driver.

    ``step()`` runs a single iteration.  ``advance(dt)`` runs as many
    iterations as ``incremental_rate`` allows for the elapsed time and
    moves ``observed`` toward ``target`` by exponential smoothing.  Only
    ``observed`` is smoothed; ``target`` and the velocities follow exactly
    the same sequence as ``relax``.
    """

    def __init__(self, positions: np.ndarray, problem: RelaxationProblem,
                 params: LayoutParameters,
                 rng: Optional[np.random.Generator] = None):
        self.problem = problem
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng()
        self.target = np.array(positions, dtype=float)
        self.target[:, 2] = PLANE_Z
        self.observed = self.target.copy()
        self.state: Optional[SimulationState] = None
        self.status = StepperStatus.IDLE
        self._pending_time = 0.0

    @property
    def iteration(self) -> int:
        return self.state.iteration if self.state else 0

    @property
    def finished(self) -> bool:
        return self.status in (StepperStatus.CONVERGED, StepperStatus.CANCELLED)

    def start(self) -> StepperStatus:
        if self.status is StepperStatus.IDLE:
            self.state = SimulationState.zeros(self.problem.size)
            self.status = StepperStatus.RUNNING
            self._check_done()
        return self.status

    def step(self) -> StepperStatus:
        """Run one iteration (starting the run if needed)."""
        if self.status is StepperStatus.IDLE:
            self.start()
        if self.status is not StepperStatus.RUNNING:
            return self.status
        self.target = relax_step(self.target, self.state, self.problem,
                                 self.params, self.rng)
        self._check_done()
        return self.status

    def advance(self, dt: float) -> StepperStatus:
        """Advance by *dt* seconds of wall time."""
        if self.status is StepperStatus.IDLE:
            self.start()
        if self.status is StepperStatus.RUNNING:
            self._pending_time += dt
            interval = 1.0 / self.params.incremental_rate
            while self._pending_time >= interval and self.status is StepperStatus.RUNNING:
                self._pending_time -= interval
                self.step()

        if self.status is StepperStatus.RUNNING:
            blend = min(1.0, dt * self.params.smoothing_speed)
            self.observed += (self.target - self.observed) * blend
        elif self.status is StepperStatus.CONVERGED:
            self.observed = self.target.copy()
        return self.status

    def cancel(self):
        """Abandon the run and drop its physics state."""
        if not self.finished:
            logger.info("Simulation cancelled at iteration %d", self.iteration)
        self.status = StepperStatus.CANCELLED
        self.state = None

    def _check_done(self):
        if is_finished(self.state, self.params):
            self.status = StepperStatus.CONVERGED
            self.observed = self.target.copy()


def positions_to_dict(node_ids: Sequence[str], positions: np.ndarray) -> Dict[str, Tuple[float, float, float]]:
    """``{node_id: (x, y, z)}`` from a position array."""
    return {
        node_id: tuple(float(v) for v in positions[i])
        for i, node_id in enumerate(node_ids)
    }
