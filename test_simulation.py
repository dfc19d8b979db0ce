"""
Tests for the spring/repulsion relaxation engine.
"""
import sys
import os
import logging
import numpy as np

# Add project root to path
sys.path.insert(0, os.path.dirname(__file__))

from dungeongen.layout_engine.adjacency import DungeonGraph, compute_graph_distances
from dungeongen.layout_engine.parameters import LayoutParameters
from dungeongen.layout_engine.room_model import RoomNode
from dungeongen.layout_engine.simulation import (
    IncrementalSimulation,
    RelaxationProblem,
    StepperStatus,
    build_problem,
    compute_forces,
    relax,
)


def _problem(ids=("A", "B", "C", "D"), radius=5.0, ideal_gap=20.0, cycle=False):
    graph = DungeonGraph([RoomNode(i, "Basic") for i in ids])
    for a, b in zip(ids, ids[1:]):
        graph.connect(a, b)
    if cycle:
        graph.connect(ids[-1], ids[0])
    table = compute_graph_distances(graph)
    return build_problem(list(ids), {i: radius for i in ids}, graph.connections,
                         table, ideal_gap)


def _initial(n, seed=0):
    rng = np.random.default_rng(seed)
    pos = np.zeros((n, 3))
    pos[:, :2] = rng.uniform(-20, 20, size=(n, 2))
    return pos


# ============================================================================
# Batch relaxation
# ============================================================================

class TestRelax:
    def test_positions_stay_finite(self):
        problem = _problem()
        final, state = relax(_initial(4), problem, LayoutParameters(), np.random.default_rng(1))
        assert np.isfinite(final).all()
        assert state.iteration == 100

    def test_plane_coordinate_locked(self):
        problem = _problem()
        start = _initial(4)
        start[:, 2] = 7.0
        final, _ = relax(start, problem, LayoutParameters(chaos_factor=1.0),
                         np.random.default_rng(2))
        assert (final[:, 2] == 0.0).all()

    def test_coincident_rooms_exert_no_force(self):
        problem = _problem(ids=("A", "B"))
        forces = compute_forces(np.zeros((2, 3)), problem, LayoutParameters())
        assert (forces == 0.0).all()

    def test_connected_pair_reaches_rest_length(self):
        problem = _problem(ids=("A", "B"), radius=15.0)
        start = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
        final, _ = relax(start, problem, LayoutParameters(iteration_count=300))
        gap = np.linalg.norm(final[1] - final[0])
        # Spring rest length is 15 + 15 + 20; repulsion stretches it a little.
        assert 50.0 <= gap <= 57.5

    def test_fixed_iteration_count(self):
        problem = _problem()
        _, state = relax(_initial(4), problem, LayoutParameters(iteration_count=7))
        assert state.iteration == 7
        assert not state.converged

    def test_force_mode_respects_cap(self):
        problem = _problem()
        params = LayoutParameters(force_mode=True, max_force_mode_iterations=5, chaos_factor=1.0)
        _, state = relax(_initial(4), problem, params, np.random.default_rng(3))
        assert state.iteration == 5
        assert not state.converged

    def test_force_mode_converges_at_rest(self):
        problem = _problem(ids=("A",))
        params = LayoutParameters(force_mode=True)
        _, state = relax(np.zeros((1, 3)), problem, params)
        assert state.converged
        assert state.iteration == 1

    def test_invalid_repulsion_logged_and_skipped(self, caplog):
        problem = RelaxationProblem(
            node_ids=["A", "B"],
            radii=np.array([5.0, 5.0]),
            springs=np.zeros((0, 2), dtype=int),
            rest_lengths=np.zeros(0),
            weights=np.array([[0.0, np.inf], [np.inf, 0.0]]),
        )
        positions = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
        with caplog.at_level(logging.ERROR):
            forces = compute_forces(positions, problem, LayoutParameters())
        assert (forces == 0.0).all()
        assert "Invalid repulsion between A and B" in caplog.text


# ============================================================================
# Tick-driven relaxation
# ============================================================================

class TestIncrementalSimulation:
    def test_matches_batch_bit_for_bit(self):
        problem = _problem(cycle=True)
        params = LayoutParameters(chaos_factor=0.5, iteration_count=60)
        start = _initial(4, seed=5)

        batch, batch_state = relax(start, problem, params, np.random.default_rng(9))

        sim = IncrementalSimulation(start, problem, params, np.random.default_rng(9))
        while not sim.finished:
            sim.step()

        assert np.array_equal(sim.target, batch)
        assert np.array_equal(sim.state.velocities, batch_state.velocities)
        assert sim.iteration == batch_state.iteration

    def test_advance_runs_rate_limited_iterations(self):
        problem = _problem()
        params = LayoutParameters(incremental_rate=10)
        sim = IncrementalSimulation(_initial(4), problem, params)
        sim.advance(0.25)
        assert sim.iteration == 2
        sim.advance(0.06)
        assert sim.iteration == 3

    def test_observed_smooths_toward_target(self):
        problem = _problem()
        params = LayoutParameters(incremental_rate=10, smoothing_speed=1.0)
        start = _initial(4)
        sim = IncrementalSimulation(start, problem, params)
        sim.advance(0.1)
        assert sim.iteration == 1
        expected = start + (sim.target - start) * 0.1
        assert np.allclose(sim.observed, expected)
        assert not np.allclose(sim.observed, sim.target)

    def test_observed_snaps_on_completion(self):
        problem = _problem()
        params = LayoutParameters(iteration_count=3, smoothing_speed=0.5)
        sim = IncrementalSimulation(_initial(4), problem, params)
        for _ in range(3):
            sim.advance(0.1)
        assert sim.status is StepperStatus.CONVERGED
        assert np.array_equal(sim.observed, sim.target)

    def test_cancel_stops_and_discards_state(self):
        problem = _problem()
        sim = IncrementalSimulation(_initial(4), problem, LayoutParameters())
        sim.step()
        sim.step()
        sim.cancel()
        assert sim.status is StepperStatus.CANCELLED
        assert sim.state is None
        before = sim.target.copy()
        assert sim.step() is StepperStatus.CANCELLED
        assert np.array_equal(sim.target, before)

    def test_step_after_completion_is_noop(self):
        problem = _problem()
        sim = IncrementalSimulation(_initial(4), problem, LayoutParameters(iteration_count=2))
        sim.step()
        sim.step()
        assert sim.status is StepperStatus.CONVERGED
        assert sim.step() is StepperStatus.CONVERGED
        assert sim.iteration == 2
