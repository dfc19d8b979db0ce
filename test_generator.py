"""
End-to-end tests for the dungeon generator.
"""
import sys
import os
import json
import math
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(__file__))

from dungeongen import DungeonGenerator, DungeonGraph, LayoutParameters
from dungeongen.layout_engine import DungeonConfigurationError, InMemoryRoomCatalog
from dungeongen.layout_engine.corridors import OccupancyGrid
from dungeongen.layout_engine.generator import check_snapped_overlaps, snap_to_grid
from dungeongen.layout_engine.placement import boxes_overlap
from dungeongen.layout_engine.room_model import PlacementEntity, RoomFootprint, RoomNode
from dungeongen.layout_engine.simulation import StepperStatus


def _catalog(size=30):
    return InMemoryRoomCatalog.from_dict({
        key: [{"width": size, "height": size}] for key in ("Start", "Basic", "End")
    })


def _chain():
    return DungeonGraph.from_dict({
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "basic_1", "type": "Basic"},
            {"id": "basic_2", "type": "Basic"},
            {"id": "end", "type": "End"},
        ],
        "connections": [["start", "basic_1"], ["basic_1", "basic_2"], ["basic_2", "end"]],
    })


def _cycle():
    return DungeonGraph.from_dict({
        "nodes": [
            {"id": "a", "type": "Start"},
            {"id": "b", "type": "Basic"},
            {"id": "c", "type": "Basic"},
            {"id": "d", "type": "Basic"},
        ],
        "connections": [["a", "b"], ["b", "c"], ["c", "d"], ["d", "a"]],
    })


def _center_distance(layout, a, b):
    (ax, ay), (bx, by) = layout.entity(a).center, layout.entity(b).center
    return math.hypot(bx - ax, by - ay)


def _assert_no_overlap(layout):
    entities = layout.entities
    for i in range(len(entities)):
        for j in range(i + 1, len(entities)):
            assert not boxes_overlap(entities[i], entities[j]), (entities[i], entities[j])


# ============================================================================
# End-to-end layouts
# ============================================================================

class TestEndToEnd:
    def test_chain_edges_near_ideal_gap(self):
        # Rooms much larger than the repulsion offset settle within 15% of
        # the rest length once relaxed to equilibrium.
        for seed in (1, 2, 3, 42):
            params = LayoutParameters(ideal_gap=20, force_mode=True, seed=seed)
            layout = DungeonGenerator(params, _catalog(30)).generate(_chain())

            for a, b in layout.graph.connections:
                ideal = 15 + 15 + 20
                dist = _center_distance(layout, a, b)
                assert abs(dist - ideal) <= 0.15 * ideal, \
                    f"seed {seed} {a}-{b}: {dist:.1f} vs {ideal}"
            _assert_no_overlap(layout)
            assert layout.overlapping_pairs == []

    def test_default_boxes_stretch_past_ideal_gap(self):
        # Repulsion stretches chains of small rooms well past the rest
        # length: about 22-28% for 10x10 boxes on a four-room chain.
        for seed in (1, 2, 3, 42):
            params = LayoutParameters(ideal_gap=20, force_mode=True, seed=seed)
            layout = DungeonGenerator(params).generate(_chain())

            for a, b in layout.graph.connections:
                ideal = 5 + 5 + 20
                dist = _center_distance(layout, a, b)
                assert ideal <= dist <= 1.35 * ideal, \
                    f"seed {seed} {a}-{b}: {dist:.1f} vs {ideal}"

    def test_cycle_edges_balanced(self):
        params = LayoutParameters(force_mode=True, seed=7)
        layout = DungeonGenerator(params).generate(_cycle())

        lengths = [_center_distance(layout, a, b) for a, b in layout.graph.connections]
        assert len(lengths) == 4
        assert min(lengths) >= 0.7 * max(lengths)
        _assert_no_overlap(layout)

    def test_same_seed_same_layout(self):
        params = LayoutParameters(chaos_factor=0.4, corridor_shape="mixed", seed=123)
        first = DungeonGenerator(params, _catalog(12)).generate(_chain())
        second = DungeonGenerator(params, _catalog(12)).generate(_chain())
        assert first.positions == second.positions
        assert [c.cells for c in first.corridors] == [c.cells for c in second.corridors]

    def test_one_corridor_per_connection(self):
        params = LayoutParameters(corridor_shape="angled", corridor_width=3, seed=5)
        layout = DungeonGenerator(params, _catalog(12)).generate(_chain())
        assert len(layout.corridors) == 3
        for corridor in layout.corridors:
            assert corridor.width == 3
            assert corridor.shape in ("direct", "horizontal_first", "vertical_first")

    def test_corridors_never_overwrite_rooms(self):
        params = LayoutParameters(corridor_width=4, seed=9)
        layout = DungeonGenerator(params, _catalog(12)).generate(_cycle())
        grid = layout.occupancy
        for entity in layout.entities:
            minx, miny, maxx, maxy = (int(round(v)) for v in entity.bounds)
            for x in range(minx, maxx):
                for y in range(miny, maxy):
                    assert grid.get((x, y)) == OccupancyGrid.ROOM
        assert grid.count(OccupancyGrid.CORRIDOR) > 0

    def test_positions_snapped_to_grid(self):
        params = LayoutParameters(grid_cell_size=2.0, chaos_factor=0.3, seed=3)
        layout = DungeonGenerator(params, _catalog(12)).generate(_chain())
        for x, y, z in layout.positions.values():
            assert x % 2.0 == 0.0 and y % 2.0 == 0.0
            assert z == 0.0

    def test_single_room_graph(self):
        graph = DungeonGraph.from_dict({"nodes": [{"id": "s", "type": "Start"}]})
        layout = DungeonGenerator(LayoutParameters(seed=1)).generate(graph)
        assert layout.positions == {"s": (0.0, 0.0, 0.0)}
        assert layout.corridors == []

    def test_disconnected_graph_stays_finite(self):
        graph = DungeonGraph.from_dict({
            "nodes": [
                {"id": "s", "type": "Start"},
                {"id": "r", "type": "Basic"},
                {"id": "x", "type": "Basic"},
                {"id": "y", "type": "End"},
            ],
            "connections": [["s", "r"], ["x", "y"]],
        })
        layout = DungeonGenerator(LayoutParameters(seed=4)).generate(graph)
        assert layout.distances.distance("s", "x") == 999999
        for pos in layout.positions.values():
            assert all(math.isfinite(v) for v in pos)

    def test_spawn_pruning_applied(self):
        graph = DungeonGraph.from_dict({
            "nodes": [
                {"id": "s", "type": "Start"},
                {"id": "gone", "type": "Basic", "spawnProbability": 0},
                {"id": "e", "type": "End"},
            ],
            "connections": [["s", "gone"], ["gone", "e"]],
        })
        layout = DungeonGenerator(LayoutParameters(seed=8)).generate(graph)
        assert set(layout.positions) == {"s", "e"}
        assert layout.prune_report.removed == ["gone"]
        assert layout.graph.has_connection("s", "e")
        assert len(layout.corridors) == 1


# ============================================================================
# Incremental generation
# ============================================================================

class TestIncrementalGeneration:
    def test_matches_batch(self):
        params = LayoutParameters(chaos_factor=0.3, corridor_shape="mixed", seed=21)
        batch = DungeonGenerator(params, _catalog(12)).generate(_chain())

        completed = []
        gen = DungeonGenerator(params, _catalog(12), on_complete=completed.append)
        driver = gen.start_incremental(_chain())
        assert driver.status is StepperStatus.IDLE
        layout = driver.run(dt=0.1)

        assert driver.status is StepperStatus.CONVERGED
        assert len(completed) == 1 and completed[0] is layout
        assert layout.positions == batch.positions
        assert [c.cells for c in layout.corridors] == [c.cells for c in batch.corridors]

    def test_cancelled_generation_has_no_layout(self):
        completed = []
        gen = DungeonGenerator(LayoutParameters(seed=2), on_complete=completed.append)
        driver = gen.start_incremental(_chain())
        driver.step()
        driver.cancel()
        assert driver.run() is None
        assert completed == []


# ============================================================================
# Configuration and diagnostics
# ============================================================================

class TestConfiguration:
    def test_empty_graph_rejected(self):
        with pytest.raises(DungeonConfigurationError):
            DungeonGenerator().generate(DungeonGraph())

    def test_missing_start_rejected(self):
        graph = DungeonGraph.from_dict({"nodes": [{"id": "a", "type": "Basic"}]})
        with pytest.raises(DungeonConfigurationError):
            DungeonGenerator().generate(graph)

    def test_start_type_case_insensitive(self):
        graph = DungeonGraph.from_dict({"nodes": [{"id": "a", "type": "start"}]})
        layout = DungeonGenerator(LayoutParameters(seed=0)).generate(graph)
        assert "a" in layout.positions

    def test_invalid_parameters_rejected(self):
        with pytest.raises(DungeonConfigurationError):
            DungeonGenerator(LayoutParameters(corridor_width=0))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            DungeonGenerator().generate({"nodes": [{"id": "a", "type": "Start"}],
                                         "connections": [["a", "a"]]})

    def test_missing_catalog_entry_warns(self, caplog):
        DungeonGenerator(LayoutParameters(seed=1)).generate(_chain())
        assert "No footprint for room type 'Basic'" in caplog.text

    def test_layout_serializes_to_json(self):
        layout = DungeonGenerator(LayoutParameters(seed=6), _catalog(12)).generate(_chain())
        data = json.loads(json.dumps(layout.to_dict()))
        assert len(data["rooms"]) == 4
        assert len(data["corridors"]) == 3
        assert data["room_attempts"] >= 1
        assert 0.0 <= data["score"]["total"] <= 1.0
        assert data["occupancy"]["room_cells"] > 0

    def test_overlap_introduced_by_snapping_warns(self, caplog):
        # 11.8 apart before snapping, 8 apart after: the 10x10 boxes overlap.
        rooms = [
            PlacementEntity(RoomNode("a", "Basic"), RoomFootprint(10, 10), [2.1, 0, 0]),
            PlacementEntity(RoomNode("b", "Basic"), RoomFootprint(10, 10), [13.9, 0, 0]),
        ]
        assert not boxes_overlap(*rooms)
        snap_to_grid(rooms, 4.0)
        assert [tuple(r.center) for r in rooms] == [(4.0, 0.0), (12.0, 0.0)]

        assert check_snapped_overlaps(rooms, []) == [("a", "b")]
        assert "Grid snapping introduced 1 overlapping pairs: a/b" in caplog.text

    def test_overlap_already_accepted_does_not_warn(self, caplog):
        rooms = [
            PlacementEntity(RoomNode("a", "Basic"), RoomFootprint(10, 10), [0, 0, 0]),
            PlacementEntity(RoomNode("b", "Basic"), RoomFootprint(10, 10), [5, 0, 0]),
        ]
        assert check_snapped_overlaps(rooms, [("a", "b")]) == [("a", "b")]
        assert "Grid snapping introduced" not in caplog.text
