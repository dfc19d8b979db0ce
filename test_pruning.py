"""
Tests for the spawn pruning pass.
"""
import sys
import os
import logging
import numpy as np

# Add project root to path
sys.path.insert(0, os.path.dirname(__file__))

from dungeongen.layout_engine.adjacency import DungeonGraph
from dungeongen.layout_engine.pruning import prune_graph
from dungeongen.layout_engine.room_model import RoomNode


def _chain(b_chance=0.0):
    graph = DungeonGraph([
        RoomNode("A", "Start"),
        RoomNode("B", "Basic", spawn_chance=b_chance),
        RoomNode("C", "End"),
    ])
    graph.connect("A", "B")
    graph.connect("B", "C")
    return graph


def _edges(graph):
    return {frozenset(c) for c in graph.connections}


class TestPruneGraph:
    def test_failed_roll_removes_and_bypasses(self):
        pruned, report = prune_graph(_chain(), roll=lambda node: 100.0)
        assert pruned.node_ids == ["A", "C"]
        assert _edges(pruned) == {frozenset(("A", "C"))}
        assert report.removed == ["B"]
        assert report.bypasses == [("A", "C")]

    def test_passed_roll_leaves_graph_unchanged(self):
        graph = _chain()
        pruned, report = prune_graph(graph, roll=lambda node: -1.0)
        assert pruned.node_ids == graph.node_ids
        assert _edges(pruned) == _edges(graph)
        assert report.removed == []

    def test_roll_below_chance_spawns(self):
        pruned, _ = prune_graph(_chain(b_chance=50.0), roll=lambda node: 10.0)
        assert "B" in pruned

    def test_roll_equal_to_chance_fails(self):
        pruned, _ = prune_graph(_chain(b_chance=50.0), roll=lambda node: 50.0)
        assert "B" not in pruned

    def test_input_graph_not_modified(self):
        graph = _chain()
        prune_graph(graph, roll=lambda node: 100.0)
        assert graph.node_ids == ["A", "B", "C"]
        assert not graph.has_connection("A", "C")

    def test_always_spawning_rooms_never_roll(self):
        rolled = []

        def roll(node):
            rolled.append(node.node_id)
            return 100.0

        prune_graph(_chain(), roll=roll)
        assert rolled == ["B"]

    def test_leaf_removed_without_bypass(self):
        graph = DungeonGraph([RoomNode("A", "Start"), RoomNode("L", "Basic", spawn_chance=0)])
        graph.connect("A", "L")
        pruned, report = prune_graph(graph, roll=lambda node: 99.0)
        assert pruned.node_ids == ["A"]
        assert report.bypasses == []

    def test_high_degree_room_protected(self, caplog):
        graph = DungeonGraph([
            RoomNode("hub", "Basic", spawn_chance=0),
            RoomNode("s", "Start"),
            RoomNode("x", "Basic"),
            RoomNode("y", "Basic"),
        ])
        for leaf in ("s", "x", "y"):
            graph.connect("hub", leaf)

        with caplog.at_level(logging.INFO):
            pruned, report = prune_graph(graph, roll=lambda node: 100.0)

        assert "hub" in pruned
        assert report.protected == ["hub"]
        assert "has 3 connections" in caplog.text

    def test_bypass_not_duplicated(self):
        # Triangle: A-B, B-C, A-C already connected.
        graph = _chain()
        graph.connect("A", "C")
        pruned, report = prune_graph(graph, roll=lambda node: 100.0)
        assert _edges(pruned) == {frozenset(("A", "C"))}
        assert report.bypasses == []

    def test_seeded_rng_is_reproducible(self):
        graph = DungeonGraph([RoomNode(str(i), "Basic", spawn_chance=50) for i in range(8)])
        for i in range(7):
            graph.connect(str(i), str(i + 1))
        first, _ = prune_graph(graph, np.random.default_rng(11))
        second, _ = prune_graph(graph, np.random.default_rng(11))
        assert first.node_ids == second.node_ids
        assert _edges(first) == _edges(second)
