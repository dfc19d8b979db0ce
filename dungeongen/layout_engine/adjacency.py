"""
Dungeon graph model and graph-distance table.

Rooms are NetworkX nodes carrying a ``room`` attribute (RoomNode);
connections are undirected edges.  Graph distances are all-pairs hop
counts used to weight repulsion during relaxation.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx
import numpy as np

from .exceptions import DungeonConfigurationError
from .room_model import RoomNode

# Distance stored for pairs with no path between them.
UNREACHABLE_DISTANCE = 999999


class DungeonGraph:
    """Rooms and the undirected connections between them."""

    def __init__(self, nodes: Optional[Iterable[RoomNode]] = None,
                 connections: Optional[Iterable[Tuple[str, str]]] = None):
        self._graph = nx.Graph()
        for node in nodes or []:
            self.add_node(node)
        for a, b in connections or []:
            self.connect(a, b)

    # ---- nodes -----------------------------------------------------------

    def add_node(self, node: RoomNode) -> RoomNode:
        if node.node_id in self._graph:
            raise DungeonConfigurationError(f"Duplicate node id: {node.node_id}")
        self._graph.add_node(node.node_id, room=node)
        return node

    def remove_node(self, node_id: str):
        """Remove a node and every connection touching it."""
        self._graph.remove_node(node_id)

    def node(self, node_id: str) -> RoomNode:
        return self._graph.nodes[node_id]["room"]

    @property
    def nodes(self) -> List[RoomNode]:
        return [data["room"] for _, data in self._graph.nodes(data=True)]

    @property
    def node_ids(self) -> List[str]:
        return list(self._graph.nodes)

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def __contains__(self, node_id) -> bool:
        return node_id in self._graph

    # ---- connections -----------------------------------------------------

    def connect(self, a: str, b: str) -> bool:
        """
        Connect two rooms.  Returns False if they were already connected.

        Raises DungeonConfigurationError for unknown ids or self-loops.
        """
        for node_id in (a, b):
            if node_id not in self._graph:
                raise DungeonConfigurationError(
                    f"Connection references unknown node: {node_id}"
                )
        if a == b:
            raise DungeonConfigurationError(f"Self-loop on node: {a}")
        if self._graph.has_edge(a, b):
            return False
        self._graph.add_edge(a, b)
        return True

    def disconnect(self, a: str, b: str):
        if self._graph.has_edge(a, b):
            self._graph.remove_edge(a, b)

    def has_connection(self, a: str, b: str) -> bool:
        return self._graph.has_edge(a, b)

    @property
    def connections(self) -> List[Tuple[str, str]]:
        """Every connection as an ``(a, b)`` pair."""
        return list(self._graph.edges())

    def neighbours(self, node_id: str) -> List[str]:
        """Return IDs of rooms connected to *node_id*."""
        if node_id not in self._graph:
            return []
        return list(self._graph.neighbors(node_id))

    def degree(self, node_id: str) -> int:
        return self._graph.degree(node_id)

    def is_connected(self) -> bool:
        """Return True if every room is reachable from every other room."""
        if self._graph.number_of_nodes() == 0:
            return True
        return nx.is_connected(self._graph)

    def find_start(self, start_type: str = "Start") -> Optional[RoomNode]:
        """First node whose room type matches *start_type* (case-insensitive)."""
        wanted = start_type.lower()
        for node in self.nodes:
            if node.room_type.lower() == wanted:
                return node
        return None

    def to_networkx(self) -> nx.Graph:
        """Copy of the underlying NetworkX graph."""
        return self._graph.copy()

    # ---- copying / serialization ------------------------------------------

    def copy(self) -> "DungeonGraph":
        clone = DungeonGraph()
        for node in self.nodes:
            clone.add_node(RoomNode(node.node_id, node.room_type, node.size,
                                    node.spawn_chance))
        for a, b in self.connections:
            clone.connect(a, b)
        return clone

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [[a, b] for a, b in self.connections],
        }

    @staticmethod
    def from_dict(data: dict) -> "DungeonGraph":
        """
        Build a graph from ``{"nodes": [...], "connections": [...]}``.

        Each connection is a two-item list or a dict with ``from``/``to``
        (or ``a``/``b``) keys.
        """
        graph = DungeonGraph(RoomNode.from_dict(n) for n in data.get("nodes", []))
        for conn in data.get("connections", []):
            if isinstance(conn, dict):
                a = conn.get("from", conn.get("a"))
                b = conn.get("to", conn.get("b"))
            else:
                a, b = conn
            graph.connect(str(a), str(b))
        return graph

    def __repr__(self) -> str:
        return (
            f"DungeonGraph(nodes={self._graph.number_of_nodes()}, "
            f"connections={self._graph.number_of_edges()})"
        )


class GraphDistanceTable:
    """Shortest hop counts between every ordered pair of nodes."""

    def __init__(self, order: List[str], matrix: np.ndarray):
        self.order = list(order)
        self.matrix = matrix
        self._index = {node_id: i for i, node_id in enumerate(self.order)}

    def distance(self, a: str, b: str) -> int:
        return int(self.matrix[self._index[a], self._index[b]])

    def __getitem__(self, pair: Tuple[str, str]) -> int:
        return self.distance(*pair)

    def __len__(self) -> int:
        return len(self.order)

    def is_reachable(self, a: str, b: str) -> bool:
        return self.distance(a, b) < UNREACHABLE_DISTANCE

    def submatrix(self, node_ids: List[str]) -> np.ndarray:
        """Distance matrix restricted to *node_ids*, in that order."""
        idx = [self._index[n] for n in node_ids]
        return self.matrix[np.ix_(idx, idx)]

    def as_dict(self) -> Dict[Tuple[str, str], int]:
        return {
            (a, b): int(self.matrix[i, j])
            for i, a in enumerate(self.order)
            for j, b in enumerate(self.order)
        }


def compute_graph_distances(graph: DungeonGraph) -> GraphDistanceTable:
    """
    All-pairs shortest path hop counts (Floyd-Warshall).

    Self-distance is 0, directly connected rooms are 1 apart and pairs with
    no path get UNREACHABLE_DISTANCE instead of infinity.

    Parameters
    ----------
    graph : DungeonGraph
        The (pruned) dungeon graph.

    Returns
    -------
    GraphDistanceTable
        Integer distance matrix indexed in ``graph.node_ids`` order.
    """
    order = graph.node_ids
    if not order:
        return GraphDistanceTable([], np.zeros((0, 0), dtype=np.int64))

    dist = nx.floyd_warshall_numpy(graph.to_networkx(), nodelist=order)
    dist = np.where(np.isfinite(dist), dist, UNREACHABLE_DISTANCE)
    return GraphDistanceTable(order, dist.astype(np.int64))
