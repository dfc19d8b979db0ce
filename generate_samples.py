"""Generate sample dungeon layouts.

Builds 4 graphs:
  - a 4-room chain and a 4-room loop
  - a branching 8-room dungeon with optional side rooms
  - a disconnected graph (two islands)

Each layout is written to samples/<name>.json and summarised on stdout.
"""

import json
from pathlib import Path

from dungeongen import DungeonGenerator, DungeonGraph, LayoutParameters
from dungeongen.config import setup_logging
from dungeongen.layout_engine import InMemoryRoomCatalog

SAMPLES_DIR = Path(__file__).resolve().parent / "samples"

CATALOG = {
    "Start": [{"width": 12, "height": 12, "exits": {"east": [12, 6], "north": [6, 12]}}],
    "End": [{"width": 14, "height": 14, "exits": {"west": [0, 7], "south": [7, 0]}}],
    "Basic": [
        {"width": 10, "height": 16, "exits": {"north": [5, 16], "south": [5, 0]}},
        {"width": 16, "height": 10, "exits": {"east": [16, 5], "west": [0, 5]}},
        {"width": 12, "height": 12},
    ],
    "Treasure/Small": [{"width": 8, "height": 8, "exits": {"south": [4, 0]}}],
}


def chain_graph() -> DungeonGraph:
    return DungeonGraph.from_dict({
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "hall_1", "type": "Basic"},
            {"id": "hall_2", "type": "Basic"},
            {"id": "end", "type": "End"},
        ],
        "connections": [["start", "hall_1"], ["hall_1", "hall_2"], ["hall_2", "end"]],
    })


def loop_graph() -> DungeonGraph:
    return DungeonGraph.from_dict({
        "nodes": [
            {"id": "a", "type": "Start"},
            {"id": "b", "type": "Basic"},
            {"id": "c", "type": "Basic"},
            {"id": "d", "type": "Basic"},
        ],
        "connections": [["a", "b"], ["b", "c"], ["c", "d"], ["d", "a"]],
    })


def branching_graph() -> DungeonGraph:
    return DungeonGraph.from_dict({
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "hub", "type": "Basic"},
            {"id": "west", "type": "Basic"},
            {"id": "east", "type": "Basic"},
            {"id": "vault", "type": "Treasure", "size": "Small", "spawnProbability": 50},
            {"id": "side", "type": "Basic", "spawnProbability": 40},
            {"id": "north", "type": "Basic"},
            {"id": "end", "type": "End"},
        ],
        "connections": [
            {"from": "start", "to": "hub"},
            {"from": "hub", "to": "west"},
            {"from": "hub", "to": "east"},
            {"from": "west", "to": "vault"},
            {"from": "east", "to": "side"},
            {"from": "side", "to": "north"},
            {"from": "hub", "to": "north"},
            {"from": "north", "to": "end"},
        ],
    })


def islands_graph() -> DungeonGraph:
    return DungeonGraph.from_dict({
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "room", "type": "Basic"},
            {"id": "lost_1", "type": "Basic"},
            {"id": "lost_2", "type": "End"},
        ],
        "connections": [["start", "room"], ["lost_1", "lost_2"]],
    })


def generate_sample(name: str, graph: DungeonGraph, params: LayoutParameters,
                    catalog: InMemoryRoomCatalog) -> Path:
    """Generate one layout and save it as JSON."""
    layout = DungeonGenerator(params, catalog).generate(graph)

    filepath = SAMPLES_DIR / f"{name}.json"
    filepath.write_text(json.dumps(layout.to_dict(), indent=2))
    score = layout.score
    print(f"  {name:10s}  rooms={len(layout.entities):2d}  corridors={len(layout.corridors):2d}  "
          f"attempts={layout.room_attempts}  score={score['total']:.3f} "
          f"(gap={score['gap']:.3f} overlap={score['overlap']:.3f} corridor={score['corridor']:.3f})")
    return filepath


def main():
    setup_logging("WARNING")
    SAMPLES_DIR.mkdir(exist_ok=True)
    catalog = InMemoryRoomCatalog.from_dict(CATALOG)
    print("Generating sample dungeon layouts...\n")

    generate_sample("chain", chain_graph(), LayoutParameters(seed=1), catalog)
    generate_sample("loop", loop_graph(),
                    LayoutParameters(seed=2, force_mode=True, corridor_shape="angled"), catalog)
    generate_sample("branching", branching_graph(),
                    LayoutParameters(seed=3, chaos_factor=0.2, corridor_shape="mixed",
                                     corridor_width=3), catalog)
    generate_sample("islands", islands_graph(), LayoutParameters(seed=4), catalog)

    print(f"\nAll 4 sample layouts saved to: {SAMPLES_DIR}")


if __name__ == "__main__":
    main()
