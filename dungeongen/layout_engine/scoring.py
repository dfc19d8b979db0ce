"""
Quality metrics for generated dungeon layouts.

Evaluates layouts on three axes:
  1. **Gap accuracy**: how close connected rooms sit to their ideal gap.
  2. **Overlap**: how many room pairs share floor area.
  3. **Corridor clearance**: how many corridors avoid cutting through rooms.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from .placement import find_overlaps
from .room_model import CorridorPath, PlacementEntity


# ---------------------------------------------------------------------------
# Individual scoring components
# ---------------------------------------------------------------------------

def gap_accuracy_score(entities: Sequence[PlacementEntity],
                       connections: Sequence[Tuple[str, str]],
                       ideal_gap: float) -> float:
    """
    Score ∈ [0, 1].  1.0 means every connected pair sits exactly
    ``radius_a + radius_b + ideal_gap`` apart (center to center).

    Uses: ``1 - mean(|actual - ideal| / ideal)`` with each error capped at 1.
    """
    by_id = {e.node_id: e for e in entities}
    errors = []
    for a, b in connections:
        if a not in by_id or b not in by_id:
            continue
        ea, eb = by_id[a], by_id[b]
        ideal = ea.radius + eb.radius + ideal_gap
        if ideal <= 0:
            continue
        (ax, ay), (bx, by) = ea.center, eb.center
        actual = math.hypot(bx - ax, by - ay)
        errors.append(min(abs(actual - ideal) / ideal, 1.0))
    if not errors:
        return 1.0
    return max(0.0, 1.0 - (sum(errors) / len(errors)))


def overlap_score(entities: Sequence[PlacementEntity],
                  overlapping_pairs: Optional[List[Tuple[str, str]]] = None) -> float:
    """Score ∈ [0, 1].  ``1 - overlapping pairs / all pairs``."""
    n = len(entities)
    total_pairs = n * (n - 1) // 2
    if total_pairs == 0:
        return 1.0
    if overlapping_pairs is None:
        overlapping_pairs = find_overlaps(list(entities))
    return max(0.0, 1.0 - len(overlapping_pairs) / total_pairs)


def corridor_clearance_score(corridors: Sequence[CorridorPath]) -> float:
    """Score ∈ [0, 1].  Fraction of corridors that cut through no third room."""
    if not corridors:
        return 1.0
    return sum(1 for c in corridors if c.clear) / len(corridors)


# ---------------------------------------------------------------------------
# Combined score
# ---------------------------------------------------------------------------

def score_layout(
    entities: Sequence[PlacementEntity],
    connections: Sequence[Tuple[str, str]],
    corridors: Sequence[CorridorPath],
    ideal_gap: float,
    overlapping_pairs: Optional[List[Tuple[str, str]]] = None,
    weights: Optional[Dict[str, float]] = None,
) -> Dict[str, float]:
    """
    Compute the total score for a generated layout.

    Parameters
    ----------
    entities : list[PlacementEntity]
        Placed rooms.
    connections : list[(str, str)]
        Connections of the pruned graph.
    corridors : list[CorridorPath]
        Routed corridors.
    ideal_gap : float
        Gap the relaxation aimed for.
    overlapping_pairs : list, optional
        Precomputed overlaps; found from the entities when omitted.
    weights : dict, optional
        Override default component weights.  Keys: ``gap``, ``overlap``,
        ``corridor``.

    Returns
    -------
    dict
        ``total``, ``gap``, ``overlap``, ``corridor`` scores.
    """
    w = weights or {"gap": 0.40, "overlap": 0.40, "corridor": 0.20}

    s_gap = gap_accuracy_score(entities, connections, ideal_gap)
    s_overlap = overlap_score(entities, overlapping_pairs)
    s_corr = corridor_clearance_score(corridors)

    total = (
        w.get("gap", 0.40) * s_gap
        + w.get("overlap", 0.40) * s_overlap
        + w.get("corridor", 0.20) * s_corr
    )

    return {
        "total": round(total, 4),
        "gap": round(s_gap, 4),
        "overlap": round(s_overlap, 4),
        "corridor": round(s_corr, 4),
    }
