"""First-lit projection for weekly level sequences.

For each R-type and for the overall level, records the earliest week whose
level reached Yellow, Orange, and Red. Computed from history entries on
every write; nothing is stored between runs.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from config.defaults import R_TYPES
from georisksurge.models.surge import LEVEL_RANK, SurgeLevel, level_rank

_MILESTONES = (
    ("yellow", LEVEL_RANK[SurgeLevel.YELLOW]),
    ("orange", LEVEL_RANK[SurgeLevel.ORANGE]),
    ("red", LEVEL_RANK[SurgeLevel.RED]),
)


def _empty() -> Dict[str, Optional[str]]:
    return {name: None for name, _ in _MILESTONES}


def compute_first_lit(history: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, Optional[str]]]:
    """Scan weekly entries oldest to newest and record first-reached weeks.

    Args:
        history: Weekly history entries (any order; sorted by ``week`` here).

    Returns:
        ``{"R1": {"yellow": week|None, "orange": ..., "red": ...}, ..., "overall": {...}}``
    """
    first_lit: Dict[str, Dict[str, Optional[str]]] = {key: _empty() for key in (*R_TYPES, "overall")}

    for entry in sorted(history, key=lambda e: e.get("week", "")):
        week = entry.get("week")
        levels = entry.get("levels") or {}
        sequence = [(r, levels.get(r)) for r in R_TYPES]
        sequence.append(("overall", entry.get("overall_level")))

        for key, level in sequence:
            rank = level_rank(level)
            for name, threshold in _MILESTONES:
                if rank >= threshold and first_lit[key][name] is None:
                    first_lit[key][name] = week
    return first_lit
