"""Surge data models for GeoRiskSurge.

Defines the period row consumed by the surge engine, the per-R surge outcome,
and the per-period bundle. Values are kept unrounded in memory; rounding is
applied only when an entry is emitted via to_history_entry().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config.defaults import (
    BASELINE7_DECIMALS,
    R_TYPES,
    RATIO_DECIMALS,
    SHARE_DECIMALS,
)


class SurgeLevel:
    """Level labels assigned from ratio7."""

    NO_DATA = "NoData"
    NONE = "None"
    YELLOW = "Yellow"
    ORANGE = "Orange"
    RED = "Red"


# NoData sorts below None so it never wins a max()
LEVEL_RANK: Dict[str, int] = {
    SurgeLevel.NO_DATA: -1,
    SurgeLevel.NONE: 0,
    SurgeLevel.YELLOW: 1,
    SurgeLevel.ORANGE: 2,
    SurgeLevel.RED: 3,
}


def level_rank(level: Optional[str]) -> int:
    """Return the rank of a level label; unknown labels rank as None."""
    return LEVEL_RANK.get(level or SurgeLevel.NONE, 0)


class SurgeReason:
    """Diagnostic reason codes, in evaluation priority order."""

    ACTIVE = "active"
    HIGH_VOL = "high-vol"
    LOW_SHARE = "low-share"
    LOW_ABS = "low-abs"
    LOW_BASELINE = "low-baseline"
    BELOW_THRESHOLD = "below-threshold"


class BaselineMode:
    """Which baseline source supplied the median for an R-type."""

    CALMEST = "calmest3y"
    FALLBACK_5Y = "fallback_5y"
    DEFAULT = "default"


@dataclass
class PeriodRow:
    """One (country, period) row of R-counts from the row source."""

    country: str
    period_id: str               # ISO date (daily) or YYYY-Www (weekly)
    counts: Dict[str, int] = field(default_factory=dict)
    event_count: int = 0
    days_with_data: Optional[int] = None   # Distinct days backing a weekly row

    def __post_init__(self) -> None:
        for r in R_TYPES:
            self.counts.setdefault(r, 0)


@dataclass
class RSurge:
    """Surge outcome for a single R-type within one period."""

    r: str
    today7: int
    baseline7: float
    ratio7: float
    share7: float
    level: str
    dynamic_abs_threshold: float = 0.0
    abs_hit: bool = False
    share_hit: bool = False
    is_high_volume: bool = False
    red_override: bool = False
    triggered: bool = False
    is_stable: bool = False
    is_active: bool = False
    reason: str = SurgeReason.BELOW_THRESHOLD

    @property
    def gate_status(self) -> str:
        return "stable" if self.is_stable else "unstable"

    def to_dict(self) -> Dict[str, Any]:
        """Emit the per-R block of a weekly history entry (rounded)."""
        return {
            "today7": self.today7,
            "baseline7": round(self.baseline7, BASELINE7_DECIMALS),
            "ratio7": round(self.ratio7, RATIO_DECIMALS),
            "share7": round(self.share7, SHARE_DECIMALS),
            "abs_hit": self.abs_hit,
            "share_hit": self.share_hit,
            "triggered": self.triggered,
            "is_stable": self.is_stable,
            "is_active": self.is_active,
            "reason": self.reason,
            "gate_status": self.gate_status,
        }


@dataclass
class SurgeResult:
    """Surge outcome for one (country, period) across R1..R4 plus the bundle."""

    country: str
    period_id: str
    counts: Dict[str, int]
    event_count: int
    medians: Dict[str, float]               # Unrounded daily medians used for baseline7
    by_type: Dict[str, RSurge] = field(default_factory=dict)
    overall_level: str = SurgeLevel.NONE
    max_ratio_active: float = 0.0
    active_types: List[str] = field(default_factory=list)
    baseline_modes: Dict[str, str] = field(default_factory=dict)
    days_with_data: Optional[int] = None

    @property
    def levels(self) -> Dict[str, str]:
        return {r: s.level for r, s in self.by_type.items()}

    def to_history_entry(self, weekly_surge_meta: Dict[str, Any]) -> Dict[str, Any]:
        """Project this result into the weekly history entry schema.

        Args:
            weekly_surge_meta: Threshold block from surge_engine.weekly_surge_meta().

        Returns:
            JSON-ready dict with rounded floats.
        """
        entry: Dict[str, Any] = {
            "week": self.period_id,
            "counts": {r: int(self.counts.get(r, 0)) for r in R_TYPES},
            "event_count": int(self.event_count),
            "ratios": {r: round(s.ratio7, RATIO_DECIMALS) for r, s in self.by_type.items()},
            "levels": self.levels,
            "weekly_surge_r_by_type": {r: s.to_dict() for r, s in self.by_type.items()},
            "weekly_surge_r": {
                "level": self.overall_level.lower(),
                "max_ratio_active": round(self.max_ratio_active, RATIO_DECIMALS),
                "active_types": list(self.active_types),
                **weekly_surge_meta,
            },
            "overall_level": self.overall_level,
            "baseline_modes": dict(self.baseline_modes),
        }
        if self.days_with_data is not None:
            entry["days_with_data"] = int(self.days_with_data)
        return entry
