"""Baseline data models for GeoRiskSurge.

Defines the per-country/per-R statistics produced by the baseline builder,
the chosen calmest window, and the BaselineAgent result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class BaselineStats:
    """Daily-count statistics for one country (and optionally one R-type)."""

    mean: float = 0.0
    median: float = 0.0
    p90: float = 0.0
    days_counted: int = 0

    def to_dict(self, digits: int = 2) -> Dict[str, Any]:
        return {
            "mean": round(self.mean, digits),
            "median": round(self.median, digits),
            "p90": round(self.p90, digits),
            "days_counted": int(self.days_counted),
        }


@dataclass
class CalmestWindow:
    """The lowest-median sliding window selected for a country."""

    method: str          # "calmest3y" or "calmest2y"
    start: str           # YYYY-MM-DD
    end: str             # YYYY-MM-DD
    median: float
    window_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "start": self.start,
            "end": self.end,
            "median": round(self.median, 2),
            "window_days": self.window_days,
        }


@dataclass
class CostEstimate:
    """Dry-run scan estimate for a single query."""

    bytes_processed: int
    gb: float
    tib: float
    usd: float

    def to_dict(self) -> Dict[str, Any]:
        return {"bytes_processed": self.bytes_processed, "usd": round(self.usd, 4)}


@dataclass
class BaselineAgentResult:
    """Output from the BaselineAgent, one entry per baseline kind built."""

    kinds: List[str] = field(default_factory=list)
    files_written: List[str] = field(default_factory=list)
    country_counts: Dict[str, int] = field(default_factory=dict)   # kind -> ISO-2 count
    cost_estimates: Dict[str, CostEstimate] = field(default_factory=dict)
    aggregation_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    adoption: Optional[Dict[str, int]] = None   # calmest: target3y / fallback2y / failed
    dry_run: bool = False

    # ── Status ─────────────────────────────────────────────────────────────────
    status: str = "OK"   # "OK", "PARTIAL", "CRITICAL"
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
