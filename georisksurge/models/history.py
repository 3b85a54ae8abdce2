"""Weekly history data models for GeoRiskSurge.

Defines the per-country history artifact, assembly counters, and the results
of the History, Snapshot, and maintenance agents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CountryHistory:
    """Weekly surge history for one ISO-2 country, ascending by week."""

    iso2: str
    name_en: str
    generated_at: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    first_lit: Dict[str, Dict[str, Optional[str]]] = field(default_factory=dict)

    @property
    def weeks_total(self) -> int:
        return len(self.history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iso2": self.iso2,
            "name_en": self.name_en,
            "generated_at": self.generated_at,
            "weeks_total": self.weeks_total,
            "first_lit": self.first_lit,
            "history": self.history,
        }


@dataclass
class AssemblyStats:
    """Counters for rows dropped or merged while assembling history."""

    rows_in: int = 0
    parse_errors: int = 0
    unmapped: int = 0
    excluded: int = 0
    filtered_country: int = 0
    out_of_window: int = 0
    duplicates_merged: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "rows_in": self.rows_in,
            "parse_errors": self.parse_errors,
            "unmapped": self.unmapped,
            "excluded": self.excluded,
            "filtered_country": self.filtered_country,
            "out_of_window": self.out_of_window,
            "duplicates_merged": self.duplicates_merged,
        }


@dataclass
class HistoryAgentResult:
    """Output from the HistoryAgent."""

    start_week: Optional[str] = None
    end_week: Optional[str] = None
    countries_written: List[str] = field(default_factory=list)
    countries_failed: List[str] = field(default_factory=list)
    index_written: bool = False
    chunks_completed: List[str] = field(default_factory=list)
    stats: AssemblyStats = field(default_factory=AssemblyStats)
    cancelled: bool = False

    # ── Status ─────────────────────────────────────────────────────────────────
    status: str = "OK"   # "OK", "PARTIAL", "CRITICAL"
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class SnapshotAgentResult:
    """Output from the SnapshotAgent."""

    path: Optional[str] = None
    week: Optional[str] = None
    country_count: int = 0
    status: str = "OK"
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class MaintenanceAgentResult:
    """Output from the gating-refresh and dedupe maintenance agents."""

    operation: str = ""            # "refresh-gating" or "dedupe"
    files_scanned: int = 0
    files_changed: List[str] = field(default_factory=list)
    entries_updated: int = 0
    duplicates_merged: int = 0
    index_written: bool = False
    status: str = "OK"
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
