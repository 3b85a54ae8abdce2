"""Pipeline orchestration data models for GeoRiskSurge.

Defines PipelineContext (shared state object), AgentResult (base result type),
and PhaseRecord (per-phase timing log).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from config.defaults import BASELINES_SUBDIR, HISTORY_SUBDIR
from config.settings import PipelineConfig, ScoringConfig

if TYPE_CHECKING:
    from georisksurge.models.baseline import BaselineAgentResult
    from georisksurge.models.history import (
        HistoryAgentResult,
        MaintenanceAgentResult,
        SnapshotAgentResult,
    )


@dataclass
class AgentResult:
    """Minimal result for phases that have no typed result of their own."""

    agent_name: str
    status: str = "OK"       # "OK", "PARTIAL", "CRITICAL"
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0


@dataclass
class PhaseRecord:
    """Timing and status record for a single pipeline phase."""

    phase_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str = "OK"
    warnings: List[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


@dataclass
class PipelineContext:
    """Shared state object threaded through all pipeline agents.

    Agents read configuration and upstream results from here and the
    orchestrator stores each agent's result back on the matching field.
    """

    config: PipelineConfig
    run_id: str
    data_root: Path
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    # ── Agent results (populated progressively) ────────────────────────────────
    baseline_result: Optional[Any] = None       # BaselineAgentResult
    history_result: Optional[Any] = None        # HistoryAgentResult
    snapshot_result: Optional[Any] = None       # SnapshotAgentResult
    maintenance_result: Optional[Any] = None    # MaintenanceAgentResult
    cost_projection: Optional[Dict[str, Any]] = None   # dryrun-cost output

    # ── Pipeline metadata ──────────────────────────────────────────────────────
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    phase_log: List[PhaseRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    # Set by the SIGTERM handler; agents check it between countries
    stop_requested: bool = False

    def log_phase_start(self, phase_name: str) -> PhaseRecord:
        """Record the start of a pipeline phase."""
        record = PhaseRecord(phase_name=phase_name, start_time=datetime.now(timezone.utc))
        self.phase_log.append(record)
        return record

    def log_phase_end(self, record: PhaseRecord, status: str = "OK") -> None:
        record.end_time = datetime.now(timezone.utc)
        record.status = status

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    @property
    def baselines_dir(self) -> Path:
        return self.data_root / BASELINES_SUBDIR

    @property
    def history_dir(self) -> Path:
        return self.data_root / HISTORY_SUBDIR
