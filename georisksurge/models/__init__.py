"""GeoRiskSurge data models package.

All agent input/output schemas are defined here as typed dataclasses.
"""

from georisksurge.models.baseline import (
    BaselineAgentResult,
    BaselineStats,
    CalmestWindow,
    CostEstimate,
)
from georisksurge.models.history import (
    AssemblyStats,
    CountryHistory,
    HistoryAgentResult,
    MaintenanceAgentResult,
    SnapshotAgentResult,
)
from georisksurge.models.pipeline import AgentResult, PhaseRecord, PipelineContext
from georisksurge.models.surge import (
    LEVEL_RANK,
    BaselineMode,
    PeriodRow,
    RSurge,
    SurgeLevel,
    SurgeReason,
    SurgeResult,
    level_rank,
)

__all__ = [
    # baseline
    "BaselineAgentResult",
    "BaselineStats",
    "CalmestWindow",
    "CostEstimate",
    # history
    "AssemblyStats",
    "CountryHistory",
    "HistoryAgentResult",
    "MaintenanceAgentResult",
    "SnapshotAgentResult",
    # pipeline
    "AgentResult",
    "PhaseRecord",
    "PipelineContext",
    # surge
    "LEVEL_RANK",
    "BaselineMode",
    "PeriodRow",
    "RSurge",
    "SurgeLevel",
    "SurgeReason",
    "SurgeResult",
    "level_rank",
]
