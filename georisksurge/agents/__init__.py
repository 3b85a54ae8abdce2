"""GeoRiskSurge agents package.

All agents inherit from BaseAgent and operate on PipelineContext.
Agents do not import from each other; shared helpers live in the io,
analysis, and clients packages.
"""

from georisksurge.agents.base import AgentStatus, BaseAgent
from georisksurge.agents.baseline_agent import BaselineAgent
from georisksurge.agents.history_agent import HistoryAgent
from georisksurge.agents.maintenance_agent import DedupeAgent, GatingRefreshAgent
from georisksurge.agents.snapshot_agent import SnapshotAgent

__all__ = [
    "BaseAgent",
    "AgentStatus",
    "BaselineAgent",
    "HistoryAgent",
    "SnapshotAgent",
    "GatingRefreshAgent",
    "DedupeAgent",
]
