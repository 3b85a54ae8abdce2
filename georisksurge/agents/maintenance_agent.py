"""Maintenance agents for stored weekly history artifacts.

GatingRefreshAgent re-evaluates the gating flags of every stored entry with
the current scoring config without touching levels. DedupeAgent merges
entries sharing a week, re-runs the surge engine on the merged counts, and
refreshes index.json. Both rewrite only the files they change.
"""

from __future__ import annotations

import logging
from itertools import groupby
from pathlib import Path
from typing import Any, Dict, List, Mapping

from config.defaults import R_TYPES
from config.settings import ScoringConfig
from georisksurge.agents.base import AgentStatus, BaseAgent
from georisksurge.analysis.first_lit import compute_first_lit
from georisksurge.analysis.surge_engine import compute_surge, refresh_gating, weekly_surge_meta
from georisksurge.io.history_store import refresh_index, utc_now_iso
from georisksurge.io.persistence import list_country_files, load_json, save_json
from georisksurge.models.history import MaintenanceAgentResult
from georisksurge.models.surge import PeriodRow

logger = logging.getLogger(__name__)


def _load_artifact(path: Path, result: MaintenanceAgentResult) -> Dict[str, Any] | None:
    data = load_json(path)
    if not isinstance(data, dict) or not isinstance(data.get("history"), list):
        msg = f"Skipping unreadable history artifact {path.name}"
        logger.warning(msg)
        result.warnings.append(msg)
        return None
    return data


def _save_artifact(data: Dict[str, Any], path: Path, result: MaintenanceAgentResult) -> bool:
    try:
        save_json(data, path)
    except OSError as exc:
        logger.error("Failed to rewrite %s: %s", path, exc)
        result.errors.append(f"{path.name}: {exc}")
        return False
    result.files_changed.append(path.name)
    return True


def merge_week_entries(entries: List[Mapping[str, Any]], scoring: ScoringConfig) -> Dict[str, Any]:
    """Merge stored entries sharing one week into a single fresh entry.

    Counts and event_count are summed, days_with_data keeps the largest value,
    and each R's daily median is the first entry's stored baseline7 / 7.
    """
    first = entries[0]
    first_types = first.get("weekly_surge_r_by_type") or {}
    medians = {r: float((first_types.get(r) or {}).get("baseline7") or 0.0) / 7 for r in R_TYPES}

    counts = {r: sum(int((e.get("counts") or {}).get(r) or 0) for e in entries) for r in R_TYPES}
    days = [e["days_with_data"] for e in entries if e.get("days_with_data") is not None]
    row = PeriodRow(
        country="",
        period_id=first["week"],
        counts=counts,
        event_count=sum(int(e.get("event_count") or 0) for e in entries),
        days_with_data=max(days) if days else None,
    )
    surge = compute_surge(row, medians, scoring, first.get("baseline_modes") or {})
    return surge.to_history_entry(weekly_surge_meta(scoring))


class GatingRefreshAgent(BaseAgent):
    """Recompute gating flags on stored history entries in place."""

    name = "GatingRefreshAgent"
    version = "1.0.0"

    def run(self, context: Any) -> MaintenanceAgentResult:
        result = MaintenanceAgentResult(operation="refresh-gating")
        targets = context.config.target_countries

        for path in list_country_files(context.history_dir):
            if targets and path.stem not in targets:
                continue
            if context.stop_requested:
                result.status = AgentStatus.CANCELLED
                break
            data = _load_artifact(path, result)
            if data is None:
                continue
            result.files_scanned += 1

            updated = sum(1 for entry in data["history"] if refresh_gating(entry, context.scoring))
            if updated:
                result.entries_updated += updated
                _save_artifact(data, path, result)

        if result.errors and result.status == AgentStatus.OK:
            result.status = AgentStatus.PARTIAL
        logger.info(
            "Gating refresh: %d files scanned, %d entries updated in %d files",
            result.files_scanned,
            result.entries_updated,
            len(result.files_changed),
        )
        return result


class DedupeAgent(BaseAgent):
    """Collapse duplicate weeks in stored history artifacts."""

    name = "DedupeAgent"
    version = "1.0.0"

    def run(self, context: Any) -> MaintenanceAgentResult:
        result = MaintenanceAgentResult(operation="dedupe")
        targets = context.config.target_countries

        for path in list_country_files(context.history_dir):
            if targets and path.stem not in targets:
                continue
            if context.stop_requested:
                result.status = AgentStatus.CANCELLED
                break
            data = _load_artifact(path, result)
            if data is None:
                continue
            result.files_scanned += 1

            entries = sorted((e for e in data["history"] if e.get("week")), key=lambda e: e["week"])
            deduped: List[Dict[str, Any]] = []
            merged_here = 0
            for _, group in groupby(entries, key=lambda e: e["week"]):
                group = list(group)
                if len(group) == 1:
                    deduped.append(group[0])
                    continue
                merged_here += len(group) - 1
                deduped.append(merge_week_entries(group, context.scoring))

            if not merged_here:
                continue
            logger.info("%s: merged %d duplicate week entries", path.stem, merged_here)
            result.duplicates_merged += merged_here
            data["history"] = deduped
            data["weeks_total"] = len(deduped)
            data["first_lit"] = compute_first_lit(deduped)
            data["deduplicated_at"] = utc_now_iso()
            _save_artifact(data, path, result)

        if result.status != AgentStatus.CANCELLED:
            refresh_index(context.history_dir)
            result.index_written = True
        if result.errors and result.status == AgentStatus.OK:
            result.status = AgentStatus.PARTIAL
        return result
