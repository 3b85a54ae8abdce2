"""SnapshotAgent: emit latest_v4.json from the stored weekly histories.

Each country's newest history entry is copied as-is next to its static
fields (name_ja, population, gdp_nominal). Nothing is recomputed. The
snapshot's ``week`` is the newest week present across all countries.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from config.defaults import COUNTRY_BASELINES_FILENAME, SNAPSHOT_FILENAME
from georisksurge.agents.base import AgentStatus, BaseAgent
from georisksurge.io.history_store import load_static_countries, read_histories, utc_now_iso
from georisksurge.io.persistence import load_json, save_json
from georisksurge.models.history import SnapshotAgentResult

logger = logging.getLogger(__name__)


class SnapshotAgent(BaseAgent):
    """Write the latest-week snapshot consumed by the map frontend."""

    name = "SnapshotAgent"
    version = "1.0.0"

    def run(self, context: Any) -> SnapshotAgentResult:
        cfg = context.config
        result = SnapshotAgentResult()

        histories = read_histories(context.history_dir)
        if cfg.target_countries:
            histories = [h for h in histories if h.iso2 in cfg.target_countries]
        if not histories:
            result.status = AgentStatus.CRITICAL
            result.errors.append(f"No history artifacts found in {context.history_dir}")
            return result

        static = load_static_countries(cfg.static_dataset_path)
        if not static:
            baseline_doc = load_json(context.baselines_dir / COUNTRY_BASELINES_FILENAME) or {}
            static = baseline_doc.get("countries") or {}
            if not static:
                result.warnings.append("No static dataset; name_ja and basics left empty")

        countries: Dict[str, Dict[str, Any]] = {}
        latest_week = None
        for history in histories:
            if not history.history:
                continue
            latest = history.history[-1]
            info = static.get(history.iso2) or {}
            basics = info.get("basics") or {}
            countries[history.iso2] = {
                "iso2": history.iso2,
                "name_en": history.name_en or info.get("name_en") or history.iso2,
                "name_ja": info.get("name_ja") or "",
                "population": basics.get("population"),
                "gdp_nominal": basics.get("gdp_nominal"),
                "weeks_total": history.weeks_total,
                **latest,
            }
            week = latest.get("week")
            if week and (latest_week is None or week > latest_week):
                latest_week = week

        snapshot = {
            "generated_at": utc_now_iso(),
            "week": latest_week,
            "country_count": len(countries),
            "countries": countries,
        }
        path = context.data_root / SNAPSHOT_FILENAME
        try:
            save_json(snapshot, path)
        except OSError as exc:
            logger.error("Failed to write snapshot %s: %s", path, exc)
            result.status = AgentStatus.CRITICAL
            result.errors.append(f"{path}: {exc}")
            return result

        logger.info("Snapshot %s written: week=%s countries=%d", path, latest_week, len(countries))
        result.path = str(path)
        result.week = latest_week
        result.country_count = len(countries)
        return result
