"""BaselineAgent: build the long-term daily baselines from the GDELT events table.

Three artifact kinds, each selected through PipelineConfig.baseline_kinds:

- ``country``: 5-year per-country daily event statistics
  (``{N}Countries.json``, ``gdelt_5y_baselines.json`` and its ``.meta.json``)
- ``r``: 5-year per-(country, R-type) statistics over a zero-filled grid
  (``gdelt_r_baselines_5y.json``)
- ``calmest``: lowest-median 3-year window per country, 2-year fallback
  (``gdelt_calmest3y_baselines.json`` and its ``.meta.json``)

Every query is dry-run and checked against the scan budget first. A budget
or query failure stops the agent with CRITICAL status and writes nothing
further; artifacts already written for earlier kinds are kept.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Mapping, Optional

from config.defaults import (
    CALMEST_BASELINES_FILENAME,
    CALMEST_BASELINES_META_FILENAME,
    CALMEST_MIN_MEDIAN,
    CALMEST_START_DATE,
    COUNTRY_BASELINES_FILENAME,
    COUNTRY_BASELINES_META_FILENAME,
    R_BASELINES_FILENAME,
)
from config.settings import RDefinition
from georisksurge.agents.base import AgentStatus, BaseAgent
from georisksurge.analysis.baseline_stats import (
    build_calmest_baselines,
    build_country_baselines,
    build_r_baselines,
    collect_daily_by_iso2,
)
from georisksurge.analysis.query_builder import QueryBuilder
from georisksurge.clients.bigquery_client import (
    BigQueryClient,
    BudgetExceededError,
    QueryFailedError,
)
from georisksurge.io.history_store import load_static_countries, utc_now_iso
from georisksurge.io.persistence import save_json
from georisksurge.models.baseline import BaselineAgentResult
from georisksurge.utils.date_utils import parse_date, window_start
from georisksurge.utils.geo_utils import load_country_name_map, log_aggregation_stats

logger = logging.getLogger(__name__)

_KNOWN_KINDS = ("country", "r", "calmest")


class BaselineAgent(BaseAgent):
    """Query daily event statistics and write the baseline artifacts.

    Args:
        client: BigQueryClient to use. When omitted one is built from the
            config and closed when run() returns.
        r_definitions: Per-R selectors used to build every query.
    """

    name = "BaselineAgent"
    version = "1.0.0"

    def __init__(
        self,
        client: Optional[BigQueryClient] = None,
        r_definitions: Optional[Mapping[str, RDefinition]] = None,
    ) -> None:
        self._client = client
        self._r_definitions = r_definitions

    def run(self, context: Any) -> BaselineAgentResult:
        """Build every requested baseline kind.

        Args:
            context: PipelineContext with config and data_root.

        Returns:
            BaselineAgentResult listing files written and cost estimates.
        """
        cfg = context.config
        result = BaselineAgentResult(dry_run=cfg.dry_run)

        kinds = [k for k in cfg.baseline_kinds if k in _KNOWN_KINDS]
        unknown = sorted(set(cfg.baseline_kinds) - set(_KNOWN_KINDS))
        if unknown:
            result.warnings.append(f"Unknown baseline kinds ignored: {', '.join(unknown)}")
        if not kinds:
            result.status = AgentStatus.CRITICAL
            result.errors.append("No baseline kinds requested")
            return result

        end = parse_date(cfg.end_date) if cfg.end_date else date.today()
        start = parse_date(cfg.start_date) if cfg.start_date else window_start(end, cfg.years)
        if start > end:
            result.status = AgentStatus.CRITICAL
            result.errors.append(f"Baseline window start {start} is after end {end}")
            return result

        if not self._r_definitions:
            result.status = AgentStatus.CRITICAL
            result.errors.append("R definitions are required to build baselines")
            return result
        builder = QueryBuilder(self._r_definitions, cfg.events_table)

        owns_client = self._client is None
        client = self._client or BigQueryClient.from_config(cfg)
        names_en = load_country_name_map(cfg.geojson_path)

        try:
            for kind in kinds:
                if getattr(context, "stop_requested", False):
                    result.status = AgentStatus.CANCELLED
                    result.warnings.append(f"Stopped before the {kind} baseline")
                    break
                logger.info("BaselineAgent: building %s baseline (%s .. %s)", kind, start, end)
                if kind == "country":
                    self._build_country(context, client, builder, start, end, names_en, result)
                elif kind == "r":
                    self._build_r(context, client, builder, start, end, result)
                else:
                    self._build_calmest(context, client, builder, end, names_en, result)
                result.kinds.append(kind)
        except BudgetExceededError as exc:
            logger.error("BaselineAgent: %s", exc)
            result.errors.append(str(exc))
            result.status = AgentStatus.CRITICAL
        except QueryFailedError as exc:
            logger.error("BaselineAgent: query failed: %s", exc)
            result.errors.append(str(exc))
            result.status = AgentStatus.CRITICAL
        finally:
            if owns_client:
                client.close()

        return result

    # ── Kinds ──────────────────────────────────────────────────────────────────

    def _build_country(
        self,
        context: Any,
        client: BigQueryClient,
        builder: QueryBuilder,
        start: date,
        end: date,
        names_en: Mapping[str, str],
        result: BaselineAgentResult,
    ) -> None:
        cfg = context.config
        rows, estimate = client.query(
            builder.country_baseline_sql(),
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
            dry_run_only=cfg.dry_run,
        )
        result.cost_estimates["country"] = estimate
        if cfg.dry_run:
            return

        countries, stats = build_country_baselines(
            rows, names_en, load_static_countries(cfg.static_dataset_path)
        )
        log_aggregation_stats(stats, "country baseline")
        result.aggregation_stats["country"] = stats.as_dict()
        result.country_counts["country"] = len(countries)
        if not countries:
            result.warnings.append("Country baseline query returned no mappable rows")

        generated_at = utc_now_iso()
        doc = {
            "meta": {
                "version": "v1",
                "generated_at": generated_at,
                "country_count": len(countries),
                "window": {
                    "years": cfg.years,
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                },
                "sources": {
                    "gdelt_events": {"table": cfg.events_table, "metric": "events_per_day"},
                },
                "cost_estimate": estimate.to_dict(),
            },
            "countries": countries,
        }

        out_dir = context.baselines_dir
        versioned = f"{len(countries)}Countries.json"
        save_json(doc, out_dir / versioned)
        save_json(doc, out_dir / COUNTRY_BASELINES_FILENAME)
        save_json(
            {"latest_file": versioned, "generated_at": generated_at, "country_count": len(countries)},
            out_dir / COUNTRY_BASELINES_META_FILENAME,
        )
        result.files_written.extend(
            str(out_dir / name)
            for name in (versioned, COUNTRY_BASELINES_FILENAME, COUNTRY_BASELINES_META_FILENAME)
        )
        logger.info("Country baseline written for %d countries", len(countries))

    def _build_r(
        self,
        context: Any,
        client: BigQueryClient,
        builder: QueryBuilder,
        start: date,
        end: date,
        result: BaselineAgentResult,
    ) -> None:
        cfg = context.config
        rows, estimate = client.query(
            builder.r_baseline_sql(),
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
            dry_run_only=cfg.dry_run,
        )
        result.cost_estimates["r"] = estimate
        if cfg.dry_run:
            return

        baselines = build_r_baselines(rows)
        result.country_counts["r"] = len(baselines)
        doc = {
            "meta": {
                "baseline_type": "5y",
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "generated_at": utc_now_iso(),
                "country_count": len(baselines),
                "zero_fill": True,
                "query_bytes_processed": estimate.bytes_processed,
                "r_definitions_source": cfg.r_definitions_path,
            },
            "baselines": baselines,
        }
        path = context.baselines_dir / R_BASELINES_FILENAME
        save_json(doc, path)
        result.files_written.append(str(path))
        logger.info("R baseline written for %d countries", len(baselines))

    def _build_calmest(
        self,
        context: Any,
        client: BigQueryClient,
        builder: QueryBuilder,
        end: date,
        names_en: Mapping[str, str],
        result: BaselineAgentResult,
    ) -> None:
        cfg = context.config
        rows, estimate = client.query(
            builder.calmest_daily_sql(),
            {"start_date": CALMEST_START_DATE, "end_date": end.isoformat()},
            dry_run_only=cfg.dry_run,
        )
        result.cost_estimates["calmest"] = estimate
        if cfg.dry_run:
            return

        daily, counters = collect_daily_by_iso2(rows)
        logger.info(
            "Calmest daily rows: mapped=%d excluded=%d dropped=%d",
            counters["mapped"],
            counters["excluded"],
            counters["dropped"],
        )
        result.aggregation_stats["calmest"] = dict(counters)

        countries, adoption = build_calmest_baselines(daily, names_en, CALMEST_MIN_MEDIAN)
        result.adoption = adoption
        result.country_counts["calmest"] = len(countries)
        if adoption["failed"]:
            result.warnings.append(
                f"{adoption['failed']} countries have no calmest window above the median floor"
            )

        generated_at = utc_now_iso()
        doc = {
            "meta": {
                "version": "calmest-v1",
                "generated_at": generated_at,
                "country_count": len(countries),
                "method": "calmest_sliding_window",
                "floor": CALMEST_MIN_MEDIAN,
            },
            "countries": countries,
        }
        out_dir = context.baselines_dir
        save_json(doc, out_dir / CALMEST_BASELINES_FILENAME)
        save_json(
            {"latest_file": CALMEST_BASELINES_FILENAME, "generated_at": generated_at, "stats": adoption},
            out_dir / CALMEST_BASELINES_META_FILENAME,
        )
        result.files_written.extend(
            str(out_dir / name) for name in (CALMEST_BASELINES_FILENAME, CALMEST_BASELINES_META_FILENAME)
        )
        logger.info(
            "Calmest baseline written: %d countries (3y=%d, 2y=%d, failed=%d)",
            len(countries),
            adoption["target3y"],
            adoption["fallback2y"],
            adoption["failed"],
        )

    def validate_output(self, result: BaselineAgentResult) -> bool:
        return result.status != AgentStatus.CRITICAL
