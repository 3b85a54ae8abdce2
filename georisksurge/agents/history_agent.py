"""HistoryAgent: build the per-country weekly surge history artifacts.

Row sources, first match wins:
- a ``row_source(start, end)`` callable handed to the agent
- PipelineConfig.rows_path, a JSON list of rows (or ``{"rows": [...]}``)
- the weekly R-count query against BigQuery

Outputs under ``<data_root>/history/weekly_5y/``:
- ``{ISO2}.json`` per country, written atomically in ISO-2 order
- ``index.json`` summarising every country and the covered week range

Merge mode overlays new weeks onto existing artifacts. Backfill mode walks
the window one ISO year at a time, checkpointing finished years in
``.backfill_state.json`` so an interrupted run resumes where it stopped.
A stop request between countries ends the run without touching index.json.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from config.defaults import CALMEST_BASELINES_FILENAME, R_BASELINES_FILENAME
from config.settings import RDefinition
from georisksurge.agents.base import AgentStatus, BaseAgent
from georisksurge.analysis.first_lit import compute_first_lit
from georisksurge.analysis.history_assembler import assemble_history
from georisksurge.analysis.query_builder import QueryBuilder
from georisksurge.clients.bigquery_client import (
    BigQueryClient,
    BudgetExceededError,
    QueryFailedError,
)
from georisksurge.io.history_store import (
    build_index,
    clear_backfill_state,
    load_backfill_state,
    load_country_history,
    merge_history_entries,
    refresh_index,
    save_backfill_state,
    utc_now_iso,
    write_country_history,
    write_index,
)
from georisksurge.io.persistence import load_json
from georisksurge.models.history import AssemblyStats, CountryHistory, HistoryAgentResult
from georisksurge.utils.date_utils import (
    iso_week_bounds,
    iso_week_label,
    last_completed_iso_week,
    shift_weeks,
    year_chunks,
)
from georisksurge.utils.geo_utils import load_country_name_map

logger = logging.getLogger(__name__)

RowSource = Callable[[date, date], Iterable[Mapping[str, Any]]]


class RowSourceError(Exception):
    """Raised when the configured row source cannot be read."""


def resolve_week_window(cfg: Any, today: Optional[date] = None) -> Tuple[str, str]:
    """Return (start_week, end_week) labels for a history run.

    The end week defaults to the last fully elapsed ISO week; the start week
    defaults to ``weeks - 1`` weeks before it.
    """
    if cfg.end_date:
        end_week = iso_week_label(cfg.end_date)
    else:
        end_week = iso_week_label(last_completed_iso_week(today or date.today())[0])
    if cfg.start_date:
        start_week = iso_week_label(cfg.start_date)
    else:
        start_week = shift_weeks(end_week, -(cfg.weeks - 1))
    return start_week, end_week


def load_baseline_maps(baselines_dir: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Read (calmest ``countries``, 5-year per-R ``baselines``) from disk.

    Missing artifacts yield empty maps; the surge engine then substitutes the
    default median.
    """
    calmest_doc = load_json(baselines_dir / CALMEST_BASELINES_FILENAME) or {}
    r_doc = load_json(baselines_dir / R_BASELINES_FILENAME) or {}
    calmest = calmest_doc.get("countries") or {}
    r_baselines = r_doc.get("baselines") or r_doc.get("countries") or {}
    return calmest, r_baselines


def _add_stats(total: AssemblyStats, part: AssemblyStats) -> None:
    for key, value in part.as_dict().items():
        setattr(total, key, getattr(total, key) + value)


class HistoryAgent(BaseAgent):
    """Assemble weekly surge histories and write them per country.

    Args:
        client: BigQueryClient for the weekly query; built from the config
            (and closed afterwards) when needed and not supplied.
        r_definitions: Per-R selectors for the weekly query.
        row_source: Optional callable returning rows for (start, end) dates.
    """

    name = "HistoryAgent"
    version = "1.0.0"

    def __init__(
        self,
        client: Optional[BigQueryClient] = None,
        r_definitions: Optional[Mapping[str, RDefinition]] = None,
        row_source: Optional[RowSource] = None,
    ) -> None:
        self._client = client
        self._owns_client = False
        self._r_definitions = r_definitions
        self._row_source = row_source

    def run(self, context: Any) -> HistoryAgentResult:
        """Build history artifacts for the configured window.

        Args:
            context: PipelineContext with config, scoring, and data_root.

        Returns:
            HistoryAgentResult with written/failed countries and counters.
        """
        cfg = context.config
        result = HistoryAgentResult()

        try:
            start_week, end_week = resolve_week_window(cfg)
        except ValueError as exc:
            result.status = AgentStatus.CRITICAL
            result.errors.append(f"Invalid history window: {exc}")
            return result
        if start_week > end_week:
            result.status = AgentStatus.CRITICAL
            result.errors.append(f"History window start {start_week} is after end {end_week}")
            return result
        result.start_week, result.end_week = start_week, end_week

        calmest, r_baselines = load_baseline_maps(context.baselines_dir)
        if not calmest and not r_baselines:
            msg = "No baseline artifacts found; every median falls back to the default"
            logger.warning(msg)
            result.warnings.append(msg)
        names_en = load_country_name_map(cfg.geojson_path)

        try:
            if cfg.backfill:
                self._run_backfill(context, end_week, calmest, r_baselines, names_en, result)
            else:
                self._run_window(context, start_week, end_week, calmest, r_baselines, names_en, result)
        except (BudgetExceededError, QueryFailedError, RowSourceError) as exc:
            logger.error("HistoryAgent: %s", exc)
            result.errors.append(str(exc))
            result.status = AgentStatus.CRITICAL
        finally:
            if self._owns_client and self._client is not None:
                self._client.close()
                self._client = None
                self._owns_client = False

        if result.status == AgentStatus.OK:
            if result.cancelled:
                result.status = AgentStatus.CANCELLED
            elif result.countries_failed:
                result.status = AgentStatus.PARTIAL
        return result

    # ── Modes ──────────────────────────────────────────────────────────────────

    def _run_window(
        self,
        context: Any,
        start_week: str,
        end_week: str,
        calmest: Mapping[str, Any],
        r_baselines: Mapping[str, Any],
        names_en: Mapping[str, str],
        result: HistoryAgentResult,
    ) -> None:
        cfg = context.config
        start_date = iso_week_bounds(start_week)[0]
        end_date = iso_week_bounds(end_week)[1]
        logger.info("HistoryAgent: %s .. %s (%s .. %s)", start_week, end_week, start_date, end_date)

        rows = self._fetch_rows(context, start_date, end_date)
        if cfg.dry_run:
            result.warnings.append("Dry run: estimate only, no artifacts written")
            return
        histories, stats = assemble_history(
            rows,
            context.scoring,
            calmest,
            r_baselines,
            names_en,
            start_week=start_week,
            end_week=end_week,
            target_countries=cfg.target_countries,
            generated_at=utc_now_iso(),
        )
        result.stats = stats
        if not histories:
            result.warnings.append("No rows survived assembly; no country artifacts written")

        written = self._write_histories(context, histories, cfg.merge_existing, result)
        if result.cancelled:
            logger.warning("HistoryAgent: stopped early; index.json left unchanged")
            return

        if cfg.merge_existing:
            refresh_index(context.history_dir)
        else:
            write_index(context.history_dir, build_index(written))
        result.index_written = True

    def _run_backfill(
        self,
        context: Any,
        end_week: str,
        calmest: Mapping[str, Any],
        r_baselines: Mapping[str, Any],
        names_en: Mapping[str, str],
        result: HistoryAgentResult,
    ) -> None:
        cfg = context.config
        history_dir = context.history_dir
        end_date = iso_week_bounds(end_week)[1]
        state = load_backfill_state(history_dir)
        completed = list(state["chunks_completed"])
        if completed:
            logger.info("Resuming backfill; chunks already done: %s", ", ".join(completed))

        for chunk_id, chunk_start, chunk_end in year_chunks(end_date, cfg.years):
            if chunk_id in completed:
                continue
            if context.stop_requested:
                result.cancelled = True
                break

            logger.info("Backfill chunk %s: %s .. %s", chunk_id, chunk_start, chunk_end)
            rows = self._fetch_rows(context, chunk_start, chunk_end)
            if cfg.dry_run:
                continue
            histories, stats = assemble_history(
                rows,
                context.scoring,
                calmest,
                r_baselines,
                names_en,
                start_week=iso_week_label(chunk_start),
                end_week=iso_week_label(chunk_end),
                target_countries=cfg.target_countries,
                generated_at=utc_now_iso(),
            )
            _add_stats(result.stats, stats)

            failed_before = len(result.countries_failed)
            self._write_histories(context, histories, True, result)
            if result.cancelled:
                break
            if len(result.countries_failed) > failed_before:
                logger.error("Backfill chunk %s had write failures; not checkpointed", chunk_id)
                break

            completed.append(chunk_id)
            save_backfill_state(history_dir, {"chunks_completed": completed})
            result.chunks_completed.append(chunk_id)

        if cfg.dry_run:
            result.warnings.append("Dry run: estimate only, no artifacts written")
            return
        if result.cancelled or result.countries_failed:
            logger.warning("Backfill incomplete; index.json left unchanged")
            return

        refresh_index(history_dir)
        clear_backfill_state(history_dir)
        result.index_written = True

    # ── Rows ───────────────────────────────────────────────────────────────────

    def _fetch_rows(self, context: Any, start: date, end: date) -> List[Mapping[str, Any]]:
        cfg = context.config
        if self._row_source is not None:
            return list(self._row_source(start, end))

        if cfg.rows_path:
            data = load_json(cfg.rows_path)
            if isinstance(data, dict):
                data = data.get("rows")
            if not isinstance(data, list):
                raise RowSourceError(f"Rows file {cfg.rows_path} is missing or not a JSON list")
            return data

        if not self._r_definitions:
            raise RowSourceError("R definitions are required for the weekly query")
        if self._client is None:
            self._client = BigQueryClient.from_config(cfg)
            self._owns_client = True
        sql = QueryBuilder(self._r_definitions, cfg.events_table).weekly_counts_sql()
        # The weekly query treats @end_date as exclusive
        params = {"start_date": start.isoformat(), "end_date": (end + timedelta(days=1)).isoformat()}
        rows, _ = self._client.query(sql, params, dry_run_only=cfg.dry_run)
        return rows

    # ── Writing ────────────────────────────────────────────────────────────────

    def _write_histories(
        self,
        context: Any,
        histories: Mapping[str, CountryHistory],
        merge: bool,
        result: HistoryAgentResult,
    ) -> List[CountryHistory]:
        history_dir = context.history_dir
        written: List[CountryHistory] = []

        for iso2 in sorted(histories):
            if context.stop_requested:
                result.cancelled = True
                logger.warning("Stop requested; %d countries not written", len(histories) - len(written))
                break

            history = histories[iso2]
            if merge:
                existing = load_country_history(history_dir, iso2)
                if existing:
                    history.history = merge_history_entries(existing["history"], history.history)
                    history.first_lit = compute_first_lit(history.history)

            try:
                write_country_history(history_dir, history)
            except OSError as exc:
                logger.error("Failed to write %s history: %s", iso2, exc)
                result.countries_failed.append(iso2)
                result.errors.append(f"{iso2}: {exc}")
                continue

            written.append(history)
            if iso2 not in result.countries_written:
                result.countries_written.append(iso2)

        logger.info("Wrote %d country histories to %s", len(written), history_dir)
        return written

    def validate_output(self, result: HistoryAgentResult) -> bool:
        return result.status in (AgentStatus.OK, AgentStatus.PARTIAL)
