"""GeoRiskSurge pipeline orchestrator.

Maps each CLI command onto one agent, loads the scoring and R-definition
documents, installs the SIGTERM handler, and converts the outcome into a
process exit code.

Commands:
  baselines       BaselineAgent        country / r / calmest baseline artifacts
  history         HistoryAgent         per-country weekly histories + index.json
  snapshot        SnapshotAgent        latest_v4.json from stored histories
  refresh-gating  GatingRefreshAgent   recompute gating flags in stored histories
  dedupe          DedupeAgent          merge duplicate weeks in stored histories
  dryrun-cost     (no agent)           one-week scan estimate projected over N weeks

Usage:
    from config.settings import PipelineConfig
    from georisksurge.pipeline import run_command

    exit_code = run_command("history", PipelineConfig(weeks=52))
"""

from __future__ import annotations

import logging
import signal
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from config.settings import (
    ConfigurationError,
    PipelineConfig,
    RDefinition,
    load_r_definitions,
    load_scoring_config,
)
from georisksurge.agents.base import AgentStatus, BaseAgent
from georisksurge.agents.baseline_agent import BaselineAgent
from georisksurge.agents.history_agent import HistoryAgent, RowSource
from georisksurge.agents.maintenance_agent import DedupeAgent, GatingRefreshAgent
from georisksurge.agents.snapshot_agent import SnapshotAgent
from georisksurge.analysis.query_builder import QueryBuilder
from georisksurge.clients.bigquery_client import (
    BigQueryClient,
    BudgetExceededError,
    QueryFailedError,
    project_weekly_cost,
)
from georisksurge.models.pipeline import PhaseRecord, PipelineContext
from georisksurge.utils.date_utils import last_completed_iso_week, parse_date
from georisksurge.utils.logging_utils import get_run_logger

logger = logging.getLogger(__name__)

COMMANDS = ("baselines", "history", "snapshot", "refresh-gating", "dedupe", "dryrun-cost")

# Commands whose default row source is the BigQuery events table
_QUERY_COMMANDS = frozenset({"baselines", "history", "dryrun-cost"})

_RESULT_ATTRS = {
    "baselines": "baseline_result",
    "history": "history_result",
    "snapshot": "snapshot_result",
    "refresh-gating": "maintenance_result",
    "dedupe": "maintenance_result",
}


def _make_run_id(command: str) -> str:
    """Return a sortable run ID: ``YYYYMMDD_HHMMSS_<command>``."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{command.replace('-', '_')}"


def _needs_r_definitions(command: str, config: PipelineConfig, row_source: Optional[RowSource]) -> bool:
    if command not in _QUERY_COMMANDS:
        return False
    if command == "history" and (row_source is not None or config.rows_path):
        return False
    return True


def _build_agent(
    command: str,
    client: Optional[BigQueryClient],
    r_definitions: Optional[Mapping[str, RDefinition]],
    row_source: Optional[RowSource],
) -> BaseAgent:
    if command == "baselines":
        return BaselineAgent(client=client, r_definitions=r_definitions)
    if command == "history":
        return HistoryAgent(client=client, r_definitions=r_definitions, row_source=row_source)
    if command == "snapshot":
        return SnapshotAgent()
    if command == "refresh-gating":
        return GatingRefreshAgent()
    return DedupeAgent()


def _run_phase(context: PipelineContext, phase_name: str, agent: BaseAgent, result_attr: str) -> bool:
    """Execute one agent and record its timing, warnings, and errors.

    Returns:
        True when the agent finished with OK status.
    """
    record: PhaseRecord = context.log_phase_start(phase_name)
    logger.info("Pipeline: starting %s", phase_name)

    try:
        result = agent._run_timed(context)
    except Exception as exc:
        context.log_phase_end(record, status=AgentStatus.FAILED)
        logger.exception("Pipeline: %s raised unhandled exception: %s", phase_name, exc)
        context.add_error(f"{phase_name} failed with exception: {exc}")
        return False

    setattr(context, result_attr, result)
    status = getattr(result, "status", AgentStatus.OK)
    context.log_phase_end(record, status=str(status))

    for w in getattr(result, "warnings", []):
        context.add_warning(f"[{phase_name}] {w}")
    for err in getattr(result, "errors", []):
        context.add_error(f"[{phase_name}] {err}")

    if status == AgentStatus.CANCELLED:
        context.add_error(f"{phase_name} cancelled before completion")
    elif status == AgentStatus.CRITICAL and not getattr(result, "errors", None):
        context.add_error(f"{phase_name} CRITICAL")

    logger.info("Pipeline: %s complete (%.1fs, status=%s)", phase_name, record.elapsed_seconds, status)
    return status == AgentStatus.OK


def _dryrun_cost(
    context: PipelineContext,
    client: Optional[BigQueryClient],
    r_definitions: Mapping[str, RDefinition],
) -> Dict[str, Any]:
    """Dry-run the weekly query for one week and project it over ``weeks`` weeks."""
    cfg = context.config
    if cfg.start_date:
        start = parse_date(cfg.start_date)
    else:
        start = last_completed_iso_week(date.today())[0]
    end = parse_date(cfg.end_date) if cfg.end_date else start + timedelta(days=6)

    sql = QueryBuilder(r_definitions, cfg.events_table).weekly_counts_sql()
    params = {"start_date": start.isoformat(), "end_date": (end + timedelta(days=1)).isoformat()}

    owns_client = client is None
    client = client or BigQueryClient.from_config(cfg)
    try:
        estimate = client.dry_run(sql, params)
    finally:
        if owns_client:
            client.close()

    projection = project_weekly_cost(estimate.bytes_processed, cfg.weeks, cfg.price_per_tib, cfg.free_tib)
    projection.update({"start_date": start.isoformat(), "end_date": end.isoformat()})
    logger.info(
        "Weekly scan %s..%s: %.4f TiB; x%d weeks = %.3f TiB, $%.2f ($%.2f after %.1f TiB free tier)",
        start,
        end,
        projection["tib_per_week"],
        cfg.weeks,
        projection["projected_tib"],
        projection["projected_usd"],
        projection["usd_after_free_tier"],
        cfg.free_tib,
    )
    return projection


def run(
    command: str,
    config: PipelineConfig,
    client: Optional[BigQueryClient] = None,
    row_source: Optional[RowSource] = None,
) -> PipelineContext:
    """Execute one pipeline command.

    Args:
        command: One of COMMANDS.
        config: Fully-populated PipelineConfig.
        client: Optional BigQueryClient shared by query commands (tests inject one).
        row_source: Optional history row source overriding the rows file and BigQuery.

    Returns:
        PipelineContext with the command's result, phase log, warnings, and errors.
    """
    if command not in COMMANDS:
        raise ValueError(f"Unknown command {command!r}; expected one of {', '.join(COMMANDS)}")

    run_id = _make_run_id(command)
    context = PipelineContext(config=config, run_id=run_id, data_root=Path(config.data_root))
    context.start_time = datetime.now(timezone.utc)
    run_logger = get_run_logger(__name__, run_id)
    run_logger.info("Starting %s (data_root=%s)", command, context.data_root)

    try:
        context.scoring = load_scoring_config(config.scoring_config_path)
        r_definitions = (
            load_r_definitions(config.r_definitions_path)
            if _needs_r_definitions(command, config, row_source)
            else None
        )
    except ConfigurationError as exc:
        run_logger.error("Configuration error: %s", exc)
        context.add_error(str(exc))
        _finalise(context)
        return context

    def _request_stop(signum: int, frame: object) -> None:  # pragma: no cover
        run_logger.warning("SIGTERM received (signal %d); stopping after the current country", signum)
        context.stop_requested = True

    previous_handler: Optional[Callable[..., Any] | int] = None
    try:
        previous_handler = signal.signal(signal.SIGTERM, _request_stop)
    except ValueError:
        # signal handlers can only be installed from the main thread
        run_logger.debug("SIGTERM handler not installed outside the main thread")

    try:
        if command == "dryrun-cost":
            record = context.log_phase_start("dryrun-cost")
            try:
                context.cost_projection = _dryrun_cost(context, client, r_definitions or {})
                context.log_phase_end(record)
            except (BudgetExceededError, QueryFailedError) as exc:
                context.log_phase_end(record, status=AgentStatus.CRITICAL)
                run_logger.error("dryrun-cost failed: %s", exc)
                context.add_error(str(exc))
        else:
            agent = _build_agent(command, client, r_definitions, row_source)
            _run_phase(context, agent.name, agent, _RESULT_ATTRS[command])
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)

    _finalise(context)
    return context


def run_command(
    command: str,
    config: PipelineConfig,
    client: Optional[BigQueryClient] = None,
    row_source: Optional[RowSource] = None,
) -> int:
    """Run ``command`` and return the process exit code (0 success, 1 failure)."""
    context = run(command, config, client=client, row_source=row_source)
    return 1 if context.errors else 0


def _finalise(context: PipelineContext) -> None:
    """Record the end time and emit a summary log line."""
    context.end_time = datetime.now(timezone.utc)
    elapsed = (context.end_time - context.start_time).total_seconds() if context.start_time else 0.0
    logger.info(
        "Pipeline: run %s finished in %.1fs | phases=%d | warnings=%d | errors=%d",
        context.run_id,
        elapsed,
        len(context.phase_log),
        len(context.warnings),
        len(context.errors),
    )
    for err in context.errors:
        logger.error("Pipeline error: %s", err)
