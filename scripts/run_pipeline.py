#!/usr/bin/env python3
"""GeoRiskSurge CLI: build baselines, weekly histories, and the latest snapshot.

Usage:
    python scripts/run_pipeline.py baselines --kind country --kind r --max_gb 200
    python scripts/run_pipeline.py history --weeks 260 --countries US JP
    python scripts/run_pipeline.py history --backfill --years 5
    python scripts/run_pipeline.py history --rows-file rows.json --merge
    python scripts/run_pipeline.py snapshot
    python scripts/run_pipeline.py refresh-gating
    python scripts/run_pipeline.py dedupe
    python scripts/run_pipeline.py dryrun-cost --start 2025-01-06 --weeks 52
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is on sys.path for consistent import resolution
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from config.defaults import (  # noqa: E402
    BASELINE_KINDS,
    BASELINE_YEARS,
    DATA_ROOT,
    DEFAULT_LOG_LEVEL,
    EVENTS_TABLE,
    FREE_TIB,
    HISTORY_WEEKS,
    MAX_SCAN_GB,
    PRICE_PER_TIB,
    R_DEFINITIONS_PATH,
    SCORING_CONFIG_PATH,
)
from config.settings import PipelineConfig  # noqa: E402
from georisksurge.pipeline import COMMANDS, run_command  # noqa: E402
from georisksurge.utils.date_utils import normalize_date_str  # noqa: E402
from georisksurge.utils.logging_utils import configure_logging  # noqa: E402


def _date_arg(value: str) -> str:
    try:
        return normalize_date_str(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the argparse parser: one positional command plus shared flags."""
    parser = argparse.ArgumentParser(
        prog="run_pipeline",
        description="GeoRiskSurge: weekly country-risk surge signals from GDELT events",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("command", choices=COMMANDS, help="Pipeline command to run")

    # ── Window ──────────────────────────────────────────────────────────────────
    parser.add_argument("--start", type=_date_arg, default=None, help="Window start (YYYY-MM-DD)")
    parser.add_argument("--end", type=_date_arg, default=None, help="Window end (YYYY-MM-DD)")
    parser.add_argument("--weeks", type=int, default=HISTORY_WEEKS, help="ISO weeks in a history build")
    parser.add_argument("--years", type=int, default=BASELINE_YEARS, help="Years in a baseline window or backfill")

    # ── Baselines ───────────────────────────────────────────────────────────────
    parser.add_argument(
        "--kind",
        action="append",
        choices=list(BASELINE_KINDS),
        default=None,
        help="Baseline kind to build (repeatable; default: all)",
    )

    # ── BigQuery ────────────────────────────────────────────────────────────────
    parser.add_argument("--table", type=str, default=EVENTS_TABLE, help="GDELT events table")
    parser.add_argument("--max_gb", type=float, default=MAX_SCAN_GB, help="Abort when a scan exceeds this many GiB")
    parser.add_argument("--max_usd", type=float, default=None, help="Abort when a scan costs more than this")
    parser.add_argument("--dry-run", action="store_true", default=False, help="Estimate cost only; write nothing")
    parser.add_argument("--price", type=float, default=PRICE_PER_TIB, help="USD per TiB scanned")
    parser.add_argument("--free_tib", type=float, default=FREE_TIB, help="Free-tier TiB for dryrun-cost")

    # ── History ─────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--countries",
        type=str,
        nargs="*",
        default=[],
        metavar="ISO2",
        help="Restrict to these ISO-2 countries",
    )
    parser.add_argument("--merge", action="store_true", default=False, help="Merge into existing histories")
    parser.add_argument("--backfill", action="store_true", default=False, help="Chunked yearly backfill")
    parser.add_argument("--rows-file", type=str, default=None, help="JSON rows file instead of BigQuery")

    # ── Config, output, and logging ─────────────────────────────────────────────
    parser.add_argument("--scoring", type=str, default=SCORING_CONFIG_PATH, help="scoring.json path")
    parser.add_argument("--r-definitions", type=str, default=R_DEFINITIONS_PATH, help="r_definitions.json path")
    parser.add_argument("--static-dataset", type=str, default=None, help="Static country dataset JSON")
    parser.add_argument("--data-root", type=str, default=None, help=f"Output root (env DATA_ROOT, else {DATA_ROOT})")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging verbosity (env LOG_LEVEL, else {DEFAULT_LOG_LEVEL})",
    )
    return parser


def args_to_config(args: argparse.Namespace) -> PipelineConfig:
    """Convert parsed CLI arguments to a PipelineConfig instance."""
    overrides = {}
    if args.data_root:
        overrides["data_root"] = args.data_root
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.kind:
        overrides["baseline_kinds"] = list(dict.fromkeys(args.kind))

    return PipelineConfig(
        start_date=args.start,
        end_date=args.end,
        weeks=args.weeks,
        years=args.years,
        target_countries=list(args.countries or []),
        merge_existing=args.merge,
        backfill=args.backfill,
        rows_path=args.rows_file,
        scoring_config_path=args.scoring,
        r_definitions_path=args.r_definitions,
        static_dataset_path=args.static_dataset,
        events_table=args.table,
        max_gb=args.max_gb,
        max_usd=args.max_usd,
        price_per_tib=args.price,
        free_tib=args.free_tib,
        dry_run=args.dry_run,
        **overrides,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint: parse arguments, build config, run one command."""
    parser = build_arg_parser()
    try:
        args = parser.parse_args(argv)
        try:
            config = args_to_config(args)
        except ValueError as exc:
            parser.error(str(exc))
    except SystemExit as exc:
        # argparse exits 2 on usage errors; the CLI contract is 0/1
        return 0 if exc.code in (0, None) else 1

    configure_logging(log_level=config.log_level)
    logger = logging.getLogger("run_pipeline")
    logger.info("GeoRiskSurge %s starting", args.command)

    try:
        return run_command(args.command, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
