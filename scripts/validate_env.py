#!/usr/bin/env python3
"""GeoRiskSurge: pre-flight environment validation.

Checks, in order:
  python     interpreter is 3.10+
  packages   runtime dependencies import
  modules    georisksurge and config modules import
  env        credentials file and billing project
  config     scoring.json and r_definitions.json load
  data root  DATA_ROOT is writable
  bigquery   SELECT 1 dry run (zero bytes billed), skipped with --skip-network

Usage:
    python scripts/validate_env.py
    python scripts/validate_env.py --skip-network
"""

from __future__ import annotations

import argparse
import importlib
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from dotenv import load_dotenv  # noqa: E402

# (passed, message); passed=None marks an advisory warning
Check = Tuple[Optional[bool], str]

_MARKS = {
    True: ("\033[32m", "PASS"),
    False: ("\033[31m", "FAIL"),
    None: ("\033[33m", "WARN"),
}
_RESET = "\033[0m"


def format_check(check: Check) -> str:
    colour, label = _MARKS[check[0]]
    return f"  {colour}{label}{_RESET}  {check[1]}"


# ── Checks ──────────────────────────────────────────────────────────────────────

def check_python_version() -> Check:
    found = ".".join(str(part) for part in sys.version_info[:3])
    if sys.version_info[:2] < (3, 10):
        return False, f"Python {found}; GeoRiskSurge needs 3.10 or newer"
    return True, f"Python {found}"


def check_package_imports() -> List[Check]:
    """Import each runtime dependency; pytest is advisory."""
    required = {
        "google.cloud.bigquery": "google-cloud-bigquery",
        "google.api_core": "google-api-core",
        "google.auth": "google-auth",
        "dotenv": "python-dotenv",
        "dateutil": "python-dateutil",
        "yaml": "PyYAML",
    }
    results: List[Check] = []
    for module_name, dist in required.items():
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            results.append((False, f"{dist} missing (pip install {dist})"))
        else:
            results.append((True, f"{dist} {getattr(module, '__version__', '')}".rstrip()))

    try:
        importlib.import_module("pytest")
    except ImportError:
        results.append((None, "pytest missing; install the test extra to run tests"))
    else:
        results.append((True, "pytest"))
    return results


def check_module_imports() -> List[Check]:
    """Verify the package modules import cleanly."""
    modules = [
        "config.defaults",
        "config.settings",
        "georisksurge.models.surge",
        "georisksurge.analysis.surge_engine",
        "georisksurge.analysis.baseline_stats",
        "georisksurge.analysis.history_assembler",
        "georisksurge.analysis.query_builder",
        "georisksurge.clients.bigquery_client",
        "georisksurge.io.history_store",
        "georisksurge.pipeline",
    ]
    results: List[Check] = []
    for module in modules:
        try:
            importlib.import_module(module)
            results.append((True, module))
        except ImportError as exc:
            results.append((False, f"{module}: {exc}"))
    return results


def check_env_vars() -> List[Check]:
    """Check the environment variables the pipeline reads."""
    load_dotenv()
    results: List[Check] = []

    creds = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if not creds:
        results.append((None, "GOOGLE_APPLICATION_CREDENTIALS: not set (gcloud ADC will be tried)"))
    elif Path(creds).is_file():
        results.append((True, f"GOOGLE_APPLICATION_CREDENTIALS = {creds}"))
    else:
        results.append((False, f"GOOGLE_APPLICATION_CREDENTIALS points to a missing file: {creds}"))

    project = os.getenv("BQ_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT")
    if project:
        results.append((True, f"Billing project = {project!r}"))
    else:
        results.append((None, "BQ_PROJECT_ID / GOOGLE_CLOUD_PROJECT: not set (inferred from credentials)"))

    results.append((True, f"DATA_ROOT = {os.getenv('DATA_ROOT', 'public/data')!r}"))
    results.append((True, f"LOG_LEVEL = {os.getenv('LOG_LEVEL', 'INFO')!r}"))
    return results


def check_config_documents() -> List[Check]:
    """Load scoring.json and r_definitions.json through the real loaders."""
    from config.defaults import R_DEFINITIONS_PATH, SCORING_CONFIG_PATH
    from config.settings import ConfigurationError, load_r_definitions, load_scoring_config

    results: List[Check] = []
    try:
        scoring = load_scoring_config(_ROOT / SCORING_CONFIG_PATH)
        t = scoring.thresholds
        results.append((True, f"scoring.json: thresholds {t.yellow}/{t.orange}/{t.red}, k={scoring.smoothing_k}"))
    except ConfigurationError as exc:
        results.append((False, f"scoring.json: {exc}"))
    try:
        definitions = load_r_definitions(_ROOT / R_DEFINITIONS_PATH)
        results.append((True, f"r_definitions.json: {', '.join(sorted(definitions))}"))
    except ConfigurationError as exc:
        results.append((False, f"r_definitions.json: {exc}"))
    return results


def check_data_root() -> Check:
    """Verify the data root directory is writable."""
    load_dotenv()
    data_root = Path(os.getenv("DATA_ROOT", "public/data"))
    if not data_root.is_absolute():
        data_root = _ROOT / data_root
    try:
        data_root.mkdir(parents=True, exist_ok=True)
        probe = data_root / ".write_test"
        probe.write_text("ok")
        probe.unlink()
        return True, f"Data root writable: {data_root}"
    except OSError as exc:
        return False, f"Data root not writable ({data_root}): {exc}"


def check_bigquery() -> Check:
    """Dry-run ``SELECT 1`` to confirm credentials and project access."""
    from georisksurge.clients.bigquery_client import BigQueryClient, QueryFailedError

    load_dotenv()
    project = os.getenv("BQ_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT")
    try:
        with BigQueryClient(project=project, max_retries=0) as client:
            client.dry_run("SELECT 1")
    except QueryFailedError as exc:
        return False, f"BigQuery dry run failed: {exc}"
    return True, "BigQuery dry run succeeded"




# ── Report ───────────────────────────────────────────────────────────────────────

def run_checks(skip_network: bool = False) -> List[Tuple[str, List[Check]]]:
    """Run every check group and return (group title, results) pairs."""
    groups: List[Tuple[str, Callable[[], Sequence[Check]]]] = [
        ("python", lambda: [check_python_version()]),
        ("packages", check_package_imports),
        ("modules", check_module_imports),
        ("env", check_env_vars),
        ("config", check_config_documents),
        ("data root", lambda: [check_data_root()]),
    ]
    if skip_network:
        groups.append(("bigquery", lambda: [(None, "skipped (--skip-network)")]))
    else:
        groups.append(("bigquery", lambda: [check_bigquery()]))
    return [(title, list(run())) for title, run in groups]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="GeoRiskSurge: pre-flight environment validation")
    parser.add_argument("--skip-network", action="store_true", help="Skip the BigQuery dry run")
    args = parser.parse_args(argv)

    failures = 0
    for title, results in run_checks(skip_network=args.skip_network):
        print(f"\n[{title}]")
        for check in results:
            print(format_check(check))
            failures += check[0] is False

    if failures:
        print(f"\n{failures} check(s) failed; fix them before running the pipeline.")
        return 1
    print("\nEnvironment ready.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
