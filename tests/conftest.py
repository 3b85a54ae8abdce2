"""Shared pytest fixtures for GeoRiskSurge tests.

- Fixture data lives in tests/fixtures/ as static JSON files
- Scoring and R definitions are loaded from the real config/ documents
- fake_bigquery mocks google.cloud.bigquery.Client; no test reaches BigQuery
- Every file write goes under pytest's tmp_path
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import MagicMock

import pytest

_ROOT = Path(__file__).resolve().parent.parent
_FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _load_fixture(name: str) -> Any:
    with open(_FIXTURES_DIR / name, encoding="utf-8") as f:
        return json.load(f)


# ── Config documents ─────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def scoring():
    """ScoringConfig loaded from config/scoring.json (1.75/2.75/3.75, k=5)."""
    from config.settings import load_scoring_config

    return load_scoring_config(_ROOT / "config" / "scoring.json")


@pytest.fixture(scope="session")
def r_definitions():
    """RDefinition per R-type loaded from config/r_definitions.json."""
    from config.settings import load_r_definitions

    return load_r_definitions(_ROOT / "config" / "r_definitions.json")


# ── Raw fixture data loaders ─────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def weekly_rows() -> List[Dict[str, Any]]:
    """Weekly rows for 2024-W05..W10.

    US: W05 (outside the default window), W07-W09, and a duplicated W10
    JA (Japan): W09 and a Red W10 on default medians
    UK (United Kingdom): W10 with only 3 days of data
    Plus one excluded code (AY), one unknown code (QQ), and two malformed rows.
    """
    return _load_fixture("weekly_rows.json")


@pytest.fixture(scope="session")
def calmest_doc() -> Dict[str, Any]:
    """Calmest baseline artifact with US medians R1=50, R2=20, R3=30, R4=10."""
    return _load_fixture("calmest_baselines.json")


@pytest.fixture(scope="session")
def r_baselines_doc() -> Dict[str, Any]:
    """5-year per-R baseline artifact for GB and US."""
    return _load_fixture("r_baselines.json")


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return _FIXTURES_DIR


# ── Data root and pipeline config ────────────────────────────────────────────────

@pytest.fixture
def data_root(tmp_path) -> Path:
    """Temp data root with the calmest and per-R baseline artifacts in place."""
    from config.defaults import BASELINES_SUBDIR, CALMEST_BASELINES_FILENAME, R_BASELINES_FILENAME

    root = tmp_path / "data"
    baselines = root / BASELINES_SUBDIR
    baselines.mkdir(parents=True)
    shutil.copy(_FIXTURES_DIR / "calmest_baselines.json", baselines / CALMEST_BASELINES_FILENAME)
    shutil.copy(_FIXTURES_DIR / "r_baselines.json", baselines / R_BASELINES_FILENAME)
    return root


@pytest.fixture
def test_pipeline_config(data_root):
    """PipelineConfig for the 2024-W07..W10 window reading the fixture rows file."""
    from config.settings import PipelineConfig

    return PipelineConfig(
        end_date="2024-03-10",
        weeks=4,
        rows_path=str(_FIXTURES_DIR / "weekly_rows.json"),
        scoring_config_path=str(_ROOT / "config" / "scoring.json"),
        r_definitions_path=str(_ROOT / "config" / "r_definitions.json"),
        geojson_path=str(_FIXTURES_DIR / "countries.geojson"),
        static_dataset_path=str(_FIXTURES_DIR / "static_countries.json"),
        bq_project_id="test-project",
        data_root=str(data_root),
        log_level="WARNING",
    )


@pytest.fixture
def test_pipeline_context(test_pipeline_config, scoring):
    """PipelineContext wired to the temp data root."""
    from georisksurge.models.pipeline import PipelineContext

    return PipelineContext(
        config=test_pipeline_config,
        run_id="20240311_030000_test",
        data_root=Path(test_pipeline_config.data_root),
        scoring=scoring,
    )


@pytest.fixture
def stored_histories(test_pipeline_context, weekly_rows, scoring, calmest_doc, r_baselines_doc):
    """Assemble the fixture rows for W07..W10 and write one artifact per country.

    Returns the {ISO2: CountryHistory} map that was written.
    """
    from georisksurge.analysis.history_assembler import assemble_history
    from georisksurge.io.history_store import refresh_index, write_country_history

    histories, _ = assemble_history(
        weekly_rows,
        scoring,
        calmest_doc["countries"],
        r_baselines_doc["baselines"],
        {"US": "United States of America", "JP": "Japan", "GB": "United Kingdom"},
        start_week="2024-W07",
        end_week="2024-W10",
        generated_at="2024-03-11T03:00:00Z",
    )
    history_dir = test_pipeline_context.history_dir
    for history in histories.values():
        write_country_history(history_dir, history)
    refresh_index(history_dir)
    return histories


# ── Mock BigQuery ────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_bigquery():
    """Factory for a BigQueryClient backed by a MagicMock bigquery.Client.

    Usage:
        client = fake_bigquery({"iso_week": rows}, bytes_processed=2 * 1024 ** 3)

    ``responses`` maps a substring of the SQL text to the rows returned when
    that query executes. Dry runs report ``bytes_processed``. The mock is
    exposed as ``client.mock`` for call assertions.
    """
    from google.cloud import bigquery

    from georisksurge.clients.bigquery_client import BigQueryClient

    def _factory(
        responses: Optional[Mapping[str, List[Dict[str, Any]]]] = None,
        bytes_processed: int = 1024 ** 3,
        **client_kwargs: Any,
    ) -> BigQueryClient:
        responses = responses or {}
        mock = MagicMock(spec=bigquery.Client)

        def _query(sql, job_config=None):
            job = MagicMock()
            job.total_bytes_processed = bytes_processed
            rows: List[Dict[str, Any]] = []
            for marker, marker_rows in responses.items():
                if marker in sql:
                    rows = marker_rows
                    break
            job.result.return_value = [dict(r) for r in rows]
            return job

        mock.query.side_effect = _query
        client_kwargs.setdefault("backoff_base", 0.0)
        client_kwargs.setdefault("backoff_jitter", 0.0)
        client = BigQueryClient(project="test-project", client=mock, **client_kwargs)
        client.mock = mock
        return client

    return _factory
