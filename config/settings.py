"""GeoRiskSurge: PipelineConfig, scoring configuration, and R-type definitions.

All runtime configuration flows through PipelineConfig. The surge thresholds
live in ScoringConfig, which is loaded once from config/scoring.json and then
injected into the pure surge engine. Credentials come exclusively from
environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from config.defaults import (
    ABS_FLOORS,
    ABS_SHARES,
    BASELINE_KINDS,
    BASELINE_YEARS,
    BQ_BACKOFF_BASE,
    BQ_BACKOFF_JITTER,
    BQ_MAX_RETRIES,
    DATA_ROOT,
    DEFAULT_LOG_LEVEL,
    EVENTS_TABLE,
    FREE_TIB,
    GEOJSON_PATH,
    HIGH_VOLUME_FLOOR,
    HISTORY_WEEKS,
    MAX_SCAN_GB,
    MIN_BASELINE_MEDIAN_FOR_SURGE,
    PRICE_PER_TIB,
    R_CONFIG_SECTIONS,
    R_DEFINITIONS_PATH,
    R_TYPES,
    RATIO_THRESHOLDS,
    SCORING_CONFIG_PATH,
    SMOOTHING_K,
    SURGE_ORANGE,
    SURGE_RED,
    SURGE_YELLOW,
)

# Load .env file if present; silently skip if missing
load_dotenv()


class ConfigurationError(Exception):
    """Raised when a configuration document is missing, malformed, or inconsistent."""


@dataclass
class SurgeThresholds:
    """ratio7 cut-offs for the Yellow / Orange / Red levels."""

    yellow: float = SURGE_YELLOW
    orange: float = SURGE_ORANGE
    red: float = SURGE_RED

    def __post_init__(self) -> None:
        if not (0 < self.yellow <= self.orange <= self.red):
            raise ValueError(
                "SurgeThresholds must satisfy 0 < yellow <= orange <= red, got "
                f"{self.yellow}/{self.orange}/{self.red}"
            )

    def as_dict(self) -> Dict[str, float]:
        return {"yellow": self.yellow, "orange": self.orange, "red": self.red}


@dataclass
class ScoringConfig:
    """Threshold struct injected into the surge engine.

    Mirrors the recognised keys of scoring.json. Unknown keys are ignored and
    missing keys take the defaults from config/defaults.py.
    """

    thresholds: SurgeThresholds = field(default_factory=SurgeThresholds)
    smoothing_k: float = SMOOTHING_K
    high_volume_floor: int = HIGH_VOLUME_FLOOR
    min_baseline_median_for_surge: float = MIN_BASELINE_MEDIAN_FOR_SURGE
    abs_floors: Dict[str, float] = field(default_factory=lambda: dict(ABS_FLOORS))
    abs_shares: Dict[str, float] = field(default_factory=lambda: dict(ABS_SHARES))
    ratio_thresholds: Dict[str, float] = field(default_factory=lambda: dict(RATIO_THRESHOLDS))

    def __post_init__(self) -> None:
        if self.smoothing_k < 0:
            raise ValueError(f"smoothing_k must be non-negative, got {self.smoothing_k}")
        # Fill any R-type left out of a partial override
        for r in R_TYPES:
            self.abs_floors.setdefault(r, ABS_FLOORS[r])
            self.abs_shares.setdefault(r, ABS_SHARES[r])
            self.ratio_thresholds.setdefault(r, RATIO_THRESHOLDS[r])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoringConfig":
        """Build a ScoringConfig from a parsed scoring.json document.

        Args:
            data: Parsed JSON object.

        Returns:
            ScoringConfig with defaults for every key the document omits.
        """
        surge = data.get("surge_r") or {}
        raw_thresholds = surge.get("thresholds") or {}
        thresholds = SurgeThresholds(
            yellow=float(raw_thresholds.get("yellow", SURGE_YELLOW)),
            orange=float(raw_thresholds.get("orange", SURGE_ORANGE)),
            red=float(raw_thresholds.get("red", SURGE_RED)),
        )

        low_abs = (data.get("gating") or {}).get("low_abs") or {}
        floors = low_abs.get("floors") or {}
        shares = low_abs.get("shares") or {}

        ratio_thresholds: Dict[str, float] = {}
        for r, section in R_CONFIG_SECTIONS.items():
            section_cfg = data.get(section) or {}
            ratio_thresholds[r] = float(section_cfg.get("ratio_threshold", RATIO_THRESHOLDS[r]))

        return cls(
            thresholds=thresholds,
            smoothing_k=float(surge.get("smoothing_k", SMOOTHING_K)),
            high_volume_floor=int(surge.get("high_volume_floor", HIGH_VOLUME_FLOOR)),
            min_baseline_median_for_surge=float(
                surge.get("min_baseline_median_for_surge", MIN_BASELINE_MEDIAN_FOR_SURGE)
            ),
            abs_floors={r: float(floors.get(r, ABS_FLOORS[r])) for r in R_TYPES},
            abs_shares={r: float(shares.get(r, ABS_SHARES[r])) for r in R_TYPES},
            ratio_thresholds=ratio_thresholds,
        )


@dataclass
class RDefinition:
    """Selector for one risk dimension over CAMEO event codes."""

    root_codes: List[str] = field(default_factory=list)
    event_codes: List[str] = field(default_factory=list)
    event_code_prefixes: List[str] = field(default_factory=list)
    label: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RDefinition":
        return cls(
            root_codes=[str(c) for c in data.get("rootCodes") or []],
            event_codes=[str(c) for c in data.get("eventCodes") or []],
            event_code_prefixes=[str(c) for c in data.get("eventCodePrefixes") or []],
            label=str(data.get("label", "")),
        )


def _read_json_document(path: str | Path, what: str) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"{what} not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{what} is not valid JSON ({path}): {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{what} must be a JSON object: {path}")
    return data


def load_scoring_config(path: str | Path) -> ScoringConfig:
    """Load and validate scoring.json.

    Raises:
        ConfigurationError: If the file is missing, malformed, or holds invalid thresholds.
    """
    data = _read_json_document(path, "Scoring config")
    try:
        return ScoringConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid scoring config {path}: {exc}") from exc


def load_r_definitions(path: str | Path) -> Dict[str, RDefinition]:
    """Load r_definitions.json into one RDefinition per R-type.

    Raises:
        ConfigurationError: If the file is missing, malformed, or lacks an R-type.
    """
    data = _read_json_document(path, "R definitions")
    missing = [r for r in R_TYPES if not isinstance(data.get(r), dict)]
    if missing:
        raise ConfigurationError(f"R definitions {path} missing entries for {', '.join(missing)}")
    return {r: RDefinition.from_dict(data[r]) for r in R_TYPES}


@dataclass
class PipelineConfig:
    """Single configuration object threaded through all pipeline agents.

    File paths, BigQuery budget limits, and run windows live here. Surge
    thresholds are loaded separately (see ScoringConfig) so the engine stays
    free of file access.
    """

    # ── Run window ─────────────────────────────────────────────────────────────
    start_date: Optional[str] = None    # YYYY-MM-DD, inclusive
    end_date: Optional[str] = None      # YYYY-MM-DD, inclusive
    weeks: int = HISTORY_WEEKS
    years: int = BASELINE_YEARS
    target_countries: List[str] = field(default_factory=list)   # ISO-2; empty = all

    # ── Baselines ──────────────────────────────────────────────────────────────
    baseline_kinds: List[str] = field(default_factory=lambda: list(BASELINE_KINDS))

    # ── History behaviour ──────────────────────────────────────────────────────
    merge_existing: bool = False
    backfill: bool = False
    rows_path: Optional[str] = None     # Offline row source (JSON list)

    # ── Config documents ───────────────────────────────────────────────────────
    scoring_config_path: str = SCORING_CONFIG_PATH
    r_definitions_path: str = R_DEFINITIONS_PATH
    geojson_path: str = GEOJSON_PATH
    static_dataset_path: Optional[str] = None

    # ── BigQuery ───────────────────────────────────────────────────────────────
    bq_project_id: Optional[str] = field(
        default_factory=lambda: os.getenv("BQ_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT")
    )
    credentials_path: Optional[str] = field(
        default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    )
    events_table: str = EVENTS_TABLE
    max_gb: float = MAX_SCAN_GB
    max_usd: Optional[float] = None
    price_per_tib: float = PRICE_PER_TIB
    free_tib: float = FREE_TIB
    dry_run: bool = False
    bq_max_retries: int = BQ_MAX_RETRIES
    bq_backoff_base: float = BQ_BACKOFF_BASE
    bq_backoff_jitter: float = BQ_BACKOFF_JITTER

    # ── Output and logging ─────────────────────────────────────────────────────
    data_root: str = field(default_factory=lambda: os.getenv("DATA_ROOT", DATA_ROOT))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL))

    def __post_init__(self) -> None:
        self.target_countries = sorted({c.strip().upper() for c in self.target_countries if c.strip()})
        if self.weeks <= 0:
            raise ValueError(f"weeks must be positive, got {self.weeks}")
        if self.years <= 0:
            raise ValueError(f"years must be positive, got {self.years}")
        if self.max_gb <= 0:
            raise ValueError(f"max_gb must be positive, got {self.max_gb}")
