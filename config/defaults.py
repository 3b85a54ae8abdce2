"""GeoRiskSurge: default threshold values and configuration constants.

All tuneable values live here. Never hard-code magic numbers in source files.
Import constants from this module; override via PipelineConfig or
config/scoring.json at runtime.
"""

from typing import Dict, Tuple

# ── Risk dimensions ────────────────────────────────────────────────────────────
# Canonical R-type keys, in emission order
R_TYPES: Tuple[str, ...] = ("R1", "R2", "R3", "R4")

# Section names in scoring.json holding each R-type's share gate
R_CONFIG_SECTIONS: Dict[str, str] = {
    "R1": "r1_security",
    "R2": "r2_living",
    "R3": "r3_governance",
    "R4": "r4_fiscal",
}

# ── Surge levels ───────────────────────────────────────────────────────────────
# ratio7 at or above which a level is assigned
SURGE_YELLOW: float = 1.75
SURGE_ORANGE: float = 2.75
SURGE_RED: float = 3.75

# Additive smoothing constant k in (today7 + k) / (baseline7 + k)
SMOOTHING_K: float = 5.0

# ── Gating ─────────────────────────────────────────────────────────────────────
# Weekly event_count at or above which a country is treated as high-volume
HIGH_VOLUME_FLOOR: int = 5000

# Minimum daily baseline median for a stable surge (largest tier)
MIN_BASELINE_MEDIAN_FOR_SURGE: float = 3.0

# Tiered stability floors: (event_count upper bound, minimum daily median)
MIN_BASELINE_TIERS: Tuple[Tuple[int, float], ...] = ((500, 1.0), (2000, 1.5))

# Share-of-total gate per R-type when scoring.json omits it
RATIO_THRESHOLDS: Dict[str, float] = {"R1": 0.05, "R2": 0.03, "R3": 0.035, "R4": 0.03}

# Absolute gate floors and share multipliers when scoring.json omits them
ABS_FLOORS: Dict[str, float] = {"R1": 0.0, "R2": 0.0, "R3": 0.0, "R4": 0.0}
ABS_SHARES: Dict[str, float] = {"R1": 0.0, "R2": 0.0, "R3": 0.0, "R4": 0.0}

# Daily median substituted when a country has no usable baseline
FALLBACK_BASELINE_MEDIAN: float = 1.0

# Days a weekly row needs before its levels are trusted (fewer → NoData)
MIN_DAYS_PER_WEEK: int = 7

# ── Emission rounding ──────────────────────────────────────────────────────────
RATIO_DECIMALS: int = 3
SHARE_DECIMALS: int = 4
BASELINE7_DECIMALS: int = 1

# ── Baseline windows ───────────────────────────────────────────────────────────
# Default look-back for long-term baselines (years)
BASELINE_YEARS: int = 5

# Baseline artifacts built by default: 5y country totals, 5y per-R, calmest window
BASELINE_KINDS: Tuple[str, ...] = ("country", "r", "calmest")

# Calmest-window search: primary and fallback window length (days)
CALMEST_WINDOW_DAYS: int = 1095
CALMEST_FALLBACK_WINDOW_DAYS: int = 730

# Step between candidate calmest windows (days)
CALMEST_STEP_DAYS: int = 30

# Windows whose daily event median falls below this are ignored
CALMEST_MIN_MEDIAN: float = 10.0

# First date of the GDELT 2.0 events table
CALMEST_START_DATE: str = "2015-02-18"

# ── History ────────────────────────────────────────────────────────────────────
# Default number of ISO weeks in a full history build (5 years)
HISTORY_WEEKS: int = 260

# schema_version written into history index.json
HISTORY_SCHEMA_VERSION: str = "weekly5y-v1"

# ── BigQuery ───────────────────────────────────────────────────────────────────
# Source events table
EVENTS_TABLE: str = "gdelt-bq.gdeltv2.events"

# Abort when the dry-run scan exceeds this many GiB
MAX_SCAN_GB: float = 50.0

# On-demand price in USD per TiB scanned
PRICE_PER_TIB: float = 6.25

# Free-tier allowance used by the weekly cost projection (TiB)
FREE_TIB: float = 1.0

# Retry policy for transient BigQuery failures
BQ_MAX_RETRIES: int = 3
BQ_BACKOFF_BASE: float = 2.0
BQ_BACKOFF_JITTER: float = 0.5

# ── File layout (relative to the data root) ────────────────────────────────────
DATA_ROOT: str = "public/data"
BASELINES_SUBDIR: str = "baselines"
HISTORY_SUBDIR: str = "history/weekly_5y"
SNAPSHOT_FILENAME: str = "latest_v4.json"

COUNTRY_BASELINES_FILENAME: str = "gdelt_5y_baselines.json"
COUNTRY_BASELINES_META_FILENAME: str = "gdelt_5y_baselines.meta.json"
R_BASELINES_FILENAME: str = "gdelt_r_baselines_5y.json"
CALMEST_BASELINES_FILENAME: str = "gdelt_calmest3y_baselines.json"
CALMEST_BASELINES_META_FILENAME: str = "gdelt_calmest3y_baselines.meta.json"

# ── Config documents ───────────────────────────────────────────────────────────
SCORING_CONFIG_PATH: str = "config/scoring.json"
R_DEFINITIONS_PATH: str = "config/r_definitions.json"
GEOJSON_PATH: str = "public/geo/countries.geojson"

# ── Logging ────────────────────────────────────────────────────────────────────
DEFAULT_LOG_LEVEL: str = "INFO"
