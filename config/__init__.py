"""GeoRiskSurge configuration package."""

from config.defaults import (
    HIGH_VOLUME_FLOOR,
    MAX_SCAN_GB,
    PRICE_PER_TIB,
    R_TYPES,
    SMOOTHING_K,
    SURGE_ORANGE,
    SURGE_RED,
    SURGE_YELLOW,
)
from config.settings import (
    ConfigurationError,
    PipelineConfig,
    RDefinition,
    ScoringConfig,
    SurgeThresholds,
    load_r_definitions,
    load_scoring_config,
)

__all__ = [
    "PipelineConfig",
    "ScoringConfig",
    "SurgeThresholds",
    "RDefinition",
    "ConfigurationError",
    "load_scoring_config",
    "load_r_definitions",
    "R_TYPES",
    "SURGE_YELLOW",
    "SURGE_ORANGE",
    "SURGE_RED",
    "SMOOTHING_K",
    "HIGH_VOLUME_FLOOR",
    "MAX_SCAN_GB",
    "PRICE_PER_TIB",
]
