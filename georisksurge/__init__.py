"""GeoRiskSurge: weekly country-risk surge signals from GDELT events.

Public API surface:
    - PipelineConfig: Runtime configuration
    - ScoringConfig: Surge thresholds injected into the engine
    - run_command: Entry point used by scripts/run_pipeline.py
"""

__version__ = "1.0.0"

from config.settings import PipelineConfig, ScoringConfig
from georisksurge.pipeline import run_command

__all__ = [
    "__version__",
    "PipelineConfig",
    "ScoringConfig",
    "run_command",
]
