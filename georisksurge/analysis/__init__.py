"""GeoRiskSurge analysis package.

Pure analytical functions only: no BigQuery calls and no file I/O.
"""

from georisksurge.analysis.baseline_stats import (
    build_calmest_baselines,
    build_country_baselines,
    build_r_baselines,
)
from georisksurge.analysis.first_lit import compute_first_lit
from georisksurge.analysis.history_assembler import assemble_history, parse_row
from georisksurge.analysis.query_builder import QueryBuilder, build_r_condition
from georisksurge.analysis.surge_engine import (
    compute_surge,
    dedupe_results,
    evaluate_r_surge,
    merge_duplicates,
    refresh_gating,
    resolve_medians,
)

__all__ = [
    "build_calmest_baselines",
    "build_country_baselines",
    "build_r_baselines",
    "compute_first_lit",
    "assemble_history",
    "parse_row",
    "QueryBuilder",
    "build_r_condition",
    "compute_surge",
    "dedupe_results",
    "evaluate_r_surge",
    "merge_duplicates",
    "refresh_gating",
    "resolve_medians",
]
