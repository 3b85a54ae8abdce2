"""GeoRiskSurge utilities package.

Stateless helpers for dates, country codes, and logging.
"""

from georisksurge.utils.date_utils import (
    iso_week_bounds,
    iso_week_label,
    last_completed_iso_week,
    parse_date,
    window_start,
    year_chunks,
)
from georisksurge.utils.geo_utils import (
    FIPS_TO_ISO2,
    AggregationStats,
    CodeMapping,
    aggregate_to_iso2,
    fips_to_iso2,
    load_country_name_map,
)

__all__ = [
    "iso_week_bounds",
    "iso_week_label",
    "last_completed_iso_week",
    "parse_date",
    "window_start",
    "year_chunks",
    "FIPS_TO_ISO2",
    "AggregationStats",
    "CodeMapping",
    "aggregate_to_iso2",
    "fips_to_iso2",
    "load_country_name_map",
]
