"""BigQuery SQL construction for GeoRiskSurge.

Builds the weekly R-count query and the three baseline queries over the
GDELT events table. R-type selectors are composed from r_definitions.json:

- rootCodes          → EventRootCode IN ('18', '19')
- eventCodes         → EventCode IN ('073', '1033')
- eventCodePrefixes  → (STARTS_WITH(CAST(EventCode AS STRING), '023') OR ...)

Every query takes STRING parameters @start_date / @end_date (YYYY-MM-DD)
bound by the BigQuery client; only validated CAMEO codes and table names
are interpolated into the SQL text.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping

from config.defaults import EVENTS_TABLE, R_TYPES
from config.settings import RDefinition
from georisksurge.utils.geo_utils import EXCLUDED_CODES, FIPS_TO_ISO2

logger = logging.getLogger(__name__)

_CAMEO_CODE_RE = re.compile(r"^\d{1,4}$")
_TABLE_RE = re.compile(r"^[A-Za-z0-9_\-]+(\.[A-Za-z0-9_\-]+){1,2}$")

# Column aliases emitted by the weekly query, one per R-type
WEEKLY_R_COLUMNS: Dict[str, str] = {
    "R1": "r1_security",
    "R2": "r2_living",
    "R3": "r3_governance",
    "R4": "r4_fiscal",
}

# Source URLs from sports outlets are excluded from weekly counts
_SPORTS_PATH_RE = r"(\/|\.|^)(sport|sports|football|soccer|nba|nfl|mlb|nhl|f1|ufc)(\/|\.|$)"
_SPORTS_DOMAIN_RE = r"espn\.|goal\.com|bleacherreport\.|skysports\.|marca\.com|sports\.yahoo\."

_START_INT = 'CAST(REPLACE(@start_date, "-", "") AS INT64)'
_END_INT = 'CAST(REPLACE(@end_date, "-", "") AS INT64)'


def _valid_codes(codes: List[str], field_name: str) -> List[str]:
    """Drop anything that is not a 1-4 digit CAMEO code."""
    valid = []
    for code in codes:
        if _CAMEO_CODE_RE.match(code):
            valid.append(code)
        else:
            logger.warning("Ignoring invalid CAMEO code in %s: %r", field_name, code)
    return valid


def build_r_condition(definition: RDefinition) -> str:
    """Compose one R-type's boolean SQL selector.

    Returns:
        SQL boolean expression, or ``FALSE`` when the definition is empty.
    """
    parts: List[str] = []
    roots = _valid_codes(definition.root_codes, "rootCodes")
    if roots:
        parts.append(f"EventRootCode IN ({', '.join(repr(c) for c in roots)})")
    codes = _valid_codes(definition.event_codes, "eventCodes")
    if codes:
        parts.append(f"EventCode IN ({', '.join(repr(c) for c in codes)})")
    prefixes = _valid_codes(definition.event_code_prefixes, "eventCodePrefixes")
    if prefixes:
        starts = [f"STARTS_WITH(CAST(EventCode AS STRING), '{p}')" for p in prefixes]
        parts.append(f"({' OR '.join(starts)})")
    return " OR ".join(parts) if parts else "FALSE"


def fips_mapping_cte() -> str:
    """Inline table of (fips, iso2) pairs, excluded codes left out."""
    selects = [
        f"SELECT '{fips}' AS fips, '{iso2}' AS iso2"
        for fips, iso2 in FIPS_TO_ISO2.items()
        if fips not in EXCLUDED_CODES
    ]
    return "\n    UNION ALL ".join(selects)


class QueryBuilder:
    """Composes the BigQuery SQL used by the baseline and history agents.

    Args:
        r_definitions: One RDefinition per R-type.
        events_table: Fully qualified events table (project.dataset.table).
    """

    def __init__(
        self,
        r_definitions: Mapping[str, RDefinition],
        events_table: str = EVENTS_TABLE,
    ) -> None:
        missing = [r for r in R_TYPES if r not in r_definitions]
        if missing:
            raise ValueError(f"R definitions missing for {', '.join(missing)}")
        if not _TABLE_RE.match(events_table):
            raise ValueError(f"Invalid events table name: {events_table!r}")
        self.r_definitions = dict(r_definitions)
        self.events_table = events_table

    def r_conditions(self) -> Dict[str, str]:
        return {r: build_r_condition(self.r_definitions[r]) for r in R_TYPES}

    def weekly_counts_sql(self) -> str:
        """Per-(FIPS, ISO-week) totals and R-counts.

        @end_date is exclusive; callers pass the day after the last day wanted.
        """
        conditions = self.r_conditions()
        r_columns = ",\n".join(
            f"  SUM(CASE WHEN {conditions[r]} THEN 1 ELSE 0 END) AS {WEEKLY_R_COLUMNS[r]}"
            for r in R_TYPES
        )
        return f"""
SELECT
  ActionGeo_CountryCode AS country_code,
  FORMAT_DATE('%G-W%V', PARSE_DATE('%Y%m%d', CAST(SQLDATE AS STRING))) AS iso_week,
  COUNT(*) AS event_count,
  COUNT(DISTINCT SQLDATE) AS days_with_data,
{r_columns}
FROM `{self.events_table}`
WHERE SQLDATE >= {_START_INT}
  AND SQLDATE < {_END_INT}
  AND ActionGeo_CountryCode IS NOT NULL
  AND LENGTH(ActionGeo_CountryCode) = 2
  AND (
    SOURCEURL IS NULL OR (
      NOT REGEXP_CONTAINS(LOWER(SOURCEURL), r'{_SPORTS_PATH_RE}')
      AND NOT REGEXP_CONTAINS(LOWER(SOURCEURL), r'{_SPORTS_DOMAIN_RE}')
    )
  )
GROUP BY country_code, iso_week
""".strip()

    def country_baseline_sql(self) -> str:
        """Per-FIPS daily total statistics over [@start_date, @end_date]."""
        return f"""
WITH daily AS (
  SELECT
    ActionGeo_CountryCode AS fips,
    SQLDATE AS d,
    COUNT(*) AS events_per_day
  FROM `{self.events_table}`
  WHERE SQLDATE BETWEEN {_START_INT} AND {_END_INT}
    AND ActionGeo_CountryCode IS NOT NULL
    AND ActionGeo_CountryCode != ''
    AND LENGTH(ActionGeo_CountryCode) = 2
  GROUP BY fips, d
)
SELECT
  fips,
  AVG(events_per_day) AS avg_5y,
  APPROX_QUANTILES(events_per_day, 2)[OFFSET(1)] AS median_5y,
  APPROX_QUANTILES(events_per_day, 10)[OFFSET(9)] AS p90_5y,
  COUNT(*) AS days_counted
FROM daily
GROUP BY fips
""".strip()

    def r_baseline_sql(self) -> str:
        """Per-(ISO-2, R-type) daily statistics, zero-filled over the date × country grid."""
        conditions = self.r_conditions()
        counts = ",\n    ".join(
            f"COUNTIF({conditions[r]}) AS {r.lower()}" for r in R_TYPES
        )
        long_form = "\n    UNION ALL\n    ".join(
            f"SELECT d, iso2, '{r}' AS r_type, SUM({r.lower()}) AS daily_count "
            f"FROM daily_fips JOIN fips_to_iso2 USING (fips) GROUP BY d, iso2"
            for r in R_TYPES
        )
        r_grid = " UNION ALL ".join(f"SELECT '{r}' AS r_type" for r in R_TYPES)
        return f"""
WITH fips_to_iso2 AS (
    {fips_mapping_cte()}
),
country_grid AS (
  SELECT DISTINCT iso2 FROM fips_to_iso2
),
date_grid AS (
  SELECT d FROM UNNEST(GENERATE_DATE_ARRAY(DATE(@start_date), DATE(@end_date))) AS d
),
r_type_grid AS (
  {r_grid}
),
daily_fips AS (
  SELECT
    PARSE_DATE('%Y%m%d', CAST(SQLDATE AS STRING)) AS d,
    ActionGeo_CountryCode AS fips,
    {counts}
  FROM `{self.events_table}`
  WHERE SQLDATE BETWEEN {_START_INT} AND {_END_INT}
    AND ActionGeo_CountryCode IS NOT NULL
    AND LENGTH(ActionGeo_CountryCode) = 2
  GROUP BY d, fips
),
daily_iso2 AS (
    {long_form}
),
grid_counts AS (
  SELECT g.d, c.iso2, r.r_type, COALESCE(x.daily_count, 0) AS daily_count
  FROM date_grid g
  CROSS JOIN country_grid c
  CROSS JOIN r_type_grid r
  LEFT JOIN daily_iso2 x ON x.d = g.d AND x.iso2 = c.iso2 AND x.r_type = r.r_type
)
SELECT
  iso2,
  r_type,
  AVG(daily_count) AS mean,
  APPROX_QUANTILES(daily_count, 2)[OFFSET(1)] AS median,
  APPROX_QUANTILES(daily_count, 10)[OFFSET(9)] AS p90,
  COUNT(*) AS days_counted
FROM grid_counts
GROUP BY iso2, r_type
ORDER BY iso2, r_type
""".strip()

    def calmest_daily_sql(self) -> str:
        """Per-(FIPS, day) totals and R-counts from @start_date onwards."""
        conditions = self.r_conditions()
        counts = ",\n  ".join(f"COUNTIF({conditions[r]}) AS {r.lower()}" for r in R_TYPES)
        return f"""
SELECT
  PARSE_DATE('%Y%m%d', CAST(SQLDATE AS STRING)) AS d,
  ActionGeo_CountryCode AS fips,
  COUNT(*) AS events,
  {counts}
FROM `{self.events_table}`
WHERE SQLDATE >= {_START_INT}
  AND SQLDATE <= {_END_INT}
  AND ActionGeo_CountryCode IS NOT NULL
  AND LENGTH(ActionGeo_CountryCode) = 2
GROUP BY d, fips
""".strip()
