"""Baseline statistics and calmest-window selection.

Turns query results into the baseline artifacts: per-country 5-year
statistics, per-R 5-year statistics, and the calmest sliding-window
baseline. No BigQuery or file access here; the BaselineAgent feeds rows in
and writes the returned documents.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from config.defaults import (
    CALMEST_FALLBACK_WINDOW_DAYS,
    CALMEST_MIN_MEDIAN,
    CALMEST_STEP_DAYS,
    CALMEST_WINDOW_DAYS,
    R_TYPES,
)
from georisksurge.models.baseline import BaselineStats, CalmestWindow
from georisksurge.utils.date_utils import daterange, parse_date
from georisksurge.utils.geo_utils import AggregationStats, MappingStatus, aggregate_to_iso2, fips_to_iso2

logger = logging.getLogger(__name__)

_SERIES_FIELDS = ("events", "r1", "r2", "r3", "r4")


def round_half_up(value: Optional[float]) -> int:
    """Round .5 away from zero for non-negative values (2.5 -> 3)."""
    if value is None:
        return 0
    return int(math.floor(float(value) + 0.5))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    """Median; even-length inputs average the two middle values."""
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def p90(values: Sequence[float]) -> float:
    """Nearest-rank 90th percentile: sorted[ceil(0.9 * n) - 1]."""
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = max(0, math.ceil(0.9 * len(ordered)) - 1)
    return float(ordered[idx])


def summarize(values: Sequence[float]) -> BaselineStats:
    return BaselineStats(mean=mean(values), median=median(values), p90=p90(values), days_counted=len(values))


# ── 5-year country baselines ───────────────────────────────────────────────────


def build_country_baselines(
    rows: Iterable[Mapping[str, Any]],
    names_en: Optional[Mapping[str, str]] = None,
    static_countries: Optional[Mapping[str, Any]] = None,
) -> Tuple[Dict[str, Dict[str, Any]], AggregationStats]:
    """Convert per-FIPS statistic rows into the ``countries`` map of the baseline artifact.

    Args:
        rows: Query rows with fips, avg_5y, median_5y, p90_5y, days_counted.
        names_en: Optional ISO-2 → English name map.
        static_countries: Optional static dataset ``countries`` map supplying
            name_ja, population, and gdp_nominal.

    Returns:
        Tuple of (countries map keyed by ISO-2, aggregation stats).
    """
    names_en = names_en or {}
    static_countries = static_countries or {}

    by_fips: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        fips = row.get("fips")
        if not fips:
            continue
        by_fips[str(fips)] = {
            "_avg": float(row.get("avg_5y") or 0.0),
            "_median": float(row.get("median_5y") or 0.0),
            "_p90": float(row.get("p90_5y") or 0.0),
            "_days": int(row.get("days_counted") or 0),
        }

    aggregated, stats = aggregate_to_iso2(by_fips)

    countries: Dict[str, Dict[str, Any]] = {}
    for iso2 in sorted(aggregated):
        record = aggregated[iso2]
        static = static_countries.get(iso2) or {}
        basics = static.get("basics") or {}
        countries[iso2] = {
            "name_en": names_en.get(iso2) or static.get("name_en") or "",
            "name_ja": static.get("name_ja") or "",
            "gdelt": {
                "baseline": {
                    "avg_5y": round_half_up(record["_avg"]),
                    "median_5y": round_half_up(record["_median"]),
                    "p90_5y": round_half_up(record["_p90"]),
                    "days_counted": int(record["_days"]),
                },
                "GDELTweight": round_half_up(record["_median"]),
            },
            "basics": {
                "population": basics.get("population"),
                "gdp_nominal": basics.get("gdp_nominal"),
            },
        }
    return countries, stats


# ── 5-year per-R baselines ─────────────────────────────────────────────────────


def build_r_baselines(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Group per-(ISO-2, R-type) statistic rows into ``{ISO2: {R1: {...}}}``.

    Rows come from a query that already zero-fills the date × country grid
    and maps FIPS to ISO-2, so no aggregation is needed here.
    """
    baselines: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for row in rows:
        iso2 = row.get("iso2")
        r_type = row.get("r_type")
        if not iso2 or r_type not in R_TYPES:
            continue
        stats = BaselineStats(
            mean=float(row.get("mean") or 0.0),
            median=float(row.get("median") or 0.0),
            p90=float(row.get("p90") or 0.0),
            days_counted=int(row.get("days_counted") or 0),
        )
        baselines.setdefault(str(iso2), {})[r_type] = stats.to_dict()
    return {iso2: baselines[iso2] for iso2 in sorted(baselines)}


# ── Calmest-window baselines ───────────────────────────────────────────────────


@dataclass
class DailyPoint:
    day: date
    events: int = 0
    r1: int = 0
    r2: int = 0
    r3: int = 0
    r4: int = 0


def collect_daily_by_iso2(
    rows: Iterable[Mapping[str, Any]],
) -> Tuple[Dict[str, Dict[date, Dict[str, int]]], Dict[str, int]]:
    """Map daily FIPS rows to ISO-2 and sum counts per (ISO-2, day).

    Args:
        rows: Query rows with d, fips, events, r1..r4.

    Returns:
        Tuple of ({ISO2: {day: {events, r1..r4}}}, {"mapped", "excluded", "dropped"}).
    """
    daily: Dict[str, Dict[date, Dict[str, int]]] = {}
    counters = {"mapped": 0, "excluded": 0, "dropped": 0}

    for row in rows:
        mapping = fips_to_iso2(row.get("fips"))
        if mapping.status == MappingStatus.EXCLUDED:
            counters["excluded"] += 1
            continue
        if mapping.iso2 is None:
            counters["dropped"] += 1
            continue
        try:
            day = parse_date(row.get("d"))
        except ValueError:
            counters["dropped"] += 1
            continue
        counters["mapped"] += 1

        bucket = daily.setdefault(mapping.iso2, {}).setdefault(day, {f: 0 for f in _SERIES_FIELDS})
        for f in _SERIES_FIELDS:
            bucket[f] += int(row.get(f) or 0)
    return daily, counters


def zero_filled_series(day_map: Mapping[date, Mapping[str, int]]) -> List[DailyPoint]:
    """Expand a sparse day map to a contiguous series between its first and last day."""
    if not day_map:
        return []
    days = sorted(day_map)
    series: List[DailyPoint] = []
    for day in daterange(days[0], days[-1]):
        values = day_map.get(day) or {}
        series.append(DailyPoint(day=day, **{f: int(values.get(f, 0)) for f in _SERIES_FIELDS}))
    return series


def find_calmest_window(
    series: Sequence[DailyPoint],
    window_days: int,
    step_days: int = CALMEST_STEP_DAYS,
    min_median: float = CALMEST_MIN_MEDIAN,
) -> Optional[Tuple[int, float]]:
    """Return (start index, median) of the lowest-median window, or None.

    Windows whose daily event median is below ``min_median`` are skipped.
    Ties keep the earliest window.
    """
    best: Optional[Tuple[int, float]] = None
    for start in range(0, len(series) - window_days + 1, step_days):
        window_median = median([p.events for p in series[start:start + window_days]])
        if window_median < min_median:
            continue
        if best is None or window_median < best[1]:
            best = (start, window_median)
    return best


def calmest_baseline_entry(
    series: Sequence[DailyPoint],
    window_days: int = CALMEST_WINDOW_DAYS,
    fallback_days: int = CALMEST_FALLBACK_WINDOW_DAYS,
    step_days: int = CALMEST_STEP_DAYS,
    min_median: float = CALMEST_MIN_MEDIAN,
) -> Optional[Tuple[Dict[str, Any], CalmestWindow]]:
    """Build the calmest-window baseline block for one country's daily series.

    Tries the primary window length first, then the fallback.

    Returns:
        Tuple of (``gdelt.baseline`` dict, CalmestWindow), or None when no
        window clears ``min_median``.
    """
    attempts = ((window_days, "calmest3y"), (fallback_days, "calmest2y"))
    for size, method in attempts:
        found = find_calmest_window(series, size, step_days, min_median)
        if found is None:
            continue
        start, window_median = found
        chunk = series[start:start + size]
        events = [p.events for p in chunk]

        baseline: Dict[str, Any] = {
            "avg_5y": round_half_up(mean(events)),
            "median_5y": round_half_up(median(events)),
            "p90_5y": round_half_up(p90(events)),
            "days_counted": len(chunk),
        }
        for r in R_TYPES:
            values = [getattr(p, r.lower()) for p in chunk]
            baseline[f"avg_{r.lower()}"] = round_half_up(mean(values))
            baseline[f"median_{r.lower()}"] = round_half_up(median(values))

        window = CalmestWindow(
            method=method,
            start=chunk[0].day.isoformat(),
            end=chunk[-1].day.isoformat(),
            median=window_median,
            window_days=len(chunk),
        )
        return baseline, window
    return None


def build_calmest_baselines(
    daily_by_iso2: Mapping[str, Mapping[date, Mapping[str, int]]],
    names_en: Optional[Mapping[str, str]] = None,
    min_median: float = CALMEST_MIN_MEDIAN,
) -> Tuple[Dict[str, Dict[str, Any]], Dict[str, int]]:
    """Run the calmest-window search for every country.

    Returns:
        Tuple of (countries map, adoption stats {target3y, fallback2y, failed}).
    """
    names_en = names_en or {}
    adoption = {"target3y": 0, "fallback2y": 0, "failed": 0}
    countries: Dict[str, Dict[str, Any]] = {}

    for iso2 in sorted(daily_by_iso2):
        series = zero_filled_series(daily_by_iso2[iso2])
        selected = calmest_baseline_entry(series, min_median=min_median)
        if selected is None:
            adoption["failed"] += 1
            logger.warning("%s: no calmest window clears the median floor (%.0f)", iso2, min_median)
            continue

        baseline, window = selected
        if window.method == "calmest3y":
            adoption["target3y"] += 1
        else:
            adoption["fallback2y"] += 1

        countries[iso2] = {
            "name_en": names_en.get(iso2, ""),
            "name_ja": "",
            "gdelt": {"baseline": baseline, "GDELTweight": baseline["median_5y"]},
            "basics": {"population": None, "gdp_nominal": None},
            "baseline_meta": window.to_dict(),
        }
    return countries, adoption
