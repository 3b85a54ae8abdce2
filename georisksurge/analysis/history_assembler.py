"""Weekly history assembly for GeoRiskSurge.

Turns raw weekly row-source records into one CountryHistory per ISO-2:

1. parse each record (bad rows are dropped and counted)
2. map the source country code to ISO-2 (excluded and unknown codes dropped)
3. keep target countries and weeks inside the window
4. run the surge engine on each row with the country's resolved medians
5. merge rows sharing a (country, week) and re-run the engine
6. sort ascending by week and attach the first-lit projection

Pure: no file or network access. The HistoryAgent handles I/O.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from config.defaults import R_TYPES
from config.settings import ScoringConfig
from georisksurge.analysis.first_lit import compute_first_lit
from georisksurge.analysis.query_builder import WEEKLY_R_COLUMNS
from georisksurge.analysis.surge_engine import (
    compute_surge,
    dedupe_results,
    resolve_medians,
    weekly_surge_meta,
)
from georisksurge.models.history import AssemblyStats, CountryHistory
from georisksurge.models.surge import PeriodRow, SurgeResult
from georisksurge.utils.date_utils import is_iso_week_label
from georisksurge.utils.geo_utils import CodeMapping, MappingStatus, fips_to_iso2

logger = logging.getLogger(__name__)

_CODE_KEYS = ("country_code", "iso2", "fips", "country")
_PERIOD_KEYS = ("period_id", "iso_week", "week")


class RowParseError(ValueError):
    """Raised when a row-source record cannot be read.

    ``problem`` is a short, value-free description used to log each distinct
    problem once.
    """

    def __init__(self, problem: str, detail: str = "") -> None:
        self.problem = problem
        super().__init__(f"{problem}: {detail}" if detail else problem)


@dataclass
class ParsedRow:
    code: str
    period_id: str
    counts: Dict[str, int]
    event_count: int
    days_with_data: Optional[int] = None


def _first_present(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if raw.get(key) not in (None, ""):
            return raw[key]
    return None


def _count(value: Any, field_name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise RowParseError(f"non-numeric {field_name}", repr(value))
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise RowParseError(f"non-numeric {field_name}", repr(value)) from None
    if not math.isfinite(number) or number != int(number):
        raise RowParseError(f"non-integer {field_name}", repr(value))
    if number < 0:
        raise RowParseError(f"negative {field_name}", repr(value))
    return int(number)


def _r_count(raw: Mapping[str, Any], r: str) -> int:
    keys = (f"{r.lower()}_count", WEEKLY_R_COLUMNS[r], r, r.lower())
    return _count(_first_present(raw, keys), f"{r} count")


def parse_row(raw: Any) -> ParsedRow:
    """Read one row-source record.

    Accepts ``country_code`` or its aliases ``iso2``/``fips``, ``period_id``
    or ``iso_week``, ``rN_count`` or the weekly query's ``r1_security`` style
    columns, and an optional ``days_with_data``.

    Raises:
        RowParseError: On a missing field, a malformed week, a negative or
            non-integer count, or one R count above event_count.
    """
    if not isinstance(raw, Mapping):
        raise RowParseError("row is not an object", type(raw).__name__)

    code = _first_present(raw, _CODE_KEYS)
    if not isinstance(code, str) or not code.strip():
        raise RowParseError("missing country code")

    period_id = _first_present(raw, _PERIOD_KEYS)
    if not isinstance(period_id, str) or not is_iso_week_label(period_id):
        raise RowParseError("malformed week label", repr(period_id))

    counts = {r: _r_count(raw, r) for r in R_TYPES}
    if raw.get("event_count") is None:
        raise RowParseError("missing event_count")
    event_count = _count(raw["event_count"], "event_count")
    # Each R is a subset filter of the same events; only their sum may exceed.
    for r in R_TYPES:
        if counts[r] > event_count:
            raise RowParseError(f"{r} count exceeds event_count", f"{counts[r]} > {event_count}")
    days = raw.get("days_with_data")
    return ParsedRow(
        code=code.strip().upper(),
        period_id=period_id,
        counts=counts,
        event_count=event_count,
        days_with_data=_count(days, "days_with_data") if days is not None else None,
    )


def assemble_history(
    rows: Iterable[Any],
    scoring: ScoringConfig,
    calmest_countries: Optional[Mapping[str, Any]] = None,
    r_baselines: Optional[Mapping[str, Any]] = None,
    names_en: Optional[Mapping[str, str]] = None,
    start_week: Optional[str] = None,
    end_week: Optional[str] = None,
    target_countries: Optional[Iterable[str]] = None,
    mapper: Callable[[Optional[str]], CodeMapping] = fips_to_iso2,
    generated_at: str = "",
) -> Tuple[Dict[str, CountryHistory], AssemblyStats]:
    """Build per-country weekly histories from raw rows.

    Args:
        rows: Row-source records (see parse_row()).
        scoring: Threshold struct for the surge engine.
        calmest_countries: ``countries`` map of the calmest baseline artifact.
        r_baselines: ``baselines`` map of the 5-year per-R artifact.
        names_en: ISO-2 to English name; the code itself is used when absent.
        start_week: First week kept (inclusive); None keeps everything earlier.
        end_week: Last week kept (inclusive); None keeps everything later.
        target_countries: ISO-2 codes to keep; empty or None keeps all.
        mapper: Source-code translator, fips_to_iso2 by default.
        generated_at: Timestamp written into each CountryHistory.

    Returns:
        Tuple of ({ISO2: CountryHistory}, AssemblyStats). Countries with no
        surviving rows are absent.
    """
    calmest_countries = calmest_countries or {}
    r_baselines = r_baselines or {}
    names_en = names_en or {}
    targets: Set[str] = {c.upper() for c in (target_countries or [])}

    stats = AssemblyStats()
    seen_problems: Set[str] = set()
    seen_codes: Set[str] = set()
    medians_cache: Dict[str, Tuple[Dict[str, float], Dict[str, str]]] = {}
    by_country: Dict[str, List[SurgeResult]] = {}

    for raw in rows:
        stats.rows_in += 1
        try:
            parsed = parse_row(raw)
        except RowParseError as exc:
            stats.parse_errors += 1
            if exc.problem not in seen_problems:
                seen_problems.add(exc.problem)
                logger.warning("Dropping row: %s", exc)
            continue

        mapping = mapper(parsed.code)
        if mapping.status == MappingStatus.EXCLUDED:
            stats.excluded += 1
            continue
        if mapping.iso2 is None:
            stats.unmapped += 1
            if parsed.code not in seen_codes:
                seen_codes.add(parsed.code)
                logger.warning("Dropping rows with unmapped country code %r", parsed.code)
            continue
        iso2 = mapping.iso2

        if targets and iso2 not in targets:
            stats.filtered_country += 1
            continue
        if (start_week and parsed.period_id < start_week) or (end_week and parsed.period_id > end_week):
            stats.out_of_window += 1
            continue

        if iso2 not in medians_cache:
            medians_cache[iso2] = resolve_medians(iso2, calmest_countries, r_baselines)
        medians, modes = medians_cache[iso2]

        row = PeriodRow(
            country=iso2,
            period_id=parsed.period_id,
            counts=parsed.counts,
            event_count=parsed.event_count,
            days_with_data=parsed.days_with_data,
        )
        by_country.setdefault(iso2, []).append(compute_surge(row, medians, scoring, modes))

    meta = weekly_surge_meta(scoring)
    histories: Dict[str, CountryHistory] = {}
    for iso2 in sorted(by_country):
        results, merged_away = dedupe_results(by_country[iso2], scoring)
        stats.duplicates_merged += merged_away
        entries = [res.to_history_entry(meta) for res in results]
        histories[iso2] = CountryHistory(
            iso2=iso2,
            name_en=names_en.get(iso2) or iso2,
            generated_at=generated_at,
            history=entries,
            first_lit=compute_first_lit(entries),
        )

    logger.info(
        "Assembled %d countries from %d rows (parse_errors=%d unmapped=%d excluded=%d "
        "filtered=%d out_of_window=%d merged=%d)",
        len(histories),
        stats.rows_in,
        stats.parse_errors,
        stats.unmapped,
        stats.excluded,
        stats.filtered_country,
        stats.out_of_window,
        stats.duplicates_merged,
    )
    return histories, stats
