"""Date and ISO-week utilities for GeoRiskSurge.

GDELT stores event dates as integer SQLDATE values (YYYYMMDD) while the
weekly artifacts are keyed by ISO-week labels (YYYY-Www). Route conversions
through this module so both representations stay consistent.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Iterator, List, Tuple, Union

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

DateLike = Union[date, str, int]

_ISO_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_SQLDATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def parse_date(value: DateLike) -> date:
    """Parse a CLI or query date into a date object.

    Accepts date objects, SQLDATE integers/strings (20240115), and any format
    understood by dateutil (2024-01-15, 2024/01/15, ...).

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    match = _SQLDATE_RE.match(raw)
    if match:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    try:
        return dateutil_parser.parse(raw).date()
    except (ValueError, OverflowError, TypeError) as exc:
        raise ValueError(f"Unparseable date: {value!r}") from exc


def normalize_date_str(raw_date: DateLike) -> str:
    """Normalize any supported date variant to ISO YYYY-MM-DD."""
    return parse_date(raw_date).isoformat()


def iso_week_label(value: DateLike) -> str:
    """Return the ISO-week label (``%G-W%V``) containing the given date."""
    iso_year, iso_week, _ = parse_date(value).isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def is_iso_week_label(label: str) -> bool:
    match = _ISO_WEEK_RE.match(label or "")
    return bool(match) and 1 <= int(match.group(2)) <= 53


def iso_week_bounds(label: str) -> Tuple[date, date]:
    """Return (monday, sunday) for an ISO-week label.

    Raises:
        ValueError: If the label is malformed or names a week that does not exist.
    """
    match = _ISO_WEEK_RE.match(label or "")
    if not match:
        raise ValueError(f"Not an ISO-week label: {label!r}")
    monday = date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
    return monday, monday + timedelta(days=6)


def last_completed_iso_week(today: DateLike) -> Tuple[date, date]:
    """Return (monday, sunday) of the most recent fully elapsed ISO week.

    A Sunday is treated as still in progress, so the previous week is returned.
    """
    d = parse_date(today)
    days_since_sunday = d.isoweekday() % 7 or 7
    sunday = d - timedelta(days=days_since_sunday)
    return sunday - timedelta(days=6), sunday


def shift_weeks(label: str, weeks: int) -> str:
    """Return the ISO-week label ``weeks`` weeks after (or before, if negative) ``label``."""
    monday, _ = iso_week_bounds(label)
    return iso_week_label(monday + timedelta(weeks=weeks))


def window_start(end: DateLike, years: int) -> date:
    """Return the first day of a ``years``-long window ending on ``end`` (inclusive)."""
    return parse_date(end) - relativedelta(years=years)


def year_chunks(end: DateLike, years: int) -> List[Tuple[str, date, date]]:
    """Split a multi-year backfill into ISO-year chunks, oldest first.

    Chunk boundaries fall on ISO-week edges so no week is split across two
    chunks. The last chunk is clamped to ``end``.

    Returns:
        List of (chunk_id, start, end) with chunk_id the ISO year as a string.
    """
    end_d = parse_date(end)
    last_year = end_d.isocalendar()[0]
    chunks: List[Tuple[str, date, date]] = []
    for year in range(last_year - years, last_year + 1):
        start = date.fromisocalendar(year, 1, 1)
        stop = date.fromisocalendar(year + 1, 1, 1) - timedelta(days=1)
        if start > end_d:
            continue
        chunks.append((str(year), start, min(stop, end_d)))
    return chunks


def daterange(start: DateLike, end: DateLike) -> Iterator[date]:
    """Yield every date from start to end inclusive."""
    current = parse_date(start)
    stop = parse_date(end)
    while current <= stop:
        yield current
        current += timedelta(days=1)
