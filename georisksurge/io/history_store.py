"""Weekly history artifact storage.

Reads and writes the per-country ``{ISO2}.json`` artifacts, the
``index.json`` summary, and the backfill checkpoint file. All writes go
through save_json(), so each file is replaced atomically.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from config.defaults import HISTORY_SCHEMA_VERSION
from georisksurge.io.persistence import list_country_files, load_json, save_json
from georisksurge.models.history import CountryHistory

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
BACKFILL_STATE_FILENAME = ".backfill_state.json"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def country_path(history_dir: str | Path, iso2: str) -> Path:
    return Path(history_dir) / f"{iso2.upper()}.json"


def load_country_history(history_dir: str | Path, iso2: str) -> Optional[Dict[str, Any]]:
    """Load an existing artifact, or None when absent or unreadable."""
    data = load_json(country_path(history_dir, iso2))
    if not isinstance(data, dict) or not isinstance(data.get("history"), list):
        return None
    return data


def merge_history_entries(
    existing: Iterable[Dict[str, Any]], incoming: Iterable[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Overlay ``incoming`` entries onto ``existing`` by week; ascending result."""
    by_week: Dict[str, Dict[str, Any]] = {}
    for entry in existing:
        week = entry.get("week")
        if week:
            by_week[week] = entry
    for entry in incoming:
        by_week[entry["week"]] = entry
    return [by_week[week] for week in sorted(by_week)]


def write_country_history(history_dir: str | Path, history: CountryHistory) -> Path:
    """Atomically write one country's artifact and return its path."""
    path = country_path(history_dir, history.iso2)
    save_json(history.to_dict(), path)
    return path


def build_index(
    histories: Iterable[CountryHistory], generated_at: Optional[str] = None
) -> Dict[str, Any]:
    """Build index.json content from in-memory histories."""
    countries: List[Dict[str, Any]] = []
    start_week: Optional[str] = None
    end_week: Optional[str] = None

    for history in sorted(histories, key=lambda h: h.iso2):
        if not history.history:
            continue
        countries.append({"iso2": history.iso2, "name_en": history.name_en, "weeks": history.weeks_total})
        first, last = history.history[0]["week"], history.history[-1]["week"]
        start_week = first if start_week is None or first < start_week else start_week
        end_week = last if end_week is None or last > end_week else end_week

    return {
        "countries": countries,
        "start_week": start_week,
        "end_week": end_week,
        "schema_version": HISTORY_SCHEMA_VERSION,
        "generated_at": generated_at or utc_now_iso(),
    }


def read_histories(history_dir: str | Path) -> List[CountryHistory]:
    """Load every readable ``{ISO2}.json`` in ``history_dir`` as CountryHistory."""
    histories: List[CountryHistory] = []
    for path in list_country_files(history_dir):
        data = load_json(path)
        if not isinstance(data, dict) or not isinstance(data.get("history"), list):
            logger.warning("Skipping unreadable history artifact %s", path)
            continue
        histories.append(
            CountryHistory(
                iso2=data.get("iso2") or path.stem,
                name_en=data.get("name_en") or path.stem,
                generated_at=data.get("generated_at") or "",
                history=sorted(data["history"], key=lambda e: e.get("week", "")),
                first_lit=data.get("first_lit") or {},
            )
        )
    return histories


def write_index(history_dir: str | Path, index: Dict[str, Any]) -> Path:
    path = Path(history_dir) / INDEX_FILENAME
    save_json(index, path)
    logger.info(
        "Wrote %s: %d countries, %s .. %s",
        path,
        len(index.get("countries") or []),
        index.get("start_week"),
        index.get("end_week"),
    )
    return path


def refresh_index(history_dir: str | Path) -> Dict[str, Any]:
    """Rebuild index.json from the artifacts currently on disk."""
    index = build_index(read_histories(history_dir))
    write_index(history_dir, index)
    return index


def load_backfill_state(history_dir: str | Path) -> Dict[str, Any]:
    state = load_json(Path(history_dir) / BACKFILL_STATE_FILENAME)
    if not isinstance(state, dict):
        state = {}
    state.setdefault("chunks_completed", [])
    return state


def save_backfill_state(history_dir: str | Path, state: Dict[str, Any]) -> None:
    save_json(state, Path(history_dir) / BACKFILL_STATE_FILENAME)


def clear_backfill_state(history_dir: str | Path) -> None:
    path = Path(history_dir) / BACKFILL_STATE_FILENAME
    if path.exists():
        path.unlink()


def load_static_countries(path: Optional[str | Path]) -> Dict[str, Any]:
    """Return the ``countries`` map of a static dataset file, or {}."""
    if not path:
        return {}
    data = load_json(path)
    if not isinstance(data, dict):
        logger.warning("Static dataset %s unreadable; name_ja and basics left empty", path)
        return {}
    return data.get("countries") or {}
