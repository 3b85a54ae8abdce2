"""JSON persistence utilities for GeoRiskSurge.

Provides atomic file writes (write-to-temp-then-rename) and safe JSON
load/save operations. File I/O only, no business logic.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

# Per-country artifact names: exactly two uppercase letters
_COUNTRY_FILE_RE = re.compile(r"^[A-Z]{2}\.json$")


class _DataclassEncoder(json.JSONEncoder):
    """JSON encoder that handles dataclasses and Path objects."""

    def default(self, obj: Any) -> Any:
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(data: Any, path: str | Path, indent: int = 2) -> None:
    """Atomically write data to a JSON file.

    Serializes first, writes to a temp file in the target directory, then
    os.replace()s it over the destination so readers never observe a partial
    file. Creates parent directories if they do not exist.

    Args:
        data: Data to serialize. Supports dicts, lists, dataclasses, and Path objects.
        path: Output file path.
        indent: JSON indentation level (default: 2).

    Raises:
        TypeError / ValueError: If the data cannot be serialized.
        OSError: If the write or rename fails; the destination is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        serialized = json.dumps(data, indent=indent, ensure_ascii=False, cls=_DataclassEncoder)
    except (TypeError, ValueError) as exc:
        logger.error("JSON serialization failed for %s: %s", path, exc)
        raise

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        suffix=".tmp",
    ) as tmp:
        tmp.write(serialized)
        tmp_path = tmp.name

    try:
        os.replace(tmp_path, path)
    except OSError as exc:
        os.unlink(tmp_path)
        logger.error("Atomic rename failed for %s: %s", path, exc)
        raise

    logger.debug("Saved JSON to %s (%d bytes)", path, len(serialized))


def load_json(path: str | Path) -> Optional[Any]:
    """Load and parse a JSON file.

    Returns None if the file does not exist or cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("JSON file not found: %s", path)
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to load JSON from %s: %s", path, exc)
        return None


def list_country_files(directory: str | Path) -> List[Path]:
    """Return ``{ISO2}.json`` files in ``directory``, sorted by code.

    index.json, state files, and temp files are skipped.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and _COUNTRY_FILE_RE.match(p.name))
