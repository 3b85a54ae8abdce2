"""GeoRiskSurge I/O package.

File read/write operations only: no business logic in this layer.
"""

from georisksurge.io.history_store import (
    build_index,
    load_country_history,
    refresh_index,
    write_country_history,
)
from georisksurge.io.persistence import load_json, save_json

__all__ = [
    "save_json",
    "load_json",
    "build_index",
    "load_country_history",
    "refresh_index",
    "write_country_history",
]
