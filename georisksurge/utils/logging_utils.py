"""Logging utilities for GeoRiskSurge.

Provides YAML-based logging configuration and a run_id-prefixing adapter.
All package loggers live under the 'georisksurge' namespace.
"""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Any, MutableMapping, Optional

import yaml

_DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_OWN_LOGGERS = ("georisksurge", "config")


def configure_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """Configure logging from config/logging.yaml.

    Falls back to basicConfig if the YAML file is not found.

    Args:
        config_path: Path to logging.yaml (defaults to config/logging.yaml).
        log_level: Override level applied to every configured logger.
        log_file: Override the FileHandler filename.
    """
    if config_path is None:
        config_path = str(Path(__file__).parent.parent.parent / "config" / "logging.yaml")

    if not os.path.exists(config_path):
        logging.basicConfig(
            level=getattr(logging, (log_level or "INFO").upper(), logging.INFO),
            format=_DEFAULT_FORMAT,
        )
        return

    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)

    if log_file and "handlers" in cfg:
        for handler_cfg in cfg["handlers"].values():
            if handler_cfg.get("class") == "logging.FileHandler":
                handler_cfg["filename"] = log_file

    if log_level:
        level = log_level.upper()
        loggers = cfg.get("loggers") or {}
        # Third-party loggers keep their configured level
        for name in _OWN_LOGGERS:
            if name in loggers:
                loggers[name]["level"] = level

    logging.config.dictConfig(cfg)


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under 'georisksurge'."""
    if name.startswith("georisksurge"):
        return logging.getLogger(name)
    return logging.getLogger(f"georisksurge.{name}")


class RunContextAdapter(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with the pipeline run_id.

    Usage:
        logger = get_run_logger("pipeline", run_id="20250106_030000_history")
        logger.info("Writing index")
        # [INFO] georisksurge.pipeline: [20250106_030000_history] Writing index
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        run_id = self.extra.get("run_id", "unknown")
        return f"[{run_id}] {msg}", kwargs


def get_run_logger(name: str, run_id: str) -> RunContextAdapter:
    """Get a run-context-aware logger adapter for ``name``."""
    return RunContextAdapter(get_logger(name), {"run_id": run_id})
