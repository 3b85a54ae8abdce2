"""Unit tests for georisksurge.io.persistence.

Covers:
- save_json: parent dirs, unicode, dataclasses, atomic replace on failure
- load_json: happy path, missing file, invalid JSON
- list_country_files: only {ISO2}.json artifacts, sorted
"""

from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path

import pytest

from georisksurge.io.persistence import list_country_files, load_json, save_json


# ── save_json ─────────────────────────────────────────────────────────────────────

class TestSaveJson:
    def test_creates_parent_directories(self, tmp_path):
        """Writing a history artifact must create history/weekly_5y/ on demand."""
        target = tmp_path / "history" / "weekly_5y" / "JP.json"
        save_json({"iso2": "JP", "history": []}, target)

        assert json.loads(target.read_text(encoding="utf-8")) == {"iso2": "JP", "history": []}

    def test_unicode_preserved(self, tmp_path):
        """Japanese country names must be written as-is, not escaped."""
        target = tmp_path / "latest_v4.json"
        save_json({"name_ja": "日本"}, target)

        assert "日本" in target.read_text(encoding="utf-8")

    def test_dataclass_and_path_serialised(self, tmp_path):
        @dataclasses.dataclass
        class Estimate:
            bytes_processed: int
            source: Path

        target = tmp_path / "estimate.json"
        save_json(Estimate(bytes_processed=42, source=tmp_path / "q.sql"), target)

        loaded = json.loads(target.read_text(encoding="utf-8"))
        assert loaded["bytes_processed"] == 42
        assert isinstance(loaded["source"], str)

    def test_failed_rename_keeps_previous_artifact(self, tmp_path, monkeypatch):
        """A failed replace leaves the old file intact and no temp files behind."""
        target = tmp_path / "US.json"
        save_json({"version": 1}, target)

        def failing_replace(src, dst):
            raise OSError("Disk full")

        monkeypatch.setattr(os, "replace", failing_replace)
        with pytest.raises(OSError):
            save_json({"version": 2}, target)

        assert json.loads(target.read_text(encoding="utf-8")) == {"version": 1}
        assert list(tmp_path.glob("*.tmp")) == []

    def test_unserialisable_data_leaves_no_file(self, tmp_path):
        target = tmp_path / "bad.json"
        with pytest.raises(TypeError):
            save_json({"value": object()}, target)
        assert not target.exists()


# ── load_json ─────────────────────────────────────────────────────────────────────

class TestLoadJson:
    def test_happy_path(self, tmp_path):
        target = tmp_path / "index.json"
        target.write_text('{"countries": [], "schema_version": "weekly5y-v1"}', encoding="utf-8")
        assert load_json(target) == {"countries": [], "schema_version": "weekly5y-v1"}

    def test_missing_file_returns_none(self, tmp_path):
        assert load_json(tmp_path / "does_not_exist.json") is None

    @pytest.mark.parametrize("content", ["{this is not valid json}", ""])
    def test_invalid_json_returns_none(self, tmp_path, content):
        target = tmp_path / "bad.json"
        target.write_text(content, encoding="utf-8")
        assert load_json(target) is None


# ── list_country_files ────────────────────────────────────────────────────────────

class TestListCountryFiles:
    def test_only_country_artifacts_sorted(self, tmp_path):
        for name in ("US.json", "JP.json", "index.json", ".backfill_state.json", "gb.json", "USA.json", "AB.json.tmp"):
            (tmp_path / name).write_text("{}", encoding="utf-8")

        assert [p.name for p in list_country_files(tmp_path)] == ["JP.json", "US.json"]

    def test_missing_directory(self, tmp_path):
        assert list_country_files(tmp_path / "missing") == []
