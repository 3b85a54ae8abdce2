"""Unit tests for georisksurge.io.history_store and georisksurge.analysis.first_lit.

Covers:
- merge_history_entries: overlay by week, ascending order
- write_country_history / load_country_history / read_histories
- build_index / refresh_index
- backfill state save, load, clear
- load_static_countries
- compute_first_lit
"""

from __future__ import annotations

import json

from georisksurge.analysis.first_lit import compute_first_lit
from georisksurge.io.history_store import (
    BACKFILL_STATE_FILENAME,
    INDEX_FILENAME,
    build_index,
    clear_backfill_state,
    load_backfill_state,
    load_country_history,
    load_static_countries,
    merge_history_entries,
    read_histories,
    refresh_index,
    save_backfill_state,
    write_country_history,
)
from georisksurge.models.history import CountryHistory


def _entry(week, overall="None", **levels):
    return {
        "week": week,
        "levels": {"R1": "None", "R2": "None", "R3": "None", "R4": "None", **levels},
        "overall_level": overall,
    }


def _history(iso2, weeks):
    return CountryHistory(
        iso2=iso2,
        name_en=f"{iso2} name",
        generated_at="2024-03-11T00:00:00Z",
        history=[_entry(w) for w in weeks],
    )


class TestMergeHistoryEntries:
    def test_incoming_overwrites_and_sorts(self):
        existing = [_entry("2024-W08"), _entry("2024-W09", overall="Yellow")]
        incoming = [_entry("2024-W10"), _entry("2024-W09", overall="Red"), _entry("2024-W07")]
        merged = merge_history_entries(existing, incoming)
        assert [e["week"] for e in merged] == ["2024-W07", "2024-W08", "2024-W09", "2024-W10"]
        assert merged[2]["overall_level"] == "Red"

    def test_entries_without_week_dropped(self):
        merged = merge_history_entries([{"levels": {}}, _entry("2024-W01")], [])
        assert [e["week"] for e in merged] == ["2024-W01"]


class TestCountryArtifacts:
    def test_write_and_load(self, tmp_path):
        path = write_country_history(tmp_path, _history("JP", ["2024-W09", "2024-W10"]))
        assert path.name == "JP.json"

        data = load_country_history(tmp_path, "jp")
        assert data["iso2"] == "JP"
        assert data["weeks_total"] == 2
        assert [e["week"] for e in data["history"]] == ["2024-W09", "2024-W10"]

    def test_load_rejects_malformed(self, tmp_path):
        (tmp_path / "US.json").write_text(json.dumps({"history": "nope"}), encoding="utf-8")
        assert load_country_history(tmp_path, "US") is None
        assert load_country_history(tmp_path, "GB") is None

    def test_read_histories_skips_unreadable(self, tmp_path):
        write_country_history(tmp_path, _history("US", ["2024-W10", "2024-W08"]))
        (tmp_path / "GB.json").write_text("{broken", encoding="utf-8")

        histories = read_histories(tmp_path)
        assert [h.iso2 for h in histories] == ["US"]
        assert [e["week"] for e in histories[0].history] == ["2024-W08", "2024-W10"]


class TestIndex:
    def test_build_index(self):
        index = build_index(
            [_history("US", ["2024-W07", "2024-W10"]), _history("JP", ["2024-W09"]), _history("GB", [])],
            generated_at="2024-03-11T00:00:00Z",
        )
        assert index["countries"] == [
            {"iso2": "JP", "name_en": "JP name", "weeks": 1},
            {"iso2": "US", "name_en": "US name", "weeks": 2},
        ]
        assert index["start_week"] == "2024-W07"
        assert index["end_week"] == "2024-W10"
        assert index["schema_version"] == "weekly5y-v1"
        assert index["generated_at"] == "2024-03-11T00:00:00Z"

    def test_empty_index(self):
        index = build_index([])
        assert index["countries"] == []
        assert index["start_week"] is None
        assert index["generated_at"].endswith("Z")

    def test_refresh_index_reads_disk(self, tmp_path):
        write_country_history(tmp_path, _history("US", ["2024-W10"]))
        write_country_history(tmp_path, _history("JP", ["2024-W01"]))

        index = refresh_index(tmp_path)
        on_disk = json.loads((tmp_path / INDEX_FILENAME).read_text(encoding="utf-8"))
        assert on_disk == index
        assert index["start_week"] == "2024-W01"
        assert [c["iso2"] for c in index["countries"]] == ["JP", "US"]


class TestBackfillState:
    def test_defaults_when_absent(self, tmp_path):
        assert load_backfill_state(tmp_path) == {"chunks_completed": []}

    def test_save_load_clear(self, tmp_path):
        save_backfill_state(tmp_path, {"chunks_completed": ["2022", "2023"]})
        assert load_backfill_state(tmp_path)["chunks_completed"] == ["2022", "2023"]

        clear_backfill_state(tmp_path)
        assert not (tmp_path / BACKFILL_STATE_FILENAME).exists()
        clear_backfill_state(tmp_path)


class TestStaticCountries:
    def test_loads_countries_map(self, fixtures_dir):
        static = load_static_countries(fixtures_dir / "static_countries.json")
        assert static["JP"]["name_ja"] == "日本"

    def test_missing_path(self, tmp_path):
        assert load_static_countries(None) == {}
        assert load_static_countries(tmp_path / "missing.json") == {}


class TestFirstLit:
    def test_first_week_per_milestone(self):
        history = [
            _entry("2024-W10", overall="Red", R1="Red"),
            _entry("2024-W08", overall="Yellow", R1="Yellow"),
            _entry("2024-W09", overall="None", R1="Orange", R2="Yellow"),
        ]
        first_lit = compute_first_lit(history)
        assert first_lit["R1"] == {"yellow": "2024-W08", "orange": "2024-W09", "red": "2024-W10"}
        assert first_lit["R2"] == {"yellow": "2024-W09", "orange": None, "red": None}
        assert first_lit["overall"] == {"yellow": "2024-W08", "orange": "2024-W10", "red": "2024-W10"}
        assert first_lit["R4"] == {"yellow": None, "orange": None, "red": None}

    def test_nodata_never_lights(self):
        first_lit = compute_first_lit([_entry("2024-W10", overall="NoData", R1="NoData")])
        assert first_lit["overall"]["yellow"] is None
        assert first_lit["R1"]["yellow"] is None
