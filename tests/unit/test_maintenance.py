"""Unit tests for georisksurge.agents.maintenance_agent.

Covers:
- GatingRefreshAgent: no-op on fresh artifacts, stricter gates, levels untouched
- DedupeAgent: duplicate weeks merged and re-scored, index refreshed
- merge_week_entries: medians recovered from stored baseline7
- target-country filtering and cancellation
"""

from __future__ import annotations

import copy
import dataclasses
import json

from georisksurge.agents.base import AgentStatus
from georisksurge.agents.maintenance_agent import DedupeAgent, GatingRefreshAgent, merge_week_entries
from georisksurge.analysis.surge_engine import compute_surge, resolve_medians, weekly_surge_meta
from georisksurge.io.history_store import INDEX_FILENAME
from georisksurge.models.surge import PeriodRow, SurgeLevel, SurgeReason


def _read(path):
    return json.loads(path.read_text(encoding="utf-8"))


# ── GatingRefreshAgent ───────────────────────────────────────────────────────────

class TestGatingRefreshAgent:
    def test_fresh_artifacts_unchanged(self, test_pipeline_context, stored_histories):
        before = {p.name: p.read_text(encoding="utf-8") for p in test_pipeline_context.history_dir.glob("*.json")}

        result = GatingRefreshAgent().run(test_pipeline_context)

        assert result.operation == "refresh-gating"
        assert result.status == AgentStatus.OK
        assert result.files_scanned == 3
        assert result.entries_updated == 0
        assert result.files_changed == []
        after = {p.name: p.read_text(encoding="utf-8") for p in test_pipeline_context.history_dir.glob("*.json")}
        assert after == before

    def test_stricter_share_gate_deactivates_high_volume_week(self, test_pipeline_context, stored_histories, scoring):
        test_pipeline_context.scoring = dataclasses.replace(
            scoring, ratio_thresholds={"R1": 0.5, "R2": 0.03, "R3": 0.035, "R4": 0.03}
        )

        result = GatingRefreshAgent().run(test_pipeline_context)

        assert "US.json" in result.files_changed
        us = _read(test_pipeline_context.history_dir / "US.json")
        w09 = next(e for e in us["history"] if e["week"] == "2024-W09")
        r1 = w09["weekly_surge_r_by_type"]["R1"]
        assert r1["share_hit"] is False
        assert r1["is_active"] is False
        assert r1["reason"] == SurgeReason.HIGH_VOL
        assert w09["weekly_surge_r"]["active_types"] == []
        assert w09["weekly_surge_r"]["max_ratio_active"] == 0.0
        # Levels are never recomputed by the refresher
        assert w09["levels"]["R1"] == SurgeLevel.YELLOW
        assert w09["overall_level"] == SurgeLevel.YELLOW

    def test_red_override_survives_stricter_gate(self, test_pipeline_context, stored_histories, scoring):
        test_pipeline_context.scoring = dataclasses.replace(
            scoring, ratio_thresholds={"R1": 0.5, "R2": 0.03, "R3": 0.035, "R4": 0.03}
        )
        GatingRefreshAgent().run(test_pipeline_context)

        jp = _read(test_pipeline_context.history_dir / "JP.json")
        r1 = jp["history"][-1]["weekly_surge_r_by_type"]["R1"]
        assert r1["share_hit"] is False
        assert r1["is_active"] is True

    def test_target_countries(self, test_pipeline_context, stored_histories):
        test_pipeline_context.config.target_countries = ["JP"]
        result = GatingRefreshAgent().run(test_pipeline_context)
        assert result.files_scanned == 1

    def test_unreadable_artifact_warned(self, test_pipeline_context, stored_histories):
        (test_pipeline_context.history_dir / "FR.json").write_text("{broken", encoding="utf-8")
        result = GatingRefreshAgent().run(test_pipeline_context)
        assert result.files_scanned == 3
        assert any("FR.json" in w for w in result.warnings)

    def test_stop_requested(self, test_pipeline_context, stored_histories):
        test_pipeline_context.stop_requested = True
        result = GatingRefreshAgent().run(test_pipeline_context)
        assert result.status == AgentStatus.CANCELLED
        assert result.files_scanned == 0


# ── DedupeAgent ──────────────────────────────────────────────────────────────────

class TestDedupeAgent:
    def _duplicate_us_w10(self, context):
        path = context.history_dir / "US.json"
        data = _read(path)
        data["history"].append(copy.deepcopy(data["history"][-1]))
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_duplicate_weeks_merged(self, test_pipeline_context, stored_histories, scoring, calmest_doc, r_baselines_doc):
        path = self._duplicate_us_w10(test_pipeline_context)

        result = DedupeAgent().run(test_pipeline_context)

        assert result.operation == "dedupe"
        assert result.duplicates_merged == 1
        assert result.files_changed == ["US.json"]
        data = _read(path)
        assert [e["week"] for e in data["history"]] == ["2024-W07", "2024-W08", "2024-W09", "2024-W10"]
        assert data["weeks_total"] == 4
        assert "deduplicated_at" in data

        medians, modes = resolve_medians("US", calmest_doc["countries"], r_baselines_doc["baselines"])
        summed = PeriodRow(country="US", period_id="2024-W10", counts={"R1": 300}, event_count=3000, days_with_data=7)
        expected = compute_surge(summed, medians, scoring, modes).to_history_entry(weekly_surge_meta(scoring))
        assert data["history"][-1] == expected

    def test_index_refreshed(self, test_pipeline_context, stored_histories):
        (test_pipeline_context.history_dir / INDEX_FILENAME).unlink()

        result = DedupeAgent().run(test_pipeline_context)

        assert result.index_written is True
        assert result.files_changed == []
        index = _read(test_pipeline_context.history_dir / INDEX_FILENAME)
        assert [c["iso2"] for c in index["countries"]] == ["GB", "JP", "US"]

    def test_cancelled_run_leaves_index_alone(self, test_pipeline_context, stored_histories):
        (test_pipeline_context.history_dir / INDEX_FILENAME).unlink()
        test_pipeline_context.stop_requested = True

        result = DedupeAgent().run(test_pipeline_context)

        assert result.status == AgentStatus.CANCELLED
        assert result.index_written is False
        assert not (test_pipeline_context.history_dir / INDEX_FILENAME).exists()


class TestMergeWeekEntries:
    def test_medians_from_stored_baseline7(self, scoring):
        entry = {
            "week": "2024-W10",
            "counts": {"R1": 20, "R2": 0, "R3": 0, "R4": 0},
            "event_count": 200,
            "days_with_data": 7,
            "weekly_surge_r_by_type": {"R1": {"baseline7": 35.0}, "R2": {"baseline7": 0.0}},
            "baseline_modes": {"R1": "fallback_5y"},
        }
        merged = merge_week_entries([entry, dict(entry, days_with_data=5)], scoring)

        assert merged["counts"]["R1"] == 40
        assert merged["event_count"] == 400
        assert merged["days_with_data"] == 7
        assert merged["weekly_surge_r_by_type"]["R1"]["baseline7"] == 35.0
        # (40 + 5) / (35 + 5)
        assert merged["ratios"]["R1"] == 1.125
        assert merged["baseline_modes"]["R1"] == "fallback_5y"
        assert merged["baseline_modes"]["R2"] == "default"
