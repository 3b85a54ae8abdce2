"""Unit tests for georisksurge.analysis.surge_engine.

Covers:
- evaluate_r_surge: smoothed ratio, levels, share/abs gating, red override
- compute_surge: bundle, default medians, NoData weeks
- _reason priority: active, high-vol, low-abs, low-baseline, below-threshold
- dynamic_min_baseline / dynamic_abs_threshold tiers
- resolve_medians: calmest, 5-year fallback, default
- merge_duplicates / dedupe_results
- refresh_gating: in-place recompute, idempotence, levels untouched
"""

from __future__ import annotations

import copy

import pytest

from config.settings import ScoringConfig
from georisksurge.analysis.surge_engine import (
    classify_level,
    compute_surge,
    dedupe_results,
    dynamic_abs_threshold,
    dynamic_min_baseline,
    evaluate_r_surge,
    merge_duplicates,
    refresh_gating,
    resolve_medians,
    smoothed_ratio,
    weekly_surge_meta,
)
from georisksurge.models.surge import BaselineMode, PeriodRow, SurgeLevel, SurgeReason


def _row(r1: int, event_count: int, period: str = "2024-W10", days=None, **others) -> PeriodRow:
    counts = {"R1": r1, **{k.upper(): v for k, v in others.items()}}
    return PeriodRow(country="US", period_id=period, counts=counts, event_count=event_count, days_with_data=days)


# ── Literal scenarios ────────────────────────────────────────────────────────────

class TestScenarios:
    def test_clean_row_below_yellow(self, scoring):
        """500 R1 events on a 50/day median stay below Yellow."""
        result = compute_surge(_row(500, 10000), {"R1": 50}, scoring)
        r1 = result.by_type["R1"]
        assert r1.ratio7 == pytest.approx(505 / 355)
        assert r1.level == SurgeLevel.NONE
        assert r1.is_active is False
        assert r1.reason == SurgeReason.BELOW_THRESHOLD
        assert result.overall_level == SurgeLevel.NONE

    def test_clean_row_active_yellow(self, scoring):
        """900 R1 events on a 50/day median is an active Yellow surge."""
        result = compute_surge(_row(900, 10000), {"R1": 50}, scoring)
        r1 = result.by_type["R1"]
        assert r1.ratio7 == pytest.approx(905 / 355)
        assert r1.level == SurgeLevel.YELLOW
        assert r1.dynamic_abs_threshold == 200
        assert r1.abs_hit is True
        assert r1.share_hit is True
        assert r1.is_high_volume is True
        assert r1.is_active is True
        assert r1.reason == SurgeReason.ACTIVE
        assert result.overall_level == SurgeLevel.YELLOW
        assert result.active_types == ["R1"]
        assert result.max_ratio_active == pytest.approx(905 / 355)

    def test_red_surge(self, scoring):
        result = compute_surge(_row(40000, 100000), {"R1": 1000}, scoring)
        r1 = result.by_type["R1"]
        assert r1.ratio7 == pytest.approx(40005 / 7005)
        assert r1.level == SurgeLevel.RED
        assert r1.share_hit is True
        assert r1.is_active is True
        assert result.overall_level == SurgeLevel.RED

    def test_red_override_rescues_low_share(self, scoring):
        """A high-volume country with a low share still triggers at Red."""
        r1 = evaluate_r_surge("R1", 2000, 50, 100000, scoring)
        assert r1.share_hit is False
        assert r1.is_high_volume is True
        assert r1.red_override is True
        assert r1.triggered is True
        assert r1.is_active is True

    def test_low_abs_gate(self):
        """10 events against a floor of 100 and a 5% share threshold are not triggered."""
        scoring = ScoringConfig(
            abs_floors={"R1": 100},
            abs_shares={"R1": 0.02},
            ratio_thresholds={"R1": 0.05},
        )
        r1 = evaluate_r_surge("R1", 10, 1, 300, scoring)
        assert r1.ratio7 == pytest.approx(15 / 12)
        assert r1.level == SurgeLevel.NONE
        assert r1.triggered is False
        assert r1.reason == SurgeReason.LOW_ABS

    def test_low_baseline(self, scoring):
        """A 0.5/day median is below the 1.0 tier for small countries."""
        r1 = evaluate_r_surge("R1", 20, 0.5, 200, scoring)
        assert r1.ratio7 == pytest.approx(25 / 8.5)
        assert r1.level == SurgeLevel.ORANGE
        assert r1.triggered is True
        assert r1.is_stable is False
        assert r1.is_active is False
        assert r1.reason == SurgeReason.LOW_BASELINE


# ── Ratio and level properties ───────────────────────────────────────────────────

class TestRatioProperties:
    @pytest.mark.parametrize("today7,median", [(0, 0.0), (7, 1.0), (123, 4.5), (9999, 321.0)])
    def test_ratio_formula(self, scoring, today7, median):
        r = evaluate_r_surge("R2", today7, median, 5000, scoring)
        assert r.ratio7 == pytest.approx((today7 + 5) / (median * 7 + 5), abs=1e-6)

    def test_ratio_non_decreasing_in_today7(self):
        ratios = [smoothed_ratio(t, 70.0, 5.0) for t in range(0, 500, 25)]
        assert ratios == sorted(ratios)

    def test_ratio_non_increasing_in_baseline7(self):
        ratios = [smoothed_ratio(100, b, 5.0) for b in range(0, 500, 25)]
        assert ratios == sorted(ratios, reverse=True)

    def test_zero_denominator_returns_zero(self):
        assert smoothed_ratio(10, 0.0, 0.0) == 0.0

    def test_level_staircase(self, scoring):
        """Crossing 1.75, 2.75, 3.75 steps through Yellow, Orange, Red in order."""
        t = scoring.thresholds
        assert classify_level(t.yellow - 1e-9, t) == SurgeLevel.NONE
        assert classify_level(t.yellow, t) == SurgeLevel.YELLOW
        assert classify_level(t.orange - 1e-9, t) == SurgeLevel.YELLOW
        assert classify_level(t.orange, t) == SurgeLevel.ORANGE
        assert classify_level(t.red - 1e-9, t) == SurgeLevel.ORANGE
        assert classify_level(t.red, t) == SurgeLevel.RED

    def test_level_uses_unrounded_ratio(self, scoring):
        """A ratio just under 1.75 stays None even though it rounds to 1.750."""
        # (today7 + 5) / (baseline7 + 5) = 1.7499...
        r = evaluate_r_surge("R1", 17494, 1428.0, 100000, scoring)
        assert round(r.ratio7, 3) == 1.75
        assert r.ratio7 < 1.75
        assert r.level == SurgeLevel.NONE

    @pytest.mark.parametrize("today7", [0, 10, 50, 200, 1000, 5000])
    @pytest.mark.parametrize("event_count", [100, 1500, 4000, 20000])
    def test_active_implies_gates(self, scoring, today7, event_count):
        r = evaluate_r_surge("R1", today7, 3.0, event_count, scoring)
        if r.is_active:
            assert r.triggered and r.is_stable and r.ratio7 >= scoring.thresholds.yellow
        if r.ratio7 >= scoring.thresholds.red:
            assert r.triggered is True


# ── Gating tiers and reasons ─────────────────────────────────────────────────────

class TestGating:
    @pytest.mark.parametrize(
        "event_count,expected",
        [(0, 1.0), (499, 1.0), (500, 1.5), (1999, 1.5), (2000, 3.0), (50000, 3.0)],
    )
    def test_dynamic_min_baseline_tiers(self, scoring, event_count, expected):
        assert dynamic_min_baseline(event_count, scoring) == expected

    def test_dynamic_abs_threshold_floor_and_share(self, scoring):
        assert dynamic_abs_threshold("R1", 1000, scoring) == 100
        assert dynamic_abs_threshold("R1", 10001, scoring) == 201
        assert dynamic_abs_threshold("R4", 4000, scoring) == 40

    def test_reason_high_vol(self, scoring):
        """Absolute hit without share in a high-volume country reports high-vol."""
        r = evaluate_r_surge("R1", 200, 40, 10000, scoring)
        assert r.abs_hit is True
        assert r.share_hit is False
        assert r.triggered is False
        assert r.reason == SurgeReason.HIGH_VOL

    def test_abs_route_triggers_below_high_volume(self, scoring):
        """An absolute hit in a country under the high-volume floor triggers without share."""
        r = evaluate_r_surge("R1", 120, 15, 4500, scoring)
        assert r.abs_hit is True
        assert r.share_hit is False
        assert r.is_high_volume is False
        assert r.triggered is True
        assert r.ratio7 == pytest.approx(125 / 110)
        assert r.reason == SurgeReason.BELOW_THRESHOLD

    def test_allow_active_false_without_full_week(self, scoring):
        result = compute_surge(_row(900, 10000, days=4), {"R1": 50}, scoring)
        assert all(s.level == SurgeLevel.NO_DATA for s in result.by_type.values())
        assert all(s.is_active is False for s in result.by_type.values())
        assert result.overall_level == SurgeLevel.NO_DATA
        assert result.active_types == []

    def test_full_week_of_data_is_scored(self, scoring):
        result = compute_surge(_row(900, 10000, days=7), {"R1": 50}, scoring)
        assert result.overall_level == SurgeLevel.YELLOW


# ── compute_surge ────────────────────────────────────────────────────────────────

class TestComputeSurge:
    def test_missing_medians_fall_back_to_default(self, scoring):
        result = compute_surge(_row(10, 100), {"R1": 0}, scoring)
        assert result.medians == {"R1": 1.0, "R2": 1.0, "R3": 1.0, "R4": 1.0}
        assert result.baseline_modes == {r: BaselineMode.DEFAULT for r in ("R1", "R2", "R3", "R4")}
        assert result.by_type["R1"].baseline7 == pytest.approx(7.0)

    def test_counts_filled_for_every_r_type(self, scoring):
        result = compute_surge(_row(10, 100), {}, scoring)
        assert result.counts == {"R1": 10, "R2": 0, "R3": 0, "R4": 0}

    def test_overall_level_is_max_of_active(self, scoring):
        medians = {"R1": 50, "R2": 10, "R3": 10, "R4": 10}
        result = compute_surge(_row(900, 10000, r2=400), medians, scoring)
        assert result.by_type["R2"].level == SurgeLevel.RED
        assert result.overall_level == SurgeLevel.RED
        assert result.active_types == ["R1", "R2"]
        assert result.max_ratio_active == pytest.approx(result.by_type["R2"].ratio7)

    def test_inactive_levels_do_not_raise_overall(self, scoring):
        """An Orange R-type that is not active leaves the bundle at None."""
        result = compute_surge(_row(20, 200), {"R1": 0.5}, scoring)
        assert result.by_type["R1"].level == SurgeLevel.ORANGE
        assert result.overall_level == SurgeLevel.NONE
        assert result.max_ratio_active == 0.0

    def test_history_entry_rounding(self, scoring):
        result = compute_surge(_row(900, 10000), {"R1": 50}, scoring)
        entry = result.to_history_entry(weekly_surge_meta(scoring))
        assert entry["ratios"]["R1"] == 2.549
        assert entry["weekly_surge_r_by_type"]["R1"]["share7"] == 0.09
        assert entry["weekly_surge_r"]["level"] == "yellow"
        assert entry["weekly_surge_r"]["thresholds"] == {"yellow": 1.75, "orange": 2.75, "red": 3.75}
        assert entry["weekly_surge_r_by_type"]["R1"]["gate_status"] == "stable"

    def test_deterministic(self, scoring):
        a = compute_surge(_row(900, 10000), {"R1": 50}, scoring)
        b = compute_surge(_row(900, 10000), {"R1": 50}, scoring)
        assert a == b


# ── Baseline resolution ──────────────────────────────────────────────────────────

class TestResolveMedians:
    def test_calmest_then_five_year_then_default(self, calmest_doc, r_baselines_doc):
        calmest = calmest_doc["countries"]
        r_baselines = r_baselines_doc["baselines"]

        medians, modes = resolve_medians("US", calmest, r_baselines)
        assert medians == {"R1": 50.0, "R2": 20.0, "R3": 30.0, "R4": 10.0}
        assert set(modes.values()) == {BaselineMode.CALMEST}

        medians, modes = resolve_medians("GB", calmest, r_baselines)
        assert medians["R1"] == 4.0
        assert modes["R1"] == BaselineMode.FALLBACK_5Y
        # A zero five-year median is not a usable divisor
        assert medians["R2"] == 1.0
        assert modes["R2"] == BaselineMode.DEFAULT

    def test_unknown_country_uses_default(self):
        medians, modes = resolve_medians("ZZ", {}, {})
        assert medians == {"R1": 1.0, "R2": 1.0, "R3": 1.0, "R4": 1.0}
        assert modes["R4"] == BaselineMode.DEFAULT


# ── Duplicate periods ────────────────────────────────────────────────────────────

class TestDedupe:
    def test_merge_sums_counts_and_reruns(self, scoring):
        medians = {"R1": 10}
        a = compute_surge(_row(100, 1000), medians, scoring)
        b = compute_surge(_row(50, 500), medians, scoring)
        merged = merge_duplicates([a, b], scoring)
        assert merged.counts["R1"] == 150
        assert merged.event_count == 1500
        assert merged == compute_surge(_row(150, 1500), medians, scoring)

    def test_merge_keeps_first_medians_and_max_days(self, scoring):
        a = compute_surge(_row(10, 100, days=5), {"R1": 10}, scoring)
        b = compute_surge(_row(10, 100, days=7), {"R1": 99}, scoring)
        merged = merge_duplicates([a, b], scoring)
        assert merged.medians["R1"] == 10.0
        assert merged.days_with_data == 7
        assert merged.overall_level != SurgeLevel.NO_DATA

    def test_dedupe_results_sorted_one_per_period(self, scoring):
        results = [
            compute_surge(_row(1, 10, period="2024-W10"), {}, scoring),
            compute_surge(_row(2, 10, period="2024-W08"), {}, scoring),
            compute_surge(_row(3, 10, period="2024-W10"), {}, scoring),
        ]
        deduped, merged_away = dedupe_results(results, scoring)
        assert [r.period_id for r in deduped] == ["2024-W08", "2024-W10"]
        assert deduped[1].counts["R1"] == 4
        assert merged_away == 1

    def test_merge_requires_results(self, scoring):
        with pytest.raises(ValueError):
            merge_duplicates([], scoring)


# ── Stored-entry gating refresh ──────────────────────────────────────────────────

class TestRefreshGating:
    def _entry(self, scoring, **row_kwargs):
        result = compute_surge(_row(**row_kwargs), {"R1": 50}, scoring)
        return result.to_history_entry(weekly_surge_meta(scoring))

    def test_refresh_is_idempotent(self, scoring):
        entry = self._entry(scoring, r1=900, event_count=10000)
        snapshot = copy.deepcopy(entry)
        assert refresh_gating(entry, scoring) is False
        assert entry == snapshot

    @pytest.mark.parametrize(
        "r1,median,event_count",
        [
            (17494, 1428, 100000),  # ratio7 1.74973 stores as 1.750
            (2999, 214, 99990),  # share7 0.029993 stores as 0.0300
        ],
    )
    def test_refresh_ignores_rounding_at_thresholds(self, scoring, r1, median, event_count):
        """Stored values that round onto a threshold do not flip gating."""
        result = compute_surge(_row(r1=r1, event_count=event_count), {"R1": median}, scoring)
        entry = result.to_history_entry(weekly_surge_meta(scoring))
        snapshot = copy.deepcopy(entry)

        assert refresh_gating(entry, scoring) is False
        assert entry == snapshot
        r1_entry = entry["weekly_surge_r_by_type"]["R1"]
        assert r1_entry["is_active"] is False
        assert entry["weekly_surge_r"]["active_types"] == []

    def test_refresh_applies_new_share_threshold(self, scoring):
        """Tightening R1's share threshold deactivates the surge but keeps its level."""
        entry = self._entry(scoring, r1=900, event_count=10000)
        stricter = ScoringConfig(
            abs_floors=dict(scoring.abs_floors),
            abs_shares=dict(scoring.abs_shares),
            ratio_thresholds={**scoring.ratio_thresholds, "R1": 0.5},
        )
        assert refresh_gating(entry, stricter) is True

        r1 = entry["weekly_surge_r_by_type"]["R1"]
        assert r1["share_hit"] is False
        assert r1["is_active"] is False
        assert r1["reason"] == SurgeReason.HIGH_VOL
        assert entry["levels"]["R1"] == SurgeLevel.YELLOW
        assert entry["weekly_surge_r"]["active_types"] == []
        assert entry["weekly_surge_r"]["max_ratio_active"] == 0.0

    def test_refresh_keeps_nodata_inactive(self, scoring):
        entry = self._entry(scoring, r1=900, event_count=10000, days=2)
        refresh_gating(entry, scoring)
        assert entry["weekly_surge_r_by_type"]["R1"]["is_active"] is False
