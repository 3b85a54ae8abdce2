"""Surge engine: smoothed 7-day ratio, gating and level per R-type.

Pure functions only: no file access and no config lookups. The threshold
struct (ScoringConfig) and the per-R daily medians are passed in by the
caller, so identical inputs always produce identical outputs.

Per R-type, for one (country, period) row:

    baseline7 = median * 7
    ratio7    = (today7 + k) / (baseline7 + k)
    share7    = today7 / max(1, event_count)

Levels are assigned from the unrounded ratio7. Activation requires the row to
be triggered (share or absolute gate, or a red override), the baseline to be
stable, and ratio7 to reach the yellow threshold.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from config.defaults import (
    FALLBACK_BASELINE_MEDIAN,
    MIN_BASELINE_TIERS,
    MIN_DAYS_PER_WEEK,
    R_TYPES,
    RATIO_DECIMALS,
)
from config.settings import ScoringConfig, SurgeThresholds
from georisksurge.models.surge import (
    BaselineMode,
    PeriodRow,
    RSurge,
    SurgeLevel,
    SurgeReason,
    SurgeResult,
    level_rank,
)


def classify_level(ratio7: float, thresholds: SurgeThresholds) -> str:
    """Map a ratio to None / Yellow / Orange / Red."""
    if ratio7 >= thresholds.red:
        return SurgeLevel.RED
    if ratio7 >= thresholds.orange:
        return SurgeLevel.ORANGE
    if ratio7 >= thresholds.yellow:
        return SurgeLevel.YELLOW
    return SurgeLevel.NONE


def smoothed_ratio(today7: float, baseline7: float, k: float) -> float:
    denominator = baseline7 + k
    if denominator <= 0:
        return 0.0
    return (today7 + k) / denominator


def dynamic_min_baseline(event_count: float, scoring: ScoringConfig) -> float:
    """Minimum daily baseline median for a stable surge, tiered by weekly volume."""
    for upper_bound, floor in MIN_BASELINE_TIERS:
        if event_count < upper_bound:
            return floor
    return scoring.min_baseline_median_for_surge


def dynamic_abs_threshold(r: str, event_count: float, scoring: ScoringConfig) -> float:
    floor = scoring.abs_floors.get(r, 0.0)
    share = scoring.abs_shares.get(r, 0.0)
    return max(floor, math.ceil(event_count * share))


def _reason(
    is_active: bool,
    triggered: bool,
    is_stable: bool,
    abs_hit: bool,
    share_hit: bool,
    is_high_volume: bool,
) -> str:
    if is_active:
        return SurgeReason.ACTIVE
    if not triggered:
        if abs_hit and is_high_volume and not share_hit:
            return SurgeReason.HIGH_VOL
        if abs_hit and not share_hit:
            return SurgeReason.LOW_SHARE
        if not abs_hit:
            return SurgeReason.LOW_ABS
        return SurgeReason.BELOW_THRESHOLD
    if not is_stable:
        return SurgeReason.LOW_BASELINE
    return SurgeReason.BELOW_THRESHOLD


def evaluate_gating(
    r: str,
    today7: float,
    baseline7: float,
    ratio7: float,
    share7: float,
    event_count: float,
    scoring: ScoringConfig,
    allow_active: bool = True,
) -> Dict[str, Any]:
    """Gating, stability, activation, and reason for one R-type.

    Shared by evaluate_r_surge() and the gating refresher, which re-runs
    this step on stored values.

    Args:
        allow_active: False forces is_active off (weeks without full data).

    Returns:
        Dict with dynamic_abs_threshold, abs_hit, share_hit, is_high_volume,
        red_override, triggered, is_stable, is_active, and reason.
    """
    thresholds = scoring.thresholds
    abs_threshold = dynamic_abs_threshold(r, event_count, scoring)
    abs_hit = today7 >= abs_threshold
    share_hit = share7 >= scoring.ratio_thresholds.get(r, 0.0)
    is_high_volume = event_count >= scoring.high_volume_floor
    red_override = ratio7 >= thresholds.red
    triggered = share_hit or (abs_hit and not is_high_volume) or red_override

    is_stable = (baseline7 / 7.0) >= dynamic_min_baseline(event_count, scoring)
    is_active = allow_active and triggered and is_stable and ratio7 >= thresholds.yellow

    return {
        "dynamic_abs_threshold": abs_threshold,
        "abs_hit": abs_hit,
        "share_hit": share_hit,
        "is_high_volume": is_high_volume,
        "red_override": red_override,
        "triggered": triggered,
        "is_stable": is_stable,
        "is_active": is_active,
        "reason": _reason(is_active, triggered, is_stable, abs_hit, share_hit, is_high_volume),
    }


def evaluate_r_surge(
    r: str,
    today7: int,
    median: float,
    event_count: int,
    scoring: ScoringConfig,
    has_data: bool = True,
) -> RSurge:
    """Compute the full surge outcome for one R-type.

    Args:
        r: R-type key ("R1".."R4").
        today7: Qualifying events in the 7-day window.
        median: Daily baseline median (already resolved, never None).
        event_count: Total events for the country in the window.
        scoring: Threshold struct.
        has_data: False when the window is not fully backed by data; the
            level becomes NoData and activation is suppressed.

    Returns:
        Unrounded RSurge.
    """
    baseline7 = median * 7.0
    ratio7 = smoothed_ratio(today7, baseline7, scoring.smoothing_k)
    share7 = today7 / max(1, event_count)
    level = classify_level(ratio7, scoring.thresholds) if has_data else SurgeLevel.NO_DATA

    gating = evaluate_gating(
        r, today7, baseline7, ratio7, share7, event_count, scoring, allow_active=has_data
    )
    return RSurge(
        r=r,
        today7=int(today7),
        baseline7=baseline7,
        ratio7=ratio7,
        share7=share7,
        level=level,
        **gating,
    )


def rebundle(by_type: Mapping[str, RSurge], has_data: bool = True) -> Tuple[str, float, List[str]]:
    """Summarise per-R outcomes into (overall_level, max_ratio_active, active_types).

    Only active R-types contribute; with none active the overall level is
    None (or NoData when the period lacks data).
    """
    active_types = [r for r in R_TYPES if r in by_type and by_type[r].is_active]
    max_ratio_active = max((by_type[r].ratio7 for r in active_types), default=0.0)

    overall = SurgeLevel.NONE if has_data else SurgeLevel.NO_DATA
    for r in active_types:
        if level_rank(by_type[r].level) > level_rank(overall):
            overall = by_type[r].level
    return overall, max_ratio_active, active_types


def row_has_data(row: PeriodRow) -> bool:
    return row.days_with_data is None or row.days_with_data >= MIN_DAYS_PER_WEEK


def compute_surge(
    row: PeriodRow,
    medians: Mapping[str, float],
    scoring: ScoringConfig,
    baseline_modes: Optional[Mapping[str, str]] = None,
) -> SurgeResult:
    """Run the surge engine over one period row.

    Args:
        row: Country/period counts.
        medians: Daily baseline median per R-type. Missing or falsy values are
            replaced by FALLBACK_BASELINE_MEDIAN.
        scoring: Threshold struct.
        baseline_modes: Optional per-R source labels carried into the result.

    Returns:
        SurgeResult with per-R outcomes and the bundle.
    """
    has_data = row_has_data(row)
    resolved = {r: float(medians.get(r) or FALLBACK_BASELINE_MEDIAN) for r in R_TYPES}
    by_type = {
        r: evaluate_r_surge(
            r, int(row.counts.get(r, 0)), resolved[r], int(row.event_count), scoring, has_data
        )
        for r in R_TYPES
    }
    overall, max_ratio_active, active_types = rebundle(by_type, has_data)

    modes = dict(baseline_modes) if baseline_modes else {}
    for r in R_TYPES:
        if not medians.get(r):
            modes[r] = BaselineMode.DEFAULT

    return SurgeResult(
        country=row.country,
        period_id=row.period_id,
        counts={r: int(row.counts.get(r, 0)) for r in R_TYPES},
        event_count=int(row.event_count),
        medians=resolved,
        by_type=by_type,
        overall_level=overall,
        max_ratio_active=max_ratio_active,
        active_types=active_types,
        baseline_modes=modes,
        days_with_data=row.days_with_data,
    )


def resolve_medians(
    iso2: str,
    calmest_countries: Mapping[str, Any],
    r_baselines: Mapping[str, Any],
) -> Tuple[Dict[str, float], Dict[str, str]]:
    """Pick the daily median per R-type for a country.

    The calmest-window median wins when present and non-zero, then the
    5-year per-R median, then FALLBACK_BASELINE_MEDIAN.

    Args:
        iso2: Country code.
        calmest_countries: ``countries`` map of the calmest baselines artifact.
        r_baselines: ``baselines`` map of the 5-year per-R artifact.

    Returns:
        Tuple of (medians, baseline_modes).
    """
    calm = ((calmest_countries.get(iso2) or {}).get("gdelt") or {}).get("baseline") or {}
    five_year = r_baselines.get(iso2) or {}

    medians: Dict[str, float] = {}
    modes: Dict[str, str] = {}
    for r in R_TYPES:
        calm_median = calm.get(f"median_{r.lower()}")
        fallback_median = (five_year.get(r) or {}).get("median")
        if calm_median:
            medians[r], modes[r] = float(calm_median), BaselineMode.CALMEST
        elif fallback_median:
            medians[r], modes[r] = float(fallback_median), BaselineMode.FALLBACK_5Y
        else:
            medians[r], modes[r] = FALLBACK_BASELINE_MEDIAN, BaselineMode.DEFAULT
    return medians, modes


def weekly_surge_meta(scoring: ScoringConfig) -> Dict[str, Any]:
    """Threshold block repeated in every weekly_surge_r entry."""
    return {
        "thresholds": scoring.thresholds.as_dict(),
        "smoothing_k": scoring.smoothing_k,
        "high_volume_floor": scoring.high_volume_floor,
        "min_baseline_median_for_surge": scoring.min_baseline_median_for_surge,
    }


# ── Duplicate periods ──────────────────────────────────────────────────────────


def merge_duplicates(results: Sequence[SurgeResult], scoring: ScoringConfig) -> SurgeResult:
    """Merge results sharing a (country, period) and re-run the engine.

    Counts and event_count are summed; medians and baseline modes come from
    the first result; days_with_data keeps the largest value seen.
    """
    if not results:
        raise ValueError("merge_duplicates() needs at least one result")
    first = results[0]
    if len(results) == 1:
        return first

    counts = {r: sum(res.counts.get(r, 0) for res in results) for r in R_TYPES}
    event_count = sum(res.event_count for res in results)
    days = [res.days_with_data for res in results if res.days_with_data is not None]

    merged_row = PeriodRow(
        country=first.country,
        period_id=first.period_id,
        counts=counts,
        event_count=event_count,
        days_with_data=max(days) if days else None,
    )
    return compute_surge(merged_row, first.medians, scoring, first.baseline_modes)


def dedupe_results(
    results: Iterable[SurgeResult], scoring: ScoringConfig
) -> Tuple[List[SurgeResult], int]:
    """Collapse one country's results to a single entry per period, ascending.

    The sort is stable, so "first" is the earliest-arriving result for a
    period.

    Returns:
        Tuple of (deduplicated results, number of extra rows merged away).
    """
    ordered = sorted(results, key=lambda res: res.period_id)
    deduped: List[SurgeResult] = []
    merged_away = 0
    i = 0
    while i < len(ordered):
        j = i + 1
        while j < len(ordered) and ordered[j].period_id == ordered[i].period_id:
            j += 1
        group = ordered[i:j]
        merged_away += len(group) - 1
        deduped.append(merge_duplicates(group, scoring))
        i = j
    return deduped, merged_away


# ── Stored-entry maintenance ───────────────────────────────────────────────────


def entry_has_data(entry: Mapping[str, Any]) -> bool:
    days = entry.get("days_with_data")
    if days is not None and days < MIN_DAYS_PER_WEEK:
        return False
    return entry.get("overall_level") != SurgeLevel.NO_DATA


def refresh_gating(entry: Dict[str, Any], scoring: ScoringConfig) -> bool:
    """Re-evaluate gating on a stored weekly history entry, in place.

    ratio7 and share7 are recomputed unrounded from the stored today7,
    baseline7, and event_count, with the smoothing k recorded in the entry's
    bundle, so gating decides on the same values the levels came from.
    Updates abs_hit, share_hit, triggered, is_stable, is_active, reason, and
    gate_status per R-type plus the bundle's max_ratio_active and
    active_types. ``levels`` and each R-type's level are left untouched.

    Returns:
        True if any field changed.
    """
    by_type = entry.get("weekly_surge_r_by_type") or {}
    event_count = entry.get("event_count") or 0
    has_data = entry_has_data(entry)
    bundle = entry.get("weekly_surge_r")
    k = scoring.smoothing_k
    if isinstance(bundle, dict) and bundle.get("smoothing_k") is not None:
        k = bundle["smoothing_k"]
    changed = False

    for r in R_TYPES:
        sr = by_type.get(r)
        if not sr:
            continue
        today7 = sr.get("today7", 0)
        baseline7 = sr.get("baseline7", 0.0)
        gating = evaluate_gating(
            r,
            today7,
            baseline7,
            smoothed_ratio(today7, baseline7, k),
            today7 / max(1, event_count),
            event_count,
            scoring,
            allow_active=has_data,
        )
        updates = {
            "abs_hit": gating["abs_hit"],
            "share_hit": gating["share_hit"],
            "triggered": gating["triggered"],
            "is_stable": gating["is_stable"],
            "is_active": gating["is_active"],
            "reason": gating["reason"],
            "gate_status": "stable" if gating["is_stable"] else "unstable",
        }
        for key, value in updates.items():
            if sr.get(key) != value:
                sr[key] = value
                changed = True

    if isinstance(bundle, dict):
        active_types = [r for r in R_TYPES if (by_type.get(r) or {}).get("is_active")]
        max_active = max((by_type[r].get("ratio7", 0.0) for r in active_types), default=0.0)
        max_active = round(max_active, RATIO_DECIMALS)
        if bundle.get("active_types") != active_types or bundle.get("max_ratio_active") != max_active:
            bundle["active_types"] = active_types
            bundle["max_ratio_active"] = max_active
            changed = True
    return changed
