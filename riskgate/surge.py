"""Smoothed surge ratios against long-run baselines (weekly gate + daily view)."""

from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .baselines import BaselineProvider
from .config_models import ScoringConfig, SurgeRConfig, SurgeThresholds
from .models import (
    R_TYPES,
    AlertLevel,
    DailySnapshot,
    DailySurge,
    DailySurgeRecord,
    SignalType,
    WeeklyAggregate,
    WeeklyReason,
    WeeklyTypeRecord,
)

LOGGER = logging.getLogger(__name__)


def smoothed_ratio(today: float, baseline: float, k: float) -> float:
    return (today + k) / (baseline + k)


def level_for_ratio(ratio: float, thresholds: SurgeThresholds) -> AlertLevel:
    if ratio >= thresholds.red:
        return AlertLevel.RED
    if ratio >= thresholds.orange:
        return AlertLevel.ORANGE
    if ratio >= thresholds.yellow:
        return AlertLevel.YELLOW
    return AlertLevel.GREEN


def min_baseline_for(event_count7: int, cfg: SurgeRConfig) -> float:
    """Stability floor for the daily baseline median, relaxed for low-volume weeks."""
    for tier in cfg.baseline_tiers:
        if event_count7 < tier.max_event_count7:
            return tier.min_baseline
    return cfg.min_baseline_median_for_surge


def share_threshold_for(signal_type: SignalType, event_count7: int, config: ScoringConfig) -> float:
    base = config.signal(signal_type).ratio_threshold
    surge_cfg = config.surge_r
    dynamic = surge_cfg.dynamic_share
    if dynamic.enabled and event_count7 > surge_cfg.high_volume_floor:
        return max(dynamic.min_share, base * math.sqrt(surge_cfg.high_volume_floor / event_count7))
    return base


def iso_week_id(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def week_dates(week_end: date) -> List[str]:
    """The seven ISO dates ending on ``week_end`` (inclusive), oldest first."""
    return [(week_end - timedelta(days=offset)).isoformat() for offset in range(6, -1, -1)]


def evaluate_week_type(
    week_id: str,
    signal_type: SignalType,
    today7: int,
    event_count7: int,
    daily_median: float,
    config: ScoringConfig,
) -> WeeklyTypeRecord:
    surge_cfg = config.surge_r
    thresholds = surge_cfg.thresholds
    low_abs = config.gating.low_abs

    baseline7 = daily_median * 7
    ratio7 = smoothed_ratio(today7, baseline7, surge_cfg.smoothing_k)
    share7 = today7 / max(1, event_count7)

    floor = low_abs.floors.get(signal_type, 0)
    share_floor = math.ceil(event_count7 * low_abs.shares.get(signal_type, 0.0))
    abs_hit = today7 >= max(floor, share_floor)
    share_hit = share7 >= share_threshold_for(signal_type, event_count7, config)
    high_volume = event_count7 >= surge_cfg.high_volume_floor
    red_override = ratio7 >= thresholds.red

    triggered = share_hit or (abs_hit and not high_volume) or red_override
    is_stable = daily_median >= min_baseline_for(event_count7, surge_cfg)
    is_active = triggered and is_stable and ratio7 >= thresholds.yellow

    if is_active:
        reason = WeeklyReason.ACTIVE
    elif not triggered:
        if abs_hit and high_volume:
            reason = WeeklyReason.HIGH_VOL
        elif today7 >= floor:
            # cleared the fixed floor but not the volume-scaled share floor
            reason = WeeklyReason.LOW_SHARE
        else:
            reason = WeeklyReason.LOW_ABS
    elif not is_stable:
        reason = WeeklyReason.LOW_BASELINE
    else:
        reason = WeeklyReason.BELOW_THRESHOLD

    return WeeklyTypeRecord(
        week_id=week_id,
        signal_type=signal_type,
        today7=today7,
        baseline7=baseline7,
        ratio7=ratio7,
        share7=share7,
        abs_hit=abs_hit,
        share_hit=share_hit,
        high_volume=high_volume,
        red_override=red_override,
        triggered=triggered,
        is_stable=is_stable,
        is_active=is_active,
        reason=reason,
    )


def summarize_week(
    country: str,
    week_id: str,
    event_count7: int,
    records: Iterable[WeeklyTypeRecord],
    thresholds: SurgeThresholds,
) -> WeeklyAggregate:
    records = tuple(records)
    active = [r for r in records if r.is_active]
    max_ratio_active = max((r.ratio7 for r in active), default=0.0)
    return WeeklyAggregate(
        country_code=country,
        week_id=week_id,
        event_count7=event_count7,
        level=level_for_ratio(max_ratio_active, thresholds) if active else AlertLevel.GREEN,
        max_ratio_active=max_ratio_active,
        active_types=frozenset(r.signal_type for r in active),
        records=records,
    )


def aggregate_week(
    country: str,
    week_id: str,
    counts7: Mapping[SignalType, int],
    event_count7: int,
    baselines: BaselineProvider,
    config: ScoringConfig,
) -> WeeklyAggregate:
    records = [
        evaluate_week_type(
            week_id,
            signal_type,
            int(counts7.get(signal_type, 0)),
            event_count7,
            baselines.resolve(country, signal_type),
            config,
        )
        for signal_type in R_TYPES
    ]
    return summarize_week(country, week_id, event_count7, records, config.surge_r.thresholds)


def sum_week(snapshots: Iterable[DailySnapshot]) -> Tuple[Dict[SignalType, int], int, int]:
    """Return (per-type 7-day sums, event_count7, days with data)."""
    counts = {t: 0 for t in R_TYPES}
    event_count7 = 0
    days = 0
    for snapshot in snapshots:
        for signal_type in R_TYPES:
            counts[signal_type] += snapshot.count(signal_type)
        event_count7 += snapshot.event_count
        days += 1
    return counts, event_count7, days


def evaluate_daily_surge(
    snapshot: DailySnapshot,
    baselines: BaselineProvider,
    config: ScoringConfig,
    pressure_noise: bool = False,
) -> DailySurge:
    """Daily surge_r: today's counts against the long-run daily median."""
    surge_cfg = config.surge_r
    thresholds = surge_cfg.thresholds
    high_volume = snapshot.event_count >= surge_cfg.high_volume_floor
    records: Dict[SignalType, DailySurgeRecord] = {}
    active: List[SignalType] = []
    max_ratio = 0.0
    for signal_type in R_TYPES:
        cfg = config.signal(signal_type)
        today = snapshot.count(signal_type)
        record = baselines.record(snapshot.country_code, signal_type)
        ratio = smoothed_ratio(today, max(1.0, record.median), surge_cfg.smoothing_k)
        share = today / max(1, snapshot.event_count)
        abs_hit = today >= cfg.absolute_threshold
        share_hit = share >= cfg.ratio_threshold
        triggered = share_hit or (abs_hit and not high_volume)
        active_threshold = thresholds.yellow
        if pressure_noise and signal_type.external_pressure_sensitive:
            active_threshold = thresholds.orange
        is_stable = record.median >= surge_cfg.min_baseline_median_for_surge
        is_active = triggered and is_stable and ratio >= active_threshold
        if is_active:
            active.append(signal_type)
            max_ratio = max(max_ratio, ratio)
        records[signal_type] = DailySurgeRecord(
            signal_type=signal_type,
            today=today,
            baseline_median=record.median,
            ratio=ratio,
            share=share,
            abs_hit=abs_hit,
            share_hit=share_hit,
            triggered=triggered,
            is_stable=is_stable,
            is_active=is_active,
            active_threshold=active_threshold,
        )
    return DailySurge(
        records=records,
        active_types=frozenset(active),
        max_ratio_active=max_ratio,
        level=level_for_ratio(max_ratio, thresholds) if active else AlertLevel.GREEN,
    )


def record_from_dict(week_id: str, signal_type: SignalType, payload: Mapping[str, object]) -> Optional[Tuple[int, float]]:
    """Extract (today7, daily median) from a stored by-type record."""
    try:
        today7 = int(payload["today7"])  # type: ignore[arg-type]
        baseline7 = float(payload["baseline7"])  # type: ignore[arg-type]
    except (KeyError, TypeError, ValueError):
        LOGGER.warning("Stored record %s/%s lacks raw fields", week_id, signal_type.value)
        return None
    return today7, baseline7 / 7


def refresh_gating(country: str, entry: Mapping[str, object], config: ScoringConfig) -> Optional[WeeklyAggregate]:
    """Re-run gating for a stored weekly entry from its raw fields only."""
    week_id = str(entry.get("week") or "")
    by_type = entry.get("weekly_surge_r_by_type") or {}
    if not week_id or not isinstance(by_type, Mapping):
        return None
    event_count7 = int(entry.get("event_count") or 0)  # type: ignore[arg-type]
    records = []
    for signal_type in R_TYPES:
        stored = by_type.get(signal_type.value)
        if not isinstance(stored, Mapping):
            continue
        raw = record_from_dict(week_id, signal_type, stored)
        if raw is None:
            continue
        today7, daily_median = raw
        records.append(evaluate_week_type(week_id, signal_type, today7, event_count7, daily_median, config))
    return summarize_week(country, week_id, event_count7, records, config.surge_r.thresholds)
