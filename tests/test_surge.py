from datetime import date

import pytest

from riskgate.baselines import BaselineProvider
from riskgate.models import AlertLevel, DailySnapshot, SignalType, WeeklyReason
from riskgate.surge import (
    aggregate_week,
    evaluate_daily_surge,
    evaluate_week_type,
    iso_week_id,
    level_for_ratio,
    min_baseline_for,
    refresh_gating,
    share_threshold_for,
    sum_week,
    week_dates,
)

from conftest import build_config

WEEK = "2024-W10"


def test_reference_week_is_orange(config):
    record = evaluate_week_type(WEEK, SignalType.R1, today7=2500, event_count7=20000, daily_median=100, config=config)
    assert record.baseline7 == 700
    assert record.ratio7 == pytest.approx(3.553, abs=1e-3)
    assert record.is_active is True
    assert record.reason is WeeklyReason.ACTIVE
    assert level_for_ratio(record.ratio7, config.surge_r.thresholds) is AlertLevel.ORANGE


def test_red_override_activates_high_volume_week(config):
    record = evaluate_week_type(WEEK, SignalType.R1, today7=500, event_count7=100000, daily_median=10, config=config)
    assert record.share_hit is False
    assert record.abs_hit is False
    assert record.red_override is True
    assert record.is_active is True


def test_red_ratio_with_unstable_baseline_is_low_baseline(config):
    record = evaluate_week_type(WEEK, SignalType.R1, today7=300, event_count7=3000, daily_median=1.0, config=config)
    assert record.ratio7 >= config.surge_r.thresholds.red
    assert record.triggered is True
    assert record.is_active is False
    assert record.reason is WeeklyReason.LOW_BASELINE


@pytest.mark.parametrize(
    "signal_type, today7, event_count7, daily_median, reason",
    [
        (SignalType.R2, 100, 10000, 50, WeeklyReason.HIGH_VOL),
        (SignalType.R1, 60, 8000, 10, WeeklyReason.LOW_SHARE),
        (SignalType.R1, 10, 8000, 10, WeeklyReason.LOW_ABS),
        (SignalType.R1, 100, 3000, 20, WeeklyReason.BELOW_THRESHOLD),
    ],
)
def test_weekly_reasons(config, signal_type, today7, event_count7, daily_median, reason):
    record = evaluate_week_type(WEEK, signal_type, today7, event_count7, daily_median, config)
    assert record.reason is reason
    assert record.is_active is False


def test_baseline_tiers(config):
    cfg = config.surge_r
    assert min_baseline_for(100, cfg) == 1.0
    assert min_baseline_for(1500, cfg) == 1.5
    assert min_baseline_for(50000, cfg) == 3


def test_dynamic_share_only_when_enabled(config):
    assert share_threshold_for(SignalType.R1, 20000, config) == 0.05
    dynamic = build_config(surge_r={"dynamic_share": {"enabled": True, "min_share": 0.01}})
    assert share_threshold_for(SignalType.R1, 20000, dynamic) == pytest.approx(0.025)
    assert share_threshold_for(SignalType.R1, 4000, dynamic) == 0.05
    assert share_threshold_for(SignalType.R1, 10**7, dynamic) == 0.01


def test_active_types_subset_of_triggered_and_level_is_max(config):
    medians = {SignalType.R1: 20, SignalType.R2: 5, SignalType.R3: 1.2, SignalType.R4: 40}
    provider = BaselineProvider(long_window={"XX": {t: (m, m, 1800) for t, m in medians.items()}})
    for counts in (
        {SignalType.R1: 400, SignalType.R2: 60, SignalType.R3: 30, SignalType.R4: 100},
        {SignalType.R1: 90, SignalType.R2: 200, SignalType.R3: 5, SignalType.R4: 1000},
        {SignalType.R1: 0, SignalType.R2: 0, SignalType.R3: 0, SignalType.R4: 0},
    ):
        for event_count7 in (400, 3000, 60000):
            agg = aggregate_week("XX", WEEK, counts, event_count7, provider, config)
            triggered = {r.signal_type for r in agg.records if r.triggered}
            assert agg.active_types <= triggered
            if agg.active_types:
                assert agg.level is level_for_ratio(agg.max_ratio_active, config.surge_r.thresholds)
                assert agg.level is not AlertLevel.GREEN
            else:
                assert agg.level is AlertLevel.GREEN
                assert agg.max_ratio_active == 0.0


def test_sum_week_and_dates():
    snaps = [DailySnapshot("KE", f"2024-03-0{d}", event_count=100, r1=d) for d in range(1, 8)]
    counts, event_count7, days = sum_week(snaps)
    assert counts[SignalType.R1] == 28
    assert event_count7 == 700
    assert days == 7
    assert week_dates(date(2024, 3, 10))[0] == "2024-03-04"
    assert iso_week_id(date(2024, 3, 10)) == WEEK


def test_refresh_gating_uses_stored_raw_fields(config):
    provider = BaselineProvider(long_window={"NG": {SignalType.R1: (100, 100, 1800)}})
    counts = {SignalType.R1: 2500, SignalType.R2: 0, SignalType.R3: 0, SignalType.R4: 0}
    stored = aggregate_week("NG", WEEK, counts, 20000, provider, config).to_dict()

    stricter = build_config(surge_r={"thresholds": {"yellow": 4.0, "orange": 5.0, "red": 6.0}})
    refreshed = refresh_gating("NG", stored, stricter)
    assert stored["weekly_surge_r"]["level"] == "orange"
    assert refreshed.level is AlertLevel.GREEN
    assert refresh_gating("NG", stored, config).to_dict() == stored


def test_daily_surge_raises_bar_under_external_pressure(config):
    provider = BaselineProvider(long_window={"SY": {SignalType.R1: (50, 50, 1800), SignalType.R2: (50, 50, 1800)}})
    snap = DailySnapshot("SY", "2024-03-10", event_count=1000, r1=110, r2=110, domestic_ratio=0.1)
    calm = evaluate_daily_surge(snap, provider, config, pressure_noise=False)
    pressured = evaluate_daily_surge(snap, provider, config, pressure_noise=True)
    assert calm.records[SignalType.R1].is_active is True
    assert pressured.records[SignalType.R1].is_active is False
    assert pressured.records[SignalType.R1].active_threshold == config.surge_r.thresholds.orange
    assert pressured.records[SignalType.R2].is_active is True
