import math

import pytest

from riskgate import composer
from riskgate.baselines import BaselineProvider
from riskgate.history import HistoryStore
from riskgate.models import AlertLevel, DailySnapshot, SignalType
from riskgate.scoring import ScoringEngine
from riskgate.surge import evaluate_daily_surge

from conftest import build_config


@pytest.mark.parametrize(
    "ratio, expected",
    [(0.5, 0.0), (1.0, 0.0), (1.75, 3.0), (2.25, 5.0), (2.75, 7.0), (3.75, 10.0), (12.0, 10.0)],
)
def test_ratio_curve_anchors(ratio, expected):
    assert composer.ratio_to_score(ratio) == pytest.approx(expected)


def test_ratio_score_zero_when_unstable_or_invalid():
    assert composer.ratio_score(3.0, is_stable=False) == 0.0
    assert composer.ratio_score(float("nan"), is_stable=True) == 0.0
    assert composer.ratio_score(float("inf"), is_stable=True) == 0.0
    assert composer.ratio_score(-2.0, is_stable=True) == 0.0
    assert composer.ratio_score(3.553, is_stable=True) == 9.4


def test_raw_score_clamps(config):
    assert composer.raw_score(125, 250) == 5.0
    assert composer.raw_score(5000, 250) == 10.0


def test_adjustment_never_amplifies(config):
    cfg = config.baseline_adjustment
    for weight in (0, 10, 500, 5000, 250000):
        for share in (0.01, 0.05, 1.0):
            adjusted, factor = composer.adjust(400, weight, cfg, share)
            assert 0 < factor <= 1.0
            assert adjusted <= 400


def test_adjustment_damps_hub_countries(config):
    assert composer.adjusted_score(250, 0, SignalType.R1, config) == 5.0
    assert composer.adjusted_score(250, 100000, SignalType.R1, config) == 0.0


def test_adjustment_mode_none():
    config = build_config(baseline_adjustment={"mode": "none"})
    assert composer.adjust(321, 99999, config.baseline_adjustment) == (321, 1.0)


def test_views_are_reproducible_from_raw_fields(config):
    provider = BaselineProvider(long_window={"PK": {SignalType.EVENT: (4000, 4000, 1800), SignalType.R1: (30, 30, 1800)}})
    snap = DailySnapshot("PK", "2024-04-02", event_count=3000, r1=180, r2=40, r3=60, r4=10, avg_tone=-2.5)
    engine = ScoringEngine(config, HistoryStore(), provider)
    engine.ingest([snap])
    result = engine.score_country(snap)

    ratios = evaluate_daily_surge(snap, provider, config).ratios()
    again = composer.compose_views(snap, provider.weight("PK"), config, ratios)
    assert result.views == again
    assert composer.compose_views(snap, provider.weight("PK"), config, ratios) == again
    assert again.ratio["R1"] > 0
    assert again.ratio["R4"] == 0.0


def test_index_score_levels():
    zero = {t: 0.0 for t in ("R1", "R2", "R3", "R4")}
    assert composer.index_score(zero, zero, pressure_noise=False) == (0.0, AlertLevel.GREEN)
    hot = {t: 10.0 for t in ("R1", "R2", "R3", "R4")}
    score, level = composer.index_score(hot, hot, pressure_noise=False)
    assert score == 10.0
    assert level is AlertLevel.RED

    security_only = {"R1": 10.0, "R2": 0.0, "R3": 10.0, "R4": 0.0}
    calm, _ = composer.index_score(security_only, security_only, pressure_noise=False)
    pressured, _ = composer.index_score(security_only, security_only, pressure_noise=True)
    assert pressured < calm
    assert calm == pytest.approx(round(math.sqrt(50), 1))


def test_supplementary_views_published(config):
    snap = DailySnapshot("NG", "2024-04-02", event_count=4000, r1=1000, r3=70)
    views = composer.compose_views(snap, 0.0, config)
    assert views.raw_abs == {"R1": 5.0, "R2": 0.0, "R3": pytest.approx(10 * math.sqrt(70 / (120 * 16)), abs=0.01), "R4": 0.0}
    assert views.raw_ratio["R1"] == 10.0
    assert views.raw_ratio["R3"] == 5.0
    assert (views.index, views.index_level) == composer.index_score(views.raw_ratio, views.adjusted, pressure_noise=False)
    payload = views.to_dict()
    assert payload["raw_ratio"] == views.raw_ratio
    assert payload["index_level"] == views.index_level.value
