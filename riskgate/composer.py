"""Display views (0-10 scales) derived from stored raw fields.

All functions here are pure: the same raw fields and config always reproduce
the same displayed values, so views are never persisted as separate state.
"""

from __future__ import annotations

import math
from typing import Dict, Mapping, Optional, Tuple

from .config_models import BaselineAdjustmentConfig, ScoringConfig, SurgeThresholds
from .models import R_TYPES, AlertLevel, DailySnapshot, ScoreViews, SignalType

MAX_SCORE = 10.0
EXTERNAL_PRESSURE_WEIGHT = 0.35
INDEX_LEVELS = ((7.5, AlertLevel.RED), (5.5, AlertLevel.ORANGE), (3.5, AlertLevel.YELLOW))


def _clamp(value: float) -> float:
    return max(0.0, min(MAX_SCORE, value))


def raw_score(raw: float, absolute_threshold: float) -> float:
    return round(_clamp(raw / absolute_threshold * 10), 1)


def raw_view(snapshot: DailySnapshot, config: ScoringConfig) -> Dict[str, float]:
    return {t.value: raw_score(snapshot.count(t), config.signal(t).absolute_threshold) for t in R_TYPES}


def adjust(raw: float, weight: float, cfg: BaselineAdjustmentConfig, share: float = 1.0) -> Tuple[float, float]:
    """Damp ``raw`` for high-baseline countries; returns (adjusted, factor)."""
    if cfg.mode == "none":
        return raw, 1.0
    type_weight = weight * share
    floor = cfg.floor * share
    if cfg.mode == "subtract":
        adjusted = max(floor / 10, raw - (type_weight * cfg.k / 5000))
        return adjusted, adjusted / raw if raw > 0 else 1.0
    effective = max(type_weight, floor)
    factor = min(1.0, floor / max(effective * cfg.k, cfg.epsilon))
    return raw * factor, factor


def adjusted_score(raw: float, weight: float, signal_type: SignalType, config: ScoringConfig) -> float:
    adj_cfg = config.baseline_adjustment
    share = adj_cfg.type_shares.get(signal_type, 1.0)
    adjusted, _ = adjust(raw, weight, adj_cfg, share)
    return round(_clamp(adjusted * (5.0 / config.signal(signal_type).absolute_threshold)), 1)


def adjusted_view(snapshot: DailySnapshot, weight: float, config: ScoringConfig) -> Dict[str, float]:
    return {t.value: adjusted_score(snapshot.count(t), weight, t, config) for t in R_TYPES}


def ratio_to_score(ratio: float, thresholds: Optional[SurgeThresholds] = None) -> float:
    """Piecewise-linear surge curve: 1.0->0, yellow->3, orange->7, red->10."""
    th = thresholds or SurgeThresholds()
    if not math.isfinite(ratio) or ratio < 1.0:
        return 0.0
    if ratio < th.yellow:
        return 3 * (ratio - 1.0) / (th.yellow - 1.0)
    if ratio < th.orange:
        return 3 + 4 * (ratio - th.yellow) / (th.orange - th.yellow)
    if ratio < th.red:
        return 7 + 3 * (ratio - th.orange) / (th.red - th.orange)
    return MAX_SCORE


def ratio_score(ratio: float, is_stable: bool, thresholds: Optional[SurgeThresholds] = None) -> float:
    if not is_stable or not math.isfinite(ratio) or ratio <= 0:
        return 0.0
    return round(ratio_to_score(ratio, thresholds), 1)


def ratio_view(
    ratios: Mapping[SignalType, Tuple[float, bool]],
    thresholds: Optional[SurgeThresholds] = None,
) -> Dict[str, float]:
    """Map per-type (ratio, is_stable) pairs onto the surge_r scale; absent types score 0."""
    view = {}
    for signal_type in R_TYPES:
        if signal_type not in ratios:
            view[signal_type.value] = 0.0
            continue
        ratio, stable = ratios[signal_type]
        view[signal_type.value] = ratio_score(ratio, stable, thresholds)
    return view


def raw_abs_view(snapshot: DailySnapshot, config: ScoringConfig) -> Dict[str, float]:
    """Square-root scale that keeps large countries from saturating."""
    view = {}
    for t in R_TYPES:
        threshold = config.signal(t).absolute_threshold
        view[t.value] = round(_clamp(10 * math.sqrt(snapshot.count(t) / (threshold * 16))), 2)
    return view


def raw_ratio_view(snapshot: DailySnapshot, config: ScoringConfig) -> Dict[str, float]:
    view = {}
    for t in R_TYPES:
        share = snapshot.count(t) / snapshot.event_count if snapshot.event_count > 0 else 0.0
        view[t.value] = round(_clamp(10 * share / config.signal(t).ratio_threshold), 2)
    return view


def index_score(
    raw_ratio: Mapping[str, float],
    adjusted: Mapping[str, float],
    pressure_noise: bool,
) -> Tuple[float, AlertLevel]:
    """Surge-biased composite with a chronic-intensity floor, as a weighted RMS."""
    sum_sq = 0.0
    sum_w = 0.0
    for t in R_TYPES:
        floor = raw_ratio.get(t.value, 0.0)
        surging = 0.45 * floor + 0.55 * adjusted.get(t.value, 0.0)
        type_score = max(surging, 0.35 * floor)
        weight = EXTERNAL_PRESSURE_WEIGHT if pressure_noise and t.external_pressure_sensitive else 1.0
        sum_sq += weight * type_score * type_score
        sum_w += weight
    score = math.sqrt(sum_sq / sum_w) if sum_w > 0 else 0.0
    level = next((lvl for cut, lvl in INDEX_LEVELS if score >= cut), AlertLevel.GREEN)
    return round(score, 1), level


def compose_views(
    snapshot: DailySnapshot,
    weight: float,
    config: ScoringConfig,
    ratios: Optional[Mapping[SignalType, Tuple[float, bool]]] = None,
    pressure_noise: bool = False,
) -> ScoreViews:
    adjusted = adjusted_view(snapshot, weight, config)
    raw_ratio = raw_ratio_view(snapshot, config)
    index, index_level = index_score(raw_ratio, adjusted, pressure_noise)
    return ScoreViews(
        raw=raw_view(snapshot, config),
        adjusted=adjusted,
        ratio=ratio_view(ratios or {}, config.surge_r.thresholds),
        raw_abs=raw_abs_view(snapshot, config),
        raw_ratio=raw_ratio,
        index=index,
        index_level=index_level,
    )
