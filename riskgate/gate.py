"""Jump-gate evaluation for R-type signals and the volume-jump signal.

Precedence is encoded as ordered rule tables: the first rule whose predicate
matches decides the outcome. The external-pressure override is applied after
the table and only to security/governance-class signal types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .config_models import ScoringConfig
from .history import HistoryStore
from .models import DailySnapshot, GateReason, RollingMedian, SignalEvaluation, SignalType


@dataclass(frozen=True)
class GateInputs:
    raw: float
    abs_hit: bool
    ratio_hit: bool
    gate_enabled: bool
    rolling: RollingMedian
    min_history_days: int
    min_median_floor: float
    jump_threshold: float

    @property
    def jump(self) -> float:
        return self.raw / max(self.rolling.median, 1.0)


GateRule = Tuple[GateReason, Callable[[GateInputs], bool], bool]

# (reason, predicate, triggered) evaluated top to bottom
GATE_RULES: Tuple[GateRule, ...] = (
    (GateReason.NONE, lambda g: not (g.abs_hit or g.ratio_hit), False),
    (GateReason.GATE_DISABLED, lambda g: not g.gate_enabled, True),
    (GateReason.RATIO_BYPASS, lambda g: g.ratio_hit and not g.abs_hit, True),
    (GateReason.LOW_HISTORY, lambda g: g.rolling.history_days < g.min_history_days, True),
    (GateReason.LOW_MEDIAN, lambda g: g.rolling.median < g.min_median_floor, True),
    (GateReason.JUMP, lambda g: g.jump >= g.jump_threshold, True),
    (GateReason.GATE_SUPPRESSED, lambda g: True, False),
)

# Reasons worth surfacing as skip_reason on the evaluation record.
_REPORTED = {
    GateReason.LOW_HISTORY,
    GateReason.LOW_MEDIAN,
    GateReason.GATE_SUPPRESSED,
    GateReason.EXTERNAL_PRESSURE_SUPPRESSED,
    GateReason.LOW_HISTORY_FALLBACK,
    GateReason.LOW_MEDIAN_FALLBACK,
}

_EMPTY_ROLLING = RollingMedian(median=0.0, history_days=0)


def decide(inputs: GateInputs, rules: Tuple[GateRule, ...] = GATE_RULES) -> Tuple[GateReason, bool]:
    for reason, predicate, triggered in rules:
        if predicate(inputs):
            return reason, triggered
    raise ValueError("Gate rule table has no catch-all row")


def external_pressure_noise(snapshot: DailySnapshot, config: ScoringConfig) -> bool:
    return snapshot.domestic_ratio <= config.external_pressure.domestic_ratio_max


def evaluate_signal(
    snapshot: DailySnapshot,
    signal_type: SignalType,
    config: ScoringConfig,
    history: HistoryStore,
    pressure_noise: Optional[bool] = None,
) -> SignalEvaluation:
    cfg = config.signal(signal_type)
    raw = snapshot.count(signal_type)
    ratio = raw / snapshot.event_count if snapshot.event_count > 0 else 0.0
    abs_hit = raw > cfg.absolute_threshold
    ratio_hit = ratio > cfg.ratio_threshold
    needs_history = cfg.use_jump_gate and abs_hit
    rolling = (
        history.rolling_median(snapshot.country_code, signal_type.metric, cfg.window_days, as_of=snapshot.date)
        if needs_history
        else _EMPTY_ROLLING
    )
    inputs = GateInputs(
        raw=raw,
        abs_hit=abs_hit,
        ratio_hit=ratio_hit,
        gate_enabled=cfg.use_jump_gate,
        rolling=rolling,
        min_history_days=cfg.min_history_days,
        min_median_floor=cfg.min_median_floor,
        jump_threshold=cfg.jump_threshold,
    )
    reason, triggered = decide(inputs)
    jump = inputs.jump if reason in (GateReason.JUMP, GateReason.GATE_SUPPRESSED) else 0.0

    if pressure_noise is None:
        pressure_noise = external_pressure_noise(snapshot, config)
    if triggered and pressure_noise and signal_type.external_pressure_sensitive:
        reason, triggered = GateReason.EXTERNAL_PRESSURE_SUPPRESSED, False

    return SignalEvaluation(
        type=signal_type,
        raw_value=raw,
        ratio_of_total=ratio,
        abs_hit=abs_hit,
        ratio_hit=ratio_hit,
        triggered=triggered,
        jump_ratio=jump,
        rolling_median=rolling.median,
        history_days=rolling.history_days,
        decision=reason,
        skip_reason=reason if reason in _REPORTED else None,
    )


def evaluate_volume(snapshot: DailySnapshot, config: ScoringConfig, history: HistoryStore) -> SignalEvaluation:
    """Volume-jump signal with a stricter absolute fallback for cold starts."""
    volume = config.volume
    jump_cfg = volume.jump
    count = snapshot.event_count
    abs_hit = count > volume.threshold
    if not jump_cfg.enabled:
        reason = GateReason.ABSOLUTE if abs_hit else GateReason.NONE
        return SignalEvaluation(
            type=SignalType.EVENT,
            raw_value=count,
            ratio_of_total=1.0,
            abs_hit=abs_hit,
            ratio_hit=False,
            triggered=abs_hit,
            decision=reason,
        )

    rolling = history.rolling_median(
        snapshot.country_code, SignalType.EVENT.metric, jump_cfg.window_days, as_of=snapshot.date
    )
    cold_start_hit = count >= jump_cfg.cold_start_multiplier * volume.threshold
    jump = 0.0
    if rolling.history_days < jump_cfg.min_history_days:
        triggered = cold_start_hit
        reason = GateReason.LOW_HISTORY_FALLBACK if triggered else GateReason.LOW_HISTORY
    elif rolling.median < jump_cfg.min_median_floor:
        triggered = cold_start_hit
        reason = GateReason.LOW_MEDIAN_FALLBACK if triggered else GateReason.LOW_MEDIAN
    else:
        jump = count / max(rolling.median, 1.0)
        triggered = jump >= jump_cfg.threshold
        reason = GateReason.JUMP if triggered else GateReason.NONE

    return SignalEvaluation(
        type=SignalType.EVENT,
        raw_value=count,
        ratio_of_total=1.0,
        abs_hit=abs_hit,
        ratio_hit=False,
        triggered=triggered,
        jump_ratio=jump,
        rolling_median=rolling.median,
        history_days=rolling.history_days,
        decision=reason,
        skip_reason=reason if reason in _REPORTED else None,
    )
