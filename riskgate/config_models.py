"""Pydantic models for config/scoring.yaml.

Every default used by the scoring engine lives here. Evaluators receive the
validated ``ScoringConfig`` and never fall back to inline defaults.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import R_TYPES, SignalType


class SignalTypeConfig(BaseModel):
    absolute_threshold: float = Field(..., gt=0)
    ratio_threshold: float = Field(..., gt=0, le=1)
    use_jump_gate: bool = False
    jump_threshold: float = Field(1.3, gt=0)
    window_days: int = Field(14, gt=0)
    min_history_days: int = Field(10, ge=0)
    min_median_floor: float = Field(0, ge=0)

    @model_validator(mode="after")
    def check_history_fits_window(self):
        if self.min_history_days > self.window_days:
            raise ValueError("min_history_days cannot exceed window_days")
        return self


def _default_signals() -> Dict[SignalType, SignalTypeConfig]:
    return {
        SignalType.R1: SignalTypeConfig(absolute_threshold=250, ratio_threshold=0.05),
        SignalType.R2: SignalTypeConfig(absolute_threshold=150, ratio_threshold=0.03),
        SignalType.R3: SignalTypeConfig(absolute_threshold=120, ratio_threshold=0.035),
        SignalType.R4: SignalTypeConfig(absolute_threshold=150, ratio_threshold=0.03),
    }


class VolumeJumpConfig(BaseModel):
    enabled: bool = True
    window_days: int = Field(14, gt=0)
    threshold: float = Field(1.5, gt=0)
    min_history_days: int = Field(10, ge=0)
    min_median_floor: float = Field(200, ge=0)
    cold_start_multiplier: float = Field(2.0, ge=1)


class VolumeConfig(BaseModel):
    threshold: int = Field(5000, gt=0)
    jump: VolumeJumpConfig = Field(default_factory=VolumeJumpConfig)


class ToneConfig(BaseModel):
    bad_threshold: float = -3.0
    mild_threshold: float = -1.5

    @model_validator(mode="after")
    def check_order(self):
        if self.bad_threshold > self.mild_threshold:
            raise ValueError("bad_threshold must be <= mild_threshold")
        return self


class AlertLevelsConfig(BaseModel):
    red_bundles: int = Field(3, gt=0)
    orange_bundles: int = Field(2, gt=0)
    yellow_min_bundles: int = Field(1, gt=0)
    yellow_requires_tone: bool = True

    @model_validator(mode="after")
    def check_order(self):
        if not self.yellow_min_bundles <= self.orange_bundles <= self.red_bundles:
            raise ValueError("Expected yellow_min_bundles <= orange_bundles <= red_bundles")
        return self


class ExternalPressureConfig(BaseModel):
    domestic_ratio_max: float = Field(0.20, ge=0, le=1)


class SurgeThresholds(BaseModel):
    yellow: float = Field(1.75, gt=0)
    orange: float = Field(2.75, gt=0)
    red: float = Field(3.75, gt=0)

    @model_validator(mode="after")
    def check_order(self):
        if not self.yellow < self.orange < self.red:
            raise ValueError("Surge thresholds must be strictly increasing")
        return self


class BaselineTier(BaseModel):
    """Minimum daily baseline median for weeks below ``max_event_count7`` events."""

    max_event_count7: int = Field(..., gt=0)
    min_baseline: float = Field(..., ge=0)


class DynamicShareConfig(BaseModel):
    enabled: bool = False
    min_share: float = Field(0.010, gt=0, le=1)


class SurgeRConfig(BaseModel):
    thresholds: SurgeThresholds = Field(default_factory=SurgeThresholds)
    smoothing_k: float = Field(5.0, ge=0)
    high_volume_floor: int = Field(5000, gt=0)
    min_baseline_median_for_surge: float = Field(3.0, ge=0)
    baseline_tiers: List[BaselineTier] = Field(
        default_factory=lambda: [
            BaselineTier(max_event_count7=500, min_baseline=1.0),
            BaselineTier(max_event_count7=2000, min_baseline=1.5),
        ]
    )
    dynamic_share: DynamicShareConfig = Field(default_factory=DynamicShareConfig)

    @field_validator("baseline_tiers")
    def sort_tiers(cls, tiers: List[BaselineTier]):
        return sorted(tiers, key=lambda tier: tier.max_event_count7)


class LowAbsConfig(BaseModel):
    floors: Dict[SignalType, int] = Field(
        default_factory=lambda: {SignalType.R1: 50, SignalType.R2: 25, SignalType.R3: 25, SignalType.R4: 25}
    )
    shares: Dict[SignalType, float] = Field(
        default_factory=lambda: {SignalType.R1: 0.01, SignalType.R2: 0.005, SignalType.R3: 0.005, SignalType.R4: 0.005}
    )


class GatingConfig(BaseModel):
    low_abs: LowAbsConfig = Field(default_factory=LowAbsConfig)


class BaselineAdjustmentConfig(BaseModel):
    mode: Literal["none", "ratio", "subtract"] = "ratio"
    k: float = Field(1.0, gt=0)
    floor: float = Field(50.0, gt=0)
    epsilon: float = Field(1.0, gt=0)
    type_shares: Dict[SignalType, float] = Field(
        default_factory=lambda: {
            SignalType.EVENT: 1.0,
            SignalType.R1: 0.05,
            SignalType.R2: 0.01,
            SignalType.R3: 0.02,
            SignalType.R4: 0.03,
        }
    )


class HistoryConfig(BaseModel):
    max_retention_days: int = Field(30, gt=0)


class WeeklyConfig(BaseModel):
    retention_weeks: int = Field(260, gt=0)


class SafetyConfig(BaseModel):
    min_output_countries: int = Field(200, ge=0)


class FeedConfig(BaseModel):
    url: Optional[str] = None
    timeout_sec: float = Field(20, gt=0)
    max_retries: int = Field(4, ge=0)
    backoff_sec: float = Field(2.0, ge=0)
    rate_limit_sec: float = Field(0.2, ge=0)


class ScoringConfig(BaseModel):
    version: str = "v4.2"
    event_count_floor: int = Field(100, ge=0)
    signals: Dict[SignalType, SignalTypeConfig] = Field(default_factory=_default_signals)
    volume: VolumeConfig = Field(default_factory=VolumeConfig)
    tone: ToneConfig = Field(default_factory=ToneConfig)
    alert_levels: AlertLevelsConfig = Field(default_factory=AlertLevelsConfig)
    external_pressure: ExternalPressureConfig = Field(default_factory=ExternalPressureConfig)
    surge_r: SurgeRConfig = Field(default_factory=SurgeRConfig)
    gating: GatingConfig = Field(default_factory=GatingConfig)
    baseline_adjustment: BaselineAdjustmentConfig = Field(default_factory=BaselineAdjustmentConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    weekly: WeeklyConfig = Field(default_factory=WeeklyConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)

    @field_validator("signals")
    def ensure_r_types(cls, signals: Dict[SignalType, SignalTypeConfig]):
        if SignalType.EVENT in signals:
            raise ValueError("EVENT is configured under volume, not signals")
        missing = [t.value for t in R_TYPES if t not in signals]
        if missing:
            raise ValueError(f"Missing signal configs: {', '.join(missing)}")
        return signals

    @model_validator(mode="after")
    def check_retention_covers_windows(self):
        windows = [cfg.window_days for cfg in self.signals.values()]
        windows.append(self.volume.jump.window_days)
        if self.history.max_retention_days < max(windows):
            raise ValueError("history.max_retention_days must cover every rolling window")
        return self

    def signal(self, signal_type: SignalType) -> SignalTypeConfig:
        return self.signals[signal_type]
