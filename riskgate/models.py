"""Signal types and the plain records exchanged between scoring stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple


class SignalType(str, Enum):
    EVENT = "EVENT"
    R1 = "R1"
    R2 = "R2"
    R3 = "R3"
    R4 = "R4"

    @property
    def label(self) -> str:
        return SIGNAL_TABLE[self][0]

    @property
    def feed_field(self) -> str:
        return SIGNAL_TABLE[self][1]

    @property
    def external_pressure_sensitive(self) -> bool:
        return SIGNAL_TABLE[self][2]

    @property
    def metric(self) -> str:
        """History-store metric name."""
        return self.value.lower()


# type -> (label, long feed field name, suppressed under external pressure)
SIGNAL_TABLE: Dict[SignalType, Tuple[str, str, bool]] = {
    SignalType.EVENT: ("volume", "event_count", False),
    SignalType.R1: ("security", "r1_security", True),
    SignalType.R2: ("living", "r2_living_count", False),
    SignalType.R3: ("governance", "r3_governance", True),
    SignalType.R4: ("fiscal", "r4_fiscal_count", False),
}

R_TYPES: Tuple[SignalType, ...] = (SignalType.R1, SignalType.R2, SignalType.R3, SignalType.R4)


class AlertLevel(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {AlertLevel.GREEN: 0, AlertLevel.YELLOW: 1, AlertLevel.ORANGE: 2, AlertLevel.RED: 3}


class BaselineSource(str, Enum):
    CALMEST_WINDOW = "calmest_window"
    LONG_WINDOW = "long_window"
    DEFAULT = "default"


class GateReason(str, Enum):
    NONE = "none"
    GATE_DISABLED = "gate_disabled"
    RATIO_BYPASS = "ratio_bypass"
    LOW_HISTORY = "low_history"
    LOW_MEDIAN = "low_median"
    JUMP = "jump"
    GATE_SUPPRESSED = "gate_suppressed"
    EXTERNAL_PRESSURE_SUPPRESSED = "external_pressure_suppressed"
    # volume-only outcomes
    LOW_HISTORY_FALLBACK = "low_history_fallback"
    LOW_MEDIAN_FALLBACK = "low_median_fallback"
    ABSOLUTE = "absolute"


class WeeklyReason(str, Enum):
    ACTIVE = "active"
    HIGH_VOL = "high-vol"
    LOW_SHARE = "low-share"
    LOW_ABS = "low-abs"
    LOW_BASELINE = "low-baseline"
    BELOW_THRESHOLD = "below-threshold"


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _float(payload: Mapping[str, Any], key: str, default: float) -> float:
    value = payload.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} is not numeric: {value!r}") from exc


@dataclass(frozen=True)
class DailySnapshot:
    country_code: str
    date: str
    event_count: int = 0
    avg_tone: float = 0.0
    r1: int = 0
    r2: int = 0
    r3: int = 0
    r4: int = 0
    domestic_ratio: float = 1.0

    def count(self, signal_type: SignalType) -> int:
        if signal_type is SignalType.EVENT:
            return self.event_count
        return getattr(self, signal_type.metric)

    def metrics(self) -> Dict[str, int]:
        return {t.metric: self.count(t) for t in SignalType}

    @classmethod
    def from_dict(cls, country_code: str, date: str, payload: Mapping[str, Any]) -> "DailySnapshot":
        """Build a snapshot from a feed record, accepting short or long field names.

        Raises ValueError when ``avg_tone`` or ``domestic_ratio`` is not numeric.
        """
        counts = {}
        for signal_type in R_TYPES:
            value = payload.get(signal_type.metric)
            if value is None:
                value = payload.get(signal_type.feed_field)
            counts[signal_type.metric] = _int(value)
        domestic_ratio = min(1.0, max(0.0, _float(payload, "domestic_ratio", 1.0)))
        return cls(
            country_code=country_code,
            date=date,
            event_count=_int(payload.get("event_count")),
            avg_tone=_float(payload, "avg_tone", 0.0),
            domestic_ratio=domestic_ratio,
            **counts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_count": self.event_count,
            "avg_tone": self.avg_tone,
            "r1": self.r1,
            "r2": self.r2,
            "r3": self.r3,
            "r4": self.r4,
            "domestic_ratio": self.domestic_ratio,
        }


@dataclass(frozen=True)
class BaselineRecord:
    country_code: str
    signal_type: SignalType
    median: float
    avg: float
    days_counted: int
    source: BaselineSource


@dataclass(frozen=True)
class RollingMedian:
    median: float
    history_days: int


@dataclass(frozen=True)
class SignalEvaluation:
    type: SignalType
    raw_value: int
    ratio_of_total: float
    abs_hit: bool
    ratio_hit: bool
    triggered: bool
    jump_ratio: float = 0.0
    rolling_median: float = 0.0
    history_days: int = 0
    decision: GateReason = GateReason.NONE
    skip_reason: Optional[GateReason] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "value": self.raw_value,
            "ratio": round(self.ratio_of_total, 4),
            "abs_hit": self.abs_hit,
            "ratio_hit": self.ratio_hit,
            "triggered": self.triggered,
            "jump": round(self.jump_ratio, 2),
            "median": self.rolling_median,
            "history_days": self.history_days,
            "decision": self.decision.value,
            "skipped": self.skip_reason.value if self.skip_reason else None,
        }


@dataclass(frozen=True)
class ScoreViews:
    raw: Dict[str, float]
    adjusted: Dict[str, float]
    ratio: Dict[str, float]
    raw_abs: Dict[str, float] = field(default_factory=dict)
    raw_ratio: Dict[str, float] = field(default_factory=dict)
    index: float = 0.0
    index_level: AlertLevel = AlertLevel.GREEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw": dict(self.raw),
            "adjusted": dict(self.adjusted),
            "ratio": dict(self.ratio),
            "raw_abs": dict(self.raw_abs),
            "raw_ratio": dict(self.raw_ratio),
            "index": self.index,
            "index_level": self.index_level.value,
        }


@dataclass(frozen=True)
class ScoringResult:
    country_code: str
    date: str
    level: AlertLevel
    bundle_count: int
    composite_score: int
    tone_modifier: float
    reason: str
    event_count: int
    signals: Tuple[SignalEvaluation, ...] = ()
    volume: Optional[SignalEvaluation] = None
    external_pressure_noise: bool = False
    domestic_ratio: float = 1.0
    views: Optional[ScoreViews] = None
    surge: Optional[DailySurge] = None
    rank: Optional[int] = None

    @property
    def triggered_types(self) -> FrozenSet[SignalType]:
        return frozenset(s.type for s in self.signals if s.triggered)

    def signal(self, signal_type: SignalType) -> Optional[SignalEvaluation]:
        return next((s for s in self.signals if s.type is signal_type), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "country_code": self.country_code,
            "date": self.date,
            "level": self.level.value,
            "bundles": self.bundle_count,
            "score": self.composite_score,
            "tone_modifier": self.tone_modifier,
            "reason": self.reason,
            "event_count": self.event_count,
            "signals": [s.to_dict() for s in self.signals],
            "volume": self.volume.to_dict() if self.volume else None,
            "external_pressure_noise": self.external_pressure_noise,
            "domestic_ratio": self.domestic_ratio,
            "views": self.views.to_dict() if self.views else None,
            "surge_r": self.surge.to_dict() if self.surge else None,
            "rank": self.rank,
        }


@dataclass(frozen=True)
class WeeklyTypeRecord:
    week_id: str
    signal_type: SignalType
    today7: int
    baseline7: float
    ratio7: float
    share7: float
    abs_hit: bool
    share_hit: bool
    high_volume: bool
    red_override: bool
    triggered: bool
    is_stable: bool
    is_active: bool
    reason: WeeklyReason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "today7": self.today7,
            "baseline7": round(self.baseline7, 3),
            "ratio7": round(self.ratio7, 3),
            "share7": round(self.share7, 4),
            "abs_hit": self.abs_hit,
            "share_hit": self.share_hit,
            "high_vol": self.high_volume,
            "red_override_used": self.red_override,
            "triggered": self.triggered,
            "is_stable": self.is_stable,
            "is_active": self.is_active,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class WeeklyAggregate:
    country_code: str
    week_id: str
    event_count7: int
    level: AlertLevel
    max_ratio_active: float
    active_types: FrozenSet[SignalType] = field(default_factory=frozenset)
    records: Tuple[WeeklyTypeRecord, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week": self.week_id,
            "event_count": self.event_count7,
            "weekly_surge_r": {
                "level": self.level.value,
                "max_ratio_active": round(self.max_ratio_active, 3),
                "active_types": sorted(t.value for t in self.active_types),
            },
            "weekly_surge_r_by_type": {r.signal_type.value: r.to_dict() for r in self.records},
        }


@dataclass(frozen=True)
class DailySurgeRecord:
    signal_type: SignalType
    today: int
    baseline_median: float
    ratio: float
    share: float
    abs_hit: bool
    share_hit: bool
    triggered: bool
    is_stable: bool
    is_active: bool
    active_threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "today": self.today,
            "baseline_median": self.baseline_median,
            "ratio": round(self.ratio, 3),
            "share": round(self.share, 4),
            "abs_hit": self.abs_hit,
            "share_hit": self.share_hit,
            "triggered": self.triggered,
            "is_stable_input": self.is_stable,
            "is_active": self.is_active,
            "threshold": self.active_threshold,
        }


@dataclass(frozen=True)
class DailySurge:
    records: Dict[SignalType, DailySurgeRecord] = field(default_factory=dict)
    active_types: FrozenSet[SignalType] = frozenset()
    max_ratio_active: float = 0.0
    level: AlertLevel = AlertLevel.GREEN

    def ratios(self) -> Dict[SignalType, Tuple[float, bool]]:
        return {t: (r.ratio, r.is_stable) for t, r in self.records.items()}

    def to_dict(self) -> Dict[str, object]:
        return {
            "max_ratio_active": round(self.max_ratio_active, 3),
            "level": self.level.value,
            "active_types": sorted(t.value for t in self.active_types),
            "bundle_count": len(self.active_types),
            "by_type": {t.value: r.to_dict() for t, r in self.records.items()},
        }


@dataclass
class BatchScoringResult:
    date: str
    results: Dict[str, ScoringResult] = field(default_factory=dict)
    distribution: Dict[str, int] = field(default_factory=dict)
    ranked: List[str] = field(default_factory=list)
    bundle_breakdown: Dict[str, int] = field(default_factory=dict)
    tone_driven_yellow: int = 0

    @property
    def tone_driven_yellow_pct(self) -> int:
        yellow = self.distribution.get("yellow", 0)
        return round(self.tone_driven_yellow / yellow * 100) if yellow else 0
