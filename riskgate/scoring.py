"""Bundle counting, alert levels and batch ranking for one scoring date."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional

from .baselines import BaselineProvider
from .composer import compose_views
from .config_models import ScoringConfig
from .gate import evaluate_signal, evaluate_volume, external_pressure_noise
from .history import HistoryStore
from .models import (
    R_TYPES,
    AlertLevel,
    BatchScoringResult,
    DailySnapshot,
    GateReason,
    ScoringResult,
    SignalType,
)
from .surge import evaluate_daily_surge

LOGGER = logging.getLogger(__name__)


def tone_modifier(avg_tone: float, config: ScoringConfig) -> float:
    if avg_tone < config.tone.bad_threshold:
        return 1.0
    if avg_tone < config.tone.mild_threshold:
        return 0.5
    return 0.0


def alert_level(bundles: int, tone_mod: float, config: ScoringConfig) -> tuple[AlertLevel, str]:
    levels = config.alert_levels
    if bundles >= levels.red_bundles:
        return AlertLevel.RED, f"{bundles}b"
    if bundles >= levels.orange_bundles:
        return AlertLevel.ORANGE, f"{bundles}b"
    if bundles >= levels.yellow_min_bundles:
        if tone_mod >= 0.5:
            return AlertLevel.YELLOW, f"{bundles}b+tone"
        if not levels.yellow_requires_tone:
            return AlertLevel.YELLOW, f"{bundles}b"
    return AlertLevel.GREEN, "no_signals"


class ScoringEngine:
    """Scores daily snapshots against a shared, explicitly owned history store."""

    def __init__(self, config: ScoringConfig, history: HistoryStore, baselines: Optional[BaselineProvider] = None) -> None:
        self.config = config
        self.history = history
        self.baselines = baselines or BaselineProvider()

    def ingest(self, snapshots: Iterable[DailySnapshot]) -> int:
        """Append the day's snapshots; must complete before any country is scored."""
        count = 0
        for snapshot in snapshots:
            self.history.append_snapshot(snapshot)
            count += 1
        return count

    def score_country(self, snapshot: DailySnapshot) -> ScoringResult:
        config = self.config
        pressure = external_pressure_noise(snapshot, config)
        surge = evaluate_daily_surge(snapshot, self.baselines, config, pressure)
        views = compose_views(
            snapshot, self.baselines.weight(snapshot.country_code), config, surge.ratios(), pressure
        )
        tone_mod = tone_modifier(snapshot.avg_tone, config)

        if snapshot.event_count < config.event_count_floor:
            return ScoringResult(
                country_code=snapshot.country_code,
                date=snapshot.date,
                level=AlertLevel.GREEN,
                bundle_count=0,
                composite_score=0,
                tone_modifier=tone_mod,
                reason="low_volume",
                event_count=snapshot.event_count,
                external_pressure_noise=pressure,
                domestic_ratio=snapshot.domestic_ratio,
                views=views,
                surge=surge,
            )

        signals = tuple(evaluate_signal(snapshot, t, config, self.history, pressure) for t in R_TYPES)
        volume = evaluate_volume(snapshot, config, self.history)

        bundles = sum(1 for s in signals if s.triggered) + (1 if volume.triggered else 0)
        score = sum(s.raw_value for s in signals if s.triggered) + tone_mod * 100
        if volume.triggered:
            score += snapshot.event_count / 100
        level, reason = alert_level(bundles, tone_mod, config)

        return ScoringResult(
            country_code=snapshot.country_code,
            date=snapshot.date,
            level=level,
            bundle_count=bundles,
            composite_score=round(score),
            tone_modifier=tone_mod,
            reason=reason,
            event_count=snapshot.event_count,
            signals=signals,
            volume=volume,
            external_pressure_noise=pressure,
            domestic_ratio=snapshot.domestic_ratio,
            views=views,
            surge=surge,
        )

    def no_data_result(self, country: str, date: str) -> ScoringResult:
        """Degraded-but-valid result for a country whose feed lookup failed."""
        return ScoringResult(
            country_code=country,
            date=date,
            level=AlertLevel.GREEN,
            bundle_count=0,
            composite_score=0,
            tone_modifier=0.0,
            reason="no_data",
            event_count=0,
        )

    def score_all(
        self,
        snapshots: Mapping[str, DailySnapshot],
        date: str,
        missing: Iterable[str] = (),
    ) -> BatchScoringResult:
        """Ingest every snapshot, then score each country and rank the yellow+ set.

        Countries in ``missing`` had no usable feed record; they get a ``no_data``
        result and are kept out of the history store.
        """
        self.ingest(snapshots.values())
        batch = BatchScoringResult(date=date)
        for code in sorted(snapshots):
            batch.results[code] = self.score_country(snapshots[code])
        for code in missing:
            batch.results.setdefault(code, self.no_data_result(code, date))
        rank_results(batch)
        log_batch(batch, self.config.version)
        return batch


def rank_results(batch: BatchScoringResult) -> None:
    distribution = {"red": 0, "orange": 0, "yellow": 0, "green": 0, "skipped": 0}
    breakdown = {t.value: 0 for t in (*R_TYPES, SignalType.EVENT)}
    yellow_plus: List[ScoringResult] = []
    tone_driven = 0
    for result in batch.results.values():
        if result.level is AlertLevel.GREEN:
            key = "skipped" if result.reason in ("low_volume", "no_data") else "green"
            distribution[key] += 1
            continue
        distribution[result.level.value] += 1
        yellow_plus.append(result)
        for signal in result.signals:
            if signal.triggered:
                breakdown[signal.type.value] += 1
        if result.volume and result.volume.triggered:
            breakdown[SignalType.EVENT.value] += 1
        if result.level is AlertLevel.YELLOW and result.bundle_count == 1 and "tone" in result.reason:
            tone_driven += 1

    yellow_plus.sort(key=lambda r: (-r.composite_score, r.country_code))
    for idx, result in enumerate(yellow_plus, start=1):
        batch.results[result.country_code] = replace(result, rank=idx)
    batch.ranked = [r.country_code for r in yellow_plus]
    batch.distribution = distribution
    batch.bundle_breakdown = breakdown
    batch.tone_driven_yellow = tone_driven


def volume_cold_starts(batch: BatchScoringResult) -> int:
    """Countries whose volume signal had too little history for the jump test."""
    cold = (GateReason.LOW_HISTORY, GateReason.LOW_HISTORY_FALLBACK)
    return sum(1 for r in batch.results.values() if r.volume is not None and r.volume.decision in cold)


def log_batch(batch: BatchScoringResult, version: str) -> None:
    dist = batch.distribution
    LOGGER.info(
        "Scored %s (%s): red=%d orange=%d yellow=%d green=%d skipped=%d",
        batch.date,
        version,
        dist.get("red", 0),
        dist.get("orange", 0),
        dist.get("yellow", 0),
        dist.get("green", 0),
        dist.get("skipped", 0),
    )
    cold_start = volume_cold_starts(batch)
    LOGGER.info(
        "Yellow+ total=%d tone-driven yellow=%d%% volume cold-start=%d",
        len(batch.ranked),
        batch.tone_driven_yellow_pct,
        cold_start,
    )
    top = sorted(batch.results.values(), key=lambda r: -r.event_count)[:10]
    for result in top:
        fired = ",".join(s.type.value for s in result.signals if s.triggered) or "none"
        LOGGER.debug(
            "%s: events=%d level=%s bundles=%d (%s)",
            result.country_code,
            result.event_count,
            result.level.value,
            result.bundle_count,
            fired,
        )


def results_by_level(batch: BatchScoringResult) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {level.value: [] for level in AlertLevel}
    for code, result in sorted(batch.results.items()):
        grouped[result.level.value].append(code)
    return grouped
