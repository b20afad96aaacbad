"""Daily and weekly orchestration invoked by CI and the CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as Date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .baselines import BaselineProvider
from .config_models import ScoringConfig
from .feeds import BaseFeed, FeedError, HttpSnapshotFeed, SnapshotFileFeed
from .history import HistoryStore
from .metrics import MetricsStore
from .models import BatchScoringResult, DailySnapshot, SignalType, WeeklyAggregate
from .scoring import ScoringEngine, results_by_level
from .series import WeeklySeries, series_path, write_index, write_week_file
from .storage import read_json, write_json_atomic
from .surge import aggregate_week, iso_week_id, refresh_gating, sum_week, week_dates

LOGGER = logging.getLogger(__name__)
ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT / "data"


class SafetyFloorError(RuntimeError):
    pass


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class RunPaths:
    snapshots: Path
    daily: Path
    countries: Path
    weekly: Path
    series: Path
    history: Path
    metrics: Path
    calmest_baseline: Path
    long_window_baseline: Path

    @classmethod
    def under(cls, data_dir: Path) -> "RunPaths":
        return cls(
            snapshots=data_dir / "snapshots",
            daily=data_dir / "daily",
            countries=data_dir / "countries",
            weekly=data_dir / "weekly",
            series=data_dir / "series",
            history=data_dir / "history.json",
            metrics=data_dir / "metrics.db",
            calmest_baseline=data_dir / "baselines" / "calmest.json",
            long_window_baseline=data_dir / "baselines" / "long_window.json",
        )


class DailyRunner:
    def __init__(
        self,
        config: ScoringConfig,
        paths: Optional[RunPaths] = None,
        feed: Optional[BaseFeed] = None,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.paths = paths or RunPaths.under(DATA_DIR)
        self.dry_run = dry_run
        self.baselines = BaselineProvider.from_files(self.paths.calmest_baseline, self.paths.long_window_baseline)
        self.history = HistoryStore.load(self.paths.history, config.history.max_retention_days)
        self.engine = ScoringEngine(config, self.history, self.baselines)
        self.feed = feed or self._build_feed()
        self.run_id = str(uuid4())

    def _build_feed(self) -> BaseFeed:
        if self.config.feed.url:
            return HttpSnapshotFeed(self.config.feed)
        return SnapshotFileFeed(self.paths.snapshots)

    def run(self, date: str) -> BatchScoringResult:
        started = utcnow()
        metrics = MetricsStore(self.paths.metrics)
        metrics.record_run_start(self.run_id, "daily", date, self.config.version, started, self.dry_run)
        LOGGER.info("Starting daily run for %s (dry_run=%s)", date, self.dry_run)
        status = "ok"
        try:
            if not self.history.series:
                self.backfill_history(date)
            countries = sorted(self.baselines.countries()) if isinstance(self.feed, HttpSnapshotFeed) else None
            fetched = self.feed.fetch(date, countries)
            metrics.record_fetch(self.run_id, fetched)
            if fetched.failed:
                LOGGER.warning("No data for %d countries: %s", len(fetched.failed), ", ".join(fetched.failed[:20]))

            batch = self.engine.score_all(fetched.snapshots, date, missing=fetched.failed)
            self._check_safety_floor(batch, fetched.snapshots)
            metrics.record_scores(self.run_id, batch)
            if self.dry_run:
                LOGGER.info("Dry run: skipping output and history writes")
            else:
                self.publish(batch)
                self.history.save()
            return batch
        except Exception:
            status = "failed"
            raise
        finally:
            ended = utcnow()
            metrics.record_run_end(self.run_id, ended, (ended - started).total_seconds(), status)
            metrics.close()

    def backfill_history(self, date: str) -> int:
        """Seed an empty history store from the snapshot files preceding ``date``."""
        day = Date.fromisoformat(date)
        retention = self.config.history.max_retention_days
        dates = [(day - timedelta(days=offset)).isoformat() for offset in range(retention, 0, -1)]
        return self.history.load_daily_files(self.paths.snapshots, dates)

    def _check_safety_floor(self, batch: BatchScoringResult, snapshots: Dict[str, DailySnapshot]) -> None:
        scored = sum(1 for r in batch.results.values() if r.reason != "no_data")
        floor = self.config.safety.min_output_countries
        if scored >= floor:
            return
        dump_path = self.paths.daily / f"{batch.date}_FAILED.json"
        write_json_atomic(
            dump_path,
            {
                "date": batch.date,
                "run_id": self.run_id,
                "scored_countries": scored,
                "min_output_countries": floor,
                "distribution": batch.distribution,
                "missing": sorted(code for code, r in batch.results.items() if r.reason == "no_data"),
                "inputs": {code: snap.to_dict() for code, snap in sorted(snapshots.items())},
            },
        )
        LOGGER.error(
            "Only %d countries scored for %s (minimum %d); wrote %s and aborted",
            scored,
            batch.date,
            floor,
            dump_path,
        )
        raise SafetyFloorError(f"{scored} countries scored for {batch.date}, expected at least {floor}")

    def publish(self, batch: BatchScoringResult) -> None:
        countries: Dict[str, Any] = {}
        for code, result in sorted(batch.results.items()):
            entry = result.to_dict()
            countries[code] = entry
            self._update_country_file(code, entry)

        payload = {
            "date": batch.date,
            "run_id": self.run_id,
            "config_version": self.config.version,
            "distribution": batch.distribution,
            "ranked": batch.ranked,
            "bundle_breakdown": batch.bundle_breakdown,
            "tone_driven_yellow_pct": batch.tone_driven_yellow_pct,
            "by_level": results_by_level(batch),
            "countries": countries,
        }
        write_json_atomic(self.paths.daily / f"{batch.date}.json", payload)
        write_json_atomic(self.paths.daily / "latest.json", payload)
        LOGGER.info("Published %d countries for %s", len(countries), batch.date)

    def _update_country_file(self, code: str, entry: Dict[str, Any]) -> None:
        path = self.paths.countries / f"{code}.json"
        existing = read_json(path) or {}
        history = [h for h in existing.get("history", []) if isinstance(h, dict) and h.get("date") != entry["date"]]
        history.append(
            {
                "date": entry["date"],
                "level": entry["level"],
                "score": entry["score"],
                "bundles": entry["bundles"],
                "reason": entry["reason"],
            }
        )
        history.sort(key=lambda h: h["date"])
        history = history[-self.config.history.max_retention_days:]
        write_json_atomic(path, {"country_code": code, "latest": entry, "history": history})


class WeeklyRunner:
    def __init__(self, config: ScoringConfig, paths: Optional[RunPaths] = None, dry_run: bool = False) -> None:
        self.config = config
        self.paths = paths or RunPaths.under(DATA_DIR)
        self.dry_run = dry_run
        self.baselines = BaselineProvider.from_files(self.paths.calmest_baseline, self.paths.long_window_baseline)
        self.feed = SnapshotFileFeed(self.paths.snapshots)
        self.run_id = str(uuid4())

    def load_week(self, week_end: Date) -> Dict[str, List[DailySnapshot]]:
        per_country: Dict[str, List[DailySnapshot]] = {}
        for day in week_dates(week_end):
            try:
                fetched = self.feed.fetch(day)
            except FeedError as exc:
                LOGGER.warning("Skipping %s: %s", day, exc)
                continue
            for code, snapshot in fetched.snapshots.items():
                per_country.setdefault(code, []).append(snapshot)
        return per_country

    def run_week(self, week_end: Date) -> List[WeeklyAggregate]:
        week_id = iso_week_id(week_end)
        per_country = self.load_week(week_end)
        if not per_country:
            LOGGER.warning("No snapshot data for week %s; nothing written", week_id)
            return []
        aggregates = []
        for code in sorted(per_country):
            counts7, event_count7, days = sum_week(per_country[code])
            if days < 7:
                LOGGER.debug("%s %s has %d of 7 days", code, week_id, days)
            aggregates.append(aggregate_week(code, week_id, counts7, event_count7, self.baselines, self.config))

        active = sum(1 for agg in aggregates if agg.active_types)
        LOGGER.info("Week %s: %d countries, %d with active surge types", week_id, len(aggregates), active)
        if self.dry_run:
            return aggregates

        write_week_file(self.paths.weekly, week_id, aggregates)
        for agg in aggregates:
            series = WeeklySeries.load(
                agg.country_code,
                series_path(self.paths.series, agg.country_code),
                self.config.weekly.retention_weeks,
                self.config.surge_r.thresholds,
            )
            previous = series.week(week_id)
            if previous is not None and (previous.get("weekly_surge_r") or {}).get("level") != agg.level.value:
                LOGGER.info("%s %s re-run changed level to %s", agg.country_code, week_id, agg.level.value)
            series.merge_aggregate(agg)
            series.save()
        return aggregates

    def run(self, start: Date, end: Date) -> List[WeeklyAggregate]:
        """Process every ISO week whose Sunday falls in [start, end]."""
        started = utcnow()
        metrics = MetricsStore(self.paths.metrics)
        metrics.record_run_start(self.run_id, "weekly", f"{start}..{end}", self.config.version, started, self.dry_run)
        status = "ok"
        results: List[WeeklyAggregate] = []
        try:
            week_end = start + timedelta(days=6 - start.weekday())
            while week_end <= end:
                aggregates = self.run_week(week_end)
                metrics.record_weekly(self.run_id, aggregates)
                results.extend(aggregates)
                week_end += timedelta(days=7)
            if not self.dry_run:
                write_index(self.paths.weekly, self.paths.series)
            return results
        except Exception:
            status = "failed"
            raise
        finally:
            ended = utcnow()
            metrics.record_run_end(self.run_id, ended, (ended - started).total_seconds(), status)
            metrics.close()


def refresh_series_gating(config: ScoringConfig, paths: Optional[RunPaths] = None, dry_run: bool = False) -> Dict[str, int]:
    """Re-evaluate gating of every stored weekly entry from its raw fields."""
    paths = paths or RunPaths.under(DATA_DIR)
    stats = {"countries": 0, "entries": 0, "changed": 0}
    if not paths.series.exists():
        LOGGER.warning("No series directory at %s", paths.series)
        return stats
    for path in sorted(paths.series.glob("*.json")):
        series = WeeklySeries.load(path.stem, path, config.weekly.retention_weeks, config.surge_r.thresholds)
        for entry in list(series.entries):
            refreshed = refresh_gating(series.country_code, entry, config)
            if refreshed is None:
                continue
            stats["entries"] += 1
            new_entry = refreshed.to_dict()
            if new_entry["weekly_surge_r"] != entry.get("weekly_surge_r"):
                stats["changed"] += 1
            series.merge(new_entry)
        stats["countries"] += 1
        if not dry_run:
            series.save()
    LOGGER.info(
        "Refreshed gating for %d entries in %d countries (%d level changes)",
        stats["entries"],
        stats["countries"],
        stats["changed"],
    )
    return stats


def diagnose(config: ScoringConfig, country: str, date: str, paths: Optional[RunPaths] = None) -> Dict[str, Any]:
    """Score one country for one date without writing anything."""
    paths = paths or RunPaths.under(DATA_DIR)
    code = country.upper()
    baselines = BaselineProvider.from_files(paths.calmest_baseline, paths.long_window_baseline)
    history = HistoryStore.load(paths.history, config.history.max_retention_days)
    fetched = SnapshotFileFeed(paths.snapshots).fetch(date, [code])
    snapshot = fetched.snapshots.get(code)
    if snapshot is None:
        return {"country_code": code, "date": date, "error": "no_data"}
    engine = ScoringEngine(config, history, baselines)
    engine.ingest([snapshot])
    result = engine.score_country(snapshot)
    series = WeeklySeries.load(code, series_path(paths.series, code), config.weekly.retention_weeks)
    return {
        "input": snapshot.to_dict(),
        "result": result.to_dict(),
        "surge_r": result.surge.to_dict() if result.surge else None,
        "baselines": {
            t.value: {
                "label": t.label,
                "median": rec.median,
                "source": rec.source.value,
                "days_counted": rec.days_counted,
            }
            for t, rec in ((t, baselines.record(code, t)) for t in SignalType)
        },
        "recent_weeks": [
            {"week": entry["week"], "level": (entry.get("weekly_surge_r") or {}).get("level")}
            for entry in series.recent_weeks()
        ],
    }
