"""Bounded per-country daily history for rolling-median queries.

The store is created at run start (``HistoryStore.load``), receives the day's
snapshots before any evaluator reads from it, and is saved at run end.
"""

from __future__ import annotations

import bisect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date as Date, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .models import DailySnapshot, RollingMedian
from .storage import read_json, write_json_atomic

LOGGER = logging.getLogger(__name__)

Series = List[Tuple[str, float]]


def median(values: Iterable[float]) -> float:
    data = sorted(values)
    if not data:
        return 0.0
    mid = len(data) // 2
    if len(data) % 2 == 1:
        return float(data[mid])
    return (data[mid - 1] + data[mid]) / 2.0


@dataclass
class HistoryStore:
    path: Optional[Path] = None
    max_retention_days: int = 30
    series: Dict[str, Dict[str, Series]] = field(default_factory=lambda: defaultdict(dict))
    latest_date: Optional[str] = None

    @classmethod
    def load(cls, path: Path, max_retention_days: int = 30) -> "HistoryStore":
        store = cls(path=path, max_retention_days=max_retention_days)
        payload = read_json(path)
        if not isinstance(payload, dict):
            if path.exists():
                LOGGER.warning("History file %s is malformed; starting empty", path)
            return store
        for country, metrics in (payload.get("series") or {}).items():
            for metric, points in (metrics or {}).items():
                for point in points or []:
                    try:
                        date, value = point
                        Date.fromisoformat(str(date))
                        store.append(country, str(date), metric, float(value))
                    except (TypeError, ValueError):
                        LOGGER.warning("Dropping malformed history point %s/%s: %r", country, metric, point)
        LOGGER.info("Loaded history for %d countries from %s", len(store.series), path)
        return store

    def save(self) -> None:
        if self.path is None:
            raise ValueError("HistoryStore has no path to save to")
        payload = {
            "max_retention_days": self.max_retention_days,
            "series": {
                country: {metric: [list(point) for point in points] for metric, points in metrics.items()}
                for country, metrics in sorted(self.series.items())
            },
        }
        write_json_atomic(self.path, payload)

    def append(self, country: str, date: str, metric: str, value: float) -> None:
        points = self.series[country.upper()].setdefault(metric, [])
        dates = [point[0] for point in points]
        idx = bisect.bisect_left(dates, date)
        if idx < len(points) and points[idx][0] == date:
            points[idx] = (date, value)
        else:
            points.insert(idx, (date, value))
        if self.latest_date is None or date > self.latest_date:
            self.latest_date = date
        overflow = len(points) - self.max_retention_days
        if overflow > 0:
            del points[:overflow]

    def append_snapshot(self, snapshot: DailySnapshot) -> None:
        for metric, value in snapshot.metrics().items():
            self.append(snapshot.country_code, snapshot.date, metric, value)

    def points(self, country: str, metric: str) -> Series:
        return list(self.series.get(country.upper(), {}).get(metric, []))

    def rolling_median(
        self,
        country: str,
        metric: str,
        window_days: int,
        before: Optional[str] = None,
        as_of: Optional[str] = None,
    ) -> RollingMedian:
        """Median over the ``window_days`` calendar days ending at ``as_of``.

        ``before`` ends the window the day before that date instead. With
        neither, the window ends at the newest date held in the store. Days
        without a stored point do not count towards ``history_days``.
        """
        if window_days <= 0:
            return RollingMedian(median=0.0, history_days=0)
        if before is not None:
            end = Date.fromisoformat(before) - timedelta(days=1)
        elif as_of is not None:
            end = Date.fromisoformat(as_of)
        elif self.latest_date is not None:
            end = Date.fromisoformat(self.latest_date)
        else:
            return RollingMedian(median=0.0, history_days=0)
        last = end.isoformat()
        first = (end - timedelta(days=window_days - 1)).isoformat()
        window = [value for date, value in self.points(country, metric) if first <= date <= last]
        return RollingMedian(median=median(window), history_days=len(window))

    def load_daily_files(self, directory: Path, dates: Iterable[str]) -> int:
        """Backfill from per-day snapshot files; missing or malformed days are skipped."""
        loaded = 0
        for date in dates:
            payload = read_json(directory / f"{date}.json")
            if not isinstance(payload, dict) or not isinstance(payload.get("countries"), dict):
                LOGGER.warning("No usable snapshot file for %s", date)
                continue
            for country, record in payload["countries"].items():
                if not isinstance(record, dict):
                    continue
                try:
                    snapshot = DailySnapshot.from_dict(country.upper(), date, record)
                except ValueError as exc:
                    LOGGER.warning("Skipping %s on %s: %s", country, date, exc)
                    continue
                self.append_snapshot(snapshot)
            loaded += 1
        LOGGER.info("Backfilled history from %d daily files", loaded)
        return loaded
