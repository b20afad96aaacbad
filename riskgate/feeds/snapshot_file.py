"""Per-day snapshot files written by the upstream aggregation job."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterable, Optional

from ..models import DailySnapshot
from ..storage import read_json
from .base import BaseFeed, FeedError, FeedResult

LOGGER = logging.getLogger(__name__)


class SnapshotFileFeed(BaseFeed):
    provider = "snapshot_file"

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, date: str) -> Path:
        return self.directory / f"{date}.json"

    def fetch(self, date: str, countries: Optional[Iterable[str]] = None) -> FeedResult:
        start = time.perf_counter()
        path = self.path_for(date)
        payload = read_json(path)
        if not isinstance(payload, dict) or not isinstance(payload.get("countries"), dict):
            raise FeedError(f"No usable snapshot file at {path}")
        if payload.get("date") and payload["date"] != date:
            LOGGER.warning("Snapshot file %s is dated %s, expected %s", path, payload["date"], date)

        wanted = {code.upper() for code in countries} if countries is not None else None
        result = FeedResult(provider=self.provider, date=date)
        for code, record in payload["countries"].items():
            code = code.upper()
            if wanted is not None and code not in wanted:
                continue
            if not isinstance(record, dict):
                LOGGER.warning("Malformed snapshot record for %s on %s", code, date)
                result.failed.append(code)
                continue
            try:
                result.snapshots[code] = DailySnapshot.from_dict(code, date, record)
            except ValueError as exc:
                LOGGER.warning("Malformed snapshot record for %s on %s: %s", code, date, exc)
                result.failed.append(code)
        if wanted is not None:
            result.failed.extend(sorted(wanted - set(result.snapshots) - set(result.failed)))
        result.latency_ms = int((time.perf_counter() - start) * 1000)
        return result
