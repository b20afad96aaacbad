"""HTTP client for the per-country snapshot service."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Optional

import requests

from ..config_models import FeedConfig
from ..models import DailySnapshot
from .base import BaseFeed, FeedError, FeedResult

LOGGER = logging.getLogger(__name__)

RETRY_STATUSES = {429, 500, 502, 503, 504}


class HttpSnapshotFeed(BaseFeed):
    """Sequential, rate-limited lookups; a country that keeps failing is reported, not raised."""

    provider = "http"

    def __init__(self, config: FeedConfig, session: Optional[requests.Session] = None, sleep=time.sleep) -> None:
        if not config.url:
            raise FeedError("feed.url is not configured")
        self.config = config
        self.session = session or requests.Session()
        self.sleep = sleep

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        attempt = 0
        while True:
            try:
                resp = self.session.get(self.config.url, params=params, timeout=self.config.timeout_sec)
                if resp.status_code in RETRY_STATUSES:
                    raise requests.HTTPError(f"HTTP {resp.status_code}", response=resp)
                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    raise FeedError(f"Unexpected payload type {type(data).__name__}")
                return data
            except (requests.RequestException, ValueError) as exc:
                if attempt >= self.config.max_retries:
                    raise FeedError(str(exc)) from exc
                delay = self.config.backoff_sec * (2 ** attempt)
                LOGGER.warning("Feed request %s failed (%s); retry %d in %.1fs", params, exc, attempt + 1, delay)
                self.sleep(delay)
                attempt += 1

    def fetch_country(self, date: str, country: str) -> DailySnapshot:
        data = self._get({"date": date, "country": country})
        record = data.get("country") if isinstance(data.get("country"), dict) else data
        return DailySnapshot.from_dict(country.upper(), date, record)

    def fetch(self, date: str, countries: Optional[Iterable[str]] = None) -> FeedResult:
        if countries is None:
            raise FeedError("HTTP feed needs an explicit country list")
        start = time.perf_counter()
        result = FeedResult(provider=self.provider, date=date)
        for idx, country in enumerate(countries):
            if idx and self.config.rate_limit_sec:
                self.sleep(self.config.rate_limit_sec)
            code = country.upper()
            try:
                result.snapshots[code] = self.fetch_country(date, code)
            except (FeedError, ValueError) as exc:
                LOGGER.warning("Lookup failed for %s on %s: %s", code, date, exc)
                result.failed.append(code)
        result.latency_ms = int((time.perf_counter() - start) * 1000)
        if result.failed:
            result.error = f"{len(result.failed)} lookups failed"
        return result
