import json
from pathlib import Path

import pytest
import requests

from riskgate.config_models import FeedConfig
from riskgate.feeds import FeedError, HttpSnapshotFeed, SnapshotFileFeed


class _Resp:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


class _Session:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(params)
        outcome = self.responses[params["country"]].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_snapshot_file_feed_reads_countries(tmp_path: Path):
    (tmp_path / "2024-01-05.json").write_text(
        json.dumps({"date": "2024-01-05", "countries": {"fr": {"event_count": 900, "r1_security": 40}, "xx": "bad"}}),
        encoding="utf-8",
    )
    result = SnapshotFileFeed(tmp_path).fetch("2024-01-05", ["FR", "XX", "DE"])
    assert result.snapshots["FR"].r1 == 40
    assert sorted(result.failed) == ["DE", "XX"]


def test_snapshot_file_feed_missing_day(tmp_path: Path):
    with pytest.raises(FeedError):
        SnapshotFileFeed(tmp_path).fetch("2024-01-05")


def test_http_feed_retries_with_backoff():
    session = _Session({"FR": [requests.ConnectionError("reset"), _Resp(503), _Resp(payload={"event_count": 700, "r2": 9})]})
    delays = []
    feed = HttpSnapshotFeed(FeedConfig(url="http://feed.local/day", backoff_sec=1.0, rate_limit_sec=0), session=session, sleep=delays.append)
    result = feed.fetch("2024-01-05", ["FR"])
    assert result.snapshots["FR"].r2 == 9
    assert result.failed == []
    assert delays == [1.0, 2.0]


def test_http_feed_reports_failed_lookup():
    session = _Session({
        "FR": [requests.Timeout("slow")] * 3,
        "DE": [_Resp(payload={"country": {"event_count": 1200}})],
    })
    delays = []
    config = FeedConfig(url="http://feed.local/day", max_retries=2, backoff_sec=0.5, rate_limit_sec=0.2)
    feed = HttpSnapshotFeed(config, session=session, sleep=delays.append)
    result = feed.fetch("2024-01-05", ["fr", "de"])
    assert result.failed == ["FR"]
    assert result.snapshots["DE"].event_count == 1200
    assert "1 lookups failed" in result.error
    assert delays == [0.5, 1.0, 0.2]


def test_http_feed_requires_url():
    with pytest.raises(FeedError):
        HttpSnapshotFeed(FeedConfig())


def test_snapshot_file_feed_isolates_non_numeric_fields(tmp_path: Path):
    (tmp_path / "2024-01-05.json").write_text(
        json.dumps({
            "date": "2024-01-05",
            "countries": {"DE": {"event_count": 800}, "FR": {"event_count": 900, "domestic_ratio": "x"}},
        }),
        encoding="utf-8",
    )
    result = SnapshotFileFeed(tmp_path).fetch("2024-01-05")
    assert result.snapshots["DE"].event_count == 800
    assert result.failed == ["FR"]


def test_http_feed_isolates_non_numeric_fields():
    session = _Session({
        "FR": [_Resp(payload={"event_count": 700, "avg_tone": "n/a"})],
        "DE": [_Resp(payload={"event_count": 1200, "avg_tone": "-1.5"})],
    })
    feed = HttpSnapshotFeed(FeedConfig(url="http://feed.local/day", rate_limit_sec=0), session=session, sleep=lambda _: None)
    result = feed.fetch("2024-01-05", ["FR", "DE"])
    assert result.failed == ["FR"]
    assert result.snapshots["DE"].avg_tone == -1.5
