import json
from pathlib import Path

from riskgate.history import HistoryStore, median
from riskgate.models import DailySnapshot


def test_median_even_and_odd():
    assert median([3, 1, 2]) == 2
    assert median([4, 1, 3, 2]) == 2.5
    assert median([]) == 0.0


def test_append_overwrites_same_date():
    store = HistoryStore()
    store.append("us", "2024-01-02", "r1", 10)
    store.append("US", "2024-01-01", "r1", 5)
    store.append("US", "2024-01-02", "r1", 12)
    assert store.points("US", "r1") == [("2024-01-01", 5), ("2024-01-02", 12)]


def test_retention_evicts_oldest():
    store = HistoryStore(max_retention_days=3)
    for day in range(1, 6):
        store.append("US", f"2024-01-0{day}", "r1", day)
    assert [d for d, _ in store.points("US", "r1")] == ["2024-01-03", "2024-01-04", "2024-01-05"]


def test_rolling_median_window_and_before():
    store = HistoryStore()
    for day, value in enumerate([1, 2, 3, 100, 5], start=1):
        store.append("US", f"2024-01-0{day}", "r2", value)
    rolling = store.rolling_median("US", "r2", window_days=3)
    assert rolling.history_days == 3
    assert rolling.median == 5
    earlier = store.rolling_median("US", "r2", window_days=14, before="2024-01-04")
    assert earlier.history_days == 3
    assert earlier.median == 2


def test_save_and_load(tmp_path: Path):
    path = tmp_path / "history.json"
    store = HistoryStore(path=path, max_retention_days=30)
    store.append_snapshot(DailySnapshot("KE", "2024-03-01", event_count=400, r1=12))
    store.save()
    reloaded = HistoryStore.load(path)
    assert reloaded.points("KE", "r1") == [("2024-03-01", 12.0)]
    assert reloaded.points("KE", "event") == [("2024-03-01", 400.0)]


def test_load_malformed_file_starts_empty(tmp_path: Path):
    path = tmp_path / "history.json"
    path.write_text("[]", encoding="utf-8")
    store = HistoryStore.load(path)
    assert not store.series


def test_load_daily_files_skips_bad_days(tmp_path: Path):
    (tmp_path / "2024-02-01.json").write_text(
        json.dumps({"date": "2024-02-01", "countries": {"ng": {"event_count": 300, "r1_security": 20}}}),
        encoding="utf-8",
    )
    (tmp_path / "2024-02-02.json").write_text("garbage", encoding="utf-8")
    store = HistoryStore()
    loaded = store.load_daily_files(tmp_path, ["2024-02-01", "2024-02-02", "2024-02-03"])
    assert loaded == 1
    assert store.rolling_median("NG", "r1", 14).history_days == 1


def test_rolling_median_counts_only_days_with_data():
    store = HistoryStore()
    for offset in range(0, 30, 2):
        store.append("FR", f"2024-01-{offset + 1:02d}", "r1", 100)
    rolling = store.rolling_median("FR", "r1", 14, as_of="2024-01-29")
    assert rolling.median == 100
    assert rolling.history_days == 7


def test_rolling_median_ignores_stale_points():
    store = HistoryStore()
    store.append("FR", "2024-01-01", "r1", 50)
    store.append("DE", "2024-02-01", "r1", 10)
    assert store.rolling_median("FR", "r1", 14).history_days == 0
    assert store.rolling_median("FR", "r1", 14, as_of="2024-01-10").history_days == 1


def test_load_daily_files_skips_non_numeric_records(tmp_path: Path):
    (tmp_path / "2024-02-01.json").write_text(
        json.dumps({"countries": {"FR": {"event_count": 300, "avg_tone": "n/a"}, "DE": {"event_count": 500}}}),
        encoding="utf-8",
    )
    store = HistoryStore()
    assert store.load_daily_files(tmp_path, ["2024-02-01"]) == 1
    assert store.points("FR", "event") == []
    assert store.points("DE", "event") == [("2024-02-01", 500)]
