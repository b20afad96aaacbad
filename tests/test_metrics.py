from datetime import datetime, timezone
from pathlib import Path

from riskgate.feeds import FeedResult
from riskgate.history import HistoryStore
from riskgate.metrics import MetricsStore
from riskgate.models import DailySnapshot
from riskgate.scoring import ScoringEngine

from conftest import RAW_CONFIG, build_config


def test_metrics_records_run_and_scores(tmp_path: Path):
    signals = {k: dict(v, use_jump_gate=False) for k, v in RAW_CONFIG["signals"].items()}
    engine = ScoringEngine(build_config(signals=signals), HistoryStore())
    batch = engine.score_all(
        {
            "SD": DailySnapshot("SD", "2024-06-01", event_count=2000, r1=300, r2=200, r3=150),
            "FR": DailySnapshot("FR", "2024-06-01", event_count=2000),
        },
        "2024-06-01",
    )
    store = MetricsStore(tmp_path / "metrics.db")
    now = datetime.now(tz=timezone.utc)
    store.record_run_start("run-1", "daily", "2024-06-01", "v4.2", now, dry_run=False)
    store.record_fetch("run-1", FeedResult(provider="snapshot_file", date="2024-06-01", latency_ms=3))
    store.record_scores("run-1", batch)
    store.record_run_end("run-1", now, 1.5)

    assert store.level_counts("run-1") == {"red": 1, "green": 1}
    run = store.conn.execute("SELECT * FROM runs WHERE run_id = 'run-1'").fetchone()
    assert run["status"] == "ok"
    assert run["duration_s"] == 1.5
    triggered = store.conn.execute("SELECT triggered FROM scores WHERE country_code = 'SD'").fetchone()
    assert triggered["triggered"] == "R1,R2,R3"
    store.close()
