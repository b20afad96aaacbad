"""Run audit metrics persisted to SQLite."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .feeds.base import FeedResult
from .models import BatchScoringResult, WeeklyAggregate


class MetricsStore:
    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(path)
        self.conn.row_factory = sqlite3.Row
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                kind TEXT,
                target TEXT,
                config_version TEXT,
                started_at TEXT,
                ended_at TEXT,
                duration_s REAL,
                dry_run INTEGER,
                status TEXT
            );
            CREATE TABLE IF NOT EXISTS fetch (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT,
                provider TEXT,
                date TEXT,
                countries INTEGER,
                failed INTEGER,
                ok INTEGER,
                latency_ms INTEGER,
                error TEXT
            );
            CREATE TABLE IF NOT EXISTS scores (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT,
                date TEXT,
                country_code TEXT,
                level TEXT,
                bundles INTEGER,
                score INTEGER,
                reason TEXT,
                triggered TEXT,
                rank INTEGER
            );
            CREATE TABLE IF NOT EXISTS weekly (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT,
                week TEXT,
                country_code TEXT,
                level TEXT,
                max_ratio_active REAL,
                active_types TEXT
            );
            """
        )

    def record_run_start(self, run_id: str, kind: str, target: str, config_version: str, started_at: datetime, dry_run: bool) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO runs(run_id, kind, target, config_version, started_at, dry_run, status) VALUES (?,?,?,?,?,?,?)",
            (run_id, kind, target, config_version, started_at.isoformat(), int(dry_run), "running"),
        )
        self.conn.commit()

    def record_run_end(self, run_id: str, ended_at: datetime, duration_s: float, status: str = "ok") -> None:
        self.conn.execute(
            "UPDATE runs SET ended_at = ?, duration_s = ?, status = ? WHERE run_id = ?",
            (ended_at.isoformat(), duration_s, status, run_id),
        )
        self.conn.commit()

    def record_fetch(self, run_id: str, result: FeedResult) -> None:
        self.conn.execute(
            "INSERT INTO fetch(run_id, provider, date, countries, failed, ok, latency_ms, error) VALUES (?,?,?,?,?,?,?,?)",
            (
                run_id,
                result.provider,
                result.date,
                len(result.snapshots),
                len(result.failed),
                int(result.ok),
                result.latency_ms or 0,
                result.error or "",
            ),
        )
        self.conn.commit()

    def record_scores(self, run_id: str, batch: BatchScoringResult) -> None:
        rows = [
            (
                run_id,
                batch.date,
                code,
                result.level.value,
                result.bundle_count,
                result.composite_score,
                result.reason,
                ",".join(sorted(t.value for t in result.triggered_types)),
                result.rank,
            )
            for code, result in sorted(batch.results.items())
        ]
        self.conn.executemany(
            "INSERT INTO scores(run_id, date, country_code, level, bundles, score, reason, triggered, rank) VALUES (?,?,?,?,?,?,?,?,?)",
            rows,
        )
        self.conn.commit()

    def record_weekly(self, run_id: str, aggregates: Iterable[WeeklyAggregate]) -> None:
        rows = [
            (
                run_id,
                agg.week_id,
                agg.country_code,
                agg.level.value,
                agg.max_ratio_active,
                ",".join(sorted(t.value for t in agg.active_types)),
            )
            for agg in aggregates
        ]
        self.conn.executemany(
            "INSERT INTO weekly(run_id, week, country_code, level, max_ratio_active, active_types) VALUES (?,?,?,?,?,?)",
            rows,
        )
        self.conn.commit()

    def level_counts(self, run_id: str) -> dict:
        cursor = self.conn.execute(
            "SELECT level, COUNT(*) AS n FROM scores WHERE run_id = ? GROUP BY level",
            (run_id,),
        )
        return {row["level"]: row["n"] for row in cursor.fetchall()}

    def close(self) -> None:
        self.conn.close()
