"""Per-country weekly surge series with overwrite-by-week merge and retention."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config_models import SurgeThresholds
from .models import R_TYPES, AlertLevel, WeeklyAggregate
from .storage import read_json, write_json_atomic

LOGGER = logging.getLogger(__name__)

Entry = Dict[str, Any]

_LIT_LEVELS = (AlertLevel.YELLOW, AlertLevel.ORANGE, AlertLevel.RED)


@dataclass
class WeeklySeries:
    country_code: str
    path: Optional[Path] = None
    retention_weeks: int = 260
    entries: List[Entry] = field(default_factory=list)
    thresholds: Optional[SurgeThresholds] = None

    @classmethod
    def load(
        cls,
        country_code: str,
        path: Path,
        retention_weeks: int = 260,
        thresholds: Optional[SurgeThresholds] = None,
    ) -> "WeeklySeries":
        series = cls(country_code=country_code.upper(), path=path, retention_weeks=retention_weeks, thresholds=thresholds)
        payload = read_json(path)
        if isinstance(payload, dict):
            for entry in payload.get("series") or []:
                if isinstance(entry, dict) and entry.get("week"):
                    series.merge(entry)
        return series

    def save(self) -> None:
        if self.path is None:
            raise ValueError(f"No path configured for {self.country_code} series")
        write_json_atomic(self.path, self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "country_code": self.country_code,
            "weeks": len(self.entries),
            "first_lit": first_lit(self.entries, self.thresholds),
            "series": self.entries,
        }

    def merge(self, entry: Mapping[str, Any]) -> None:
        """Insert or overwrite the entry for its week, keeping week order and retention."""
        week = str(entry["week"])
        by_week = {str(existing["week"]): existing for existing in self.entries}
        by_week[week] = dict(entry)
        ordered = [by_week[key] for key in sorted(by_week)]
        if len(ordered) > self.retention_weeks:
            ordered = ordered[-self.retention_weeks:]
        self.entries = ordered

    def merge_aggregate(self, aggregate: WeeklyAggregate) -> None:
        self.merge(aggregate.to_dict())

    def week(self, week_id: str) -> Optional[Entry]:
        return next((entry for entry in self.entries if entry["week"] == week_id), None)

    def recent_weeks(self, n: int = 4) -> List[Entry]:
        return self.entries[-n:] if n > 0 else []

    def week_ids(self) -> List[str]:
        return [entry["week"] for entry in self.entries]


def _entry_level(entry: Mapping[str, Any]) -> str:
    return str((entry.get("weekly_surge_r") or {}).get("level") or AlertLevel.GREEN.value)


def _type_level(record: Mapping[str, Any], thresholds: SurgeThresholds) -> Optional[str]:
    if not record.get("is_active"):
        return None
    ratio = float(record.get("ratio7") or 0.0)
    lit = None
    for level in _LIT_LEVELS:
        if ratio >= getattr(thresholds, level.value):
            lit = level.value
    return lit


def first_lit(
    entries: Iterable[Mapping[str, Any]],
    thresholds: Optional[SurgeThresholds] = None,
) -> Dict[str, Dict[str, Optional[str]]]:
    """First week_id at which each type (and the country overall) reached each color."""
    th = thresholds or SurgeThresholds()
    keys = ["overall"] + [t.value for t in R_TYPES]
    result: Dict[str, Dict[str, Optional[str]]] = {key: {lvl.value: None for lvl in _LIT_LEVELS} for key in keys}
    for entry in sorted(entries, key=lambda e: e["week"]):
        week = entry["week"]
        overall = AlertLevel(_entry_level(entry))
        for level in _LIT_LEVELS:
            if overall.rank >= level.rank and result["overall"][level.value] is None:
                result["overall"][level.value] = week
        for type_key, record in (entry.get("weekly_surge_r_by_type") or {}).items():
            if type_key not in result or not isinstance(record, Mapping):
                continue
            lit = _type_level(record, th)
            if lit is None:
                continue
            for level in _LIT_LEVELS:
                if AlertLevel(lit).rank >= level.rank and result[type_key][level.value] is None:
                    result[type_key][level.value] = week
    return result


def series_path(series_dir: Path, country_code: str) -> Path:
    return series_dir / f"{country_code.upper()}.json"


def write_week_file(weekly_dir: Path, week_id: str, aggregates: Iterable[WeeklyAggregate]) -> Path:
    countries = {agg.country_code: agg.to_dict() for agg in aggregates}
    path = weekly_dir / f"{week_id}.json"
    write_json_atomic(path, {"week": week_id, "countries": countries})
    return path


def write_index(weekly_dir: Path, series_dir: Path) -> Dict[str, Any]:
    """Rebuild ``index.json`` listing available week files and per-country series."""
    weeks = sorted(p.stem for p in weekly_dir.glob("*-W*.json"))
    countries = sorted(p.stem for p in series_dir.glob("*.json")) if series_dir.exists() else []
    payload = {"weeks": weeks, "latest_week": weeks[-1] if weeks else None, "countries": countries}
    write_json_atomic(weekly_dir / "index.json", payload)
    LOGGER.info("Index updated: %d weeks, %d countries", len(weeks), len(countries))
    return payload
