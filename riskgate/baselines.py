"""Long-run baseline lookup with a calmest-window -> long-window -> default chain."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .models import BaselineRecord, BaselineSource, SignalType
from .storage import read_json

LOGGER = logging.getLogger(__name__)

DEFAULT_BASELINE = 1.0

# (median, avg, days_counted) per country and signal type
BaselineTable = Dict[str, Dict[SignalType, Tuple[float, float, int]]]

_CALMEST_FIELDS = {
    SignalType.EVENT: ("median_5y", "avg_5y"),
    SignalType.R1: ("median_r1", "avg_r1"),
    SignalType.R2: ("median_r2", "avg_r2"),
    SignalType.R3: ("median_r3", "avg_r3"),
    SignalType.R4: ("median_r4", "avg_r4"),
}


def _read_json(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        LOGGER.warning("Baseline file %s not found; using fallback chain", path)
        return {}
    payload = read_json(path)
    return payload if isinstance(payload, dict) else {}


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_calmest(payload: Mapping[str, Any]) -> BaselineTable:
    """Parse the calmest-window file (one flat ``gdelt.baseline`` block per country)."""
    table: BaselineTable = {}
    for code, entry in (payload.get("countries") or {}).items():
        baseline = ((entry or {}).get("gdelt") or {}).get("baseline") or {}
        days = int(_num(baseline.get("days_counted")))
        per_type = {}
        for signal_type, (median_key, avg_key) in _CALMEST_FIELDS.items():
            if median_key in baseline:
                per_type[signal_type] = (_num(baseline[median_key]), _num(baseline.get(avg_key)), days)
        if per_type:
            table[code.upper()] = per_type
    return table


def parse_long_window(payload: Mapping[str, Any]) -> BaselineTable:
    """Parse the long-window file (``{ISO: {R1: {median, avg, days_counted}}}``)."""
    rows = payload.get("baselines") or payload.get("countries") or {}
    table: BaselineTable = {}
    for code, entry in rows.items():
        per_type = {}
        for key, stats in (entry or {}).items():
            try:
                signal_type = SignalType(key.upper())
            except ValueError:
                continue
            if not isinstance(stats, Mapping):
                continue
            per_type[signal_type] = (
                _num(stats.get("median")),
                _num(stats.get("avg")),
                int(_num(stats.get("days_counted"))),
            )
        if per_type:
            table[code.upper()] = per_type
    return table


class BaselineProvider:
    """Pure lookup over preloaded baseline tables; never raises for missing data."""

    def __init__(self, calmest: Optional[BaselineTable] = None, long_window: Optional[BaselineTable] = None) -> None:
        self.calmest = calmest or {}
        self.long_window = long_window or {}

    @classmethod
    def from_files(cls, calmest_path: Optional[Path], long_window_path: Optional[Path]) -> "BaselineProvider":
        provider = cls(parse_calmest(_read_json(calmest_path)), parse_long_window(_read_json(long_window_path)))
        LOGGER.info(
            "Loaded baselines: calmest=%d countries, long_window=%d countries",
            len(provider.calmest),
            len(provider.long_window),
        )
        return provider

    def record(self, country: str, signal_type: SignalType) -> BaselineRecord:
        code = country.upper()
        for source, table in (
            (BaselineSource.CALMEST_WINDOW, self.calmest),
            (BaselineSource.LONG_WINDOW, self.long_window),
        ):
            stats = table.get(code, {}).get(signal_type)
            if stats and stats[0] > 0:
                median, avg, days = stats
                return BaselineRecord(code, signal_type, median, avg, days, source)
        return BaselineRecord(code, signal_type, DEFAULT_BASELINE, DEFAULT_BASELINE, 0, BaselineSource.DEFAULT)

    def resolve(self, country: str, signal_type: SignalType) -> float:
        return self.record(country, signal_type).median

    def weight(self, country: str) -> float:
        """Event-volume median used to damp hub countries in the adjusted view."""
        record = self.record(country, SignalType.EVENT)
        return 0.0 if record.source is BaselineSource.DEFAULT else record.median

    def countries(self) -> set[str]:
        return set(self.calmest) | set(self.long_window)
