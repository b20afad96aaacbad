"""Shared types for daily snapshot feeds."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..models import DailySnapshot


@dataclass
class FeedResult:
    provider: str
    date: str
    snapshots: Dict[str, DailySnapshot] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None
    latency_ms: Optional[int] = None


class FeedError(RuntimeError):
    pass


class BaseFeed:
    provider: str = "base"

    def fetch(self, date: str, countries: Optional[Iterable[str]] = None) -> FeedResult:
        raise NotImplementedError
