"""Feed package exports."""

from .base import BaseFeed, FeedError, FeedResult
from .http import HttpSnapshotFeed
from .snapshot_file import SnapshotFileFeed

__all__ = [
    "BaseFeed",
    "FeedError",
    "FeedResult",
    "HttpSnapshotFeed",
    "SnapshotFileFeed",
]
