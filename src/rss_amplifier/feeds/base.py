"""Collaborator interfaces consumed by the scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from rss_amplifier.models import FeedDocument


@dataclass(frozen=True)
class FetchResult:
    success: bool
    feed: FeedDocument | None = None
    error: str | None = None


@dataclass(frozen=True)
class StoreResult:
    success: bool
    feed_id: str | None = None
    feed: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class FeedFetcher(Protocol):
    def fetch(self, url: str, *, mock_content: str | bytes | None = None) -> FetchResult:
        """Fetch and parse the feed at ``url``."""


class FeedStore(Protocol):
    def upsert(self, url: str, metadata: dict[str, Any] | None = None) -> StoreResult:
        """Insert or replace feed metadata keyed by the URL-derived feed id."""

    def remove(self, feed_id: str) -> StoreResult:
        """Drop a stored feed."""
