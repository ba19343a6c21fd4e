"""JSON-file feed store keyed by URL-derived feed ids."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
from pathlib import Path
import threading
from typing import Any

from rss_amplifier.errors import PersistenceError
from rss_amplifier.feeds.base import StoreResult
from rss_amplifier.feeds.ids import feed_id_for_url
from rss_amplifier.jsonfile import read_json_document, write_json_atomic
from rss_amplifier.models import FeedDocument

logger = logging.getLogger(__name__)

FEEDS_FILENAME = "feeds.json"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class JsonFeedStore:
    """Persist feed metadata and items to ``feeds.json``.

    Writes are best effort: a failed save is logged and the in-memory copy
    stays authoritative for the rest of the process.
    """

    def __init__(self, data_dir: str | Path, *, max_items: int = 100) -> None:
        if max_items <= 0:
            raise PersistenceError("max_items must be > 0.")
        self._data_dir = Path(data_dir).expanduser()
        self._path = self._data_dir / FEEDS_FILENAME
        self._max_items = max_items
        self._lock = threading.RLock()
        self._feeds: dict[str, dict[str, Any]] = {}
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        try:
            document = read_json_document(self._path)
        except PersistenceError as exc:
            logger.warning("Failed to load feeds: %s", exc)
            document = None
        with self._lock:
            self._feeds = {
                str(feed_id): dict(feed)
                for feed_id, feed in (document or {}).items()
                if isinstance(feed, dict)
            }

    def save(self) -> bool:
        with self._lock:
            snapshot = {feed_id: dict(feed) for feed_id, feed in self._feeds.items()}
        try:
            write_json_atomic(self._path, snapshot)
        except PersistenceError as exc:
            logger.error("Failed to save feeds: %s", exc)
            return False
        return True

    def upsert(self, url: str, metadata: dict[str, Any] | None = None) -> StoreResult:
        feed_id = feed_id_for_url(url)
        incoming = dict(metadata or {})
        items = incoming.pop("items", None)

        with self._lock:
            existing = self._feeds.get(feed_id, {})
            feed = {
                "title": "",
                "description": "",
                "items": [],
                **existing,
                **incoming,
                "id": feed_id,
                "url": url,
            }
            if items is not None:
                feed["items"] = list(items)[: self._max_items]
            if "last_updated" not in incoming:
                feed["last_updated"] = _utc_now_iso()
            self._feeds[feed_id] = feed
            result = dict(feed)

        self.save()
        return StoreResult(success=True, feed_id=feed_id, feed=result)

    def remove(self, feed_id: str) -> StoreResult:
        with self._lock:
            if feed_id not in self._feeds:
                return StoreResult(success=False, feed_id=feed_id, error="Feed not found")
            del self._feeds[feed_id]
        self.save()
        return StoreResult(success=True, feed_id=feed_id)

    def get(self, feed_id: str) -> dict[str, Any] | None:
        with self._lock:
            feed = self._feeds.get(feed_id)
            return dict(feed) if feed is not None else None

    def list_feeds(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(feed) for feed in self._feeds.values()]

    def get_feed_items(self, feed_id: str) -> list[dict[str, Any]]:
        feed = self.get(feed_id)
        return list(feed.get("items", [])) if feed else []

    def get_recent_items(self, limit: int = 10) -> list[dict[str, Any]]:
        """Return the newest items across all feeds, tagged with their feed."""
        collected: list[dict[str, Any]] = []
        for feed in self.list_feeds():
            for item in feed.get("items", []):
                if not isinstance(item, dict):
                    continue
                collected.append({**item, "feed_id": feed["id"], "feed_title": feed.get("title", "")})
        collected.sort(key=lambda item: _published_at(item.get("published")), reverse=True)
        return collected[: max(0, limit)]

    def get_status(self) -> dict[str, Any]:
        feeds = self.list_feeds()
        return {
            "feed_count": len(feeds),
            "total_items": sum(len(feed.get("items", [])) for feed in feeds),
            "data_path": str(self._data_dir),
        }


def feed_document_to_dict(feed: FeedDocument) -> dict[str, Any]:
    payload = asdict(feed)
    payload["item_count"] = feed.item_count
    return payload


def _published_at(raw: object) -> datetime:
    if not isinstance(raw, str) or not raw.strip():
        return _EPOCH
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
