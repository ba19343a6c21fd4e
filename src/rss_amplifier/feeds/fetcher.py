"""HTTP feed fetcher backed by httpx and feedparser."""

from __future__ import annotations

import logging
from typing import Any

import feedparser
import httpx

from rss_amplifier.config import DEFAULT_USER_AGENT, FetchConfig
from rss_amplifier.errors import FeedError, FetchError
from rss_amplifier.feeds.base import FetchResult
from rss_amplifier.feeds.validation import validate_feed_url
from rss_amplifier.models import FeedDocument, FeedItem

logger = logging.getLogger(__name__)


class HttpFeedFetcher:
    """Download a feed over HTTP and parse it into a FeedDocument."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        max_items: int | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise FetchError("timeout_seconds must be > 0.")
        if max_items is not None and max_items <= 0:
            raise FetchError("max_items must be > 0 when provided.")
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._max_items = max_items
        self._client = client

    @classmethod
    def from_config(cls, config: FetchConfig) -> HttpFeedFetcher:
        return cls(
            timeout_seconds=config.timeout_seconds,
            user_agent=config.user_agent,
            max_items=config.max_items,
        )

    def fetch(self, url: str, *, mock_content: str | bytes | None = None) -> FetchResult:
        validation = validate_feed_url(url)
        if not validation.valid:
            return FetchResult(success=False, error=f"Invalid URL: {', '.join(validation.errors)}")

        try:
            content = mock_content if mock_content is not None else self._download(url)
            feed = parse_feed_content(content, url=url, max_items=self._max_items)
        except (FetchError, FeedError) as exc:
            logger.debug("Fetch failed for %s: %s", url, exc)
            return FetchResult(success=False, error=str(exc))
        return FetchResult(success=True, feed=feed)

    def _download(self, url: str) -> bytes:
        headers = {"User-Agent": self._user_agent}
        try:
            if self._client is not None:
                response = self._client.get(
                    url, headers=headers, timeout=self._timeout_seconds, follow_redirects=True
                )
            else:
                with httpx.Client(timeout=self._timeout_seconds, follow_redirects=True) as client:
                    response = client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out fetching '{url}' after {self._timeout_seconds}s") from exc
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"HTTP {exc.response.status_code}: {exc.response.reason_phrase}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Request to '{url}' failed: {exc}") from exc
        return response.content


def parse_feed_content(
    content: str | bytes,
    *,
    url: str = "",
    max_items: int | None = None,
) -> FeedDocument:
    """Parse RSS/Atom content; raise FeedError when nothing feed-like is found."""
    # Bytes keep feedparser from treating the payload as a URL or file path.
    raw = content.encode("utf-8") if isinstance(content, str) else content
    parsed = feedparser.parse(raw)
    channel: dict[str, Any] = parsed.get("feed", {}) or {}
    entries = parsed.get("entries", []) or []

    if not channel and not entries:
        reason = parsed.get("bozo_exception")
        detail = f": {reason}" if reason else ""
        raise FeedError(f"Could not parse feed content{detail}")

    items = tuple(_entry_to_item(entry) for entry in entries)
    if max_items is not None:
        items = items[:max_items]

    return FeedDocument(
        url=url,
        title=_text(channel.get("title")),
        description=_text(channel.get("subtitle") or channel.get("description")),
        link=_text(channel.get("link")),
        language=_text(channel.get("language")),
        last_updated=channel.get("updated") or channel.get("published") or None,
        generator=_text(channel.get("generator")),
        copyright=_text(channel.get("rights")),
        items=items,
    )


def _entry_to_item(entry: dict[str, Any]) -> FeedItem:
    return FeedItem(
        title=_text(entry.get("title")),
        link=_text(entry.get("link")),
        summary=_text(entry.get("summary")),
        published=entry.get("published") or entry.get("updated") or None,
        guid=entry.get("id") or None,
        author=entry.get("author") or None,
    )


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()
