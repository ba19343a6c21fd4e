"""JSON feed store persistence and query behavior."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from rss_amplifier.errors import PersistenceError
from rss_amplifier.feeds.fetcher import parse_feed_content
from rss_amplifier.feeds.ids import feed_id_for_url
from rss_amplifier.feeds.store import FEEDS_FILENAME, JsonFeedStore, feed_document_to_dict

URL_A = "https://a.example/rss"
URL_B = "https://b.example/rss"


def _items(*published: str) -> list[dict[str, str]]:
    return [
        {"title": f"item {index}", "link": f"https://x.example/{index}", "published": value}
        for index, value in enumerate(published)
    ]


def test_upsert_creates_feed_keyed_by_url_id(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path)
    result = store.upsert(URL_A, {"title": "A"})

    assert result.success
    assert result.feed_id == feed_id_for_url(URL_A)
    assert result.feed["url"] == URL_A
    assert result.feed["title"] == "A"
    assert result.feed["items"] == []
    assert "last_updated" in result.feed

    document = json.loads((tmp_path / FEEDS_FILENAME).read_text(encoding="utf-8"))
    assert document[result.feed_id]["title"] == "A"


def test_upsert_merges_over_existing_entry(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path)
    store.upsert(URL_A, {"title": "A", "category": "news"})
    store.upsert(URL_A, {"description": "updated", "last_updated": "2026-03-01T00:00:00+00:00"})

    feed = store.get(feed_id_for_url(URL_A))
    assert feed is not None
    assert feed["title"] == "A"
    assert feed["category"] == "news"
    assert feed["description"] == "updated"
    assert feed["last_updated"] == "2026-03-01T00:00:00+00:00"


def test_upsert_caps_items(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path, max_items=2)
    store.upsert(URL_A, {"items": _items("a", "b", "c")})
    assert len(store.get_feed_items(feed_id_for_url(URL_A))) == 2


def test_upsert_accepts_parsed_feed_documents(tmp_path: Path) -> None:
    feed = parse_feed_content(
        "<rss version='2.0'><channel><title>T</title>"
        "<item><title>one</title><link>https://a.example/1</link></item>"
        "</channel></rss>",
        url=URL_A,
    )
    store = JsonFeedStore(tmp_path)
    result = store.upsert(URL_A, feed_document_to_dict(feed))

    assert result.feed["item_count"] == 1
    assert store.get_feed_items(result.feed_id or "")[0]["title"] == "one"


def test_remove_unknown_feed_fails(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path)
    result = store.remove("missing")
    assert not result.success
    assert result.error == "Feed not found"


def test_remove_deletes_feed(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path)
    feed_id = store.upsert(URL_A).feed_id or ""
    assert store.remove(feed_id).success
    assert store.get(feed_id) is None
    assert store.list_feeds() == []


def test_reload_restores_feeds(tmp_path: Path) -> None:
    JsonFeedStore(tmp_path).upsert(URL_A, {"title": "A"})
    reloaded = JsonFeedStore(tmp_path)
    assert [feed["url"] for feed in reloaded.list_feeds()] == [URL_A]


def test_corrupt_file_loads_empty(tmp_path: Path) -> None:
    (tmp_path / FEEDS_FILENAME).write_text("[1, 2", encoding="utf-8")
    assert JsonFeedStore(tmp_path).list_feeds() == []


def test_get_recent_items_sorts_newest_first_across_feeds(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path)
    store.upsert(URL_A, {"title": "A", "items": _items("Sun, 01 Mar 2026 10:00:00 GMT", "not a date")})
    store.upsert(URL_B, {"title": "B", "items": _items("2026-03-02T08:00:00Z")})

    recent = store.get_recent_items(limit=2)

    assert [item["feed_title"] for item in recent] == ["B", "A"]
    assert recent[0]["feed_id"] == feed_id_for_url(URL_B)
    assert store.get_recent_items(limit=0) == []


def test_get_status_counts_feeds_and_items(tmp_path: Path) -> None:
    store = JsonFeedStore(tmp_path)
    store.upsert(URL_A, {"items": _items("a", "b")})
    store.upsert(URL_B, {"items": _items("c")})
    assert store.get_status() == {"feed_count": 2, "total_items": 3, "data_path": str(tmp_path)}


def test_rejects_non_positive_max_items(tmp_path: Path) -> None:
    with pytest.raises(PersistenceError):
        JsonFeedStore(tmp_path, max_items=0)
