"""Feed collaborators: id derivation, fetching, storage and OPML import."""

from .base import FeedFetcher, FeedStore, FetchResult, StoreResult
from .fetcher import HttpFeedFetcher, parse_feed_content
from .ids import feed_id_for_url
from .opml import OpmlFeed, OpmlImport, import_opml, parse_opml
from .store import JsonFeedStore, feed_document_to_dict
from .validation import UrlValidation, validate_feed_url

__all__ = [
    "FeedFetcher",
    "FeedStore",
    "FetchResult",
    "HttpFeedFetcher",
    "JsonFeedStore",
    "OpmlFeed",
    "OpmlImport",
    "StoreResult",
    "UrlValidation",
    "feed_document_to_dict",
    "feed_id_for_url",
    "import_opml",
    "parse_feed_content",
    "parse_opml",
    "validate_feed_url",
]
