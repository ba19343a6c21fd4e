"""OPML subscription list import."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import xml.etree.ElementTree as ET

from rss_amplifier.errors import FeedError
from rss_amplifier.feeds.validation import validate_feed_url


@dataclass(frozen=True)
class OpmlFeed:
    url: str
    title: str = ""
    html_url: str = ""
    description: str = ""
    category: str = ""


@dataclass(frozen=True)
class OpmlImport:
    feeds: tuple[OpmlFeed, ...]
    skipped: tuple[str, ...] = ()


def import_opml(path: str | Path) -> OpmlImport:
    opml_path = Path(path).expanduser()
    if not opml_path.is_file():
        raise FeedError(f"OPML file not found at '{opml_path}'.")
    try:
        text = opml_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FeedError(f"Could not read OPML file '{opml_path}': {exc}") from exc
    return parse_opml(text)


def parse_opml(text: str) -> OpmlImport:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise FeedError(f"Invalid OPML format: {exc}") from exc

    body = root.find("body") if root.tag.lower() == "opml" else None
    if body is None:
        raise FeedError("Invalid OPML format: missing <opml><body>.")

    feeds: list[OpmlFeed] = []
    skipped: list[str] = []
    seen: set[str] = set()
    _walk(body, category="", feeds=feeds, skipped=skipped, seen=seen)
    return OpmlImport(feeds=tuple(feeds), skipped=tuple(skipped))


def _walk(
    node: ET.Element,
    *,
    category: str,
    feeds: list[OpmlFeed],
    skipped: list[str],
    seen: set[str],
) -> None:
    for outline in node.findall("outline"):
        attrs = outline.attrib
        label = attrs.get("title") or attrs.get("text") or ""
        xml_url = (attrs.get("xmlUrl") or attrs.get("xmlurl") or "").strip()

        if xml_url:
            if not validate_feed_url(xml_url).valid:
                skipped.append(xml_url)
            elif xml_url not in seen:
                seen.add(xml_url)
                feeds.append(
                    OpmlFeed(
                        url=xml_url,
                        title=label,
                        html_url=attrs.get("htmlUrl", ""),
                        description=attrs.get("description", ""),
                        category=category,
                    )
                )
        # Outlines without a feed URL act as folders for their children.
        _walk(
            outline,
            category=category if xml_url else (label or category),
            feeds=feeds,
            skipped=skipped,
            seen=seen,
        )
