"""Data model contracts for cross-module use."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EngineState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class ScheduleRecord:
    feed_id: str
    url: str
    interval: str
    next_run: datetime
    title: str = ""
    last_run: datetime | None = None
    last_success: datetime | None = None
    failure_count: int = 0
    enabled: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineStats:
    total_feeds: int = 0
    successful_updates: int = 0
    failed_updates: int = 0
    last_update_time: datetime | None = None


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str
    summary: str = ""
    published: str | None = None
    guid: str | None = None
    author: str | None = None


@dataclass(frozen=True)
class FeedDocument:
    url: str
    title: str = ""
    description: str = ""
    link: str = ""
    language: str = ""
    last_updated: str | None = None
    generator: str = ""
    copyright: str = ""
    items: tuple[FeedItem, ...] = ()

    @property
    def item_count(self) -> int:
        return len(self.items)
