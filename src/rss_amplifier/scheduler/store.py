"""Durable schedule record and engine statistics store."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
import logging
from pathlib import Path
import threading
from typing import Any

from rss_amplifier.errors import PersistenceError
from rss_amplifier.jsonfile import read_json_document, write_json_atomic
from rss_amplifier.models import EngineStats, ScheduleRecord
from rss_amplifier.scheduler.cron import validate_cron_expression

logger = logging.getLogger(__name__)

SCHEDULE_FILENAME = "scheduled-feeds.json"

_RECORD_KEYS = (
    "id",
    "url",
    "title",
    "interval",
    "nextRun",
    "lastRun",
    "lastSuccess",
    "failureCount",
    "enabled",
)

RecordMutation = Callable[[ScheduleRecord], ScheduleRecord]
StatsMutation = Callable[[EngineStats], EngineStats]


class ScheduleStore:
    """In-memory schedule records mirrored to one JSON document.

    The in-memory copy is authoritative. ``save`` never raises; a failed write
    is logged and retried implicitly by the next mutation's save.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._path = Path(data_dir).expanduser() / SCHEDULE_FILENAME
        self._lock = threading.RLock()
        self._records: dict[str, ScheduleRecord] = {}
        self._stats = EngineStats()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def stats(self) -> EngineStats:
        with self._lock:
            return self._stats

    def load(self) -> None:
        try:
            document = read_json_document(self._path)
        except PersistenceError as exc:
            logger.warning("Failed to load scheduled feeds, starting empty: %s", exc)
            document = None

        records: dict[str, ScheduleRecord] = {}
        stats = EngineStats()
        if document is not None:
            raw_feeds = document.get("feeds", {})
            if isinstance(raw_feeds, dict):
                for feed_id, raw in raw_feeds.items():
                    try:
                        record = schedule_record_from_dict(raw)
                    except PersistenceError as exc:
                        logger.warning("Skipping unreadable schedule record '%s': %s", feed_id, exc)
                        continue
                    records[record.feed_id] = record
            raw_stats = document.get("stats", {})
            if isinstance(raw_stats, dict):
                stats = engine_stats_from_dict(raw_stats)

        with self._lock:
            self._records = records
            self._stats = replace(stats, total_feeds=len(records))

    def save(self) -> bool:
        with self._lock:
            payload = {
                "feeds": {
                    feed_id: schedule_record_to_dict(record)
                    for feed_id, record in self._records.items()
                },
                "stats": engine_stats_to_dict(self._stats),
                "lastSaved": datetime.now(timezone.utc).isoformat(),
            }
        try:
            write_json_atomic(self._path, payload)
        except PersistenceError as exc:
            logger.error("Failed to save scheduled feeds: %s", exc)
            return False
        return True

    def get(self, feed_id: str) -> ScheduleRecord | None:
        with self._lock:
            return self._records.get(feed_id)

    def contains(self, feed_id: str) -> bool:
        with self._lock:
            return feed_id in self._records

    def list(self) -> list[ScheduleRecord]:
        with self._lock:
            return list(self._records.values())

    def set(self, record: ScheduleRecord) -> None:
        with self._lock:
            self._records[record.feed_id] = record
            self._stats = replace(self._stats, total_feeds=len(self._records))

    def delete(self, feed_id: str) -> ScheduleRecord | None:
        with self._lock:
            removed = self._records.pop(feed_id, None)
            self._stats = replace(self._stats, total_feeds=len(self._records))
            return removed

    def put_for_url(
        self,
        feed_id: str,
        url: str,
        build: Callable[[ScheduleRecord | None], ScheduleRecord],
    ) -> tuple[bool, ScheduleRecord]:
        """Insert or replace the record for ``url`` in one critical section.

        ``build`` receives the current record (or ``None``). When ``feed_id``
        already belongs to a different URL nothing is written and
        ``(False, existing)`` is returned.
        """
        with self._lock:
            existing = self._records.get(feed_id)
            if existing is not None and existing.url != url:
                return False, existing
            record = build(existing)
            if record.feed_id != feed_id or record.url != url:
                raise PersistenceError(
                    f"Record for '{url}' must keep feed id '{feed_id}' and its URL."
                )
            self._records[feed_id] = record
            self._stats = replace(self._stats, total_feeds=len(self._records))
            return True, record

    def mutate(self, feed_id: str, mutation: RecordMutation) -> ScheduleRecord | None:
        """Apply ``mutation`` to one record atomically; ``None`` when the id is unknown."""
        with self._lock:
            current = self._records.get(feed_id)
            if current is None:
                return None
            updated = mutation(current)
            if updated.feed_id != feed_id:
                raise PersistenceError(
                    f"Record mutation changed feed id from '{feed_id}' to '{updated.feed_id}'."
                )
            self._records[feed_id] = updated
            return updated

    def update_stats(self, mutation: StatsMutation) -> EngineStats:
        with self._lock:
            self._stats = mutation(self._stats)
            return self._stats

    def reset_stats(self) -> EngineStats:
        with self._lock:
            self._stats = EngineStats(total_feeds=len(self._records))
            return self._stats

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def schedule_record_to_dict(record: ScheduleRecord) -> dict[str, Any]:
    return {
        **record.extra,
        "id": record.feed_id,
        "url": record.url,
        "title": record.title,
        "interval": record.interval,
        "nextRun": _format_dt(record.next_run),
        "lastRun": _format_dt(record.last_run),
        "lastSuccess": _format_dt(record.last_success),
        "failureCount": record.failure_count,
        "enabled": record.enabled,
    }


def schedule_record_from_dict(raw: object) -> ScheduleRecord:
    if not isinstance(raw, dict):
        raise PersistenceError(f"expected an object, got {type(raw).__name__}")
    for key in ("id", "url", "interval", "nextRun"):
        if not isinstance(raw.get(key), str) or not raw[key]:
            raise PersistenceError(f"missing or invalid '{key}'")

    interval_check = validate_cron_expression(raw["interval"])
    if not interval_check.valid:
        raise PersistenceError(f"invalid interval: {', '.join(interval_check.errors)}")

    failure_count = raw.get("failureCount", 0)
    if isinstance(failure_count, bool) or not isinstance(failure_count, int) or failure_count < 0:
        raise PersistenceError("'failureCount' must be a non-negative integer")

    next_run = _parse_dt(raw["nextRun"], "nextRun")
    assert next_run is not None
    return ScheduleRecord(
        feed_id=raw["id"],
        url=raw["url"],
        interval=raw["interval"],
        next_run=next_run,
        title=str(raw.get("title") or ""),
        last_run=_parse_dt(raw.get("lastRun"), "lastRun"),
        last_success=_parse_dt(raw.get("lastSuccess"), "lastSuccess"),
        failure_count=failure_count,
        enabled=bool(raw.get("enabled", True)),
        extra={key: value for key, value in raw.items() if key not in _RECORD_KEYS},
    )


def engine_stats_to_dict(stats: EngineStats) -> dict[str, Any]:
    return {
        "totalFeeds": stats.total_feeds,
        "successfulUpdates": stats.successful_updates,
        "failedUpdates": stats.failed_updates,
        "lastUpdateTime": _format_dt(stats.last_update_time),
    }


def engine_stats_from_dict(raw: dict[str, Any]) -> EngineStats:
    try:
        last_update = _parse_dt(raw.get("lastUpdateTime"), "lastUpdateTime")
    except PersistenceError as exc:
        logger.warning("Ignoring unreadable stats timestamp: %s", exc)
        last_update = None
    return EngineStats(
        total_feeds=_counter(raw.get("totalFeeds")),
        successful_updates=_counter(raw.get("successfulUpdates")),
        failed_updates=_counter(raw.get("failedUpdates")),
        last_update_time=last_update,
    )


def _counter(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _format_dt(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_dt(value: object, key: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise PersistenceError(f"'{key}' must be an ISO timestamp string")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise PersistenceError(f"'{key}' is not an ISO timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
