"""Fetch-and-retry routine executed on every job fire."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
import logging
import time as time_module

from rss_amplifier.diagnostics.events import FETCH_ATTEMPT, JsonlEventLogger
from rss_amplifier.errors import CollaboratorError, DiagnosticsError, FetchError, SchedulerError
from rss_amplifier.feeds.base import FeedFetcher, FeedStore
from rss_amplifier.feeds.ids import feed_id_for_url
from rss_amplifier.feeds.store import feed_document_to_dict
from rss_amplifier.models import FeedDocument, ScheduleRecord
from rss_amplifier.scheduler.cron import DEFAULT_TIMEZONE, next_run_time
from rss_amplifier.scheduler.store import ScheduleStore

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], None]


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    delay_ms: int = 5_000

    def __post_init__(self) -> None:
        if isinstance(self.attempts, bool) or not isinstance(self.attempts, int) or self.attempts <= 0:
            raise SchedulerError("retry attempts must be a positive integer.")
        if isinstance(self.delay_ms, bool) or not isinstance(self.delay_ms, int) or self.delay_ms < 0:
            raise SchedulerError("retry delay_ms must be an integer >= 0.")

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


@dataclass(frozen=True)
class FetchUpdateResult:
    url: str
    success: bool
    feed: FeedDocument | None = None
    items_added: int = 0
    attempt: int | None = None
    attempts: int = 0
    error: str | None = None


def fetch_and_update_feed(
    url: str,
    *,
    fetcher: FeedFetcher,
    feed_store: FeedStore,
    schedule_store: ScheduleStore,
    policy: RetryPolicy | None = None,
    mock_content: str | bytes | None = None,
    tz: str = DEFAULT_TIMEZONE,
    now_fn: NowFn | None = None,
    sleep_fn: SleepFn | None = None,
    event_logger: JsonlEventLogger | None = None,
    run_id: str | None = None,
) -> FetchUpdateResult:
    """Refresh one feed with up to ``policy.attempts`` sequential attempts.

    Every failure counts the same toward the budget. The schedule record and
    engine stats change exactly once per call: on the first success, or after
    the last attempt fails.
    """
    resolved_policy = policy or RetryPolicy()
    now = now_fn or (lambda: datetime.now(timezone.utc))
    sleeper = sleep_fn or time_module.sleep
    feed_id = feed_id_for_url(url)
    resolved_run_id = run_id or _new_run_id("fetch")
    last_error = "unknown error"

    for attempt in range(1, resolved_policy.attempts + 1):
        try:
            feed = _attempt_once(url, fetcher=fetcher, feed_store=feed_store, mock_content=mock_content, now=now)
        except Exception as exc:
            last_error = str(exc) or exc.__class__.__name__
            logger.warning(
                "Feed fetch attempt %d/%d failed for %s: %s",
                attempt,
                resolved_policy.attempts,
                url,
                last_error,
            )
            _emit(event_logger, FETCH_ATTEMPT, resolved_run_id, feed_id, {
                "url": url,
                "attempt": attempt,
                "max_attempts": resolved_policy.attempts,
                "ok": False,
                "error": last_error,
            })
            if attempt < resolved_policy.attempts:
                sleeper(resolved_policy.delay_seconds)
            continue

        finished_at = _normalize_datetime(now())
        _record_success(schedule_store, feed_id, finished_at, tz)
        schedule_store.save()
        _emit(event_logger, FETCH_ATTEMPT, resolved_run_id, feed_id, {
            "url": url,
            "attempt": attempt,
            "max_attempts": resolved_policy.attempts,
            "ok": True,
            "items": feed.item_count,
        })
        return FetchUpdateResult(
            url=url,
            success=True,
            feed=feed,
            items_added=feed.item_count,
            attempt=attempt,
            attempts=attempt,
        )

    finished_at = _normalize_datetime(now())
    _record_failure(schedule_store, feed_id, finished_at, tz)
    schedule_store.save()
    logger.error(
        "Feed refresh for %s failed after %d attempt(s): %s",
        url,
        resolved_policy.attempts,
        last_error,
    )
    return FetchUpdateResult(
        url=url,
        success=False,
        attempts=resolved_policy.attempts,
        error=last_error,
    )


def _attempt_once(
    url: str,
    *,
    fetcher: FeedFetcher,
    feed_store: FeedStore,
    mock_content: str | bytes | None,
    now: NowFn,
) -> FeedDocument:
    result = fetcher.fetch(url, mock_content=mock_content)
    if not result.success or result.feed is None:
        raise FetchError(result.error or f"Fetching '{url}' returned no feed")

    metadata = feed_document_to_dict(result.feed)
    metadata["last_updated"] = _normalize_datetime(now()).isoformat()
    stored = feed_store.upsert(url, metadata)
    if not stored.success:
        raise CollaboratorError(stored.error or f"Feed store rejected update for '{url}'")
    return result.feed


def _record_success(store: ScheduleStore, feed_id: str, finished_at: datetime, tz: str) -> None:
    def _apply(record: ScheduleRecord) -> ScheduleRecord:
        return replace(
            record,
            last_run=finished_at,
            last_success=finished_at,
            failure_count=0,
            next_run=next_run_time(record.interval, finished_at, tz=tz),
        )

    store.mutate(feed_id, _apply)
    store.update_stats(
        lambda stats: replace(
            stats,
            successful_updates=stats.successful_updates + 1,
            last_update_time=finished_at,
        )
    )


def _record_failure(store: ScheduleStore, feed_id: str, finished_at: datetime, tz: str) -> None:
    def _apply(record: ScheduleRecord) -> ScheduleRecord:
        return replace(
            record,
            last_run=finished_at,
            failure_count=record.failure_count + 1,
            next_run=next_run_time(record.interval, finished_at, tz=tz),
        )

    store.mutate(feed_id, _apply)
    store.update_stats(lambda stats: replace(stats, failed_updates=stats.failed_updates + 1))


def _emit(
    event_logger: JsonlEventLogger | None,
    event_type: str,
    run_id: str,
    feed_id: str,
    payload: dict[str, object],
) -> None:
    if event_logger is None:
        return
    try:
        event_logger.append(event_type, run_id=run_id, feed_id=feed_id, payload=payload)
    except DiagnosticsError as exc:
        logger.warning("Could not record %s event for %s: %s", event_type, feed_id, exc)


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_run_id(prefix: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{prefix}-{stamp}"
