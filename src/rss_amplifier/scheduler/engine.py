"""Feed scheduler engine: lifecycle and feed registration over the job table."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
import logging
from pathlib import Path
import threading
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rss_amplifier.config import SchedulerConfig, default_data_dir
from rss_amplifier.diagnostics.events import SCHEDULER_STATE, JsonlEventLogger
from rss_amplifier.errors import DiagnosticsError, SchedulerError, ValidationError
from rss_amplifier.feeds.base import FeedFetcher, FeedStore
from rss_amplifier.feeds.fetcher import HttpFeedFetcher
from rss_amplifier.feeds.ids import feed_id_for_url
from rss_amplifier.feeds.store import JsonFeedStore
from rss_amplifier.feeds.validation import validate_feed_url
from rss_amplifier.models import EngineState, EngineStats, ScheduleRecord
from rss_amplifier.scheduler.cron import next_run_time, validate_cron_expression
from rss_amplifier.scheduler.jobs import JobTable
from rss_amplifier.scheduler.retry import (
    FetchUpdateResult,
    NowFn,
    RetryPolicy,
    SleepFn,
    fetch_and_update_feed,
)
from rss_amplifier.scheduler.store import ScheduleStore

logger = logging.getLogger(__name__)

FEED_NOT_FOUND = "Scheduled feed not found"


@dataclass(frozen=True)
class AddFeedResult:
    success: bool
    feed_id: str | None = None
    next_run: datetime | None = None
    feed: ScheduleRecord | None = None
    error: str | None = None


@dataclass(frozen=True)
class FeedOperationResult:
    success: bool
    feed_id: str
    next_run: datetime | None = None
    error: str | None = None


@dataclass(frozen=True)
class SchedulerStatus:
    scheduled_feeds: int
    active_jobs: int
    is_running: bool
    is_paused: bool
    last_update: datetime | None
    stats: EngineStats


class FeedScheduler:
    """Periodic feed refresh engine.

    Each instance owns its schedule store and job table, so several engines
    can coexist in one process as long as they use different data dirs.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        *,
        data_dir: str | Path | None = None,
        feed_store: FeedStore | None = None,
        fetcher: FeedFetcher | None = None,
        job_table: JobTable | None = None,
        now_fn: NowFn | None = None,
        sleep_fn: SleepFn | None = None,
        event_logger: JsonlEventLogger | None = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._policy = _validate_config(self._config)
        resolved_dir = Path(data_dir).expanduser() if data_dir is not None else default_data_dir() / "scheduler"

        self._store = ScheduleStore(resolved_dir)
        self._store.load()
        self._feed_store: FeedStore = feed_store if feed_store is not None else JsonFeedStore(resolved_dir)
        self._fetcher: FeedFetcher = fetcher if fetcher is not None else HttpFeedFetcher()
        self._jobs = job_table if job_table is not None else JobTable(
            max_workers=self._config.max_concurrent,
            tz=self._config.timezone,
        )
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep_fn
        self._event_logger = event_logger
        self._state = EngineState.STOPPED
        self._state_lock = threading.RLock()

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def store(self) -> ScheduleStore:
        return self._store

    @property
    def job_table(self) -> JobTable:
        return self._jobs

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return self._state

    def is_running(self) -> bool:
        return self.state is not EngineState.STOPPED

    def is_paused(self) -> bool:
        return self.state is EngineState.PAUSED

    def start(self) -> None:
        with self._state_lock:
            if self._state is not EngineState.STOPPED:
                return
            self._jobs.open()
            for record in self._store.list():
                if record.enabled:
                    self._create_job(record)
            self._state = EngineState.RUNNING
            job_count = len(self._jobs)
        logger.info("Feed scheduler started with %d feeds (%d jobs)", len(self._store), job_count)
        self._emit_state()

    def stop(self) -> None:
        with self._state_lock:
            if self._state is EngineState.STOPPED:
                return
            self._state = EngineState.STOPPED
            self._jobs.close()
        logger.info("Feed scheduler stopped")
        self._emit_state()

    def pause(self) -> None:
        with self._state_lock:
            if self._state is not EngineState.RUNNING:
                return
            # Flip state first so fires already in flight see the pause.
            self._state = EngineState.PAUSED
            self._jobs.pause_all()
        logger.info("Feed scheduler paused")
        self._emit_state()

    def resume(self) -> None:
        with self._state_lock:
            if self._state is not EngineState.PAUSED:
                return
            self._jobs.resume_all()
            self._state = EngineState.RUNNING
        logger.info("Feed scheduler resumed")
        self._emit_state()

    def close(self) -> None:
        self.stop()
        self._store.save()

    def add_feed(
        self,
        url: str,
        *,
        interval: str | None = None,
        title: str | None = None,
        enabled: bool = True,
        **extra: Any,
    ) -> AddFeedResult:
        url_check = validate_feed_url(url)
        if not url_check.valid:
            return AddFeedResult(success=False, error=f"Invalid URL: {', '.join(url_check.errors)}")

        resolved_interval = interval or self._config.default_interval
        cron_check = validate_cron_expression(resolved_interval)
        if not cron_check.valid:
            return AddFeedResult(
                success=False,
                error=f"Invalid cron expression: {', '.join(cron_check.errors)}",
            )

        feed_id = feed_id_for_url(url)
        existing = self._store.get(feed_id)
        if existing is not None and existing.url != url:
            return AddFeedResult(
                success=False,
                feed_id=feed_id,
                error=f"Feed id '{feed_id}' is already used by '{existing.url}'",
            )

        metadata = {**extra, "title": title if title is not None else (existing.title if existing else "")}
        try:
            stored = self._feed_store.upsert(url, metadata)
        except Exception as exc:
            logger.warning("Feed store failed to register %s: %s", url, exc)
            return AddFeedResult(success=False, feed_id=feed_id, error=f"Feed store error: {exc}")
        if not stored.success:
            return AddFeedResult(
                success=False,
                feed_id=feed_id,
                error=stored.error or "Feed store rejected the feed",
            )

        next_run = next_run_time(resolved_interval, self._now(), tz=self._config.timezone)

        def _build(current: ScheduleRecord | None) -> ScheduleRecord:
            if current is not None:
                return replace(
                    current,
                    interval=resolved_interval,
                    title=title if title is not None else current.title,
                    enabled=enabled,
                    next_run=next_run,
                    extra={**current.extra, **extra},
                )
            return ScheduleRecord(
                feed_id=feed_id,
                url=url,
                interval=resolved_interval,
                next_run=next_run,
                title=title or "",
                enabled=enabled,
                extra=dict(extra),
            )

        # Another caller may have claimed the id while the feed store was busy.
        stored_ok, record = self._store.put_for_url(feed_id, url, _build)
        if not stored_ok:
            return AddFeedResult(
                success=False,
                feed_id=feed_id,
                error=f"Feed id '{feed_id}' is already used by '{record.url}'",
            )
        self._store.save()

        with self._state_lock:
            if self._state is not EngineState.STOPPED:
                if record.enabled:
                    self._create_job(record, paused=self._state is EngineState.PAUSED)
                else:
                    self._jobs.destroy(feed_id)

        logger.info("Scheduled feed %s (%s) next run %s", feed_id, url, next_run.isoformat())
        return AddFeedResult(success=True, feed_id=feed_id, next_run=next_run, feed=record)

    def remove_feed(self, feed_id: str) -> FeedOperationResult:
        if not self._store.contains(feed_id):
            return FeedOperationResult(success=False, feed_id=feed_id, error=FEED_NOT_FOUND)

        with self._state_lock:
            self._jobs.destroy(feed_id)

        try:
            removed = self._feed_store.remove(feed_id)
            if not removed.success:
                logger.warning("Feed store could not remove %s: %s", feed_id, removed.error)
        except Exception as exc:
            logger.warning("Feed store failed while removing %s: %s", feed_id, exc)

        self._store.delete(feed_id)
        self._store.save()
        logger.info("Removed scheduled feed %s", feed_id)
        return FeedOperationResult(success=True, feed_id=feed_id)

    def update_feed_schedule(self, feed_id: str, new_interval: str) -> FeedOperationResult:
        if not self._store.contains(feed_id):
            return FeedOperationResult(success=False, feed_id=feed_id, error=FEED_NOT_FOUND)

        cron_check = validate_cron_expression(new_interval)
        if not cron_check.valid:
            return FeedOperationResult(
                success=False,
                feed_id=feed_id,
                error=f"Invalid cron expression: {', '.join(cron_check.errors)}",
            )

        next_run = next_run_time(new_interval, self._now(), tz=self._config.timezone)
        updated = self._store.mutate(
            feed_id,
            lambda record: replace(record, interval=new_interval, next_run=next_run),
        )
        if updated is None:
            return FeedOperationResult(success=False, feed_id=feed_id, error=FEED_NOT_FOUND)
        self._store.save()

        with self._state_lock:
            if self._state is not EngineState.STOPPED and updated.enabled:
                self._create_job(updated, paused=self._state is EngineState.PAUSED)

        logger.info("Rescheduled feed %s to '%s'", feed_id, new_interval)
        return FeedOperationResult(success=True, feed_id=feed_id, next_run=next_run)

    def set_feed_enabled(self, feed_id: str, enabled: bool) -> FeedOperationResult:
        updated = self._store.mutate(feed_id, lambda record: replace(record, enabled=enabled))
        if updated is None:
            return FeedOperationResult(success=False, feed_id=feed_id, error=FEED_NOT_FOUND)
        self._store.save()

        with self._state_lock:
            if self._state is not EngineState.STOPPED:
                if enabled:
                    if feed_id not in self._jobs:
                        self._create_job(updated, paused=self._state is EngineState.PAUSED)
                else:
                    self._jobs.destroy(feed_id)
        return FeedOperationResult(success=True, feed_id=feed_id, next_run=updated.next_run)

    def list_scheduled_feeds(self) -> list[ScheduleRecord]:
        return self._store.list()

    def get_scheduled_feed(self, feed_id: str) -> ScheduleRecord | None:
        return self._store.get(feed_id)

    def get_status(self) -> SchedulerStatus:
        stats = self._store.stats
        with self._state_lock:
            state = self._state
            active_jobs = len(self._jobs)
        return SchedulerStatus(
            scheduled_feeds=len(self._store),
            active_jobs=active_jobs,
            is_running=state is not EngineState.STOPPED,
            is_paused=state is EngineState.PAUSED,
            last_update=stats.last_update_time,
            stats=stats,
        )

    def get_update_stats(self) -> EngineStats:
        return self._store.stats

    def reset_stats(self) -> EngineStats:
        stats = self._store.reset_stats()
        self._store.save()
        return stats

    def fetch_and_update_feed(
        self,
        url: str,
        *,
        retry_attempts: int | None = None,
        retry_delay_ms: int | None = None,
        mock_content: str | bytes | None = None,
    ) -> FetchUpdateResult:
        policy = RetryPolicy(
            attempts=retry_attempts if retry_attempts is not None else self._policy.attempts,
            delay_ms=retry_delay_ms if retry_delay_ms is not None else self._policy.delay_ms,
        )
        return fetch_and_update_feed(
            url,
            fetcher=self._fetcher,
            feed_store=self._feed_store,
            schedule_store=self._store,
            policy=policy,
            mock_content=mock_content,
            tz=self._config.timezone,
            now_fn=self._now,
            sleep_fn=self._sleep,
            event_logger=self._event_logger,
        )

    def run_feed_now(self, feed_id: str) -> FetchUpdateResult | None:
        """Refresh one scheduled feed on the calling thread.

        Returns ``None`` without touching stats when the engine is paused or the
        feed is unknown.
        """
        if self.is_paused():
            logger.debug("Skipping refresh of %s while paused", feed_id)
            return None
        record = self._store.get(feed_id)
        if record is None:
            return None
        logger.info("Updating feed: %s", record.title or record.url)
        return self.fetch_and_update_feed(record.url)

    def _create_job(self, record: ScheduleRecord, *, paused: bool = False) -> bool:
        feed_id = record.feed_id
        try:
            self._jobs.create(feed_id, record.interval, lambda: self._fire(feed_id), paused=paused)
        except (SchedulerError, ValidationError) as exc:
            logger.error("Failed to create job for feed %s: %s", feed_id, exc)
            return False
        return True

    def _fire(self, feed_id: str) -> None:
        record = self._store.get(feed_id)
        if record is None or not record.enabled:
            return
        self.run_feed_now(feed_id)

    def _emit_state(self) -> None:
        if self._event_logger is None:
            return
        status = self.get_status()
        try:
            self._event_logger.append(
                SCHEDULER_STATE,
                run_id=f"scheduler-{id(self):x}",
                payload={
                    "is_running": status.is_running,
                    "is_paused": status.is_paused,
                    "active_jobs": status.active_jobs,
                    "scheduled_feeds": status.scheduled_feeds,
                },
            )
        except DiagnosticsError as exc:
            logger.warning("Could not record scheduler_state event: %s", exc)


def _validate_config(config: SchedulerConfig) -> RetryPolicy:
    cron_check = validate_cron_expression(config.default_interval)
    if not cron_check.valid:
        raise SchedulerError(f"Invalid default_interval: {', '.join(cron_check.errors)}")
    if isinstance(config.max_concurrent, bool) or not isinstance(config.max_concurrent, int) or config.max_concurrent <= 0:
        raise SchedulerError("max_concurrent must be a positive integer.")
    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise SchedulerError(f"Invalid timezone '{config.timezone}'.") from exc
    return RetryPolicy(attempts=config.retry_attempts, delay_ms=config.retry_delay_ms)
