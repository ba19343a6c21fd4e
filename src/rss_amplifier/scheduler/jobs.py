"""Job table: feed id to live APScheduler cron jobs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
import logging
import threading

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from rss_amplifier.errors import SchedulerError
from rss_amplifier.scheduler.cron import DEFAULT_TIMEZONE, build_trigger

logger = logging.getLogger(__name__)

JobCallback = Callable[[], None]
SchedulerFactory = Callable[[int, str], BaseScheduler]


def background_scheduler(max_workers: int, tz: str) -> BaseScheduler:
    """Build the default thread-pool backed scheduler.

    ``max_instances=1`` keeps a slow retry sequence from overlapping the next
    fire of the same feed; different feeds still run in parallel.
    """
    return BackgroundScheduler(
        executors={"default": ThreadPoolExecutor(max_workers)},
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 60},
        timezone=tz,
    )


@dataclass(frozen=True)
class _JobEntry:
    job_id: str
    interval: str
    callback: JobCallback


class JobTable:
    """Ephemeral mapping of feed ids to periodic jobs.

    The table never holds schedule data of its own; the engine rebuilds it from
    the schedule store on every start.
    """

    def __init__(
        self,
        *,
        max_workers: int = 5,
        tz: str = DEFAULT_TIMEZONE,
        scheduler_factory: SchedulerFactory | None = None,
    ) -> None:
        if max_workers <= 0:
            raise SchedulerError("max_workers must be > 0.")
        self._max_workers = max_workers
        self._tz = tz
        self._factory = scheduler_factory or background_scheduler
        self._scheduler: BaseScheduler | None = None
        self._jobs: dict[str, _JobEntry] = {}
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self._scheduler is not None

    def open(self) -> None:
        with self._lock:
            if self._scheduler is not None:
                return
            scheduler = self._factory(self._max_workers, self._tz)
            scheduler.start()
            self._scheduler = scheduler

    def close(self) -> None:
        with self._lock:
            self.clear()
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            # Running callbacks finish on their own; only future fires stop.
            scheduler.shutdown(wait=False)

    def create(self, feed_id: str, interval: str, callback: JobCallback, *, paused: bool = False) -> None:
        """Create (or replace) the job for ``feed_id``."""
        with self._lock:
            scheduler = self._require_scheduler()
            self.destroy(feed_id)
            guarded = _guard(feed_id, callback)
            job_id = f"feed:{feed_id}"
            job: Job = scheduler.add_job(
                guarded,
                trigger=build_trigger(interval, self._tz),
                id=job_id,
                name=f"refresh {feed_id}",
                replace_existing=True,
            )
            if paused:
                job.pause()
            self._jobs[feed_id] = _JobEntry(job_id=job_id, interval=interval, callback=guarded)
            logger.debug("Created job %s with interval '%s' (paused=%s)", job_id, interval, paused)

    def destroy(self, feed_id: str) -> bool:
        with self._lock:
            entry = self._jobs.pop(feed_id, None)
            if entry is None:
                return False
            if self._scheduler is not None:
                try:
                    self._scheduler.remove_job(entry.job_id)
                except JobLookupError:
                    logger.debug("Job %s was already gone from the scheduler", entry.job_id)
            return True

    def clear(self) -> None:
        with self._lock:
            for feed_id in list(self._jobs):
                self.destroy(feed_id)

    def pause_all(self) -> None:
        with self._lock:
            scheduler = self._require_scheduler()
            for entry in self._jobs.values():
                scheduler.pause_job(entry.job_id)

    def resume_all(self) -> None:
        with self._lock:
            scheduler = self._require_scheduler()
            for entry in self._jobs.values():
                scheduler.resume_job(entry.job_id)

    def fire(self, feed_id: str) -> bool:
        """Run a job's callback on the calling thread; False when no such job."""
        with self._lock:
            entry = self._jobs.get(feed_id)
        if entry is None:
            return False
        entry.callback()
        return True

    def interval_for(self, feed_id: str) -> str | None:
        with self._lock:
            entry = self._jobs.get(feed_id)
            return entry.interval if entry is not None else None

    def next_fire_time(self, feed_id: str) -> datetime | None:
        with self._lock:
            entry = self._jobs.get(feed_id)
            if entry is None or self._scheduler is None:
                return None
            job = self._scheduler.get_job(entry.job_id)
            return job.next_run_time if job is not None else None

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, feed_id: object) -> bool:
        with self._lock:
            return feed_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _require_scheduler(self) -> BaseScheduler:
        if self._scheduler is None:
            raise SchedulerError("Job table is not open; start the engine first.")
        return self._scheduler


def _guard(feed_id: str, callback: JobCallback) -> JobCallback:
    def _run() -> None:
        try:
            callback()
        except Exception:
            logger.exception("Scheduled job for feed %s failed", feed_id)

    return _run
