"""Scheduler contracts and helpers."""

from .cron import (
    CronValidation,
    ParsedCron,
    build_trigger,
    next_run_time,
    parse_cron_expression,
    validate_cron_expression,
)
from .engine import (
    AddFeedResult,
    FeedOperationResult,
    FeedScheduler,
    SchedulerStatus,
)
from .jobs import JobTable, background_scheduler
from .retry import FetchUpdateResult, RetryPolicy, fetch_and_update_feed
from .store import ScheduleStore, schedule_record_from_dict, schedule_record_to_dict

__all__ = [
    "AddFeedResult",
    "CronValidation",
    "FeedOperationResult",
    "FeedScheduler",
    "FetchUpdateResult",
    "JobTable",
    "ParsedCron",
    "RetryPolicy",
    "ScheduleStore",
    "SchedulerStatus",
    "background_scheduler",
    "build_trigger",
    "fetch_and_update_feed",
    "next_run_time",
    "parse_cron_expression",
    "schedule_record_from_dict",
    "schedule_record_to_dict",
    "validate_cron_expression",
]
