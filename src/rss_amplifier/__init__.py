"""rss_amplifier package: periodic RSS/Atom feed refresh scheduling."""

from .config import (
    AppConfig,
    FeedSourceConfig,
    FetchConfig,
    RuntimeConfig,
    SchedulerConfig,
    config_to_dict,
    default_config,
    init_default_config,
    load_runtime_config,
    resolve_config_path,
)
from .models import EngineState, EngineStats, FeedDocument, FeedItem, ScheduleRecord
from .scheduler.engine import FeedScheduler

__all__ = [
    "AppConfig",
    "EngineState",
    "EngineStats",
    "FeedDocument",
    "FeedItem",
    "FeedScheduler",
    "FeedSourceConfig",
    "FetchConfig",
    "RuntimeConfig",
    "ScheduleRecord",
    "SchedulerConfig",
    "config_to_dict",
    "default_config",
    "init_default_config",
    "load_runtime_config",
    "resolve_config_path",
]

__version__ = "0.1.0"
