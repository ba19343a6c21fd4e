"""Debug event logging."""

from .events import (
    EVENT_SCHEMA_VERSION,
    EVENT_TYPES,
    FETCH_ATTEMPT,
    SCHEDULER_STATE,
    DebugEvent,
    JsonlEventLogger,
    build_debug_event,
    read_debug_events,
)

__all__ = [
    "DebugEvent",
    "EVENT_SCHEMA_VERSION",
    "EVENT_TYPES",
    "FETCH_ATTEMPT",
    "SCHEDULER_STATE",
    "JsonlEventLogger",
    "build_debug_event",
    "read_debug_events",
]
