"""JSONL debug log for fetch attempts and scheduler lifecycle changes."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
import threading
from typing import Any

from rss_amplifier.errors import DiagnosticsError

EVENT_SCHEMA_VERSION = "v1"
FETCH_ATTEMPT = "fetch_attempt"
SCHEDULER_STATE = "scheduler_state"
EVENT_TYPES = frozenset({FETCH_ATTEMPT, SCHEDULER_STATE})


@dataclass(frozen=True)
class DebugEvent:
    event_type: str
    run_id: str
    occurred_at: str
    feed_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    schema_version: str = EVENT_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: object) -> "DebugEvent":
        if not isinstance(raw, dict):
            raise DiagnosticsError("Debug event must be a JSON object.")
        missing = [name for name in ("schema_version", "event_type", "occurred_at", "run_id") if name not in raw]
        if missing:
            raise DiagnosticsError(f"Debug event missing required field '{missing[0]}'.")
        event = cls(
            event_type=raw["event_type"],
            run_id=raw["run_id"],
            occurred_at=raw["occurred_at"],
            feed_id=raw.get("feed_id"),
            payload=raw.get("payload", {}),
            schema_version=raw["schema_version"],
        )
        _check_event(event)
        return event


class JsonlEventLogger:
    """Append one JSON object per line; jobs on worker threads share a lock."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DiagnosticsError(f"Could not create event log directory for '{self._path}': {exc}") from exc

    @property
    def path(self) -> Path:
        return self._path

    def append(
        self,
        event_type: str,
        *,
        run_id: str,
        feed_id: str | None = None,
        payload: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> DebugEvent:
        event = build_debug_event(
            event_type,
            run_id=run_id,
            feed_id=feed_id,
            payload=payload,
            occurred_at=occurred_at,
        )
        line = json.dumps(event.to_dict(), sort_keys=True, default=str)
        try:
            with self._lock, self._path.open("a", encoding="utf-8") as stream:
                stream.write(line + "\n")
        except OSError as exc:
            raise DiagnosticsError(f"Could not append to event log '{self._path}': {exc}") from exc
        return event


def build_debug_event(
    event_type: str,
    *,
    run_id: str,
    feed_id: str | None = None,
    payload: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
) -> DebugEvent:
    if payload is not None and not isinstance(payload, dict):
        raise DiagnosticsError("payload must be a dictionary.")
    when = occurred_at or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    if isinstance(feed_id, str):
        feed_id = feed_id.strip() or None

    event = DebugEvent(
        event_type=event_type.strip(),
        run_id=run_id.strip(),
        occurred_at=when.isoformat(),
        feed_id=feed_id,
        payload=dict(payload or {}),
    )
    _check_event(event)
    return event


def read_debug_events(path: str | Path) -> list[DebugEvent]:
    """Load every event in a JSONL log, oldest first."""
    log_path = Path(path)
    if not log_path.exists():
        return []
    events: list[DebugEvent] = []
    for number, line in enumerate(log_path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as exc:
            raise DiagnosticsError(f"Event log '{log_path}' line {number} is not valid JSON: {exc}") from exc
        events.append(DebugEvent.from_dict(raw))
    return events


def _check_event(event: DebugEvent) -> None:
    if event.schema_version != EVENT_SCHEMA_VERSION:
        raise DiagnosticsError(
            f"Unsupported debug event schema '{event.schema_version}'; expected '{EVENT_SCHEMA_VERSION}'."
        )
    if not isinstance(event.event_type, str) or event.event_type not in EVENT_TYPES:
        raise DiagnosticsError(
            f"Unknown event_type '{event.event_type}'; expected one of {', '.join(sorted(EVENT_TYPES))}."
        )
    if not isinstance(event.run_id, str) or not event.run_id:
        raise DiagnosticsError("run_id must be a non-empty string.")
    if not isinstance(event.occurred_at, str) or not event.occurred_at:
        raise DiagnosticsError("occurred_at must be a non-empty ISO timestamp string.")
    if event.feed_id is not None and not isinstance(event.feed_id, str):
        raise DiagnosticsError("feed_id must be a string or null.")
    if not isinstance(event.payload, dict):
        raise DiagnosticsError("payload must be an object.")
