"""Debug event building, appending and reading."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path

import pytest

from rss_amplifier.diagnostics.events import (
    EVENT_SCHEMA_VERSION,
    FETCH_ATTEMPT,
    SCHEDULER_STATE,
    DebugEvent,
    JsonlEventLogger,
    build_debug_event,
    read_debug_events,
)
from rss_amplifier.errors import DiagnosticsError


def test_build_debug_event_fills_schema_and_timestamp() -> None:
    event = build_debug_event(
        FETCH_ATTEMPT,
        run_id="fetch-123",
        feed_id="aHR0cHM6",
        payload={"attempt": 1, "ok": False},
        occurred_at=datetime(2026, 3, 1, 12, 0),
    )
    assert event.schema_version == EVENT_SCHEMA_VERSION
    assert event.event_type == "fetch_attempt"
    assert event.run_id == "fetch-123"
    assert event.feed_id == "aHR0cHM6"
    assert event.payload == {"attempt": 1, "ok": False}
    assert event.occurred_at == "2026-03-01T12:00:00+00:00"


def test_build_debug_event_normalizes_blank_feed_id() -> None:
    event = build_debug_event(SCHEDULER_STATE, run_id="scheduler-1", feed_id="  ")
    assert event.feed_id is None
    assert event.payload == {}


@pytest.mark.parametrize(
    ("event_type", "run_id", "message"),
    [
        (" ", "r", "Unknown event_type"),
        ("feed_deleted", "r", "Unknown event_type"),
        (FETCH_ATTEMPT, "  ", "run_id"),
    ],
)
def test_build_debug_event_rejects_bad_identifiers(event_type: str, run_id: str, message: str) -> None:
    with pytest.raises(DiagnosticsError, match=message):
        build_debug_event(event_type, run_id=run_id)


def test_from_dict_rejects_missing_required_fields() -> None:
    with pytest.raises(DiagnosticsError, match="missing required field 'run_id'"):
        DebugEvent.from_dict(
            {
                "schema_version": "v1",
                "event_type": FETCH_ATTEMPT,
                "occurred_at": "2026-03-01T00:00:00+00:00",
                "feed_id": None,
                "payload": {},
            }
        )


def test_from_dict_rejects_other_schema_versions() -> None:
    raw = build_debug_event(SCHEDULER_STATE, run_id="scheduler-1").to_dict()
    raw["schema_version"] = "v2"
    with pytest.raises(DiagnosticsError, match="Unsupported debug event schema 'v2'"):
        DebugEvent.from_dict(raw)


def test_jsonl_event_logger_appends_one_object_per_line(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "debug-events.jsonl"
    logger = JsonlEventLogger(path)
    logger.append(SCHEDULER_STATE, run_id="scheduler-1", payload={"is_running": True})
    logger.append(
        FETCH_ATTEMPT,
        run_id="fetch-1",
        feed_id="abc",
        payload={"ok": True, "at": datetime(2026, 3, 1, tzinfo=timezone.utc)},
    )

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[1])["feed_id"] == "abc"
    assert json.loads(lines[1])["payload"]["at"] == "2026-03-01 00:00:00+00:00"

    events = read_debug_events(path)
    assert [event.event_type for event in events] == [SCHEDULER_STATE, FETCH_ATTEMPT]
    assert events[0].payload == {"is_running": True}


def test_read_debug_events_missing_file_is_empty(tmp_path: Path) -> None:
    assert read_debug_events(tmp_path / "missing.jsonl") == []


def test_read_debug_events_rejects_garbage_lines(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_text("{broken\n", encoding="utf-8")
    with pytest.raises(DiagnosticsError, match="line 1 is not valid JSON"):
        read_debug_events(path)
