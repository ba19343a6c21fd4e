"""Cron expression validation and exact next-fire computation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from rss_amplifier.errors import ValidationError

DEFAULT_TIMEZONE = "UTC"

_MONTH_NAMES = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
# Leap-year lengths; a date valid in any year is valid.
_MONTH_LENGTHS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    minimum: int
    maximum: int
    names: tuple[str, ...] = ()
    names_offset: int = 0


_FIELDS = (
    _FieldSpec("minute", 0, 59),
    _FieldSpec("hour", 0, 23),
    _FieldSpec("day of month", 1, 31),
    _FieldSpec("month", 1, 12, _MONTH_NAMES, names_offset=1),
    _FieldSpec("day of week", 0, 7, _WEEKDAY_NAMES),
)


@dataclass(frozen=True)
class CronValidation:
    valid: bool
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedCron:
    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool
    weekday_restricted: bool


def validate_cron_expression(expression: object) -> CronValidation:
    """Check a 5-field cron expression and collect every problem found."""
    if not isinstance(expression, str) or not expression.strip():
        return CronValidation(valid=False, errors=("Cron expression is required and must be a string",))

    parsed, errors = _parse(expression)
    if errors:
        return CronValidation(valid=False, errors=tuple(errors))
    assert parsed is not None
    if _next_fire(_trigger_for(parsed, DEFAULT_TIMEZONE), datetime.now(timezone.utc)) is None:
        return CronValidation(
            valid=False,
            errors=(f"Cron expression '{expression}' never matches a calendar date",),
        )
    return CronValidation(valid=True)


def parse_cron_expression(expression: str) -> ParsedCron:
    """Parse a cron expression or raise ValidationError listing the reasons."""
    if not isinstance(expression, str) or not expression.strip():
        raise ValidationError(
            "Invalid cron expression: Cron expression is required and must be a string",
            ("Cron expression is required and must be a string",),
        )
    parsed, errors = _parse(expression)
    if errors:
        raise ValidationError(f"Invalid cron expression: {', '.join(errors)}", tuple(errors))
    assert parsed is not None
    return parsed


def build_trigger(expression: str, tz: str = DEFAULT_TIMEZONE) -> BaseTrigger:
    """Return an APScheduler trigger with standard crontab semantics."""
    return _trigger_for(parse_cron_expression(expression), tz)


def next_run_time(
    expression: str,
    now: datetime | None = None,
    *,
    tz: str = DEFAULT_TIMEZONE,
) -> datetime:
    """Return the first fire time strictly after ``now`` as an aware UTC datetime."""
    current = _normalize_datetime(now or datetime.now(timezone.utc))
    fire_time = _next_fire(build_trigger(expression, tz), current)
    if fire_time is None:
        raise ValidationError(
            f"Cron expression '{expression}' never matches a calendar date",
            (f"Cron expression '{expression}' never matches a calendar date",),
        )
    return fire_time


def _next_fire(trigger: BaseTrigger, current: datetime) -> datetime | None:
    # Triggers round up to whole seconds, so start one second past the current one.
    start = current.replace(microsecond=0) + timedelta(seconds=1)
    fire_time = trigger.get_next_fire_time(None, start)
    if fire_time is None:
        return None
    return fire_time.astimezone(timezone.utc)


def _trigger_for(parsed: ParsedCron, tz: str) -> BaseTrigger:
    minute = _join(parsed.minutes)
    hour = _join(parsed.hours)
    month = _join(parsed.months)
    # APScheduler numbers weekdays from Monday=0.
    day_of_week = _join({(value + 6) % 7 for value in parsed.weekdays})
    day = _join(parsed.days)

    if parsed.day_restricted and parsed.weekday_restricted:
        # Crontab matches either field when both are restricted.
        return OrTrigger(
            [
                CronTrigger(minute=minute, hour=hour, day=day, month=month, timezone=tz),
                CronTrigger(minute=minute, hour=hour, month=month, day_of_week=day_of_week, timezone=tz),
            ]
        )
    if parsed.weekday_restricted:
        return CronTrigger(minute=minute, hour=hour, month=month, day_of_week=day_of_week, timezone=tz)
    if parsed.day_restricted:
        return CronTrigger(minute=minute, hour=hour, day=day, month=month, timezone=tz)
    return CronTrigger(minute=minute, hour=hour, month=month, timezone=tz)


def _parse(expression: str) -> tuple[ParsedCron | None, list[str]]:
    fields = expression.split()
    if len(fields) != len(_FIELDS):
        return None, [f"Expected 5 fields (minute hour day-of-month month day-of-week), got {len(fields)}"]

    errors: list[str] = []
    values: list[frozenset[int]] = []
    for raw, spec in zip(fields, _FIELDS):
        parsed_values, field_errors = _parse_field(raw, spec)
        errors.extend(field_errors)
        values.append(parsed_values)
    if errors:
        return None, errors

    day_restricted = not fields[2].startswith("*")
    weekday_restricted = not fields[4].startswith("*")
    if day_restricted and not weekday_restricted:
        longest_month = max(_MONTH_LENGTHS[month - 1] for month in values[3])
        if min(values[2]) > longest_month:
            return None, [f"day of month field '{fields[2]}' never occurs in month field '{fields[3]}'"]

    weekdays = frozenset(0 if value == 7 else value for value in values[4])
    return (
        ParsedCron(
            expression=" ".join(fields),
            minutes=values[0],
            hours=values[1],
            days=values[2],
            months=values[3],
            weekdays=weekdays,
            day_restricted=day_restricted,
            weekday_restricted=weekday_restricted,
        ),
        [],
    )


def _parse_field(raw: str, spec: _FieldSpec) -> tuple[frozenset[int], list[str]]:
    errors: list[str] = []
    values: set[int] = set()
    for part in raw.split(","):
        if not part:
            errors.append(f"{spec.name} field '{raw}' contains an empty list entry")
            continue

        base, _, raw_step = part.partition("/")
        step = 1
        if raw_step:
            if not _is_number(raw_step) or int(raw_step) == 0:
                errors.append(f"{spec.name} field step '{raw_step}' must be a positive integer")
                continue
            step = int(raw_step)
        elif part.endswith("/"):
            errors.append(f"{spec.name} field '{part}' is missing a step value")
            continue

        if base == "*":
            start, end = spec.minimum, spec.maximum
        elif "-" in base:
            raw_start, _, raw_end = base.partition("-")
            start_value = _parse_value(raw_start, spec, errors)
            end_value = _parse_value(raw_end, spec, errors)
            if start_value is None or end_value is None:
                continue
            if start_value > end_value:
                errors.append(f"{spec.name} field range '{base}' starts after it ends")
                continue
            start, end = start_value, end_value
        else:
            single = _parse_value(base, spec, errors)
            if single is None:
                continue
            start = single
            end = spec.maximum if raw_step else single

        values.update(range(start, end + 1, step))
    return frozenset(values), errors


def _parse_value(raw: str, spec: _FieldSpec, errors: list[str]) -> int | None:
    lowered = raw.strip().lower()
    if lowered in spec.names:
        return spec.names.index(lowered) + spec.names_offset
    if not _is_number(lowered):
        errors.append(f"{spec.name} field value '{raw}' is not a number")
        return None
    value = int(lowered)
    if value < spec.minimum or value > spec.maximum:
        errors.append(
            f"{spec.name} field value {value} is out of range {spec.minimum}-{spec.maximum}"
        )
        return None
    return value


def _is_number(raw: str) -> bool:
    # str.isdigit also accepts non-ASCII digits such as superscripts.
    return raw.isascii() and raw.isdigit()


def _join(values: set[int] | frozenset[int]) -> str:
    return ",".join(str(value) for value in sorted(values))


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
