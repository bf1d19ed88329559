"""Five-field schedule expressions: parsing, validation and next-occurrence search.

Fields, in order: minute (0-59), hour (0-23), day of month (1-31),
month (1-12), day of week (0-6, 0 = Sunday). Each field is a comma list of
``*``, ``N``, ``*/S``, ``A-B`` or ``A-B/S`` elements.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from cronpush.config import settings
from cronpush.errors import ScheduleError, ValidationError

# Search horizon for next_occurrence; an expression that has not matched
# within this many years never will.
LOOKAHEAD_YEARS = 5

_ELEMENT_RE = re.compile(r"^(?:(\*)|(\d+)(?:-(\d+))?)(?:/(\d+))?$")

# Longest possible length of each month (February counts leap years).
_MONTH_MAX_DAYS = {
    1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30,
    7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31,
}

_WEEKDAY_NAMES = (
    "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday",
)
_MONTH_NAMES = (
    "", "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_PRESETS = {
    "* * * * *": "Every minute",
    "0 * * * *": "Every hour",
    "0 0 * * *": "Daily at midnight",
    "0 0 * * 0": "Weekly on Sunday",
    "0 0 1 * *": "Monthly on 1st day",
    "0 2 * * 0": "Weekly cleanup (Sunday 2:00 AM)",
}


@dataclass(frozen=True)
class _Field:
    name: str
    low: int
    high: int


_FIELDS = (
    _Field("minute", 0, 59),
    _Field("hour", 0, 23),
    _Field("day of month", 1, 31),
    _Field("month", 1, 12),
    _Field("day of week", 0, 6),
)


@dataclass(frozen=True)
class ScheduleExpression:
    """A validated five-field expression with each field resolved to its value set."""

    source: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool
    weekday_restricted: bool

    def __str__(self) -> str:
        return self.source

    def matches_day(self, moment: datetime) -> bool:
        """Day-of-month and day-of-week are OR-ed only when both are restricted."""
        day_ok = moment.day in self.days
        weekday_ok = (moment.weekday() + 1) % 7 in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and self.matches_day(moment)
        )


def _parse_field(text: str, field: _Field) -> frozenset[int]:
    values: set[int] = set()
    for element in text.split(","):
        if not element:
            msg = f"Empty list element in {field.name} field '{text}'"
            raise ValidationError(msg)
        match = _ELEMENT_RE.match(element)
        if match is None:
            msg = f"Invalid {field.name} field '{text}'"
            raise ValidationError(msg)

        star, start, end, step = match.groups()
        if star:
            low, high = field.low, field.high
        else:
            low = int(start)
            high = int(end) if end is not None else low
            for value in (low, high):
                if not field.low <= value <= field.high:
                    msg = (
                        f"{field.name.capitalize()} value {value} is out of range "
                        f"({field.low}-{field.high})"
                    )
                    raise ValidationError(msg)
            if low > high:
                msg = f"Invalid range {low}-{high} in {field.name} field"
                raise ValidationError(msg)
            if step is not None and end is None:
                msg = f"Step in {field.name} field '{element}' needs '*' or a range"
                raise ValidationError(msg)

        stride = 1
        if step is not None:
            stride = int(step)
            if stride < 1:
                msg = f"Step must be at least 1 in {field.name} field '{element}'"
                raise ValidationError(msg)
        values.update(range(low, high + 1, stride))
    return frozenset(values)


def parse(expression: str) -> ScheduleExpression:
    """Parse and validate *expression*. Raises ValidationError with the first problem."""
    parts = expression.split()
    if len(parts) != 5:
        msg = (
            "Cron expression must have exactly 5 parts "
            f"(minute hour day month weekday), got {len(parts)}"
        )
        raise ValidationError(msg)

    minutes, hours, days, months, weekdays = (
        _parse_field(text, field) for text, field in zip(parts, _FIELDS, strict=True)
    )
    day_restricted = not parts[2].startswith("*")
    weekday_restricted = not parts[4].startswith("*")

    if not weekday_restricted and not any(
        day <= _MONTH_MAX_DAYS[month] for month in months for day in days
    ):
        msg = f"Day of month and month in '{expression}' never occur together"
        raise ValidationError(msg)

    return ScheduleExpression(
        source=" ".join(parts),
        minutes=minutes,
        hours=hours,
        days=days,
        months=months,
        weekdays=weekdays,
        day_restricted=day_restricted,
        weekday_restricted=weekday_restricted,
    )


def validate(expression: str) -> None:
    """Raise ValidationError if *expression* is not a usable schedule."""
    parse(expression)


def validation_error(expression: str) -> str | None:
    """Return the reason *expression* is invalid, or None if it is valid."""
    try:
        parse(expression)
    except ValidationError as exc:
        return exc.reason
    return None


def _zone(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        return ZoneInfo(settings.scheduler_timezone)
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def next_occurrence(
    expression: str | ScheduleExpression,
    after: datetime,
    tz: str | tzinfo | None = None,
) -> datetime:
    """Return the first matching minute strictly after *after*, as a UTC datetime.

    Matching is done on wall-clock fields in *tz* (default: the configured
    scheduler timezone). Naive *after* values are taken as UTC.
    """
    expr = expression if isinstance(expression, ScheduleExpression) else parse(expression)
    zone = _zone(tz)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)

    local = after.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0)
    local += timedelta(minutes=1)
    limit = local + timedelta(days=366 * LOOKAHEAD_YEARS)

    while local <= limit:
        if local.month not in expr.months:
            first = local.replace(day=1, hour=0, minute=0)
            local = (first + timedelta(days=32)).replace(day=1)
            continue
        if not expr.matches_day(local):
            local = local.replace(hour=0, minute=0) + timedelta(days=1)
            continue
        if local.hour not in expr.hours:
            local = local.replace(minute=0) + timedelta(hours=1)
            continue
        if local.minute not in expr.minutes:
            local += timedelta(minutes=1)
            continue

        candidate = local.replace(tzinfo=zone).astimezone(UTC)
        if candidate > after:
            return candidate
        # Wall clock repeated an hour (DST fall-back); keep scanning.
        local += timedelta(minutes=1)

    msg = f"Schedule '{expr.source}' has no occurrence in the next {LOOKAHEAD_YEARS} years"
    raise ScheduleError(msg)


def pinned_expression(instant: datetime, tz: str | tzinfo | None = None) -> str:
    """Build the one-shot expression that matches *instant*'s minute once a year."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    local = instant.astimezone(_zone(tz))
    return f"{local.minute} {local.hour} {local.day} {local.month} *"


def describe(expression: str) -> str:
    """Return a short human description of common schedule shapes."""
    parts = expression.split()
    source = " ".join(parts)
    if source in _PRESETS:
        return _PRESETS[source]
    if validation_error(source) is not None:
        return "Invalid schedule"

    minute, hour, day, month, weekday = parts
    if minute.startswith("*/") and parts[1:] == ["*", "*", "*", "*"]:
        return f"Every {minute[2:]} minutes"
    if minute == "0" and hour.startswith("*/") and parts[2:] == ["*", "*", "*"]:
        return f"Every {hour[2:]} hours"
    if not (minute.isdigit() and hour.isdigit()):
        return "Custom schedule"

    at = f"{int(hour):02d}:{int(minute):02d}"
    if (day, month, weekday) == ("*", "*", "*"):
        return f"Daily at {at}"
    if (day, month) == ("*", "*") and weekday.isdigit():
        return f"Weekly on {_WEEKDAY_NAMES[int(weekday)]} at {at}"
    if day.isdigit() and (month, weekday) == ("*", "*"):
        return f"Monthly on day {day} at {at}"
    if day.isdigit() and month.isdigit() and weekday == "*":
        return f"On {_MONTH_NAMES[int(month)]} {day} at {at}"
    return "Custom schedule"


def upcoming(
    expression: str | ScheduleExpression,
    after: datetime,
    count: int = 5,
    tz: str | tzinfo | None = None,
) -> list[datetime]:
    """Return the next *count* occurrences after *after*."""
    expr = expression if isinstance(expression, ScheduleExpression) else parse(expression)
    runs: list[datetime] = []
    moment = after
    for _ in range(count):
        moment = next_occurrence(expr, moment, tz)
        runs.append(moment)
    return runs
