from __future__ import annotations

import re
from datetime import date, datetime, time

from .errors import ValidationError

_DATE_RE = re.compile(r"^\s*(?P<date>\d{4}[/-]\d{1,2}[/-]\d{1,2})\s*$")
_TIME_RE = re.compile(r"^\s*(?P<hour>[01]?\d|2[0-3]):(?P<minute>[0-5]\d)\s*$")

LAST_START_HOUR = 23


def parse_date(value: date | str | None) -> date:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Please select a date.")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    match = _DATE_RE.match(str(value))
    if not match:
        raise ValidationError("Date must be in YYYY-MM-DD format.")
    normalized = match.group("date").replace("/", "-")
    try:
        return datetime.strptime(normalized, "%Y-%m-%d").date()
    except ValueError as error:
        raise ValidationError("Date must be in YYYY-MM-DD format.") from error


def parse_time_of_day(value: time | str | None) -> time:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Please select a start and end time.")
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    match = _TIME_RE.match(str(value))
    if not match:
        raise ValidationError("Time must be in HH:MM format.")
    return time(int(match.group("hour")), int(match.group("minute")))


def format_time_of_day(value: time | datetime) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def compose_interval(
    day: date | str | None,
    start_time: time | str | None,
    end_time: time | str | None,
) -> tuple[datetime, datetime]:
    """Combine one calendar date with two times of day into ``(start, end)``.

    Both instants share the date, so an end at or before the start (which is
    also how an overnight booking would look) is rejected here.
    """
    target_date = parse_date(day)
    if _is_blank(start_time) or _is_blank(end_time):
        raise ValidationError("Please select a start and end time.")

    start = datetime.combine(target_date, parse_time_of_day(start_time))
    end = datetime.combine(target_date, parse_time_of_day(end_time))
    if start >= end:
        raise ValidationError("End time must be after start time.")
    return start, end


def suggest_end_time(start_time: str, current_end: str | None = None) -> str:
    """Propose an end time one hour after ``start_time`` when the current end is unusable.

    The suggestion never crosses midnight: starts from 23:00 on are capped at 23:MM.
    """
    start = parse_time_of_day(start_time)
    if current_end and current_end.strip():
        end = parse_time_of_day(current_end)
        if end > start:
            return format_time_of_day(end)

    hour = min(start.hour + 1, LAST_START_HOUR)
    return format_time_of_day(time(hour, start.minute))


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
