"""Date and timestamp normalization for values crossing the document boundary."""

import re
from datetime import date, datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

YMD_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_ymd(value: Any) -> Optional[date]:
    """Parse a strict YYYY-MM-DD string into a date, or None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not YMD_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Normalize an instant to an aware UTC datetime.

    Accepts ISO-8601 strings (a trailing ``Z`` is allowed), ``datetime`` and
    ``date`` objects, epoch milliseconds, and document-database native
    timestamps exposing ``to_datetime()``, ``ToDatetime()`` or ``timestamp()``.
    Naive values are taken as UTC. Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif hasattr(value, "to_datetime"):
        dt = value.to_datetime()
    elif hasattr(value, "ToDatetime"):
        dt = value.ToDatetime()
    elif hasattr(value, "timestamp"):
        try:
            return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    else:
        return None

    if not isinstance(dt, datetime):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_calendar_day(value: Any, tz: ZoneInfo) -> Optional[date]:
    """
    Reduce a calendar-day string or an instant to a calendar day.

    Strict YYYY-MM-DD strings are taken as-is; instants are converted to ``tz``
    before the day is read off.
    """
    day = parse_ymd(value) if isinstance(value, str) else None
    if day is not None:
        return day
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    dt = to_datetime(value)
    if dt is None:
        return None
    return dt.astimezone(tz).date()


def day_start(value: Any) -> Optional[datetime]:
    """Promote a date to a naive midnight datetime; naive datetimes pass through."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    day = parse_ymd(value)
    if day is not None:
        return datetime.combine(day, time.min)
    return None


def format_day_label(day: date) -> str:
    """Format a day as ``Tuesday, Jun 10``."""
    return f"{day.strftime('%A')}, {day.strftime('%b')} {day.day}"
