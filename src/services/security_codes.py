"""Security code activation - which property access codes are active on a day.

Start dates are inclusive and end dates exclusive. "Today" is always the
calendar day in the fixed business timezone, never UTC or the caller's local
time, so codes switch on and off at the same moment for all staff. Missing or
malformed dates leave that side of the window unbounded.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from src.models.security_code import SecurityCodeEntry
from src.utils.config import SchedulingConfig
from src.utils.dates import YMD_PATTERN

UNKNOWN_CODE_TYPE = "Unknown"


def today_in_fixed_timezone(now: Optional[datetime] = None) -> date:
    """Calendar day of ``now`` in the fixed timezone; naive values are taken as UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(SchedulingConfig.timezone()).date()


def normalize_ymd(value: Any) -> str:
    """Return ``value`` as a strict YYYY-MM-DD string, or empty string."""
    text = ("" if value is None else str(value)).strip()
    return text if YMD_PATTERN.match(text) else ""


def _reference_ymd(reference_day: Union[date, str, None], now: Optional[datetime]) -> str:
    if isinstance(reference_day, datetime):
        return today_in_fixed_timezone(reference_day).isoformat()
    if isinstance(reference_day, date):
        return reference_day.isoformat()
    ymd = normalize_ymd(reference_day)
    return ymd or today_in_fixed_timezone(now).isoformat()


def _as_entry(code: Any) -> SecurityCodeEntry:
    if isinstance(code, SecurityCodeEntry):
        return code
    return SecurityCodeEntry.model_validate(code if isinstance(code, dict) else {})


def is_active_on(
    code_entry: Any,
    reference_day: Union[date, str, None] = None,
    now: Optional[datetime] = None,
) -> bool:
    """True when ``reference_day`` (default: today) falls in ``[start_date, end_date)``."""
    entry = _as_entry(code_entry)
    today = _reference_ymd(reference_day, now)
    start = normalize_ymd(entry.start_date)
    end = normalize_ymd(entry.end_date)
    # Strict YYYY-MM-DD strings order the same as the dates they spell
    return (not start or start <= today) and (not end or today < end)


def filter_active(
    codes: Any,
    reference_day: Union[date, str, None] = None,
    now: Optional[datetime] = None,
) -> list:
    """Keep active codes in input order, without deduplication."""
    if not isinstance(codes, list):
        return []
    return [c for c in codes if is_active_on(c, reference_day, now)]


def group_by_type(codes: Any) -> dict[str, list]:
    """Group codes by type, keeping every entry; blank types go under ``Unknown``."""
    grouped: dict[str, list] = {}
    if not isinstance(codes, list):
        return grouped
    for code in codes:
        key = _as_entry(code).code_type.strip() or UNKNOWN_CODE_TYPE
        grouped.setdefault(key, []).append(code)
    return grouped


def group_active_by_type(
    codes: Any,
    reference_day: Union[date, str, None] = None,
    now: Optional[datetime] = None,
) -> dict[str, list]:
    return group_by_type(filter_active(codes, reference_day, now))
