"""Availability resolver - busy intervals from a calendar feed and day-level availability.

Feeds are scanned for VEVENT blocks and each block is parsed on its own, so
one broken event never hides the rest of the calendar. Day projection is a
plain days x intervals scan; a single property carries a handful of stays and
windows are at most a year, so no interval index is kept.
"""

import calendar
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional

from icalendar import Event

from src.models.calendar import BusyInterval, DayAvailability, OpenWindow
from src.utils.config import SchedulingConfig
from src.utils.dates import format_day_label, parse_ymd
from src.utils.errors import InvalidGapLengthError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

_VEVENT_BLOCK = re.compile(r"BEGIN:VEVENT.*?END:VEVENT", re.DOTALL)


def parse_busy_intervals(raw_calendar_text: Any) -> list[BusyInterval]:
    """
    Parse busy intervals from raw calendar feed text.

    Events need both DTSTART and DTEND. All-day values become midnight;
    timestamped values keep the wall-clock time written in the feed. Blocks
    that cannot be parsed are skipped. Never raises.
    """
    if not isinstance(raw_calendar_text, str) or not raw_calendar_text:
        return []

    intervals = []
    skipped = 0
    for match in _VEVENT_BLOCK.finditer(raw_calendar_text):
        interval = _parse_event_block(match.group(0))
        if interval is None:
            skipped += 1
            continue
        intervals.append(interval)

    if skipped:
        logger.debug(
            "Skipped unusable calendar events",
            skipped_events=skipped,
            parsed_events=len(intervals)
        )
    return intervals


def _parse_event_block(block: str) -> Optional[BusyInterval]:
    try:
        event = Event.from_ical(block)
        dtstart = event.get("DTSTART")
        dtend = event.get("DTEND")
        if dtstart is None or dtend is None:
            return None
        # Unparseable values surface when .dt is read, not at from_ical
        start = _wall_clock(getattr(dtstart, "dt", None))
        end = _wall_clock(getattr(dtend, "dt", None))
    except Exception as e:
        logger.debug("Calendar event block could not be parsed", error=str(e))
        return None

    if start is None or end is None:
        return None
    return BusyInterval(start=start, end=end)


def _wall_clock(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return None


def _is_back_to_back(
    day: date,
    intervals: list[BusyInterval],
    turnover_buffer: Optional[timedelta],
) -> bool:
    checkouts = [(i, iv.end) for i, iv in enumerate(intervals) if iv.end_day == day]
    checkins = [(i, iv.start) for i, iv in enumerate(intervals) if iv.start_day == day]
    pairs = [
        (checkout, checkin)
        for out_index, checkout in checkouts
        for in_index, checkin in checkins
        if out_index != in_index
    ]
    if not pairs:
        return False
    if turnover_buffer is None:
        return True
    return any(checkin - checkout < turnover_buffer for checkout, checkin in pairs)


def compute_daily_availability(
    intervals: Iterable[BusyInterval],
    range_start: Any,
    range_end: Any,
    today: Any,
    turnover_buffer: Optional[timedelta] = None,
) -> list[DayAvailability]:
    """
    Project busy intervals onto days in ``[max(range_start, today), range_end]``.

    A day is unavailable when a stay covers its midnight. ``is_turn`` marks
    days on which a stay starts. A day on which one stay checks out and another
    checks in is forced unavailable and marked as a turn; with ``turnover_buffer``
    set, only when the checkout-to-checkin gap is shorter than the buffer.
    """
    start = parse_ymd(range_start)
    end = parse_ymd(range_end)
    current = parse_ymd(today)
    if start is None or end is None or current is None:
        return []

    busy = list(intervals)
    start_days = {iv.start_day for iv in busy}

    days = []
    day = max(start, current)
    while day <= end:
        midnight = datetime.combine(day, time.min)
        covered = any(iv.start <= midnight < iv.end for iv in busy)
        is_turn = day in start_days
        available = not covered

        if _is_back_to_back(day, busy, turnover_buffer):
            available = False
            is_turn = True

        days.append(DayAvailability(
            date=day,
            label=format_day_label(day),
            available=available,
            is_turn=is_turn,
        ))
        day += timedelta(days=1)

    return days


def add_months(day: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def find_open_windows(
    intervals: Iterable[BusyInterval],
    today: Any,
    min_days: int = 2,
    horizon_end: Any = None,
) -> list[OpenWindow]:
    """
    Find runs of at least ``min_days`` free days between today and the horizon.

    Intervals are swept in start order; the horizon defaults to
    ``GAP_SEARCH_HORIZON_MONTHS`` months after today.
    """
    if not isinstance(min_days, int) or min_days < 1:
        raise InvalidGapLengthError(f"Minimum gap must be at least 1 day, got {min_days!r}")

    current = parse_ymd(today)
    if current is None:
        return []
    horizon_day = parse_ymd(horizon_end) or add_months(current, SchedulingConfig.GAP_SEARCH_HORIZON_MONTHS)

    pointer = datetime.combine(current, time.min)
    horizon = datetime.combine(horizon_day, time.min)

    windows = []
    ordered: list[Optional[BusyInterval]] = sorted(intervals, key=lambda iv: iv.start)
    for interval in ordered + [None]:
        if pointer >= horizon:
            break
        next_start = horizon if interval is None else min(interval.start, horizon)
        if pointer < next_start:
            free_days = (next_start - pointer).days
            if free_days >= min_days:
                windows.append(OpenWindow(
                    start=pointer.date(),
                    end=(next_start - timedelta(days=1)).date(),
                    days=free_days,
                ))
        if interval is not None and interval.end > pointer:
            pointer = interval.end

    return windows
