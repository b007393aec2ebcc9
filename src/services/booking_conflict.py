"""Booking conflict detector - overlap of a proposed shoot with busy intervals.

Conflict checking is advisory. When the calendar feed is unavailable the
booking is reported as conflict-free (fail-open) so scheduling keeps working
while the calendar integration is degraded. That can hide a real conflict;
the assessment records ``feed_checked=False`` so callers can tell the cases
apart.
"""

import hashlib
from typing import Any, Iterable, Optional

from src.models.calendar import BookingAssessment, BusyInterval, OverlapResult
from src.models.task import Task
from src.services.availability import parse_busy_intervals
from src.utils.dates import day_start
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def detect_overlap(
    intervals: Iterable[BusyInterval],
    proposed_start: Any,
    proposed_end: Any,
) -> OverlapResult:
    """
    Check a proposed range against busy intervals with half-open semantics.

    Dates are taken as midnight, so a booking ending on the day a stay starts
    does not overlap it.
    """
    start = day_start(proposed_start)
    end = day_start(proposed_end)
    if start is None or end is None:
        return OverlapResult()

    overlapping = [iv for iv in intervals if iv.start < end and start < iv.end]
    return OverlapResult(overlapped=bool(overlapping), overlapping_intervals=overlapping)


def _ymd(value: Any) -> str:
    dt = day_start(value)
    return dt.date().isoformat() if dt else ""


def compute_block_fingerprint(
    task_id: Optional[str],
    proposed_start: Any,
    proposed_end: Any,
    overlapping_intervals: Iterable[BusyInterval],
) -> str:
    """
    SHA-256 hex digest of a booking's conflict state.

    Overlap pairs are sorted before joining so the same conflict always hashes
    the same regardless of feed order.
    """
    pairs = sorted(
        f"{iv.start_day.isoformat()}_{iv.end_day.isoformat()}"
        for iv in overlapping_intervals
    )
    base = "|".join([
        str(task_id or ""),
        _ymd(proposed_start),
        _ymd(proposed_end),
        *pairs,
    ])
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def assess_booking(
    task_id: Optional[str],
    ical_text: Optional[str],
    proposed_start: Any,
    proposed_end: Any,
) -> BookingAssessment:
    """Assess a booking against feed text; ``None`` feed text means the check could not run."""
    if ical_text is None:
        logger.info("Calendar feed unavailable, booking not checked for conflicts", task_id=task_id)
        return BookingAssessment()

    intervals = parse_busy_intervals(ical_text)
    result = detect_overlap(intervals, proposed_start, proposed_end)
    fingerprint = compute_block_fingerprint(
        task_id, proposed_start, proposed_end, result.overlapping_intervals
    )

    if result.overlapped:
        logger.info(
            "Booking overlaps busy intervals",
            task_id=task_id,
            overlap_count=len(result.overlapping_intervals)
        )

    return BookingAssessment(
        overlapped=result.overlapped,
        overlapping_intervals=result.overlapping_intervals,
        fingerprint=fingerprint,
        feed_checked=True,
    )


def decide_conflict_alert(task: Task, fingerprint: Optional[str], overlapped: bool) -> bool:
    """
    Decide whether a reservation conflict alert is due for a task.

    An alert is due for a new conflict state: one not alerted on before, and,
    for bookings knowingly made over a blocked range, one that differs from
    the state at booking time.
    """
    if task.block_alert_opt_out or not overlapped or not fingerprint:
        return False

    new_since_last = task.last_block_alert_key is None or fingerprint != task.last_block_alert_key
    new_since_initial = task.initial_block_key is None or fingerprint != task.initial_block_key

    return new_since_last and (not task.scheduled_over_blocked_at_create or new_since_initial)
