"""Scheduling service - composes the stage machine, availability and conflict checks.

Calendar feeds are fetched through the cache and every feed problem degrades
to "no availability data" or "no conflict detected". The only errors raised
to callers are authorization and invalid-input errors at the entry points
that change a task.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional
from pydantic import BaseModel, Field

from src.models.calendar import BookingAssessment, BusyInterval, CalendarDay, DayAvailability
from src.models.task import (
    Actor,
    ActorRole,
    NoShootDate,
    ShootDateRange,
    SingleDayShoot,
    Task,
    normalize_scheduled_shoot_date,
)
from src.services.availability import compute_daily_availability, parse_busy_intervals
from src.services.booking_conflict import assess_booking, decide_conflict_alert
from src.services.ical_cache import ICalCache, InMemoryICalCache
from src.services.ical_fetcher import fetch_ical_text
from src.services.security_codes import today_in_fixed_timezone
from src.services.stage_machine import (
    COMPLETED_STAGE,
    SCHEDULING_STAGE,
    SHOOTING_STAGE,
    build_progress_log_entry,
    current_stage,
    validate_transition,
)
from src.utils.config import SchedulingConfig
from src.utils.errors import AuthorizationError, InvalidShootDateError, StageTransitionError
from src.utils.logging import get_structured_logger, mask_ical_url, mask_user_id, timed

logger = get_structured_logger(__name__)

Fetcher = Callable[[str], Awaitable[str]]

BOOKING_ROLES = frozenset({ActorRole.MANAGER, ActorRole.PHOTOGRAPHER})
PROGRESS_ROLES = frozenset({ActorRole.MANAGER})


class BoardEntry(BaseModel):
    """A task shown on a board day."""
    task: Task
    is_turn: bool = False


class BoardDay(BaseModel):
    """One day of the scheduling board."""
    date: CalendarDay
    label: str
    tasks: list[BoardEntry] = Field(default_factory=list)
    has_turn: bool = False


class AvailabilityBoard(BaseModel):
    """Tasks awaiting a shoot date laid out by the days their property is free."""
    days: list[BoardDay] = Field(default_factory=list)
    tasks_without_ical: list[Task] = Field(default_factory=list)


class BookingOutcome(BaseModel):
    """Task copy after booking, plus the conflict assessment made at booking time."""
    task: Task
    assessment: BookingAssessment


class ConflictAlert(BaseModel):
    """A booked shoot that now overlaps a reservation."""
    task_id: Optional[str] = None
    fingerprint: str
    overlapping_intervals: list[BusyInterval] = Field(default_factory=list)
    scheduled_start: date
    scheduled_end: date


def _normalize_key(value: Any) -> str:
    return ("" if value is None else str(value)).strip().lower()


def resolve_ical_url(task: Task, property_directory: Optional[Iterable[dict]] = None) -> Optional[str]:
    """
    Calendar feed URL for a task.

    The task's own ``ical`` wins; otherwise the unit code or property name is
    matched case-insensitively against the directory's ``unitCode`` and
    ``name`` entries.
    """
    if task.ical:
        return task.ical
    if not property_directory:
        return None

    unit_code = _normalize_key(task.unit_code or task.property_name)
    property_name = _normalize_key(task.property_name)
    if not unit_code and not property_name:
        return None

    wanted = {k for k in (unit_code, property_name) if k}
    for item in property_directory:
        if not isinstance(item, dict):
            continue
        candidates = {_normalize_key(item.get("unitCode")), _normalize_key(item.get("name"))} - {""}
        if candidates & wanted and item.get("ical"):
            return item["ical"]
    return None


def booking_window(shoot_date: Any) -> Optional[tuple[date, date]]:
    """
    Overlap-check window ``[start, end)`` for a booked shoot.

    A range is checked from its first day up to its last day. A one-day
    shoot covers its whole day, so its window ends the next day.
    """
    bounds = normalize_scheduled_shoot_date(shoot_date).bounds()
    if bounds is None:
        return None
    start, end = bounds
    if start == end:
        return start, end + timedelta(days=1)
    return start, end


def is_task_stagnant(
    task: Task,
    now: Optional[datetime] = None,
    threshold_days: Optional[int] = None,
) -> bool:
    """True when an open task has not changed stage within the threshold and was not yet flagged for it."""
    if task.archived or task.stage == COMPLETED_STAGE:
        return False

    last_change = task.stage_updated or task.last_progress_update or task.created_at
    if last_change is None:
        return False

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    threshold = timedelta(days=threshold_days or SchedulingConfig.STAGNANT_THRESHOLD_DAYS)

    notified = task.last_stagnant_notified
    return last_change < now - threshold and (notified is None or notified < last_change)


class SchedulingService:
    """Scheduling flows over a calendar feed cache and fetcher."""

    def __init__(
        self,
        cache: Optional[ICalCache] = None,
        fetcher: Optional[Fetcher] = None,
        turnover_buffer: Optional[timedelta] = None,
        admin_testing_mode: Optional[bool] = None,
    ):
        self.cache = cache or InMemoryICalCache()
        self.fetcher = fetcher or fetch_ical_text
        self.turnover_buffer = turnover_buffer if turnover_buffer is not None else SchedulingConfig.turnover_buffer()
        self.admin_testing_mode = (
            SchedulingConfig.ADMIN_ICAL_TESTING_MODE if admin_testing_mode is None else admin_testing_mode
        )

    async def get_ical_text(self, url: Optional[str]) -> Optional[str]:
        """Raw feed text from cache or a live fetch; None when unavailable."""
        if not url:
            return None

        try:
            cached = await self.cache.get(url)
        except Exception as e:
            logger.warning("Calendar cache read failed", ical=mask_ical_url(url), error=str(e))
            cached = None
        if cached is not None:
            return cached

        if self.admin_testing_mode:
            logger.info("Admin testing mode, live calendar fetch skipped", ical=mask_ical_url(url))
            return None

        try:
            text = await self.fetcher(url)
        except Exception as e:
            logger.warning(
                "Calendar feed unavailable",
                ical=mask_ical_url(url),
                error=str(e),
                error_type=type(e).__name__
            )
            return None

        try:
            await self.cache.set(url, text, SchedulingConfig.ICAL_CACHE_TTL_SECONDS)
        except Exception as e:
            logger.warning("Calendar cache write failed", ical=mask_ical_url(url), error=str(e))
        return text

    async def resolve_availability(
        self,
        task: Task,
        range_start: Any,
        range_end: Any,
        now: Optional[datetime] = None,
        property_directory: Optional[Iterable[dict]] = None,
    ) -> list[DayAvailability]:
        """Day availability for the task's property; empty when no feed is available."""
        url = resolve_ical_url(task, property_directory)
        text = await self.get_ical_text(url)
        if text is None:
            return []
        return compute_daily_availability(
            parse_busy_intervals(text),
            range_start,
            range_end,
            today_in_fixed_timezone(now),
            self.turnover_buffer,
        )

    async def fetch_many_availabilities(
        self,
        urls: list[str],
        range_start: Any,
        range_end: Any,
        now: Optional[datetime] = None,
    ) -> list[list[DayAvailability]]:
        """Availability per feed URL, fetched with bounded concurrency; order matches ``urls``."""
        semaphore = asyncio.Semaphore(max(1, SchedulingConfig.ICAL_FETCH_CONCURRENCY))
        today = today_in_fixed_timezone(now)

        async def resolve_one(url: str) -> list[DayAvailability]:
            async with semaphore:
                text = await self.get_ical_text(url)
            if text is None:
                return []
            return compute_daily_availability(
                parse_busy_intervals(text), range_start, range_end, today, self.turnover_buffer
            )

        return list(await asyncio.gather(*(resolve_one(url) for url in urls)))

    @timed("availability_board")
    async def build_availability_board(
        self,
        tasks: Iterable[Task],
        range_start: Any,
        range_end: Any,
        now: Optional[datetime] = None,
        property_directory: Optional[list[dict]] = None,
    ) -> AvailabilityBoard:
        """
        Lay out tasks awaiting scheduling over the days their property can be shot.

        A task appears on a day that is available or a turn day. Tasks with no
        resolvable feed, or whose feed cannot be fetched, are listed apart.
        """
        today = today_in_fixed_timezone(now)
        candidates = [t for t in tasks if current_stage(t) == SCHEDULING_STAGE]

        skeleton = compute_daily_availability([], range_start, range_end, today)
        board = AvailabilityBoard(
            days=[BoardDay(date=d.date, label=d.label) for d in skeleton]
        )

        for task in candidates:
            url = resolve_ical_url(task, property_directory)
            text = await self.get_ical_text(url)
            if text is None:
                board.tasks_without_ical.append(task)
                continue

            availability = compute_daily_availability(
                parse_busy_intervals(text), range_start, range_end, today, self.turnover_buffer
            )
            for board_day, day in zip(board.days, availability):
                if day.available or day.is_turn:
                    board_day.tasks.append(BoardEntry(task=task, is_turn=day.is_turn))
                    if day.is_turn:
                        board_day.has_turn = True

        return board

    async def book_shoot_date(
        self,
        task: Task,
        start: Any,
        end: Any,
        actor: Actor,
        now: Optional[datetime] = None,
        property_directory: Optional[Iterable[dict]] = None,
    ) -> BookingOutcome:
        """
        Book a shoot range and move the task to Shooting.

        The conflict check is advisory: the booking goes ahead either way and
        the assessment is recorded on the task for later audit.

        Raises:
            AuthorizationError: actor role may not book shoots.
            InvalidShootDateError: start/end are not calendar days.
        """
        if actor.role not in BOOKING_ROLES:
            raise AuthorizationError(f"Role {actor.role.value} may not book shoot dates")

        shoot_date = normalize_scheduled_shoot_date({"start": start, "end": end})
        if isinstance(shoot_date, NoShootDate):
            raise InvalidShootDateError(f"Invalid shoot date range: {start!r} to {end!r}")
        if isinstance(shoot_date, SingleDayShoot):
            shoot_date = ShootDateRange(start=shoot_date.day, end=shoot_date.day)
        if not validate_transition(task, SHOOTING_STAGE):
            raise StageTransitionError(f"{SHOOTING_STAGE} is not a stage for media type {task.media_type!r}")

        now = now or datetime.now(timezone.utc)
        window_start, window_end = booking_window(shoot_date)
        text = await self.get_ical_text(resolve_ical_url(task, property_directory))
        assessment = assess_booking(task.task_id, text, window_start, window_end)

        updated = task.model_copy(update={
            "scheduled_shoot_date": shoot_date,
            "stage": SHOOTING_STAGE,
            "last_progress_update": now,
            "stage_updated": now,
            "scheduled_by_uid": actor.uid,
            "scheduled_over_blocked_at_create": assessment.overlapped,
            "initial_block_key": assessment.fingerprint or task.initial_block_key,
        }).with_log_entry(build_progress_log_entry(SHOOTING_STAGE, actor, now))

        logger.info(
            "Shoot date booked",
            task_id=task.task_id,
            actor=mask_user_id(actor.uid),
            overlapped=assessment.overlapped,
            feed_checked=assessment.feed_checked
        )
        return BookingOutcome(task=updated, assessment=assessment)

    def clear_shoot_date(self, task: Task, actor: Actor, now: Optional[datetime] = None) -> Task:
        """
        Remove the booked shoot and move the task back to Scheduling.

        Raises:
            AuthorizationError: actor role may not book shoots.
        """
        if actor.role not in BOOKING_ROLES:
            raise AuthorizationError(f"Role {actor.role.value} may not clear shoot dates")

        now = now or datetime.now(timezone.utc)
        return task.model_copy(update={
            "scheduled_shoot_date": NoShootDate(),
            "stage": SCHEDULING_STAGE,
            "last_progress_update": now,
            "stage_updated": now,
        }).with_log_entry(build_progress_log_entry(SCHEDULING_STAGE, actor, now))

    def transition_stage(
        self,
        task: Task,
        proposed_stage: str,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Move a task to any valid stage, forward or backward.

        Raises:
            AuthorizationError: actor is not a manager.
            StageTransitionError: stage is not valid for the task's media type.
        """
        if actor.role not in PROGRESS_ROLES:
            raise AuthorizationError(f"Role {actor.role.value} may not change task progress")
        if not validate_transition(task, proposed_stage):
            raise StageTransitionError(
                f"{proposed_stage!r} is not a stage for media type {task.media_type!r}"
            )

        now = now or datetime.now(timezone.utc)
        logger.info(
            "Task stage changed",
            task_id=task.task_id,
            from_stage=current_stage(task),
            to_stage=proposed_stage,
            actor=mask_user_id(actor.uid)
        )
        return task.model_copy(update={
            "stage": proposed_stage,
            "last_progress_update": now,
            "stage_updated": now,
        }).with_log_entry(build_progress_log_entry(proposed_stage, actor, now))

    async def scan_reservation_conflicts(
        self,
        tasks: Iterable[Task],
        now: Optional[datetime] = None,
    ) -> list[ConflictAlert]:
        """Conflict alerts due for booked shoots that reservations now overlap."""
        today = today_in_fixed_timezone(now)
        alerts = []

        for task in tasks:
            if task.archived or current_stage(task) != SHOOTING_STAGE or not task.ical:
                continue
            bounds = task.shoot_date_bounds()
            if bounds is None or bounds[1] < today:
                continue

            try:
                text = await self.get_ical_text(task.ical)
                if text is None:
                    continue
                window_start, window_end = booking_window(task.scheduled_shoot_date)
                assessment = assess_booking(task.task_id, text, window_start, window_end)
                if decide_conflict_alert(task, assessment.fingerprint, assessment.overlapped):
                    alerts.append(ConflictAlert(
                        task_id=task.task_id,
                        fingerprint=assessment.fingerprint,
                        overlapping_intervals=assessment.overlapping_intervals,
                        scheduled_start=bounds[0],
                        scheduled_end=bounds[1],
                    ))
            except Exception as e:
                logger.warning("Reservation conflict check failed for task", task_id=task.task_id, error=str(e))

        logger.info("Reservation conflict scan complete", alerts=len(alerts))
        return alerts
