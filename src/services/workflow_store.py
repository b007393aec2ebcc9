"""Task document persistence for scheduling flows."""

from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import ValidationError

from src.models.task import NoShootDate, ShootDateRange, SingleDayShoot, Task
from src.services import supabase_client
from src.services.scheduling import (
    AvailabilityBoard,
    BookingOutcome,
    ConflictAlert,
    SchedulingService,
    is_task_stagnant,
)
from src.services.stage_machine import SCHEDULING_STAGE, SHOOTING_STAGE, migrate_legacy_stage
from src.utils.errors import TaskStoreError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def serialize_shoot_date(shoot_date: Any) -> Any:
    """Stored form of a scheduled shoot date: null, a YYYY-MM-DD day, or a start/end mapping."""
    if isinstance(shoot_date, ShootDateRange):
        return {"start": shoot_date.start.isoformat(), "end": shoot_date.end.isoformat()}
    if isinstance(shoot_date, SingleDayShoot):
        return shoot_date.day.isoformat()
    return None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_task(document: dict) -> Task:
    legacy = migrate_legacy_stage(document)
    if legacy:
        document = {**document, "stage": legacy}
    return Task.model_validate(document)


def _to_tasks(documents: list) -> list[Task]:
    tasks = []
    for document in documents:
        try:
            tasks.append(_to_task(document))
        except ValidationError as e:
            document_id = document.get("id") if isinstance(document, dict) else None
            logger.warning("Skipping unreadable task document", task_id=document_id, error=str(e))
    return tasks


async def load_task(task_id: str) -> Optional[Task]:
    """
    Load and normalize one task document.

    Documents still carrying a legacy progress value get their stage name
    derived from it.
    """
    document = await supabase_client.get_task(task_id)
    if document is None:
        return None
    try:
        return _to_task(document)
    except ValidationError as e:
        raise TaskStoreError(f"Task {task_id} document is unreadable: {e}") from e


async def _write_task_changes(task: Task, updates: dict) -> None:
    if not task.task_id:
        raise TaskStoreError("Task has no ID")
    await supabase_client.update_task(task.task_id, updates)
    if task.log:
        await supabase_client.append_task_log(
            task.task_id, task.log[-1].model_dump(by_alias=True, mode="json")
        )


async def save_booking(outcome: BookingOutcome) -> None:
    """Persist a booked shoot and its latest log entry."""
    task = outcome.task
    updates = {
        "scheduledShootDate": serialize_shoot_date(task.scheduled_shoot_date),
        "stage": task.stage,
        "scheduledByUid": task.scheduled_by_uid,
        "scheduledOverBlockedAtCreate": task.scheduled_over_blocked_at_create,
        "initialBlockKey": task.initial_block_key,
        "lastProgressUpdate": _iso(task.last_progress_update),
        "stageUpdated": _iso(task.stage_updated),
    }
    await _write_task_changes(task, updates)
    logger.info("Booking saved", task_id=task.task_id, overlapped=outcome.assessment.overlapped)


async def save_stage_change(task: Task) -> None:
    """Persist a stage change, including a cleared shoot date, and its latest log entry."""
    updates = {
        "stage": task.stage,
        "lastProgressUpdate": _iso(task.last_progress_update),
        "stageUpdated": _iso(task.stage_updated),
    }
    if isinstance(task.scheduled_shoot_date, NoShootDate):
        updates["scheduledShootDate"] = None
    await _write_task_changes(task, updates)
    logger.info("Stage change saved", task_id=task.task_id, stage=task.stage)


async def record_conflict_alert(alert: ConflictAlert, now: Optional[datetime] = None) -> None:
    """Remember the alerted fingerprint so the same conflict is not alerted again."""
    if not alert.task_id:
        return
    now = now or datetime.now(timezone.utc)
    await supabase_client.update_task(alert.task_id, {
        "lastBlockAlertKey": alert.fingerprint,
        "lastBlockAlertAt": now.isoformat(),
    })


async def run_reservation_conflict_scan(
    service: SchedulingService,
    now: Optional[datetime] = None,
) -> list[ConflictAlert]:
    """
    Scan every booked shoot for new reservation conflicts.

    Alerts are recorded one by one; a failed write is logged and the
    remaining alerts are still recorded.
    """
    with log_timing("reservation_conflict_scan", logger):
        documents = await supabase_client.get_tasks_by_stage(SHOOTING_STAGE)
        tasks = _to_tasks(documents)
        alerts = await service.scan_reservation_conflicts(tasks, now)

        for alert in alerts:
            try:
                await record_conflict_alert(alert, now)
            except TaskStoreError as e:
                logger.error("Failed to record conflict alert", task_id=alert.task_id, error=str(e))

    return alerts


async def load_availability_board(
    service: SchedulingService,
    range_start: Any,
    range_end: Any,
    now: Optional[datetime] = None,
) -> AvailabilityBoard:
    """Build the scheduling board from stored tasks, resolving feeds through the property directory."""
    documents = await supabase_client.get_tasks_by_stage(SCHEDULING_STAGE)
    directory = await supabase_client.get_property_directory()
    tasks = _to_tasks(documents)
    return await service.build_availability_board(tasks, range_start, range_end, now, directory)


async def run_stagnant_task_scan(
    now: Optional[datetime] = None,
    threshold_days: Optional[int] = None,
) -> list[Task]:
    """
    Flag open tasks whose stage has not changed within the threshold.

    Each flagged task gets ``lastStagnantNotified`` so it is reported once
    per stage change.
    """
    now = now or datetime.now(timezone.utc)
    documents = await supabase_client.get_open_tasks()
    stagnant = [
        task for task in _to_tasks(documents)
        if task.task_id and is_task_stagnant(task, now, threshold_days)
    ]

    for task in stagnant:
        try:
            await supabase_client.update_task(task.task_id, {"lastStagnantNotified": now.isoformat()})
        except TaskStoreError as e:
            logger.error("Failed to record stagnant notification", task_id=task.task_id, error=str(e))

    logger.info("Stagnant task scan complete", scanned=len(documents), stagnant=len(stagnant))
    return stagnant
