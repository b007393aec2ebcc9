"""Scheduled checks - reservation conflicts on booked shoots and stagnant tasks.

Run periodically (cron or a scheduler) with ``media-tracker-checks``. The
returned alerts and stagnant tasks are handed to whatever delivers
notifications; this job only detects them and records that they were seen.
"""

import asyncio
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from src.models.task import Task
from src.services.ical_cache import SupabaseICalCache
from src.services.scheduling import ConflictAlert, SchedulingService
from src.services.supabase_client import close_supabase_client
from src.services.workflow_store import run_reservation_conflict_scan, run_stagnant_task_scan
from src.utils.errors import MediaTrackerError
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)


class ScheduledCheckResult(BaseModel):
    """Findings of one scheduled run."""
    correlation_id: str
    conflict_alerts: list[ConflictAlert] = Field(default_factory=list)
    stagnant_tasks: list[Task] = Field(default_factory=list)


async def run_scheduled_checks(
    service: Optional[SchedulingService] = None,
    now: Optional[datetime] = None,
) -> ScheduledCheckResult:
    """Run the reservation conflict scan, then the stagnant task scan."""
    service = service or SchedulingService(cache=SupabaseICalCache())

    with correlation_context() as correlation_id:
        alerts = await run_reservation_conflict_scan(service, now)
        stagnant = await run_stagnant_task_scan(now)
        logger.info(
            "Scheduled checks complete",
            conflict_alerts=len(alerts),
            stagnant_tasks=len(stagnant)
        )

    return ScheduledCheckResult(
        correlation_id=correlation_id,
        conflict_alerts=alerts,
        stagnant_tasks=stagnant,
    )


async def _run() -> ScheduledCheckResult:
    try:
        return await run_scheduled_checks()
    finally:
        await close_supabase_client()


def main() -> int:
    LoggingConfig.setup_logging()
    try:
        asyncio.run(_run())
    except MediaTrackerError as e:
        logger.error("Scheduled checks failed", error=str(e), error_type=type(e).__name__)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
