"""Tests for the scheduled checks job."""

import pytest
from datetime import date
from unittest.mock import AsyncMock, patch
from src.jobs import scheduled_checks
from src.models.task import Task
from src.services.scheduling import ConflictAlert
from src.utils.errors import TaskStoreError


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_scheduled_checks_collects_findings(now):
    """Test both scans run and their findings are returned under one correlation ID."""
    alert = ConflictAlert(
        task_id="task-1",
        fingerprint="f" * 64,
        scheduled_start=date(2025, 6, 12),
        scheduled_end=date(2025, 6, 14),
    )
    stale = Task.model_validate({"id": "task-2", "stage": "Editing"})
    service = object()

    with patch("src.jobs.scheduled_checks.run_reservation_conflict_scan", new_callable=AsyncMock) as mock_conflicts, \
            patch("src.jobs.scheduled_checks.run_stagnant_task_scan", new_callable=AsyncMock) as mock_stagnant:
        mock_conflicts.return_value = [alert]
        mock_stagnant.return_value = [stale]
        result = await scheduled_checks.run_scheduled_checks(service, now=now)

    mock_conflicts.assert_called_once_with(service, now)
    mock_stagnant.assert_called_once_with(now)
    assert result.conflict_alerts == [alert]
    assert [t.task_id for t in result.stagnant_tasks] == ["task-2"]
    assert result.correlation_id.startswith("job_")


@pytest.mark.unit
def test_main_success():
    """Test a clean run exits with status 0 and closes the store client."""
    with patch.object(scheduled_checks.LoggingConfig, "setup_logging") as mock_setup, \
            patch("src.jobs.scheduled_checks.run_scheduled_checks", new_callable=AsyncMock) as mock_run, \
            patch("src.jobs.scheduled_checks.close_supabase_client", new_callable=AsyncMock) as mock_close:
        assert scheduled_checks.main() == 0

    mock_setup.assert_called_once()
    mock_run.assert_called_once()
    mock_close.assert_called_once()


@pytest.mark.unit
def test_main_store_failure():
    """Test a store failure exits with status 1 and still closes the client."""
    with patch.object(scheduled_checks.LoggingConfig, "setup_logging"), \
            patch("src.jobs.scheduled_checks.run_scheduled_checks", new_callable=AsyncMock) as mock_run, \
            patch("src.jobs.scheduled_checks.close_supabase_client", new_callable=AsyncMock) as mock_close:
        mock_run.side_effect = TaskStoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        assert scheduled_checks.main() == 1

    mock_close.assert_called_once()
