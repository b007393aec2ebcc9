"""Tests for Task model and scheduled shoot date normalization."""

import pytest
from datetime import date, datetime, timezone
from pydantic import ValidationError
from src.models.task import (
    NoShootDate,
    ShootDateRange,
    SingleDayShoot,
    Task,
    TaskLogEntry,
    normalize_scheduled_shoot_date,
)
from tests.utils.factories import create_task_document


class FirestoreLikeTimestamp:
    """Stands in for a document-database native timestamp."""

    def __init__(self, dt: datetime):
        self._dt = dt

    def to_datetime(self) -> datetime:
        return self._dt


@pytest.mark.unit
def test_task_from_camel_case_document():
    """Test task creation from a stored document."""
    document = create_task_document(stage="Shooting", id="task-42")
    task = Task.model_validate(document)

    assert task.task_id == "task-42"
    assert task.media_type == "photos"
    assert task.stage == "Shooting"
    assert task.unit_code == document["unitCode"]
    assert task.created_at == datetime(2025, 5, 1, 15, 0, tzinfo=timezone.utc)
    assert isinstance(task.scheduled_shoot_date, NoShootDate)


@pytest.mark.unit
def test_task_populate_by_field_name():
    """Test task creation with snake_case field names."""
    task = Task(task_id="t1", media_type="3d_tours", stage="Editing")

    assert task.task_id == "t1"
    assert task.media_type == "3d_tours"


@pytest.mark.unit
def test_task_tolerates_wrong_types():
    """Test non-string fields and non-list collections degrade to defaults."""
    task = Task.model_validate({
        "id": "t1",
        "mediaType": 7,
        "stage": ["Shooting"],
        "log": "not a list",
        "assignedEditors": None,
        "createdAt": "yesterday",
    })

    assert task.media_type is None
    assert task.stage is None
    assert task.log == []
    assert task.assigned_editors == []
    assert task.created_at is None


@pytest.mark.unit
def test_task_flags_require_explicit_true():
    """Test that only a literal true sets boolean flags."""
    task = Task.model_validate({
        "id": "t1",
        "scheduledOverBlockedAtCreate": "true",
        "blockAlertOptOut": 1,
        "archived": True,
    })

    assert task.scheduled_over_blocked_at_create is False
    assert task.block_alert_opt_out is False
    assert task.archived is True


@pytest.mark.unit
def test_task_accepts_native_timestamps():
    """Test normalization of document-database timestamps and epoch millis."""
    stamp = datetime(2025, 5, 20, 8, 30, tzinfo=timezone.utc)
    task = Task.model_validate({
        "id": "t1",
        "stageUpdated": FirestoreLikeTimestamp(stamp),
        "lastProgressUpdate": int(stamp.timestamp() * 1000),
    })

    assert task.stage_updated == stamp
    assert task.last_progress_update == stamp


@pytest.mark.unit
def test_shoot_date_absent():
    """Test missing or unusable values mean no shoot date."""
    assert isinstance(normalize_scheduled_shoot_date(None), NoShootDate)
    assert isinstance(normalize_scheduled_shoot_date(""), NoShootDate)
    assert isinstance(normalize_scheduled_shoot_date({"start": "soon"}), NoShootDate)
    assert isinstance(normalize_scheduled_shoot_date(42.5e20), NoShootDate)


@pytest.mark.unit
def test_shoot_date_single_day_string():
    """Test a plain day string becomes a single-day shoot."""
    result = normalize_scheduled_shoot_date("2025-06-20")

    assert result == SingleDayShoot(day=date(2025, 6, 20))
    assert result.bounds() == (date(2025, 6, 20), date(2025, 6, 20))


@pytest.mark.unit
def test_shoot_date_timestamp_uses_fixed_timezone():
    """Test timestamps are reduced to the business-timezone calendar day."""
    # 03:00 UTC on the 21st is still the 20th in Chicago
    result = normalize_scheduled_shoot_date("2025-06-21T03:00:00Z")

    assert result == SingleDayShoot(day=date(2025, 6, 20))


@pytest.mark.unit
def test_shoot_date_range_mapping():
    """Test start/end mapping becomes a range."""
    result = normalize_scheduled_shoot_date({"start": "2025-07-01", "end": "2025-07-03"})

    assert result == ShootDateRange(start=date(2025, 7, 1), end=date(2025, 7, 3))


@pytest.mark.unit
def test_shoot_date_range_missing_side_and_reversed():
    """Test a one-sided mapping collapses to one day and reversed ends are swapped."""
    one_sided = normalize_scheduled_shoot_date({"start": "2025-07-01"})
    reversed_range = normalize_scheduled_shoot_date({"start": "2025-07-05", "end": "2025-07-01"})

    assert one_sided.bounds() == (date(2025, 7, 1), date(2025, 7, 1))
    assert reversed_range.bounds() == (date(2025, 7, 1), date(2025, 7, 5))


@pytest.mark.unit
def test_shoot_date_tagged_mapping():
    """Test an already-tagged mapping is validated directly."""
    result = normalize_scheduled_shoot_date({"kind": "single", "day": "2025-07-04"})
    broken = normalize_scheduled_shoot_date({"kind": "range", "start": "2025-07-04"})

    assert result == SingleDayShoot(day=date(2025, 7, 4))
    assert isinstance(broken, NoShootDate)


@pytest.mark.unit
def test_task_shoot_date_bounds():
    """Test bounds exposed on the task."""
    task = Task.model_validate({"id": "t1", "scheduledShootDate": {"start": "2025-07-01", "end": "2025-07-03"}})
    empty = Task.model_validate({"id": "t2"})

    assert task.shoot_date_bounds() == (date(2025, 7, 1), date(2025, 7, 3))
    assert empty.shoot_date_bounds() is None


@pytest.mark.unit
def test_log_entry_user_must_be_mapping():
    """Test log entries keep a user only when it is a mapping."""
    entry = TaskLogEntry.model_validate({
        "type": "progress_update",
        "user": {"uid": "u1", "displayName": "Sam"},
        "timestamp": datetime(2025, 6, 1, tzinfo=timezone.utc),
    })
    stray = TaskLogEntry.model_validate({"user": "u1"})

    assert entry.user.uid == "u1"
    assert entry.user.display_name == "Sam"
    assert entry.timestamp == "2025-06-01T00:00:00+00:00"
    assert stray.user is None
    assert stray.type == "unknown"


@pytest.mark.unit
def test_log_entry_null_fields_fall_back_to_defaults():
    """Test null user and text fields on stored log entries take their defaults."""
    entry = TaskLogEntry.model_validate({
        "type": None,
        "user": {"uid": None, "displayName": None},
        "description": None,
    })

    assert entry.type == "unknown"
    assert entry.description == ""
    assert entry.user.uid == "unknown"
    assert entry.user.display_name == "Unknown User"


@pytest.mark.unit
def test_task_coerces_stored_identifiers():
    """Test numeric IDs, photographer objects and stray log items are read leniently."""
    task = Task.model_validate({
        "id": 42,
        "assignedPhotographer": {"uid": "photo-1", "displayName": "Pat"},
        "initialBlockKey": 123,
        "log": [{"description": None}, "stray", None],
    })
    unknown_photographer = Task.model_validate({"id": "t2", "assignedPhotographer": {"name": "Pat"}})

    assert task.task_id == "42"
    assert task.assigned_photographer == "photo-1"
    assert task.initial_block_key is None
    assert len(task.log) == 1
    assert task.log[0].description == ""
    assert unknown_photographer.assigned_photographer is None


@pytest.mark.unit
def test_log_entry_is_immutable():
    """Test log entries cannot be edited in place."""
    entry = TaskLogEntry(type="progress_update", description="Progress updated to Shooting")

    with pytest.raises(ValidationError):
        entry.description = "changed"


@pytest.mark.unit
def test_with_log_entry_appends_without_mutating():
    """Test appending a log entry returns a new task."""
    task = Task.model_validate({"id": "t1", "log": [{"type": "note", "description": "first"}]})
    updated = task.with_log_entry(TaskLogEntry(type="progress_update", description="second"))

    assert len(task.log) == 1
    assert [e.description for e in updated.log] == ["first", "second"]
