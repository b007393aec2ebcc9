"""Task models - media production tasks as stored in the task document store."""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from src.utils.config import SchedulingConfig
from src.utils.dates import to_calendar_day, to_datetime


class MediaType(str, Enum):
    """Known media types. Task documents may carry other values."""
    PHOTOS = "photos"
    THREE_D_TOURS = "3d_tours"


class ActorRole(str, Enum):
    """Roles assigned by the role management layer."""
    MANAGER = "manager"
    PHOTOGRAPHER = "photographer"
    EDITOR = "editor"
    USER = "user"


class Actor(BaseModel):
    """Person performing an action on a task."""
    uid: str = Field(default="unknown", description="User ID")
    display_name: Optional[str] = Field(None, description="Display name or email")
    role: ActorRole = Field(default=ActorRole.USER, description="Acting role")


class NoShootDate(BaseModel):
    """Task has no shoot date booked."""
    kind: Literal["none"] = "none"

    def bounds(self) -> None:
        return None


class SingleDayShoot(BaseModel):
    """Shoot booked on a single calendar day."""
    kind: Literal["single"] = "single"
    day: date = Field(..., description="Shoot day")

    def bounds(self) -> tuple[date, date]:
        return self.day, self.day


class ShootDateRange(BaseModel):
    """Shoot booked over an inclusive range of calendar days."""
    kind: Literal["range"] = "range"
    start: date = Field(..., description="First shoot day (inclusive)")
    end: date = Field(..., description="Last shoot day (inclusive)")

    def bounds(self) -> tuple[date, date]:
        return self.start, self.end


ScheduledShootDate = Annotated[
    Union[NoShootDate, SingleDayShoot, ShootDateRange],
    Field(discriminator="kind"),
]


def normalize_scheduled_shoot_date(raw: Any) -> Union[NoShootDate, SingleDayShoot, ShootDateRange]:
    """
    Convert the untyped ``scheduledShootDate`` document field into the sum type.

    The document field is absent, a single day/timestamp string, or a
    ``{start, end}`` mapping. Unparseable input means no shoot date.
    """
    if isinstance(raw, (NoShootDate, SingleDayShoot, ShootDateRange)):
        return raw

    tz = SchedulingConfig.timezone()

    if isinstance(raw, dict):
        if raw.get("kind") in ("none", "single", "range"):
            try:
                return _SHOOT_DATE_KINDS[raw["kind"]].model_validate(raw)
            except ValueError:
                return NoShootDate()
        start = to_calendar_day(raw.get("start"), tz)
        end = to_calendar_day(raw.get("end"), tz)
        start = start or end
        end = end or start
        if start is None:
            return NoShootDate()
        if end < start:
            start, end = end, start
        return ShootDateRange(start=start, end=end)

    day = to_calendar_day(raw, tz)
    if day is None:
        return NoShootDate()
    return SingleDayShoot(day=day)


_SHOOT_DATE_KINDS = {
    "none": NoShootDate,
    "single": SingleDayShoot,
    "range": ShootDateRange,
}


class LogUser(BaseModel):
    """User reference stored on a log entry."""
    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(default="unknown", description="User ID")
    display_name: str = Field(default="Unknown User", alias="displayName", description="Display name")

    @field_validator("uid", "display_name", mode="before")
    @classmethod
    def _text_or_default(cls, value: Any, info: ValidationInfo) -> str:
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return value if isinstance(value, str) else str(value)


class TaskLogEntry(BaseModel):
    """One record in a task's append-only log."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str = Field(default="unknown", description="Entry type, e.g. progress_update")
    user: Optional[LogUser] = Field(None, description="User who performed the action")
    timestamp: Optional[str] = Field(None, description="ISO-8601 timestamp")
    description: str = Field(default="", description="Human readable description")

    @field_validator("type", "description", mode="before")
    @classmethod
    def _text_or_default(cls, value: Any, info: ValidationInfo) -> str:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value if isinstance(value, str) else str(value)

    @field_validator("user", mode="before")
    @classmethod
    def _user_mapping_only(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, LogUser)) else None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_to_iso(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        dt = to_datetime(value)
        return dt.isoformat() if dt else None


class Task(BaseModel):
    """Media production task."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    task_id: Optional[str] = Field(None, alias="id", description="Externally assigned task ID")
    media_type: Optional[str] = Field(None, alias="mediaType", description="photos, 3d_tours, or other")
    stage: Optional[str] = Field(None, description="Workflow stage name")
    scheduled_shoot_date: ScheduledShootDate = Field(
        default_factory=NoShootDate,
        alias="scheduledShootDate",
        description="Booked shoot day or range"
    )
    ical: Optional[str] = Field(None, description="Calendar feed URL for the property")
    property_name: Optional[str] = Field(None, alias="propertyName", description="Property name")
    unit_code: Optional[str] = Field(None, alias="unitCode", description="Property unit code")
    assigned_photographer: Optional[str] = Field(None, alias="assignedPhotographer", description="Photographer user ID")
    assigned_editors: list[Any] = Field(default_factory=list, alias="assignedEditors", description="Editor assignments")
    log: list[TaskLogEntry] = Field(default_factory=list, description="Append-only action log")
    scheduled_by_uid: Optional[str] = Field(None, alias="scheduledByUid")
    scheduled_over_blocked_at_create: bool = Field(
        default=False,
        alias="scheduledOverBlockedAtCreate",
        description="Booking overlapped a known busy interval when it was made"
    )
    initial_block_key: Optional[str] = Field(None, alias="initialBlockKey", description="Fingerprint at booking time")
    last_block_alert_key: Optional[str] = Field(None, alias="lastBlockAlertKey", description="Fingerprint last alerted on")
    block_alert_opt_out: bool = Field(default=False, alias="blockAlertOptOut")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_progress_update: Optional[datetime] = Field(None, alias="lastProgressUpdate")
    stage_updated: Optional[datetime] = Field(None, alias="stageUpdated")
    last_stagnant_notified: Optional[datetime] = Field(None, alias="lastStagnantNotified")
    archived: bool = Field(default=False)

    @field_validator("task_id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        return value if isinstance(value, str) else str(value)

    @field_validator(
        "media_type", "stage", "ical", "property_name", "unit_code",
        "scheduled_by_uid", "initial_block_key", "last_block_alert_key",
        mode="before"
    )
    @classmethod
    def _string_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("assigned_photographer", mode="before")
    @classmethod
    def _photographer_uid(cls, value: Any) -> Optional[str]:
        # Older documents store the whole user object
        if isinstance(value, dict):
            value = value.get("uid") or value.get("id")
        return value if isinstance(value, str) else None

    @field_validator("scheduled_shoot_date", mode="before")
    @classmethod
    def _normalize_shoot_date(cls, value: Any) -> Any:
        return normalize_scheduled_shoot_date(value)

    @field_validator(
        "created_at", "last_progress_update", "stage_updated", "last_stagnant_notified",
        mode="before"
    )
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> Optional[datetime]:
        return to_datetime(value)

    @field_validator("scheduled_over_blocked_at_create", "block_alert_opt_out", "archived", mode="before")
    @classmethod
    def _strict_true(cls, value: Any) -> bool:
        # Documents only count an explicit true
        return value is True

    @field_validator("assigned_editors", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> list:
        return value if isinstance(value, list) else []

    @field_validator("log", mode="before")
    @classmethod
    def _log_entries_only(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, (dict, TaskLogEntry))]

    def shoot_date_bounds(self) -> Optional[tuple[date, date]]:
        """Return (first_day, last_day) of the booked shoot, or None."""
        return self.scheduled_shoot_date.bounds()

    def with_log_entry(self, entry: TaskLogEntry) -> "Task":
        """Return a copy of the task with ``entry`` appended to the log."""
        return self.model_copy(update={"log": [*self.log, entry]})
