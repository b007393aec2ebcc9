"""Stage machine - canonical workflow stages per media type and transition validation.

Unknown media types and unknown stages never raise: they fall back to the
default stage list and the initial stage. Transitions are only checked for
list membership; any stage may be reached from any other, including moving
backward to correct mistakes. Who may move a task is decided by the caller.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from src.models.task import Actor, LogUser, Task, TaskLogEntry


class StageSet(BaseModel):
    """Ordered stage names and their descriptions for one media type."""
    model_config = ConfigDict(frozen=True)

    names: tuple[str, ...] = Field(..., description="Stage names in workflow order")
    descriptions: dict[str, str] = Field(default_factory=dict)

    @property
    def initial(self) -> str:
        return self.names[0]


INITIAL_STAGE = "Created"
SCHEDULING_STAGE = "Scheduling"
SHOOTING_STAGE = "Shooting"
PUBLISHING_STAGE = "Publishing"
COMPLETED_STAGE = "Completed"

_COMMON_DESCRIPTIONS = {
    "Created": "Task has been created.",
    "Scheduling": "Awaiting available shooting date.",
    "Shooting": "Shooting is scheduled and pending.",
    "Publishing": "Media is ready to publish.",
    "Completed": "Task is fully completed.",
}

DEFAULT_STAGES = StageSet(
    names=("Created", "Scheduling", "Shooting", "Editing", "Publishing", "Completed"),
    descriptions={**_COMMON_DESCRIPTIONS, "Editing": "Editing in progress."},
)

MEDIA_TYPE_STAGES: dict[str, StageSet] = {
    "photos": StageSet(
        names=(
            "Created",
            "Scheduling",
            "Shooting",
            "1st Round Edits",
            "In House Edits",
            "Publishing",
            "Completed",
        ),
        descriptions={
            **_COMMON_DESCRIPTIONS,
            "1st Round Edits": "Outsourced editing in progress.",
            "In House Edits": "OR editing in progress.",
        },
    ),
    "3d_tours": DEFAULT_STAGES,
}

# Historical documents still carry these labels; storage is not rewritten
LEGACY_STAGE_ALIASES = {
    "Ready to Publish": PUBLISHING_STAGE,
}

# progressState numbers used before stages were stored as names
LEGACY_PROGRESS_STATES = {
    0: "Created",
    1: "Scheduling",
    2: "Shooting",
    3: "Editing",
    4: "Editing",
    5: "Ready to Publish",
    6: "Completed",
}

LEGACY_EDITING_LABELS = ("Sent to 1st Editor", "In-House Editing")


def stages_for_media_type(media_type: Optional[str]) -> StageSet:
    """Return the stage set for a media type, or the default set."""
    if isinstance(media_type, str) and media_type in MEDIA_TYPE_STAGES:
        return MEDIA_TYPE_STAGES[media_type]
    return DEFAULT_STAGES


def canonical_stage_label(stage: Optional[str]) -> Optional[str]:
    """Map legacy stage labels to their current name."""
    if not isinstance(stage, str):
        return None
    return LEGACY_STAGE_ALIASES.get(stage, stage)


def stages_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two stage labels, treating legacy aliases as equivalent."""
    a = canonical_stage_label(left)
    return a is not None and a == canonical_stage_label(right)


def current_stage(task: Optional[Task]) -> str:
    """Return the task's stage, or the initial stage if it is not valid for its media type."""
    if task is None:
        return DEFAULT_STAGES.initial

    stage_set = stages_for_media_type(task.media_type)
    normalized = canonical_stage_label(task.stage)
    if normalized in stage_set.names:
        return normalized
    return stage_set.initial


def stage_index(task: Optional[Task]) -> int:
    """Position of the task's current stage within its stage list."""
    media_type = task.media_type if task is not None else None
    return stages_for_media_type(media_type).names.index(current_stage(task))


def is_terminal(stage: Optional[str]) -> bool:
    return canonical_stage_label(stage) == COMPLETED_STAGE


def validate_transition(task: Optional[Task], proposed_stage: Any) -> bool:
    """True iff ``proposed_stage`` is a stage of the task's media type."""
    media_type = task.media_type if task is not None else None
    return isinstance(proposed_stage, str) and proposed_stage in stages_for_media_type(media_type).names


def migrate_legacy_stage(document: dict) -> Optional[str]:
    """
    Return the stage a legacy task document should be rewritten to.

    Numeric ``progressState`` values win over the ``stage`` label. Returns
    None when the document needs no migration.
    """
    if not isinstance(document, dict):
        return None

    progress_state = document.get("progressState")
    if isinstance(progress_state, int) and not isinstance(progress_state, bool):
        if progress_state in LEGACY_PROGRESS_STATES:
            return LEGACY_PROGRESS_STATES[progress_state]

    if document.get("stage") in LEGACY_EDITING_LABELS:
        return "Editing"

    return None


def build_progress_log_entry(
    stage: str,
    actor: Optional[Actor] = None,
    now: Optional[datetime] = None,
) -> TaskLogEntry:
    """Build the ``progress_update`` log entry recorded when a task changes stage."""
    actor = actor or Actor()
    now = now or datetime.now(timezone.utc)
    return TaskLogEntry(
        type="progress_update",
        user=LogUser(uid=actor.uid, display_name=actor.display_name or actor.uid or "Unknown User"),
        timestamp=now.isoformat(),
        description=f"Progress updated to {stage}",
    )
