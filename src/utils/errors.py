"""Error handling utilities."""


class MediaTrackerError(Exception):
    """Base exception for the media tracker scheduling core."""
    pass


class ICalFetchError(MediaTrackerError):
    """Calendar feed could not be fetched."""
    pass


class TaskStoreError(MediaTrackerError):
    """Task document store operation error."""
    pass


class StageTransitionError(MediaTrackerError):
    """Proposed stage is not valid for the task's media type."""
    pass


class AuthorizationError(MediaTrackerError):
    """Actor role is not allowed to perform the action."""
    pass


class InvalidGapLengthError(MediaTrackerError):
    """Requested open-window length is not usable."""
    pass


class InvalidShootDateError(MediaTrackerError):
    """Shoot start or end is not a calendar day."""
    pass
