"""Calendar models - busy intervals and availability derived from a property's calendar feed."""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

CalendarDay = date


class BusyInterval(BaseModel):
    """Half-open [start, end) range during which a property is unavailable."""
    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Interval start (inclusive, naive wall-clock)")
    end: datetime = Field(..., description="Interval end (exclusive, naive wall-clock)")

    @property
    def start_day(self) -> date:
        return self.start.date()

    @property
    def end_day(self) -> date:
        return self.end.date()


class DayAvailability(BaseModel):
    """Availability of a single calendar day for a shoot."""
    date: CalendarDay
    label: str = Field(..., description="Display label, e.g. 'Tuesday, Jun 10'")
    available: bool = Field(..., description="No stay covers the day")
    is_turn: bool = Field(default=False, description="A stay starts on this day")


class OverlapResult(BaseModel):
    """Result of checking a proposed shoot range against busy intervals."""
    overlapped: bool = False
    overlapping_intervals: list[BusyInterval] = Field(default_factory=list)


class BookingAssessment(BaseModel):
    """Conflict state of a booking, computed once at booking time."""
    overlapped: bool = False
    overlapping_intervals: list[BusyInterval] = Field(default_factory=list)
    fingerprint: Optional[str] = Field(None, description="SHA-256 hex of the conflict state, None if the feed was unavailable")
    feed_checked: bool = Field(default=False, description="Calendar feed text was available for the check")


class OpenWindow(BaseModel):
    """Run of consecutive free days between busy intervals."""
    start: date = Field(..., description="First free day")
    end: date = Field(..., description="Last free day (inclusive)")
    days: int = Field(..., ge=1, description="Number of free days")
