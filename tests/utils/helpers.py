"""Test helper functions."""

from datetime import date, datetime
from typing import Iterable, Optional, Union

Boundary = Union[date, datetime]


def _ical_property(name: str, value: Boundary) -> str:
    if isinstance(value, datetime):
        return f"{name}:{value.strftime('%Y%m%dT%H%M%S')}"
    return f"{name};VALUE=DATE:{value.strftime('%Y%m%d')}"


def build_vevent(start: Optional[Boundary], end: Optional[Boundary], uid: str = "event@test") -> str:
    """Build one VEVENT block; a None boundary leaves that property out."""
    lines = ["BEGIN:VEVENT", f"UID:{uid}", "SUMMARY:Reserved"]
    if start is not None:
        lines.append(_ical_property("DTSTART", start))
    if end is not None:
        lines.append(_ical_property("DTEND", end))
    lines.append("END:VEVENT")
    return "\r\n".join(lines)


def build_ical_feed(stays: Iterable[tuple], extra_blocks: Iterable[str] = ()) -> str:
    """Build a calendar feed with one reservation per (start, end) pair."""
    blocks = [build_vevent(start, end, uid=f"stay-{i}@test") for i, (start, end) in enumerate(stays)]
    blocks.extend(extra_blocks)
    return "\r\n".join([
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Test//Reservations//EN",
        *blocks,
        "END:VCALENDAR",
    ]) + "\r\n"


class FakeFetcher:
    """Async calendar fetcher returning canned feed text per URL."""

    def __init__(self, feeds: Optional[dict] = None, error: Optional[Exception] = None):
        self.feeds = feeds or {}
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.feeds[url]
