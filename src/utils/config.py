"""Scheduling configuration with environment variable support."""

import os
from datetime import timedelta
from typing import Optional
from zoneinfo import ZoneInfo


def _optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class SchedulingConfig:
    """Centralized scheduling configuration."""

    # Codes and bookings are evaluated in one business timezone, never the caller's
    FIXED_TIMEZONE = os.environ.get("FIXED_TIMEZONE", "America/Chicago")
    ICAL_CACHE_TTL_SECONDS = int(os.environ.get("ICAL_CACHE_TTL_SECONDS", "1800"))  # 30 minutes
    ICAL_FETCH_TIMEOUT_SECONDS = float(os.environ.get("ICAL_FETCH_TIMEOUT_SECONDS", "10"))
    ICAL_FETCH_CONCURRENCY = int(os.environ.get("ICAL_FETCH_CONCURRENCY", "10"))
    TURNOVER_BUFFER_HOURS = _optional_float("TURNOVER_BUFFER_HOURS")
    STAGNANT_THRESHOLD_DAYS = int(os.environ.get("STAGNANT_THRESHOLD_DAYS", "14"))
    GAP_SEARCH_HORIZON_MONTHS = int(os.environ.get("GAP_SEARCH_HORIZON_MONTHS", "6"))
    ADMIN_ICAL_TESTING_MODE = os.environ.get("ADMIN_ICAL_TESTING_MODE", "false").lower() == "true"

    @classmethod
    def timezone(cls) -> ZoneInfo:
        """Return the fixed business timezone."""
        return ZoneInfo(cls.FIXED_TIMEZONE)

    @classmethod
    def turnover_buffer(cls) -> Optional[timedelta]:
        """Return the configured turnover buffer, or None for the same-day rule."""
        if cls.TURNOVER_BUFFER_HOURS is None:
            return None
        return timedelta(hours=cls.TURNOVER_BUFFER_HOURS)
