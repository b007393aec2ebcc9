"""Calendar feed cache - raw feed text keyed by feed URL with a time-to-live.

The scheduling core only sees the ``ICalCache`` protocol. The Supabase-backed
cache lets every worker share one fetch per feed per TTL window.
"""

import hashlib
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from src.services.supabase_client import get_ical_cache_row, upsert_ical_cache_row


def ical_cache_id(ical_url: str) -> str:
    """Stable cache key for a feed URL."""
    return hashlib.sha256(ical_url.encode("utf-8")).hexdigest()


class ICalCache(Protocol):
    """Key-value cache with expiry for raw calendar feed text."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...


class InMemoryICalCache:
    """Process-local cache. ``clock`` returns seconds since the epoch."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self.entries.get(ical_cache_id(key))
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.clock():
            self.entries.pop(ical_cache_id(key), None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.entries[ical_cache_id(key)] = (value, self.clock() + ttl_seconds)


class SupabaseICalCache:
    """Cache stored in the ``ical_cache`` table; ``expires`` is epoch milliseconds."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    async def get(self, key: str) -> Optional[str]:
        row = await get_ical_cache_row(ical_cache_id(key))
        if not row:
            return None
        expires = row.get("expires")
        if not isinstance(expires, (int, float)) or expires < self.clock() * 1000:
            return None
        return row.get("raw_ical_text")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self.clock()
        await upsert_ical_cache_row({
            "id": ical_cache_id(key),
            "ical_url": key,
            "raw_ical_text": value,
            "expires": int((now + ttl_seconds) * 1000),
            "last_fetched": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        })
