"""Calendar feed fetching over HTTP."""

from typing import Optional

import httpx

from src.utils.config import SchedulingConfig
from src.utils.errors import ICalFetchError
from src.utils.logging import get_structured_logger, mask_ical_url, timed

logger = get_structured_logger(__name__)


@timed("ical_fetch")
async def fetch_ical_text(url: str, timeout: Optional[float] = None) -> str:
    """
    Fetch raw calendar feed text.

    Raises:
        ICalFetchError: on timeouts, transport errors, or non-2xx responses.
    """
    timeout = timeout or SchedulingConfig.ICAL_FETCH_TIMEOUT_SECONDS
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(url, timeout=timeout, follow_redirects=True)
            response.raise_for_status()
            return response.text
    except httpx.TimeoutException as e:
        logger.warning("Timeout fetching calendar feed", ical=mask_ical_url(url), timeout_s=timeout)
        raise ICalFetchError(f"Timeout fetching calendar feed after {timeout}s") from e
    except httpx.HTTPStatusError as e:
        raise ICalFetchError(f"Calendar feed fetch failed: {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ICalFetchError(f"Calendar feed fetch failed: {type(e).__name__}") from e
