"""
French public holiday calendar (metropole), fetched from the etalab dataset.

Lookups are memoized by year for ``HOLIDAYS_CACHE_TTL`` seconds. When the
dataset cannot be fetched, no date is a holiday and the fetch is not retried
for ``HOLIDAYS_RETRY_SECONDS``, so an unreachable calendar costs one timeout
per retry window rather than one per lookup.
"""

import logging
import time
from datetime import date
from functools import lru_cache
from typing import Dict, Optional

import httpx

from atelier.config import get_settings

logger = logging.getLogger(__name__)


class HolidayCalendar:

    def __init__(
        self,
        url: str,
        ttl: int = 86400,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_after: int = 300,
    ):
        self.url = url
        self.ttl = ttl
        self.retry_after = retry_after
        self.transport = transport
        self._by_year: Dict[int, Dict[str, str]] = {}
        self._expires_at = 0.0

    def _fail_open(self) -> bool:
        """Drop any stale data and wait ``retry_after`` seconds before the next fetch."""
        self._by_year = {}
        self._expires_at = time.monotonic() + self.retry_after
        return False

    async def _refresh(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                resp = await client.get(self.url)
            if resp.status_code != 200:
                logger.warning(f"Holiday calendar returned {resp.status_code}, treating all days as working days")
                return self._fail_open()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Holiday calendar unavailable ({e}), treating all days as working days")
            return self._fail_open()

        by_year: Dict[int, Dict[str, str]] = {}
        for day, name in data.items():
            try:
                year = int(day.split("-")[0])
            except ValueError:
                continue
            by_year.setdefault(year, {})[day] = name
        self._by_year = by_year
        self._expires_at = time.monotonic() + self.ttl
        return True

    async def holidays_for_year(self, year: int) -> Dict[str, str]:
        """ISO date -> holiday name for ``year``; empty on fetch failure."""
        if time.monotonic() >= self._expires_at:
            await self._refresh()
        return dict(self._by_year.get(year, {}))

    async def is_holiday(self, day: date) -> bool:
        return day.isoformat() in await self.holidays_for_year(day.year)

    def clear(self) -> None:
        self._by_year = {}
        self._expires_at = 0.0


@lru_cache()
def get_holiday_calendar() -> HolidayCalendar:
    """Process-wide calendar instance."""
    settings = get_settings()
    return HolidayCalendar(
        settings.HOLIDAYS_URL,
        ttl=settings.HOLIDAYS_CACHE_TTL,
        retry_after=settings.HOLIDAYS_RETRY_SECONDS,
    )
