"""
Shipping deadline calculator.

An order is late when it was placed on or before the cutoff date, which lies
``jours_delai`` working days before today. Working days are the configured
weekdays minus public holidays.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.config import get_settings
from atelier.errors import InvalidRequestError
from atelier.models import DelaiConfig
from atelier.services.holidays import HolidayCalendar

logger = logging.getLogger(__name__)

WEEKDAYS = ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche")

DEFAULT_JOURS_OUVRABLES = {
    "lundi": True,
    "mardi": True,
    "mercredi": True,
    "jeudi": True,
    "vendredi": True,
    "samedi": False,
    "dimanche": False,
}


def validate_jours_ouvrables(jours_ouvrables: Dict[str, bool]) -> Dict[str, bool]:
    unknown = set(jours_ouvrables) - set(WEEKDAYS)
    if unknown:
        raise InvalidRequestError(f"Unknown weekdays: {', '.join(sorted(unknown))}")
    normalized = {day: bool(jours_ouvrables.get(day, False)) for day in WEEKDAYS}
    if not any(normalized.values()):
        raise InvalidRequestError("At least one working weekday is required")
    return normalized


def _is_working_day(day: date, jours_ouvrables: Dict[str, bool], is_holiday: Callable[[date], bool]) -> bool:
    return bool(jours_ouvrables.get(WEEKDAYS[day.weekday()])) and not is_holiday(day)


def compute_deadline(
    today: date,
    jours_delai: int,
    jours_ouvrables: Dict[str, bool],
    is_holiday: Callable[[date], bool] = lambda d: False,
) -> date:
    """Step back from ``today`` until ``jours_delai`` working days have been counted."""
    if jours_delai < 0:
        raise InvalidRequestError("jours_delai must not be negative")
    jours_ouvrables = validate_jours_ouvrables(jours_ouvrables)

    current = today
    counted = 0
    while counted < jours_delai:
        current -= timedelta(days=1)
        if _is_working_day(current, jours_ouvrables, is_holiday):
            counted += 1
    return current


def compute_ship_by(
    order_date: date,
    jours_delai: int,
    jours_ouvrables: Dict[str, bool],
    is_holiday: Callable[[date], bool] = lambda d: False,
) -> date:
    """Forward counterpart: the date ``jours_delai`` working days after an order."""
    if jours_delai < 0:
        raise InvalidRequestError("jours_delai must not be negative")
    jours_ouvrables = validate_jours_ouvrables(jours_ouvrables)

    current = order_date
    counted = 0
    while counted < jours_delai:
        current += timedelta(days=1)
        if _is_working_day(current, jours_ouvrables, is_holiday):
            counted += 1
    return current


def is_late(order_date: Union[date, datetime], deadline: date) -> bool:
    """Inclusive: an order placed on the deadline itself is late."""
    if isinstance(order_date, datetime):
        order_date = order_date.date()
    return order_date <= deadline


class DelaiService:
    """Reads and appends deadline configurations."""

    def __init__(self, db: AsyncSession, calendar: HolidayCalendar):
        self.db = db
        self.calendar = calendar
        self.settings = get_settings()

    async def _holiday_set(self, first_year: int, last_year: int) -> Set[date]:
        days: Set[date] = set()
        for year in range(first_year, last_year + 1):
            for iso in await self.calendar.holidays_for_year(year):
                days.add(date.fromisoformat(iso))
        return days

    async def deadline_for(self, today: date, jours_delai: int, jours_ouvrables: Dict[str, bool]) -> date:
        # a single working weekday needs about a week per counted day
        earliest = today - timedelta(days=jours_delai * 7 + 31)
        holidays = await self._holiday_set(earliest.year, today.year)
        return compute_deadline(today, jours_delai, jours_ouvrables, holidays.__contains__)

    async def ship_by(self, order_date: date, jours_delai: int, jours_ouvrables: Dict[str, bool]) -> date:
        latest = order_date + timedelta(days=jours_delai * 7 + 31)
        holidays = await self._holiday_set(order_date.year, latest.year)
        return compute_ship_by(order_date, jours_delai, jours_ouvrables, holidays.__contains__)

    async def current_config(self) -> Optional[DelaiConfig]:
        return await self.db.scalar(
            select(DelaiConfig).order_by(DelaiConfig.derniere_modification.desc()).limit(1)
        )

    async def get_configuration(self, today: Optional[date] = None) -> Dict:
        """Current configuration with its cutoff recomputed for ``today``."""
        today = today or date.today()
        config = await self.current_config()
        if config is None:
            jours_delai = self.settings.DEFAULT_JOURS_DELAI
            jours_ouvrables = dict(DEFAULT_JOURS_OUVRABLES)
            data = {"id": None, "derniere_modification": None}
        else:
            jours_delai = config.jours_delai
            jours_ouvrables = dict(config.jours_ouvrables)
            data = {"id": config.id, "derniere_modification": config.derniere_modification}

        data.update(
            jours_delai=jours_delai,
            jours_ouvrables=jours_ouvrables,
            date_limite=await self.deadline_for(today, jours_delai, jours_ouvrables),
        )
        return data

    async def current_deadline(self, today: Optional[date] = None) -> date:
        return (await self.get_configuration(today))["date_limite"]

    async def save_configuration(
        self, jours_delai: int, jours_ouvrables: Dict[str, bool], today: Optional[date] = None
    ) -> DelaiConfig:
        """Append a new configuration; it becomes the current one."""
        if jours_delai is None or int(jours_delai) < 1:
            raise InvalidRequestError("jours_delai must be at least 1")
        jours_ouvrables = validate_jours_ouvrables(jours_ouvrables or {})
        today = today or date.today()

        config = DelaiConfig(
            jours_delai=int(jours_delai),
            jours_ouvrables=jours_ouvrables,
            date_limite=await self.deadline_for(today, int(jours_delai), jours_ouvrables),
            derniere_modification=datetime.utcnow(),
        )
        self.db.add(config)
        await self.db.flush()
        logger.info(f"📅 Deadline configuration saved: {config.jours_delai} working days")
        return config

    async def history(self, limit: int = 50) -> List[DelaiConfig]:
        result = await self.db.execute(
            select(DelaiConfig).order_by(DelaiConfig.derniere_modification.desc()).limit(limit)
        )
        return list(result.scalars().all())
