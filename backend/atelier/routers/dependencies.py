"""
Router Dependencies
====================

Shared FastAPI dependencies: session factory, sync engine, holiday calendar
and the current late-order cutoff.
"""

from datetime import date

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier.database import get_db
from atelier.services.deadline import DelaiService
from atelier.services.holidays import HolidayCalendar, get_holiday_calendar
from atelier.services.sync_engine import SyncEngine


def get_session_factory() -> async_sessionmaker:
    """Factory for code that needs sessions of its own (concurrent reads, sync runs)."""
    from atelier.database import async_session_maker
    return async_session_maker


def get_sync_engine(request: Request) -> SyncEngine:
    """The engine created at startup and kept on app.state."""
    return request.app.state.sync_engine


def get_calendar() -> HolidayCalendar:
    return get_holiday_calendar()


async def get_current_deadline(
    db: AsyncSession = Depends(get_db),
    calendar: HolidayCalendar = Depends(get_calendar),
) -> date:
    """Orders placed on or before this date are late."""
    return await DelaiService(db, calendar).current_deadline()
