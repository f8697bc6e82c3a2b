"""
Delais API Router.

Shipping deadline configuration and the holiday calendar behind it.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.database import get_db
from atelier.routers.dependencies import get_calendar
from atelier.services.deadline import DelaiService
from atelier.services.holidays import HolidayCalendar

router = APIRouter()


class DelaiConfigResponse(BaseModel):
    id: Optional[str] = None
    jours_delai: int
    jours_ouvrables: Dict[str, bool]
    date_limite: Optional[date]
    derniere_modification: Optional[datetime] = None

    class Config:
        from_attributes = True


class DelaiConfigRequest(BaseModel):
    jours_delai: int
    jours_ouvrables: Dict[str, bool]


class ShipByRequest(BaseModel):
    order_date: date
    jours_delai: Optional[int] = None
    jours_ouvrables: Optional[Dict[str, bool]] = None


@router.get("/configuration", response_model=DelaiConfigResponse)
async def get_configuration(
    db: AsyncSession = Depends(get_db),
    calendar: HolidayCalendar = Depends(get_calendar),
):
    """Current configuration with today's late-order cutoff."""
    return await DelaiService(db, calendar).get_configuration()


@router.post("/configuration", response_model=DelaiConfigResponse, status_code=201)
async def save_configuration(
    body: DelaiConfigRequest,
    db: AsyncSession = Depends(get_db),
    calendar: HolidayCalendar = Depends(get_calendar),
):
    config = await DelaiService(db, calendar).save_configuration(body.jours_delai, body.jours_ouvrables)
    return DelaiConfigResponse.model_validate(config)


@router.get("/historique", response_model=List[DelaiConfigResponse])
async def configuration_history(
    limit: int = Query(50, le=200),
    db: AsyncSession = Depends(get_db),
    calendar: HolidayCalendar = Depends(get_calendar),
):
    configs = await DelaiService(db, calendar).history(limit)
    return [DelaiConfigResponse.model_validate(c) for c in configs]


@router.post("/calculer")
async def compute_ship_by(
    body: ShipByRequest,
    db: AsyncSession = Depends(get_db),
    calendar: HolidayCalendar = Depends(get_calendar),
):
    """Date by which an order placed on ``order_date`` should ship."""
    service = DelaiService(db, calendar)
    current = await service.get_configuration()
    jours_delai = body.jours_delai if body.jours_delai is not None else current["jours_delai"]
    jours_ouvrables = body.jours_ouvrables or current["jours_ouvrables"]
    ship_by = await service.ship_by(body.order_date, jours_delai, jours_ouvrables)
    return {
        "order_date": body.order_date,
        "jours_delai": jours_delai,
        "date_limite": ship_by,
        "jours_calendaires": (ship_by - body.order_date).days,
    }


@router.get("/jours-feries/{year}")
async def holidays(year: int, calendar: HolidayCalendar = Depends(get_calendar)):
    return {"year": year, "holidays": await calendar.holidays_for_year(year)}
