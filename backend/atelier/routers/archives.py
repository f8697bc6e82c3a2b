"""
Archives API Router.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.database import get_db
from atelier.services.archive import ArchiveService

router = APIRouter()


class ArchiveResponse(BaseModel):
    id: str
    order_id: int
    order_number: Optional[str]
    order: Dict
    items: List[Dict]
    statuses: List[Dict]
    archived_at: datetime

    class Config:
        from_attributes = True


class ArchiveListResponse(BaseModel):
    archives: List[ArchiveResponse]
    total: int


@router.get("", response_model=ArchiveListResponse)
async def list_archives(
    limit: int = Query(50, le=200),
    offset: int = Query(0),
    db: AsyncSession = Depends(get_db),
):
    result = await ArchiveService(db).list_archives(limit, offset)
    return ArchiveListResponse(
        archives=[ArchiveResponse.model_validate(a) for a in result["archives"]],
        total=result["total"],
    )


@router.get("/stats")
async def archive_stats(db: AsyncSession = Depends(get_db)):
    """Completed items for the current week, month and year."""
    return await ArchiveService(db).stats()
