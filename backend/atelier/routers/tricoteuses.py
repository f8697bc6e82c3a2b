"""
Tricoteuses (workers) API Router.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.database import get_db
from atelier.services.tricoteuses import TricoteuseService

router = APIRouter()


class TricoteuseResponse(BaseModel):
    id: str
    first_name: str
    color: str
    photo_url: str
    gender: str
    created_at: datetime

    class Config:
        from_attributes = True


class TricoteuseCreate(BaseModel):
    first_name: str
    color: str
    photo_url: Optional[str] = ""
    gender: Optional[str] = "feminin"


class TricoteuseUpdate(BaseModel):
    first_name: Optional[str] = None
    color: Optional[str] = None
    photo_url: Optional[str] = None
    gender: Optional[str] = None


@router.get("", response_model=List[TricoteuseResponse])
async def list_tricoteuses(db: AsyncSession = Depends(get_db)):
    return [TricoteuseResponse.model_validate(t) for t in await TricoteuseService(db).list()]


@router.post("", response_model=TricoteuseResponse, status_code=201)
async def create_tricoteuse(body: TricoteuseCreate, db: AsyncSession = Depends(get_db)):
    tricoteuse = await TricoteuseService(db).create(
        body.first_name, body.color, body.photo_url, body.gender
    )
    return TricoteuseResponse.model_validate(tricoteuse)


@router.put("/{tricoteuse_id}", response_model=TricoteuseResponse)
async def update_tricoteuse(tricoteuse_id: str, body: TricoteuseUpdate, db: AsyncSession = Depends(get_db)):
    tricoteuse = await TricoteuseService(db).update(tricoteuse_id, **body.model_dump(exclude_unset=True))
    return TricoteuseResponse.model_validate(tricoteuse)


@router.delete("/{tricoteuse_id}")
async def delete_tricoteuse(tricoteuse_id: str, db: AsyncSession = Depends(get_db)):
    await TricoteuseService(db).delete(tricoteuse_id)
    return {"success": True}
