"""
Fournitures (workshop supplies) API Router.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.database import get_db
from atelier.services.fournitures import FournitureService

router = APIRouter()


class FournitureResponse(BaseModel):
    id: str
    label: str
    qty: int
    ordered: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FournitureCreate(BaseModel):
    label: str
    qty: int = 1
    ordered: Optional[bool] = False


class FournitureUpdate(BaseModel):
    label: Optional[str] = None
    qty: Optional[int] = None
    ordered: Optional[bool] = None


@router.get("", response_model=List[FournitureResponse])
async def list_fournitures(db: AsyncSession = Depends(get_db)):
    """Newest first."""
    return [FournitureResponse.model_validate(f) for f in await FournitureService(db).list()]


@router.post("", response_model=FournitureResponse, status_code=201)
async def create_fourniture(body: FournitureCreate, db: AsyncSession = Depends(get_db)):
    fourniture = await FournitureService(db).create(body.label, body.qty, body.ordered)
    return FournitureResponse.model_validate(fourniture)


@router.put("/{fourniture_id}", response_model=FournitureResponse)
async def update_fourniture(fourniture_id: str, body: FournitureUpdate, db: AsyncSession = Depends(get_db)):
    fourniture = await FournitureService(db).update(fourniture_id, **body.model_dump(exclude_unset=True))
    return FournitureResponse.model_validate(fourniture)


@router.delete("/{fourniture_id}")
async def delete_fourniture(fourniture_id: str, db: AsyncSession = Depends(get_db)):
    await FournitureService(db).delete(fourniture_id)
    return {"success": True}
