"""
Production API Router.

Dispatch, redispatch, status updates, urgency and the bulk maintenance
operations on production statuses.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier.database import get_db
from atelier.errors import NotFoundError
from atelier.routers.dependencies import get_session_factory
from atelier.services.dispatcher import ProductionDispatcher
from atelier.services.reconciler import AssignmentReconciler
from atelier.tasks.maintenance import run_maintenance_sweeps

router = APIRouter()


class ProductionStatusResponse(BaseModel):
    id: str
    order_id: int
    line_item_id: int
    status: str
    production_type: str
    assigned_to: Optional[str]
    urgent: bool
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DispatchRequest(BaseModel):
    order_id: int
    line_item_id: int
    production_type: str


class RedispatchRequest(BaseModel):
    order_id: int
    line_item_id: int
    new_production_type: str


class StatusUpdateRequest(BaseModel):
    order_id: int
    line_item_id: int
    status: str
    notes: Optional[str] = None
    urgent: Optional[bool] = None


class UrgentRequest(BaseModel):
    order_id: int
    line_item_id: int
    urgent: bool


class BulkStatusItem(BaseModel):
    order_id: int
    line_item_id: int
    status: str
    notes: Optional[str] = None
    urgent: Optional[bool] = None


class BulkStatusRequest(BaseModel):
    updates: List[BulkStatusItem]


class ResetResponse(BaseModel):
    production_modified_count: int
    assignments_deleted_count: int
    status_counts: Dict[str, int]
    remaining_assignments: int


@router.get("/statuses", response_model=List[ProductionStatusResponse])
async def list_statuses(status: Optional[str] = Query(None), db: AsyncSession = Depends(get_db)):
    statuses = await ProductionDispatcher(db).list_statuses(status)
    return [ProductionStatusResponse.model_validate(s) for s in statuses]


@router.get("/statuses/{order_id}/{line_item_id}", response_model=ProductionStatusResponse)
async def get_status(order_id: int, line_item_id: int, db: AsyncSession = Depends(get_db)):
    status = await ProductionDispatcher(db).get_status(order_id, line_item_id)
    if status is None:
        raise NotFoundError(f"No production status for item {order_id}/{line_item_id}")
    return ProductionStatusResponse.model_validate(status)


@router.get("/stats")
async def production_stats(db: AsyncSession = Depends(get_db)):
    return await ProductionDispatcher(db).stats()


@router.post("/dispatch", response_model=ProductionStatusResponse)
async def dispatch_item(body: DispatchRequest, db: AsyncSession = Depends(get_db)):
    """Put an item without status into an explicit queue."""
    status = await ProductionDispatcher(db).dispatch_item(
        body.order_id, body.line_item_id, body.production_type
    )
    return ProductionStatusResponse.model_validate(status)


@router.put("/redispatch", response_model=ProductionStatusResponse)
async def redispatch_item(body: RedispatchRequest, db: AsyncSession = Depends(get_db)):
    status = await ProductionDispatcher(db).redispatch(
        body.order_id, body.line_item_id, body.new_production_type
    )
    return ProductionStatusResponse.model_validate(status)


@router.put("/status", response_model=ProductionStatusResponse)
async def update_status(body: StatusUpdateRequest, db: AsyncSession = Depends(get_db)):
    """Update an item's status. Back to a_faire drops its assignment."""
    status = await AssignmentReconciler(db).set_status(
        body.order_id, body.line_item_id, body.status, body.notes, body.urgent
    )
    return ProductionStatusResponse.model_validate(status)


@router.post("/bulk-update")
async def bulk_update_status(body: BulkStatusRequest, db: AsyncSession = Depends(get_db)):
    """Several status updates in one transaction; any rejected entry cancels them all."""
    count = await AssignmentReconciler(db).bulk_update_status([u.model_dump() for u in body.updates])
    return {"success": True, "modified_count": count}


@router.put("/urgent", response_model=ProductionStatusResponse)
async def set_urgent(body: UrgentRequest, db: AsyncSession = Depends(get_db)):
    status = await ProductionDispatcher(db).set_urgent(body.order_id, body.line_item_id, body.urgent)
    return ProductionStatusResponse.model_validate(status)


@router.post("/dispatch-existing")
async def dispatch_existing(db: AsyncSession = Depends(get_db)):
    """Sweep: dispatch every item that still has no status."""
    dispatched = await ProductionDispatcher(db).dispatch_existing_items()
    return {"dispatched": dispatched}


@router.post("/maintenance")
async def run_maintenance(session_factory: async_sessionmaker = Depends(get_session_factory)):
    """Run every self-healing sweep now."""
    return await run_maintenance_sweeps(session_factory)


@router.post("/reset", response_model=ResetResponse)
async def reset_all(db: AsyncSession = Depends(get_db)):
    """Every item back to a_faire and every assignment deleted."""
    return await AssignmentReconciler(db).reset_all()
