"""
Sync API Router.

Starts, cancels and reports on WooCommerce order synchronization.
"""

from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from atelier.routers.dependencies import get_sync_engine
from atelier.services.sync_engine import SyncEngine

router = APIRouter()


class SyncRequest(BaseModel):
    since: Optional[date] = None


class SyncResultResponse(BaseModel):
    orders_created: int
    orders_updated: int
    items_created: int
    items_updated: int
    errors: List[Dict]
    failed_orders_deleted: int = 0
    cancelled: bool = False


class SyncLogResponse(BaseModel):
    log: Optional[Dict]
    has_log: bool


@router.post("/orders", response_model=SyncResultResponse)
async def sync_orders(
    body: Optional[SyncRequest] = None,
    since: Optional[date] = None,
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Run a sync. ``since`` (body or query) digs into the past from that day's midnight."""
    since = (body.since if body else None) or since
    result = await engine.run_sync(since)
    return SyncResultResponse(**result.to_dict())


@router.post("/orders/{order_id}", response_model=SyncResultResponse)
async def sync_single_order(order_id: int, engine: SyncEngine = Depends(get_sync_engine)):
    """Import or backfill one upstream order."""
    result = await engine.sync_single_order(order_id)
    return SyncResultResponse(**result.to_dict())


@router.post("/cancel")
async def cancel_sync(engine: SyncEngine = Depends(get_sync_engine)):
    return {"cancelled": engine.cancel()}


@router.get("/status")
async def sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return {
        "running": engine.is_running,
        "session": engine.current.to_dict() if engine.current else None,
    }


@router.get("/logs", response_model=SyncLogResponse)
async def get_sync_log(engine: SyncEngine = Depends(get_sync_engine)):
    """Latest sync log line, polled by the dashboard."""
    return SyncLogResponse(log=engine.last_log, has_log=engine.last_log is not None)


@router.post("/logs/clear")
async def clear_sync_log(engine: SyncEngine = Depends(get_sync_engine)):
    engine.clear_log()
    return {"success": True}
