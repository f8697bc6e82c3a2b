"""
Orders API Router.

Enriched order reads for the dashboard, manual orders, plus delete, archive
and note edits.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier.database import get_db
from atelier.routers.dependencies import get_current_deadline, get_session_factory
from atelier.services.archive import ArchiveService
from atelier.services.dispatcher import parse_production_type
from atelier.services.orders import OrdersService
from atelier.services.reconciler import AssignmentReconciler

router = APIRouter()


class ProductionStatusOut(BaseModel):
    id: Optional[str] = None
    status: str
    production_type: Optional[str]
    assigned_to: Optional[str]
    urgent: bool = False
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None


class OrderItemOut(BaseModel):
    order_id: int
    line_item_id: int
    product_id: Optional[int]
    variation_id: Optional[int]
    product_name: str
    quantity: int
    price: float
    permalink: Optional[str]
    image_url: Optional[str]
    meta_data: List[Dict]
    production_status: ProductionStatusOut


class OrderOut(BaseModel):
    """An order with its items and their production status."""
    order_id: int
    order_number: str
    order_date: datetime
    status: str
    total: float
    customer_name: str
    customer_email: Optional[str]
    customer_phone: Optional[str]
    customer_address: Optional[str]
    customer_country: Optional[str]
    customer_note: str
    shipping_method: Optional[str]
    shipping_title: Optional[str]
    shipping_carrier: Optional[str]
    is_late: Optional[bool] = None
    production_type: Optional[str] = None
    items: List[OrderItemOut]


class OrderListResponse(BaseModel):
    orders: List[OrderOut]
    deadline: Optional[date] = None


class NoteUpdate(BaseModel):
    customer_note: Optional[str] = ""


class OrderStatusUpdate(BaseModel):
    status: str


class ManualItemIn(BaseModel):
    line_item_id: Optional[int] = None
    product_id: Optional[int] = None
    product_name: str
    quantity: int = 1
    price: float = 0
    production_type: Optional[str] = None
    meta_data: List[Dict] = []


class ManualOrderCreate(BaseModel):
    """An order entered by hand. Without order_id a negative id is allocated."""
    order_id: Optional[int] = None
    order_number: str
    order_date: Optional[datetime] = None
    status: Optional[str] = None
    total: Optional[float] = None
    customer_name: Optional[str] = None
    customer: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_country: Optional[str] = None
    customer_note: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_title: Optional[str] = None
    shipping_carrier: Optional[str] = None
    items: List[ManualItemIn] = []


class OrderUpdate(BaseModel):
    order_number: Optional[str] = None
    order_date: Optional[datetime] = None
    status: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_country: Optional[str] = None
    customer_note: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_title: Optional[str] = None
    shipping_carrier: Optional[str] = None


@router.get("", response_model=OrderListResponse)
async def list_orders(
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    deadline: date = Depends(get_current_deadline),
):
    orders = await OrdersService(db, session_factory).list_orders(deadline)
    return OrderListResponse(orders=orders, deadline=deadline)


@router.post("", response_model=OrderOut, status_code=201)
async def create_order(body: ManualOrderCreate, db: AsyncSession = Depends(get_db)):
    """Create an order by hand; its items are dispatched right away."""
    return await OrdersService(db).create_order(body.model_dump())


@router.get("/search/{order_number}", response_model=OrderOut)
async def search_order(
    order_number: str,
    db: AsyncSession = Depends(get_db),
    deadline: date = Depends(get_current_deadline),
):
    """Find an order by its display number."""
    return await OrdersService(db).search_by_number(order_number, deadline)


@router.get("/production/{production_type}", response_model=OrderListResponse)
async def list_by_production_type(
    production_type: str,
    db: AsyncSession = Depends(get_db),
    deadline: date = Depends(get_current_deadline),
):
    """One entry per item of the couture or maille queue, oldest first."""
    queue = parse_production_type(production_type)
    orders = await OrdersService(db).list_by_production_type(queue, deadline)
    return OrderListResponse(orders=orders, deadline=deadline)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    deadline: date = Depends(get_current_deadline),
):
    return await OrdersService(db).get_order(order_id, deadline)


@router.put("/{order_id}", response_model=OrderOut)
async def update_order(order_id: int, body: OrderUpdate, db: AsyncSession = Depends(get_db)):
    return await OrdersService(db).update_order(order_id, body.model_dump(exclude_unset=True))


@router.delete("/{order_id}")
async def delete_order(order_id: int, db: AsyncSession = Depends(get_db)):
    """Delete an order with its items, statuses and assignments."""
    deleted = await OrdersService(db).delete_order(order_id)
    return {"success": True, "order_id": order_id, "deleted": deleted}


@router.delete("/{order_id}/items/{line_item_id}")
async def delete_order_item(order_id: int, line_item_id: int, db: AsyncSession = Depends(get_db)):
    deleted = await OrdersService(db).delete_item(order_id, line_item_id)
    return {"success": True, "order_id": order_id, "line_item_id": line_item_id, "deleted": deleted}


@router.put("/{order_id}/note")
async def update_customer_note(order_id: int, body: NoteUpdate, db: AsyncSession = Depends(get_db)):
    order = await OrdersService(db).update_customer_note(order_id, body.customer_note)
    return {"success": True, "order_id": order.order_id, "customer_note": order.customer_note}


@router.put("/{order_id}/status")
async def update_order_status(order_id: int, body: OrderStatusUpdate, db: AsyncSession = Depends(get_db)):
    """Set the production status of every item of an order."""
    count = await AssignmentReconciler(db).set_order_status(order_id, body.status)
    return {"success": True, "order_id": order_id, "status": body.status, "modified_count": count}


@router.post("/{order_id}/archive")
async def archive_order(order_id: int, db: AsyncSession = Depends(get_db)):
    archive_id = await ArchiveService(db).archive_order(order_id)
    return {"success": True, "archive_id": archive_id}
