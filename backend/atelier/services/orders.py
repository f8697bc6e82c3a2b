"""
Order read and maintenance operations used by the dashboard.
"""

import asyncio
import logging
from collections import Counter
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier.config import get_settings
from atelier.errors import InvalidRequestError, NotFoundError
from atelier.models import Assignment, Order, OrderItem, ProductionStatus, ProductionType
from atelier.services.deadline import is_late
from atelier.services.dispatcher import ProductionDispatcher, parse_production_type
from atelier.services.sync_engine import delete_order_cascade, item_snapshots

logger = logging.getLogger(__name__)

# Fields of a stored order that may be edited by hand
EDITABLE_ORDER_FIELDS = (
    "order_number", "order_date", "status", "customer_name", "customer_email", "customer_phone",
    "customer_address", "customer_country", "customer_note", "shipping_method", "shipping_title",
    "shipping_carrier",
)

DEFAULT_PRODUCTION_STATUS = {"status": "a_faire", "production_type": None, "assigned_to": None}


def order_to_dict(order: Order, deadline: Optional[date] = None) -> Dict:
    data = {
        "id": order.id,
        "order_id": order.order_id,
        "order_number": order.order_number,
        "order_date": order.order_date,
        "status": order.status,
        "total": float(order.total or 0),
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "customer_address": order.customer_address,
        "customer_country": order.customer_country,
        "customer_note": order.customer_note or "",
        "shipping_method": order.shipping_method,
        "shipping_title": order.shipping_title,
        "shipping_carrier": order.shipping_carrier,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [],
        "is_late": None,
    }
    if deadline is not None:
        data["is_late"] = is_late(order.order_date, deadline)
    return data


def status_to_dict(status: ProductionStatus) -> Dict:
    return {
        "id": status.id,
        "order_id": status.order_id,
        "line_item_id": status.line_item_id,
        "status": status.status,
        "production_type": status.production_type,
        "assigned_to": status.assigned_to,
        "urgent": bool(status.urgent),
        "notes": status.notes,
        "created_at": status.created_at,
        "updated_at": status.updated_at,
    }


def item_to_dict(item: OrderItem, status: Optional[ProductionStatus]) -> Dict:
    data = item.snapshot()
    data["order_id"] = item.order_id
    data["production_status"] = status_to_dict(status) if status else dict(DEFAULT_PRODUCTION_STATUS)
    return data


def dominant_production_type(items: List[Dict]) -> Optional[str]:
    """Most frequent production type; on a tie the one seen first wins."""
    types = [
        item["production_status"]["production_type"]
        for item in items
        if item["production_status"].get("production_type")
    ]
    if not types:
        return None
    counts = Counter(types)
    best = max(counts.values())
    return next(t for t in types if counts[t] == best)


class OrdersService:
    """Enriched order reads, manual orders, deletes and note edits."""

    def __init__(self, db: AsyncSession, session_factory: Optional[async_sessionmaker] = None):
        self.db = db
        self.session_factory = session_factory
        self.settings = get_settings()

    async def _items_with_status(self, db: AsyncSession, order_id: int) -> List[Dict]:
        items = (await db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.line_item_id)
        )).scalars().all()
        statuses = {
            s.line_item_id: s
            for s in (await db.execute(
                select(ProductionStatus).where(ProductionStatus.order_id == order_id)
            )).scalars().all()
        }
        return [item_to_dict(item, statuses.get(item.line_item_id)) for item in items]

    async def _enrich(self, order: Order, deadline: Optional[date]) -> Dict:
        data = order_to_dict(order, deadline)
        try:
            if self.session_factory is None:
                data["items"] = await self._items_with_status(self.db, order.order_id)
            else:
                async with self.session_factory() as db:
                    data["items"] = await self._items_with_status(db, order.order_id)
        except Exception as e:
            logger.error(f"❌ Could not enrich order {order.order_number}: {e}")
            data["items"] = []
        return data

    async def list_orders(self, deadline: Optional[date] = None) -> List[Dict]:
        """
        All orders, oldest first, each with its items and their statuses.

        Enrichment runs in batches; orders within a batch are enriched
        concurrently, each on its own session.
        """
        orders = (await self.db.execute(select(Order).order_by(Order.order_date))).scalars().all()
        batch_size = max(1, self.settings.ENRICH_BATCH_SIZE)

        enriched: List[Dict] = []
        for start in range(0, len(orders), batch_size):
            batch = orders[start:start + batch_size]
            if self.session_factory is None:
                # a single session cannot run queries concurrently
                results = [await self._enrich(order, deadline) for order in batch]
            else:
                results = await asyncio.gather(*(self._enrich(order, deadline) for order in batch))
            enriched.extend(results)
            if start + batch_size < len(orders):
                await asyncio.sleep(self.settings.ENRICH_BATCH_DELAY)
        return enriched

    async def get_order(self, order_id: int, deadline: Optional[date] = None) -> Dict:
        order = await self.db.scalar(select(Order).where(Order.order_id == order_id))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        data = order_to_dict(order, deadline)
        data["items"] = await self._items_with_status(self.db, order_id)
        return data

    async def search_by_number(self, order_number: str, deadline: Optional[date] = None) -> Dict:
        """One order by its display number, with its dominant production type."""
        order = await self.db.scalar(
            select(Order).where(Order.order_number == str(order_number).lstrip("#"))
        )
        if order is None:
            raise NotFoundError(f"Order #{order_number} not found")
        items = await self._items_with_status(self.db, order.order_id)
        if not items:
            raise NotFoundError(f"Order #{order_number} has no items")

        data = order_to_dict(order, deadline)
        data["items"] = items
        data["production_type"] = dominant_production_type(items)
        return data

    async def list_by_production_type(self, production_type: ProductionType, deadline: Optional[date] = None) -> List[Dict]:
        """
        One entry per item of the queue, each wrapped in its order, oldest
        order first. Runs the ensure-dispatched step beforehand.
        """
        created = await ProductionDispatcher(self.db).ensure_dispatched(production_type)
        if created:
            logger.info(f"🔄 {production_type.value} queue was empty, dispatched {created} items")

        statuses = (await self.db.execute(
            select(ProductionStatus).where(ProductionStatus.production_type == production_type.value)
        )).scalars().all()
        order_ids = {s.order_id for s in statuses}
        orders = {
            o.order_id: o
            for o in (await self.db.execute(select(Order).where(Order.order_id.in_(order_ids)))).scalars().all()
        }
        items = {
            (i.order_id, i.line_item_id): i
            for i in (await self.db.execute(
                select(OrderItem).where(OrderItem.order_id.in_(order_ids))
            )).scalars().all()
        }

        entries = []
        for status in statuses:
            order = orders.get(status.order_id)
            item = items.get((status.order_id, status.line_item_id))
            if order is None or item is None:
                continue
            data = order_to_dict(order, deadline)
            data["items"] = [item_to_dict(item, status)]
            entries.append(data)
        entries.sort(key=lambda e: e["order_date"])
        return entries

    async def delete_order(self, order_id: int) -> Dict[str, int]:
        counts = await delete_order_cascade(self.db, order_id)
        if not counts["order"]:
            raise NotFoundError(f"Order {order_id} not found")
        await self.db.flush()
        logger.info(
            f"🗑️ Order {order_id} deleted ({counts['items']} items, {counts['statuses']} statuses)"
        )
        return counts

    async def delete_item(self, order_id: int, line_item_id: int) -> Dict[str, int]:
        items = await self.db.execute(
            delete(OrderItem).where(OrderItem.order_id == order_id, OrderItem.line_item_id == line_item_id)
        )
        if not items.rowcount:
            raise NotFoundError(f"Item {order_id}/{line_item_id} not found")
        statuses = await self.db.execute(
            delete(ProductionStatus).where(
                ProductionStatus.order_id == order_id, ProductionStatus.line_item_id == line_item_id
            )
        )
        await self.db.execute(
            delete(Assignment).where(Assignment.order_id == order_id, Assignment.line_item_id == line_item_id)
        )
        await self.db.flush()
        return {"item": items.rowcount, "status": statuses.rowcount}

    async def update_customer_note(self, order_id: int, note: Optional[str]) -> Order:
        order = await self.db.scalar(select(Order).where(Order.order_id == order_id))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        order.customer_note = note or ""
        await self.db.flush()
        return order

    # ------------------------------------------------------------------
    # Manual orders
    # ------------------------------------------------------------------

    async def _next_manual_order_id(self) -> int:
        """Manual orders take negative ids so they never collide with WooCommerce ones."""
        lowest = await self.db.scalar(select(func.min(Order.order_id)))
        return min(lowest or 0, 0) - 1

    async def create_order(self, data: Dict) -> Dict:
        """
        Store an order entered by hand, with its items, and dispatch each item.

        Items carrying a ``production_type`` go to that queue, the others are
        classified from their name like synced items. Line item ids are
        numbered from 1 unless given.
        """
        order_number = str(data.get("order_number") or "").strip().lstrip("#")
        if not order_number:
            raise InvalidRequestError("order_number is required")
        items = data.get("items") or []
        if not items:
            raise InvalidRequestError("A manual order needs at least one item")
        line_item_ids = [int(entry.get("line_item_id") or position) for position, entry in enumerate(items, start=1)]
        if len(set(line_item_ids)) != len(line_item_ids):
            raise InvalidRequestError("Duplicate line_item_id in manual order")
        for entry in items:
            if not str(entry.get("product_name") or "").strip():
                raise InvalidRequestError("Every item needs a product_name")
            if entry.get("production_type"):
                parse_production_type(entry["production_type"])

        order_id = data.get("order_id")
        if order_id is None:
            order_id = await self._next_manual_order_id()
        elif (
            await self.db.scalar(select(Order.id).where(Order.order_id == order_id)) is not None
            or await self.db.scalar(select(OrderItem.id).where(OrderItem.order_id == order_id).limit(1)) is not None
        ):
            raise InvalidRequestError(f"Order {order_id} already exists")

        dispatcher = ProductionDispatcher(self.db)
        total = 0.0
        for line_item_id, entry in zip(line_item_ids, items):
            quantity = int(entry.get("quantity") or 1)
            price = float(entry.get("price") or 0)
            total += quantity * price
            name = entry["product_name"].strip()
            self.db.add(OrderItem(
                order_id=order_id,
                line_item_id=line_item_id,
                product_id=entry.get("product_id") or None,
                product_name=name,
                quantity=quantity,
                price=price,
                meta_data=list(entry.get("meta_data") or []),
            ))
            await self.db.flush()
            if entry.get("production_type"):
                await dispatcher.dispatch_item(order_id, line_item_id, entry["production_type"])
            else:
                await dispatcher.dispatch(order_id, line_item_id, name)

        order = Order(
            order_id=order_id,
            order_number=order_number,
            order_date=data.get("order_date") or datetime.utcnow(),
            status=data.get("status") or "processing",
            total=data.get("total") if data.get("total") is not None else total,
            customer_name=(data.get("customer_name") or data.get("customer") or "").strip(),
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            customer_address=data.get("customer_address"),
            customer_country=data.get("customer_country") or "FR",
            customer_note=data.get("customer_note") or "",
            shipping_method=data.get("shipping_method"),
            shipping_title=data.get("shipping_title"),
            shipping_carrier=data.get("shipping_carrier"),
            items=await item_snapshots(self.db, order_id),
        )
        self.db.add(order)
        await self.db.flush()
        logger.info(f"📝 Manual order #{order_number} created as {order_id} with {len(items)} items")
        return await self.get_order(order_id)

    async def update_order(self, order_id: int, fields: Dict) -> Dict:
        """Edit the customer, shipping and status fields of a stored order."""
        order = await self.db.scalar(select(Order).where(Order.order_id == order_id))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        for name in EDITABLE_ORDER_FIELDS:
            if name not in fields:
                continue
            value = fields[name]
            if name == "order_number":
                value = str(value or "").strip().lstrip("#")
                if not value:
                    raise InvalidRequestError("order_number cannot be empty")
            elif name in ("order_date", "status", "customer_name") and value is None:
                raise InvalidRequestError(f"{name} cannot be empty")
            elif name == "customer_note":
                value = value or ""
            setattr(order, name, value)
        await self.db.flush()
        return await self.get_order(order_id)
