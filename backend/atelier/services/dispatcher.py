"""
Production dispatcher.

Decides which production queue (couture or maille) an item belongs to and
records that decision as a ProductionStatus row.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.errors import InvalidRequestError, NotFoundError
from atelier.models import Order, OrderItem, ProductionStatus, ProductionState, ProductionType

logger = logging.getLogger(__name__)

MAILLE_KEYWORDS = ("tricotée", "tricoté", "knitted")


def classify(product_name: Optional[str]) -> ProductionType:
    """Keyword match on the product name; anything not knitted is couture."""
    name = (product_name or "").lower()
    if any(keyword in name for keyword in MAILLE_KEYWORDS):
        return ProductionType.MAILLE
    return ProductionType.COUTURE


def parse_production_type(value) -> ProductionType:
    try:
        return ProductionType(value)
    except ValueError:
        raise InvalidRequestError(
            f"Invalid production type '{value}', expected 'couture' or 'maille'"
        )


class ProductionDispatcher:
    """Creates and retypes ProductionStatus rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_status(self, order_id: int, line_item_id: int) -> Optional[ProductionStatus]:
        result = await self.db.execute(
            select(ProductionStatus).where(
                ProductionStatus.order_id == order_id,
                ProductionStatus.line_item_id == line_item_id,
            )
        )
        return result.scalar_one_or_none()

    async def dispatch(self, order_id: int, line_item_id: int, product_name: Optional[str]) -> ProductionStatus:
        """
        Plain insert of an a_faire status. Callers only use it for items known
        to lack a status; a second call for the same key violates the unique
        constraint.
        """
        status = ProductionStatus(
            order_id=order_id,
            line_item_id=line_item_id,
            status=ProductionState.A_FAIRE.value,
            production_type=classify(product_name).value,
            assigned_to=None,
            urgent=False,
        )
        self.db.add(status)
        await self.db.flush()
        return status

    async def dispatch_item(
        self,
        order_id: int,
        line_item_id: int,
        production_type: str,
    ) -> ProductionStatus:
        """Manual dispatch to an explicit queue. The item starts a_faire and unassigned."""
        production_type = parse_production_type(production_type)
        if await self.get_status(order_id, line_item_id) is not None:
            raise InvalidRequestError(
                f"Item {order_id}/{line_item_id} is already dispatched, use redispatch"
            )
        status = ProductionStatus(
            order_id=order_id,
            line_item_id=line_item_id,
            status=ProductionState.A_FAIRE.value,
            production_type=production_type.value,
            assigned_to=None,
            urgent=False,
        )
        self.db.add(status)
        await self.db.flush()
        logger.info(f"Item {order_id}/{line_item_id} dispatched to {production_type.value}")
        return status

    async def redispatch(self, order_id: int, line_item_id: int, production_type: str) -> ProductionStatus:
        """Move an already dispatched item to another queue. Status and assignee are untouched."""
        production_type = parse_production_type(production_type)
        status = await self.get_status(order_id, line_item_id)
        if status is None:
            raise NotFoundError(f"No production status for item {order_id}/{line_item_id}")
        status.production_type = production_type.value
        await self.db.flush()
        logger.info(f"Item {order_id}/{line_item_id} redispatched to {production_type.value}")
        return status

    async def set_urgent(self, order_id: int, line_item_id: int, urgent: bool) -> ProductionStatus:
        """Upsert: an item without a status gets one, classified from its name."""
        status = await self.get_status(order_id, line_item_id)
        if status is None:
            item = await self.db.scalar(
                select(OrderItem).where(
                    OrderItem.order_id == order_id,
                    OrderItem.line_item_id == line_item_id,
                )
            )
            status = await self.dispatch(
                order_id, line_item_id, item.product_name if item else None
            )
        status.urgent = bool(urgent)
        await self.db.flush()
        return status

    async def items_without_status(self) -> List[OrderItem]:
        """Left anti-join of order_items against production_status."""
        result = await self.db.execute(
            select(OrderItem)
            .outerjoin(
                ProductionStatus,
                and_(
                    ProductionStatus.order_id == OrderItem.order_id,
                    ProductionStatus.line_item_id == OrderItem.line_item_id,
                ),
            )
            .where(ProductionStatus.id.is_(None))
            .order_by(OrderItem.order_id, OrderItem.line_item_id)
        )
        return list(result.scalars().all())

    async def dispatch_existing_items(self, production_type: Optional[ProductionType] = None) -> int:
        """
        Sweep: dispatch every item that has no status yet.

        With ``production_type`` only items classified into that queue are
        dispatched. Idempotent, a second run finds nothing to do.
        """
        dispatched = 0
        for item in await self.items_without_status():
            if production_type is not None and classify(item.product_name) != production_type:
                continue
            await self.dispatch(item.order_id, item.line_item_id, item.product_name)
            dispatched += 1
        if dispatched:
            logger.info(f"📋 Dispatched {dispatched} items lacking a production status")
        return dispatched

    async def ensure_dispatched(self, production_type: ProductionType) -> int:
        """
        Read-path guard used when listing a production queue: if the queue has
        no status rows at all, materialize statuses for the items that belong
        to it. Returns the number of statuses created.
        """
        existing = await self.db.scalar(
            select(ProductionStatus.id)
            .where(ProductionStatus.production_type == production_type.value)
            .limit(1)
        )
        if existing is not None:
            return 0
        return await self.dispatch_existing_items(production_type)

    async def list_statuses(self, status: Optional[str] = None) -> List[ProductionStatus]:
        query = select(ProductionStatus).order_by(ProductionStatus.order_id, ProductionStatus.line_item_id)
        if status:
            query = query.where(ProductionStatus.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats(self) -> dict:
        """Counts by queue and by status, plus items still waiting for dispatch."""
        by_type = await self.db.execute(
            select(ProductionStatus.production_type, func.count()).group_by(ProductionStatus.production_type)
        )
        by_status = await self.db.execute(
            select(ProductionStatus.status, func.count()).group_by(ProductionStatus.status)
        )
        pending = await self.items_without_status()
        return {
            "total_orders": await self.db.scalar(select(func.count()).select_from(Order)) or 0,
            "total_items": await self.db.scalar(select(func.count()).select_from(OrderItem)) or 0,
            "total_statuses": await self.db.scalar(select(func.count()).select_from(ProductionStatus)) or 0,
            "by_type": {t: c for t, c in by_type.all()},
            "by_status": {s: c for s, c in by_status.all()},
            "items_without_status": len(pending),
        }
