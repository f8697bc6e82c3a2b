"""
Order archiving and completed-work statistics.
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.errors import NotFoundError
from atelier.models import ArchivedOrder, Order, OrderItem, ProductionState, ProductionStatus
from atelier.services.orders import order_to_dict, status_to_dict
from atelier.services.sync_engine import delete_order_cascade

logger = logging.getLogger(__name__)


def _json_safe(data: Dict) -> Dict:
    return {
        key: value.isoformat() if isinstance(value, (datetime, date)) else value
        for key, value in data.items()
    }


def period_starts(now: datetime) -> Dict[str, datetime]:
    """Start of the current ISO week (Monday), month and year."""
    today = datetime.combine(now.date(), datetime.min.time())
    return {
        "week": today - timedelta(days=today.weekday()),
        "month": today.replace(day=1),
        "year": today.replace(month=1, day=1),
    }


class ArchiveService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def archive_order(self, order_id: int) -> str:
        """Snapshot the order with its items and statuses, then delete it. Returns the archive id."""
        order = await self.db.scalar(select(Order).where(Order.order_id == order_id))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        items = (await self.db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.line_item_id)
        )).scalars().all()
        statuses = (await self.db.execute(
            select(ProductionStatus).where(ProductionStatus.order_id == order_id)
        )).scalars().all()

        order_data = order_to_dict(order)
        order_data.pop("items")
        order_data.pop("is_late")
        archive = ArchivedOrder(
            order_id=order.order_id,
            order_number=order.order_number,
            order=_json_safe(order_data),
            items=[item.snapshot() for item in items],
            statuses=[_json_safe(status_to_dict(s)) for s in statuses],
            archived_at=datetime.utcnow(),
        )
        self.db.add(archive)
        await self.db.flush()

        await delete_order_cascade(self.db, order_id)
        await self.db.flush()
        logger.info(f"📦 Order #{order.order_number} archived ({len(items)} items)")
        return archive.id

    async def list_archives(self, limit: int = 50, offset: int = 0) -> Dict:
        total = await self.db.scalar(select(func.count()).select_from(ArchivedOrder))
        result = await self.db.execute(
            select(ArchivedOrder).order_by(ArchivedOrder.archived_at.desc()).limit(limit).offset(offset)
        )
        return {"archives": list(result.scalars().all()), "total": total or 0}

    async def stats(self, now: Optional[datetime] = None) -> Dict:
        """
        Completed items in archives for the current week, month and year,
        grouped by production type and by worker.
        """
        starts = period_starts(now or datetime.utcnow())
        result = await self.db.execute(
            select(ArchivedOrder).where(ArchivedOrder.archived_at >= min(starts.values()))
        )
        archives: List[ArchivedOrder] = list(result.scalars().all())

        stats = {}
        for period, start in starts.items():
            by_type: Counter = Counter()
            by_worker: Counter = Counter()
            for archive in archives:
                if archive.archived_at < start:
                    continue
                for status in archive.statuses or []:
                    if status.get("status") != ProductionState.TERMINE.value:
                        continue
                    by_type[status.get("production_type") or "inconnu"] += 1
                    by_worker[status.get("assigned_to") or "non assigné"] += 1
            stats[period] = {
                "total": sum(by_type.values()),
                "by_type": dict(by_type),
                "by_worker": dict(by_worker),
            }
        return stats
