"""
Order sync engine.

Pulls new orders from the upstream source and materializes them locally:
orders and items are insert-only, new items are dispatched to production
right away, and a final sweep dispatches anything that slipped through.

One sync runs at a time. The run's state (its in-flight fetch task, counters,
product cache) lives on a ``SyncSession`` owned by the engine for the length
of the run; ``cancel`` cancels the active-order fetch task of the current
session. Failed-order cleanup still runs after a cancel, nothing else does.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier.adapters.base import (
    BaseOrderSource,
    PlatformImage,
    PlatformLineItem,
    PlatformOrder,
    PlatformProductDetail,
)
from atelier.errors import NotFoundError, SyncAlreadyRunningError
from atelier.models import Assignment, Order, OrderItem, ProductImage, ProductionStatus
from atelier.services.dispatcher import ProductionDispatcher
from atelier.services.shipping import derive_shipping

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("processing", "completed")
FAILED_STATUSES = ("failed",)
WITHDRAWN_STATUSES = ("cancelled", "refunded")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class SyncResult:
    orders_created: int = 0
    orders_updated: int = 0
    items_created: int = 0
    items_updated: int = 0
    errors: List[Dict] = field(default_factory=list)
    failed_orders_deleted: int = 0
    cancelled: bool = False

    def to_dict(self) -> Dict:
        return {
            "orders_created": self.orders_created,
            "orders_updated": self.orders_updated,
            "items_created": self.items_created,
            "items_updated": self.items_updated,
            "errors": list(self.errors),
            "failed_orders_deleted": self.failed_orders_deleted,
            "cancelled": self.cancelled,
        }


@dataclass
class UpstreamBatch:
    """What one fetch pass brought back from the upstream source."""
    active: List[PlatformOrder] = field(default_factory=list)
    failed: List[PlatformOrder] = field(default_factory=list)
    withdrawn: List[PlatformOrder] = field(default_factory=list)


class SyncSession:
    """State of a single sync run. Created at start, discarded at end or cancel."""

    def __init__(self, since: Optional[datetime] = None):
        self.id = str(uuid.uuid4())
        self.started_at = datetime.utcnow()
        self.since = since
        self.after: Optional[datetime] = None
        self.result = SyncResult()
        self.task: Optional[asyncio.Task] = None
        self.cancel_requested = False
        self.product_cache: Dict[int, Optional[PlatformProductDetail]] = {}

    def cancel(self) -> bool:
        if self.task is None or self.task.done():
            return False
        self.cancel_requested = True
        self.task.cancel()
        return True

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "started_at": self.started_at.isoformat(),
            "since": self.since.isoformat() if self.since else None,
            "after": self.after.isoformat() if self.after else None,
            "fetching": self.task is not None and not self.task.done(),
        }


def normalize_since(since: Union[date, datetime, None]) -> Optional[datetime]:
    """An explicit lower bound always starts at midnight."""
    if since is None:
        return None
    if isinstance(since, datetime):
        since = since.date()
    return datetime.combine(since, time.min)


class SyncEngine:
    """Single-flight sync coordinator, kept on the application state."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        source_factory: Callable[[], BaseOrderSource],
    ):
        self.session_factory = session_factory
        self.source_factory = source_factory
        self.current: Optional[SyncSession] = None
        self.last_log: Optional[Dict] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Rolling log
    # ------------------------------------------------------------------

    def log(self, message: str, type: str = "info") -> None:
        """Replace the last sync log entry."""
        self.last_log = {
            "timestamp": datetime.utcnow().isoformat(),
            "message": message,
            "type": type,
        }
        logger.log(_LOG_LEVELS.get(type, logging.INFO), message)

    def clear_log(self) -> None:
        self.last_log = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def cancel(self) -> bool:
        """Cancel the in-flight fetch of the current run, if any."""
        if self.current is None or not self.current.cancel():
            return False
        self.log("⛔ Synchronization cancelled by user", "warning")
        return True

    async def run_sync(self, since: Union[date, datetime, None] = None) -> SyncResult:
        """Run a full sync. Raises SyncAlreadyRunningError if one is in flight."""
        if self._lock.locked():
            raise SyncAlreadyRunningError(self.current.started_at if self.current else None)
        source = self.source_factory()
        async with self._lock:
            session = SyncSession(normalize_since(since))
            self.current = session
            try:
                return await self._run(session, source)
            finally:
                self.current = None

    async def sync_single_order(self, order_id: int) -> SyncResult:
        """Fetch one upstream order and store it like a sync would."""
        if self._lock.locked():
            raise SyncAlreadyRunningError(self.current.started_at if self.current else None)
        source = self.source_factory()
        async with self._lock:
            session = SyncSession()
            self.current = session
            try:
                order = await source.get_order(order_id)
                if order is None:
                    raise NotFoundError(f"Order {order_id} not found upstream")
                self.log(f"🔄 Importing order #{order.order_number}")
                await self._process_order(session, source, order)
                return session.result
            finally:
                self.current = None

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run(self, session: SyncSession, source: BaseOrderSource) -> SyncResult:
        result = session.result
        self.log("🔄 Starting order synchronization")
        session.after = await self._fetch_window(session)

        active: List[PlatformOrder] = []
        session.task = asyncio.create_task(self._fetch_active(source, session.after))
        try:
            active = await session.task
        except asyncio.CancelledError:
            if not session.cancel_requested:
                raise
            result.cancelled = True
        finally:
            session.task = None

        # failed-order cleanup runs even when the active fetch was cancelled
        batch = await self._guarded(result, "terminal order fetch", self._fetch_terminal, source, session.after)
        batch = batch or UpstreamBatch()
        batch.active = active
        result.failed_orders_deleted = await self._guarded(
            result, "failed order cleanup", self._delete_failed_orders, batch.failed
        ) or 0
        if result.cancelled:
            return result

        await self._guarded(result, "drift report", self._report_drift, batch)

        if not batch.active:
            self.log("ℹ️ No new orders to synchronize")
        else:
            self.log(f"🔄 Processing {len(batch.active)} orders")
            for order in batch.active:
                await self._process_order(session, source, order)

        await self._guarded(result, "dispatch sweep", self._dispatch_sweep)

        self.log(
            f"📊 {result.orders_created} orders created, {result.orders_updated} updated, "
            f"{result.items_created} items created, {len(result.errors)} errors",
            "success" if not result.errors else "warning",
        )
        return result

    async def _guarded(self, result: SyncResult, step: str, func, *args):
        """Run one post-fetch step; a failure is recorded on the result instead of raised."""
        try:
            return await func(*args)
        except Exception as e:
            logger.exception(f"Sync step '{step}' failed")
            self.log(f"❌ {step} failed: {e}", "error")
            result.errors.append({"step": step, "error": str(e)})
            return None

    async def _dispatch_sweep(self) -> int:
        async with self.session_factory() as db:
            dispatched = await ProductionDispatcher(db).dispatch_existing_items()
            await db.commit()
        return dispatched

    async def _fetch_window(self, session: SyncSession) -> datetime:
        if session.since is not None:
            self.log(f"📅 Date filter: since {session.since.isoformat()}")
            return session.since

        async with self.session_factory() as db:
            latest = await db.scalar(select(func.max(Order.order_date)))
        if latest is not None:
            self.log(f"📅 Incremental: fetching after {latest.isoformat()}")
            return latest
        now = datetime.now().replace(microsecond=0)
        self.log(f"📅 No local orders, fetching from now ({now.isoformat()})")
        return now

    async def _fetch_active(self, source: BaseOrderSource, after: datetime) -> List[PlatformOrder]:
        """The cancellable part of a run: paginated fetch of processing/completed orders."""
        active: List[PlatformOrder] = []
        if not await source.probe_orders(after, ACTIVE_STATUSES):
            self.log("ℹ️ No new orders upstream (quick check)")
            return active

        page_number = 0
        async for page in source.iter_order_pages(after, ACTIVE_STATUSES):
            page_number += 1
            active.extend(page)
            self.log(f"📥 Page {page_number} fetched: {len(page)} orders")
        return active

    async def _fetch_terminal(self, source: BaseOrderSource, after: datetime) -> UpstreamBatch:
        """One pass over failed, cancelled and refunded orders."""
        batch = UpstreamBatch()
        async for page in source.iter_order_pages(after, FAILED_STATUSES + WITHDRAWN_STATUSES):
            for order in page:
                if order.status in FAILED_STATUSES:
                    batch.failed.append(order)
                elif order.status in WITHDRAWN_STATUSES:
                    batch.withdrawn.append(order)
        return batch

    async def _delete_failed_orders(self, failed: List[PlatformOrder]) -> int:
        deleted = 0
        for order in failed:
            async with self.session_factory() as db:
                counts = await delete_order_cascade(db, order.order_id)
                await db.commit()
            if counts["order"]:
                deleted += 1
                self.log(f"🗑️ Order #{order.order_number} failed upstream, deleted locally", "warning")
        return deleted

    async def _report_drift(self, batch: UpstreamBatch) -> None:
        """Log-only: local items missing upstream and items of withdrawn orders."""
        order_ids = [o.order_id for o in batch.active + batch.withdrawn]
        if not order_ids:
            return
        async with self.session_factory() as db:
            rows = await db.execute(
                select(OrderItem.order_id, OrderItem.line_item_id).where(OrderItem.order_id.in_(order_ids))
            )
            local: Dict[int, set] = {}
            for order_id, line_item_id in rows.all():
                local.setdefault(order_id, set()).add(line_item_id)

        for order in batch.active:
            upstream = {li.line_item_id for li in order.line_items}
            removed = local.get(order.order_id, set()) - upstream
            if removed:
                self.log(
                    f"⚠️ Order #{order.order_number}: {len(removed)} local items no longer upstream "
                    f"({sorted(removed)})",
                    "warning",
                )
        withdrawn_items = sum(len(local.get(o.order_id, ())) for o in batch.withdrawn)
        if withdrawn_items:
            self.log(
                f"⚠️ {withdrawn_items} local items belong to {len(batch.withdrawn)} cancelled/refunded orders",
                "warning",
            )

    # ------------------------------------------------------------------
    # Per order
    # ------------------------------------------------------------------

    async def _process_order(self, session: SyncSession, source: BaseOrderSource, order: PlatformOrder) -> None:
        """Store one order and its items. Failures are recorded, never raised."""
        result = session.result
        try:
            async with self.session_factory() as db:
                rows = await db.execute(
                    select(OrderItem.line_item_id).where(OrderItem.order_id == order.order_id)
                )
                known = set(rows.scalars().all())

            new_items = [li for li in order.line_items if li.line_item_id not in known]
            details = {}
            for li in new_items:
                details[li.line_item_id] = await self._product_detail(session, source, li)

            async with self.session_factory() as db:
                try:
                    created, updated, items_created = await self._write_order(db, order, new_items, details)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except Exception as e:
            logger.exception(f"Order {order.order_id} sync failed")
            self.log(f"❌ Error on order #{order.order_number}: {e}", "error")
            result.errors.append({"order_id": order.order_id, "error": str(e)})
            return

        result.orders_created += int(created)
        result.orders_updated += int(updated)
        result.items_created += items_created

    async def _write_order(
        self,
        db: AsyncSession,
        order: PlatformOrder,
        new_items: List[PlatformLineItem],
        details: Dict[int, Optional[PlatformProductDetail]],
    ) -> Tuple[bool, bool, int]:
        created = False
        updated = False

        existing = await db.scalar(select(Order).where(Order.order_id == order.order_id))
        if existing is not None:
            if not existing.items:
                snapshot = await item_snapshots(db, order.order_id)
                if snapshot:
                    existing.items = snapshot
                    updated = True
            row = existing
        else:
            row = build_order(order, await item_snapshots(db, order.order_id))
            db.add(row)
            created = True
        await db.flush()

        dispatcher = ProductionDispatcher(db)
        items_created = 0
        for li in new_items:
            already = await db.scalar(
                select(OrderItem.id).where(
                    OrderItem.order_id == order.order_id,
                    OrderItem.line_item_id == li.line_item_id,
                )
            )
            if already is not None:
                continue
            detail = details.get(li.line_item_id)
            db.add(OrderItem(
                order_id=order.order_id,
                line_item_id=li.line_item_id,
                product_id=li.product_id,
                variation_id=li.variation_id,
                product_name=li.name,
                quantity=li.quantity,
                price=li.price,
                permalink=detail.permalink if detail else None,
                image_url=detail.image_url if detail else None,
                meta_data=li.meta_data,
            ))
            await db.flush()
            items_created += 1
            if await dispatcher.get_status(order.order_id, li.line_item_id) is None:
                await dispatcher.dispatch(order.order_id, li.line_item_id, li.name)

        # An order stored in this pass picks up the items stored with it
        if created and items_created and not row.items:
            row.items = await item_snapshots(db, order.order_id)
            await db.flush()

        return created, updated, items_created

    async def _product_detail(
        self, session: SyncSession, source: BaseOrderSource, li: PlatformLineItem
    ) -> Optional[PlatformProductDetail]:
        """Product permalink and image, fetched once per product and run."""
        if not li.product_id:
            return None
        if li.product_id in session.product_cache:
            return session.product_cache[li.product_id]

        detail = await source.get_product(li.product_id)
        session.product_cache[li.product_id] = detail
        if detail is not None and detail.image_url:
            image = await source.download_image(detail.image_url)
            if image is not None:
                await self._store_image(li.product_id, detail.image_url, image)
        return detail

    async def _store_image(self, product_id: int, url: str, image: PlatformImage) -> None:
        try:
            async with self.session_factory() as db:
                row = await db.scalar(select(ProductImage).where(ProductImage.product_id == product_id))
                if row is None:
                    row = ProductImage(product_id=product_id)
                    db.add(row)
                row.source_url = url
                row.content_type = image.content_type or "image/jpeg"
                row.data = image.data
                await db.commit()
        except Exception as e:
            logger.warning(f"Could not store image for product {product_id}: {e}")


# ----------------------------------------------------------------------
# Helpers shared with the orders service
# ----------------------------------------------------------------------

def build_order(order: PlatformOrder, items: List[Dict]) -> Order:
    shipping = derive_shipping(order)
    billing = order.billing
    return Order(
        order_id=order.order_id,
        order_number=order.order_number,
        order_date=order.date_created,
        status=order.status,
        total=order.total or 0,
        customer_name=f"{billing.first_name} {billing.last_name}".strip(),
        customer_email=billing.email,
        customer_phone=billing.phone,
        customer_address=f"{billing.address_1}, {billing.postcode} {billing.city}".strip(),
        customer_country=(order.shipping.country or billing.country or None),
        customer_note=order.customer_note or "",
        shipping_method=shipping.method,
        shipping_title=shipping.title,
        shipping_carrier=shipping.carrier,
        items=items,
    )


async def item_snapshots(db: AsyncSession, order_id: int) -> List[Dict]:
    result = await db.execute(
        select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.line_item_id)
    )
    return [item.snapshot() for item in result.scalars().all()]


async def delete_order_cascade(db: AsyncSession, order_id: int) -> Dict[str, int]:
    """Delete an order with its items, statuses and assignments. Returns row counts."""
    statuses = await db.execute(delete(ProductionStatus).where(ProductionStatus.order_id == order_id))
    assignments = await db.execute(delete(Assignment).where(Assignment.order_id == order_id))
    items = await db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
    orders = await db.execute(delete(Order).where(Order.order_id == order_id))
    return {
        "order": orders.rowcount,
        "items": items.rowcount,
        "statuses": statuses.rowcount,
        "assignments": assignments.rowcount,
    }
