"""
Assignment reconciler.

Keeps Assignment and ProductionStatus consistent: an item has an assignment
exactly when its production status is not a_faire. The rule is enforced on
every write (assign, unassign, set_status, update_assignment) and repaired
in bulk by ``reconcile``, which can run at any time.
"""

import logging
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.errors import InvalidRequestError, NotFoundError
from atelier.models import (
    ArticleKey,
    Assignment,
    OrderItem,
    ProductionState,
    ProductionStatus,
    Tricoteuse,
)
from atelier.services.dispatcher import ProductionDispatcher

logger = logging.getLogger(__name__)


def parse_state(value) -> ProductionState:
    try:
        return ProductionState(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ProductionState)
        raise InvalidRequestError(f"Invalid status '{value}', expected one of: {allowed}")


class AssignmentReconciler:
    """Assignment CRUD with its ProductionStatus side effects."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.dispatcher = ProductionDispatcher(db)

    # ------------------------------------------------------------------
    # Key resolution
    # ------------------------------------------------------------------

    async def resolve_key(self, article_id: Union[str, int]) -> ArticleKey:
        """
        Turn a client-supplied article id into an item key.

        ``orderId_lineItemId`` is taken as is. A bare line item id is accepted
        only when it identifies exactly one known item.
        """
        key = ArticleKey.parse_composite(article_id)
        if key is not None:
            return key

        try:
            line_item_id = int(str(article_id).strip())
        except ValueError:
            raise InvalidRequestError(f"Malformed article id '{article_id}'")

        candidates = set()
        rows = await self.db.execute(
            select(OrderItem.order_id).where(OrderItem.line_item_id == line_item_id)
        )
        candidates.update(rows.scalars().all())
        if not candidates:
            rows = await self.db.execute(
                select(ProductionStatus.order_id).where(ProductionStatus.line_item_id == line_item_id)
            )
            candidates.update(rows.scalars().all())

        if not candidates:
            raise InvalidRequestError(f"Unknown article '{article_id}'")
        if len(candidates) > 1:
            raise InvalidRequestError(
                f"Article '{article_id}' matches items in several orders, use orderId_lineItemId"
            )
        return ArticleKey(order_id=candidates.pop(), line_item_id=line_item_id)

    async def _find_assignment(self, article_id: Union[str, int]) -> Tuple[Optional[Assignment], Optional[ArticleKey]]:
        """Look up by assignment id, raw article_id, then resolved key."""
        text = str(article_id).strip()
        assignment = await self.db.scalar(
            select(Assignment).where(or_(Assignment.id == text, Assignment.article_id == text))
        )
        if assignment is not None:
            return assignment, assignment.key

        try:
            key = await self.resolve_key(text)
        except InvalidRequestError:
            return None, None
        return await self._assignment_for(key), key

    async def _assignment_for(self, key: ArticleKey) -> Optional[Assignment]:
        return await self.db.scalar(
            select(Assignment).where(
                Assignment.order_id == key.order_id,
                Assignment.line_item_id == key.line_item_id,
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_assignments(self) -> List[Assignment]:
        result = await self.db.execute(select(Assignment).order_by(Assignment.assigned_at.desc()))
        return list(result.scalars().all())

    async def get_assignment(self, article_id: Union[str, int]) -> Assignment:
        assignment, _ = await self._find_assignment(article_id)
        if assignment is None:
            raise NotFoundError(f"No assignment for article '{article_id}'")
        return assignment

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def assign(
        self,
        article_id: Union[str, int],
        tricoteuse_id: str,
        tricoteuse_name: str,
        status: str = ProductionState.EN_COURS.value,
        urgent: bool = False,
    ) -> Assignment:
        """Upsert the assignment, then mirror worker and status onto the item."""
        if not tricoteuse_id or not (tricoteuse_name or "").strip():
            raise InvalidRequestError("tricoteuse_id and tricoteuse_name are required")
        state = parse_state(status or ProductionState.EN_COURS.value)
        if state == ProductionState.A_FAIRE:
            raise InvalidRequestError("An assigned article cannot be a_faire, unassign it instead")

        key = await self.resolve_key(article_id)
        assignment = await self._assignment_for(key)
        if assignment is None:
            assignment = Assignment(
                article_id=key.article_id,
                order_id=key.order_id,
                line_item_id=key.line_item_id,
            )
            self.db.add(assignment)
        assignment.tricoteuse_id = str(tricoteuse_id)
        assignment.tricoteuse_name = tricoteuse_name.strip()
        assignment.status = state.value
        assignment.urgent = bool(urgent)

        production = await self.dispatcher.get_status(key.order_id, key.line_item_id)
        if production is None:
            item = await self.db.scalar(
                select(OrderItem).where(
                    OrderItem.order_id == key.order_id,
                    OrderItem.line_item_id == key.line_item_id,
                )
            )
            production = await self.dispatcher.dispatch(
                key.order_id, key.line_item_id, item.product_name if item else None
            )
        production.status = state.value
        production.assigned_to = assignment.tricoteuse_name

        await self.db.flush()
        logger.info(f"👤 Article {key.article_id} assigned to {assignment.tricoteuse_name} ({state.value})")
        return assignment

    async def unassign(self, identifier: Union[str, int]) -> bool:
        """
        Delete the assignment and force the item back to a_faire.

        The status side is repaired even when no assignment is found. Returns
        whether an assignment row was deleted.
        """
        assignment, key = await self._find_assignment(identifier)
        if key is None:
            raise NotFoundError(f"No assignment or article matches '{identifier}'")

        deleted = False
        if assignment is not None:
            await self.db.delete(assignment)
            deleted = True

        production = await self.dispatcher.get_status(key.order_id, key.line_item_id)
        if production is not None:
            production.status = ProductionState.A_FAIRE.value
            production.assigned_to = None

        await self.db.flush()
        logger.info(f"Article {key.article_id} unassigned (assignment deleted: {deleted})")
        return deleted

    async def set_status(
        self,
        order_id: int,
        line_item_id: int,
        status: str,
        notes: Optional[str] = None,
        urgent: Optional[bool] = None,
    ) -> ProductionStatus:
        """
        Update an item's status and bring its assignment in line.

        Only a_faire is accepted on an unassigned item; work starts through
        ``assign``.
        """
        state = parse_state(status)
        production = await self.dispatcher.get_status(order_id, line_item_id)
        if production is None:
            raise NotFoundError(f"No production status for item {order_id}/{line_item_id}")

        assignment = await self._assignment_for(ArticleKey(order_id, line_item_id))
        if assignment is None and state != ProductionState.A_FAIRE:
            raise InvalidRequestError(
                f"Item {order_id}/{line_item_id} is not assigned, assign it before moving it to {state.value}"
            )

        production.status = state.value
        production.notes = notes or None
        if urgent is not None:
            production.urgent = bool(urgent)

        if state == ProductionState.A_FAIRE:
            production.assigned_to = None
            if assignment is not None:
                await self.db.delete(assignment)
        else:
            assignment.status = state.value

        await self.db.flush()
        return production

    async def set_order_status(self, order_id: int, status: str) -> int:
        """Apply ``set_status`` to every item of an order. Returns the item count."""
        result = await self.db.execute(
            select(ProductionStatus).where(ProductionStatus.order_id == order_id)
        )
        statuses = list(result.scalars().all())
        if not statuses:
            raise NotFoundError(f"No production status for order {order_id}")
        for production in statuses:
            await self.set_status(
                order_id, production.line_item_id, status,
                notes=production.notes, urgent=production.urgent,
            )
        return len(statuses)

    async def bulk_update_status(self, updates: List[Dict]) -> int:
        """
        Apply ``set_status`` to each ``{order_id, line_item_id, status}`` entry.

        Stops at the first rejected entry; the caller's transaction is then
        rolled back as a whole. Returns the number of items updated.
        """
        if not updates:
            raise InvalidRequestError("updates must be a non-empty list")
        for entry in updates:
            await self.set_status(
                entry["order_id"], entry["line_item_id"], entry["status"],
                notes=entry.get("notes"), urgent=entry.get("urgent"),
            )
        logger.info(f"📋 Bulk status update applied to {len(updates)} items")
        return len(updates)

    async def update_assignment(
        self,
        assignment_id: str,
        tricoteuse_id: Optional[str] = None,
        tricoteuse_name: Optional[str] = None,
        status: Optional[str] = None,
        urgent: Optional[bool] = None,
    ) -> Assignment:
        """
        Edit an assignment by id and mirror worker and status onto the item.

        Without a name the worker's first name is looked up from its id. The
        item's notes are left alone.
        """
        assignment = await self.db.get(Assignment, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found")

        state = parse_state(status) if status is not None else None
        if state == ProductionState.A_FAIRE:
            raise InvalidRequestError("An assigned article cannot be a_faire, unassign it instead")
        if tricoteuse_id is not None and not (tricoteuse_name or "").strip():
            tricoteuse = await self.db.get(Tricoteuse, str(tricoteuse_id))
            if tricoteuse is None:
                raise NotFoundError(f"Tricoteuse {tricoteuse_id} not found")
            tricoteuse_name = tricoteuse.first_name

        if state is not None:
            assignment.status = state.value
        if tricoteuse_id is not None:
            assignment.tricoteuse_id = str(tricoteuse_id)
        if (tricoteuse_name or "").strip():
            assignment.tricoteuse_name = tricoteuse_name.strip()
        if urgent is not None:
            assignment.urgent = bool(urgent)

        production = await self.dispatcher.get_status(assignment.order_id, assignment.line_item_id)
        if production is not None:
            production.status = assignment.status
            production.assigned_to = assignment.tricoteuse_name

        await self.db.flush()
        logger.info(f"👤 Assignment {assignment.article_id} updated ({assignment.tricoteuse_name}, {assignment.status})")
        return assignment

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def reconcile(self) -> Dict[str, int]:
        """
        Repair pass over all assignments.

        Assignments whose item is missing or back to a_faire are deleted,
        the others take the item's status. Running it twice in a row returns
        zero counts the second time.
        """
        statuses = {
            (ps.order_id, ps.line_item_id): ps
            for ps in (await self.db.execute(select(ProductionStatus))).scalars().all()
        }
        assignments = (await self.db.execute(select(Assignment))).scalars().all()

        synced_count = 0
        removed_count = 0
        for assignment in assignments:
            production = statuses.get((assignment.order_id, assignment.line_item_id))
            if production is None or production.status == ProductionState.A_FAIRE.value:
                await self.db.delete(assignment)
                removed_count += 1
            elif production.status != assignment.status:
                assignment.status = production.status
                synced_count += 1

        await self.db.flush()
        if synced_count or removed_count:
            logger.info(f"🔧 Reconciled assignments: {synced_count} synced, {removed_count} removed")
        return {"synced_count": synced_count, "removed_count": removed_count}

    async def reset_all(self) -> Dict:
        """Every item back to a_faire, unassigned, no notes; every assignment deleted."""
        modified = await self.db.execute(
            update(ProductionStatus)
            .where(
                or_(
                    ProductionStatus.status != ProductionState.A_FAIRE.value,
                    ProductionStatus.assigned_to.is_not(None),
                    ProductionStatus.notes.is_not(None),
                )
            )
            .values(status=ProductionState.A_FAIRE.value, assigned_to=None, notes=None)
        )
        deleted = await self.db.execute(delete(Assignment))

        counts = await self.db.execute(
            select(ProductionStatus.status, func.count()).group_by(ProductionStatus.status)
        )
        remaining = await self.db.scalar(select(func.count()).select_from(Assignment))

        logger.warning(
            f"⚠️ Production reset: {modified.rowcount} statuses reset, {deleted.rowcount} assignments deleted"
        )
        return {
            "production_modified_count": modified.rowcount,
            "assignments_deleted_count": deleted.rowcount,
            "status_counts": {status: count for status, count in counts.all()},
            "remaining_assignments": remaining or 0,
        }
