import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.errors import InvalidRequestError, NotFoundError
from atelier.models import Fourniture

logger = logging.getLogger(__name__)


def _clean_label(label) -> str:
    label = (label or "").strip() if isinstance(label, str) else ""
    if not label:
        raise InvalidRequestError("label is required")
    return label


def _clean_qty(qty) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise InvalidRequestError("qty must be an integer >= 1")
    return qty


class FournitureService:
    """Supplies list CRUD."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self) -> List[Fourniture]:
        result = await self.db.execute(select(Fourniture).order_by(Fourniture.created_at.desc()))
        return list(result.scalars().all())

    async def get(self, fourniture_id: str) -> Fourniture:
        fourniture = await self.db.get(Fourniture, fourniture_id)
        if fourniture is None:
            raise NotFoundError(f"Fourniture {fourniture_id} not found")
        return fourniture

    async def create(self, label: str, qty: int = 1, ordered: Optional[bool] = False) -> Fourniture:
        fourniture = Fourniture(label=_clean_label(label), qty=_clean_qty(qty), ordered=bool(ordered))
        self.db.add(fourniture)
        await self.db.flush()
        logger.info(f"📦 Fourniture '{fourniture.label}' x{fourniture.qty} added")
        return fourniture

    async def update(self, fourniture_id: str, **fields) -> Fourniture:
        fourniture = await self.get(fourniture_id)
        if fields.get("label") is not None:
            fourniture.label = _clean_label(fields["label"])
        if fields.get("qty") is not None:
            fourniture.qty = _clean_qty(fields["qty"])
        if fields.get("ordered") is not None:
            fourniture.ordered = bool(fields["ordered"])
        await self.db.flush()
        return fourniture

    async def delete(self, fourniture_id: str) -> None:
        fourniture = await self.get(fourniture_id)
        await self.db.delete(fourniture)
        await self.db.flush()
