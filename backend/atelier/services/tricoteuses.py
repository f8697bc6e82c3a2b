import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.errors import InvalidRequestError, NotFoundError
from atelier.models import Tricoteuse

logger = logging.getLogger(__name__)

GENDERS = ("feminin", "masculin")


class TricoteuseService:
    """Worker CRUD."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self) -> List[Tricoteuse]:
        result = await self.db.execute(select(Tricoteuse).order_by(Tricoteuse.first_name))
        return list(result.scalars().all())

    async def get(self, tricoteuse_id: str) -> Tricoteuse:
        tricoteuse = await self.db.get(Tricoteuse, tricoteuse_id)
        if tricoteuse is None:
            raise NotFoundError(f"Tricoteuse {tricoteuse_id} not found")
        return tricoteuse

    async def create(
        self, first_name: str, color: str, photo_url: Optional[str] = None, gender: Optional[str] = None
    ) -> Tricoteuse:
        first_name = (first_name or "").strip()
        if not first_name or not color:
            raise InvalidRequestError("first_name and color are required")
        gender = gender or "feminin"
        if gender not in GENDERS:
            raise InvalidRequestError(f"Invalid gender '{gender}'")

        tricoteuse = Tricoteuse(first_name=first_name, color=color, photo_url=photo_url or "", gender=gender)
        self.db.add(tricoteuse)
        await self.db.flush()
        logger.info(f"👤 Tricoteuse {first_name} created")
        return tricoteuse

    async def update(self, tricoteuse_id: str, **fields) -> Tricoteuse:
        tricoteuse = await self.get(tricoteuse_id)
        if "first_name" in fields and fields["first_name"] is not None:
            first_name = fields["first_name"].strip()
            if not first_name:
                raise InvalidRequestError("first_name cannot be empty")
            tricoteuse.first_name = first_name
        if fields.get("color"):
            tricoteuse.color = fields["color"]
        if fields.get("photo_url") is not None:
            tricoteuse.photo_url = fields["photo_url"]
        if fields.get("gender"):
            if fields["gender"] not in GENDERS:
                raise InvalidRequestError(f"Invalid gender '{fields['gender']}'")
            tricoteuse.gender = fields["gender"]
        await self.db.flush()
        return tricoteuse

    async def delete(self, tricoteuse_id: str) -> None:
        tricoteuse = await self.get(tricoteuse_id)
        await self.db.delete(tricoteuse)
        await self.db.flush()
