"""
Archive model - immutable snapshot of an order taken before deletion.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import String, DateTime, BigInteger, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from atelier.models.base import Base, UUIDMixin


class ArchivedOrder(Base, UUIDMixin):
    """Order + items + production statuses, copied verbatim at archive time."""
    __tablename__ = "archived_orders"

    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    order_number: Mapped[Optional[str]] = mapped_column(String(50))
    order: Mapped[dict] = mapped_column(JSON, nullable=False)
    items: Mapped[List[dict]] = mapped_column(JSON, default=list)
    statuses: Mapped[List[dict]] = mapped_column(JSON, default=list)
    archived_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_archive_order", "order_id"),
        Index("idx_archive_date", "archived_at"),
    )
