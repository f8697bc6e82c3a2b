"""
Production status model - one row per line item tracking its workflow position.
"""

import enum
from typing import Optional

from sqlalchemy import String, Boolean, Text, BigInteger, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from atelier.models.base import Base, UUIDMixin, TimestampMixin


class ProductionState(str, enum.Enum):
    """Workflow position of an item."""
    A_FAIRE = "a_faire"
    EN_COURS = "en_cours"
    EN_PAUSE = "en_pause"
    TERMINE = "termine"


class ProductionType(str, enum.Enum):
    """Production queue an item is dispatched to."""
    COUTURE = "couture"
    MAILLE = "maille"


class ProductionStatus(Base, UUIDMixin, TimestampMixin):
    """Per-item production status. Always created as a_faire and unassigned."""
    __tablename__ = "production_status"

    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    line_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(20), default=ProductionState.A_FAIRE.value, nullable=False)
    production_type: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255))
    urgent: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("order_id", "line_item_id", name="uq_production_status_item"),
        Index("idx_production_type", "production_type"),
        Index("idx_production_state", "status"),
    )
