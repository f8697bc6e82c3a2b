"""
Supply model - the workshop's shopping list of materials to order.
"""

from sqlalchemy import String, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from atelier.models.base import Base, UUIDMixin, TimestampMixin


class Fourniture(Base, UUIDMixin, TimestampMixin):
    """A supply line: what to buy, how many, and whether it was ordered."""
    __tablename__ = "fournitures"

    label: Mapped[str] = mapped_column(String(255), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    ordered: Mapped[bool] = mapped_column(Boolean, default=False)
