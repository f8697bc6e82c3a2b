"""
Worker and assignment models.

An Assignment stores its item key (order_id, line_item_id) explicitly. The key
is resolved once when the assignment is created and never re-parsed from
article_id afterwards.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, BigInteger, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from atelier.models.base import Base, UUIDMixin, TimestampMixin


@dataclass(frozen=True)
class ArticleKey:
    """Typed identity of a line item across orders."""
    order_id: int
    line_item_id: int

    @property
    def article_id(self) -> str:
        return f"{self.order_id}_{self.line_item_id}"

    @classmethod
    def parse_composite(cls, value) -> Optional["ArticleKey"]:
        """Parse an ``orderId_lineItemId`` string, or None if it is not one."""
        text = str(value).strip()
        parts = text.split("_")
        if len(parts) != 2:
            return None
        try:
            return cls(order_id=int(parts[0]), line_item_id=int(parts[1]))
        except ValueError:
            return None


class Tricoteuse(Base, UUIDMixin, TimestampMixin):
    """A production worker."""
    __tablename__ = "tricoteuses"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    photo_url: Mapped[str] = mapped_column(String(1000), default="")
    gender: Mapped[str] = mapped_column(String(20), default="feminin")


class Assignment(Base, UUIDMixin, TimestampMixin):
    """Binds one line item to one worker."""
    __tablename__ = "article_assignments"

    article_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    line_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    tricoteuse_id: Mapped[str] = mapped_column(String(36), nullable=False)
    tricoteuse_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="en_cours", nullable=False)
    urgent: Mapped[bool] = mapped_column(Boolean, default=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("order_id", "line_item_id", name="uq_assignment_item"),
    )

    @property
    def key(self) -> ArticleKey:
        return ArticleKey(order_id=self.order_id, line_item_id=self.line_item_id)
