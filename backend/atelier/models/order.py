"""
Order models - mirrored WooCommerce orders, their line items and product images.

Orders and items are written independently by the sync engine, so there is
no foreign key between them: an item may land before its order.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    String, DateTime, Numeric, Index, Integer, BigInteger, Text, JSON,
    LargeBinary, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from atelier.models.base import Base, UUIDMixin, TimestampMixin


class Order(Base, UUIDMixin, TimestampMixin):
    """A WooCommerce order. Insert-only apart from customer_note and items backfill."""
    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    order_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    customer_name: Mapped[str] = mapped_column(String(255), default="")
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    customer_address: Mapped[Optional[str]] = mapped_column(String(500))
    customer_country: Mapped[Optional[str]] = mapped_column(String(2))
    customer_note: Mapped[str] = mapped_column(Text, default="")

    shipping_method: Mapped[Optional[str]] = mapped_column(String(100))
    shipping_title: Mapped[Optional[str]] = mapped_column(String(255))
    shipping_carrier: Mapped[Optional[str]] = mapped_column(String(30))

    # Denormalized snapshot of the OrderItem rows known when the order was stored
    items: Mapped[List[dict]] = mapped_column(JSON, default=list)

    __table_args__ = (
        Index("idx_order_date", "order_date"),
        Index("idx_order_number", "order_number"),
    )


class OrderItem(Base, UUIDMixin, TimestampMixin):
    """One purchased product line. Unique per (order_id, line_item_id), never content-updated."""
    __tablename__ = "order_items"

    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    line_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    variation_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    product_name: Mapped[str] = mapped_column(String(500), default="")

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    permalink: Mapped[Optional[str]] = mapped_column(String(1000))
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))
    meta_data: Mapped[List[dict]] = mapped_column(JSON, default=list)

    __table_args__ = (
        UniqueConstraint("order_id", "line_item_id", name="uq_order_item_line"),
        Index("idx_orderitem_line", "line_item_id"),
    )

    def snapshot(self) -> dict:
        """Plain dict copy stored on Order.items and in archives."""
        return {
            "line_item_id": self.line_item_id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": float(self.price or 0),
            "permalink": self.permalink,
            "image_url": self.image_url,
            "meta_data": list(self.meta_data or []),
        }


class ProductImage(Base, UUIDMixin, TimestampMixin):
    """Product image bytes cached locally, one row per WooCommerce product."""
    __tablename__ = "product_images"

    product_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    source_url: Mapped[Optional[str]] = mapped_column(String(1000))
    content_type: Mapped[str] = mapped_column(String(100), default="image/jpeg")
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
