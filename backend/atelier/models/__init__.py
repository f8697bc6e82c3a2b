"""
SQLAlchemy models for the production backend.

This package is organized by domain:
- base.py: Base class and mixins
- order.py: Orders, line items and cached product images
- production.py: Per-item production status
- assignment.py: Workers and item assignments
- archive.py: Archived order snapshots
- delai.py: Shipping deadline configuration
- fourniture.py: Workshop supplies list
"""

from atelier.models.base import Base, UUIDMixin, TimestampMixin
from atelier.models.order import Order, OrderItem, ProductImage
from atelier.models.production import ProductionStatus, ProductionState, ProductionType
from atelier.models.assignment import Assignment, ArticleKey, Tricoteuse
from atelier.models.archive import ArchivedOrder
from atelier.models.delai import DelaiConfig
from atelier.models.fourniture import Fourniture

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "Order",
    "OrderItem",
    "ProductImage",
    "ProductionStatus",
    "ProductionState",
    "ProductionType",
    "Assignment",
    "ArticleKey",
    "Tricoteuse",
    "ArchivedOrder",
    "DelaiConfig",
    "Fourniture",
]
