"""
Shipping deadline configuration. Rows are append-only; the current
configuration is the most recently modified one.
"""

from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy import Integer, Date, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from atelier.models.base import Base, UUIDMixin


class DelaiConfig(Base, UUIDMixin):
    """Business-day delay and working weekdays used to compute the late cutoff."""
    __tablename__ = "delais_expedition"

    jours_delai: Mapped[int] = mapped_column(Integer, nullable=False)
    jours_ouvrables: Mapped[Dict[str, bool]] = mapped_column(JSON, nullable=False)
    date_limite: Mapped[Optional[date]] = mapped_column(Date)
    derniere_modification: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_delai_modification", "derniere_modification"),
    )
