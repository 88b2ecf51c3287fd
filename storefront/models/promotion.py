"""
Promotion model: a time-bounded percentage discount.
Targets explicit product ids, else categories, else the whole catalog.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Boolean, DateTime, Float, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class Promotion(Base):
    __tablename__ = "promotions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Unique promotion identifier (UUID)"
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="flash, season, combo or limited"
    )
    discount: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        doc="Discount percentage, within the configured bounds"
    )
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    duration_hours: Mapped[float] = mapped_column(Float, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_ids: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Target product ids; empty means not product-specific"
    )
    categories: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Target product types; empty means every category"
    )
    promo_code: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        doc="When set, the discount only applies to buyers presenting this code"
    )
    usage_limited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    def is_running(self, now: Optional[datetime] = None) -> bool:
        """Active flag set and now within [start_date, end_date)."""
        now = now or datetime.now()
        return self.active and self.start_date <= now < self.end_date

    def __repr__(self) -> str:
        return f"<Promotion(id={self.id}, type={self.type}, discount={self.discount}, active={self.active})>"
