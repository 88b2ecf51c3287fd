"""
Product model representing a sellable digital game account.
Tracks availability, sold state, view counter and marketplace origin.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, Boolean, DateTime, Integer, Numeric, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class ProductOrigin:
    MANUAL = "MANUAL"
    LZT = "LZT"
    API = "API"

    ALL = (MANUAL, LZT, API)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_listing", "type", "price", "available", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Unique product identifier (UUID)"
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Display name"
    )
    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        doc="Lower-cased category tag, e.g. valorant, lol"
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        doc="Listed price (BRL)"
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        doc="Free-text description"
    )
    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Type-specific details: rank, skins, level, agents, region, verification..."
    )
    available: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
        doc="Whether the product can be bought"
    )
    sold: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
        doc="Whether the product was sold (implies not available)"
    )
    views: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        doc="View counter"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        nullable=False,
    )
    sold_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    buyer_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="Buyer user id, set on sale"
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    origin: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProductOrigin.MANUAL,
        doc="MANUAL, LZT or API"
    )
    origin_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        doc="Identifier on the external marketplace"
    )
    images: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Image URLs"
    )

    def __repr__(self) -> str:
        return (
            f"<Product(id={self.id}, name={self.name}, type={self.type}, "
            f"price={self.price}, sold={self.sold})>"
        )
