"""Pydantic schemas for Product API requests and responses."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field


class ProductResponse(BaseModel):
    """Single product returned by the API."""
    id: str = Field(..., description="Unique product identifier")
    name: str = Field(..., description="Display name")
    type: str = Field(..., description="Category tag")
    price: Decimal = Field(..., ge=0, description="Listed price (BRL)")
    description: str = Field("", description="Free-text description")
    details: dict[str, Any] = Field(default_factory=dict, description="Type-specific details")
    available: bool = Field(..., description="Whether the product can be bought")
    sold: bool = Field(..., description="Whether the product was sold")
    views: int = Field(0, description="View counter")
    created_at: datetime
    updated_at: datetime
    sold_at: Optional[datetime] = None
    buyer_id: Optional[str] = None
    origin: str = Field("MANUAL", description="MANUAL, LZT or API")
    origin_id: Optional[str] = None
    images: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ProductListResponse(BaseModel):
    products: list[ProductResponse]
    total: int


class ProductCreate(BaseModel):
    """Admin payload for a manually listed product."""
    name: Optional[str] = Field(None, max_length=200, description="Generated from the type when omitted")
    type: str = Field(..., min_length=1, max_length=50)
    price: Decimal = Field(..., ge=0)
    description: str = Field("", description="Free-text description")
    details: dict[str, Any] = Field(default_factory=dict)
    available: bool = True
    images: list[str] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    """Partial update; only the listed fields may change."""
    name: Optional[str] = Field(None, max_length=200)
    price: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    available: Optional[bool] = None
    images: Optional[list[str]] = None


class ProductFilter(BaseModel):
    """Listing filters for available products."""
    type: Optional[str] = None
    price_min: Optional[Decimal] = None
    price_max: Optional[Decimal] = None
    rank: Optional[str] = None
    skins_min: Optional[int] = None
    region: Optional[str] = None
    order_by: Optional[str] = Field(None, description="price, date or views")
    order_direction: str = Field("desc", description="asc or desc")

    def is_empty(self) -> bool:
        return not any(
            value is not None
            for key, value in self.model_dump().items()
            if key != "order_direction"
        )


class TypeCount(BaseModel):
    type: str
    count: int


class PriceStats(BaseModel):
    average: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0


class CatalogStats(BaseModel):
    total_available: int
    by_type: list[TypeCount]
    prices: PriceStats
    most_viewed: list[ProductResponse]
    most_recent: list[ProductResponse]


class SyncReport(BaseModel):
    """Outcome of a marketplace sync run."""
    success: bool
    added: int = 0
    updated: int = 0
    errors: int = 0
    message: Optional[str] = None
