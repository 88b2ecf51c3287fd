"""Pydantic schemas for promotions and promotional price quotes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class PromotionResponse(BaseModel):
    """Promotion record; also the shape cached for the active list."""
    id: str
    title: str
    description: str = ""
    type: str
    discount: float = Field(..., description="Discount percentage")
    start_date: datetime
    end_date: datetime
    duration_hours: float
    active: bool
    product_ids: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    promo_code: Optional[str] = None
    usage_limited: bool = False
    usage_limit: Optional[int] = None
    usage_count: int = 0
    image_url: Optional[str] = None

    model_config = {"from_attributes": True}


class PromotionCreate(BaseModel):
    """Admin payload for a new promotion. End date is start + duration."""
    title: Optional[str] = Field(None, max_length=200)
    description: str = ""
    type: str = Field(..., description="flash, season, combo or limited")
    discount: float = Field(..., description="Discount percentage; bounds are configured")
    duration_hours: float = Field(..., description="Must be greater than zero")
    start_date: Optional[datetime] = Field(None, description="Defaults to now")
    product_ids: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    promo_code: Optional[str] = None
    usage_limited: bool = False
    usage_limit: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = None


class PromotionUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    discount: Optional[float] = None
    start_date: Optional[datetime] = None
    duration_hours: Optional[float] = None
    active: Optional[bool] = None
    product_ids: Optional[list[str]] = None
    categories: Optional[list[str]] = None
    promo_code: Optional[str] = None
    usage_limited: Optional[bool] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = None


class PromotionSummary(BaseModel):
    """Short description of the promotion behind a discounted price."""
    id: str
    title: str
    description: str = ""
    expires_at: datetime


class PriceQuote(BaseModel):
    """Result of resolving the best promotion for a product."""
    has_discount: bool
    original_price: Decimal
    discounted_price: Decimal
    discount_percentage: float = 0.0
    promotion: Optional[PromotionSummary] = None


class PromotionListResponse(BaseModel):
    promotions: list[PromotionResponse]
    total: int
