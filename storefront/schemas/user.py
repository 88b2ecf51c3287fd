"""Pydantic schemas for user profiles and activity."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    """User profile returned by the API."""
    user_id: str = Field(..., description="Chat platform user id")
    username: str = Field(..., description="User display name")
    email: Optional[str] = Field(None, description="Contact email")
    preferences: dict[str, Any] = Field(default_factory=dict)
    is_blocked: bool = False
    block_reason: Optional[str] = None
    created_at: datetime
    last_active: datetime

    model_config = {"from_attributes": True}


class UserUpsert(BaseModel):
    user_id: str
    username: str
    email: Optional[str] = None
    preferences: Optional[dict[str, Any]] = None


class ActivityResponse(BaseModel):
    action: str
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class PurchaseRecord(BaseModel):
    payment_id: str
    product_id: str
    product_name: str
    amount: Decimal
    date: datetime
    method: str


class BlockRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PreferencesUpdate(BaseModel):
    theme: Optional[str] = Field(None, description="light or dark")
    categories: Optional[list[str]] = None
    price_range: Optional[list[float]] = Field(None, description="[min, max]")
    notifications: Optional[bool] = None


class FeedbackRequest(BaseModel):
    feedback: str = Field(..., min_length=1, max_length=1000)
