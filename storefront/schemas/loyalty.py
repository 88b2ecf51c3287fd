"""Pydantic schemas for the loyalty ledger."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class PointTransactionResponse(BaseModel):
    id: int
    amount: int = Field(..., description="Signed points")
    reason: str
    date: datetime
    expires_at: Optional[datetime] = None
    status: str = Field(..., description="ACTIVE, USED or EXPIRED")


class LoyaltySnapshot(BaseModel):
    """Balance, tier and history for one user."""
    user_id: str
    balance: int = Field(0, ge=0, description="Spendable points")
    lifetime_total: int = Field(0, ge=0, description="Points earned over the account lifetime")
    tier: int = Field(1, ge=1, le=5)
    tier_name: str = "Starter"
    transactions: list[PointTransactionResponse] = Field(default_factory=list, description="Newest first")
    money_value: float = Field(0.0, description="balance * conversion rate (BRL)")


class PointsChange(BaseModel):
    """Outcome of a grant or a spend."""
    user_id: str
    points: int
    balance: int
    tier: int


class UsePointsRequest(BaseModel):
    amount: int = Field(..., description="Points to spend")
    reason: str = Field("REDEMPTION", max_length=50)
    product_id: Optional[str] = None
    payment_id: Optional[str] = None


class AddPointsRequest(BaseModel):
    amount: int = Field(..., description="Points to grant")
    reason: str = Field("ADMIN_GRANT", max_length=50)
    user_name: Optional[str] = None
