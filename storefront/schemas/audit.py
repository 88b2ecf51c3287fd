"""Pydantic schemas for audit log search and statistics."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field


class AuditEntryResponse(BaseModel):
    id: int
    action: str
    category: str
    severity: str
    status: str
    timestamp: datetime
    user_id: Optional[str] = None
    username: Optional[str] = None
    target_id: Optional[str] = None
    target_type: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    payment_id: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    details: Optional[dict[str, Any]] = None
    retention_date: datetime

    model_config = {"from_attributes": True}


class AuditFilter(BaseModel):
    action: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[str] = None
    user_id: Optional[str] = None
    target_id: Optional[str] = None
    product_id: Optional[str] = None
    payment_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AuditSearchResponse(BaseModel):
    logs: list[AuditEntryResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class CountBucket(BaseModel):
    key: str
    count: int


class AuditStats(BaseModel):
    total: int
    by_severity: list[CountBucket] = Field(default_factory=list)
    by_category: list[CountBucket] = Field(default_factory=list)
    by_status: list[CountBucket] = Field(default_factory=list)
    top_actions: list[CountBucket] = Field(default_factory=list)
    recent_logs: list[AuditEntryResponse] = Field(default_factory=list)
