"""Audit log API endpoints (admin only)."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_audit, require_admin
from storefront.schemas.audit import AuditFilter, AuditSearchResponse, AuditStats
from storefront.services.audit_logger import AuditLogger

router = APIRouter(prefix="/audit", tags=["Audit"], dependencies=[Depends(require_admin)])


@router.get("", response_model=AuditSearchResponse)
async def search_audit(
    action: Optional[str] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    target_id: Optional[str] = None,
    product_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    audit: AuditLogger = Depends(get_audit),
):
    filters = AuditFilter(
        action=action,
        category=category,
        severity=severity,
        status=status,
        user_id=user_id,
        target_id=target_id,
        product_id=product_id,
        payment_id=payment_id,
        start_date=start_date,
        end_date=end_date,
    )
    return audit.search(filters, limit=limit, skip=skip)


@router.get("/stats", response_model=AuditStats)
async def audit_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    audit: AuditLogger = Depends(get_audit),
):
    return audit.stats(start_date, end_date)


@router.post("/cleanup")
async def cleanup_audit(audit: AuditLogger = Depends(get_audit)):
    """Delete entries past their retention date."""
    return {"deleted": audit.cleanup_old_logs()}
