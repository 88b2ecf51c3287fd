"""Loyalty points API endpoints."""

from fastapi import APIRouter, Depends

from storefront.api.deps import get_loyalty, require_admin, unwrap
from storefront.schemas.loyalty import AddPointsRequest, LoyaltySnapshot, PointsChange, UsePointsRequest
from storefront.services.loyalty import LoyaltyLedger

router = APIRouter(prefix="/loyalty", tags=["Loyalty"])


@router.post("/sweep")
async def sweep_expired_points(
    admin_id: str = Depends(require_admin),
    loyalty: LoyaltyLedger = Depends(get_loyalty),
):
    return {"accounts_changed": loyalty.sweep_expired_points()}


@router.get("/{user_id}", response_model=LoyaltySnapshot)
async def loyalty_snapshot(user_id: str, loyalty: LoyaltyLedger = Depends(get_loyalty)):
    """Balance, tier and history; due points are expired before reading."""
    return loyalty.get_balance(user_id)


@router.post("/{user_id}/use", response_model=PointsChange)
async def use_points(
    user_id: str,
    body: UsePointsRequest,
    loyalty: LoyaltyLedger = Depends(get_loyalty),
):
    return unwrap(loyalty.use_points(
        user_id, body.amount, body.reason,
        product_id=body.product_id, payment_id=body.payment_id, action_by=user_id,
    ))


@router.post("/{user_id}/add", response_model=PointsChange)
async def add_points(
    user_id: str,
    body: AddPointsRequest,
    admin_id: str = Depends(require_admin),
    loyalty: LoyaltyLedger = Depends(get_loyalty),
):
    return unwrap(loyalty.add_points(
        user_id, body.amount, body.reason, user_name=body.user_name, action_by=admin_id,
    ))
