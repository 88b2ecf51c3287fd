"""
Promotion API endpoints.
Public active list and code lookup; admin create, update and end.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.api.deps import get_promotions, require_admin, unwrap
from storefront.schemas.promotion import (
    PromotionCreate,
    PromotionListResponse,
    PromotionResponse,
    PromotionUpdate,
)
from storefront.services.promotions import PromotionEngine

router = APIRouter(prefix="/promotions", tags=["Promotions"])


@router.get("", response_model=PromotionListResponse)
async def active_promotions(promotions: PromotionEngine = Depends(get_promotions)):
    """Running promotions, soonest-ending first."""
    active = promotions.get_active_promotions()
    return PromotionListResponse(promotions=active, total=len(active))


@router.get("/all", response_model=PromotionListResponse)
async def all_promotions(
    admin_id: str = Depends(require_admin),
    promotions: PromotionEngine = Depends(get_promotions),
):
    rows = [PromotionResponse.model_validate(p) for p in promotions.list_promotions(include_inactive=True)]
    return PromotionListResponse(promotions=rows, total=len(rows))


@router.get("/code/{code}", response_model=PromotionResponse)
async def promotion_by_code(code: str, promotions: PromotionEngine = Depends(get_promotions)):
    promotion = promotions.find_by_code(code)
    if promotion is None:
        raise HTTPException(status_code=404, detail=f"Promotion code {code} not found")
    return promotion


@router.get("/{promotion_id}", response_model=PromotionResponse)
async def get_promotion(promotion_id: str, promotions: PromotionEngine = Depends(get_promotions)):
    promotion = promotions.get_promotion(promotion_id)
    if promotion is None:
        raise HTTPException(status_code=404, detail=f"Promotion {promotion_id} not found")
    return promotion


@router.post("", response_model=PromotionResponse, status_code=status.HTTP_201_CREATED)
async def create_promotion(
    data: PromotionCreate,
    admin_id: str = Depends(require_admin),
    promotions: PromotionEngine = Depends(get_promotions),
):
    return unwrap(promotions.create_promotion(data, admin_id))


@router.patch("/{promotion_id}", response_model=PromotionResponse)
async def update_promotion(
    promotion_id: str,
    changes: PromotionUpdate,
    admin_id: str = Depends(require_admin),
    promotions: PromotionEngine = Depends(get_promotions),
):
    return unwrap(promotions.update_promotion(promotion_id, changes, admin_id))


@router.post("/{promotion_id}/end", response_model=PromotionResponse)
async def end_promotion(
    promotion_id: str,
    admin_id: str = Depends(require_admin),
    promotions: PromotionEngine = Depends(get_promotions),
):
    return unwrap(promotions.end_promotion(promotion_id, admin_id))
