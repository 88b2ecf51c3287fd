"""
Users API endpoints.
Profiles, activity history, purchases, preferences, recommendations and moderation.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.api.deps import get_recommendations, get_users, require_admin, unwrap
from storefront.schemas.product import ProductListResponse
from storefront.schemas.user import (
    ActivityResponse,
    BlockRequest,
    FeedbackRequest,
    PreferencesUpdate,
    PurchaseRecord,
    UserResponse,
    UserUpsert,
)
from storefront.services.recommendation import RecommendationEngine
from storefront.services.user_profile import UserProfileService

router = APIRouter(prefix="/users", tags=["Users"])


@router.put("", response_model=UserResponse)
async def upsert_user(data: UserUpsert, users: UserProfileService = Depends(get_users)):
    """Create or refresh a profile when a user interacts with the storefront."""
    return users.create_or_update_profile(data.user_id, data.username, data.email, data.preferences)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, users: UserProfileService = Depends(get_users)):
    user = users.get_profile(user_id)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


@router.get("/{user_id}/history", response_model=list[ActivityResponse])
async def user_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=100),
    users: UserProfileService = Depends(get_users),
):
    return users.get_history(user_id, limit)


@router.get("/{user_id}/purchases", response_model=list[PurchaseRecord])
async def user_purchases(user_id: str, users: UserProfileService = Depends(get_users)):
    return users.get_purchase_history(user_id)


@router.get("/{user_id}/recommendations", response_model=ProductListResponse)
async def user_recommendations(
    user_id: str,
    limit: int = Query(3, ge=1, le=20),
    recommendations: RecommendationEngine = Depends(get_recommendations),
):
    products = recommendations.get_recommendations_for_user(user_id, limit)
    return ProductListResponse(products=products, total=len(products))


@router.patch("/{user_id}/preferences")
async def update_preferences(
    user_id: str,
    changes: PreferencesUpdate,
    users: UserProfileService = Depends(get_users),
):
    return unwrap(users.update_preferences(user_id, changes.model_dump(exclude_none=True)))


@router.post("/{user_id}/feedback")
async def submit_feedback(
    user_id: str,
    body: FeedbackRequest,
    users: UserProfileService = Depends(get_users),
):
    return {"recorded": users.record_feedback(user_id, body.feedback)}


@router.post("/{user_id}/block", response_model=UserResponse)
async def block_user(
    user_id: str,
    body: BlockRequest,
    admin_id: str = Depends(require_admin),
    users: UserProfileService = Depends(get_users),
):
    return unwrap(users.block_user(user_id, body.reason, admin_id))


@router.post("/{user_id}/unblock", response_model=UserResponse)
async def unblock_user(
    user_id: str,
    admin_id: str = Depends(require_admin),
    users: UserProfileService = Depends(get_users),
):
    return unwrap(users.unblock_user(user_id, admin_id))
