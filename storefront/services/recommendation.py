"""
Heuristic product recommender.

Scores available products against a user's preferences and recent activity.
No model training: weights are fixed and tuned by hand.

Scoring (per product):
  +50  type is one of the preferred categories
  +30  price inside the preferred price range
  +20  for every viewed product of the same type
  +min(views / 10, 20)  popularity
  +max(0, 20 - 2 * age_days)  novelty, only for products younger than 7 days
"""

import logging
from datetime import datetime
from typing import Optional

from storefront.core.config import Settings, get_settings
from storefront.core.redis import Cache
from storefront.models.product import Product
from storefront.models.user import ActivityAction
from storefront.schemas.product import ProductResponse
from storefront.services.catalog import CatalogService
from storefront.services.marketplace_client import as_int
from storefront.services.user_profile import UserProfileService

logger = logging.getLogger(__name__)

CACHE_PREFIX = "recommendation:"

# Listing cap when scoring the whole catalog
CANDIDATE_LIMIT = 1000


def user_key(user_id: str) -> str:
    return f"{CACHE_PREFIX}{user_id}"


def similar_key(product_id: str) -> str:
    return f"{CACHE_PREFIX}similar:{product_id}"


def recommendation_score(
    product: ProductResponse,
    viewed_types: list[str],
    preferences: Optional[dict],
    now: Optional[datetime] = None,
) -> float:
    now = now or datetime.now()
    preferences = preferences or {}
    score = 0.0

    if product.type in (preferences.get("categories") or []):
        score += 50

    price_range = preferences.get("price_range") or []
    if len(price_range) == 2:
        low, high = price_range
        if float(low) <= float(product.price) <= float(high):
            score += 30

    score += 20 * sum(1 for viewed in viewed_types if viewed == product.type)

    if product.views:
        score += min(product.views / 10, 20)

    age_days = (now - product.created_at).total_seconds() / 86400
    if age_days < 7:
        score += max(0.0, 20 - age_days * 2)

    return score


def product_similarity(a: ProductResponse, b: ProductResponse) -> float:
    similarity = 0.0

    if a.type == b.type:
        similarity += 50

    price_diff = abs(float(a.price) - float(b.price))
    similarity += max(0.0, 30 - price_diff / 10)

    rank_a, rank_b = a.details.get("rank"), b.details.get("rank")
    if rank_a and rank_b and rank_a == rank_b:
        similarity += 20

    skins_a, skins_b = as_int(a.details.get("skins")), as_int(b.details.get("skins"))
    if skins_a and skins_b:
        similarity += max(0.0, 20 - abs(skins_a - skins_b) * 2)

    return similarity


class RecommendationEngine:

    def __init__(
        self,
        cache: Cache,
        catalog: CatalogService,
        users: UserProfileService,
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self.catalog = catalog
        self.users = users
        self.settings = settings or get_settings()

    def _cache_products(self, key: str, products: list[ProductResponse]) -> None:
        self.cache.set(
            key,
            [p.model_dump(mode="json") for p in products],
            ttl=self.settings.RECOMMENDATION_CACHE_TTL,
        )

    def _viewed_type(self, data: dict) -> Optional[str]:
        if data.get("product_type"):
            return data["product_type"]
        product_id = data.get("product_id")
        product = self.catalog.find(product_id) if product_id else None
        return product.type if product else None

    def get_recommendations_for_user(
        self,
        user_id: str,
        limit: int = 3,
        now: Optional[datetime] = None,
    ) -> list[ProductResponse]:
        cached = self.cache.get(user_key(user_id))
        if cached is not None:
            logger.debug(f"Using cached recommendations for {user_id}")
            return [ProductResponse.model_validate(item) for item in cached]

        history = self.users.get_history(user_id, limit=self.settings.ACTIVITY_HISTORY_LIMIT)

        if not history:
            logger.debug(f"User {user_id} has no history, returning newest products")
            newest = self.catalog.get_available_products(limit=limit)
            self._cache_products(user_key(user_id), newest)
            return newest

        profile = self.users.get_profile(user_id)
        preferences = profile.preferences if profile else {}

        viewed_types = []
        purchased = set()
        for activity in history:
            data = activity.data or {}
            if activity.action == ActivityAction.PRODUCT_VIEW:
                viewed = self._viewed_type(data)
                if viewed:
                    viewed_types.append(viewed)
            elif activity.action == ActivityAction.PRODUCT_PURCHASE and data.get("product_id"):
                purchased.add(data["product_id"])

        scored = [
            (recommendation_score(product, viewed_types, preferences, now), product)
            for product in self.catalog.get_available_products(limit=CANDIDATE_LIMIT)
            if product.id not in purchased
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        recommendations = [product for _, product in scored[:limit]]

        self._cache_products(user_key(user_id), recommendations)
        return recommendations

    def get_similar_products(self, product_id: str, limit: int = 3) -> list[ProductResponse]:
        cached = self.cache.get(similar_key(product_id))
        if cached is not None:
            return [ProductResponse.model_validate(item) for item in cached]

        product = self.catalog.get_product(product_id, count_view=False)
        if product is None:
            return []

        scored = [
            (product_similarity(product, other), other)
            for other in self.catalog.get_available_products(limit=CANDIDATE_LIMIT)
            if other.id != product_id
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        similar = [other for _, other in scored[:limit]]

        self._cache_products(similar_key(product_id), similar)
        return similar

    def record_interaction(self, user_id: str, action: str, data: Optional[dict] = None) -> bool:
        """Record an activity and drop the user's cached recommendations."""
        data = dict(data or {})
        if action == ActivityAction.PRODUCT_VIEW and data.get("product_id") and not data.get("product_type"):
            product: Optional[Product] = self.catalog.find(data["product_id"])
            if product is not None:
                data["product_type"] = product.type

        recorded = self.users.record_activity(user_id, action, data)
        self.cache.delete(user_key(user_id))
        return recorded
