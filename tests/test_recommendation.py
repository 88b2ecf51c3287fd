"""Tests for the heuristic recommender."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from storefront.models.user import ActivityAction
from storefront.schemas.product import ProductResponse
from storefront.services.recommendation import (
    product_similarity,
    recommendation_score,
    similar_key,
    user_key,
)

USER = "600000000000000001"


def _product(**fields):
    now = datetime.now()
    data = {
        "id": "p1",
        "name": "Valorant Gold",
        "type": "valorant",
        "price": Decimal("100.00"),
        "details": {"rank": "Gold", "skins": 10},
        "available": True,
        "sold": False,
        "views": 0,
        "created_at": now - timedelta(days=30),
        "updated_at": now,
    }
    data.update(fields)
    return ProductResponse(**data)


class TestScoring:

    def test_all_signals(self):
        now = datetime.now()
        product = _product(views=300, created_at=now)
        preferences = {"categories": ["valorant"], "price_range": [50, 150]}

        score = recommendation_score(product, ["valorant", "valorant", "lol"], preferences, now)

        # 50 category + 30 price + 2 * 20 views by type + 20 popularity cap + 20 novelty
        assert score == pytest.approx(160)

    def test_old_unpopular_product_scores_zero(self):
        assert recommendation_score(_product(), [], {}) == 0

    def test_novelty_decays_with_age(self):
        now = datetime.now()
        product = _product(created_at=now - timedelta(days=3))
        assert recommendation_score(product, [], None, now) == pytest.approx(14)

    def test_similarity(self):
        a = _product()
        b = _product(id="p2")
        c = _product(id="p3", type="lol", price=Decimal("400.00"), details={"rank": "Iron", "skins": 1})

        assert product_similarity(a, b) == pytest.approx(120)
        assert product_similarity(a, c) == pytest.approx(2)

    def test_similarity_with_text_skins(self):
        a = _product()
        counted = _product(id="p2", details={"rank": "Gold", "skins": "12"})
        unreadable = _product(id="p3", details={"rank": "Gold", "skins": "many"})

        # 50 type + 30 price + 20 rank + (20 - 2 * 2) skins
        assert product_similarity(a, counted) == pytest.approx(116)
        assert product_similarity(a, unreadable) == pytest.approx(100)


class TestEngine:

    def test_new_user_gets_newest_products(self, recommendations, make_product, cache):
        now = datetime.now()
        make_product(created_at=now - timedelta(days=5))
        newest = make_product(created_at=now)

        result = recommendations.get_recommendations_for_user(USER, limit=1)

        assert [p.id for p in result] == [newest.id]
        assert cache.get(user_key(USER)) is not None

    def test_views_steer_recommendations(self, recommendations, make_product):
        old = datetime.now() - timedelta(days=30)
        make_product(created_at=old)
        lol = make_product(type="lol", created_at=old)
        viewed = make_product(type="lol", created_at=old)

        recommendations.record_interaction(USER, ActivityAction.PRODUCT_VIEW, {"product_id": viewed.id})

        result = recommendations.get_recommendations_for_user(USER, limit=2)
        assert {p.id for p in result} == {lol.id, viewed.id}

    def test_purchased_products_are_skipped(self, recommendations, users, make_product):
        bought = make_product()
        other = make_product()
        users.record_activity(USER, ActivityAction.PRODUCT_PURCHASE, {"product_id": bought.id})

        result = recommendations.get_recommendations_for_user(USER, limit=5)

        assert [p.id for p in result] == [other.id]

    def test_interaction_drops_cached_recommendations(self, recommendations, make_product, cache):
        product = make_product()
        recommendations.get_recommendations_for_user(USER)
        assert cache.get(user_key(USER)) is not None

        recommendations.record_interaction(USER, ActivityAction.PRODUCT_VIEW, {"product_id": product.id})

        assert cache.get(user_key(USER)) is None

    def test_view_records_product_type(self, recommendations, users, make_product):
        product = make_product(type="fortnite")
        recommendations.record_interaction(USER, ActivityAction.PRODUCT_VIEW, {"product_id": product.id})
        assert users.get_history(USER)[0].data["product_type"] == "fortnite"

    def test_similar_products(self, recommendations, make_product, cache):
        base = make_product(price=Decimal("100.00"))
        close = make_product(price=Decimal("110.00"))
        make_product(type="lol", price=Decimal("500.00"), details={"rank": "Iron", "skins": 90})

        result = recommendations.get_similar_products(base.id, limit=1)

        assert [p.id for p in result] == [close.id]
        assert cache.get(similar_key(base.id)) is not None

    def test_similar_products_for_unknown_product(self, recommendations):
        assert recommendations.get_similar_products("missing") == []
