"""Tests for promotion validation, applicability and best-price resolution."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from storefront.core.results import ErrorKind
from storefront.schemas.promotion import PromotionCreate, PromotionResponse, PromotionUpdate
from storefront.services.promotions import ACTIVE_PROMOTIONS_KEY, PromotionEngine, apply_discount


def _create(promotions, **fields):
    data = {"type": "flash", "discount": 10, "duration_hours": 24}
    data.update(fields)
    return promotions.create_promotion(PromotionCreate(**data), "admin-1")


def _response(**fields):
    now = datetime.now()
    data = {
        "id": "promo-1",
        "title": "Promo",
        "type": "flash",
        "discount": 10,
        "start_date": now,
        "end_date": now + timedelta(hours=1),
        "duration_hours": 1,
        "active": True,
    }
    data.update(fields)
    return PromotionResponse(**data)


def test_apply_discount_rounds_half_up():
    assert apply_discount(Decimal("59.90"), 10) == Decimal("53.91")
    assert apply_discount(Decimal("10.05"), 50) == Decimal("5.03")
    assert apply_discount(Decimal("100"), 20) == Decimal("80.00")


@pytest.mark.parametrize("discount, ok", [(4, False), (5, True), (50, True), (51, False)])
def test_discount_bounds(promotions, discount, ok):
    result = _create(promotions, discount=discount)
    assert result.ok is ok
    if not ok:
        assert result.error == ErrorKind.VALIDATION_ERROR


def test_rejects_unknown_type(promotions):
    assert _create(promotions, type="mystery").error == ErrorKind.VALIDATION_ERROR


def test_rejects_non_positive_duration(promotions):
    assert _create(promotions, duration_hours=0).error == ErrorKind.VALIDATION_ERROR


def test_usage_limited_needs_limit(promotions):
    assert _create(promotions, usage_limited=True).error == ErrorKind.VALIDATION_ERROR


def test_end_date_is_start_plus_duration(promotions, audit):
    start = datetime(2026, 1, 10, 12, 0)
    promotion = _create(promotions, start_date=start, duration_hours=6, title="Weekend").value

    assert promotion.end_date == start + timedelta(hours=6)
    assert promotion.usage_count == 0
    logs = audit.search().logs
    assert logs[0].action == "PROMOTION_CREATED"
    assert logs[0].target_id == promotion.id


def test_update_recomputes_end_date(promotions):
    start = datetime.now()
    promotion = _create(promotions, start_date=start, duration_hours=6).value

    result = promotions.update_promotion(promotion.id, PromotionUpdate(duration_hours=12, discount=15), "admin-1")

    assert result.value.end_date == start + timedelta(hours=12)
    assert result.value.discount == 15


def test_update_validates_discount(promotions):
    promotion = _create(promotions).value
    result = promotions.update_promotion(promotion.id, PromotionUpdate(discount=80), "admin-1")
    assert result.error == ErrorKind.VALIDATION_ERROR


@pytest.mark.parametrize("field", ["duration_hours", "start_date", "discount", "title", "active"])
def test_update_rejects_null_for_required_field(promotions, db, field):
    promotion = _create(promotions, duration_hours=6).value
    end_date = promotion.end_date

    result = promotions.update_promotion(promotion.id, PromotionUpdate(**{field: None}), "admin-1")

    assert result.error == ErrorKind.VALIDATION_ERROR
    assert result.details == {"fields": [field]}
    db.expire_all()
    assert promotions.get_promotion(promotion.id).end_date == end_date
    assert promotions.get_promotion(promotion.id).discount == 10


def test_update_can_clear_promo_code(promotions):
    promotion = _create(promotions, promo_code="SAVE10").value

    result = promotions.update_promotion(promotion.id, PromotionUpdate(promo_code=None), "admin-1")

    assert result.value.promo_code is None
    assert promotions.resolve_price("p1", Decimal("100.00"), "valorant").has_discount


def test_update_keeps_usage_limit_for_limited_promotion(promotions):
    promotion = _create(promotions, usage_limited=True, usage_limit=3).value

    result = promotions.update_promotion(promotion.id, PromotionUpdate(usage_limit=None), "admin-1")

    assert result.error == ErrorKind.VALIDATION_ERROR


def test_end_promotion_twice(promotions):
    promotion = _create(promotions).value

    assert promotions.end_promotion(promotion.id, "admin-1").ok
    second = promotions.end_promotion(promotion.id, "admin-1")

    assert second.error == ErrorKind.ALREADY_INACTIVE
    assert promotions.get_active_promotions() == []


def test_end_unknown_promotion(promotions):
    assert promotions.end_promotion("missing", "admin-1").error == ErrorKind.NOT_FOUND


def test_active_list_is_cached_and_refiltered(promotions, cache):
    now = datetime.now()
    _create(promotions, duration_hours=1, start_date=now)

    assert len(promotions.get_active_promotions(now)) == 1
    assert cache.get(ACTIVE_PROMOTIONS_KEY) is not None
    # The cached copy still holds the promotion, but it has ended by then
    assert promotions.get_active_promotions(now + timedelta(hours=2)) == []


def test_future_promotion_is_not_active(promotions):
    _create(promotions, start_date=datetime.now() + timedelta(days=1))
    assert promotions.get_active_promotions() == []


def test_active_promotions_soonest_ending_first(promotions):
    long = _create(promotions, duration_hours=48).value
    short = _create(promotions, duration_hours=2).value

    assert [p.id for p in promotions.get_active_promotions()] == [short.id, long.id]


class TestApplicability:

    def test_product_ids_take_precedence_over_categories(self):
        promotion = _response(product_ids=["p1"], categories=["valorant"])

        assert PromotionEngine.is_applicable(promotion, "p1", "lol")
        assert not PromotionEngine.is_applicable(promotion, "p2", "valorant")

    def test_categories(self):
        promotion = _response(categories=["valorant"])

        assert PromotionEngine.is_applicable(promotion, "p1", "valorant")
        assert not PromotionEngine.is_applicable(promotion, "p1", "lol")

    def test_global_promotion(self):
        assert PromotionEngine.is_applicable(_response(), "p1", "fortnite")

    def test_usage_cap(self):
        promotion = _response(usage_limited=True, usage_limit=3, usage_count=3)
        assert not PromotionEngine.is_applicable(promotion, "p1", "valorant")

    def test_promo_code_is_required_and_case_insensitive(self):
        promotion = _response(promo_code="SAVE15")

        assert not PromotionEngine.is_applicable(promotion, "p1", "valorant")
        assert not PromotionEngine.is_applicable(promotion, "p1", "valorant", "WRONG")
        assert PromotionEngine.is_applicable(promotion, "p1", "valorant", " save15 ")


class TestResolvePrice:

    def test_no_promotion(self, promotions):
        quote = promotions.resolve_price("p1", Decimal("59.90"), "valorant")

        assert not quote.has_discount
        assert quote.discounted_price == Decimal("59.90")
        assert quote.promotion is None

    def test_highest_discount_wins(self, promotions):
        _create(promotions, discount=10)
        category = _create(promotions, discount=25, categories=["valorant"]).value

        valorant = promotions.resolve_price("p1", Decimal("100.00"), "valorant")
        lol = promotions.resolve_price("p2", Decimal("100.00"), "lol")

        assert valorant.discounted_price == Decimal("75.00")
        assert valorant.promotion.id == category.id
        assert lol.discounted_price == Decimal("90.00")

    def test_equal_discounts_keep_soonest_ending(self, promotions):
        _create(promotions, discount=20, duration_hours=48)
        sooner = _create(promotions, discount=20, duration_hours=4).value

        quote = promotions.resolve_price("p1", Decimal("100.00"), "valorant")

        assert quote.promotion.id == sooner.id

    def test_promo_code_unlocks_discount(self, promotions):
        _create(promotions, discount=15, promo_code="SAVE15")

        assert not promotions.resolve_price("p1", Decimal("100.00"), "valorant").has_discount
        assert promotions.resolve_price("p1", Decimal("100.00"), "valorant", "save15").discounted_price == Decimal("85.00")

    def test_used_up_promotion_stops_applying(self, promotions, db):
        promotion = _create(promotions, usage_limited=True, usage_limit=1).value
        assert promotions.resolve_price("p1", Decimal("100.00"), "valorant").has_discount

        promotions.record_usage(promotion.id)
        db.commit()

        assert not promotions.resolve_price("p1", Decimal("100.00"), "valorant").has_discount

    def test_usage_is_not_counted_past_the_limit(self, promotions, db):
        limited = _create(promotions, usage_limited=True, usage_limit=1).value
        unlimited = _create(promotions).value

        assert promotions.record_usage(limited.id)
        assert not promotions.record_usage(limited.id)
        assert promotions.record_usage(unlimited.id)
        assert promotions.record_usage(unlimited.id)
        db.commit()
        db.expire_all()

        assert promotions.get_promotion(limited.id).usage_count == 1
        assert promotions.get_promotion(unlimited.id).usage_count == 2


def test_find_by_code(promotions):
    promotion = _create(promotions, promo_code="BlackFriday").value

    assert promotions.find_by_code("blackfriday").id == promotion.id
    assert promotions.find_by_code("other") is None
    assert promotions.find_by_code("") is None


def test_list_promotions_hides_inactive_by_default(promotions):
    kept = _create(promotions).value
    ended = _create(promotions).value
    promotions.end_promotion(ended.id, "admin-1")

    assert [p.id for p in promotions.list_promotions()] == [kept.id]
    assert len(promotions.list_promotions(include_inactive=True)) == 2
