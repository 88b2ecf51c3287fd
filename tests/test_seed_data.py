"""Tests for the demo data seeder."""

from decimal import Decimal

from storefront.models.product import Product
from storefront.models.promotion import Promotion
from storefront.models.user import User
from storefront.services.seed_data import BUYERS, PRODUCT_TYPES, PRODUCTS_PER_TYPE, seed_database


def test_seed_populates_storefront(db, promotions):
    seed_database(db)

    products = db.query(Product).all()
    assert len(products) == len(PRODUCT_TYPES) * PRODUCTS_PER_TYPE
    assert all(p.available and not p.sold for p in products)
    assert all(p.price > Decimal("0") for p in products)

    assert db.query(User).count() == len(BUYERS)
    assert [p.type for p in promotions.get_active_promotions()] == ["season"]


def test_seed_is_skipped_when_products_exist(db, make_product):
    make_product()

    seed_database(db)

    assert db.query(Product).count() == 1
    assert db.query(Promotion).count() == 0
