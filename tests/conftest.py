# tests/conftest.py

import os

# Keep the app's own engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

import storefront.models  # noqa: F401
from storefront.core.config import Settings, get_settings
from storefront.core.database import Base, get_db
from storefront.core.redis import InMemoryCache, get_cache
from storefront.main import app
from storefront.models.product import Product, ProductOrigin
from storefront.services.assistant import Assistant
from storefront.services.audit_logger import AuditLogger
from storefront.services.catalog import CatalogService
from storefront.services.loyalty import LoyaltyLedger
from storefront.services.payments import PaymentService
from storefront.services.promotions import PromotionEngine
from storefront.services.recommendation import RecommendationEngine
from storefront.services.user_profile import UserProfileService

ADMIN_KEY = "test-admin-key"


# --- Database ---

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def settings():
    return Settings(_env_file=None, ADMIN_API_KEY=ADMIN_KEY, QR_PLACEHOLDER_URL="https://example.test/qr.png")


# --- Services ---

@pytest.fixture
def audit(db, settings):
    return AuditLogger(db, settings)


@pytest.fixture
def users(db, audit, settings):
    return UserProfileService(db, audit, settings)


@pytest.fixture
def catalog(db, cache, audit, settings):
    return CatalogService(db, cache, audit, settings)


@pytest.fixture
def promotions(db, cache, audit, settings):
    return PromotionEngine(db, cache, audit, settings)


@pytest.fixture
def loyalty(db, audit, settings):
    return LoyaltyLedger(db, audit, settings)


@pytest.fixture
def payments(db, cache, audit, catalog, promotions, loyalty, users, settings):
    return PaymentService(db, cache, audit, catalog, promotions, loyalty, users, settings)


@pytest.fixture
def recommendations(cache, catalog, users, settings):
    return RecommendationEngine(cache, catalog, users, settings)


@pytest.fixture
def assistant(cache, users, settings):
    return Assistant(cache, users, settings)


# --- Factories ---

@pytest.fixture
def make_product(db):
    """Insert a listed product; keyword arguments override the defaults."""
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        now = datetime.now()
        fields = {
            "name": f"Valorant Gold #{counter['n']}",
            "type": "valorant",
            "price": Decimal("100.00"),
            "description": "Gold account with 10 skins",
            "details": {"rank": "Gold", "skins": 10, "region": "BR"},
            "available": True,
            "sold": False,
            "views": 0,
            "created_at": now,
            "updated_at": now,
            "origin": ProductOrigin.MANUAL,
            "images": [],
        }
        fields.update(overrides)
        product = Product(**fields)
        db.add(product)
        db.commit()
        return product

    return factory


# --- API client ---

@pytest.fixture
def admin_headers():
    return {"X-API-Key": ADMIN_KEY, "X-Admin-Id": "admin-1"}


@pytest.fixture
def client(session_factory, cache, settings):
    """TestClient bound to the test database, cache and settings."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
