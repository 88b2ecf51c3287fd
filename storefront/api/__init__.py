# API Routes
from storefront.api.health import router as health_router
from storefront.api.products import router as products_router
from storefront.api.payments import router as payments_router
from storefront.api.promotions import router as promotions_router
from storefront.api.loyalty import router as loyalty_router
from storefront.api.users import router as users_router
from storefront.api.assistant import router as assistant_router
from storefront.api.audit import router as audit_router

__all__ = [
    "health_router",
    "products_router",
    "payments_router",
    "promotions_router",
    "loyalty_router",
    "users_router",
    "assistant_router",
    "audit_router",
]
