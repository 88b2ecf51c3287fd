# ORM models (imported here so Base.metadata sees every table)
from storefront.models.audit import AuditEntry
from storefront.models.loyalty import LoyaltyAccount, PointTransaction
from storefront.models.payment import Payment
from storefront.models.product import Product
from storefront.models.promotion import Promotion
from storefront.models.user import User, UserActivity

__all__ = [
    "AuditEntry",
    "LoyaltyAccount",
    "PointTransaction",
    "Payment",
    "Product",
    "Promotion",
    "User",
    "UserActivity",
]
