"""
Shared FastAPI dependencies: service wiring, admin guard and error mapping.
"""

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.database import get_db
from storefront.core.redis import Cache, get_cache
from storefront.core.results import ErrorKind, Result
from storefront.services.assistant import Assistant
from storefront.services.audit_logger import AuditLogger
from storefront.services.catalog import CatalogService
from storefront.services.loyalty import LoyaltyLedger
from storefront.services.payments import PaymentService
from storefront.services.promotions import PromotionEngine
from storefront.services.recommendation import RecommendationEngine
from storefront.services.user_profile import UserProfileService

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_SOLD: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_INACTIVE: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INSUFFICIENT_BALANCE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NO_ACCOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DEPENDENCY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap(result: Result):
    """Return the success value or raise the mapped HTTPException."""
    if result.ok:
        return result.value
    detail = {"error": result.error.value, "message": result.message}
    if result.details:
        detail["details"] = result.details
    raise HTTPException(status_code=ERROR_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST), detail=detail)


# ─── Admin guard ────────────────────────────────────────────────────

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def require_admin(
    api_key: str = Security(api_key_header),
    admin_id: str = Header("admin", alias="X-Admin-Id"),
    settings: Settings = Depends(get_settings),
) -> str:
    """Validate the admin API key and return the acting admin id."""
    if api_key != settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin API key",
        )
    return admin_id


# ─── Services ───────────────────────────────────────────────────────

def get_audit(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> AuditLogger:
    return AuditLogger(db, settings)


def get_users(
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit),
    settings: Settings = Depends(get_settings),
) -> UserProfileService:
    return UserProfileService(db, audit, settings)


def get_catalog(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    audit: AuditLogger = Depends(get_audit),
    settings: Settings = Depends(get_settings),
) -> CatalogService:
    return CatalogService(db, cache, audit, settings)


def get_promotions(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    audit: AuditLogger = Depends(get_audit),
    settings: Settings = Depends(get_settings),
) -> PromotionEngine:
    return PromotionEngine(db, cache, audit, settings)


def get_loyalty(
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit),
    settings: Settings = Depends(get_settings),
) -> LoyaltyLedger:
    return LoyaltyLedger(db, audit, settings)


def get_payments(
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    audit: AuditLogger = Depends(get_audit),
    catalog: CatalogService = Depends(get_catalog),
    promotions: PromotionEngine = Depends(get_promotions),
    loyalty: LoyaltyLedger = Depends(get_loyalty),
    users: UserProfileService = Depends(get_users),
    settings: Settings = Depends(get_settings),
) -> PaymentService:
    return PaymentService(db, cache, audit, catalog, promotions, loyalty, users, settings)


def get_recommendations(
    cache: Cache = Depends(get_cache),
    catalog: CatalogService = Depends(get_catalog),
    users: UserProfileService = Depends(get_users),
    settings: Settings = Depends(get_settings),
) -> RecommendationEngine:
    return RecommendationEngine(cache, catalog, users, settings)


def get_assistant(
    cache: Cache = Depends(get_cache),
    users: UserProfileService = Depends(get_users),
    settings: Settings = Depends(get_settings),
) -> Assistant:
    return Assistant(cache, users, settings)
