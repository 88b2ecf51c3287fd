"""
Promotion Engine.

Admins create time-boxed percentage discounts. At checkout the engine picks
the single best applicable promotion for a product.

Applicability, most specific first:
1. The promotion lists product ids → only those products
2. Else it lists categories → products of those types
3. Else → every product

Promotions with a promo code only apply when the buyer presents that code,
and usage-limited promotions stop applying once the limit is reached.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.redis import Cache
from storefront.core.results import ErrorKind, Result
from storefront.models.audit import AuditCategory, AuditSeverity, AuditStatus
from storefront.models.promotion import Promotion
from storefront.schemas.promotion import (
    PriceQuote,
    PromotionCreate,
    PromotionResponse,
    PromotionSummary,
    PromotionUpdate,
)
from storefront.services.audit_logger import AuditLogger

logger = logging.getLogger(__name__)

ACTIVE_PROMOTIONS_KEY = "promotions:active"

# Columns an update may clear; every other field rejects null
NULLABLE_FIELDS = {"promo_code", "usage_limit", "image_url"}

CENTS = Decimal("0.01")


def apply_discount(base_price: Any, discount: float) -> Decimal:
    """base * (1 - discount/100), rounded half-up to cents."""
    base = Decimal(str(base_price))
    factor = (Decimal(100) - Decimal(str(discount))) / Decimal(100)
    return (base * factor).quantize(CENTS, rounding=ROUND_HALF_UP)


class PromotionEngine:

    def __init__(
        self,
        db: Session,
        cache: Cache,
        audit: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.cache = cache
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger(db, self.settings)

    def invalidate(self) -> None:
        self.cache.delete(ACTIVE_PROMOTIONS_KEY)

    # ─── Reads ──────────────────────────────────────────────────────

    def get_active_promotions(self, now: Optional[datetime] = None) -> list[PromotionResponse]:
        """Running promotions, soonest-ending first."""
        now = now or datetime.now()

        cached = self.cache.get(ACTIVE_PROMOTIONS_KEY)
        if cached is not None:
            promotions = [PromotionResponse.model_validate(item) for item in cached]
        else:
            rows = (
                self.db.query(Promotion)
                .filter(
                    Promotion.active.is_(True),
                    Promotion.start_date <= now,
                    Promotion.end_date > now,
                )
                .order_by(Promotion.end_date.asc())
                .all()
            )
            promotions = [PromotionResponse.model_validate(row) for row in rows]
            self.cache.set(
                ACTIVE_PROMOTIONS_KEY,
                [p.model_dump(mode="json") for p in promotions],
                ttl=self.settings.PROMOTIONS_CACHE_TTL,
            )

        # A cached list can outlive a promotion's end date
        return [p for p in promotions if p.active and p.start_date <= now < p.end_date]

    def list_promotions(self, include_inactive: bool = False) -> list[Promotion]:
        query = self.db.query(Promotion)
        if not include_inactive:
            query = query.filter(Promotion.active.is_(True))
        return query.order_by(Promotion.created_at.desc()).all()

    def get_promotion(self, promotion_id: str) -> Optional[Promotion]:
        return self.db.get(Promotion, promotion_id)

    def find_by_code(self, code: str) -> Optional[Promotion]:
        if not code:
            return None
        return (
            self.db.query(Promotion)
            .filter(func.lower(Promotion.promo_code) == code.strip().lower())
            .order_by(Promotion.created_at.desc())
            .first()
        )

    # ─── Pricing ────────────────────────────────────────────────────

    @staticmethod
    def is_applicable(
        promotion: PromotionResponse,
        product_id: str,
        product_type: Optional[str],
        promo_code: Optional[str] = None,
    ) -> bool:
        if promotion.usage_limited and promotion.usage_limit is not None:
            if promotion.usage_count >= promotion.usage_limit:
                return False

        if promotion.promo_code:
            if not promo_code or promo_code.strip().lower() != promotion.promo_code.lower():
                return False

        if promotion.product_ids:
            return product_id in promotion.product_ids
        if promotion.categories:
            return product_type in promotion.categories
        return True

    def resolve_price(
        self,
        product_id: str,
        base_price: Any,
        product_type: Optional[str],
        promo_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PriceQuote:
        """Best single discount for a product; ties keep the soonest-ending promotion."""
        original = Decimal(str(base_price)).quantize(CENTS, rounding=ROUND_HALF_UP)

        best: Optional[PromotionResponse] = None
        for promotion in self.get_active_promotions(now):
            if not self.is_applicable(promotion, product_id, product_type, promo_code):
                continue
            if best is None or promotion.discount > best.discount:
                best = promotion

        if best is None:
            return PriceQuote(has_discount=False, original_price=original, discounted_price=original)

        return PriceQuote(
            has_discount=True,
            original_price=original,
            discounted_price=apply_discount(original, best.discount),
            discount_percentage=best.discount,
            promotion=PromotionSummary(
                id=best.id,
                title=best.title,
                description=best.description,
                expires_at=best.end_date,
            ),
        )

    # ─── Admin writes ───────────────────────────────────────────────

    def _validate(
        self,
        discount: Optional[float] = None,
        duration_hours: Optional[float] = None,
        promo_type: Optional[str] = None,
    ) -> Optional[Result]:
        if promo_type is not None and promo_type not in self.settings.PROMOTION_TYPES:
            return Result.failure(
                ErrorKind.VALIDATION_ERROR,
                f"Invalid promotion type. Use one of: {', '.join(self.settings.PROMOTION_TYPES)}",
            )
        if discount is not None and not (self.settings.DISCOUNT_MIN <= discount <= self.settings.DISCOUNT_MAX):
            return Result.failure(
                ErrorKind.VALIDATION_ERROR,
                f"Discount must be between {self.settings.DISCOUNT_MIN}% and {self.settings.DISCOUNT_MAX}%",
            )
        if duration_hours is not None and duration_hours <= 0:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "Duration must be greater than zero")
        return None

    def create_promotion(
        self,
        data: PromotionCreate,
        admin_id: str,
        now: Optional[datetime] = None,
    ) -> Result[Promotion]:
        invalid = self._validate(data.discount, data.duration_hours, data.type)
        if invalid:
            return invalid
        if data.usage_limited and not data.usage_limit:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "Usage-limited promotions need a usage limit")

        now = now or datetime.now()
        start = data.start_date or now

        promotion = Promotion(
            title=data.title or f"Promotion {data.type.capitalize()}",
            description=data.description,
            type=data.type,
            discount=data.discount,
            start_date=start,
            end_date=start + timedelta(hours=data.duration_hours),
            duration_hours=data.duration_hours,
            active=True,
            created_by=admin_id,
            product_ids=list(data.product_ids),
            categories=list(data.categories),
            promo_code=data.promo_code,
            usage_limited=data.usage_limited,
            usage_limit=data.usage_limit,
            usage_count=0,
            image_url=data.image_url,
            created_at=now,
            updated_at=now,
        )

        try:
            self.db.add(promotion)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create promotion: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not create promotion")

        self.invalidate()
        self.audit.log(
            "PROMOTION_CREATED", AuditCategory.MARKETING, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=admin_id,
            target_id=promotion.id,
            target_type="promotion",
            details={
                "title": promotion.title,
                "type": promotion.type,
                "discount": promotion.discount,
                "duration_hours": promotion.duration_hours,
                "product_ids": promotion.product_ids,
                "categories": promotion.categories,
            },
        )
        logger.info(f"Promotion {promotion.id} created by {admin_id}: {promotion.discount}% off")
        return Result.success(promotion)

    def update_promotion(
        self,
        promotion_id: str,
        changes: PromotionUpdate,
        admin_id: str,
    ) -> Result[Promotion]:
        promotion = self.db.get(Promotion, promotion_id)
        if promotion is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Promotion not found")

        fields = changes.model_dump(exclude_unset=True)
        cleared = sorted(name for name, value in fields.items() if value is None and name not in NULLABLE_FIELDS)
        if cleared:
            return Result.failure(
                ErrorKind.VALIDATION_ERROR,
                f"Fields cannot be null: {', '.join(cleared)}",
                fields=cleared,
            )
        invalid = self._validate(fields.get("discount"), fields.get("duration_hours"))
        if invalid:
            return invalid
        usage_limited = fields.get("usage_limited", promotion.usage_limited)
        usage_limit = fields["usage_limit"] if "usage_limit" in fields else promotion.usage_limit
        if usage_limited and not usage_limit:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "Usage-limited promotions need a usage limit")

        try:
            for name, value in fields.items():
                setattr(promotion, name, value)
            if "start_date" in fields or "duration_hours" in fields:
                promotion.end_date = promotion.start_date + timedelta(hours=promotion.duration_hours)
            promotion.updated_at = datetime.now()
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update promotion {promotion_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update promotion")

        self.invalidate()
        self.audit.log(
            "PROMOTION_UPDATED", AuditCategory.MARKETING, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=admin_id,
            target_id=promotion_id,
            target_type="promotion",
            details={"updated_fields": sorted(fields)},
        )
        return Result.success(promotion)

    def end_promotion(self, promotion_id: str, admin_id: str) -> Result[Promotion]:
        """Deactivate now. Ending an inactive promotion fails with ALREADY_INACTIVE."""
        promotion = self.db.get(Promotion, promotion_id)
        if promotion is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Promotion not found")

        now = datetime.now()
        try:
            ended = self.db.execute(
                update(Promotion)
                .where(Promotion.id == promotion_id, Promotion.active.is_(True))
                .values(active=False, end_date=now, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to end promotion {promotion_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not end promotion")

        if not ended:
            return Result.failure(ErrorKind.ALREADY_INACTIVE, "Promotion is already inactive")

        self.db.refresh(promotion)
        self.invalidate()
        self.audit.log(
            "PROMOTION_ENDED", AuditCategory.MARKETING, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=admin_id,
            target_id=promotion_id,
            target_type="promotion",
            details={"title": promotion.title},
        )
        logger.info(f"Promotion {promotion_id} ended by {admin_id}")
        return Result.success(promotion)

    def record_usage(self, promotion_id: str) -> bool:
        """
        Count one use unless the usage cap is already reached.

        Returns False when nothing was counted. Joins the caller's
        transaction; errors propagate.
        """
        counted = self.db.execute(
            update(Promotion)
            .where(
                Promotion.id == promotion_id,
                or_(
                    Promotion.usage_limited.is_(False),
                    Promotion.usage_limit.is_(None),
                    Promotion.usage_count < Promotion.usage_limit,
                ),
            )
            .values(usage_count=Promotion.usage_count + 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        self.invalidate()
        return bool(counted)
