"""
Payment Lifecycle Service.

PIX purchases with manual admin approval:

  PENDING → PROCESSING (bank confirmed) → COMPLETED | REJECTED
  PENDING → COMPLETED | REJECTED | EXPIRED | CANCELLED | FAILED (bank rejected)

Every status change goes through `_transition`, a conditional UPDATE that only
matches rows still in one of the expected statuses. Two admins approving the
same payment, or a lazy expiry racing the sweeper, therefore resolve to
exactly one winner.

Approval is a single unit of work: payment COMPLETED, product sold, promotion
usage counted, purchase activity and loyalty credit are committed together or
not at all. Audit entries are written after the commit and their failures
never undo it.
"""

import logging
import math
import secrets
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.encoding import to_jsonable
from storefront.core.redis import Cache
from storefront.core.results import ErrorKind, Result
from storefront.models.audit import AuditCategory, AuditSeverity, AuditStatus
from storefront.models.loyalty import PointReason
from storefront.models.payment import DeliveryMethod, Payment, PaymentMethod, PaymentStatus
from storefront.models.user import ActivityAction
from storefront.schemas.payment import (
    ApprovalResponse,
    GatewayConfirmation,
    PaymentReportRow,
    PaymentResponse,
)
from storefront.schemas.loyalty import PointsChange
from storefront.services.audit_logger import AuditLogger
from storefront.services.catalog import CatalogService
from storefront.services.loyalty import LoyaltyLedger
from storefront.services.pix import generate_pix_code, generate_pix_key, render_qr_code
from storefront.services.promotions import PromotionEngine
from storefront.services.user_profile import UserProfileService

logger = logging.getLogger(__name__)

GATEWAY_SUCCESS_STATUSES = ("approved", "completed")


def generate_credentials() -> dict[str, str]:
    """Delivery credentials: user_<8 hex> login and a 16-char URL-safe password."""
    return {
        "login": f"user_{secrets.token_hex(4)}",
        "password": secrets.token_urlsafe(12),
    }


def points_for(amount: Any) -> int:
    """One point per whole currency unit."""
    return max(0, math.floor(Decimal(str(amount))))


class PaymentService:

    def __init__(
        self,
        db: Session,
        cache: Cache,
        audit: Optional[AuditLogger] = None,
        catalog: Optional[CatalogService] = None,
        promotions: Optional[PromotionEngine] = None,
        loyalty: Optional[LoyaltyLedger] = None,
        users: Optional[UserProfileService] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger(db, self.settings)
        self.catalog = catalog or CatalogService(db, cache, self.audit, self.settings)
        self.promotions = promotions or PromotionEngine(db, cache, self.audit, self.settings)
        self.loyalty = loyalty or LoyaltyLedger(db, self.audit, self.settings)
        self.users = users or UserProfileService(db, self.audit, self.settings)

    # ─── Primitives ─────────────────────────────────────────────────

    def _transition(self, payment_id: str, from_statuses: tuple, to_status: str, *conditions, **values) -> bool:
        """Conditional status change. Does not commit. Returns True if this call won."""
        changed = self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status.in_(from_statuses), *conditions)
            .values(status=to_status, updated_at=datetime.now(), **values)
            .execution_options(synchronize_session=False)
        ).rowcount
        return bool(changed)

    def _reload(self, payment: Payment) -> Payment:
        self.db.refresh(payment)
        return payment

    def _audit(self, action: str, payment: Payment, severity: str = AuditSeverity.INFO,
               status: str = AuditStatus.SUCCESS, user_id: Optional[str] = None, **details: Any) -> None:
        try:
            self.audit.log(
                action, AuditCategory.TRANSACTION, severity, status,
                user_id=user_id or payment.user_id,
                username=payment.user_name if not user_id else None,
                payment_id=payment.id,
                payment_amount=payment.amount,
                payment_method=payment.method,
                product_id=payment.product_id,
                product_name=payment.product_name,
                details=details or None,
                ip=payment.ip_address,
            )
        except Exception:
            logger.exception(f"Audit entry {action} for payment {payment.id} could not be written")

    def _expire_if_due(self, payment: Payment, now: Optional[datetime] = None) -> bool:
        """Lazy expiry shared with the sweeper."""
        now = now or datetime.now()
        if not payment.is_expired(now):
            return False

        try:
            expired = self._transition(payment.id, (PaymentStatus.PENDING,), PaymentStatus.EXPIRED, Payment.expires_at < now)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Lazy expiry failed for payment {payment.id}: {e}")
            self.db.rollback()
            return False

        self._reload(payment)
        if expired:
            self._audit("PAYMENT_EXPIRED", payment)
            logger.info(f"Payment {payment.id} expired")
        return expired

    def _touch_buyer(self, buyer_id: str, buyer_name: str) -> None:
        try:
            self.users.create_or_update_profile(buyer_id, buyer_name)
        except SQLAlchemyError as e:
            logger.warning(f"Could not update profile for buyer {buyer_id}: {e}")
            self.db.rollback()

    # ─── Checkout ───────────────────────────────────────────────────

    def create_payment(
        self,
        buyer_id: str,
        buyer_name: str,
        product_id: str,
        amount: Any = None,
        promo_code: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Result[Payment]:
        """
        Open a PENDING PIX payment for an available product.

        When `amount` is omitted the promotion engine resolves the final price
        and the list price and promotion are snapshotted on the payment.
        """
        product = self.catalog.find(product_id)
        if product is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Product not found")
        if not product.available or product.sold:
            return Result.failure(ErrorKind.ALREADY_SOLD, "Product is no longer available")
        if self.users.is_blocked(buyer_id):
            return Result.failure(ErrorKind.FORBIDDEN, "User is blocked from purchasing")

        promotion_id = None
        if amount is None:
            quote = self.promotions.resolve_price(product.id, product.price, product.type, promo_code)
            final_amount = quote.discounted_price
            original_amount = quote.original_price
            if quote.has_discount and quote.promotion:
                promotion_id = quote.promotion.id
        else:
            final_amount = Decimal(str(amount))
            original_amount = Decimal(str(product.price))
            if final_amount < 0:
                return Result.failure(ErrorKind.VALIDATION_ERROR, "Amount cannot be negative")

        now = datetime.now()
        payment_id = str(uuid.uuid4())
        pix_code = generate_pix_code(payment_id, final_amount, product.name, self.settings)

        payment = Payment(
            id=payment_id,
            user_id=buyer_id,
            user_name=buyer_name,
            product_id=product.id,
            product_name=product.name,
            amount=final_amount,
            original_amount=original_amount,
            promotion_id=promotion_id,
            method=PaymentMethod.PIX,
            status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=self.settings.PAYMENT_EXPIRATION_SECONDS),
            pix_code=pix_code,
            pix_qr_code=render_qr_code(pix_code, self.settings),
            pix_transaction_id=generate_pix_key(),
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            self.db.add(payment)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create PIX payment for product {product_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not create payment")

        self._touch_buyer(buyer_id, buyer_name)
        self.users.record_activity(buyer_id, ActivityAction.PAYMENT_INITIATED, {
            "payment_id": payment.id,
            "product_id": product.id,
            "amount": final_amount,
        })
        self._audit("PAYMENT_CREATED", payment, original_amount=original_amount, promotion_id=promotion_id)
        logger.info(f"New PIX payment created: {payment.id} ({final_amount} for {product.id})")
        return Result.success(payment)

    def check_status(self, payment_id: str, now: Optional[datetime] = None) -> Result[Payment]:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Payment not found")
        self._expire_if_due(payment, now)
        return Result.success(payment)

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def cancel(self, payment_id: str, requester_id: str) -> Result[Payment]:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Payment not found")
        if payment.user_id != requester_id:
            return Result.failure(ErrorKind.FORBIDDEN, "You are not allowed to cancel this payment")

        self._expire_if_due(payment)
        if payment.status == PaymentStatus.COMPLETED:
            return Result.failure(ErrorKind.INVALID_STATE, "Payment was already approved and cannot be cancelled")
        if payment.is_terminal:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        now = datetime.now()
        try:
            cancelled = self._transition(
                payment_id, PaymentStatus.OPEN, PaymentStatus.CANCELLED,
                rejected_at=now, rejection_reason="Cancelled by user",
            )
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to cancel payment {payment_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not cancel payment")

        self._reload(payment)
        if not cancelled:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        self._audit("PAYMENT_CANCELLED", payment, user_id=requester_id)
        logger.info(f"Payment {payment_id} cancelled by {requester_id}")
        return Result.success(payment)

    # ─── Bank callback ──────────────────────────────────────────────

    def confirm_from_gateway(self, payment_id: str, gateway_result: GatewayConfirmation) -> Result[Payment]:
        """
        Apply the bank's verdict to a PENDING payment.
        Success moves it to PROCESSING for manual approval; failure is terminal.
        """
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Payment not found")

        self._expire_if_due(payment)
        if payment.status != PaymentStatus.PENDING:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        now = datetime.now()
        confirmed = gateway_result.status.lower() in GATEWAY_SUCCESS_STATUSES
        reason = gateway_result.reason or "unspecified"

        try:
            if confirmed:
                moved = self._transition(
                    payment_id, (PaymentStatus.PENDING,), PaymentStatus.PROCESSING,
                    bank_info=to_jsonable(gateway_result.model_dump()),
                )
            else:
                moved = self._transition(
                    payment_id, (PaymentStatus.PENDING,), PaymentStatus.FAILED,
                    failed_at=now,
                    rejected_at=now,
                    rejection_reason=f"Rejected by bank: {reason}",
                    bank_info=to_jsonable(gateway_result.model_dump()),
                )
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to apply bank result to payment {payment_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update payment")

        self._reload(payment)
        if not moved:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        if confirmed:
            self._audit(
                "PAYMENT_BANK_CONFIRMED", payment,
                transaction_id=gateway_result.transaction_id or "",
                receipt_id=gateway_result.receipt_id or "",
            )
            logger.info(f"Payment {payment_id} confirmed by bank")
        else:
            self._audit("PAYMENT_BANK_REJECTED", payment, AuditSeverity.WARNING, AuditStatus.ERROR, reason=reason)
            logger.warning(f"Payment {payment_id} rejected by bank: {reason}")

        return Result.success(payment)

    # ─── Admin decisions ────────────────────────────────────────────

    def _force_reject(self, payment: Payment, reason: str, admin_id: str) -> None:
        now = datetime.now()
        try:
            rejected = self._transition(
                payment.id, PaymentStatus.OPEN, PaymentStatus.REJECTED,
                rejected_by=admin_id, rejected_at=now, rejection_reason=reason,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to reject payment {payment.id}: {e}")
            self.db.rollback()
            return

        self._reload(payment)
        if rejected:
            self._audit(
                "PAYMENT_REJECTED", payment, AuditSeverity.WARNING, AuditStatus.WARNING,
                user_id=admin_id, reason=reason, automatic=True,
            )
            logger.warning(f"Payment {payment.id} rejected automatically: {reason}")

    def approve(self, payment_id: str, admin_id: str) -> Result[ApprovalResponse]:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Payment not found")

        self._expire_if_due(payment)
        if payment.is_terminal:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        product = self.catalog.find(payment.product_id)
        if product is None:
            self._force_reject(payment, "product not found", admin_id)
            return Result.failure(ErrorKind.NOT_FOUND, "Product not found")
        if not product.available or product.sold:
            self._force_reject(payment, "product unavailable", admin_id)
            return Result.failure(ErrorKind.ALREADY_SOLD, "Product is no longer available")

        credentials = generate_credentials()
        points = points_for(payment.amount)
        change: Optional[PointsChange] = None
        now = datetime.now()

        try:
            completed = self._transition(
                payment_id, PaymentStatus.OPEN, PaymentStatus.COMPLETED,
                completed_at=now,
                approved_by=admin_id,
                approved_at=now,
                delivery_method=DeliveryMethod.DIGITAL,
                delivered_at=now,
                delivery_data=credentials,
            )
            if not completed:
                self.db.rollback()
                self._reload(payment)
                return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

            sold = self.catalog.mark_sold(product.id, payment.user_id, commit=False)
            if not sold.ok:
                self.db.rollback()
                self._force_reject(payment, "product unavailable", admin_id)
                return Result.failure(ErrorKind.ALREADY_SOLD, "Product is no longer available")

            promotion_counted = None
            if payment.promotion_id:
                # price was quoted at checkout; a use past the cap is honoured but not counted
                promotion_counted = self.promotions.record_usage(payment.promotion_id)
                if not promotion_counted:
                    logger.warning(
                        f"Promotion {payment.promotion_id} reached its usage limit; "
                        f"payment {payment.id} keeps the quoted price"
                    )

            self.users.record_activity(payment.user_id, ActivityAction.PRODUCT_PURCHASE, {
                "payment_id": payment.id,
                "product_id": product.id,
                "product_name": product.name,
                "product_type": product.type,
                "amount": payment.amount,
            }, commit=False)

            if points > 0:
                change = self.loyalty.add_points(
                    payment.user_id, points, PointReason.PURCHASE,
                    user_name=payment.user_name,
                    product_id=product.id,
                    payment_id=payment.id,
                    action_by=admin_id,
                    commit=False,
                    now=now,
                ).value

            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Approval of payment {payment_id} rolled back: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not complete approval, nothing was changed")

        self._reload(payment)
        self.catalog.invalidate(product.id)

        self._audit(
            "PAYMENT_APPROVED", payment, user_id=admin_id, buyer_id=payment.user_id, loyalty_points=points,
            promotion_id=payment.promotion_id, promotion_counted=promotion_counted,
        )
        if change is not None:
            try:
                self.loyalty.log_points_added(
                    change, PointReason.PURCHASE,
                    user_name=payment.user_name, payment_id=payment.id, product_id=product.id,
                )
            except Exception:
                logger.exception(f"Audit entry LOYALTY_POINTS_ADDED for payment {payment_id} could not be written")

        logger.info(f"Payment {payment_id} approved by {admin_id}")
        return Result.success(ApprovalResponse(
            payment=PaymentResponse.from_payment(payment),
            account_credentials=credentials,
            loyalty_points=points,
        ))

    def reject(self, payment_id: str, reason: str, admin_id: str) -> Result[Payment]:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Payment not found")

        self._expire_if_due(payment)
        if payment.is_terminal:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        now = datetime.now()
        try:
            rejected = self._transition(
                payment_id, PaymentStatus.OPEN, PaymentStatus.REJECTED,
                rejected_by=admin_id, rejected_at=now, rejection_reason=reason,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to reject payment {payment_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not reject payment")

        self._reload(payment)
        if not rejected:
            return Result.failure(ErrorKind.INVALID_STATE, f"Payment is already {payment.status}")

        self.users.record_activity(payment.user_id, ActivityAction.PAYMENT_REJECTED, {
            "payment_id": payment.id,
            "product_id": payment.product_id,
            "reason": reason,
        })
        self._audit("PAYMENT_REJECTED", payment, user_id=admin_id, reason=reason, buyer_id=payment.user_id)
        logger.info(f"Payment {payment_id} rejected by {admin_id}: {reason}")
        return Result.success(payment)

    # ─── Queries ────────────────────────────────────────────────────

    def list_pending_approvals(self, now: Optional[datetime] = None) -> list[Payment]:
        """Open, unexpired payments, newest first."""
        now = now or datetime.now()
        return (
            self.db.query(Payment)
            .filter(Payment.status.in_(PaymentStatus.OPEN), Payment.expires_at > now)
            .order_by(Payment.created_at.desc())
            .all()
        )

    def list_user_pending(self, user_id: str, now: Optional[datetime] = None) -> list[Payment]:
        now = now or datetime.now()
        return (
            self.db.query(Payment)
            .filter(
                Payment.user_id == user_id,
                Payment.status == PaymentStatus.PENDING,
                Payment.expires_at > now,
            )
            .order_by(Payment.created_at.desc())
            .all()
        )

    def payment_report(self, days: int = 30) -> list[PaymentReportRow]:
        """Count and total amount per status for payments created in the last `days`."""
        since = datetime.now() - timedelta(days=days)
        rows = (
            self.db.query(Payment.status, func.count(Payment.id), func.sum(Payment.amount))
            .filter(Payment.created_at >= since)
            .group_by(Payment.status)
            .order_by(Payment.status)
            .all()
        )
        return [
            PaymentReportRow(status=status, total=total, total_amount=Decimal(str(amount or 0)))
            for status, total, amount in rows
        ]

    # ─── Sweeper ────────────────────────────────────────────────────

    def sweep_expired_payments(self, now: Optional[datetime] = None) -> int:
        """Expire every overdue PENDING payment. Returns how many this run expired."""
        now = now or datetime.now()
        due_ids = [
            row[0]
            for row in self.db.query(Payment.id)
            .filter(Payment.status == PaymentStatus.PENDING, Payment.expires_at < now)
            .all()
        ]

        expired_ids = []
        try:
            for payment_id in due_ids:
                if self._transition(payment_id, (PaymentStatus.PENDING,), PaymentStatus.EXPIRED, Payment.expires_at < now):
                    expired_ids.append(payment_id)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Payment expiry sweep failed: {e}")
            self.db.rollback()
            return 0

        for payment_id in expired_ids:
            payment = self.db.get(Payment, payment_id)
            self._reload(payment)
            self._audit("PAYMENT_EXPIRED", payment, swept=True)

        logger.info(f"Payment sweep finished: {len(expired_ids)} expired")
        return len(expired_ids)
