"""
User Profile Service.

Identity, preferences, block status and the bounded activity log used by
recommendations and reporting.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.encoding import to_jsonable
from storefront.core.results import ErrorKind, Result
from storefront.models.audit import AuditCategory, AuditSeverity, AuditStatus
from storefront.models.payment import Payment, PaymentStatus
from storefront.models.user import ActivityAction, User, UserActivity, default_preferences
from storefront.schemas.user import PurchaseRecord
from storefront.services.audit_logger import AuditLogger

logger = logging.getLogger(__name__)


class UserProfileService:
    """Profile store operations. Pass commit=False to join a caller's unit of work."""

    def __init__(self, db: Session, audit: Optional[AuditLogger] = None, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger(db, self.settings)

    def create_or_update_profile(
        self,
        user_id: str,
        username: str,
        email: Optional[str] = None,
        preferences: Optional[dict] = None,
        commit: bool = True,
    ) -> User:
        """Upsert a profile and touch last_active."""
        user = self.db.get(User, user_id)
        now = datetime.now()

        if user is None:
            user = User(
                user_id=user_id,
                username=username,
                email=email,
                preferences={**default_preferences(), **(preferences or {})},
                created_at=now,
                last_active=now,
            )
            self.db.add(user)
            logger.info(f"New user profile created for {user_id}")
        else:
            user.username = username
            user.last_active = now
            if email:
                user.email = email
            if preferences:
                user.preferences = {**(user.preferences or {}), **preferences}

        if commit:
            self.db.commit()
        else:
            self.db.flush()
        return user

    def get_profile(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def is_blocked(self, user_id: str) -> bool:
        user = self.db.get(User, user_id)
        return bool(user and user.is_blocked)

    # ─── Activity log ───────────────────────────────────────────────

    def _append_activity(self, user_id: str, action: str, data: Optional[dict]) -> None:
        user = self.db.get(User, user_id)
        if user is None:
            # Placeholder name until the real one is known
            user = self.create_or_update_profile(user_id, username=user_id, commit=False)

        now = datetime.now()
        user.activities.append(UserActivity(action=action, timestamp=now, data=to_jsonable(data or {})))

        limit = self.settings.ACTIVITY_HISTORY_LIMIT
        if len(user.activities) > limit:
            del user.activities[:-limit]

        user.last_active = now

    def record_activity(self, user_id: str, action: str, data: Optional[dict] = None, commit: bool = True) -> bool:
        """
        Append an activity, keeping only the newest ACTIVITY_HISTORY_LIMIT entries.

        With commit=False the write joins the caller's transaction and
        persistence errors propagate so the caller can roll back.
        """
        if action not in ActivityAction.ALL:
            logger.warning(f"Unknown activity action {action} for user {user_id}")
            return False

        if not commit:
            self._append_activity(user_id, action, data)
            self.db.flush()
            return True

        try:
            self._append_activity(user_id, action, data)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record activity {action} for user {user_id}: {e}")
            self.db.rollback()
            return False

        logger.debug(f"Activity {action} recorded for user {user_id}")
        return True

    def get_history(self, user_id: str, limit: int = 50) -> list[UserActivity]:
        """Most recent activities first."""
        return (
            self.db.query(UserActivity)
            .filter(UserActivity.user_id == user_id)
            .order_by(UserActivity.timestamp.desc(), UserActivity.id.desc())
            .limit(limit)
            .all()
        )

    def get_purchase_history(self, user_id: str) -> list[PurchaseRecord]:
        payments = (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id, Payment.status == PaymentStatus.COMPLETED)
            .order_by(Payment.completed_at.desc())
            .all()
        )
        return [
            PurchaseRecord(
                payment_id=p.id,
                product_id=p.product_id,
                product_name=p.product_name,
                amount=p.amount,
                date=p.completed_at or p.created_at,
                method=p.method,
            )
            for p in payments
        ]

    def record_feedback(self, user_id: str, feedback: str) -> bool:
        return self.record_activity(user_id, ActivityAction.FEEDBACK_SUBMITTED, {"feedback": feedback})

    # ─── Moderation & preferences ───────────────────────────────────

    def block_user(self, user_id: str, reason: str, admin_id: str) -> Result[User]:
        user = self.db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")

        try:
            user.is_blocked = True
            user.block_reason = reason
            user.blocked_by = admin_id
            user.block_date = datetime.now()
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to block user {user_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not block user")

        self.audit.log(
            "USER_BLOCKED", AuditCategory.SECURITY, AuditSeverity.WARNING, AuditStatus.SUCCESS,
            user_id=admin_id, target_id=user_id, target_type="user", details={"reason": reason},
        )
        logger.info(f"User {user_id} blocked by {admin_id}. Reason: {reason}")
        return Result.success(user)

    def unblock_user(self, user_id: str, admin_id: str) -> Result[User]:
        user = self.db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")
        if not user.is_blocked:
            return Result.failure(ErrorKind.INVALID_STATE, "User is not blocked")

        try:
            self._append_activity(user_id, ActivityAction.USER_UNBLOCKED, {
                "admin_id": admin_id,
                "previous_reason": user.block_reason,
            })
            user.is_blocked = False
            user.block_reason = None
            user.blocked_by = None
            user.block_date = None
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to unblock user {user_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not unblock user")

        self.audit.log(
            "USER_UNBLOCKED", AuditCategory.SECURITY, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=admin_id, target_id=user_id, target_type="user",
        )
        logger.info(f"User {user_id} unblocked by {admin_id}")
        return Result.success(user)

    def update_preferences(self, user_id: str, preferences: dict) -> Result[dict]:
        user = self.db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")

        try:
            # Reassign so the JSON column is flagged dirty
            user.preferences = {**(user.preferences or {}), **preferences}
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update preferences for {user_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update preferences")

        return Result.success(user.preferences)

    def update_status(self, user_id: str, status: str, data: Optional[dict] = None) -> Result[User]:
        """Record a status change; BLACKLISTED also blocks the user."""
        data = data or {}
        user = self.db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")

        try:
            self._append_activity(user_id, ActivityAction.STATUS_CHANGED, {"status": status, **data})
            if status == "BLACKLISTED":
                user.is_blocked = True
                user.block_reason = data.get("reason", "Added to blacklist")
                user.blocked_by = data.get("admin_id", "SYSTEM")
                user.block_date = datetime.now()
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update status for {user_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update status")

        logger.info(f"User {user_id} status updated to {status}")
        return Result.success(user)
