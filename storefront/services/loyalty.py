"""
Loyalty Ledger.

Points are earned on purchases (1 point per whole currency unit), expire after
LOYALTY_EXPIRATION_DAYS and can be spent while the balance allows.

The ledger is append-only:
- Grants are ACTIVE transactions with an expiry date
- Spends are negative USED transactions that never expire
- Expiry flips due grants to EXPIRED and appends one negative EXPIRATION entry

Expiry is applied lazily on read and by the periodic sweep. Both go through
`materialize_expiry`, which flips each grant with a conditional UPDATE, so a
grant can only ever be subtracted once.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.results import ErrorKind, Result
from storefront.models.audit import AuditCategory, AuditSeverity, AuditStatus
from storefront.models.loyalty import LoyaltyAccount, PointReason, PointStatus, PointTransaction
from storefront.models.user import User
from storefront.schemas.loyalty import LoyaltySnapshot, PointsChange, PointTransactionResponse
from storefront.services.audit_logger import AuditLogger

logger = logging.getLogger(__name__)

# (minimum lifetime points, tier), highest first
TIER_THRESHOLDS = [(10000, 5), (5000, 4), (2000, 3), (500, 2)]

TIER_NAMES = {1: "Starter", 2: "Bronze", 3: "Silver", 4: "Gold", 5: "VIP"}


def tier_for(lifetime_points: int) -> int:
    """Step function from lifetime points to tier 1-5."""
    for threshold, tier in TIER_THRESHOLDS:
        if lifetime_points >= threshold:
            return tier
    return 1


class LoyaltyLedger:

    def __init__(self, db: Session, audit: Optional[AuditLogger] = None, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger(db, self.settings)

    def _display_name(self, user_id: str, user_name: Optional[str]) -> str:
        if user_name:
            return user_name
        user = self.db.get(User, user_id)
        return user.username if user else user_id

    # ─── Earning ────────────────────────────────────────────────────

    def add_points(
        self,
        user_id: str,
        amount: int,
        reason: str = PointReason.PURCHASE,
        *,
        user_name: Optional[str] = None,
        product_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        action_by: Optional[str] = None,
        commit: bool = True,
        now: Optional[datetime] = None,
    ) -> Result[PointsChange]:
        """
        Grant points, creating the account on first use.

        With commit=False the grant joins the caller's transaction: errors
        propagate and the caller emits the audit entry after its own commit
        via `log_points_added`.
        """
        if not isinstance(amount, int) or amount <= 0:
            return Result.failure(ErrorKind.INVALID_AMOUNT, "Points amount must be a positive integer")

        now = now or datetime.now()

        def apply() -> LoyaltyAccount:
            account = self.db.get(LoyaltyAccount, user_id)
            if account is None:
                account = LoyaltyAccount(
                    user_id=user_id,
                    user_name=self._display_name(user_id, user_name),
                    total_points=0,
                    lifetime_points=0,
                    level=1,
                    last_updated=now,
                )
                self.db.add(account)
                logger.info(f"Loyalty account created for {user_id}")

            account.transactions.append(PointTransaction(
                amount=amount,
                reason=reason,
                created_at=now,
                expires_at=now + timedelta(days=self.settings.LOYALTY_EXPIRATION_DAYS),
                status=PointStatus.ACTIVE,
                related_product_id=product_id,
                related_payment_id=payment_id,
                action_by=action_by,
            ))
            account.total_points += amount
            account.lifetime_points += amount
            account.level = tier_for(account.lifetime_points)
            account.last_updated = now
            return account

        if not commit:
            account = apply()
            self.db.flush()
            return Result.success(PointsChange(
                user_id=user_id, points=amount, balance=account.total_points, tier=account.level,
            ))

        try:
            account = apply()
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to add {amount} points for {user_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update loyalty points")

        change = PointsChange(user_id=user_id, points=amount, balance=account.total_points, tier=account.level)
        self.log_points_added(change, reason, user_name=account.user_name, payment_id=payment_id, product_id=product_id)
        return Result.success(change)

    def log_points_added(
        self,
        change: PointsChange,
        reason: str,
        *,
        user_name: Optional[str] = None,
        payment_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> None:
        self.audit.log(
            "LOYALTY_POINTS_ADDED", AuditCategory.USER, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=change.user_id,
            username=user_name,
            payment_id=payment_id,
            product_id=product_id,
            details={
                "points": change.points,
                "reason": reason,
                "new_total": change.balance,
                "level": change.tier,
            },
        )

    # ─── Spending ───────────────────────────────────────────────────

    def use_points(
        self,
        user_id: str,
        amount: int,
        reason: str = PointReason.REDEMPTION,
        *,
        product_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        action_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result[PointsChange]:
        if not isinstance(amount, int) or amount <= 0:
            return Result.failure(ErrorKind.INVALID_AMOUNT, "Points amount must be a positive integer")

        now = now or datetime.now()
        account = self.db.get(LoyaltyAccount, user_id)
        if account is None:
            return Result.failure(ErrorKind.NO_ACCOUNT, "User has no loyalty account")

        # Spend against the balance as of now
        if self._expire_and_commit(account, now) is None:
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update loyalty points")

        if account.total_points < amount:
            return Result.failure(
                ErrorKind.INSUFFICIENT_BALANCE,
                "Not enough points",
                current=account.total_points,
                requested=amount,
            )

        try:
            account.transactions.append(PointTransaction(
                amount=-amount,
                reason=reason,
                created_at=now,
                expires_at=None,
                status=PointStatus.USED,
                related_product_id=product_id,
                related_payment_id=payment_id,
                action_by=action_by,
            ))
            account.total_points -= amount
            account.last_updated = now
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to use {amount} points for {user_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update loyalty points")

        self.audit.log(
            "LOYALTY_POINTS_USED", AuditCategory.USER, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=user_id,
            username=account.user_name,
            payment_id=payment_id,
            product_id=product_id,
            details={"points": amount, "reason": reason, "remaining": account.total_points},
        )
        return Result.success(PointsChange(
            user_id=user_id, points=-amount, balance=account.total_points, tier=account.level,
        ))

    # ─── Expiry ─────────────────────────────────────────────────────

    def materialize_expiry(self, account: LoyaltyAccount, now: Optional[datetime] = None) -> int:
        """
        Expire due grants on `account` without committing.

        Returns the points subtracted from the balance. The subtraction is
        clamped so the balance never goes negative when expired points were
        already spent.
        """
        now = now or datetime.now()
        due = 0

        for tx in account.transactions:
            if tx.status != PointStatus.ACTIVE or tx.amount <= 0:
                continue
            if tx.expires_at is None or tx.expires_at > now:
                continue

            flipped = self.db.execute(
                update(PointTransaction)
                .where(PointTransaction.id == tx.id, PointTransaction.status == PointStatus.ACTIVE)
                .values(status=PointStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            ).rowcount
            tx.status = PointStatus.EXPIRED
            if flipped:
                due += tx.amount

        compensation = min(due, account.total_points)
        if compensation > 0:
            account.transactions.append(PointTransaction(
                amount=-compensation,
                reason=PointReason.EXPIRATION,
                created_at=now,
                expires_at=None,
                status=PointStatus.USED,
            ))
            account.total_points -= compensation
            account.last_updated = now

        return compensation

    def _expire_and_commit(self, account: LoyaltyAccount, now: datetime) -> Optional[int]:
        """Persist and audit due expiries. Returns None when the store failed."""
        try:
            expired = self.materialize_expiry(account, now)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Point expiry failed for {account.user_id}: {e}")
            self.db.rollback()
            return None

        if expired:
            self.audit.log(
                "LOYALTY_POINTS_EXPIRED", AuditCategory.USER, AuditSeverity.INFO, AuditStatus.INFO,
                user_id=account.user_id,
                username=account.user_name,
                details={"points": expired, "remaining": account.total_points},
            )
        return expired

    def sweep_expired_points(self, now: Optional[datetime] = None) -> int:
        """Expire due grants for every account. Returns the number of accounts changed."""
        now = now or datetime.now()
        user_ids = [
            row[0]
            for row in self.db.query(PointTransaction.user_id)
            .filter(
                PointTransaction.status == PointStatus.ACTIVE,
                PointTransaction.amount > 0,
                PointTransaction.expires_at <= now,
            )
            .distinct()
            .all()
        ]

        changed = 0
        for user_id in user_ids:
            account = self.db.get(LoyaltyAccount, user_id)
            if account is not None and self._expire_and_commit(account, now):
                changed += 1

        logger.info(f"Loyalty sweep finished: {changed} of {len(user_ids)} accounts changed")
        return changed

    # ─── Reads ──────────────────────────────────────────────────────

    def get_balance(self, user_id: str, now: Optional[datetime] = None) -> LoyaltySnapshot:
        """Snapshot after applying any due expiry. Missing accounts read as empty."""
        now = now or datetime.now()
        account = self.db.get(LoyaltyAccount, user_id)
        if account is None:
            return LoyaltySnapshot(user_id=user_id, tier_name=TIER_NAMES[1])

        self._expire_and_commit(account, now)
        return self._snapshot(account)

    def _snapshot(self, account: LoyaltyAccount) -> LoyaltySnapshot:
        transactions = sorted(account.transactions, key=lambda tx: (tx.created_at, tx.id), reverse=True)
        return LoyaltySnapshot(
            user_id=account.user_id,
            balance=account.total_points,
            lifetime_total=account.lifetime_points,
            tier=account.level,
            tier_name=TIER_NAMES.get(account.level, TIER_NAMES[1]),
            transactions=[
                PointTransactionResponse(
                    id=tx.id,
                    amount=tx.amount,
                    reason=tx.reason,
                    date=tx.created_at,
                    expires_at=tx.expires_at,
                    status=tx.status,
                )
                for tx in transactions
            ],
            money_value=round(account.total_points * self.settings.LOYALTY_CONVERSION_RATE, 2),
        )
