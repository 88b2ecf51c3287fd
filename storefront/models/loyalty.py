"""
Loyalty models: one account per user plus its append-only point transactions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.database import Base


class PointStatus:
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"


class PointReason:
    PURCHASE = "PURCHASE"
    EXPIRATION = "EXPIRATION"
    REDEMPTION = "REDEMPTION"
    ADMIN_GRANT = "ADMIN_GRANT"


class LoyaltyAccount(Base):
    __tablename__ = "loyalty_accounts"

    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        doc="Owner user id (one account per user)"
    )
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)
    total_points: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        doc="Current spendable balance, never negative"
    )
    lifetime_points: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        doc="Sum of every point ever earned"
    )
    level: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
        doc="Tier 1-5 derived from lifetime_points"
    )
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    transactions = relationship(
        "PointTransaction",
        back_populates="account",
        lazy="selectin",
        order_by="PointTransaction.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<LoyaltyAccount(user={self.user_id}, points={self.total_points}, level={self.level})>"


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("loyalty_accounts.user_id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Signed amount: positive for grants, negative for spends and expiry"
    )
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        index=True,
        doc="Set on grants only; spends and expiry corrections never expire"
    )
    status: Mapped[str] = mapped_column(String(10), nullable=False, default=PointStatus.ACTIVE)
    related_product_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    related_payment_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    action_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    account = relationship("LoyaltyAccount", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<PointTransaction(user={self.user_id}, amount={self.amount}, status={self.status})>"
