"""
User profile model representing storefront buyers.
Each user keeps preferences, block status and a bounded activity log.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.database import Base


class ActivityAction:
    PRODUCT_VIEW = "PRODUCT_VIEW"
    PRODUCT_PURCHASE = "PRODUCT_PURCHASE"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    COMMAND_USED = "COMMAND_USED"
    REPORTED_BY_ADMIN = "REPORTED_BY_ADMIN"
    ASSISTANT_QUERY = "ASSISTANT_QUERY"
    ASSISTANT_FEEDBACK = "ASSISTANT_FEEDBACK"
    FEEDBACK_SUBMITTED = "FEEDBACK_SUBMITTED"
    USER_UNBLOCKED = "USER_UNBLOCKED"
    STATUS_CHANGED = "STATUS_CHANGED"

    ALL = (
        PRODUCT_VIEW, PRODUCT_PURCHASE, PAYMENT_INITIATED, PAYMENT_COMPLETED,
        PAYMENT_REJECTED, COMMAND_USED, REPORTED_BY_ADMIN, ASSISTANT_QUERY,
        ASSISTANT_FEEDBACK, FEEDBACK_SUBMITTED, USER_UNBLOCKED, STATUS_CHANGED,
    )


def default_preferences() -> dict:
    return {"theme": "light", "categories": [], "price_range": [], "notifications": True}


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        doc="Chat platform user identifier"
    )
    username: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="User display name"
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Optional contact email"
    )
    preferences: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=default_preferences,
        doc="theme, categories, price_range [min, max], notifications"
    )
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    block_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    blocked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    block_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        nullable=False,
        doc="Profile creation timestamp"
    )
    last_active: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False, index=True)

    # Relationship to activities
    activities = relationship(
        "UserActivity",
        back_populates="user",
        lazy="selectin",
        order_by="UserActivity.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id}, name={self.username}, blocked={self.is_blocked})>"


class UserActivity(Base):
    __tablename__ = "user_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.user_id"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False, index=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    user = relationship("User", back_populates="activities")

    def __repr__(self) -> str:
        return f"<UserActivity(user={self.user_id}, action={self.action})>"
