"""
Payment model representing one PIX purchase attempt.

Storage is flat so that status transitions can be done with a single-row
conditional UPDATE; the nested outward shape lives in schemas/payment.py.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Numeric, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class PaymentStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    OPEN = (PENDING, PROCESSING)
    TERMINAL = (COMPLETED, REJECTED, EXPIRED, CANCELLED, FAILED)


class PaymentMethod:
    PIX = "PIX"


class DeliveryMethod:
    DIGITAL = "DIGITAL"
    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_user_status_created", "user_id", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Unique payment identifier (UUID)"
    )

    # Buyer
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Product snapshot
    product_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Money
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        doc="Final amount charged, immutable after creation"
    )
    original_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
        doc="List price before promotion"
    )
    promotion_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
        doc="Promotion applied at checkout"
    )
    method: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentMethod.PIX)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
        doc="created_at + configured TTL, immutable after creation"
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # PIX details
    pix_code: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    pix_qr_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    pix_transaction_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    # Approval info
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Bank confirmation payload
    bank_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Request metadata
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    # Delivery (set if and only if COMPLETED)
    delivery_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivery_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in PaymentStatus.TERMINAL

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when the payment is still PENDING but past its expiry."""
        now = now or datetime.now()
        return self.status == PaymentStatus.PENDING and now > self.expires_at

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, user={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
