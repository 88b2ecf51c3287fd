"""
Audit log entry: an immutable record of a domain event.
Retention is computed once, at creation, from the severity.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class AuditCategory:
    USER = "USER"
    PRODUCT = "PRODUCT"
    TRANSACTION = "TRANSACTION"
    SECURITY = "SECURITY"
    INTEGRATION = "INTEGRATION"
    MARKETING = "MARKETING"
    AI = "AI"
    SYSTEM = "SYSTEM"

    ALL = (USER, PRODUCT, TRANSACTION, SECURITY, INTEGRATION, MARKETING, AI, SYSTEM)


class AuditSeverity:
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    ALL = (INFO, WARNING, ERROR, CRITICAL)


class AuditStatus:
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    BLOCKED = "BLOCKED"

    ALL = (SUCCESS, ERROR, WARNING, INFO, BLOCKED)


class AuditEntry(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False, index=True)

    # Actor
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Target of the action
    target_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    target_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Product and payment references
    product_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    product_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    retention_date: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
        doc="timestamp + severity retention window"
    )

    def __repr__(self) -> str:
        return f"<AuditEntry(id={self.id}, action={self.action}, severity={self.severity})>"
