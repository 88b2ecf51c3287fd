"""
Audit Log Service.

Append-only record of domain events. Every other service reports here.

- Writing is best-effort: `log()` never raises to the caller
- Retention is fixed at creation from the severity
- Old entries are purged by `cleanup_old_logs()` from the periodic job
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.encoding import to_jsonable
from storefront.models.audit import AuditEntry, AuditCategory, AuditSeverity, AuditStatus
from storefront.schemas.audit import (
    AuditEntryResponse,
    AuditFilter,
    AuditSearchResponse,
    AuditStats,
    CountBucket,
)

logger = logging.getLogger(__name__)


def retention_window(severity: str, settings: Settings) -> timedelta:
    """Map a severity to its retention window."""
    seconds = {
        AuditSeverity.CRITICAL: settings.AUDIT_RETENTION_CRITICAL,
        AuditSeverity.ERROR: settings.AUDIT_RETENTION_ERROR,
        AuditSeverity.WARNING: settings.AUDIT_RETENTION_WARNING,
    }.get(severity, settings.AUDIT_RETENTION_INFO)
    return timedelta(seconds=seconds)


class AuditLogger:
    """
    Audit sink backed by the audit_logs table.

    Callers log after committing their own work: a failed audit write rolls
    back the shared session, which must not hold anything uncommitted.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def log(
        self,
        action: str,
        category: str,
        severity: str,
        status: str,
        *,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        target_id: Optional[str] = None,
        target_type: Optional[str] = None,
        product_id: Optional[str] = None,
        product_name: Optional[str] = None,
        product_price: Any = None,
        payment_id: Optional[str] = None,
        payment_amount: Any = None,
        payment_method: Optional[str] = None,
        details: Optional[dict] = None,
        ip: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[AuditEntry]:
        """Append an entry. Returns the entry, a fallback entry, or None."""
        if not action or not category or not severity or not status:
            logger.error(f"Incomplete audit entry dropped: action={action} category={category}")
            return None

        severity = severity.lower()
        timestamp = timestamp or datetime.now()

        try:
            entry = AuditEntry(
                action=action,
                category=category,
                severity=severity,
                status=status,
                timestamp=timestamp,
                user_id=user_id,
                username=username,
                target_id=target_id,
                target_type=target_type,
                product_id=product_id,
                product_name=product_name,
                product_price=product_price,
                payment_id=payment_id,
                payment_amount=payment_amount,
                payment_method=payment_method,
                details=to_jsonable(details),
                ip=ip,
                retention_date=timestamp + retention_window(severity, self.settings),
            )
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Audit write failed for {action}: {e}")
            self.db.rollback()
            return self._log_fallback(action, str(e))

        if severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            logger.error(f"[AUDIT {severity.upper()}] {action}: {entry.details or {}}")

        return entry

    def _log_fallback(self, original_action: str, error_message: str) -> Optional[AuditEntry]:
        """Minimal AUDIT_ERROR entry recorded when the real write failed."""
        now = datetime.now()
        try:
            fallback = AuditEntry(
                action="AUDIT_ERROR",
                category=AuditCategory.SYSTEM,
                severity=AuditSeverity.ERROR,
                status=AuditStatus.ERROR,
                timestamp=now,
                details={"original_action": original_action, "error_message": error_message[:500]},
                retention_date=now + retention_window(AuditSeverity.ERROR, self.settings),
            )
            self.db.add(fallback)
            self.db.commit()
            return fallback
        except SQLAlchemyError as e:
            logger.error(f"Audit system unavailable: {e}")
            self.db.rollback()
            return None

    # ─── Queries ────────────────────────────────────────────────────

    def _filtered(self, filters: AuditFilter):
        query = self.db.query(AuditEntry)
        if filters.action:
            query = query.filter(AuditEntry.action == filters.action)
        if filters.category:
            query = query.filter(AuditEntry.category == filters.category)
        if filters.severity:
            query = query.filter(AuditEntry.severity == filters.severity.lower())
        if filters.status:
            query = query.filter(AuditEntry.status == filters.status)
        if filters.user_id:
            query = query.filter(AuditEntry.user_id == filters.user_id)
        if filters.target_id:
            query = query.filter(AuditEntry.target_id == filters.target_id)
        if filters.product_id:
            query = query.filter(AuditEntry.product_id == filters.product_id)
        if filters.payment_id:
            query = query.filter(AuditEntry.payment_id == filters.payment_id)
        if filters.start_date:
            query = query.filter(AuditEntry.timestamp >= filters.start_date)
        if filters.end_date:
            query = query.filter(AuditEntry.timestamp <= filters.end_date)
        return query

    def search(self, filters: Optional[AuditFilter] = None, limit: int = 100, skip: int = 0) -> AuditSearchResponse:
        """Paginated search, newest first."""
        query = self._filtered(filters or AuditFilter())
        total = query.count()
        logs = (
            query
            .order_by(AuditEntry.timestamp.desc(), AuditEntry.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return AuditSearchResponse(
            logs=[AuditEntryResponse.model_validate(log) for log in logs],
            total=total,
            page=skip // limit + 1,
            page_size=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )

    def stats(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> AuditStats:
        """Counts by severity, category, status and top actions for a time range."""
        filters = AuditFilter(start_date=start_date, end_date=end_date)

        def grouped(column, limit: Optional[int] = None) -> list[CountBucket]:
            query = (
                self._filtered(filters)
                .with_entities(column, func.count(AuditEntry.id).label("count"))
                .group_by(column)
                .order_by(func.count(AuditEntry.id).desc())
            )
            if limit:
                query = query.limit(limit)
            return [CountBucket(key=key, count=count) for key, count in query.all()]

        recent = (
            self._filtered(filters)
            .order_by(AuditEntry.timestamp.desc(), AuditEntry.id.desc())
            .limit(5)
            .all()
        )

        return AuditStats(
            total=self._filtered(filters).count(),
            by_severity=grouped(AuditEntry.severity),
            by_category=grouped(AuditEntry.category),
            by_status=grouped(AuditEntry.status),
            top_actions=grouped(AuditEntry.action, limit=10),
            recent_logs=[AuditEntryResponse.model_validate(log) for log in recent],
        )

    def cleanup_old_logs(self, now: Optional[datetime] = None) -> int:
        """Delete entries past their retention date. Returns the number removed."""
        now = now or datetime.now()
        try:
            deleted = (
                self.db.query(AuditEntry)
                .filter(AuditEntry.retention_date < now)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Audit cleanup failed: {e}")
            self.db.rollback()
            return 0

        logger.info(f"Audit cleanup finished: {deleted} entries removed")
        return deleted
