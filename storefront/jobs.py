"""
Periodic maintenance jobs.

Each job opens its own session, runs once and returns a small summary, so an
external scheduler (cron, Kubernetes CronJob) can run them:

    python -m storefront.jobs payments     # every hour
    python -m storefront.jobs points       # daily
    python -m storefront.jobs audit        # daily at 01:00
    python -m storefront.jobs marketplace  # every 15 minutes
"""

import argparse
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.database import SessionLocal, init_db
from storefront.core.redis import Cache, RedisCache
from storefront.services.audit_logger import AuditLogger
from storefront.services.catalog import CatalogService
from storefront.services.loyalty import LoyaltyLedger
from storefront.services.marketplace_client import MarketplaceClient
from storefront.services.payments import PaymentService

logger = logging.getLogger(__name__)


@contextmanager
def session_scope():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def sweep_expired_payments(db: Session, cache: Cache, settings: Settings, now: Optional[datetime] = None) -> dict:
    expired = PaymentService(db, cache, settings=settings).sweep_expired_payments(now)
    return {"expired": expired}


def sweep_expired_points(db: Session, cache: Cache, settings: Settings, now: Optional[datetime] = None) -> dict:
    changed = LoyaltyLedger(db, settings=settings).sweep_expired_points(now)
    return {"accounts_changed": changed}


def cleanup_old_logs(db: Session, cache: Cache, settings: Settings, now: Optional[datetime] = None) -> dict:
    deleted = AuditLogger(db, settings).cleanup_old_logs(now)
    return {"deleted": deleted}


def sync_marketplace(db: Session, cache: Cache, settings: Settings, now: Optional[datetime] = None) -> dict:
    if not settings.LZT_ENABLED:
        logger.info("[LZT SYNC] Disabled, skipping")
        return {"skipped": True}
    with MarketplaceClient(settings) as client:
        report = CatalogService(db, cache, settings=settings).sync_marketplace(client)
    return report.model_dump()


JOBS: dict[str, Callable[..., dict]] = {
    "payments": sweep_expired_payments,
    "points": sweep_expired_points,
    "audit": cleanup_old_logs,
    "marketplace": sync_marketplace,
}


def run_job(name: str, db: Optional[Session] = None, cache: Optional[Cache] = None,
            settings: Optional[Settings] = None, now: Optional[datetime] = None) -> dict:
    """Run one job by name, opening a session when none is given."""
    job = JOBS[name]
    settings = settings or get_settings()
    cache = cache or RedisCache()

    if db is not None:
        return job(db, cache, settings, now)

    with session_scope() as session:
        return job(session, cache, settings, now)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run storefront maintenance jobs")
    parser.add_argument("jobs", nargs="+", choices=[*JOBS, "all"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    init_db()

    names = list(JOBS) if "all" in args.jobs else args.jobs
    for name in names:
        logger.info(f"Running job {name}")
        result = run_job(name)
        logger.info(f"Job {name} finished: {result}")


if __name__ == "__main__":
    main()
