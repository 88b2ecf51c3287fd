from contextlib import contextmanager

from mcp.server.fastmcp import FastMCP

# Import standard app components
from storefront.core.database import SessionLocal, init_db
from storefront.core.redis import RedisCache
from storefront.jobs import run_job
from storefront.schemas.payment import PaymentResponse
from storefront.services.loyalty import LoyaltyLedger
from storefront.services.payments import PaymentService
from storefront.services.promotions import PromotionEngine

# Create an MCP server instance
mcp = FastMCP("Storefront-Admin-Server")


@contextmanager
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@mcp.tool()
def list_pending_approvals() -> list[dict]:
    """List PIX payments waiting for manual approval, newest first."""
    with get_db() as db:
        payments = PaymentService(db, RedisCache()).list_pending_approvals()
        return [PaymentResponse.from_payment(p).model_dump(mode="json") for p in payments]


@mcp.tool()
def get_payment_status(payment_id: str) -> dict:
    """Current status of a payment; overdue PENDING payments are expired on read."""
    with get_db() as db:
        result = PaymentService(db, RedisCache()).check_status(payment_id)
        if not result.ok:
            return {"error": result.error.value, "message": result.message}
        return PaymentResponse.from_payment(result.value).model_dump(mode="json")


@mcp.tool()
def get_payment_report(days: int = 30) -> list[dict]:
    """Count and total amount per payment status over the last N days."""
    with get_db() as db:
        rows = PaymentService(db, RedisCache()).payment_report(days)
        return [row.model_dump(mode="json") for row in rows]


@mcp.tool()
def get_loyalty_snapshot(user_id: str) -> dict:
    """Loyalty balance, tier and point history for a user."""
    with get_db() as db:
        return LoyaltyLedger(db).get_balance(user_id).model_dump(mode="json")


@mcp.tool()
def get_active_promotions() -> list[dict]:
    """Running promotions, soonest-ending first."""
    with get_db() as db:
        promotions = PromotionEngine(db, RedisCache()).get_active_promotions()
        return [p.model_dump(mode="json") for p in promotions]


@mcp.tool()
def run_maintenance(job: str) -> dict:
    """Run one maintenance job: payments, points, audit or marketplace."""
    try:
        return run_job(job)
    except KeyError:
        return {"error": f"Unknown job {job}"}


if __name__ == "__main__":
    # Start the standard streaming stdio server
    init_db()
    mcp.run()
