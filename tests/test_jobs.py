"""Tests for the periodic maintenance jobs and the admin MCP tools."""

from datetime import datetime, timedelta

import pytest

import mcp_server
import storefront.jobs as jobs
from storefront.models.audit import AuditCategory, AuditSeverity, AuditStatus
from storefront.models.payment import PaymentStatus
from storefront.services.payments import PaymentService

BUYER = "800000000000000001"


def test_payment_sweep_job(db, cache, settings, payments, make_product):
    payments.create_payment(BUYER, "Buyer", make_product().id)
    later = datetime.now() + timedelta(hours=1)

    assert jobs.run_job("payments", db, cache, settings, now=later) == {"expired": 1}
    assert jobs.run_job("payments", db, cache, settings, now=later) == {"expired": 0}


def test_points_sweep_job(db, cache, settings, loyalty):
    loyalty.add_points(BUYER, 50, now=datetime.now() - timedelta(days=365))
    assert jobs.run_job("points", db, cache, settings) == {"accounts_changed": 1}


def test_audit_cleanup_job(db, cache, settings, audit):
    audit.log(
        "OLD", AuditCategory.SYSTEM, AuditSeverity.INFO, AuditStatus.INFO,
        timestamp=datetime.now() - timedelta(days=400),
    )
    assert jobs.run_job("audit", db, cache, settings) == {"deleted": 1}


def test_marketplace_job_is_skipped_when_disabled(db, cache, settings):
    assert jobs.run_job("marketplace", db, cache, settings) == {"skipped": True}


def test_unknown_job(db, cache, settings):
    with pytest.raises(KeyError):
        jobs.run_job("nope", db, cache, settings)


def test_job_opens_its_own_session(session_factory, cache, settings, monkeypatch):
    monkeypatch.setattr(jobs, "SessionLocal", session_factory)
    assert jobs.run_job("payments", cache=cache, settings=settings) == {"expired": 0}


class TestMcpTools:

    @pytest.fixture(autouse=True)
    def bind_sessions(self, session_factory, monkeypatch):
        monkeypatch.setattr(mcp_server, "SessionLocal", session_factory)
        monkeypatch.setattr(jobs, "SessionLocal", session_factory)

    def test_pending_queue_and_status(self, db, cache, settings, make_product):
        payment = PaymentService(db, cache, settings=settings).create_payment(BUYER, "Buyer", make_product().id).value

        pending = mcp_server.list_pending_approvals()
        status = mcp_server.get_payment_status(payment.id)

        assert [p["id"] for p in pending] == [payment.id]
        assert status["status"] == PaymentStatus.PENDING
        assert mcp_server.get_payment_status("missing") == {"error": "NOT_FOUND", "message": "Payment not found"}

    def test_loyalty_snapshot(self, loyalty):
        loyalty.add_points(BUYER, 600)
        snapshot = mcp_server.get_loyalty_snapshot(BUYER)
        assert snapshot["balance"] == 600
        assert snapshot["tier_name"] == "Bronze"

    def test_unknown_maintenance_job(self):
        assert mcp_server.run_maintenance("nope") == {"error": "Unknown job nope"}
