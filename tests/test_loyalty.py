"""Tests for the loyalty ledger: tiers, grants, spends and expiry."""

from datetime import datetime, timedelta

import pytest

from storefront.core.results import ErrorKind
from storefront.models.loyalty import LoyaltyAccount, PointReason, PointStatus, PointTransaction
from storefront.schemas.audit import AuditFilter
from storefront.services.loyalty import tier_for

USER = "300000000000000001"


@pytest.mark.parametrize("lifetime, tier", [
    (0, 1), (499, 1), (500, 2), (1999, 2), (2000, 3),
    (4999, 3), (5000, 4), (9999, 4), (10000, 5), (250000, 5),
])
def test_tier_thresholds(lifetime, tier):
    assert tier_for(lifetime) == tier


def test_empty_snapshot_for_unknown_user(loyalty, db):
    snapshot = loyalty.get_balance("nobody")

    assert snapshot.balance == 0
    assert snapshot.lifetime_total == 0
    assert snapshot.tier == 1
    assert snapshot.tier_name == "Starter"
    assert snapshot.transactions == []
    assert db.get(LoyaltyAccount, "nobody") is None


class TestAddPoints:

    def test_first_grant_creates_account(self, loyalty, audit):
        result = loyalty.add_points(USER, 120, user_name="Buyer", payment_id="pay-1")

        assert result.ok
        assert result.value.balance == 120
        assert result.value.tier == 1
        entry = audit.search(AuditFilter(action="LOYALTY_POINTS_ADDED")).logs[0]
        assert entry.details["new_total"] == 120
        assert entry.payment_id == "pay-1"

    def test_account_name_falls_back_to_profile(self, loyalty, users, db):
        users.create_or_update_profile(USER, "lucas.gamer")
        loyalty.add_points(USER, 10)
        assert db.get(LoyaltyAccount, USER).user_name == "lucas.gamer"

    def test_grants_accumulate_and_raise_tier(self, loyalty):
        loyalty.add_points(USER, 300)
        change = loyalty.add_points(USER, 250).value

        assert change.balance == 550
        assert change.tier == 2

    def test_grant_expires_after_configured_days(self, loyalty, db, settings):
        now = datetime(2026, 3, 1, 10, 0)
        loyalty.add_points(USER, 50, now=now)

        tx = db.query(PointTransaction).filter(PointTransaction.user_id == USER).one()
        assert tx.status == PointStatus.ACTIVE
        assert tx.expires_at == now + timedelta(days=settings.LOYALTY_EXPIRATION_DAYS)

    @pytest.mark.parametrize("amount", [0, -5, 2.5])
    def test_rejects_invalid_amount(self, loyalty, amount):
        assert loyalty.add_points(USER, amount).error == ErrorKind.INVALID_AMOUNT


class TestUsePoints:

    def test_no_account(self, loyalty):
        assert loyalty.use_points(USER, 10).error == ErrorKind.NO_ACCOUNT

    def test_invalid_amount(self, loyalty):
        loyalty.add_points(USER, 10)
        assert loyalty.use_points(USER, 0).error == ErrorKind.INVALID_AMOUNT

    def test_insufficient_balance(self, loyalty):
        loyalty.add_points(USER, 100)

        result = loyalty.use_points(USER, 150)

        assert result.error == ErrorKind.INSUFFICIENT_BALANCE
        assert result.details == {"current": 100, "requested": 150}
        assert loyalty.get_balance(USER).balance == 100

    def test_spend_appends_negative_used_entry(self, loyalty, audit):
        loyalty.add_points(USER, 100)

        change = loyalty.use_points(USER, 40).value

        assert change.points == -40
        assert change.balance == 60
        snapshot = loyalty.get_balance(USER)
        assert snapshot.lifetime_total == 100
        spend = snapshot.transactions[0]
        assert spend.amount == -40
        assert spend.status == PointStatus.USED
        assert spend.reason == PointReason.REDEMPTION
        assert audit.search(AuditFilter(action="LOYALTY_POINTS_USED")).total == 1

    def test_expired_points_cannot_be_spent(self, loyalty):
        granted = datetime.now() - timedelta(days=120)
        loyalty.add_points(USER, 100, now=granted)

        result = loyalty.use_points(USER, 50)

        assert result.error == ErrorKind.INSUFFICIENT_BALANCE
        assert result.details["current"] == 0

    def test_expiry_during_spend_is_audited(self, loyalty, audit):
        now = datetime.now()
        loyalty.add_points(USER, 100, now=now - timedelta(days=120))
        loyalty.add_points(USER, 40, now=now)

        assert loyalty.use_points(USER, 30, now=now).value.balance == 10

        expired = audit.search(AuditFilter(action="LOYALTY_POINTS_EXPIRED")).logs
        assert len(expired) == 1
        assert expired[0].details == {"points": 100, "remaining": 40}


class TestExpiry:

    def test_due_points_expire_once(self, loyalty, settings):
        now = datetime.now()
        loyalty.add_points(USER, 100, now=now - timedelta(days=settings.LOYALTY_EXPIRATION_DAYS + 10))
        loyalty.add_points(USER, 30, now=now)

        first = loyalty.get_balance(USER, now)
        second = loyalty.get_balance(USER, now)

        assert first.balance == 30
        assert second.balance == 30
        assert first.lifetime_total == 130
        expirations = [tx for tx in second.transactions if tx.reason == PointReason.EXPIRATION]
        assert len(expirations) == 1
        assert expirations[0].amount == -100
        statuses = sorted(tx.status for tx in second.transactions if tx.amount > 0)
        assert statuses == [PointStatus.ACTIVE, PointStatus.EXPIRED]

    def test_expiry_is_clamped_when_points_were_spent(self, loyalty):
        granted = datetime(2026, 1, 1, 12, 0)
        loyalty.add_points(USER, 100, now=granted)
        loyalty.use_points(USER, 70, now=granted + timedelta(days=1))

        snapshot = loyalty.get_balance(USER, granted + timedelta(days=120))

        assert snapshot.balance == 0
        expiration = next(tx for tx in snapshot.transactions if tx.reason == PointReason.EXPIRATION)
        assert expiration.amount == -30

    def test_sweep_expires_every_account_once(self, loyalty, audit):
        now = datetime.now()
        old = now - timedelta(days=200)
        loyalty.add_points("u1", 40, now=old)
        loyalty.add_points("u2", 60, now=old)
        loyalty.add_points("u3", 10, now=now)

        assert loyalty.sweep_expired_points(now) == 2
        assert loyalty.sweep_expired_points(now) == 0
        assert loyalty.get_balance("u1", now).balance == 0
        assert loyalty.get_balance("u3", now).balance == 10
        assert audit.search(AuditFilter(action="LOYALTY_POINTS_EXPIRED")).total == 2


def test_snapshot_newest_first_and_money_value(loyalty, settings):
    start = datetime.now() - timedelta(days=2)
    loyalty.add_points(USER, 250, now=start)
    loyalty.add_points(USER, 250, now=start + timedelta(days=1))

    snapshot = loyalty.get_balance(USER)

    assert [tx.date for tx in snapshot.transactions] == sorted((tx.date for tx in snapshot.transactions), reverse=True)
    assert snapshot.tier == 2
    assert snapshot.tier_name == "Bronze"
    assert snapshot.money_value == round(500 * settings.LOYALTY_CONVERSION_RATE, 2)
