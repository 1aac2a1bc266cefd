"""
Tests for reconciliation idempotency and state changes.

Ensures:
1. A reference produces exactly one subscription however often it is reconciled
2. Concurrent reconciliation of one reference creates one row
3. Unusable charges leave no state behind
4. Subscribed flag and subscription row are written together
"""
import json
import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from mzone.core.database import get_db_session, subscriptions
from mzone.core.errors import NotFoundError, PaymentVerificationFailed
from mzone.features.subscriptions import reconcile as reconcile_module
from mzone.features.subscriptions.reconcile import ReconcileStatus, reconcile_charge
from mzone.features.subscriptions.service import find_by_reference
from mzone.features.users.service import find_by_id
from mzone.features.payments.provider import GatewayTransaction
from mzone.tests.mocks import make_transaction

NOW = datetime(2024, 5, 10, 8, 0, tzinfo=timezone.utc)


def _count(reference=None):
    with get_db_session() as session:
        stmt = select(func.count()).select_from(subscriptions)
        if reference:
            stmt = stmt.where(subscriptions.c.reference == reference)
        return session.execute(stmt).scalar()


def test_first_reconcile_activates(make_user):
    user, _ = make_user()
    outcome = reconcile_charge(make_transaction("ref_a", user.id), now=NOW)

    assert outcome.status == ReconcileStatus.ACTIVATED
    assert outcome.created
    sub = outcome.subscription
    assert sub.user_id == user.id
    assert sub.plan == "standard_monthly"
    assert sub.status == "active"
    assert sub.start_date == NOW
    assert sub.end_date == datetime(2024, 6, 10, 8, 0, tzinfo=timezone.utc)
    assert find_by_id(user.id).is_subscribed is True


def test_reconcile_twice_is_idempotent(make_user):
    user, _ = make_user()
    transaction = make_transaction("ref_b", user.id, plan="pro_yearly", amount=23760000)

    first = reconcile_charge(transaction, now=NOW)
    second = reconcile_charge(transaction, now=datetime(2024, 5, 11, tzinfo=timezone.utc))

    assert first.status == ReconcileStatus.ACTIVATED
    assert second.status == ReconcileStatus.ALREADY_RECONCILED
    assert second.subscription.id == first.subscription.id
    assert second.subscription.end_date == first.subscription.end_date
    assert _count("ref_b") == 1
    assert find_by_id(user.id).is_subscribed is True


def test_concurrent_reconcile_creates_one_row(make_user):
    user, _ = make_user()
    transaction = make_transaction("ref_race", user.id)
    barrier = threading.Barrier(4)
    outcomes = []
    errors = []

    def worker():
        barrier.wait()
        try:
            outcomes.append(reconcile_charge(transaction, now=NOW))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert [o.status for o in outcomes].count(ReconcileStatus.ACTIVATED) == 1
    assert len({o.subscription.id for o in outcomes}) == 1
    assert _count("ref_race") == 1


def test_unique_constraint_race_returns_existing(make_user, monkeypatch):
    """A row inserted elsewhere after the pre-check is returned, not duplicated."""
    user, _ = make_user()
    transaction = make_transaction("ref_cross", user.id)
    first = reconcile_charge(transaction, now=NOW)

    real_find = reconcile_module.find_by_reference
    calls = {"n": 0}

    def stale_then_real(reference):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(reference)

    monkeypatch.setattr(reconcile_module, "find_by_reference", stale_then_real)

    second = reconcile_charge(transaction, now=NOW)
    assert second.status == ReconcileStatus.ALREADY_RECONCILED
    assert second.subscription.id == first.subscription.id
    assert calls["n"] == 2
    assert _count("ref_cross") == 1


def test_non_success_charge_rejected(make_user):
    user, _ = make_user()
    with pytest.raises(PaymentVerificationFailed):
        reconcile_charge(make_transaction("ref_fail", user.id, status="failed"), now=NOW)
    assert _count() == 0
    assert find_by_id(user.id).is_subscribed is False


@pytest.mark.parametrize("metadata", [None, {}, {"userId": "x"}, "not json", "[1, 2]"])
def test_unusable_metadata_rejected(make_user, metadata):
    make_user()
    transaction = GatewayTransaction(reference="ref_meta", status="success", amount_minor_units=100, metadata=metadata)
    with pytest.raises(PaymentVerificationFailed):
        reconcile_charge(transaction, now=NOW)
    assert _count() == 0


def test_metadata_as_json_string_is_accepted(make_user):
    user, _ = make_user()
    parsed = make_transaction("ref_json", user.id)
    transaction = GatewayTransaction(
        reference="ref_json",
        status="success",
        amount_minor_units=parsed.amount_minor_units,
        metadata=json.dumps(parsed.metadata),
    )
    assert reconcile_charge(transaction, now=NOW).created


def test_unknown_plan_in_metadata_rejected(make_user):
    user, _ = make_user()
    with pytest.raises(PaymentVerificationFailed):
        reconcile_charge(make_transaction("ref_plan", user.id, plan="gold_monthly"), now=NOW)
    assert _count() == 0
    assert find_by_id(user.id).is_subscribed is False


def test_unknown_user_leaves_no_row():
    with pytest.raises(NotFoundError):
        reconcile_charge(make_transaction("ref_ghost", "no-such-user"), now=NOW)
    assert find_by_reference("ref_ghost") is None


def test_discounted_plan_id_stored_canonically(make_user):
    user, _ = make_user()
    transaction = make_transaction(
        "ref_disc",
        user.id,
        plan="standard_yearly_discounted",
        amount=7560000,
        original_amount=17280000,
        discount_code="DX9Q-7M2A-K8P4",
    )
    sub = reconcile_charge(transaction, now=NOW).subscription
    assert sub.plan == "standard_yearly"
    assert sub.discount_code == "DX9Q-7M2A-K8P4"
    assert sub.amount_paid_minor_units == 7560000
    assert sub.end_date == datetime(2025, 5, 10, 8, 0, tzinfo=timezone.utc)


def test_amount_recorded_is_what_gateway_charged(make_user, caplog):
    user, _ = make_user()
    intent = make_transaction("ref_amt", user.id, amount=1600000)
    transaction = GatewayTransaction(
        reference="ref_amt",
        status="success",
        amount_minor_units=1500000,
        metadata=intent.metadata,
    )
    sub = reconcile_charge(transaction, now=NOW).subscription
    assert sub.amount_paid_minor_units == 1500000
    assert any(r.getMessage() == "reconcile.amount_mismatch" for r in caplog.records)


def test_stored_row_reads_back_identically(make_user):
    user, _ = make_user()
    created = reconcile_charge(make_transaction("ref_read", user.id), now=NOW).subscription
    assert find_by_reference("ref_read") == created
