"""
Tests for the payment service: initiation and the verify path.
"""
from datetime import datetime, timezone

import pytest

from mzone.core.errors import (
    GatewayError,
    InvalidPlanError,
    NotFoundError,
    PaymentInitializationFailed,
    PaymentVerificationFailed,
)
from mzone.features.payments.service import initialize_payment, verify_payment
from mzone.features.subscriptions.reconcile import ReconcileStatus
from mzone.features.subscriptions.service import list_for_user
from mzone.features.users.service import find_by_id
from mzone.models.subscription import TransactionIntent
from mzone.tests.mocks import make_transaction

NOW = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)


def test_initialize_sends_intent_as_metadata(make_user, gateway):
    user, _ = make_user(full_name="Chidi Okeke")
    result = initialize_payment(user.id, "standard_yearly", "r5tq-z91l-a7xk")

    assert result.transaction.reference == "ref_0001"
    assert result.quote.final_amount == 7560000

    sent = gateway.initialized[0]
    assert sent["email"] == user.email
    assert sent["amount"] == 7560000
    assert sent["currency"] == "NGN"
    assert sent["callback_url"] == "https://app.mzone.test/dashboard.html"

    intent = TransactionIntent.from_metadata(sent["metadata"])
    assert intent.user_id == user.id
    assert intent.full_name == "Chidi Okeke"
    assert intent.plan_id == "standard_yearly"
    assert intent.discount_code == "R5TQ-Z91L-A7XK"
    assert intent.original_amount == 17280000
    assert intent.final_amount == 7560000


def test_initialize_writes_nothing_locally(make_user, gateway):
    user, _ = make_user()
    initialize_payment(user.id, "pro_monthly")
    assert list_for_user(user.id) == []
    assert find_by_id(user.id).is_subscribed is False


def test_initialize_ignores_code_for_other_tier(make_user, gateway):
    user, _ = make_user()
    result = initialize_payment(user.id, "pro_monthly", "DX9Q-7M2A-K8P4")
    assert result.quote.final_amount == 2200000
    assert gateway.initialized[0]["metadata"]["discountCode"] is None


def test_initialize_invalid_plan_makes_no_gateway_call(make_user, gateway):
    user, _ = make_user()
    with pytest.raises(InvalidPlanError):
        initialize_payment(user.id, "platinum_monthly")
    assert gateway.initialized == []


def test_initialize_unknown_user(gateway):
    with pytest.raises(NotFoundError):
        initialize_payment("missing-user", "standard_monthly")
    assert gateway.initialized == []


def test_initialize_gateway_failure(make_user, gateway):
    user, _ = make_user()
    gateway.fail_initialize = True
    with pytest.raises(PaymentInitializationFailed) as exc:
        initialize_payment(user.id, "standard_monthly")
    assert exc.value.status_code == 500
    assert exc.value.message == "Payment initialization failed"
    assert exc.value.detail == "simulated upstream outage"


def test_verify_activates_subscription(make_user, gateway):
    user, _ = make_user()
    reference = initialize_payment(user.id, "standard_monthly").transaction.reference
    gateway.complete(reference)

    outcome = verify_payment(reference, user.id, now=NOW)
    assert outcome.status == ReconcileStatus.ACTIVATED
    assert outcome.subscription.reference == reference
    assert outcome.subscription.end_date == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)
    assert find_by_id(user.id).is_subscribed is True


def test_verify_twice_returns_same_subscription(make_user, gateway):
    user, _ = make_user()
    reference = initialize_payment(user.id, "pro_yearly").transaction.reference
    gateway.complete(reference)

    first = verify_payment(reference, user.id, now=NOW)
    second = verify_payment(reference, user.id)
    assert second.status == ReconcileStatus.ALREADY_RECONCILED
    assert second.subscription == first.subscription
    assert len(list_for_user(user.id)) == 1
    assert gateway.verify_calls == [reference, reference]


@pytest.mark.parametrize("status", ["failed", "abandoned", "pending"])
def test_verify_non_success_changes_nothing(make_user, gateway, status):
    user, _ = make_user()
    reference = initialize_payment(user.id, "standard_monthly").transaction.reference
    gateway.complete(reference, status=status)

    with pytest.raises(PaymentVerificationFailed):
        verify_payment(reference, user.id)
    assert list_for_user(user.id) == []
    assert find_by_id(user.id).is_subscribed is False


def test_verify_by_another_user_rejected(make_user, gateway):
    owner, _ = make_user()
    other, _ = make_user()
    reference = initialize_payment(owner.id, "standard_monthly").transaction.reference
    gateway.complete(reference)

    with pytest.raises(PaymentVerificationFailed):
        verify_payment(reference, other.id)
    assert list_for_user(owner.id) == []
    assert list_for_user(other.id) == []


def test_verify_gateway_failure(make_user, gateway):
    user, _ = make_user()
    gateway.fail_verify = True
    with pytest.raises(GatewayError) as exc:
        verify_payment("ref_0001", user.id)
    assert exc.value.message == "Verification failed"
    assert list_for_user(user.id) == []


def test_verify_unknown_reference(make_user, gateway):
    user, _ = make_user()
    with pytest.raises(GatewayError):
        verify_payment("ref_unknown", user.id)


def test_verify_blank_reference(make_user, gateway):
    user, _ = make_user()
    with pytest.raises(PaymentVerificationFailed):
        verify_payment("   ", user.id)
    assert gateway.verify_calls == []


def test_verify_reference_mismatch_rejected(make_user, gateway):
    user, _ = make_user()
    gateway.transactions["ref_asked"] = make_transaction("ref_other", user.id)
    with pytest.raises(PaymentVerificationFailed):
        verify_payment("ref_asked", user.id)
    assert list_for_user(user.id) == []
