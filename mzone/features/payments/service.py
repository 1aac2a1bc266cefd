"""
Payment service orchestrator.

Coordinates:
- Transaction initiation (price -> gateway transaction carrying the intent)
- Verify path (poll the gateway for a reference, then reconcile)
- Webhook path (authenticate, log, reconcile charge.success)

All Paystack-specific code is in paystack_provider.py.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

from sqlalchemy import insert, update

from mzone.core.config import settings
from mzone.core.database import get_db_session, payment_events
from mzone.core.errors import AppError, GatewayError, PaymentInitializationFailed, PaymentVerificationFailed
from mzone.core.logging import log_event
from mzone.features.payments.paystack_provider import PaystackGateway
from mzone.features.payments.provider import (
    CHARGE_SUCCESS_EVENT,
    InitializedTransaction,
    PaymentGateway,
    WebhookEvent,
)
from mzone.features.pricing.service import PriceQuote, compute_price
from mzone.features.subscriptions.reconcile import ReconcileOutcome, parse_intent, reconcile_charge
from mzone.features.users.service import get_user
from mzone.models.plan import Catalog
from mzone.models.subscription import TransactionIntent


def payments_enabled() -> bool:
    """Check if the gateway is configured."""
    return bool(settings.PAYSTACK_SECRET_KEY)


def get_gateway() -> PaymentGateway:
    """Gateway used by the payment flow (patched in tests)."""
    return PaystackGateway()


@dataclass(frozen=True)
class InitializedPayment:
    transaction: InitializedTransaction
    quote: PriceQuote


@dataclass(frozen=True)
class WebhookAck:
    event_type: str
    reference: Optional[str]
    outcome: Optional[ReconcileOutcome] = None

    @property
    def acted(self) -> bool:
        return self.outcome is not None


def initialize_payment(
    user_id: str,
    plan_id: str,
    discount_code: Optional[str] = None,
    *,
    catalog: Optional[Catalog] = None,
) -> InitializedPayment:
    """
    Price the plan and open a gateway transaction for the user.

    Nothing is written locally; the intent travels as gateway metadata.

    Raises:
        NotFoundError: user does not exist
        InvalidPlanError: plan not in the catalog (no gateway call made)
        PaymentInitializationFailed: gateway failed or answered malformed
    """
    user = get_user(user_id)
    quote = compute_price(plan_id, discount_code, catalog=catalog)

    intent = TransactionIntent(
        user_id=user.id,
        full_name=user.full_name,
        plan_id=quote.plan.id,
        discount_code=quote.applied_discount_code,
        original_amount=quote.original_amount,
        final_amount=quote.final_amount,
    )

    try:
        transaction = get_gateway().initialize_transaction(
            email=user.email,
            amount_minor_units=quote.final_amount,
            currency=settings.PAYMENT_CURRENCY,
            metadata=intent.to_metadata(),
            callback_url=settings.payment_callback_url,
        )
    except GatewayError as e:
        log_event(
            "error",
            "payment.initialize_failed",
            user_id=user.id,
            error_code=e.code,
            extra={"detail": e.detail or e.message},
        )
        raise PaymentInitializationFailed(detail=e.detail)

    log_event(
        "info",
        "payment.initialized",
        user_id=user.id,
        reference=transaction.reference,
        extra={"plan": quote.plan.id, "amount": quote.final_amount, "discount": quote.applied_discount_code},
    )
    return InitializedPayment(transaction=transaction, quote=quote)


def verify_payment(
    reference: str,
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[Catalog] = None,
) -> ReconcileOutcome:
    """
    Verify path: ask the gateway for the reference's status and reconcile.

    The caller must be the user the transaction was opened for.

    Raises:
        GatewayError: gateway failed or answered malformed
        PaymentVerificationFailed: charge not successful, metadata unusable,
            or transaction belongs to someone else
    """
    reference = (reference or "").strip()
    if not reference:
        raise PaymentVerificationFailed("Payment reference is required")

    try:
        transaction = get_gateway().verify_transaction(reference)
    except GatewayError as e:
        log_event("error", "payment.verify_gateway_failed", user_id=user_id, reference=reference, extra={"detail": e.detail})
        raise GatewayError("Verification failed", detail=e.detail)

    if not transaction.succeeded:
        log_event(
            "warning",
            "payment.verify_not_successful",
            user_id=user_id,
            reference=reference,
            extra={"gateway_status": transaction.status},
        )
        raise PaymentVerificationFailed("Payment verification failed")

    if transaction.reference != reference:
        raise PaymentVerificationFailed("Payment verification failed")

    intent = parse_intent(transaction)
    if intent.user_id != user_id:
        log_event("warning", "payment.verify_wrong_owner", user_id=user_id, reference=reference)
        raise PaymentVerificationFailed("Payment verification failed")

    return reconcile_charge(transaction, now=now, catalog=catalog)


def _record_event(event: WebhookEvent) -> int:
    reference = event.transaction.reference if event.transaction else None
    with get_db_session() as session:
        result = session.execute(
            insert(payment_events).values(
                event_type=event.event_type,
                reference=reference,
                payload_hash=event.payload_hash,
                processed=False,
                created_at=datetime.now(timezone.utc),
            )
        )
        return result.inserted_primary_key[0]


def _mark_event(event_id: int, error: Optional[str] = None) -> None:
    values = {"error": error} if error else {"processed": True, "processed_at": datetime.now(timezone.utc)}
    with get_db_session() as session:
        session.execute(update(payment_events).where(payment_events.c.id == event_id).values(**values))


def process_webhook_event(
    headers: Mapping[str, str],
    body: bytes,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[Catalog] = None,
) -> WebhookAck:
    """
    Webhook path (idempotent).

    1. Verify signature and parse (nothing recorded if this fails)
    2. Record the delivery in payment_events
    3. Reconcile charge.success with a successful transaction; ignore the rest
    4. Mark the delivery processed, or store the error

    Data problems a redelivery cannot fix (bad metadata, unknown user) are
    stored and acknowledged. Anything else is stored and re-raised so the
    gateway retries; reconciliation makes the retry safe.

    Raises:
        WebhookSignatureError / ValidationError: delivery not authentic or malformed
    """
    event = get_gateway().parse_webhook(headers, body)
    reference = event.transaction.reference if event.transaction else None
    event_id = _record_event(event)

    if event.event_type != CHARGE_SUCCESS_EVENT or event.transaction is None or not event.transaction.succeeded:
        log_event("info", "webhook.ignored", reference=reference, event_type=event.event_type)
        _mark_event(event_id)
        return WebhookAck(event_type=event.event_type, reference=reference)

    try:
        outcome = reconcile_charge(event.transaction, now=now, catalog=catalog)
    except AppError as e:
        _mark_event(event_id, error=f"{e.code}: {e.message}")
        if e.status_code >= 500:
            raise
        log_event("error", "webhook.rejected", reference=reference, event_type=event.event_type, error_code=e.code)
        return WebhookAck(event_type=event.event_type, reference=reference)
    except Exception as e:
        _mark_event(event_id, error=f"{type(e).__name__}: {e}")
        raise

    _mark_event(event_id)
    return WebhookAck(event_type=event.event_type, reference=reference, outcome=outcome)
