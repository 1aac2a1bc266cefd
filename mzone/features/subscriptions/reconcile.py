"""
Reconciliation engine.

Turns a gateway-confirmed successful charge into exactly one active
subscription. Both the verify path and the webhook path call
`reconcile_charge`; whichever arrives second for a reference gets the
stored subscription back with status `already_reconciled`.

Subscription period policy: calendar arithmetic via relativedelta. When
the target month is shorter than the start day, the end date is clamped
to the last day of that month (Jan 31 + 1 month = Feb 28/29; Feb 29 + 1
year = Feb 28).
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError

from mzone.core.database import get_db_session, subscriptions
from mzone.core.errors import NotFoundError, PaymentVerificationFailed
from mzone.core.idempotency import reference_lock
from mzone.core.logging import log_event
from mzone.features.payments.provider import GatewayTransaction
from mzone.features.plans.catalog import get_catalog
from mzone.features.subscriptions.service import ACTIVE, find_by_reference
from mzone.features.users.service import update_subscribed_flag
from mzone.models.plan import Catalog
from mzone.models.subscription import Subscription, TransactionIntent, as_utc, utc_now


class ReconcileStatus(str, Enum):
    ACTIVATED = "activated"
    ALREADY_RECONCILED = "already_reconciled"


@dataclass(frozen=True)
class ReconcileOutcome:
    status: ReconcileStatus
    subscription: Subscription

    @property
    def created(self) -> bool:
        return self.status == ReconcileStatus.ACTIVATED


def compute_end_date(start: datetime, interval: str) -> datetime:
    """One calendar year for yearly plans, one calendar month otherwise."""
    if interval == "yearly":
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def parse_intent(transaction: GatewayTransaction) -> TransactionIntent:
    try:
        return TransactionIntent.from_metadata(transaction.metadata)
    except ValueError as e:
        log_event(
            "warning",
            "reconcile.bad_metadata",
            reference=transaction.reference,
            error_code="invalid_metadata",
            extra={"error": e},
        )
        raise PaymentVerificationFailed("Transaction metadata is invalid")


def reconcile_charge(
    transaction: GatewayTransaction,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[Catalog] = None,
) -> ReconcileOutcome:
    """
    Activate the subscription described by a successful gateway charge.

    Steps: read the intent from metadata, compute the period from `now`,
    insert the subscription keyed by reference and set the owner's
    subscribed flag in one transaction.

    Idempotent per reference: a per-reference lock serializes callers in
    this process and the UNIQUE constraint on subscriptions.reference
    settles races across processes.

    Raises:
        PaymentVerificationFailed: charge not successful, or metadata
            unusable (missing fields, unknown plan)
        NotFoundError: intent names a user that does not exist
    """
    if not transaction.succeeded:
        raise PaymentVerificationFailed("Payment verification failed")

    catalog = catalog or get_catalog()
    intent = parse_intent(transaction)
    plan = catalog.find_plan(intent.plan_id)
    if plan is None:
        log_event(
            "warning",
            "reconcile.unknown_plan",
            user_id=intent.user_id,
            reference=transaction.reference,
            error_code="invalid_plan",
            extra={"plan": intent.plan_id},
        )
        raise PaymentVerificationFailed("Transaction metadata is invalid")

    if transaction.amount_minor_units != intent.final_amount:
        log_event(
            "warning",
            "reconcile.amount_mismatch",
            user_id=intent.user_id,
            reference=transaction.reference,
            extra={"paid": transaction.amount_minor_units, "expected": intent.final_amount},
        )

    start = as_utc(now) if now else utc_now()
    subscription = Subscription(
        id=str(uuid.uuid4()),
        user_id=intent.user_id,
        plan=plan.id,
        amount_paid_minor_units=transaction.amount_minor_units,
        reference=transaction.reference,
        discount_code=intent.discount_code,
        status=ACTIVE,
        start_date=start,
        end_date=compute_end_date(start, plan.interval),
        created_at=start,
    )

    with reference_lock(transaction.reference):
        existing = find_by_reference(transaction.reference)
        if existing is not None:
            return _already_reconciled(existing)

        try:
            with get_db_session() as session:
                # Insert first: the unique reference claims the transaction
                session.execute(
                    insert(subscriptions).values(
                        id=subscription.id,
                        user_id=subscription.user_id,
                        plan=subscription.plan,
                        amount=subscription.amount_paid_minor_units,
                        reference=subscription.reference,
                        discount_code=subscription.discount_code,
                        status=subscription.status,
                        start_date=subscription.start_date,
                        end_date=subscription.end_date,
                        created_at=subscription.created_at,
                    )
                )
                if not update_subscribed_flag(intent.user_id, True, session=session):
                    raise NotFoundError("User not found")
        except IntegrityError:
            existing = find_by_reference(transaction.reference)
            if existing is None:
                raise
            return _already_reconciled(existing)

    log_event(
        "info",
        "reconcile.activated",
        user_id=subscription.user_id,
        reference=subscription.reference,
        extra={"plan": subscription.plan, "end_date": subscription.end_date.isoformat()},
    )
    return ReconcileOutcome(status=ReconcileStatus.ACTIVATED, subscription=subscription)


def _already_reconciled(existing: Subscription) -> ReconcileOutcome:
    log_event(
        "info",
        "reconcile.already_reconciled",
        user_id=existing.user_id,
        reference=existing.reference,
    )
    return ReconcileOutcome(status=ReconcileStatus.ALREADY_RECONCILED, subscription=existing)
