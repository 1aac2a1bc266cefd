"""
Payment API routes.

- POST /payment/initialize: open a gateway transaction for a plan
- GET  /payment/verify/{reference}: verify path of reconciliation
- POST /payment/webhook: gateway push, authenticated by signature
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field

from mzone.core.auth import get_current_user_id
from mzone.core.responses import success
from mzone.features.payments.service import (
    initialize_payment,
    process_webhook_event,
    verify_payment,
)
from mzone.features.plans.catalog import get_catalog
from mzone.models.plan import Catalog

router = APIRouter(prefix="/payment", tags=["payment"])


class InitializeRequest(BaseModel):
    """Request to open a gateway transaction."""
    model_config = ConfigDict(populate_by_name=True)

    plan: str
    discount_code: Optional[str] = Field(default=None, alias="discountCode")


@router.post("/initialize")
def initialize(
    request: InitializeRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: Catalog = Depends(get_catalog),
):
    """
    Price the plan and open a gateway transaction.

    Returns the redirect URL the client sends the user to, plus the
    reference to verify afterwards.

    Errors:
        400: invalid plan
        404: user not found
        500: gateway failure (detail logged, not returned)
    """
    result = initialize_payment(user_id, request.plan, request.discount_code, catalog=catalog)
    return success(
        {
            "authorizationUrl": result.transaction.redirect_url,
            "accessCode": result.transaction.access_code,
            "reference": result.transaction.reference,
            "amount": result.quote.final_amount,
            "originalAmount": result.quote.original_amount,
            "discountCode": result.quote.applied_discount_code,
        },
        message="Payment initialized",
    )


@router.get("/verify/{reference}")
def verify(
    reference: str,
    user_id: str = Depends(get_current_user_id),
    catalog: Catalog = Depends(get_catalog),
):
    """
    Verify a transaction with the gateway and activate the subscription.

    Calling again for an already reconciled reference returns the same
    subscription with `alreadyReconciled: true`.
    """
    outcome = verify_payment(reference, user_id, catalog=catalog)
    return success(
        {
            "subscription": outcome.subscription.summary(),
            "alreadyReconciled": not outcome.created,
        },
        message="Payment verified",
    )


@router.post("/webhook")
async def webhook(request: Request, catalog: Catalog = Depends(get_catalog)):
    """
    Handle gateway webhook events.

    Signature is checked against the raw body before anything is recorded.
    Non-charge events are acknowledged without effect.

    Errors:
        400: invalid signature or payload
        500: reconciliation failed; the gateway will redeliver
    """
    body = await request.body()
    headers = dict(request.headers)

    ack = await run_in_threadpool(process_webhook_event, headers, body, catalog=catalog)
    return success(
        {
            "received": True,
            "event": ack.event_type,
            "reference": ack.reference,
            "reconciled": ack.acted,
        },
        message="OK",
    )
