"""
Paystack gateway implementation.

Implements PaymentGateway over Paystack's REST API with httpx. Calls are
bounded by a timeout and retried once on transport errors and 5xx
responses. Webhooks are authenticated with the HMAC-SHA512 signature
Paystack sends in `x-paystack-signature`.
"""
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from mzone.core.config import settings
from mzone.core.errors import GatewayError, ValidationError, WebhookSignatureError
from mzone.features.payments.provider import (
    CHARGE_SUCCESS_EVENT,
    GatewayTransaction,
    InitializedTransaction,
    WebhookEvent,
)

logger = logging.getLogger("mzone")

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def verify_signature(secret: str, signature: Optional[str], body: bytes) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature.strip().lower())


def _parse_transaction(data: Any) -> GatewayTransaction:
    """Normalize a Paystack transaction object. Raises ValueError if malformed."""
    if not isinstance(data, dict):
        raise ValueError("transaction data is not an object")
    reference = data.get("reference")
    status = data.get("status")
    amount = data.get("amount")
    if not reference or not status:
        raise ValueError("transaction data missing reference or status")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError("transaction amount is not an integer")
    return GatewayTransaction(
        reference=str(reference),
        status=str(status),
        amount_minor_units=amount,
        metadata=data.get("metadata"),
        raw=data,
    )


class PaystackGateway:
    """Paystack implementation of PaymentGateway."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            secret_key: Paystack secret key (defaults to PAYSTACK_SECRET_KEY)
            base_url: API base (defaults to PAYSTACK_BASE_URL)
            timeout: per-request timeout in seconds
            max_retries: extra attempts after the first for transient failures
            transport: optional httpx transport (tests use httpx.MockTransport)
        """
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        if not self.secret_key:
            raise GatewayError(detail="PAYSTACK_SECRET_KEY not configured")
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PAYSTACK_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.PAYSTACK_MAX_RETRIES
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.secret_key}"},
        )

    def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request, retrying transient failures, and return the JSON body."""
        attempts = 1 + max(0, self.max_retries)
        last_error = "no attempt made"
        with self._client() as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = client.request(method, path, json=json_body)
                except httpx.TransportError as e:
                    last_error = f"{type(e).__name__}: {e}"
                    logger.warning(
                        "gateway.transport_error",
                        extra={"path": path, "attempt": attempt, "error_message": last_error},
                    )
                    continue

                if response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        "gateway.server_error",
                        extra={"path": path, "attempt": attempt, "status": response.status_code},
                    )
                    continue

                try:
                    body = response.json()
                except ValueError:
                    raise GatewayError(detail=f"non-JSON response (HTTP {response.status_code}) from {path}")
                if not isinstance(body, dict):
                    raise GatewayError(detail=f"unexpected response shape from {path}")
                if response.status_code >= 400 or not body.get("status"):
                    raise GatewayError(
                        detail=f"{path} rejected (HTTP {response.status_code}): {body.get('message')}"
                    )
                return body

        raise GatewayError(detail=f"{path} failed after {attempts} attempts: {last_error}")

    def initialize_transaction(
        self,
        email: str,
        amount_minor_units: int,
        currency: str,
        metadata: Dict[str, Any],
        callback_url: str,
    ) -> InitializedTransaction:
        body = self._request(
            "POST",
            "/transaction/initialize",
            json_body={
                "email": email,
                "amount": amount_minor_units,
                "currency": currency,
                "metadata": metadata,
                "callback_url": callback_url,
            },
        )
        data = body.get("data") or {}
        redirect_url = data.get("authorization_url")
        reference = data.get("reference")
        if not redirect_url or not reference:
            raise GatewayError(detail="initialize response missing authorization_url or reference")
        return InitializedTransaction(
            redirect_url=redirect_url,
            access_code=data.get("access_code"),
            reference=reference,
        )

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        body = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        try:
            return _parse_transaction(body.get("data"))
        except ValueError as e:
            raise GatewayError(detail=f"verify response malformed: {e}")

    def parse_webhook(self, headers: Mapping[str, str], body: bytes) -> WebhookEvent:
        lowered = {k.lower(): v for k, v in headers.items()}
        if not verify_signature(self.secret_key, lowered.get(SIGNATURE_HEADER), body):
            raise WebhookSignatureError("Invalid webhook signature")

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Webhook body is not valid JSON")
        if not isinstance(payload, dict) or not payload.get("event"):
            raise ValidationError("Webhook body missing event")

        event_type = str(payload["event"])
        transaction = None
        try:
            transaction = _parse_transaction(payload.get("data"))
        except ValueError as e:
            # Only charge events have to carry a transaction we can act on
            if event_type == CHARGE_SUCCESS_EVENT:
                raise ValidationError(f"Webhook transaction malformed: {e}")

        return WebhookEvent(
            event_type=event_type,
            transaction=transaction,
            payload_hash=hashlib.sha256(body).hexdigest(),
        )
