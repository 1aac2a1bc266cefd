"""
Payment gateway protocol.

Defines the interface the payment flow needs from a gateway so the HTTP
implementation can be swapped (or faked in tests) without touching the
reconciliation logic.
"""
from typing import Protocol, Dict, Any, Mapping, Optional
from dataclasses import dataclass, field

CHARGE_SUCCESS_EVENT = "charge.success"
STATUS_SUCCESS = "success"


@dataclass(frozen=True)
class InitializedTransaction:
    """Result of starting a gateway transaction."""
    redirect_url: str
    access_code: Optional[str]
    reference: str


@dataclass(frozen=True)
class GatewayTransaction:
    """A transaction record as reported by the gateway (verify or webhook)."""
    reference: str
    status: str  # success, failed, abandoned, ...
    amount_minor_units: int
    metadata: Any  # dict, or a JSON string as some gateways send it
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS


@dataclass(frozen=True)
class WebhookEvent:
    """A parsed, authenticated webhook delivery."""
    event_type: str
    transaction: Optional[GatewayTransaction]
    payload_hash: str


class PaymentGateway(Protocol):
    """
    Protocol for payment gateways.

    Implementations must handle:
    - Transaction initiation
    - Transaction verification
    - Webhook signature verification and parsing
    """

    def initialize_transaction(
        self,
        email: str,
        amount_minor_units: int,
        currency: str,
        metadata: Dict[str, Any],
        callback_url: str,
    ) -> InitializedTransaction:
        """
        Start a transaction.

        Returns:
            Redirect URL, access code and reference for the transaction

        Raises:
            GatewayError: upstream failure or malformed response
        """
        ...

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        """
        Fetch the current status of a transaction.

        Raises:
            GatewayError: upstream failure or malformed response
        """
        ...

    def parse_webhook(self, headers: Mapping[str, str], body: bytes) -> WebhookEvent:
        """
        Verify webhook authenticity and parse the event.

        Raises:
            WebhookSignatureError: signature missing or invalid
            ValidationError: body is not a well-formed event
        """
        ...
