"""Base payment processor interface.

All processor adapters must implement this interface.
Business logic should NOT live in adapters - only processor communication.
Adapters raise ``ProcessorFailure`` and never return partial results.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum


class ProcessorFailure(Exception):
    """Raised by adapters when the processor rejects or cannot complete a call."""


class WebhookSignatureError(ProcessorFailure):
    """Raised when a webhook payload or its signature cannot be verified."""


class WebhookEventType(str, Enum):
    """Processor-neutral webhook event kinds the escrow reacts to."""

    INTENT_SUCCEEDED = "intent.succeeded"
    INTENT_CANCELED = "intent.canceled"
    UNKNOWN = "unknown"


@dataclass
class IntentResult:
    """A freshly created manual-capture payment intent."""

    intent_id: str
    client_secret: str
    amount_cents: int
    fee_cents: int


@dataclass
class RefundResult:
    """Result of a refund operation."""

    refund_id: str
    status: str
    amount_cents: int | None = None


@dataclass
class WebhookEvent:
    """A verified processor event."""

    event_id: str
    type: WebhookEventType
    intent_id: str | None
    raw_type: str
    data: dict = field(default_factory=dict)


class PaymentProcessor(ABC):
    """Abstract base class for payment processors."""

    @abstractmethod
    async def create_account(self, email: str) -> str:
        """Create a payout (connected) account and return its id."""

    @abstractmethod
    async def create_onboarding_link(self, account_id: str, return_url: str) -> str:
        """Return a hosted onboarding URL for a payout account."""

    @abstractmethod
    async def create_intent(
        self,
        amount_cents: int,
        destination_account_id: str,
        fee_percent: float,
        metadata: dict | None = None,
    ) -> IntentResult:
        """Create a manual-capture payment intent.

        Args:
            amount_cents: Amount in smallest currency unit
            destination_account_id: Payout account receiving the remainder
            fee_percent: Platform fee withheld, as a percentage
            metadata: Additional metadata

        Returns:
            IntentResult with the intent id and client secret
        """

    @abstractmethod
    async def capture(self, intent_id: str) -> None:
        """Capture a held intent."""

    @abstractmethod
    async def cancel(self, intent_id: str) -> None:
        """Release a held intent without charging."""

    @abstractmethod
    async def refund(
        self,
        intent_id: str,
        amount_cents: int | None = None,
        reference: str | None = None,
    ) -> RefundResult:
        """Refund a captured intent, fully when ``amount_cents`` is None.

        ``reference`` identifies this refund step; retries with the same
        reference must not refund twice.
        """

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify webhook signature and parse payload.

        Raises:
            WebhookSignatureError: If the payload or signature is invalid
        """


def platform_fee_cents(amount_cents: int, fee_percent: float) -> int:
    """Platform fee withheld from an intent, rounded half up to the nearest cent."""
    fee = Decimal(amount_cents) * Decimal(str(fee_percent)) / 100
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
