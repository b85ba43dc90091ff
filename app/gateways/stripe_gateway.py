"""Stripe payment processor adapter.

The adapter is constructed with its own credentials and passes them on every
request, so several instances (or a test double) can coexist without touching
the ``stripe`` module's global configuration.
"""

import asyncio
import json
import logging

import stripe

from app.gateways.base import (
    IntentResult,
    PaymentProcessor,
    ProcessorFailure,
    RefundResult,
    WebhookEvent,
    WebhookEventType,
    WebhookSignatureError,
    platform_fee_cents,
)

logger = logging.getLogger(__name__)

_EVENT_TYPES = {
    "payment_intent.succeeded": WebhookEventType.INTENT_SUCCEEDED,
    "payment_intent.canceled": WebhookEventType.INTENT_CANCELED,
}


class StripeGateway(PaymentProcessor):
    """Stripe Connect implementation with manual capture (escrow)."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str | None = None,
        currency: str = "usd",
    ):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()

    async def _call(self, operation: str, func, *args, **kwargs):
        # The Stripe SDK is synchronous; keep its network I/O off the event loop.
        try:
            return await asyncio.to_thread(func, *args, api_key=self.secret_key, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe {operation} failed: {e.__class__.__name__}: {e}")
            raise ProcessorFailure(f"Stripe {operation} failed") from e

    async def create_account(self, email: str) -> str:
        account = await self._call(
            "account creation",
            stripe.Account.create,
            type="express",
            email=email,
            capabilities={"transfers": {"requested": True}},
        )
        return account.id

    async def create_onboarding_link(self, account_id: str, return_url: str) -> str:
        link = await self._call(
            "onboarding link",
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=f"{return_url}/stripe/refresh",
            return_url=f"{return_url}/stripe/return",
            type="account_onboarding",
        )
        return link.url

    async def create_intent(
        self,
        amount_cents: int,
        destination_account_id: str,
        fee_percent: float,
        metadata: dict | None = None,
    ) -> IntentResult:
        """Create a PaymentIntent that only authorizes; capture happens later."""
        fee = platform_fee_cents(amount_cents, fee_percent)
        intent = await self._call(
            "intent creation",
            stripe.PaymentIntent.create,
            amount=amount_cents,
            currency=self.currency,
            application_fee_amount=fee,
            transfer_data={"destination": destination_account_id},
            capture_method="manual",
            metadata=metadata or {},
        )
        return IntentResult(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_cents=amount_cents,
            fee_cents=fee,
        )

    async def capture(self, intent_id: str) -> None:
        await self._call(
            "capture",
            stripe.PaymentIntent.capture,
            intent_id,
            idempotency_key=f"capture:{intent_id}",
        )

    async def cancel(self, intent_id: str) -> None:
        await self._call(
            "cancel",
            stripe.PaymentIntent.cancel,
            intent_id,
            idempotency_key=f"cancel:{intent_id}",
        )

    async def refund(
        self,
        intent_id: str,
        amount_cents: int | None = None,
        reference: str | None = None,
    ) -> RefundResult:
        # Destination charge: pull the refund back from the sitter and return
        # the platform fee pro rata.
        params: dict = {
            "payment_intent": intent_id,
            "reverse_transfer": True,
            "refund_application_fee": True,
        }
        if amount_cents is not None:
            params["amount"] = amount_cents
        refund = await self._call(
            "refund",
            stripe.Refund.create,
            idempotency_key=f"refund:{intent_id}:{reference or 'full'}",
            **params,
        )
        return RefundResult(refund_id=refund.id, status=refund.status, amount_cents=amount_cents)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the Stripe-Signature header and normalize the event."""
        if not self.webhook_secret:
            raise WebhookSignatureError("Stripe webhook secret is not configured")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload") from e

        obj = event.get("data", {}).get("object", {})
        intent_id = obj.get("id") if obj.get("object") == "payment_intent" else None
        return WebhookEvent(
            event_id=event.get("id", ""),
            type=_EVENT_TYPES.get(event.get("type"), WebhookEventType.UNKNOWN),
            intent_id=intent_id,
            raw_type=event.get("type", ""),
            data=obj,
        )
