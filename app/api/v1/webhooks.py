"""Webhook endpoints for the payment processor."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_escrow_service, get_payment_processor
from app.core.exceptions import ProcessorError, ValidationError
from app.gateways.base import PaymentProcessor, WebhookSignatureError
from app.schemas.payment import WebhookAck
from app.services.escrow_service import EscrowService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payment-processor", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def payment_processor_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    processor: Annotated[PaymentProcessor | None, Depends(get_payment_processor)],
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookAck:
    """Reconcile escrow state from a signed processor event."""
    if processor is None:
        raise ProcessorError("Payments are not configured")
    if not stripe_signature:
        raise ValidationError("Missing signature header", reason="invalid_signature")

    # Signature is computed over the raw body
    payload = await request.body()
    try:
        event = processor.verify_webhook_signature(payload, stripe_signature)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected webhook: {e}")
        raise ValidationError("Invalid webhook signature", reason="invalid_signature") from e

    applied = await escrow.reconcile(db, event)
    return WebhookAck(received=True, applied=applied)
