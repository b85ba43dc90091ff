"""Payment (escrow) endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_escrow_service
from app.models.booking import Booking
from app.models.user import User
from app.schemas.payment import (
    OnboardingRequest,
    OnboardingResponse,
    PaymentBookingRequest,
    PaymentIntentResponse,
    PaymentRefundRequest,
    PaymentStatusResponse,
    RefundResponse,
)
from app.services.escrow_service import EscrowService

router = APIRouter()


def _status_response(booking: Booking) -> PaymentStatusResponse:
    return PaymentStatusResponse(
        booking_id=booking.id,
        payment_status=booking.payment_status,
        booking_status=booking.status,
        payment_intent_id=booking.payment_intent_id,
    )


@router.post(
    "/create-intent",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    payment_data: PaymentBookingRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
) -> PaymentIntentResponse:
    """Authorize and hold the booking total until the service is delivered."""
    intent = await escrow.create_intent(db, payment_data.booking_id, current_user.id)
    return PaymentIntentResponse(
        client_secret=intent.client_secret,
        payment_intent_id=intent.intent_id,
        amount=intent.amount_cents,
        platform_fee=intent.fee_cents,
    )


@router.post("/capture", response_model=PaymentStatusResponse)
async def capture_payment(
    payment_data: PaymentBookingRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
) -> PaymentStatusResponse:
    """Capture a held payment."""
    booking = await escrow.capture(db, payment_data.booking_id, current_user.id)
    return _status_response(booking)


@router.post("/cancel", response_model=PaymentStatusResponse)
async def cancel_payment(
    payment_data: PaymentBookingRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
) -> PaymentStatusResponse:
    """Release a held payment and cancel the booking."""
    booking = await escrow.cancel_held(db, payment_data.booking_id, current_user.id)
    return _status_response(booking)


@router.post("/refund", response_model=RefundResponse)
async def refund_payment(
    refund_data: PaymentRefundRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
) -> RefundResponse:
    """Refund a captured payment (sitter only)."""
    result = await escrow.refund(
        db,
        refund_data.booking_id,
        current_user.id,
        amount_cents=refund_data.amount,
    )
    return RefundResponse(
        booking_id=refund_data.booking_id,
        refund_id=result.refund_id,
        status=result.status,
        amount=result.amount_cents,
    )


@router.post("/connect/onboard", response_model=OnboardingResponse)
async def onboard_payouts(
    onboarding_data: OnboardingRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
) -> OnboardingResponse:
    """Create the sitter's payout account if needed and return its onboarding link."""
    account_id, url = await escrow.create_onboarding_link(
        db,
        current_user.id,
        str(onboarding_data.return_url).rstrip("/"),
    )
    return OnboardingResponse(account_id=account_id, url=url)
