"""Pydantic schemas for API validation."""

from app.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatusResponse,
    BookingStatusUpdate,
    RefundPreviewResponse,
    WalkEventCreate,
)
from app.schemas.payment import (
    OnboardingRequest,
    OnboardingResponse,
    PaymentBookingRequest,
    PaymentIntentResponse,
    PaymentRefundRequest,
    PaymentStatusResponse,
    RefundResponse,
    WebhookAck,
)
from app.schemas.review import ReviewCreate, ReviewListResponse, ReviewResponse

__all__ = [
    # Booking
    "BookingCreate",
    "BookingListResponse",
    "BookingResponse",
    "BookingStatusResponse",
    "BookingStatusUpdate",
    "RefundPreviewResponse",
    "WalkEventCreate",
    # Payment
    "OnboardingRequest",
    "OnboardingResponse",
    "PaymentBookingRequest",
    "PaymentIntentResponse",
    "PaymentRefundRequest",
    "PaymentStatusResponse",
    "RefundResponse",
    "WebhookAck",
    # Review
    "ReviewCreate",
    "ReviewListResponse",
    "ReviewResponse",
]
