"""Payment-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl


class PaymentBookingRequest(BaseModel):
    """Body shared by the escrow endpoints."""

    booking_id: UUID


class PaymentIntentResponse(BaseModel):
    """Client secret for confirming the card on the client side."""

    client_secret: str
    payment_intent_id: str
    amount: int
    platform_fee: int


class PaymentRefundRequest(BaseModel):
    """Schema for refunding a captured payment."""

    booking_id: UUID
    amount: int | None = Field(None, gt=0)


class PaymentStatusResponse(BaseModel):
    """Escrow state after an operation."""

    booking_id: UUID
    payment_status: str
    booking_status: str
    payment_intent_id: str | None


class RefundResponse(BaseModel):
    booking_id: UUID
    refund_id: str
    status: str
    amount: int | None


class OnboardingRequest(BaseModel):
    return_url: HttpUrl


class OnboardingResponse(BaseModel):
    account_id: str
    url: str


class WebhookAck(BaseModel):
    received: bool = True
    applied: bool = False
