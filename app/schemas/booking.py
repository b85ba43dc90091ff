"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    sitter_id: UUID
    service_id: UUID
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("timestamps must include a timezone offset")
        return v

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, v: datetime, info) -> datetime:
        start_time = info.data.get("start_time")
        if start_time and v <= start_time:
            raise ValueError("end_time must be after start_time")
        return v


class BookingStatusUpdate(BaseModel):
    """Schema for ``PUT /bookings/{id}/status``."""

    status: Literal["confirmed", "cancelled"]


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sitter_id: UUID
    owner_id: UUID
    service_id: UUID

    start_time: datetime
    end_time: datetime

    # Pricing (cents)
    total_price: int

    # Status
    status: str
    payment_status: str
    payment_intent_id: str | None

    # Cancellation
    cancelled_by: str | None
    refund_amount: int

    # Timestamps
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    created_at: datetime | None


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""

    bookings: list[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingStatusResponse(BaseModel):
    """Booking after a status change; refund fields are set for cancellations."""

    booking: BookingResponse
    refund_percent: int | None = None
    refund_amount: int | None = None
    refund_reason: str | None = None


class WalkEventCreate(BaseModel):
    """Walk tracking event relayed by the trusted tracking service."""

    event_type: Literal["start", "end"]


class RefundPreviewResponse(BaseModel):
    """Policy description and the refund a cancellation would earn now."""

    policy: str
    description: str
    refund_percent: int | None = None
    refund_amount: int | None = None
    eligible: bool | None = None
    reason: str | None = None
