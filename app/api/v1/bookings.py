"""Booking endpoints."""

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_current_user, get_db
from app.models.booking import Booking
from app.models.user import User
from app.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatusResponse,
    BookingStatusUpdate,
)
from app.services.booking_service import BookingService, CancellationOutcome

router = APIRouter()


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> Booking:
    """Request a booking with a sitter."""
    return await service.create(
        db,
        owner_id=current_user.id,
        sitter_id=booking_data.sitter_id,
        service_id=booking_data.service_id,
        start_time=booking_data.start_time,
        end_time=booking_data.end_time,
    )


@router.get("/", response_model=BookingListResponse)
async def list_bookings(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    role: Literal["owner", "sitter"] | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> BookingListResponse:
    """List the current user's bookings."""
    bookings, total = await service.list_for_user(
        db,
        current_user.id,
        role=role,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> Booking:
    """Get booking details."""
    return await service.get(db, booking_id, current_user.id)


@router.put("/{booking_id}/status", response_model=BookingStatusResponse)
async def update_booking_status(
    booking_id: UUID,
    status_data: BookingStatusUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingStatusResponse:
    """Confirm (sitter) or cancel (either participant) a booking."""
    result = await service.update_status(db, booking_id, current_user.id, status_data.status)

    if isinstance(result, CancellationOutcome):
        return BookingStatusResponse(
            booking=BookingResponse.model_validate(result.booking),
            refund_percent=result.decision.refund_percent,
            refund_amount=result.decision.refund_amount,
            refund_reason=result.decision.reason,
        )
    return BookingStatusResponse(booking=BookingResponse.model_validate(result))
