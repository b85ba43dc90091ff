"""Internal endpoints for trusted collaborators (walk tracking)."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_db, verify_internal_key
from app.models.booking import Booking
from app.schemas.booking import BookingResponse, WalkEventCreate
from app.services.booking_service import BookingService

router = APIRouter(dependencies=[Depends(verify_internal_key)])


@router.post("/bookings/{booking_id}/walk-events", response_model=BookingResponse)
async def record_walk_event(
    booking_id: UUID,
    event: WalkEventCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> Booking:
    """Advance a booking when its walk starts or ends."""
    if event.event_type == "start":
        return await service.advance_to_in_progress(db, booking_id)
    return await service.advance_to_completed(db, booking_id)
