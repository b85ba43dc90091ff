"""Reads and conditional writes against the bookings table.

Every booking or payment transition is a single ``UPDATE ... WHERE`` whose
WHERE clause carries all of its preconditions. The affected-row count is the
verdict: 1 means this request won, 0 means a precondition did not hold at the
moment of the write. A fresh read afterwards is only used to explain a 0.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.booking import Booking


async def get_booking(
    db: AsyncSession,
    booking_id: UUID,
    for_update: bool = False,
) -> Booking:
    """Load a booking, bypassing any stale copy in the identity map."""
    query = (
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking", str(booking_id))
    return booking


async def conditional_update(
    db: AsyncSession,
    booking_id: UUID,
    *criteria: Any,
    **values: Any,
) -> int:
    """Apply ``values`` to the booking only if every criterion holds.

    Returns:
        int: Number of rows changed (0 or 1)
    """
    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, *criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount
