"""Booking lifecycle service.

Each transition is one conditional UPDATE that names the acting party and
the statuses it may act from. When the update touches no row, a fresh read
decides which error the caller gets: 404, 403 for a party that may never
make that move, or 409 when the booking has already moved on.
"""

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import assert_never
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.domain.booking_state import (
    BookingStatus,
    Party,
    assert_booking_transition,
    cancellable_by,
    confirmable_by,
    previous_statuses,
)
from app.domain.cancellation_policy import RefundDecision, calculate_refund
from app.domain.payment_state import PaymentStatus
from app.models.booking import Booking
from app.models.user import Service, User
from app.services.booking_store import conditional_update, get_booking
from app.services.escrow_service import EscrowService
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _values(statuses: frozenset[BookingStatus]) -> list[str]:
    return sorted(s.value for s in statuses)


@dataclass
class CancellationOutcome:
    """A cancelled booking and the refund decision applied to it."""

    booking: Booking
    decision: RefundDecision


class BookingService:
    """Service for creating bookings and moving them through their lifecycle."""

    def __init__(
        self,
        escrow: EscrowService,
        notifier: NotificationService,
        max_booking_hours: int | None = None,
    ) -> None:
        self.escrow = escrow
        self.notifier = notifier
        self.max_booking_hours = (
            max_booking_hours if max_booking_hours is not None else settings.max_booking_hours
        )

    async def create(
        self,
        db: AsyncSession,
        owner_id: UUID,
        sitter_id: UUID,
        service_id: UUID,
        start_time: datetime,
        end_time: datetime,
    ) -> Booking:
        """Create a pending booking request.

        Args:
            db: Database session
            owner_id: Pet owner making the request
            sitter_id: Sitter being booked
            service_id: Sitter's service being booked
            start_time: Start of the booking
            end_time: End of the booking

        Returns:
            Booking: The new booking, status pending and payment pending
        """
        if owner_id == sitter_id:
            raise ValidationError("You cannot book yourself")
        if end_time <= start_time:
            raise ValidationError("end_time must be after start_time")
        if start_time <= datetime.now(UTC):
            raise ValidationError("start_time must be in the future")
        if end_time - start_time > timedelta(hours=self.max_booking_hours):
            raise ValidationError(
                f"A booking cannot last longer than {self.max_booking_hours} hours"
            )

        service = await db.get(Service, service_id)
        if not service:
            raise NotFoundError("Service", str(service_id))
        if service.sitter_id != sitter_id:
            raise ValidationError("Service does not belong to this sitter")

        sitter = await db.get(User, sitter_id)
        if not sitter or not sitter.is_active:
            raise NotFoundError("Sitter", str(sitter_id))

        booking = Booking(
            sitter_id=sitter_id,
            owner_id=owner_id,
            service_id=service_id,
            start_time=start_time,
            end_time=end_time,
            total_price=service.price,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
        )
        db.add(booking)
        await db.commit()
        booking = await get_booking(db, booking.id)

        logger.info(f"Booking {booking.id} requested by owner {owner_id} for sitter {sitter_id}")
        await self.notifier.notify(
            sitter_id,
            NotificationService.NEW_BOOKING,
            "New booking request",
            f"You have a new {service.service_type} request.",
            {"booking_id": str(booking.id)},
        )
        return booking

    async def get(self, db: AsyncSession, booking_id: UUID, actor_id: UUID) -> Booking:
        """Get a booking visible to one of its participants."""
        booking = await get_booking(db, booking_id)
        if booking.party_of(actor_id) is None:
            raise AuthorizationError("You are not a participant in this booking")
        return booking

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: UUID,
        role: str | None = None,
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """List a user's bookings, newest first.

        Returns:
            tuple: (bookings, total)
        """
        match role:
            case "owner":
                condition = Booking.owner_id == user_id
            case "sitter":
                condition = Booking.sitter_id == user_id
            case None:
                condition = or_(Booking.owner_id == user_id, Booking.sitter_id == user_id)
            case _:
                raise ValidationError(f"Invalid role filter: {role}")

        query = select(Booking).where(condition)
        if status:
            try:
                BookingStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}") from None
            query = query.where(Booking.status == status)

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        result = await db.execute(
            query.order_by(Booking.created_at.desc(), Booking.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Participant transitions
    # ------------------------------------------------------------------

    async def update_status(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
        target: str | BookingStatus,
    ) -> Booking | CancellationOutcome:
        """Dispatch a participant's status change request."""
        target = BookingStatus(target)
        match target:
            case BookingStatus.CONFIRMED:
                return await self.confirm(db, booking_id, actor_id)
            case BookingStatus.CANCELLED:
                return await self.cancel(db, booking_id, actor_id)
            case BookingStatus.PENDING | BookingStatus.IN_PROGRESS | BookingStatus.COMPLETED:
                raise ValidationError(
                    f"Participants cannot set a booking to {target.value}",
                    reason="invalid_transition",
                )
            case _:
                assert_never(target)

    async def confirm(self, db: AsyncSession, booking_id: UUID, actor_id: UUID) -> Booking:
        """Sitter accepts a pending request."""
        rows = await conditional_update(
            db,
            booking_id,
            Booking.sitter_id == actor_id,
            Booking.status.in_(_values(confirmable_by(Party.SITTER))),
            status=BookingStatus.CONFIRMED.value,
            confirmed_at=datetime.now(UTC),
        )
        if rows == 0:
            await self._raise_transition_failure(db, booking_id, actor_id, BookingStatus.CONFIRMED)
        await db.commit()

        booking = await get_booking(db, booking_id)
        logger.info(f"Booking {booking_id} confirmed by sitter {actor_id}")
        await self.notifier.notify(
            booking.owner_id,
            NotificationService.BOOKING_STATUS,
            "Booking confirmed",
            "Your sitter accepted the booking.",
            {"booking_id": str(booking_id), "status": booking.status},
        )
        return booking

    async def cancel(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
    ) -> CancellationOutcome:
        """Cancel a booking and settle its payment.

        A sitter declining a pending request always releases the full hold.
        An owner's cancellation is refunded according to the sitter's policy:
        a full refund releases the hold, anything less captures first and
        then refunds the policy amount. The status change and the payment
        outcome are committed together; a processor failure undoes both.
        """
        now = datetime.now(UTC)
        rows = await conditional_update(
            db,
            booking_id,
            or_(
                and_(
                    Booking.sitter_id == actor_id,
                    Booking.status.in_(_values(cancellable_by(Party.SITTER))),
                ),
                and_(
                    Booking.owner_id == actor_id,
                    Booking.status.in_(_values(cancellable_by(Party.OWNER))),
                ),
            ),
            status=BookingStatus.CANCELLED.value,
            cancelled_at=now,
            cancelled_by=case(
                (Booking.owner_id == actor_id, Party.OWNER.value),
                else_=Party.SITTER.value,
            ),
        )
        if rows == 0:
            await self._raise_transition_failure(db, booking_id, actor_id, BookingStatus.CANCELLED)

        try:
            booking = await get_booking(db, booking_id)
            decision = await self._settle_payment(db, booking, Party(booking.cancelled_by), now)
        except Exception:
            await db.rollback()
            raise
        await db.commit()

        booking = await get_booking(db, booking_id)
        logger.info(
            f"Booking {booking_id} cancelled by {booking.cancelled_by} {actor_id}: "
            f"{decision.reason}"
        )
        other_id = booking.sitter_id if booking.cancelled_by == Party.OWNER.value else booking.owner_id
        await self.notifier.notify(
            other_id,
            NotificationService.BOOKING_STATUS,
            "Booking cancelled",
            f"The booking was cancelled by the {booking.cancelled_by}.",
            {"booking_id": str(booking_id), "status": booking.status},
        )
        return CancellationOutcome(booking=booking, decision=decision)

    async def _settle_payment(
        self,
        db: AsyncSession,
        booking: Booking,
        party: Party,
        now: datetime,
    ) -> RefundDecision:
        match party:
            case Party.SITTER:
                decision = RefundDecision(
                    refund_percent=100,
                    refund_amount=booking.total_price,
                    eligible=True,
                    reason="declined by sitter: full refund",
                )
            case Party.OWNER:
                sitter = await db.get(User, booking.sitter_id)
                decision = calculate_refund(
                    sitter.cancellation_policy,
                    booking.total_price,
                    booking.start_time,
                    now,
                )
            case _:
                assert_never(party)

        # Money the sitter already handed back counts against the policy refund.
        refundable = booking.total_price - booking.refund_amount
        if decision.refund_amount > refundable:
            decision = replace(
                decision,
                refund_amount=refundable,
                reason=f"{decision.reason} ({booking.refund_amount} cents already refunded)",
            )

        payment_status = PaymentStatus(booking.payment_status)
        match payment_status:
            case PaymentStatus.HELD:
                if decision.refund_percent == 100:
                    await self.escrow.release_hold(db, booking)
                else:
                    await self.escrow.capture_hold(db, booking)
                    if decision.refund_amount > 0:
                        await self.escrow.issue_refund(db, booking, decision.refund_amount)
            case PaymentStatus.CAPTURED:
                if decision.refund_amount > 0:
                    await self.escrow.issue_refund(db, booking, decision.refund_amount)
            case PaymentStatus.PENDING | PaymentStatus.CANCELLED:
                pass
            case _:
                assert_never(payment_status)
        return decision

    async def _raise_transition_failure(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
        target: BookingStatus,
    ) -> None:
        """Explain why a participant's conditional update matched no row."""
        booking = await get_booking(db, booking_id)
        party = booking.party_of(actor_id)
        if party is None:
            raise AuthorizationError("You are not a participant in this booking")

        party = Party(party)
        current = BookingStatus(booking.status)
        allowed = cancellable_by(party) if target is BookingStatus.CANCELLED else confirmable_by(party)

        if not allowed:
            raise AuthorizationError(f"The {party.value} cannot set a booking to {target.value}")
        # The party could have acted earlier in the lifecycle; the booking moved on.
        raise ConflictError(
            f"Booking is already {current.value}",
            reason="already_changed",
            current_status=current.value,
        )

    # ------------------------------------------------------------------
    # Walk tracking transitions (trusted internal caller)
    # ------------------------------------------------------------------

    async def advance_to_in_progress(self, db: AsyncSession, booking_id: UUID) -> Booking:
        """Walk started: confirmed → in_progress."""
        booking = await self._advance(db, booking_id, BookingStatus.IN_PROGRESS)
        await self.notifier.notify(
            booking.owner_id,
            NotificationService.WALK_STARTED,
            "Walk started",
            "Your sitter has started the walk.",
            {"booking_id": str(booking_id)},
        )
        return booking

    async def advance_to_completed(self, db: AsyncSession, booking_id: UUID) -> Booking:
        """Walk ended: in_progress → completed."""
        booking = await self._advance(
            db,
            booking_id,
            BookingStatus.COMPLETED,
            completed_at=datetime.now(UTC),
        )
        await self.notifier.notify(
            booking.owner_id,
            NotificationService.WALK_COMPLETED,
            "Walk completed",
            "The walk is finished. Leave a review for your sitter.",
            {"booking_id": str(booking_id)},
        )
        return booking

    async def _advance(
        self,
        db: AsyncSession,
        booking_id: UUID,
        target: BookingStatus,
        **extra: datetime,
    ) -> Booking:
        rows = await conditional_update(
            db,
            booking_id,
            Booking.status.in_(_values(previous_statuses(target))),
            status=target.value,
            **extra,
        )
        if rows == 0:
            current = await get_booking(db, booking_id)
            assert_booking_transition(current.status, target)
            raise ConflictError(
                f"Booking moved to {current.status} concurrently",
                reason="already_changed",
                current_status=current.status,
            )
        await db.commit()
        logger.info(f"Booking {booking_id} → {target.value}")
        return await get_booking(db, booking_id)
