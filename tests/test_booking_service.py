import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ProcessorError,
    ValidationError,
)
from app.models.booking import Booking
from app.models.user import Service
from app.services.booking_service import BookingService, CancellationOutcome
from app.services.booking_store import get_booking
from app.services.notification_service import NotificationService


def _future(hours: float) -> datetime:
    return datetime.now(UTC) + timedelta(hours=hours)


async def _set_policy(db, sitter, policy: str) -> None:
    sitter.cancellation_policy = policy
    await db.commit()


# ----------------------------------------------------------------------
# create
# ----------------------------------------------------------------------


async def test_create_booking_starts_pending(db, bookings, notifier, owner, sitter, walk_service):
    booking = await bookings.create(
        db,
        owner_id=owner.id,
        sitter_id=sitter.id,
        service_id=walk_service.id,
        start_time=_future(48),
        end_time=_future(49),
    )

    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.payment_intent_id is None
    assert booking.total_price == 5000
    assert notifier.types_for(sitter.id) == [NotificationService.NEW_BOOKING]


async def test_create_rejects_booking_yourself(db, bookings, sitter, walk_service):
    with pytest.raises(ValidationError):
        await bookings.create(
            db,
            owner_id=sitter.id,
            sitter_id=sitter.id,
            service_id=walk_service.id,
            start_time=_future(48),
            end_time=_future(49),
        )


async def test_create_rejects_start_in_the_past(db, bookings, owner, sitter, walk_service):
    with pytest.raises(ValidationError):
        await bookings.create(
            db,
            owner_id=owner.id,
            sitter_id=sitter.id,
            service_id=walk_service.id,
            start_time=_future(-2),
            end_time=_future(-1),
        )


async def test_create_rejects_overlong_booking(db, bookings, owner, sitter, walk_service):
    with pytest.raises(ValidationError):
        await bookings.create(
            db,
            owner_id=owner.id,
            sitter_id=sitter.id,
            service_id=walk_service.id,
            start_time=_future(48),
            end_time=_future(48 + 25),
        )


async def test_create_rejects_service_of_another_sitter(db, bookings, owner, sitter, stranger):
    other_service = Service(sitter_id=stranger.id, service_type="sitting", price=9000)
    db.add(other_service)
    await db.commit()

    with pytest.raises(ValidationError):
        await bookings.create(
            db,
            owner_id=owner.id,
            sitter_id=sitter.id,
            service_id=other_service.id,
            start_time=_future(48),
            end_time=_future(49),
        )


async def test_create_with_unknown_service(db, bookings, owner, sitter):
    with pytest.raises(NotFoundError):
        await bookings.create(
            db,
            owner_id=owner.id,
            sitter_id=sitter.id,
            service_id=uuid4(),
            start_time=_future(48),
            end_time=_future(49),
        )


# ----------------------------------------------------------------------
# confirm
# ----------------------------------------------------------------------


async def test_sitter_confirms_pending_booking(db, bookings, notifier, make_booking, owner, sitter):
    booking = await make_booking()

    confirmed = await bookings.confirm(db, booking.id, sitter.id)

    assert confirmed.status == "confirmed"
    assert confirmed.confirmed_at is not None
    assert notifier.types_for(owner.id) == [NotificationService.BOOKING_STATUS]


async def test_owner_cannot_confirm(db, bookings, make_booking, owner):
    booking = await make_booking()

    with pytest.raises(AuthorizationError):
        await bookings.confirm(db, booking.id, owner.id)

    assert (await get_booking(db, booking.id)).status == "pending"


async def test_stranger_cannot_confirm(db, bookings, make_booking, stranger):
    booking = await make_booking()

    with pytest.raises(AuthorizationError):
        await bookings.confirm(db, booking.id, stranger.id)


async def test_second_confirm_is_a_conflict(db, bookings, make_booking, sitter):
    booking = await make_booking()
    await bookings.confirm(db, booking.id, sitter.id)

    with pytest.raises(ConflictError) as exc_info:
        await bookings.confirm(db, booking.id, sitter.id)

    assert exc_info.value.reason == "already_changed"
    assert exc_info.value.current_status == "confirmed"


async def test_confirm_missing_booking(db, bookings, sitter):
    with pytest.raises(NotFoundError):
        await bookings.confirm(db, uuid4(), sitter.id)


# ----------------------------------------------------------------------
# confirm vs decline race
# ----------------------------------------------------------------------


async def test_decline_after_confirm_loses(session_maker, escrow, notifier, make_booking, sitter):
    booking = await make_booking()
    service = BookingService(escrow, notifier)

    async with session_maker() as first, session_maker() as second:
        await service.confirm(first, booking.id, sitter.id)
        with pytest.raises(ConflictError) as exc_info:
            await service.cancel(second, booking.id, sitter.id)

    assert exc_info.value.reason == "already_changed"

    async with session_maker() as check:
        assert (await get_booking(check, booking.id)).status == "confirmed"


async def test_confirm_after_decline_loses(session_maker, escrow, notifier, make_booking, sitter):
    booking = await make_booking()
    service = BookingService(escrow, notifier)

    async with session_maker() as first, session_maker() as second:
        outcome = await service.cancel(first, booking.id, sitter.id)
        assert outcome.booking.cancelled_by == "sitter"
        with pytest.raises(ConflictError) as exc_info:
            await service.confirm(second, booking.id, sitter.id)

    assert exc_info.value.current_status == "cancelled"
    async with session_maker() as check:
        assert (await get_booking(check, booking.id)).status == "cancelled"


async def test_concurrent_confirm_and_decline(tmp_path, escrow, notifier, make_booking, sitter):
    booking = await make_booking()
    booking_id, sitter_id = booking.id, sitter.id
    service = BookingService(escrow, notifier)

    # Separate connections that take the write lock up front, so the two
    # requests really contend on the database instead of upgrading locks.
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'petlink.db'}",
        connect_args={"timeout": 10},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def attempt(operation):
        async with maker() as session:
            return await operation(session, booking_id, sitter_id)

    try:
        results = await asyncio.gather(
            attempt(service.confirm),
            attempt(service.cancel),
            return_exceptions=True,
        )
        async with maker() as check:
            final = await get_booking(check, booking_id)
    finally:
        await engine.dispose()

    conflicts = [r for r in results if isinstance(r, ConflictError)]
    winners = [r for r in results if not isinstance(r, BaseException)]
    assert len(conflicts) == 1
    assert len(winners) == 1

    expected = "confirmed" if isinstance(winners[0], Booking) else "cancelled"
    assert final.status == expected
    assert conflicts[0].current_status == expected


# ----------------------------------------------------------------------
# cancel
# ----------------------------------------------------------------------


async def test_sitter_cannot_decline_confirmed_booking(db, bookings, make_booking, sitter):
    booking = await make_booking(status="confirmed")

    with pytest.raises(ConflictError) as exc_info:
        await bookings.cancel(db, booking.id, sitter.id)

    assert exc_info.value.current_status == "confirmed"


async def test_owner_cannot_cancel_completed_booking(db, bookings, make_booking, owner):
    booking = await make_booking(status="completed")

    with pytest.raises(ConflictError):
        await bookings.cancel(db, booking.id, owner.id)


async def test_owner_cancels_flexible_thirty_hours_out(
    db, bookings, processor, notifier, make_booking, owner, sitter
):
    booking = await make_booking(
        starts_in=timedelta(hours=30),
        status="confirmed",
        payment_status="held",
        payment_intent_id="pi_held",
    )

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert isinstance(outcome, CancellationOutcome)
    assert outcome.decision.refund_percent == 100
    assert outcome.decision.refund_amount == 5000
    assert outcome.booking.status == "cancelled"
    assert outcome.booking.cancelled_by == "owner"
    assert outcome.booking.payment_status == "cancelled"
    assert outcome.booking.refund_amount == 5000
    assert processor.calls == [("cancel", "pi_held")]
    assert notifier.types_for(sitter.id) == [NotificationService.BOOKING_STATUS]


async def test_owner_cancels_moderate_ten_hours_out(
    db, bookings, processor, make_booking, owner, sitter
):
    await _set_policy(db, sitter, "moderate")
    booking = await make_booking(
        starts_in=timedelta(hours=10),
        status="confirmed",
        payment_status="held",
        payment_intent_id="pi_held",
        total_price=4000,
    )

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert outcome.decision.refund_percent == 0
    assert outcome.decision.refund_amount == 0
    assert outcome.booking.status == "cancelled"
    assert outcome.booking.payment_status == "captured"
    assert outcome.booking.refund_amount == 0
    assert processor.operations == ["capture"]


async def test_partial_refund_captures_then_refunds(
    db, bookings, processor, make_booking, owner, sitter
):
    await _set_policy(db, sitter, "moderate")
    booking = await make_booking(
        starts_in=timedelta(hours=72),
        status="confirmed",
        payment_status="held",
        payment_intent_id="pi_held",
        total_price=8000,
    )

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert outcome.decision.refund_amount == 4000
    assert processor.calls == [("capture", "pi_held"), ("refund", "pi_held", 4000)]
    assert outcome.booking.payment_status == "captured"
    assert outcome.booking.refund_amount == 4000


async def test_cancel_with_captured_payment_refunds(
    db, bookings, processor, make_booking, owner
):
    booking = await make_booking(
        starts_in=timedelta(hours=48),
        status="confirmed",
        payment_status="captured",
        payment_intent_id="pi_captured",
    )

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert processor.calls == [("refund", "pi_captured", 5000)]
    assert outcome.booking.refund_amount == 5000


async def test_cancel_after_sitter_refund_only_returns_the_rest(
    db, bookings, escrow, processor, make_booking, owner, sitter
):
    booking = await make_booking(
        starts_in=timedelta(hours=72),
        status="confirmed",
        payment_status="captured",
        payment_intent_id="pi_captured",
    )
    await escrow.refund(db, booking.id, sitter.id, amount_cents=3000)

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert outcome.decision.refund_percent == 100
    assert outcome.decision.refund_amount == 2000
    assert "3000 cents already refunded" in outcome.decision.reason
    assert outcome.booking.status == "cancelled"
    assert outcome.booking.refund_amount == 5000
    assert processor.calls == [
        ("refund", "pi_captured", 3000),
        ("refund", "pi_captured", 2000),
    ]


async def test_cancel_after_full_sitter_refund_skips_processor(
    db, bookings, escrow, processor, make_booking, owner, sitter
):
    booking = await make_booking(
        starts_in=timedelta(hours=72),
        status="confirmed",
        payment_status="captured",
        payment_intent_id="pi_captured",
    )
    await escrow.refund(db, booking.id, sitter.id)

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert outcome.decision.refund_amount == 0
    assert outcome.booking.status == "cancelled"
    assert outcome.booking.refund_amount == 5000
    assert processor.calls == [("refund", "pi_captured", 5000)]


async def test_strict_policy_keeps_the_money(db, bookings, processor, make_booking, owner, sitter):
    await _set_policy(db, sitter, "strict")
    booking = await make_booking(
        starts_in=timedelta(days=30),
        status="confirmed",
        payment_status="held",
        payment_intent_id="pi_held",
    )

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert outcome.decision.refund_percent == 0
    assert processor.operations == ["capture"]


async def test_sitter_decline_releases_hold(db, bookings, processor, notifier, make_booking, owner, sitter):
    await _set_policy(db, sitter, "strict")
    booking = await make_booking(payment_status="held", payment_intent_id="pi_held")

    outcome = await bookings.cancel(db, booking.id, sitter.id)

    assert outcome.decision.refund_percent == 100
    assert outcome.booking.cancelled_by == "sitter"
    assert outcome.booking.payment_status == "cancelled"
    assert processor.calls == [("cancel", "pi_held")]
    assert notifier.types_for(owner.id) == [NotificationService.BOOKING_STATUS]


async def test_cancel_without_payment_touches_no_processor(db, bookings, processor, make_booking, owner):
    booking = await make_booking()

    outcome = await bookings.cancel(db, booking.id, owner.id)

    assert outcome.booking.status == "cancelled"
    assert outcome.booking.payment_status == "pending"
    assert processor.calls == []


async def test_processor_failure_rolls_back_cancellation(
    session_maker, db, bookings, processor, make_booking, owner
):
    booking = await make_booking(
        status="confirmed",
        payment_status="held",
        payment_intent_id="pi_held",
    )
    booking_id, owner_id = booking.id, owner.id
    processor.fail_on.add("cancel")

    with pytest.raises(ProcessorError):
        await bookings.cancel(db, booking_id, owner_id)

    # The rollback expired every loaded row, so read back through a fresh session.
    async with session_maker() as check:
        current = await get_booking(check, booking_id)
    assert current.status == "confirmed"
    assert current.payment_status == "held"
    assert current.cancelled_by is None


# ----------------------------------------------------------------------
# update_status dispatch
# ----------------------------------------------------------------------


async def test_update_status_dispatches(db, bookings, make_booking, sitter, owner):
    booking = await make_booking()

    confirmed = await bookings.update_status(db, booking.id, sitter.id, "confirmed")
    assert confirmed.status == "confirmed"

    outcome = await bookings.update_status(db, booking.id, owner.id, "cancelled")
    assert isinstance(outcome, CancellationOutcome)
    assert outcome.booking.status == "cancelled"


async def test_update_status_rejects_walk_states(db, bookings, make_booking, sitter):
    booking = await make_booking(status="confirmed")

    with pytest.raises(ValidationError):
        await bookings.update_status(db, booking.id, sitter.id, "in_progress")


# ----------------------------------------------------------------------
# walk tracking
# ----------------------------------------------------------------------


async def test_walk_events_advance_booking(db, bookings, notifier, make_booking, owner):
    booking = await make_booking(status="confirmed")

    started = await bookings.advance_to_in_progress(db, booking.id)
    assert started.status == "in_progress"

    completed = await bookings.advance_to_completed(db, booking.id)
    assert completed.status == "completed"
    assert completed.completed_at is not None

    assert notifier.types_for(owner.id) == [
        NotificationService.WALK_STARTED,
        NotificationService.WALK_COMPLETED,
    ]


async def test_walk_cannot_start_before_confirmation(db, bookings, make_booking):
    booking = await make_booking()

    with pytest.raises(ConflictError) as exc_info:
        await bookings.advance_to_in_progress(db, booking.id)

    assert exc_info.value.current_status == "pending"
    assert exc_info.value.reason == "invalid_transition"


async def test_walk_cannot_end_twice(db, bookings, make_booking):
    booking = await make_booking(status="in_progress")
    await bookings.advance_to_completed(db, booking.id)

    with pytest.raises(ConflictError):
        await bookings.advance_to_completed(db, booking.id)


async def test_walk_event_for_missing_booking(db, bookings):
    with pytest.raises(NotFoundError):
        await bookings.advance_to_in_progress(db, uuid4())


# ----------------------------------------------------------------------
# reads
# ----------------------------------------------------------------------


async def test_get_is_limited_to_participants(db, bookings, make_booking, owner, sitter, stranger):
    booking = await make_booking()

    assert (await bookings.get(db, booking.id, owner.id)).id == booking.id
    assert (await bookings.get(db, booking.id, sitter.id)).id == booking.id
    with pytest.raises(AuthorizationError):
        await bookings.get(db, booking.id, stranger.id)


async def test_list_for_user_filters_by_role_and_status(db, bookings, make_booking, owner, sitter):
    await make_booking()
    await make_booking(status="confirmed")

    as_owner, total = await bookings.list_for_user(db, owner.id, role="owner")
    assert total == 2
    assert len(as_owner) == 2

    as_sitter, total = await bookings.list_for_user(db, sitter.id, role="sitter", status="confirmed")
    assert total == 1
    assert as_sitter[0].status == "confirmed"

    _, total = await bookings.list_for_user(db, owner.id, role="sitter")
    assert total == 0

    with pytest.raises(ValidationError):
        await bookings.list_for_user(db, owner.id, status="archived")
