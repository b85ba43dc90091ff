"""Payment escrow service.

Funds are authorized when the owner pays and only captured later, so a
booking's payment moves pending → held → captured | cancelled. Processor
calls always happen before the local write that records their effect, and
that write is conditional on the payment still being where we left it.
Processor errors never leak to callers; they surface as ``ProcessorError``.

Methods named ``*_hold``/``issue_refund`` do not commit: they are the money
half of a booking cancellation and run inside the caller's transaction.
"""

import logging
from datetime import UTC, datetime
from typing import assert_never
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ProcessorError,
    ValidationError,
)
from app.domain.booking_state import BookingStatus, Party, cancellable_by
from app.domain.cancellation_policy import calculate_refund
from app.domain.payment_state import PaymentStatus, assert_payment_transition
from app.gateways.base import (
    IntentResult,
    PaymentProcessor,
    ProcessorFailure,
    RefundResult,
    WebhookEvent,
    WebhookEventType,
)
from app.models.booking import Booking
from app.models.user import User
from app.services.booking_store import conditional_update, get_booking

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class EscrowService:
    """Service for the hold/capture/release lifecycle of booking payments."""

    def __init__(
        self,
        processor: PaymentProcessor | None,
        fee_percent: float | None = None,
    ) -> None:
        self._processor = processor
        self.fee_percent = (
            fee_percent if fee_percent is not None else settings.platform_fee_percent
        )

    @property
    def processor(self) -> PaymentProcessor:
        if self._processor is None:
            raise ProcessorError("Payments are not configured")
        return self._processor

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def create_intent(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
    ) -> IntentResult:
        """Authorize the booking total and hold it.

        Args:
            db: Database session
            booking_id: Booking to pay for
            actor_id: Paying user, must be the booking's owner

        Returns:
            IntentResult: Intent id and client secret for the payment sheet
        """
        booking = await get_booking(db, booking_id)
        if booking.owner_id != actor_id:
            raise AuthorizationError("Only the pet owner can pay for a booking")
        if booking.status not in PAYABLE_STATUSES:
            raise ConflictError(
                f"Cannot pay for a {booking.status} booking",
                reason="booking_not_payable",
                current_status=booking.status,
            )
        if booking.payment_intent_id is not None:
            raise ConflictError(
                "A payment intent already exists for this booking",
                reason="intent_exists",
                current_status=booking.payment_status,
            )

        sitter = await db.get(User, booking.sitter_id)
        if not sitter or not sitter.payout_account_id:
            raise ConflictError(
                "The sitter has not finished payout onboarding",
                reason="payout_not_configured",
            )

        try:
            intent = await self.processor.create_intent(
                amount_cents=booking.total_price,
                destination_account_id=sitter.payout_account_id,
                fee_percent=self.fee_percent,
                metadata={
                    "booking_id": str(booking.id),
                    "owner_id": str(booking.owner_id),
                    "sitter_id": str(booking.sitter_id),
                },
            )
        except ProcessorFailure as e:
            logger.error(f"Intent creation failed for booking {booking.id}: {e}")
            raise ProcessorError("Could not create payment") from e

        rows = await conditional_update(
            db,
            booking.id,
            Booking.payment_intent_id.is_(None),
            Booking.payment_status == PaymentStatus.PENDING.value,
            Booking.status.in_(PAYABLE_STATUSES),
            payment_intent_id=intent.intent_id,
            payment_status=PaymentStatus.HELD.value,
        )
        if rows == 0:
            # Another request attached its intent first; ours must not linger.
            await self._release_orphan(intent.intent_id)
            current = await get_booking(db, booking.id)
            raise ConflictError(
                "A payment intent already exists for this booking",
                reason="intent_exists",
                current_status=current.payment_status,
            )

        await db.commit()
        logger.info(
            f"Payment intent {intent.intent_id} held for booking {booking.id} "
            f"({intent.amount_cents} cents, fee {intent.fee_cents})"
        )
        return intent

    async def _release_orphan(self, intent_id: str) -> None:
        try:
            await self.processor.cancel(intent_id)
        except ProcessorFailure as e:
            logger.error(f"Could not release orphaned intent {intent_id}: {e}")

    # ------------------------------------------------------------------
    # Capture / release / refund (transaction left open for the caller)
    # ------------------------------------------------------------------

    async def capture_hold(self, db: AsyncSession, booking: Booking) -> None:
        """Capture a held payment. Does not commit."""
        intent_id = self._require_intent(booking)
        try:
            await self.processor.capture(intent_id)
        except ProcessorFailure as e:
            logger.error(f"Capture failed for intent {intent_id}: {e}")
            raise ProcessorError("Could not capture payment") from e

        rows = await conditional_update(
            db,
            booking.id,
            Booking.payment_intent_id == intent_id,
            Booking.payment_status == PaymentStatus.HELD.value,
            payment_status=PaymentStatus.CAPTURED.value,
        )
        if rows == 0:
            await self._explain_payment_miss(db, booking.id, PaymentStatus.CAPTURED)
        logger.info(f"Captured intent {intent_id} for booking {booking.id}")

    async def release_hold(self, db: AsyncSession, booking: Booking) -> None:
        """Release a held payment without charging. Does not commit."""
        intent_id = self._require_intent(booking)
        try:
            await self.processor.cancel(intent_id)
        except ProcessorFailure as e:
            logger.error(f"Release failed for intent {intent_id}: {e}")
            raise ProcessorError("Could not release payment") from e

        rows = await conditional_update(
            db,
            booking.id,
            Booking.payment_intent_id == intent_id,
            Booking.payment_status == PaymentStatus.HELD.value,
            payment_status=PaymentStatus.CANCELLED.value,
            refund_amount=booking.total_price,
        )
        if rows == 0:
            await self._explain_payment_miss(db, booking.id, PaymentStatus.CANCELLED)
        logger.info(f"Released intent {intent_id} for booking {booking.id}")

    async def issue_refund(
        self,
        db: AsyncSession,
        booking: Booking,
        amount_cents: int,
    ) -> RefundResult:
        """Refund part of a captured payment. Does not commit."""
        intent_id = self._require_intent(booking)
        if amount_cents <= 0:
            raise ValidationError(f"Refund amount must be positive, got {amount_cents}")

        try:
            result = await self.processor.refund(
                intent_id,
                amount_cents,
                reference=f"{booking.refund_amount}+{amount_cents}",
            )
        except ProcessorFailure as e:
            logger.error(f"Refund of {amount_cents} failed for intent {intent_id}: {e}")
            raise ProcessorError("Could not refund payment") from e

        rows = await conditional_update(
            db,
            booking.id,
            Booking.payment_status == PaymentStatus.CAPTURED.value,
            Booking.refund_amount + amount_cents <= Booking.total_price,
            refund_amount=Booking.refund_amount + amount_cents,
        )
        if rows == 0:
            # The processor already moved the money; the record must follow.
            logger.error(
                f"Refund {result.refund_id} for booking {booking.id} could not be "
                f"recorded (payment no longer captured or over-refunded)"
            )
            raise ConflictError(
                "Payment changed while refunding",
                reason="already_changed",
            )
        logger.info(
            f"Refunded {amount_cents} cents on intent {intent_id} "
            f"for booking {booking.id} ({result.refund_id})"
        )
        return result

    def _require_intent(self, booking: Booking) -> str:
        if not booking.payment_intent_id:
            raise ConflictError(
                "Booking has no payment intent",
                reason="no_payment_intent",
                current_status=booking.payment_status,
            )
        return booking.payment_intent_id

    async def _explain_payment_miss(
        self,
        db: AsyncSession,
        booking_id: UUID,
        target: PaymentStatus,
    ) -> None:
        """Classify a lost payment CAS.

        A webhook that already recorded the same outcome is not an error.
        """
        current = await get_booking(db, booking_id)
        if current.payment_status == target.value:
            return
        raise ConflictError(
            f"Payment is {current.payment_status}, expected held",
            reason="already_changed",
            current_status=current.payment_status,
        )

    # ------------------------------------------------------------------
    # Participant-facing operations (commit on success)
    # ------------------------------------------------------------------

    async def capture(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
    ) -> Booking:
        """Capture the held payment of a booking.

        Either participant may trigger the capture once the service has
        been delivered.
        """
        booking = await get_booking(db, booking_id)
        if booking.party_of(actor_id) is None:
            raise AuthorizationError("You are not a participant in this booking")
        assert_payment_transition(booking.payment_status, PaymentStatus.CAPTURED)

        try:
            await self.capture_hold(db, booking)
        except Exception:
            await db.rollback()
            raise
        await db.commit()
        return await get_booking(db, booking_id)

    async def cancel_held(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
    ) -> Booking:
        """Release a held payment and cancel the booking if still active.

        A release returns the full amount, so it is only allowed while the
        sitter's cancellation policy would refund in full, or once the
        booking is already cancelled.
        """
        booking = await get_booking(db, booking_id)
        if booking.owner_id != actor_id:
            raise AuthorizationError("Only the pet owner can cancel a payment")
        assert_payment_transition(booking.payment_status, PaymentStatus.CANCELLED)

        if booking.status != BookingStatus.CANCELLED.value:
            sitter = await db.get(User, booking.sitter_id)
            decision = calculate_refund(
                sitter.cancellation_policy,
                booking.total_price,
                booking.start_time,
                datetime.now(UTC),
            )
            if decision.refund_percent < 100:
                raise ConflictError(
                    f"Releasing the payment would bypass the cancellation policy "
                    f"({decision.reason}); cancel the booking instead",
                    reason="policy_requires_cancellation",
                    current_status=booking.status,
                )
            rows = await conditional_update(
                db,
                booking.id,
                Booking.owner_id == actor_id,
                Booking.status.in_([s.value for s in cancellable_by(Party.OWNER)]),
                status=BookingStatus.CANCELLED.value,
                cancelled_by=Party.OWNER.value,
                cancelled_at=datetime.now(UTC),
            )
            if rows == 0:
                current = await get_booking(db, booking.id)
                raise ConflictError(
                    f"Booking is already {current.status}",
                    reason="already_changed",
                    current_status=current.status,
                )

        try:
            await self.release_hold(db, booking)
        except Exception:
            await db.rollback()
            raise
        await db.commit()
        return await get_booking(db, booking_id)

    async def refund(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_id: UUID,
        amount_cents: int | None = None,
    ) -> RefundResult:
        """Refund a captured payment, by default whatever is not yet refunded.

        Only the sitter, who received the funds, may hand them back.
        """
        booking = await get_booking(db, booking_id)
        if booking.sitter_id != actor_id:
            raise AuthorizationError("Only the sitter can refund a captured payment")
        self._require_payment_status(booking, PaymentStatus.CAPTURED)

        refundable = booking.total_price - booking.refund_amount
        amount = refundable if amount_cents is None else amount_cents
        if amount <= 0 or amount > refundable:
            raise ValidationError(
                f"Refund amount must be between 1 and {refundable} cents, got {amount}"
            )

        try:
            result = await self.issue_refund(db, booking, amount)
        except Exception:
            await db.rollback()
            raise
        await db.commit()
        return result

    def _require_payment_status(self, booking: Booking, expected: PaymentStatus) -> None:
        if booking.payment_status != expected.value:
            raise ConflictError(
                f"Payment is {booking.payment_status}, expected {expected.value}",
                reason="already_changed",
                current_status=booking.payment_status,
            )

    # ------------------------------------------------------------------
    # Webhook reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self, db: AsyncSession, event: WebhookEvent) -> bool:
        """Apply a verified processor event to the booking it refers to.

        Duplicate and out-of-order deliveries are harmless: the write only
        happens while the stored status differs from the event's outcome.

        Returns:
            bool: True if a booking row changed
        """
        match event.type:
            case WebhookEventType.INTENT_SUCCEEDED:
                target = PaymentStatus.CAPTURED
            case WebhookEventType.INTENT_CANCELED:
                target = PaymentStatus.CANCELLED
            case WebhookEventType.UNKNOWN:
                logger.debug(f"Ignoring webhook event {event.event_id} ({event.raw_type})")
                return False
            case _:
                assert_never(event.type)

        if not event.intent_id:
            logger.warning(f"Webhook event {event.event_id} carries no intent id")
            return False

        result = await db.execute(
            update(Booking)
            .where(
                Booking.payment_intent_id == event.intent_id,
                Booking.payment_status != target.value,
            )
            .values(payment_status=target.value)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        applied = result.rowcount > 0
        if applied:
            logger.info(
                f"Webhook {event.event_id}: intent {event.intent_id} → {target.value}"
            )
        else:
            logger.debug(
                f"Webhook {event.event_id}: nothing to apply for intent {event.intent_id}"
            )
        return applied

    # ------------------------------------------------------------------
    # Payout accounts
    # ------------------------------------------------------------------

    async def create_payout_account(self, db: AsyncSession, user_id: UUID) -> str:
        """Return the sitter's payout account id, creating the account on first use."""
        user = await db.get(User, user_id, populate_existing=True)
        if not user:
            raise NotFoundError("User", str(user_id))
        if user.role not in ("sitter", "both"):
            raise AuthorizationError("Only sitters can set up payouts")
        if user.payout_account_id:
            return user.payout_account_id

        try:
            account_id = await self.processor.create_account(user.email)
        except ProcessorFailure as e:
            logger.error(f"Payout account creation failed for user {user.id}: {e}")
            raise ProcessorError("Could not create payout account") from e

        result = await db.execute(
            update(User)
            .where(User.id == user.id, User.payout_account_id.is_(None))
            .values(payout_account_id=account_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount == 1:
            logger.info(f"Created payout account {account_id} for user {user.id}")
            return account_id

        # A concurrent request stored its account first; that one wins.
        logger.warning(f"Discarding duplicate payout account {account_id} for user {user.id}")
        existing = await db.execute(select(User.payout_account_id).where(User.id == user.id))
        return existing.scalar_one()

    async def create_onboarding_link(
        self,
        db: AsyncSession,
        user_id: UUID,
        return_url: str,
    ) -> tuple[str, str]:
        """Ensure the sitter has a payout account and return an onboarding URL.

        Returns:
            tuple: (account_id, onboarding_url)
        """
        account_id = await self.create_payout_account(db, user_id)
        try:
            url = await self.processor.create_onboarding_link(account_id, return_url)
        except ProcessorFailure as e:
            logger.error(f"Onboarding link failed for account {account_id}: {e}")
            raise ProcessorError("Could not create onboarding link") from e
        return account_id, url
