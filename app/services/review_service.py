"""Double-blind review service.

Each participant of a completed booking may review the other once. A review
stays hidden until the counterpart has reviewed too; the second submission
publishes both rows with one shared timestamp.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, ConflictError, ValidationError
from app.domain.booking_state import BookingStatus
from app.models.review import Review
from app.services.booking_store import get_booking
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class ReviewService:
    """Service for submitting and reading reviews."""

    def __init__(self, notifier: NotificationService) -> None:
        self.notifier = notifier

    async def submit(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reviewer_id: UUID,
        rating: int,
        comment: str | None = None,
    ) -> Review:
        """Submit a review and publish the pair if the counterpart already reviewed.

        Args:
            db: Database session
            booking_id: Completed booking being reviewed
            reviewer_id: Participant writing the review
            rating: 1 to 5
            comment: Optional free text

        Returns:
            Review: The stored review, ``published_at`` set if the pair is complete
        """
        if not 1 <= rating <= 5:
            raise ValidationError(f"Rating must be between 1 and 5, got {rating}")

        # Row lock serializes the two participants' submissions, so exactly
        # one of them sees the other's review.
        booking = await get_booking(db, booking_id, for_update=True)
        party = booking.party_of(reviewer_id)
        if party is None:
            raise AuthorizationError("You can only review bookings you participated in")
        if booking.status != BookingStatus.COMPLETED.value:
            raise ConflictError(
                "Can only review completed bookings",
                reason="booking_not_completed",
                current_status=booking.status,
            )

        reviewee_id = booking.sitter_id if party == "owner" else booking.owner_id
        review = Review(
            booking_id=booking.id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment,
        )
        db.add(review)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                "You have already reviewed this booking",
                reason="duplicate_review",
            ) from None

        counterpart = await db.execute(
            select(Review.id).where(
                Review.booking_id == booking.id,
                Review.reviewer_id == reviewee_id,
            )
        )
        published = False
        if counterpart.scalar_one_or_none() is not None:
            await db.execute(
                update(Review)
                .where(
                    Review.booking_id == booking.id,
                    Review.published_at.is_(None),
                )
                .values(published_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            published = True

        await db.commit()
        review = await self._reload(db, review.id)
        logger.info(
            f"Review {review.id} submitted by {party} {reviewer_id} for booking {booking.id}"
            + (" (pair published)" if published else "")
        )

        if published:
            for user_id in (booking.owner_id, booking.sitter_id):
                await self.notifier.notify(
                    user_id,
                    NotificationService.REVIEWS_PUBLISHED,
                    "Reviews published",
                    "You can now read each other's reviews.",
                    {"booking_id": str(booking.id)},
                )
        return review

    async def _reload(self, db: AsyncSession, review_id: UUID) -> Review:
        result = await db.execute(
            select(Review)
            .where(Review.id == review_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: UUID,
        page: int = 1,
        page_size: int = 20,
    ) -> dict:
        """Published reviews a user received, with average and breakdown."""
        base_filter = [Review.reviewee_id == user_id, Review.published_at.is_not(None)]

        stats = (
            await db.execute(
                select(func.count(Review.id), func.avg(Review.rating)).where(*base_filter)
            )
        ).one()

        breakdown = {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
        breakdown_result = await db.execute(
            select(Review.rating, func.count()).where(*base_filter).group_by(Review.rating)
        )
        for rating, count in breakdown_result.all():
            breakdown[rating] = count

        result = await db.execute(
            select(Review)
            .where(*base_filter)
            .order_by(Review.created_at.desc(), Review.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return {
            "reviews": list(result.scalars().all()),
            "total": stats[0] or 0,
            "average_rating": round(float(stats[1] or 0), 2),
            "rating_breakdown": breakdown,
            "page": page,
            "page_size": page_size,
        }

    async def list_for_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        viewer_id: UUID,
    ) -> list[Review]:
        """Reviews of a booking as one participant may see them.

        A participant always sees their own review; the counterpart's only
        once published.
        """
        booking = await get_booking(db, booking_id)
        if booking.party_of(viewer_id) is None:
            raise AuthorizationError("You are not a participant in this booking")

        result = await db.execute(
            select(Review)
            .where(
                Review.booking_id == booking_id,
                or_(Review.reviewer_id == viewer_id, Review.published_at.is_not(None)),
            )
            .order_by(Review.created_at, Review.id)
        )
        return list(result.scalars().all())
