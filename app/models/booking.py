"""Booking database model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base
from app.domain.booking_state import BookingStatus
from app.domain.payment_state import PaymentStatus

if TYPE_CHECKING:
    from app.models.review import Review
    from app.models.user import Service, User


class Booking(Base):
    """Booking model.

    Rows are only ever changed through conditional UPDATEs issued by the
    booking and escrow services, and are never deleted.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_end_after_start"),
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sitter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("services.id"), nullable=False
    )

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Pricing (in cents - smallest currency unit)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default=BookingStatus.PENDING.value, nullable=False, index=True
    )
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), unique=True)
    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False
    )

    # Cancellation
    cancelled_by: Mapped[str | None] = mapped_column(String(10))  # owner, sitter
    refund_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    sitter: Mapped["User"] = relationship(
        "User", back_populates="bookings_as_sitter", foreign_keys=[sitter_id]
    )
    owner: Mapped["User"] = relationship(
        "User", back_populates="bookings_as_owner", foreign_keys=[owner_id]
    )
    service: Mapped["Service"] = relationship("Service")
    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="booking")

    def party_of(self, user_id: uuid.UUID) -> str | None:
        """Return ``"owner"``/``"sitter"`` for a participant, else None."""
        if user_id == self.owner_id:
            return "owner"
        if user_id == self.sitter_id:
            return "sitter"
        return None
