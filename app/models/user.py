"""User and service models.

Both are owned by the profile system; the booking core only reads them.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base

if TYPE_CHECKING:
    from app.models.booking import Booking


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="owner"
    )  # owner, sitter, both

    # Sitter settings
    cancellation_policy: Mapped[str] = mapped_column(
        String(20), nullable=False, default="flexible"
    )  # flexible, moderate, strict
    payout_account_id: Mapped[str | None] = mapped_column(String(255))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    services: Mapped[list["Service"]] = relationship("Service", back_populates="sitter")
    bookings_as_owner: Mapped[list["Booking"]] = relationship(
        "Booking", back_populates="owner", foreign_keys="[Booking.owner_id]"
    )
    bookings_as_sitter: Mapped[list["Booking"]] = relationship(
        "Booking", back_populates="sitter", foreign_keys="[Booking.sitter_id]"
    )


class Service(Base):
    """A bookable service offered by a sitter."""

    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sitter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_type: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # walking, sitting, drop-in, grooming, meet_greet
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # cents
    description: Mapped[str | None] = mapped_column(Text)

    sitter: Mapped["User"] = relationship("User", back_populates="services")
