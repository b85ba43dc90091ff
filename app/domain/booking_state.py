"""Booking state machine.

States: pending → confirmed → in_progress → completed, with pending → cancelled
and confirmed → cancelled. Everything else is rejected.
"""

from enum import Enum
from typing import assert_never

from app.core.exceptions import ConflictError


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Party(str, Enum):
    """The two participants of a booking."""

    OWNER = "owner"
    SITTER = "sitter"


def next_statuses(current: BookingStatus) -> frozenset[BookingStatus]:
    """Statuses reachable from ``current`` in one step."""
    match current:
        case BookingStatus.PENDING:
            return frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED})
        case BookingStatus.CONFIRMED:
            return frozenset({BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED})
        case BookingStatus.IN_PROGRESS:
            return frozenset({BookingStatus.COMPLETED})
        case BookingStatus.COMPLETED | BookingStatus.CANCELLED:
            return frozenset()
        case _:
            assert_never(current)


def cancellable_by(party: Party) -> frozenset[BookingStatus]:
    """Statuses from which ``party`` may cancel.

    The sitter may only decline a pending request; the owner may also
    cancel after confirmation.
    """
    match party:
        case Party.SITTER:
            return frozenset({BookingStatus.PENDING})
        case Party.OWNER:
            return previous_statuses(BookingStatus.CANCELLED)
        case _:
            assert_never(party)


def confirmable_by(party: Party) -> frozenset[BookingStatus]:
    """Statuses from which ``party`` may confirm."""
    match party:
        case Party.SITTER:
            return previous_statuses(BookingStatus.CONFIRMED)
        case Party.OWNER:
            return frozenset()
        case _:
            assert_never(party)


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in next_statuses(current)


def previous_statuses(target: BookingStatus) -> frozenset[BookingStatus]:
    """Statuses with an edge into ``target``."""
    return frozenset(s for s in BookingStatus if can_transition(s, target))


def assert_booking_transition(current: str | BookingStatus, target: str | BookingStatus) -> None:
    """Raise ConflictError unless ``current → target`` is an edge of the graph."""
    current = BookingStatus(current)
    target = BookingStatus(target)
    if not can_transition(current, target):
        raise ConflictError(
            f"Invalid booking transition: {current.value} → {target.value}",
            reason="invalid_transition",
            current_status=current.value,
        )
