"""Payment (escrow) state machine.

States: pending (no intent) → held (authorized, capture deferred) →
captured | cancelled.
"""

from enum import Enum
from typing import assert_never

from app.core.exceptions import ConflictError


class PaymentStatus(str, Enum):
    """Escrow states for a booking's single payment intent."""

    PENDING = "pending"
    HELD = "held"
    CAPTURED = "captured"
    CANCELLED = "cancelled"


def next_payment_statuses(current: PaymentStatus) -> frozenset[PaymentStatus]:
    match current:
        case PaymentStatus.PENDING:
            return frozenset({PaymentStatus.HELD})
        case PaymentStatus.HELD:
            return frozenset({PaymentStatus.CAPTURED, PaymentStatus.CANCELLED})
        case PaymentStatus.CAPTURED | PaymentStatus.CANCELLED:
            return frozenset()
        case _:
            assert_never(current)


def assert_payment_transition(current: str | PaymentStatus, target: str | PaymentStatus) -> None:
    current = PaymentStatus(current)
    target = PaymentStatus(target)
    if target not in next_payment_statuses(current):
        raise ConflictError(
            f"Invalid payment transition: {current.value} → {target.value}",
            reason="invalid_payment_transition",
            current_status=current.value,
        )
