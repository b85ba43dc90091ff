"""Cancellation policy domain logic.

Policies:
- flexible: Full refund if cancelled at least 24h before the start
- moderate: 50% refund if cancelled at least 48h before the start
- strict: No refund

Once the booking has started no policy refunds anything. Amounts are
truncated, never rounded up, so the platform cannot refund more than the
policy allows.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum


class CancellationPolicy(str, Enum):
    """Cancellation policy types."""

    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"


@dataclass(frozen=True)
class PolicyRule:
    """Minimum notice required and the refund it earns."""

    min_hours: int
    refund_percent: int


POLICY_RULES: dict[CancellationPolicy, PolicyRule] = {
    CancellationPolicy.FLEXIBLE: PolicyRule(min_hours=24, refund_percent=100),
    CancellationPolicy.MODERATE: PolicyRule(min_hours=48, refund_percent=50),
    CancellationPolicy.STRICT: PolicyRule(min_hours=168, refund_percent=0),  # 7 days
}

POLICY_DESCRIPTIONS: dict[CancellationPolicy, str] = {
    CancellationPolicy.FLEXIBLE: "Full refund if cancelled at least 24 hours before the booking.",
    CancellationPolicy.MODERATE: "50% refund if cancelled at least 48 hours before the booking.",
    CancellationPolicy.STRICT: "No refund within 7 days of the booking.",
}


@dataclass(frozen=True)
class RefundDecision:
    """Outcome of applying a cancellation policy."""

    refund_percent: int
    refund_amount: int
    eligible: bool
    reason: str


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def calculate_refund(
    policy: str | CancellationPolicy,
    total_price: int,
    start_time: datetime,
    cancel_time: datetime,
) -> RefundDecision:
    """Calculate the refund owed for a cancellation.

    Args:
        policy: The sitter's cancellation policy
        total_price: Booking total in the smallest currency unit
        start_time: When the booking starts
        cancel_time: When the cancellation happens

    Returns:
        RefundDecision with percent, amount, eligibility and a readable reason

    Raises:
        ValueError: If ``policy`` is not a known policy
    """
    policy = CancellationPolicy(policy)
    until_start = _as_utc(start_time) - _as_utc(cancel_time)

    if until_start <= timedelta(0):
        return RefundDecision(
            refund_percent=0,
            refund_amount=0,
            eligible=False,
            reason=f"{policy.value} policy: no refund (booking has already started)",
        )

    if policy is CancellationPolicy.STRICT:
        return RefundDecision(
            refund_percent=0,
            refund_amount=0,
            eligible=False,
            reason="strict policy: no refunds",
        )

    rule = POLICY_RULES[policy]
    hours_until_start = until_start / timedelta(hours=1)
    eligible = hours_until_start >= rule.min_hours
    refund_percent = rule.refund_percent if eligible else 0
    refund_amount = total_price * refund_percent // 100

    if eligible:
        reason = (
            f"{policy.value} policy: {refund_percent}% refund "
            f"(cancelled {int(hours_until_start)}h before)"
        )
    else:
        reason = f"{policy.value} policy: no refund (cancelled less than {rule.min_hours}h before)"

    return RefundDecision(
        refund_percent=refund_percent,
        refund_amount=refund_amount,
        eligible=eligible,
        reason=reason,
    )


def get_policy_description(policy: str | CancellationPolicy) -> str:
    """Get human-readable policy description."""
    try:
        policy = CancellationPolicy(policy)
    except ValueError:
        return "Unknown cancellation policy"
    return POLICY_DESCRIPTIONS[policy]
