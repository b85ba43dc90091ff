from datetime import UTC, datetime, timedelta

import pytest

from app.domain.cancellation_policy import (
    CancellationPolicy,
    calculate_refund,
    get_policy_description,
)

START = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _cancel_before(hours: float) -> datetime:
    return START - timedelta(hours=hours)


@pytest.mark.parametrize(
    ("policy", "hours_before", "expected_percent"),
    [
        ("flexible", 24 * 10, 100),
        ("flexible", 24, 100),
        ("flexible", 23.99, 0),
        ("flexible", 1, 0),
        ("moderate", 72, 50),
        ("moderate", 48, 50),
        ("moderate", 47.5, 0),
        ("moderate", 10, 0),
        ("strict", 24 * 30, 0),
        ("strict", 24 * 7, 0),
        ("strict", 1, 0),
    ],
)
def test_refund_percent_by_policy_and_notice(policy, hours_before, expected_percent):
    decision = calculate_refund(policy, 10_000, START, _cancel_before(hours_before))

    assert decision.refund_percent == expected_percent
    assert decision.refund_amount == 10_000 * expected_percent // 100
    assert decision.eligible is (expected_percent > 0)


def test_flexible_thirty_hours_before_refunds_everything():
    decision = calculate_refund(CancellationPolicy.FLEXIBLE, 5000, START, _cancel_before(30))

    assert decision.refund_percent == 100
    assert decision.refund_amount == 5000
    assert "flexible" in decision.reason


def test_moderate_ten_hours_before_refunds_nothing():
    decision = calculate_refund(CancellationPolicy.MODERATE, 4000, START, _cancel_before(10))

    assert decision.refund_percent == 0
    assert decision.refund_amount == 0
    assert decision.eligible is False
    assert "48h" in decision.reason


def test_half_refund_truncates_odd_cents():
    decision = calculate_refund("moderate", 4999, START, _cancel_before(49))

    assert decision.refund_amount == 2499


@pytest.mark.parametrize("policy", ["flexible", "moderate", "strict"])
@pytest.mark.parametrize("offset", [timedelta(0), timedelta(minutes=5), timedelta(days=2)])
def test_no_refund_once_booking_has_started(policy, offset):
    decision = calculate_refund(policy, 5000, START, START + offset)

    assert decision.refund_percent == 0
    assert decision.refund_amount == 0
    assert "already started" in decision.reason


def test_naive_datetimes_are_treated_as_utc():
    naive_start = START.replace(tzinfo=None)
    decision = calculate_refund("flexible", 5000, naive_start, _cancel_before(25))

    assert decision.refund_percent == 100


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        calculate_refund("lenient", 5000, START, _cancel_before(100))


def test_policy_descriptions():
    assert "24 hours" in get_policy_description("flexible")
    assert "50%" in get_policy_description(CancellationPolicy.MODERATE)
    assert "7 days" in get_policy_description("strict")
    assert get_policy_description("lenient") == "Unknown cancellation policy"
