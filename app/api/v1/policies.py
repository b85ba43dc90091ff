"""Cancellation policy endpoints."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Query

from app.core.exceptions import NotFoundError, ValidationError
from app.domain.cancellation_policy import (
    CancellationPolicy,
    calculate_refund,
    get_policy_description,
)
from app.schemas.booking import RefundPreviewResponse

router = APIRouter()


@router.get("/{policy}", response_model=RefundPreviewResponse)
async def get_cancellation_policy(
    policy: str,
    total_price: Annotated[int | None, Query(ge=0)] = None,
    start_time: datetime | None = None,
) -> RefundPreviewResponse:
    """Describe a policy and, given a price and start time, preview today's refund."""
    try:
        policy_type = CancellationPolicy(policy)
    except ValueError:
        raise NotFoundError("Cancellation policy", policy) from None

    response = RefundPreviewResponse(
        policy=policy_type.value,
        description=get_policy_description(policy_type),
    )
    if total_price is None and start_time is None:
        return response
    if total_price is None or start_time is None:
        raise ValidationError("total_price and start_time must be given together")

    decision = calculate_refund(policy_type, total_price, start_time, datetime.now(UTC))
    response.refund_percent = decision.refund_percent
    response.refund_amount = decision.refund_amount
    response.eligible = decision.eligible
    response.reason = decision.reason
    return response
