"""Review endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_review_service
from app.models.review import Review
from app.models.user import User
from app.schemas.review import ReviewCreate, ReviewListResponse, ReviewResponse
from app.services.review_service import ReviewService

router = APIRouter()


@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    review_data: ReviewCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReviewService, Depends(get_review_service)],
) -> Review:
    """Review the other participant of a completed booking."""
    return await service.submit(
        db,
        booking_id=review_data.booking_id,
        reviewer_id=current_user.id,
        rating=review_data.rating,
        comment=review_data.comment,
    )


@router.get("/booking/{booking_id}", response_model=list[ReviewResponse])
async def get_booking_reviews(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReviewService, Depends(get_review_service)],
) -> list[Review]:
    """Reviews of one booking, as visible to the current participant."""
    return await service.list_for_booking(db, booking_id, current_user.id)


@router.get("/{user_id}", response_model=ReviewListResponse)
async def get_user_reviews(
    user_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReviewService, Depends(get_review_service)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ReviewListResponse:
    """Published reviews received by a user."""
    result = await service.list_for_user(db, user_id, page=page, page_size=page_size)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in result["reviews"]],
        total=result["total"],
        average_rating=result["average_rating"],
        rating_breakdown=result["rating_breakdown"],
        page=page,
        page_size=page_size,
    )
