"""API dependencies for authentication and service wiring."""

import hmac
from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import verify_token
from app.database import get_db
from app.gateways.base import PaymentProcessor
from app.gateways.stripe_gateway import StripeGateway
from app.models.user import User
from app.services.booking_service import BookingService
from app.services.escrow_service import EscrowService
from app.services.notification_service import NotificationService, notification_service
from app.services.review_service import ReviewService

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(credentials.credentials, token_type="access")
    try:
        user_id = UUID(payload.get("sub") or "")
    except ValueError:
        raise AuthenticationError("Invalid token payload") from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def verify_internal_key(
    x_internal_key: Annotated[str | None, Header()] = None,
) -> None:
    """Authenticate trusted internal callers such as the walk tracker."""
    if not settings.internal_api_key:
        raise AuthorizationError("Internal API is disabled")
    if not x_internal_key or not hmac.compare_digest(x_internal_key, settings.internal_api_key):
        raise AuthorizationError("Invalid internal API key")


@lru_cache
def _stripe_gateway() -> StripeGateway:
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.currency,
    )


def get_payment_processor() -> PaymentProcessor | None:
    """Configured payment processor, or None when payments are switched off."""
    if not settings.stripe_secret_key:
        return None
    return _stripe_gateway()


def get_notification_service() -> NotificationService:
    return notification_service


def get_escrow_service(
    processor: Annotated[PaymentProcessor | None, Depends(get_payment_processor)],
) -> EscrowService:
    return EscrowService(processor)


def get_booking_service(
    escrow: Annotated[EscrowService, Depends(get_escrow_service)],
    notifier: Annotated[NotificationService, Depends(get_notification_service)],
) -> BookingService:
    return BookingService(escrow, notifier)


def get_review_service(
    notifier: Annotated[NotificationService, Depends(get_notification_service)],
) -> ReviewService:
    return ReviewService(notifier)
