"""Notification dispatch for booking lifecycle events.

Delivery (push, email, in-app) belongs to the notification system; this
service only hands events to it over HTTP. Every call is best-effort: a
failure is logged and swallowed so it can never undo a booking or payment
transition that already happened.
"""

import logging
from typing import Any
from uuid import UUID

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget notifier."""

    # Notification types
    NEW_BOOKING = "new_booking"
    BOOKING_STATUS = "booking_status"
    WALK_STARTED = "walk_started"
    WALK_COMPLETED = "walk_completed"
    REVIEWS_PUBLISHED = "reviews_published"

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()

    async def notify(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        """Send one notification.

        Args:
            user_id: User to notify
            notification_type: Type of notification
            title: Notification title
            body: Notification body text
            data: Extra payload (ids, statuses)

        Returns:
            bool: True if the notification system accepted it
        """
        payload = {
            "user_id": str(user_id),
            "type": notification_type,
            "title": title,
            "body": body,
            "data": data or {},
        }

        if not self.webhook_url:
            logger.info(f"Notification ({notification_type}) for user {user_id}: {title}")
            return False

        try:
            response = await self.http_client.post(self.webhook_url, json=payload)
            response.raise_for_status()
            return True
        except Exception as e:
            logger.warning(
                f"Notification {notification_type} for user {user_id} failed: "
                f"{e.__class__.__name__}: {e}"
            )
            return False


notification_service = NotificationService()
