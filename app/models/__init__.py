"""Database models."""

from app.models.booking import Booking
from app.models.review import Review
from app.models.user import Service, User

__all__ = [
    # User
    "User",
    "Service",
    # Booking
    "Booking",
    # Review
    "Review",
]
