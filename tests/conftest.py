"""Shared fixtures: a throwaway SQLite database, demo users and service fakes."""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401
from app.database import Base
from app.models.booking import Booking
from app.models.user import Service, User
from app.services.booking_service import BookingService
from app.services.escrow_service import EscrowService
from app.services.review_service import ReviewService
from tests.fakes import FakeProcessor, RecordingNotifier

WALK_PRICE = 5000  # $50.00


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'petlink.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def owner(db) -> User:
    user = User(email="owner@example.com", name="Olive Owner", role="owner")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def sitter(db) -> User:
    user = User(
        email="sitter@example.com",
        name="Sam Sitter",
        role="sitter",
        cancellation_policy="flexible",
        payout_account_id="acct_sitter",
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def stranger(db) -> User:
    user = User(email="stranger@example.com", name="Stan Stranger", role="owner")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def walk_service(db, sitter) -> Service:
    service = Service(sitter_id=sitter.id, service_type="walking", price=WALK_PRICE)
    db.add(service)
    await db.commit()
    return service


@pytest.fixture
def make_booking(db, owner, sitter, walk_service):
    """Insert a booking directly in any state."""

    async def _make(
        *,
        starts_in: timedelta = timedelta(hours=72),
        status: str = "pending",
        payment_status: str = "pending",
        payment_intent_id: str | None = None,
        total_price: int = WALK_PRICE,
    ) -> Booking:
        start = datetime.now(UTC) + starts_in
        booking = Booking(
            sitter_id=sitter.id,
            owner_id=owner.id,
            service_id=walk_service.id,
            start_time=start,
            end_time=start + timedelta(hours=1),
            total_price=total_price,
            status=status,
            payment_status=payment_status,
            payment_intent_id=payment_intent_id,
        )
        db.add(booking)
        await db.commit()
        return booking

    return _make


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def escrow(processor) -> EscrowService:
    return EscrowService(processor, fee_percent=15.0)


@pytest.fixture
def bookings(escrow, notifier) -> BookingService:
    return BookingService(escrow, notifier, max_booking_hours=24)


@pytest.fixture
def reviews(notifier) -> ReviewService:
    return ReviewService(notifier)
