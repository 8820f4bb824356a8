"""Test configuration and fixtures for the Studiobook API."""

import uuid
from collections.abc import AsyncGenerator
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from studiobook.config.database import Base, get_db
from studiobook.domains.bookings.models import Booking, BookingStatus
from studiobook.domains.bookings.router import get_booking_service
from studiobook.domains.bookings.service import BookingService
from studiobook.domains.packages.models import Package, UserPackage
from studiobook.domains.users.models import User, UserRole
from studiobook.main import create_app
from tests.factories import fixed_clock

# Test database URL - use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for tests."""
    return "asyncio"


@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import all models to register them
    from studiobook.domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


# =============================================================================
# Mock Fixtures for External Services
# =============================================================================


@pytest.fixture
def fake_calendar() -> MagicMock:
    """Calendar mirror that accepts every call and reports no busy time."""
    calendar = MagicMock()
    calendar.enabled = True
    calendar.create_event = AsyncMock(return_value="evt-123")
    calendar.update_event = AsyncMock(return_value=None)
    calendar.delete_event = AsyncMock(return_value=None)
    calendar.list_busy_intervals = AsyncMock(return_value=[])
    return calendar


@pytest.fixture
def fake_notifier() -> MagicMock:
    """WhatsApp notifier that records every message."""
    notifier = MagicMock()
    notifier.enabled = True
    notifier.send = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def booking_service(db_session, fake_calendar, fake_notifier) -> BookingService:
    return BookingService(
        db_session,
        calendar=fake_calendar,
        notifier=fake_notifier,
        clock=fixed_clock,
    )


@pytest.fixture(scope="function")
async def client(
    test_engine, db_session, fake_calendar, fake_notifier
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and service overrides."""
    app = create_app()

    async def override_get_db():
        yield db_session

    async def override_get_booking_service():
        return BookingService(
            db_session,
            calendar=fake_calendar,
            notifier=fake_notifier,
            clock=fixed_clock,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_booking_service] = override_get_booking_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Test Data Factories
#
# Factories return plain dicts: a rolled-back booking transaction expires
# every ORM instance in the session, so tests never hold on to them.
# =============================================================================


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Any]:
    """Create a user and return its data."""

    async def _make_user(
        name: str = "Mario Rossi",
        role: UserRole = UserRole.CLIENT,
        phone: str | None = "3331234567",
        booking_reminders: bool = True,
    ) -> dict[str, Any]:
        user_id = uuid.uuid4()
        db_session.add(
            User(
                id=user_id,
                email=f"user-{user_id}@example.com",
                name=name,
                phone=phone,
                role=role,
                booking_reminders=booking_reminders,
                is_active=True,
            )
        )
        await db_session.commit()
        return {"id": user_id, "name": name, "phone": phone, "role": role}

    return _make_user


@pytest.fixture
def make_package(db_session: AsyncSession) -> Callable[..., Any]:
    """Create a package with one participant row per user."""

    async def _make_package(
        participants: list[dict[str, Any]],
        total_sessions: int = 10,
        used_sessions: int | list[int] = 0,
        duration_minutes: int = 60,
        is_active: bool = True,
        name: str = "Pacchetto 10 sessioni",
    ) -> dict[str, Any]:
        package_id = uuid.uuid4()
        db_session.add(
            Package(
                id=package_id,
                name=name,
                total_sessions=total_sessions,
                duration_minutes=duration_minutes,
                is_active=is_active,
            )
        )
        await db_session.flush()
        used = used_sessions if isinstance(used_sessions, list) else [used_sessions] * len(participants)
        for participant, used_count in zip(participants, used):
            db_session.add(
                UserPackage(
                    id=uuid.uuid4(),
                    package_id=package_id,
                    user_id=participant["id"],
                    used_sessions=used_count,
                )
            )
        await db_session.commit()
        return {
            "id": package_id,
            "name": name,
            "participants": [p["id"] for p in participants],
        }

    return _make_package


@pytest.fixture
async def client_user(make_user) -> dict[str, Any]:
    return await make_user(name="Mario Rossi")


@pytest.fixture
async def admin_user(make_user) -> dict[str, Any]:
    return await make_user(name="Giulia Trainer", role=UserRole.ADMIN, phone="3409998887")


@pytest.fixture
def used_sessions(db_session: AsyncSession) -> Callable[..., Any]:
    """Read the ledger counters of a package straight from the table."""

    async def _used_sessions(package_id: uuid.UUID) -> dict[uuid.UUID, int]:
        result = await db_session.execute(
            select(UserPackage.user_id, UserPackage.used_sessions)
            .where(UserPackage.package_id == package_id)
        )
        return {user_id: used for user_id, used in result.all()}

    return _used_sessions


@pytest.fixture
def confirmed_count(db_session: AsyncSession) -> Callable[..., Any]:
    """Count CONFIRMED bookings of a package."""

    async def _confirmed_count(package_id: uuid.UUID) -> int:
        result = await db_session.execute(
            select(func.count(Booking.id)).where(
                Booking.package_id == package_id,
                Booking.status == BookingStatus.CONFIRMED,
            )
        )
        return result.scalar_one()

    return _confirmed_count
