"""Test configuration and fixtures for the scheduling API."""

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config.database import Base, get_db
from src.domains.auth.guards import Actor
from src.domains.users.models import User, UserRole
from src.main import create_app

from tests.helpers import actor_for, next_weekday

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
    from src.domains import models  # noqa: F401

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
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


@pytest.fixture(scope="function")
async def client(test_engine, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    app = create_app()

    # Override the database dependency
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Users
# =============================================================================


async def _create_user(
    db: AsyncSession,
    role: UserRole,
    first_name: str,
    last_name: str,
    email: str | None = None,
) -> User:
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        email=email or f"{first_name.lower()}-{user_id.hex[:8]}@example.com",
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def coach(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.COACH, "Carla", "Mendes", "carla.coach@example.com")


@pytest.fixture
async def other_coach(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.COACH, "Otto", "Brandt")


@pytest.fixture
async def parent(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.PARENT, "Paula", "Silva", "paula.parent@example.com")


@pytest.fixture
async def other_parent(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.PARENT, "Pedro", "Costa")


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.ADMIN, "Ana", "Admin")


@pytest.fixture
def coach_actor(coach: User) -> Actor:
    return actor_for(coach)


@pytest.fixture
def parent_actor(parent: User) -> Actor:
    return actor_for(parent)


@pytest.fixture
def admin_actor(admin: User) -> Actor:
    return actor_for(admin)


# =============================================================================
# Dates
# =============================================================================


@pytest.fixture
def next_monday() -> date:
    return next_weekday(1)


# =============================================================================
# Schedule data
# =============================================================================


@pytest.fixture
def make_availability(db_session: AsyncSession) -> Callable:
    """Factory writing an availability day with slots directly to the store."""
    from src.domains.schedule.models import (
        ApprovalStatus,
        CoachAvailability,
        SessionType,
        TimeSlot,
    )

    async def _make(
        coach_id: uuid.UUID,
        day_of_week: int,
        slots: list[tuple[str, str]],
        max_bookings: int = 1,
        price: Decimal = Decimal("50.00"),
        session_type: SessionType = SessionType.ONE_ON_ONE,
        approval_status: ApprovalStatus = ApprovalStatus.PENDING,
        is_active: bool = True,
    ) -> CoachAvailability:
        availability = CoachAvailability(
            coach_id=coach_id,
            day_of_week=day_of_week,
            is_active=is_active,
            approval_status=approval_status,
            time_slots=[
                TimeSlot(
                    start_time=start,
                    end_time=end,
                    max_bookings=max_bookings,
                    current_bookings=0,
                    price=price,
                    session_type=session_type,
                    is_available=True,
                )
                for start, end in slots
            ],
        )
        db_session.add(availability)
        await db_session.commit()
        return availability

    return _make


@pytest.fixture
def make_session(db_session: AsyncSession) -> Callable:
    """Factory writing a scheduled session directly to the store."""
    from src.domains.schedule.models import ScheduledSession, ScheduledSessionStatus

    async def _make(
        coach_id: uuid.UUID,
        student_id: uuid.UUID,
        start: datetime,
        duration: int = 60,
        status: ScheduledSessionStatus = ScheduledSessionStatus.APPROVED,
        time_slot_id: uuid.UUID | None = None,
        title: str = "Existing session",
    ) -> ScheduledSession:
        session = ScheduledSession(
            coach_id=coach_id,
            student_id=student_id,
            time_slot_id=time_slot_id,
            session_date=start,
            ends_at=start + timedelta(minutes=duration),
            duration=duration,
            title=title,
            status=status,
            price=Decimal("50.00"),
        )
        db_session.add(session)
        await db_session.commit()
        return session

    return _make
