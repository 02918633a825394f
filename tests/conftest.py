"""Shared test fixtures for ReserveKit API tests.

Uses a file-backed SQLite async engine so tests run without PostgreSQL. Each
session gets its own connection (NullPool), which lets concurrency tests run
two transactions against the same database.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="reservekit-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ADMISSION_RETRY_BASE_DELAY"] = "0.01"
os.environ["SEED_API_KEY"] = ""

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.database import Base, get_db
from app.main import app

# Import all models to ensure they're registered with Base.metadata
from app.models.provider import Provider, ApiKey
from app.models.service import Service
from app.models.time_slot import TimeSlot
from app.models.customer import Customer
from app.models.booking import Booking
from app.models.occurrence_capacity import OccurrenceCapacity
from app.models.booking_event import BookingEvent
from app.models.api_usage_log import APIUsageLog

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    connect_args={"timeout": 30},
)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with TestSession() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest_asyncio.fixture
async def client():
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def session_factory():
    """Factory for extra sessions, one connection each."""
    return TestSession


@pytest_asyncio.fixture
async def db():
    """Direct DB session for test setup/assertions."""
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture
async def provider(db):
    """A provider with an active API key."""
    from app.services.auth import create_api_key

    provider = Provider(name="Test Clinic", email="owner@example.com", is_active=True)
    db.add(provider)
    await db.flush()
    api_key, raw_key = await create_api_key(db, provider.id, name="tests")
    await db.commit()

    return {
        "provider_id": provider.id,
        "api_key_id": api_key.id,
        "api_key": raw_key,
        "headers": {"Authorization": f"Bearer {raw_key}"},
    }


@pytest_asyncio.fixture
async def auth_headers(provider):
    return provider["headers"]


@pytest_asyncio.fixture
async def service(db, provider):
    """A UTC service with one Monday 09:00-10:00 slot of capacity 1 and one
    Monday 10:00-11:00 slot of capacity 3."""
    from app.schemas.time_slot import TimeSlotIn
    from app.services import catalog

    svc, slots = await catalog.create_service(
        db,
        provider_id=provider["provider_id"],
        name="Physio",
        description="Physiotherapy session",
        timezone="UTC",
        initial_time_slots=[
            TimeSlotIn(day_of_week=0, start_time="09:00", end_time="10:00", max_bookings=1),
            TimeSlotIn(day_of_week=0, start_time="10:00", end_time="11:00", max_bookings=3),
        ],
    )
    return {
        "service_id": svc.id,
        "provider_id": provider["provider_id"],
        "single_slot_id": slots[0].id,
        "group_slot_id": slots[1].id,
    }
