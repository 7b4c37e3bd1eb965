"""
Shared fixtures: in-memory SQLite via aiosqlite, seed helpers and a
Notifier whose channels are AsyncMocks.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LINE_CHANNEL_SECRET", "test-channel-secret")
os.environ.setdefault("LINE_CHANNEL_ACCESS_TOKEN", "test-access-token")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("ADMIN_EMAIL", "fleet-admin@example.go.th")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import govcar.models  # noqa: F401  (registers tables on Base.metadata)
from govcar.database import Base
from govcar.models import Booking, Driver, Vehicle
from govcar.services.notifier import Notifier


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def line():
    client = AsyncMock()
    client.push.return_value = None
    return client


@pytest.fixture
def mailer():
    client = AsyncMock()
    client.send.return_value = None
    return client


@pytest.fixture
def notifier(line, mailer):
    return Notifier(
        line=line,
        mailer=mailer,
        admin_email="fleet-admin@example.go.th",
        base_url="https://booking.example.go.th",
        tz_name="Asia/Bangkok",
    )


def utc(minutes_ago: int = 0) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)


@pytest.fixture
def add_driver(db):
    async def _add(
        driver_id: str,
        queue_order: int,
        *,
        status: str = "AVAILABLE",
        active: bool = True,
        chat_channel_id: str | None = "default",
        full_name: str | None = None,
    ) -> Driver:
        driver = Driver(
            id=driver_id,
            full_name=full_name or f"Driver {driver_id}",
            active=active,
            status=status,
            queue_order=queue_order,
            chat_channel_id=f"U-{driver_id}" if chat_channel_id == "default" else chat_channel_id,
        )
        db.add(driver)
        await db.commit()
        return driver

    return _add


@pytest.fixture
def add_booking(db):
    counter = {"n": 0}

    async def _add(
        booking_id: str,
        *,
        status: str = "REQUESTED",
        driver_id: str | None = None,
        assigned_at: datetime | None = None,
        driver_accepted_at: datetime | None = None,
        start_at: datetime | None = None,
        vehicle_id: str | None = None,
    ) -> Booking:
        counter["n"] += 1
        booking = Booking(
            id=booking_id,
            request_code=f"REQ-TEST-{counter['n']:04d}",
            requester_name="Provincial Health Office",
            purpose="Field inspection",
            destination="District hospital",
            start_at=start_at or utc(-120),
            status=status,
            driver_id=driver_id,
            assigned_at=assigned_at,
            driver_accepted_at=driver_accepted_at,
            vehicle_id=vehicle_id,
            notified=False,
        )
        db.add(booking)
        await db.commit()
        return booking

    return _add


@pytest.fixture
def add_vehicle(db):
    async def _add(vehicle_id: str, plate_number: str) -> Vehicle:
        vehicle = Vehicle(id=vehicle_id, plate_number=plate_number, status="ACTIVE")
        db.add(vehicle)
        await db.commit()
        return vehicle

    return _add
