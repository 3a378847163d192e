import os
from collections.abc import AsyncGenerator
from datetime import date, datetime, time
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Load environment variables from .env file
load_dotenv()

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import FrozenClock
from clinic_scheduler.database import build_engine, build_session_factory
from clinic_scheduler.dependencies import get_clock, get_reminder_queue, get_session_factory
from clinic_scheduler.main import app
from clinic_scheduler.models import doctors, facilities, metadata
from clinic_scheduler.schemas.appointments import BookingRequest
from clinic_scheduler.schemas.availability import (
    AvailabilityRule,
    AvailabilityRuleCreate,
    AvailabilityRuleKind,
)
from clinic_scheduler.services.availability_rule_service import AvailabilityRuleService
from clinic_scheduler.services.availability_service import AvailabilityService
from clinic_scheduler.services.booking_service import BookingService
from clinic_scheduler.services.directory_service import SqlDirectory
from clinic_scheduler.services.reminder_service import ReminderScheduler
from clinic_scheduler.services.waiting_list_service import (
    SqlWaitingListRepository,
    WaitingListService,
)

# Set TEST_DATABASE_URL to run against PostgreSQL; otherwise each test gets
# its own SQLite file.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    raise RuntimeError("TEST_DATABASE_URL must not point at the application database")

# Monday 2025-03-03 08:00; the seeded weekly rule covers Tuesdays
NOW = datetime(2025, 3, 3, 8, 0)
TUESDAY = date(2025, 3, 4)


class InMemoryReminderQueue:
    """Reminder queue test double that records entries and can be made to fail."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []
        self.fail = False

    def enqueue(
        self,
        recipient: str,
        channel: str,
        scheduled_for: datetime,
        payload: dict[str, Any],
    ) -> None:
        if self.fail:
            raise ConnectionError("reminder queue unavailable")
        self.entries.append(
            {
                "recipient": recipient,
                "channel": channel,
                "scheduled_for": scheduled_for,
                "payload": payload,
            }
        )


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine with a fresh schema."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'scheduler_test.db'}"
    engine = build_engine(url)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def reminder_queue() -> InMemoryReminderQueue:
    return InMemoryReminderQueue()


@pytest_asyncio.fixture
async def directory(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, UUID]:
    """Insert one active facility and doctor."""
    facility_id = uuid4()
    doctor_id = uuid4()

    async with session_factory() as session, session.begin():
        await session.execute(
            insert(facilities).values(id=facility_id, name="Riverside Clinic", is_active=True)
        )
        await session.execute(
            insert(doctors).values(id=doctor_id, full_name="Dr. Jane Smith", is_active=True)
        )

    return {"facility_id": facility_id, "doctor_id": doctor_id}


@pytest.fixture
def rule_service(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
) -> AvailabilityRuleService:
    return AvailabilityRuleService(session_factory, clock)


@pytest_asyncio.fixture
async def tuesday_rule(
    rule_service: AvailabilityRuleService,
    directory: dict[str, UUID],
) -> AvailabilityRule:
    """Regular Tuesday schedule, 08:00-12:00 in 30 minute slots."""
    return await rule_service.create_rule(
        AvailabilityRuleCreate(
            doctor_id=directory["doctor_id"],
            facility_id=directory["facility_id"],
            kind=AvailabilityRuleKind.REGULAR,
            day_of_week=2,
            start_time=time(8, 0),
            end_time=time(12, 0),
            slot_duration_minutes=30,
        )
    )


@pytest.fixture
def availability_service(
    session_factory: async_sessionmaker[AsyncSession],
) -> AvailabilityService:
    return AvailabilityService(session_factory, SqlDirectory())


@pytest.fixture
def reminder_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    reminder_queue: InMemoryReminderQueue,
    clock: FrozenClock,
) -> ReminderScheduler:
    return ReminderScheduler(session_factory, reminder_queue, clock, reminder_hour=9)


@pytest.fixture
def booking_service(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
    reminder_scheduler: ReminderScheduler,
) -> BookingService:
    return BookingService(
        session_factory,
        clock,
        directory=SqlDirectory(),
        waiting_list=SqlWaitingListRepository(),
        reminder_scheduler=reminder_scheduler,
        settings=settings.model_copy(
            update={"booking_busy_retries": 3, "booking_retry_backoff_seconds": 0}
        ),
    )


@pytest.fixture
def waiting_list_service(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
) -> WaitingListService:
    return WaitingListService(session_factory, clock)


@pytest.fixture
def booking_request(directory: dict[str, UUID]):
    """Factory for booking requests against the seeded doctor and facility."""

    def make(start_at: datetime, **overrides: Any) -> BookingRequest:
        data = {
            "patient_first_name": "Alex",
            "patient_last_name": "Morgan",
            "patient_email": "alex.morgan@example.com",
            "patient_phone": "+1 555-0100",
            "facility_id": directory["facility_id"],
            "doctor_id": directory["doctor_id"],
            "start_at": start_at,
            "duration_minutes": 30,
            "reason_for_visit": "Annual checkup",
        }
        data.update(overrides)
        return BookingRequest(**data)

    return make


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
    reminder_queue: InMemoryReminderQueue,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client wired to the test database, clock and queue."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_reminder_queue] = lambda: reminder_queue

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
