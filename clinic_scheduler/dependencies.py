"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.redis_client import RedisReminderQueue, get_redis_client
from clinic_scheduler.database import AsyncSessionLocal
from clinic_scheduler.services.availability_rule_service import AvailabilityRuleService
from clinic_scheduler.services.availability_service import AvailabilityService
from clinic_scheduler.services.booking_service import BookingService
from clinic_scheduler.services.directory_service import SqlDirectory
from clinic_scheduler.services.ports import ReminderQueue
from clinic_scheduler.services.reminder_service import ReminderScheduler
from clinic_scheduler.services.waiting_list_service import (
    SqlWaitingListRepository,
    WaitingListService,
)


@lru_cache
def get_clock() -> Clock:
    """Get the facility-zone system clock."""
    return SystemClock(settings.facility_timezone)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the application session factory."""
    return AsyncSessionLocal


def get_reminder_queue() -> ReminderQueue:
    """Get the Redis-backed reminder dispatch queue."""
    return RedisReminderQueue(get_redis_client())


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
ClockDep = Annotated[Clock, Depends(get_clock)]
ReminderQueueDep = Annotated[ReminderQueue, Depends(get_reminder_queue)]


def get_reminder_scheduler(
    session_factory: SessionFactory,
    queue: ReminderQueueDep,
    clock: ClockDep,
) -> ReminderScheduler:
    """Build the reminder scheduler."""
    return ReminderScheduler(session_factory, queue, clock)


def get_availability_service(session_factory: SessionFactory) -> AvailabilityService:
    """Build the availability service."""
    return AvailabilityService(session_factory, SqlDirectory())


def get_availability_rule_service(
    session_factory: SessionFactory,
    clock: ClockDep,
) -> AvailabilityRuleService:
    """Build the availability rule service."""
    return AvailabilityRuleService(session_factory, clock)


def get_booking_service(
    session_factory: SessionFactory,
    clock: ClockDep,
    reminder_scheduler: Annotated[ReminderScheduler, Depends(get_reminder_scheduler)],
) -> BookingService:
    """Build the booking transaction manager."""
    return BookingService(
        session_factory,
        clock,
        directory=SqlDirectory(),
        waiting_list=SqlWaitingListRepository(),
        reminder_scheduler=reminder_scheduler,
    )


def get_waiting_list_service(
    session_factory: SessionFactory,
    clock: ClockDep,
) -> WaitingListService:
    """Build the waiting list service."""
    return WaitingListService(session_factory, clock)


# Type aliases for dependency injection
AvailabilityServiceDep = Annotated[AvailabilityService, Depends(get_availability_service)]
AvailabilityRuleServiceDep = Annotated[
    AvailabilityRuleService, Depends(get_availability_rule_service)
]
BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]
ReminderSchedulerDep = Annotated[ReminderScheduler, Depends(get_reminder_scheduler)]
WaitingListServiceDep = Annotated[WaitingListService, Depends(get_waiting_list_service)]
