"""Periodic sweep that marks unresolved past appointments as no-shows."""

import asyncio
from datetime import timedelta

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import Clock
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import AppointmentStatus
from clinic_scheduler.services.appointment_state import UNRESOLVED_STATUSES
from clinic_scheduler.services.reminder_service import ReminderScheduler

logger = structlog.get_logger(__name__)

NO_SHOW_NOTE = "Patient did not show up for scheduled appointment"


class NoShowSweeper:
    """Moves scheduled/confirmed appointments past their grace period to ``no_show``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        grace_minutes: int | None = None,
        reminder_scheduler: ReminderScheduler | None = None,
    ):
        """
        Initialize the sweeper.

        Args:
            session_factory: Database session factory
            clock: Time source for the cutoff
            grace_minutes: How long after an appointment ends it is still left alone
            reminder_scheduler: When given, each periodic tick also backfills
                reminders that failed to schedule at booking time
        """
        self.session_factory = session_factory
        self.clock = clock
        self.grace = timedelta(
            minutes=settings.no_show_grace_minutes if grace_minutes is None else grace_minutes
        )
        self.reminder_scheduler = reminder_scheduler

    async def sweep(self) -> int:
        """
        Mark every overdue scheduled/confirmed appointment as a no-show.

        Running it again without new overdue appointments changes nothing.

        Returns:
            Number of appointments marked
        """
        now = self.clock.now()
        cutoff = now - self.grace

        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                update(appointments)
                .where(
                    appointments.c.status.in_([status.value for status in UNRESOLVED_STATUSES]),
                    appointments.c.end_at < cutoff,
                )
                .values(
                    status=AppointmentStatus.NO_SHOW.value,
                    status_notes=NO_SHOW_NOTE,
                    updated_at=now,
                )
            )
            marked = result.rowcount or 0

        if marked > 0:
            logger.info("no_shows_marked", count=marked, cutoff=cutoff.isoformat())
        return marked

    async def run_once(self) -> int:
        """Run one sweeper tick: the no-show sweep plus the reminder backfill."""
        marked = await self.sweep()
        if self.reminder_scheduler is not None:
            await self.reminder_scheduler.backfill_missing()
        return marked

    async def run_forever(self, interval_seconds: float | None = None) -> None:
        """
        Tick on a fixed interval until cancelled.

        A failing tick is logged and the loop carries on.
        """
        interval = interval_seconds or settings.no_show_sweep_interval_seconds
        logger.info("no_show_sweeper_started", interval_seconds=interval)

        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("no_show_sweep_failed", error=str(e))
            await asyncio.sleep(interval)
