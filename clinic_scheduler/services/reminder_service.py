"""Reminder planning and scheduling for booked appointments."""

from datetime import datetime, time, timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import Clock
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.reminders import appointment_reminders
from clinic_scheduler.schemas.appointments import AppointmentResponse
from clinic_scheduler.schemas.reminders import (
    PlannedReminder,
    ReminderChannel,
    ReminderKind,
    ReminderResponse,
    ReminderStatus,
)
from clinic_scheduler.services.appointment_state import UNRESOLVED_STATUSES
from clinic_scheduler.services.ports import ReminderQueue

logger = structlog.get_logger(__name__)

# Days before the appointment date each reminder goes out
REMINDER_OFFSETS: tuple[tuple[ReminderKind, int], ...] = (
    (ReminderKind.SEVEN_DAYS_BEFORE, 7),
    (ReminderKind.ONE_DAY_BEFORE, 1),
    (ReminderKind.SAME_DAY, 0),
)


def plan_reminders(
    start_at: datetime,
    now: datetime,
    reminder_hour: int = 9,
) -> list[PlannedReminder]:
    """
    Derive the reminders worth sending for an appointment.

    Each reminder fires at ``reminder_hour:00`` on its day. Reminders that
    would fire at or before ``now``, or not before the appointment itself,
    are skipped.

    Args:
        start_at: Appointment start
        now: Current instant
        reminder_hour: Local hour reminders are sent at

    Returns:
        Planned reminders, earliest first
    """
    planned: list[PlannedReminder] = []
    for kind, days_before in REMINDER_OFFSETS:
        scheduled_for = datetime.combine(
            start_at.date() - timedelta(days=days_before),
            time(hour=reminder_hour),
        )
        if now < scheduled_for < start_at:
            planned.append(PlannedReminder(kind=kind, scheduled_for=scheduled_for))
    return planned


def reminder_recipient(appointment: AppointmentResponse) -> tuple[ReminderChannel, str]:
    """Pick the channel and address for an appointment's reminders."""
    if appointment.patient_email:
        return ReminderChannel.EMAIL, appointment.patient_email
    return ReminderChannel.SMS, appointment.patient_phone


async def cancel_pending_reminders(session: AsyncSession, appointment_id: UUID) -> int:
    """
    Cancel every pending reminder of an appointment on the caller's session.

    Returns:
        Number of reminders cancelled
    """
    result = await session.execute(
        update(appointment_reminders)
        .where(
            appointment_reminders.c.appointment_id == appointment_id,
            appointment_reminders.c.status == ReminderStatus.PENDING.value,
        )
        .values(status=ReminderStatus.CANCELLED.value)
    )
    return result.rowcount or 0


class ReminderScheduler:
    """Creates reminder tasks and hands them to the dispatch queue."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: ReminderQueue,
        clock: Clock,
        reminder_hour: int | None = None,
    ):
        """Initialize scheduler with its session factory, queue and clock."""
        self.session_factory = session_factory
        self.queue = queue
        self.clock = clock
        self.reminder_hour = settings.reminder_hour if reminder_hour is None else reminder_hour

    async def schedule_for_appointment(
        self,
        appointment: AppointmentResponse,
    ) -> list[ReminderResponse]:
        """
        Create and enqueue the future reminders of a committed appointment.

        The appointment is claimed first: only a ``scheduled`` or
        ``confirmed`` appointment whose reminders were never scheduled is
        handled, so a stale snapshot or a concurrent caller creates nothing.
        Rows and queue entries are written in the claiming transaction: if
        the queue rejects an entry, no rows are kept and the appointment
        stays eligible for :meth:`backfill_missing`.

        Args:
            appointment: Committed appointment

        Returns:
            Created reminder tasks, empty if the appointment was not claimed

        Raises:
            redis.RedisError: If the queue is unreachable
        """
        now = self.clock.now()
        planned = plan_reminders(appointment.start_at, now, self.reminder_hour)
        channel, recipient = reminder_recipient(appointment)

        rows = [
            {
                "id": uuid4(),
                "appointment_id": appointment.id,
                "reminder_kind": reminder.kind.value,
                "scheduled_for": reminder.scheduled_for,
                "channel": channel.value,
                "recipient": recipient,
                "status": ReminderStatus.PENDING.value,
                "created_at": now,
            }
            for reminder in planned
        ]

        async with self.session_factory() as session, session.begin():
            claimed = await session.execute(
                update(appointments)
                .where(
                    appointments.c.id == appointment.id,
                    appointments.c.reminders_scheduled_at.is_(None),
                    appointments.c.status.in_([status.value for status in UNRESOLVED_STATUSES]),
                )
                .values(reminders_scheduled_at=now)
            )
            if not claimed.rowcount:
                logger.info(
                    "reminders_not_claimed",
                    appointment_id=str(appointment.id),
                )
                return []

            if rows:
                await session.execute(insert(appointment_reminders), rows)
            for row in rows:
                self.queue.enqueue(
                    recipient,
                    channel.value,
                    row["scheduled_for"],
                    {
                        "reminder_id": str(row["id"]),
                        "appointment_id": str(appointment.id),
                        "reminder_kind": row["reminder_kind"],
                    },
                )

        logger.info(
            "reminders_scheduled",
            appointment_id=str(appointment.id),
            count=len(rows),
            skipped=len(REMINDER_OFFSETS) - len(rows),
        )
        return [ReminderResponse.model_validate(row) for row in rows]

    async def backfill_missing(self, limit: int | None = None) -> int:
        """
        Schedule reminders for upcoming appointments that never got them.

        This is the out-of-band retry for reminder scheduling that failed
        right after a booking committed.

        Args:
            limit: Maximum number of appointments to handle

        Returns:
            Number of reminder tasks created
        """
        now = self.clock.now()
        stmt = (
            select(appointments)
            .where(
                appointments.c.reminders_scheduled_at.is_(None),
                appointments.c.status.in_([status.value for status in UNRESOLVED_STATUSES]),
                appointments.c.start_at > now,
            )
            .order_by(appointments.c.start_at)
            .limit(limit or settings.reminder_backfill_batch_size)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()

        created = 0
        for row in rows:
            appointment = AppointmentResponse.model_validate(dict(row))
            try:
                created += len(await self.schedule_for_appointment(appointment))
            except Exception as e:
                logger.warning(
                    "reminder_backfill_failed",
                    appointment_id=str(appointment.id),
                    error=str(e),
                )

        if rows:
            logger.info("reminder_backfill_completed", appointments=len(rows), created=created)
        return created

    async def list_for_appointment(self, appointment_id: UUID) -> list[ReminderResponse]:
        """List an appointment's reminder tasks, earliest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(appointment_reminders)
                .where(appointment_reminders.c.appointment_id == appointment_id)
                .order_by(appointment_reminders.c.scheduled_for)
            )
            rows = result.mappings().all()

        return [ReminderResponse.model_validate(dict(row)) for row in rows]
