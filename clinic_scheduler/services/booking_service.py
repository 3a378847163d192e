"""
Booking transaction manager.

Every write follows the same discipline: begin a transaction, bound its
lock wait, take the doctor's schedule lock, read the conflicting
appointments with a locking read, re-run the availability evaluator, write,
commit. Concurrent writers for one doctor and facility therefore queue on
the schedule lock, and no two committed non-terminal appointments of a
doctor can overlap.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, TypeVar
from uuid import UUID, uuid4

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.config import Settings, settings as default_settings
from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import (
    BusyException,
    NotFoundException,
    NotReschedulableException,
    SlotUnavailableException,
)
from clinic_scheduler.database import apply_lock_timeout
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.directory import schedule_locks
from clinic_scheduler.schemas.appointments import (
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    BookingRequest,
)
from clinic_scheduler.services.appointment_state import ensure_transition
from clinic_scheduler.services.availability_evaluator import evaluate_availability
from clinic_scheduler.services.availability_rule_service import load_rules_for_date
from clinic_scheduler.services.availability_service import load_booked_intervals
from clinic_scheduler.services.directory_service import ensure_resources_exist
from clinic_scheduler.services.ports import Directory, WaitingListRepository
from clinic_scheduler.services.reminder_service import (
    ReminderScheduler,
    cancel_pending_reminders,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# lock_not_available, deadlock_detected, serialization_failure
LOCK_CONTENTION_SQLSTATES = frozenset({"55P03", "40P01", "40001"})


def is_lock_contention(exc: DBAPIError) -> bool:
    """Check whether a database error means the lock could not be taken in time."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in LOCK_CONTENTION_SQLSTATES:
        return True
    # SQLite reports an exhausted busy timeout as "database is locked"
    return isinstance(exc, OperationalError) and "locked" in str(orig).lower()


def build_rescheduled_appointment(
    original: AppointmentResponse,
    new_start_at: datetime,
    now: datetime,
) -> dict[str, Any]:
    """
    Construct the replacement row for a rescheduled appointment.

    Patient, resource and visit details carry over; timing, status and
    audit fields start fresh, and ``rescheduled_from_id`` links back to the
    original.
    """
    return {
        "id": uuid4(),
        "patient_first_name": original.patient_first_name,
        "patient_last_name": original.patient_last_name,
        "patient_email": original.patient_email,
        "patient_phone": original.patient_phone,
        "patient_date_of_birth": original.patient_date_of_birth,
        "facility_id": original.facility_id,
        "doctor_id": original.doctor_id,
        "start_at": new_start_at,
        "end_at": new_start_at + timedelta(minutes=original.duration_minutes),
        "duration_minutes": original.duration_minutes,
        "appointment_type": original.appointment_type,
        "reason_for_visit": original.reason_for_visit,
        "special_requirements": original.special_requirements,
        "status": AppointmentStatus.SCHEDULED.value,
        "rescheduled_from_id": original.id,
        "rescheduled_at": now,
        "from_waiting_list": False,
        "booked_at": now,
        "booked_by": original.booked_by,
        "booking_source": original.booking_source,
        "updated_at": now,
    }


class BookingService:
    """Service for booking, rescheduling and moving appointments through their states."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        directory: Directory,
        waiting_list: WaitingListRepository,
        reminder_scheduler: ReminderScheduler,
        settings: Settings | None = None,
    ):
        """Initialize service with its store, clock and collaborators."""
        self.session_factory = session_factory
        self.clock = clock
        self.directory = directory
        self.waiting_list = waiting_list
        self.reminder_scheduler = reminder_scheduler
        self.settings = settings or default_settings

    async def _run_in_transaction(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """
        Run ``work`` in its own transaction, retrying on lock contention.

        Raises:
            BusyException: If the lock is still contended after all retries
        """
        attempts = self.settings.booking_busy_retries
        for attempt in range(1, attempts + 1):
            try:
                async with self.session_factory() as session, session.begin():
                    await apply_lock_timeout(session, self.settings.lock_timeout_ms)
                    return await work(session)
            except DBAPIError as e:
                if not is_lock_contention(e):
                    raise
                logger.warning(
                    "booking_busy_retry",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=attempts,
                )
                if attempt == attempts:
                    raise BusyException() from e
                await asyncio.sleep(self.settings.booking_retry_backoff_seconds * 2 ** (attempt - 1))

        raise BusyException()

    @staticmethod
    async def _lock_schedule(session: AsyncSession, doctor_id: UUID, facility_id: UUID) -> None:
        """Take the doctor+facility schedule lock for the rest of the transaction."""
        dialect_insert = sqlite_insert if session.bind.dialect.name == "sqlite" else pg_insert
        await session.execute(
            dialect_insert(schedule_locks)
            .values(doctor_id=doctor_id, facility_id=facility_id)
            .on_conflict_do_nothing(index_elements=["doctor_id", "facility_id"])
        )
        await session.execute(
            select(schedule_locks.c.doctor_id)
            .where(
                schedule_locks.c.doctor_id == doctor_id,
                schedule_locks.c.facility_id == facility_id,
            )
            .with_for_update()
        )

    @staticmethod
    async def _fetch(
        session: AsyncSession,
        appointment_id: UUID,
        for_update: bool = False,
    ) -> AppointmentResponse:
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return AppointmentResponse.model_validate(dict(row))

    async def _verify_slot(
        self,
        session: AsyncSession,
        doctor_id: UUID,
        facility_id: UUID,
        start_at: datetime,
        duration_minutes: int,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Re-run the evaluator under the schedule lock.

        Raises:
            SlotUnavailableException: If the slot is no longer bookable
        """
        end_at = start_at + timedelta(minutes=duration_minutes)
        rules = await load_rules_for_date(session, doctor_id, facility_id, start_at.date())
        booked = await load_booked_intervals(
            session,
            doctor_id,
            facility_id,
            start_at,
            end_at,
            lock=True,
            exclude_id=exclude_id,
        )
        verdict = evaluate_availability(rules, booked, start_at, duration_minutes)
        if not verdict.available:
            logger.info(
                "slot_unavailable",
                doctor_id=str(doctor_id),
                facility_id=str(facility_id),
                start_at=start_at.isoformat(),
                reason=verdict.reason,
            )
            raise SlotUnavailableException(verdict.reason or "Not available")

    async def _schedule_reminders(self, appointment: AppointmentResponse) -> None:
        """Best-effort reminder hand-off after a committed write."""
        try:
            await self.reminder_scheduler.schedule_for_appointment(appointment)
        except Exception as e:
            # Backfill picks the appointment up later; the booking stands
            logger.warning(
                "reminder_scheduling_failed",
                appointment_id=str(appointment.id),
                error=str(e),
            )

    async def book_appointment(self, request: BookingRequest) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            request: Booking request

        Returns:
            Booked appointment in ``scheduled`` status

        Raises:
            NotFoundException: If the doctor, facility or waiting list entry does not exist
            SlotUnavailableException: If the slot is not bookable
            BusyException: If the schedule lock stayed contended
        """
        duration = request.duration_minutes or self.settings.default_appointment_duration_minutes

        async def work(session: AsyncSession) -> AppointmentResponse:
            await ensure_resources_exist(
                self.directory, session, request.facility_id, request.doctor_id
            )
            await self._lock_schedule(session, request.doctor_id, request.facility_id)
            await self._verify_slot(
                session, request.doctor_id, request.facility_id, request.start_at, duration
            )

            now = self.clock.now()
            values = request.model_dump(exclude={"booking_source", "duration_minutes"})
            values.update(
                id=uuid4(),
                start_at=request.start_at,
                end_at=request.start_at + timedelta(minutes=duration),
                duration_minutes=duration,
                status=AppointmentStatus.SCHEDULED.value,
                booking_source=request.booking_source.value,
                from_waiting_list=request.waiting_list_id is not None,
                booked_at=now,
                updated_at=now,
            )
            result = await session.execute(
                insert(appointments).values(**values).returning(appointments)
            )
            appointment = AppointmentResponse.model_validate(dict(result.mappings().one()))

            if request.waiting_list_id is not None:
                await self.waiting_list.mark_scheduled(
                    session,
                    request.waiting_list_id,
                    appointment.id,
                    appointment.facility_id,
                    now,
                )
            return appointment

        appointment = await self._run_in_transaction("book", work)
        logger.info(
            "appointment_booked",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id),
            facility_id=str(appointment.facility_id),
            start_at=appointment.start_at.isoformat(),
            from_waiting_list=appointment.from_waiting_list,
        )

        await self._schedule_reminders(appointment)
        return appointment

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        new_start_at: datetime,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new start time.

        The original row becomes ``rescheduled`` and a new ``scheduled`` row
        pointing back at it is created, in one transaction.

        Args:
            appointment_id: Appointment to move
            new_start_at: New start
            reason: Why it moved, kept on the original row

        Returns:
            The replacement appointment

        Raises:
            NotFoundException: If the appointment does not exist
            NotReschedulableException: If its status or start forbids it
            SlotUnavailableException: If the new slot is not bookable
            BusyException: If the schedule lock stayed contended
        """

        async def work(session: AsyncSession) -> tuple[AppointmentResponse, int]:
            snapshot = await self._fetch(session, appointment_id)
            await self._lock_schedule(session, snapshot.doctor_id, snapshot.facility_id)
            current = await self._fetch(session, appointment_id, for_update=True)

            ensure_transition(current.status, AppointmentStatus.RESCHEDULED)
            now = self.clock.now()
            if current.start_at <= now:
                raise NotReschedulableException("Appointment has already started")

            await self._verify_slot(
                session,
                current.doctor_id,
                current.facility_id,
                new_start_at,
                current.duration_minutes,
                exclude_id=current.id,
            )

            await session.execute(
                update(appointments)
                .where(appointments.c.id == current.id)
                .values(
                    status=AppointmentStatus.RESCHEDULED.value,
                    status_notes=reason,
                    updated_at=now,
                )
            )
            result = await session.execute(
                insert(appointments)
                .values(**build_rescheduled_appointment(current, new_start_at, now))
                .returning(appointments)
            )
            replacement = AppointmentResponse.model_validate(dict(result.mappings().one()))
            cancelled = await cancel_pending_reminders(session, current.id)
            return replacement, cancelled

        replacement, cancelled_reminders = await self._run_in_transaction("reschedule", work)
        logger.info(
            "appointment_rescheduled",
            old_appointment_id=str(appointment_id),
            new_appointment_id=str(replacement.id),
            new_start_at=replacement.start_at.isoformat(),
            cancelled_reminders=cancelled_reminders,
        )

        await self._schedule_reminders(replacement)
        return replacement

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> AppointmentResponse:
        """
        Cancel an appointment and its pending reminders.

        Raises:
            NotFoundException: If the appointment does not exist
            NotCancellableException: If it is completed, cancelled, rescheduled or a no-show
        """

        async def work(session: AsyncSession) -> tuple[AppointmentResponse, int]:
            current = await self._fetch(session, appointment_id, for_update=True)
            ensure_transition(current.status, AppointmentStatus.CANCELLED)

            result = await session.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    status=AppointmentStatus.CANCELLED.value,
                    cancelled_at=self.clock.now(),
                    cancelled_by=actor_id,
                    cancellation_reason=reason,
                    updated_at=self.clock.now(),
                )
                .returning(appointments)
            )
            appointment = AppointmentResponse.model_validate(dict(result.mappings().one()))
            cancelled = await cancel_pending_reminders(session, appointment_id)
            return appointment, cancelled

        appointment, cancelled_reminders = await self._run_in_transaction("cancel", work)
        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            reason=reason,
            cancelled_reminders=cancelled_reminders,
        )
        return appointment

    async def _transition(
        self,
        appointment_id: UUID,
        target: AppointmentStatus,
        values: dict[str, Any],
    ) -> AppointmentResponse:
        async def work(session: AsyncSession) -> AppointmentResponse:
            current = await self._fetch(session, appointment_id, for_update=True)
            ensure_transition(current.status, target)

            result = await session.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(status=target.value, updated_at=self.clock.now(), **values)
                .returning(appointments)
            )
            return AppointmentResponse.model_validate(dict(result.mappings().one()))

        appointment = await self._run_in_transaction(target.value, work)
        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            status=target.value,
        )
        return appointment

    async def confirm_appointment(
        self,
        appointment_id: UUID,
        method: str = "web",
    ) -> AppointmentResponse:
        """Confirm a scheduled appointment."""
        return await self._transition(
            appointment_id,
            AppointmentStatus.CONFIRMED,
            {"confirmed_at": self.clock.now(), "confirmation_method": method},
        )

    async def check_in_patient(self, appointment_id: UUID, actor_id: UUID) -> AppointmentResponse:
        """Check the patient in for a scheduled or confirmed appointment."""
        return await self._transition(
            appointment_id,
            AppointmentStatus.CHECKED_IN,
            {"checked_in_at": self.clock.now(), "checked_in_by": actor_id},
        )

    async def complete_appointment(
        self,
        appointment_id: UUID,
        completion_notes: str | None = None,
    ) -> AppointmentResponse:
        """Complete a checked-in appointment."""
        return await self._transition(
            appointment_id,
            AppointmentStatus.COMPLETED,
            {"completed_at": self.clock.now(), "completion_notes": completion_notes},
        )

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        async with self.session_factory() as session:
            return await self._fetch(session, appointment_id)

    async def list_appointments(
        self,
        facility_id: UUID,
        start: datetime,
        end: datetime,
        doctor_id: UUID | None = None,
    ) -> AppointmentListResponse:
        """
        List a facility's appointments starting within ``[start, end)``.

        Args:
            facility_id: Facility ID
            start: Range start
            end: Range end
            doctor_id: Optional doctor filter

        Returns:
            Appointments ordered by start
        """
        conditions = [
            appointments.c.facility_id == facility_id,
            appointments.c.start_at >= start,
            appointments.c.start_at < end,
        ]
        if doctor_id is not None:
            conditions.append(appointments.c.doctor_id == doctor_id)

        async with self.session_factory() as session:
            result = await session.execute(
                select(appointments).where(*conditions).order_by(appointments.c.start_at)
            )
            rows = result.mappings().all()

        items = [AppointmentResponse.model_validate(dict(row)) for row in rows]
        return AppointmentListResponse(total=len(items), items=items)
