"""Read-only availability checks and slot listings."""

from datetime import date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.config import settings
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.availability import (
    AvailabilityCheckResponse,
    BookedInterval,
    SlotListResponse,
)
from clinic_scheduler.services.appointment_state import ACTIVE_STATUSES
from clinic_scheduler.services.availability_evaluator import (
    evaluate_availability,
    resolve_schedule_window,
)
from clinic_scheduler.services.availability_rule_service import load_rules_for_date
from clinic_scheduler.services.directory_service import ensure_resources_exist
from clinic_scheduler.services.ports import Directory
from clinic_scheduler.services.slot_generator import generate_slots


async def load_booked_intervals(
    session: AsyncSession,
    doctor_id: UUID,
    facility_id: UUID,
    start: datetime,
    end: datetime,
    lock: bool = False,
    exclude_id: UUID | None = None,
) -> list[BookedInterval]:
    """
    Load the doctor's non-terminal appointments overlapping ``[start, end)``.

    Args:
        session: Database session
        doctor_id: Doctor ID
        facility_id: Facility ID
        start: Window start
        end: Window end
        lock: Take row locks on the matched appointments
        exclude_id: Appointment to leave out (the one being rescheduled)

    Returns:
        Booked intervals ordered by start
    """
    conditions = [
        appointments.c.doctor_id == doctor_id,
        appointments.c.facility_id == facility_id,
        appointments.c.status.in_([status.value for status in ACTIVE_STATUSES]),
        appointments.c.start_at < end,
        appointments.c.end_at > start,
    ]
    if exclude_id is not None:
        conditions.append(appointments.c.id != exclude_id)

    stmt = (
        select(appointments.c.id, appointments.c.start_at, appointments.c.end_at)
        .where(*conditions)
        .order_by(appointments.c.start_at)
    )
    if lock:
        stmt = stmt.with_for_update()

    result = await session.execute(stmt)
    return [BookedInterval.model_validate(dict(row)) for row in result.mappings().all()]


class AvailabilityService:
    """Lock-free availability checks for browsing and pre-booking validation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: Directory,
    ):
        """Initialize service with a session factory and directory."""
        self.session_factory = session_factory
        self.directory = directory

    async def check_availability(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        instant: datetime,
        duration_minutes: int,
    ) -> AvailabilityCheckResponse:
        """
        Check whether a doctor can take an appointment.

        Args:
            doctor_id: Doctor ID
            facility_id: Facility ID
            instant: Requested start
            duration_minutes: Requested length

        Returns:
            Availability verdict

        Raises:
            NotFoundException: If the doctor or facility does not exist
        """
        end = instant + timedelta(minutes=duration_minutes)
        async with self.session_factory() as session:
            await ensure_resources_exist(self.directory, session, facility_id, doctor_id)
            rules = await load_rules_for_date(session, doctor_id, facility_id, instant.date())
            booked = await load_booked_intervals(session, doctor_id, facility_id, instant, end)

        verdict = evaluate_availability(rules, booked, instant, duration_minutes)
        return AvailabilityCheckResponse(
            doctor_id=doctor_id,
            facility_id=facility_id,
            start_at=instant,
            duration_minutes=duration_minutes,
            available=verdict.available,
            reason=verdict.reason,
        )

    async def get_available_slots(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        day: date,
        slot_duration_minutes: int | None = None,
    ) -> SlotListResponse:
        """
        List every slot of a doctor's day with its availability.

        Args:
            doctor_id: Doctor ID
            facility_id: Facility ID
            day: Calendar date
            slot_duration_minutes: Slot length; defaults to the rule's own

        Returns:
            Slots with summary counts

        Raises:
            NotFoundException: If the doctor or facility does not exist
        """
        day_start = datetime.combine(day, time.min)
        day_end = day_start + timedelta(days=1)
        async with self.session_factory() as session:
            await ensure_resources_exist(self.directory, session, facility_id, doctor_id)
            rules = await load_rules_for_date(session, doctor_id, facility_id, day)
            booked = await load_booked_intervals(session, doctor_id, facility_id, day_start, day_end)

        slots = generate_slots(rules, booked, day, slot_duration_minutes)

        duration = slot_duration_minutes
        if not duration:
            window = resolve_schedule_window(rules, day).window
            duration = (
                window.slot_duration_minutes
                if window is not None
                else settings.default_slot_duration_minutes
            )

        return SlotListResponse(
            doctor_id=doctor_id,
            facility_id=facility_id,
            slot_date=day,
            slot_duration_minutes=duration,
            total_slots=len(slots),
            available_slots=sum(1 for slot in slots if slot.available),
            slots=slots,
        )
