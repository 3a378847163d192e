"""Tests for the booking transaction manager."""

import asyncio
from datetime import datetime, time
from uuid import uuid4

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import DBAPIError, OperationalError

from clinic_scheduler.core.exceptions import (
    BusyException,
    ConflictException,
    InvalidTransitionException,
    NotCancellableException,
    NotFoundException,
    NotReschedulableException,
    SlotUnavailableException,
)
from clinic_scheduler.models import appointments, facilities
from clinic_scheduler.schemas.appointments import AppointmentResponse, AppointmentStatus
from clinic_scheduler.schemas.availability import AvailabilityRuleCreate, AvailabilityRuleKind
from clinic_scheduler.schemas.reminders import ReminderStatus
from clinic_scheduler.schemas.waiting_list import WaitingListEntryCreate, WaitingListStatus
from clinic_scheduler.services.booking_service import is_lock_contention

TUESDAY_9 = datetime(2025, 3, 4, 9, 0)
TUESDAY_10 = datetime(2025, 3, 4, 10, 0)


@pytest.mark.asyncio
async def test_book_appointment(booking_service, booking_request, tuesday_rule) -> None:
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))

    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.start_at == TUESDAY_9
    assert appointment.end_at == datetime(2025, 3, 4, 9, 30)
    assert appointment.duration_minutes == 30
    assert appointment.booked_at == datetime(2025, 3, 3, 8, 0)
    assert appointment.from_waiting_list is False

    fetched = await booking_service.get_appointment(appointment.id)
    assert fetched == appointment


@pytest.mark.asyncio
async def test_book_uses_default_duration(booking_service, booking_request, tuesday_rule) -> None:
    appointment = await booking_service.book_appointment(
        booking_request(TUESDAY_9, duration_minutes=None)
    )

    assert appointment.duration_minutes == booking_service.settings.default_appointment_duration_minutes


@pytest.mark.asyncio
async def test_book_on_day_without_schedule(
    booking_service, booking_request, tuesday_rule
) -> None:
    with pytest.raises(SlotUnavailableException) as exc_info:
        await booking_service.book_appointment(booking_request(datetime(2025, 3, 3, 9, 0)))

    assert exc_info.value.reason == "Doctor not available on this day"


@pytest.mark.asyncio
async def test_book_outside_schedule(booking_service, booking_request, tuesday_rule) -> None:
    with pytest.raises(SlotUnavailableException) as exc_info:
        await booking_service.book_appointment(booking_request(datetime(2025, 3, 4, 11, 45)))

    assert exc_info.value.reason == "Outside doctor schedule"


@pytest.mark.asyncio
async def test_book_blocked_time(
    booking_service, booking_request, tuesday_rule, rule_service, directory
) -> None:
    await rule_service.create_rule(
        AvailabilityRuleCreate(
            doctor_id=directory["doctor_id"],
            facility_id=directory["facility_id"],
            kind=AvailabilityRuleKind.BLOCKED,
            specific_date=TUESDAY_9.date(),
            start_time=time(10),
            end_time=time(11),
            unavailability_reason="Staff meeting",
        )
    )

    with pytest.raises(SlotUnavailableException) as exc_info:
        await booking_service.book_appointment(booking_request(datetime(2025, 3, 4, 10, 30)))

    assert exc_info.value.reason == "Time slot is blocked"


@pytest.mark.asyncio
async def test_book_unknown_doctor(booking_service, booking_request, tuesday_rule) -> None:
    with pytest.raises(NotFoundException):
        await booking_service.book_appointment(booking_request(TUESDAY_9, doctor_id=uuid4()))


@pytest.mark.asyncio
async def test_double_booking_rejected_and_adjacent_allowed(
    booking_service, booking_request, tuesday_rule
) -> None:
    await booking_service.book_appointment(booking_request(TUESDAY_9))

    with pytest.raises(SlotUnavailableException) as exc_info:
        await booking_service.book_appointment(booking_request(datetime(2025, 3, 4, 9, 15)))
    assert exc_info.value.reason == "Time slot already booked"

    before = await booking_service.book_appointment(booking_request(datetime(2025, 3, 4, 8, 30)))
    after = await booking_service.book_appointment(booking_request(datetime(2025, 3, 4, 9, 30)))
    assert before.end_at == TUESDAY_9
    assert after.start_at == datetime(2025, 3, 4, 9, 30)


@pytest.mark.asyncio
async def test_concurrent_bookings_for_same_slot(
    booking_service, booking_request, tuesday_rule
) -> None:
    """Exactly one of two simultaneous requests for one slot commits."""
    results = await asyncio.gather(
        booking_service.book_appointment(booking_request(TUESDAY_9)),
        booking_service.book_appointment(
            booking_request(TUESDAY_9, patient_first_name="Sam", patient_email=None)
        ),
        return_exceptions=True,
    )

    booked = [r for r in results if isinstance(r, AppointmentResponse)]
    rejected = [r for r in results if isinstance(r, SlotUnavailableException)]
    assert len(booked) == 1
    assert len(rejected) == 1
    assert rejected[0].reason == "Time slot already booked"

    listing = await booking_service.list_appointments(
        booked[0].facility_id, datetime(2025, 3, 4), datetime(2025, 3, 5)
    )
    assert listing.total == 1


@pytest.mark.asyncio
async def test_concurrent_bookings_for_partially_overlapping_windows(
    booking_service, booking_request, tuesday_rule
) -> None:
    """A 09:00 hour-long visit and a 09:30 half-hour visit cannot both commit."""
    results = await asyncio.gather(
        booking_service.book_appointment(booking_request(TUESDAY_9, duration_minutes=60)),
        booking_service.book_appointment(
            booking_request(
                datetime(2025, 3, 4, 9, 30), patient_first_name="Sam", patient_email=None
            )
        ),
        return_exceptions=True,
    )

    booked = [r for r in results if isinstance(r, AppointmentResponse)]
    rejected = [r for r in results if isinstance(r, SlotUnavailableException)]
    assert len(booked) == 1
    assert len(rejected) == 1

    listing = await booking_service.list_appointments(
        booked[0].facility_id, datetime(2025, 3, 4), datetime(2025, 3, 5)
    )
    assert listing.total == 1


@pytest.mark.asyncio
async def test_concurrent_reschedule_and_booking_for_same_slot(
    booking_service, booking_request, tuesday_rule, session_factory
) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))

    results = await asyncio.gather(
        booking_service.reschedule_appointment(original.id, TUESDAY_10),
        booking_service.book_appointment(
            booking_request(TUESDAY_10, patient_first_name="Sam", patient_email=None)
        ),
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, AppointmentResponse)]
    rejected = [r for r in results if isinstance(r, SlotUnavailableException)]
    assert len(succeeded) == 1
    assert len(rejected) == 1

    async with session_factory() as session:
        result = await session.execute(
            select(appointments.c.id).where(
                appointments.c.start_at == TUESDAY_10,
                appointments.c.status.in_(
                    [AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value]
                ),
            )
        )
        assert len(result.all()) == 1

    # A lost reschedule leaves the original where it was
    expected = (
        AppointmentStatus.RESCHEDULED
        if succeeded[0].rescheduled_from_id == original.id
        else AppointmentStatus.SCHEDULED
    )
    assert (await booking_service.get_appointment(original.id)).status == expected


@pytest.mark.asyncio
async def test_overlap_is_scoped_to_doctor_and_facility(
    booking_service, booking_request, rule_service, tuesday_rule, directory, session_factory
) -> None:
    """The same doctor can hold the same time at a second facility."""
    other_facility_id = uuid4()
    async with session_factory() as session, session.begin():
        await session.execute(
            insert(facilities).values(
                id=other_facility_id, name="Hillside Clinic", is_active=True
            )
        )
    await rule_service.create_rule(
        AvailabilityRuleCreate(
            doctor_id=directory["doctor_id"],
            facility_id=other_facility_id,
            kind=AvailabilityRuleKind.REGULAR,
            day_of_week=2,
            start_time=time(8, 0),
            end_time=time(12, 0),
            slot_duration_minutes=30,
        )
    )

    first = await booking_service.book_appointment(booking_request(TUESDAY_9))
    second = await booking_service.book_appointment(
        booking_request(TUESDAY_9, facility_id=other_facility_id)
    )

    assert first.facility_id != second.facility_id
    assert second.status == AppointmentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_rebooked(
    booking_service, booking_request, tuesday_rule, directory
) -> None:
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))
    cancelled = await booking_service.cancel_appointment(
        appointment.id, actor_id=directory["doctor_id"], reason="Patient request"
    )

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancellation_reason == "Patient request"
    assert cancelled.cancelled_by == directory["doctor_id"]

    rebooked = await booking_service.book_appointment(booking_request(TUESDAY_9))
    assert rebooked.status == AppointmentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_cancel_rejected_for_terminal_states(
    booking_service, booking_request, tuesday_rule, directory
) -> None:
    actor = directory["doctor_id"]
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))
    await booking_service.cancel_appointment(appointment.id, actor, "Patient request")

    with pytest.raises(NotCancellableException):
        await booking_service.cancel_appointment(appointment.id, actor, "Again")

    other = await booking_service.book_appointment(booking_request(TUESDAY_10))
    await booking_service.check_in_patient(other.id, actor)
    await booking_service.complete_appointment(other.id)

    with pytest.raises(NotCancellableException):
        await booking_service.cancel_appointment(other.id, actor, "Too late")


@pytest.mark.asyncio
async def test_status_lifecycle(booking_service, booking_request, tuesday_rule, directory) -> None:
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))

    with pytest.raises(InvalidTransitionException):
        await booking_service.complete_appointment(appointment.id)

    confirmed = await booking_service.confirm_appointment(appointment.id, method="sms")
    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert confirmed.confirmation_method == "sms"
    assert confirmed.confirmed_at is not None

    checked_in = await booking_service.check_in_patient(appointment.id, directory["doctor_id"])
    assert checked_in.status == AppointmentStatus.CHECKED_IN
    assert checked_in.checked_in_by == directory["doctor_id"]

    with pytest.raises(InvalidTransitionException):
        await booking_service.confirm_appointment(appointment.id)

    completed = await booking_service.complete_appointment(appointment.id, "Routine visit")
    assert completed.status == AppointmentStatus.COMPLETED
    assert completed.completion_notes == "Routine visit"


@pytest.mark.asyncio
async def test_checked_in_appointment_can_be_cancelled(
    booking_service, booking_request, tuesday_rule, directory
) -> None:
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))
    await booking_service.check_in_patient(appointment.id, directory["doctor_id"])

    cancelled = await booking_service.cancel_appointment(
        appointment.id, directory["doctor_id"], "Left before being seen"
    )

    assert cancelled.status == AppointmentStatus.CANCELLED


@pytest.mark.asyncio
async def test_transition_on_missing_appointment(booking_service) -> None:
    with pytest.raises(NotFoundException):
        await booking_service.confirm_appointment(uuid4())
    with pytest.raises(NotFoundException):
        await booking_service.get_appointment(uuid4())


@pytest.mark.asyncio
async def test_reschedule_links_and_moves_reminders(
    booking_service, booking_request, tuesday_rule, reminder_scheduler
) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))

    replacement = await booking_service.reschedule_appointment(
        original.id, TUESDAY_10, reason="Patient asked for later"
    )

    assert replacement.id != original.id
    assert replacement.status == AppointmentStatus.SCHEDULED
    assert replacement.start_at == TUESDAY_10
    assert replacement.end_at == datetime(2025, 3, 4, 10, 30)
    assert replacement.rescheduled_from_id == original.id
    assert replacement.patient_first_name == original.patient_first_name
    assert replacement.reason_for_visit == original.reason_for_visit

    old = await booking_service.get_appointment(original.id)
    assert old.status == AppointmentStatus.RESCHEDULED
    assert old.status_notes == "Patient asked for later"

    old_reminders = await reminder_scheduler.list_for_appointment(original.id)
    assert old_reminders
    assert all(r.status == ReminderStatus.CANCELLED for r in old_reminders)

    new_reminders = await reminder_scheduler.list_for_appointment(replacement.id)
    assert len(new_reminders) == 2
    assert all(r.status == ReminderStatus.PENDING for r in new_reminders)

    # The old slot is free again
    await booking_service.book_appointment(booking_request(TUESDAY_9))


@pytest.mark.asyncio
async def test_reschedule_into_overlapping_own_slot(
    booking_service, booking_request, tuesday_rule
) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))

    replacement = await booking_service.reschedule_appointment(
        original.id, datetime(2025, 3, 4, 9, 15)
    )

    assert replacement.start_at == datetime(2025, 3, 4, 9, 15)


@pytest.mark.asyncio
async def test_reschedule_into_taken_slot(
    booking_service, booking_request, tuesday_rule
) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))
    await booking_service.book_appointment(booking_request(TUESDAY_10))

    with pytest.raises(SlotUnavailableException):
        await booking_service.reschedule_appointment(original.id, TUESDAY_10)

    unchanged = await booking_service.get_appointment(original.id)
    assert unchanged.status == AppointmentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_reschedule_twice_rejected(booking_service, booking_request, tuesday_rule) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))
    await booking_service.reschedule_appointment(original.id, TUESDAY_10)

    with pytest.raises(NotReschedulableException):
        await booking_service.reschedule_appointment(original.id, datetime(2025, 3, 4, 11, 0))


@pytest.mark.asyncio
async def test_reschedule_cancelled_rejected(
    booking_service, booking_request, tuesday_rule, directory
) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))
    await booking_service.cancel_appointment(original.id, directory["doctor_id"], "No longer needed")

    with pytest.raises(NotReschedulableException):
        await booking_service.reschedule_appointment(original.id, TUESDAY_10)


@pytest.mark.asyncio
async def test_reschedule_after_start_rejected(
    booking_service, booking_request, tuesday_rule, clock
) -> None:
    original = await booking_service.book_appointment(booking_request(TUESDAY_9))
    clock.advance(days=1, hours=1, minutes=5)

    with pytest.raises(NotReschedulableException):
        await booking_service.reschedule_appointment(original.id, TUESDAY_10)


@pytest.mark.asyncio
async def test_waiting_list_conversion(
    booking_service, booking_request, tuesday_rule, waiting_list_service, directory
) -> None:
    entry = await waiting_list_service.add_entry(
        WaitingListEntryCreate(
            facility_id=directory["facility_id"],
            patient_first_name="Alex",
            patient_last_name="Morgan",
            patient_phone="+1 555-0100",
            reason_for_visit="Follow-up",
        )
    )
    assert entry.position == 1
    assert entry.status == WaitingListStatus.ACTIVE

    appointment = await booking_service.book_appointment(
        booking_request(TUESDAY_9, waiting_list_id=entry.id)
    )
    assert appointment.from_waiting_list is True
    assert appointment.waiting_list_id == entry.id

    converted = await waiting_list_service.get_entry(entry.id)
    assert converted.status == WaitingListStatus.SCHEDULED
    assert converted.appointment_id == appointment.id

    # A scheduled entry cannot be converted again, and nothing is booked
    with pytest.raises(ConflictException):
        await booking_service.book_appointment(booking_request(TUESDAY_10, waiting_list_id=entry.id))

    listing = await booking_service.list_appointments(
        directory["facility_id"], datetime(2025, 3, 4), datetime(2025, 3, 5)
    )
    assert [a.id for a in listing.items] == [appointment.id]


@pytest.mark.asyncio
async def test_unknown_waiting_list_entry(booking_service, booking_request, tuesday_rule) -> None:
    with pytest.raises(NotFoundException):
        await booking_service.book_appointment(booking_request(TUESDAY_9, waiting_list_id=uuid4()))


@pytest.mark.asyncio
async def test_list_appointments_filters(
    booking_service, booking_request, tuesday_rule, directory
) -> None:
    first = await booking_service.book_appointment(booking_request(TUESDAY_10))
    second = await booking_service.book_appointment(booking_request(TUESDAY_9))

    listing = await booking_service.list_appointments(
        directory["facility_id"],
        datetime(2025, 3, 4),
        datetime(2025, 3, 5),
        doctor_id=directory["doctor_id"],
    )
    assert [a.id for a in listing.items] == [second.id, first.id]

    other_doctor = await booking_service.list_appointments(
        directory["facility_id"], datetime(2025, 3, 4), datetime(2025, 3, 5), doctor_id=uuid4()
    )
    assert other_doctor.total == 0


@pytest.mark.asyncio
async def test_appointment_row_end_matches_duration(
    booking_service, booking_request, tuesday_rule, session_factory
) -> None:
    appointment = await booking_service.book_appointment(
        booking_request(TUESDAY_9, duration_minutes=45)
    )

    async with session_factory() as session:
        result = await session.execute(
            select(appointments.c.start_at, appointments.c.end_at).where(
                appointments.c.id == appointment.id
            )
        )
        start_at, end_at = result.one()

    assert (end_at - start_at).total_seconds() == 45 * 60


def test_is_lock_contention():
    locked = OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
    assert is_lock_contention(locked) is True

    class PgLockError(Exception):
        sqlstate = "55P03"

    assert is_lock_contention(DBAPIError("SELECT", {}, PgLockError())) is True
    assert is_lock_contention(DBAPIError("SELECT", {}, Exception("syntax error"))) is False


@pytest.mark.asyncio
async def test_lock_contention_exhausts_into_busy(booking_service) -> None:
    attempts = 0

    async def contended(session):
        nonlocal attempts
        attempts += 1
        raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

    with pytest.raises(BusyException):
        await booking_service._run_in_transaction("book", contended)

    assert attempts == booking_service.settings.booking_busy_retries


@pytest.mark.asyncio
async def test_lock_contention_retried_until_success(booking_service) -> None:
    attempts = 0

    async def flaky(session):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
        return "ok"

    assert await booking_service._run_in_transaction("book", flaky) == "ok"
    assert attempts == 2
