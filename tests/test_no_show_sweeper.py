"""Tests for the no-show sweeper."""

from datetime import datetime

import pytest

from clinic_scheduler.schemas.appointments import AppointmentStatus
from clinic_scheduler.services.no_show_sweeper import NO_SHOW_NOTE, NoShowSweeper

TUESDAY_9 = datetime(2025, 3, 4, 9, 0)


@pytest.fixture
def sweeper(session_factory, clock) -> NoShowSweeper:
    return NoShowSweeper(session_factory, clock, grace_minutes=60)


@pytest.mark.asyncio
async def test_overdue_appointment_marked_no_show(
    sweeper, booking_service, booking_request, tuesday_rule, clock
) -> None:
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))
    # Ends 09:30; one hour of grace has passed at 10:31
    clock.instant = datetime(2025, 3, 4, 10, 31)

    assert await sweeper.sweep() == 1

    swept = await booking_service.get_appointment(appointment.id)
    assert swept.status == AppointmentStatus.NO_SHOW
    assert swept.status_notes == NO_SHOW_NOTE


@pytest.mark.asyncio
async def test_sweep_is_idempotent(
    sweeper, booking_service, booking_request, tuesday_rule, clock
) -> None:
    await booking_service.book_appointment(booking_request(TUESDAY_9))
    clock.instant = datetime(2025, 3, 4, 12, 0)

    assert await sweeper.sweep() == 1
    assert await sweeper.sweep() == 0


@pytest.mark.asyncio
async def test_appointment_within_grace_left_alone(
    sweeper, booking_service, booking_request, tuesday_rule, clock
) -> None:
    appointment = await booking_service.book_appointment(booking_request(TUESDAY_9))
    clock.instant = datetime(2025, 3, 4, 10, 29)

    assert await sweeper.sweep() == 0
    assert (await booking_service.get_appointment(appointment.id)).status == (
        AppointmentStatus.SCHEDULED
    )


@pytest.mark.asyncio
async def test_only_unresolved_appointments_swept(
    sweeper, booking_service, booking_request, tuesday_rule, clock, directory
) -> None:
    actor = directory["doctor_id"]
    confirmed = await booking_service.book_appointment(booking_request(TUESDAY_9))
    await booking_service.confirm_appointment(confirmed.id)
    checked_in = await booking_service.book_appointment(
        booking_request(datetime(2025, 3, 4, 9, 30))
    )
    await booking_service.check_in_patient(checked_in.id, actor)
    cancelled = await booking_service.book_appointment(booking_request(datetime(2025, 3, 4, 10)))
    await booking_service.cancel_appointment(cancelled.id, actor, "Patient request")

    clock.instant = datetime(2025, 3, 4, 18, 0)

    assert await sweeper.sweep() == 1
    assert (await booking_service.get_appointment(confirmed.id)).status == (
        AppointmentStatus.NO_SHOW
    )
    assert (await booking_service.get_appointment(checked_in.id)).status == (
        AppointmentStatus.CHECKED_IN
    )
    assert (await booking_service.get_appointment(cancelled.id)).status == (
        AppointmentStatus.CANCELLED
    )


@pytest.mark.asyncio
async def test_run_once_backfills_reminders(
    session_factory,
    clock,
    booking_service,
    booking_request,
    tuesday_rule,
    reminder_scheduler,
    reminder_queue,
) -> None:
    reminder_queue.fail = True
    appointment = await booking_service.book_appointment(
        booking_request(datetime(2025, 3, 4, 10, 0))
    )
    reminder_queue.fail = False

    sweeper = NoShowSweeper(
        session_factory, clock, grace_minutes=60, reminder_scheduler=reminder_scheduler
    )

    assert await sweeper.run_once() == 0
    assert len(await reminder_scheduler.list_for_appointment(appointment.id)) == 2
