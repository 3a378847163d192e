"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import BookingServiceDep, ReminderSchedulerDep
from clinic_scheduler.schemas.appointments import (
    AppointmentListResponse,
    AppointmentResponse,
    BookingRequest,
    CancelRequest,
    CheckInRequest,
    CompleteRequest,
    ConfirmRequest,
    RescheduleRequest,
)
from clinic_scheduler.schemas.reminders import ReminderResponse

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book appointment",
)
async def book_appointment(
    data: BookingRequest,
    service: BookingServiceDep,
) -> AppointmentResponse:
    """
    Book an appointment.

    Args:
        data: Booking request
        service: Booking service

    Returns:
        Booked appointment

    Raises:
        SlotUnavailableException: If the slot is not bookable (409)
        BusyException: If the doctor's schedule stayed locked (503)
    """
    return await service.book_appointment(data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments in a date range",
)
async def list_appointments(
    service: BookingServiceDep,
    facility_id: UUID = Query(...),
    start: datetime = Query(...),
    end: datetime = Query(...),
    doctor_id: UUID | None = Query(None),
) -> AppointmentListResponse:
    """List a facility's appointments starting within ``[start, end)``."""
    return await service.list_appointments(facility_id, start, end, doctor_id)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    service: BookingServiceDep,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    return await service.get_appointment(appointment_id)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: RescheduleRequest,
    service: BookingServiceDep,
) -> AppointmentResponse:
    """
    Move an appointment to a new time.

    Returns:
        The replacement appointment; the original becomes ``rescheduled``
    """
    return await service.reschedule_appointment(appointment_id, data.new_start_at, data.reason)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: CancelRequest,
    service: BookingServiceDep,
) -> AppointmentResponse:
    """Cancel an appointment and its pending reminders."""
    return await service.cancel_appointment(appointment_id, data.actor_id, data.reason)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    service: BookingServiceDep,
    data: ConfirmRequest | None = None,
) -> AppointmentResponse:
    """Confirm a scheduled appointment."""
    method = data.method if data else "web"
    return await service.confirm_appointment(appointment_id, method)


@router.post(
    "/{appointment_id}/check-in",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Check in patient",
)
async def check_in_patient(
    appointment_id: UUID,
    data: CheckInRequest,
    service: BookingServiceDep,
) -> AppointmentResponse:
    """Check the patient in."""
    return await service.check_in_patient(appointment_id, data.actor_id)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete appointment",
)
async def complete_appointment(
    appointment_id: UUID,
    service: BookingServiceDep,
    data: CompleteRequest | None = None,
) -> AppointmentResponse:
    """Complete a checked-in appointment."""
    notes = data.completion_notes if data else None
    return await service.complete_appointment(appointment_id, notes)


@router.get(
    "/{appointment_id}/reminders",
    response_model=list[ReminderResponse],
    status_code=status.HTTP_200_OK,
    summary="List appointment reminders",
)
async def list_reminders(
    appointment_id: UUID,
    service: BookingServiceDep,
    scheduler: ReminderSchedulerDep,
) -> list[ReminderResponse]:
    """List an appointment's reminder tasks."""
    await service.get_appointment(appointment_id)
    return await scheduler.list_for_appointment(appointment_id)
