"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"


class BookingSource(str, Enum):
    """Booking source enumeration."""

    WEB = "web"
    MOBILE = "mobile"
    PHONE = "phone"
    WALK_IN = "walk_in"
    WAITING_LIST = "waiting_list"


class PatientReference(BaseModel):
    """Patient identity and contact details carried on a booking."""

    patient_first_name: str = Field(..., min_length=1, max_length=100)
    patient_last_name: str = Field(..., min_length=1, max_length=100)
    patient_email: str | None = Field(None, max_length=255)
    patient_phone: str = Field(..., min_length=7, max_length=20)
    patient_date_of_birth: date | None = None

    @field_validator("patient_phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Validate phone number format."""
        # Remove common separators
        cleaned = (
            v.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").replace("+", "")
        )
        if not cleaned.isdigit():
            raise ValueError("Phone number must contain only digits and separators")
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v


class BookingRequest(PatientReference):
    """Schema for booking a new appointment."""

    facility_id: UUID
    doctor_id: UUID
    start_at: datetime
    duration_minutes: int | None = Field(None, ge=1, le=480)
    appointment_type: str = Field(default="consultation", max_length=50)
    reason_for_visit: str = Field(..., min_length=1, max_length=500)
    special_requirements: str | None = Field(None, max_length=1000)
    booked_by: UUID | None = None
    booking_source: BookingSource = BookingSource.WEB
    waiting_list_id: UUID | None = None


class RescheduleRequest(BaseModel):
    """Schema for rescheduling an appointment."""

    new_start_at: datetime
    reason: str | None = Field(None, max_length=500)


class CancelRequest(BaseModel):
    """Schema for cancelling an appointment."""

    actor_id: UUID
    reason: str = Field(..., min_length=1, max_length=500)


class ConfirmRequest(BaseModel):
    """Schema for confirming an appointment."""

    method: str = Field(default="web", max_length=30)


class CheckInRequest(BaseModel):
    """Schema for checking in a patient."""

    actor_id: UUID


class CompleteRequest(BaseModel):
    """Schema for completing an appointment."""

    completion_notes: str | None = Field(None, max_length=2000)


class AppointmentResponse(PatientReference):
    """Schema for appointment response."""

    id: UUID
    facility_id: UUID
    doctor_id: UUID
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    appointment_type: str
    reason_for_visit: str
    special_requirements: str | None = None
    status: AppointmentStatus
    status_notes: str | None = None
    rescheduled_from_id: UUID | None = None
    rescheduled_at: datetime | None = None
    from_waiting_list: bool = False
    waiting_list_id: UUID | None = None
    booked_at: datetime
    booked_by: UUID | None = None
    booking_source: str
    confirmed_at: datetime | None = None
    confirmation_method: str | None = None
    checked_in_at: datetime | None = None
    checked_in_by: UUID | None = None
    completed_at: datetime | None = None
    completion_notes: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancellation_reason: str | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for a list of appointments in a date range."""

    total: int
    items: list[AppointmentResponse]
