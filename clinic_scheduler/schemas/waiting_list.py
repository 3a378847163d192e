"""Waiting list schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from clinic_scheduler.schemas.appointments import PatientReference


class WaitingListStatus(str, Enum):
    """Waiting list entry status enumeration."""

    ACTIVE = "active"
    SCHEDULED = "scheduled"
    EXPIRED = "expired"


class WaitingListPriority(str, Enum):
    """Waiting list priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class WaitingListEntryCreate(PatientReference):
    """Schema for adding a patient to the waiting list."""

    facility_id: UUID
    preferred_doctor_id: UUID | None = None
    reason_for_visit: str = Field(..., min_length=1, max_length=500)
    priority: WaitingListPriority = WaitingListPriority.MEDIUM


class WaitingListEntryResponse(WaitingListEntryCreate):
    """Schema for waiting list entry response."""

    id: UUID
    position: int
    status: WaitingListStatus
    appointment_id: UUID | None = None
    scheduled_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
