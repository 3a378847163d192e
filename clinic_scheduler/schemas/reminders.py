"""Reminder task schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ReminderKind(str, Enum):
    """Reminder offset enumeration."""

    SEVEN_DAYS_BEFORE = "seven_days_before"
    ONE_DAY_BEFORE = "one_day_before"
    SAME_DAY = "same_day"


class ReminderStatus(str, Enum):
    """Reminder task status enumeration."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    CANCELLED = "cancelled"


class ReminderChannel(str, Enum):
    """Reminder delivery channel enumeration."""

    EMAIL = "email"
    SMS = "sms"


class PlannedReminder(BaseModel):
    """A reminder the scheduler intends to create."""

    kind: ReminderKind
    scheduled_for: datetime


class ReminderResponse(BaseModel):
    """Schema for reminder task response."""

    id: UUID
    appointment_id: UUID
    reminder_kind: ReminderKind
    scheduled_for: datetime
    channel: ReminderChannel
    recipient: str
    status: ReminderStatus
    created_at: datetime

    model_config = {"from_attributes": True}
