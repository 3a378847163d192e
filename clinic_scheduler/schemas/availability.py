"""Availability rule, check and slot schemas."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class AvailabilityRuleKind(str, Enum):
    """Availability rule kind enumeration."""

    REGULAR = "regular"
    SPECIFIC_DATE = "specific_date"
    BLOCKED = "blocked"


class AvailabilityRuleBase(BaseModel):
    """Base availability rule schema with common fields."""

    kind: AvailabilityRuleKind
    day_of_week: int | None = Field(None, ge=1, le=7, description="ISO weekday, 1 = Monday")
    specific_date: date | None = None
    start_time: time
    end_time: time
    is_available: bool = True
    buffer_minutes: int = Field(default=0, ge=0, le=240)
    slot_duration_minutes: int = Field(default=30, ge=1, le=480)
    unavailability_reason: str | None = Field(None, max_length=500)
    effective_from: date | None = None
    effective_until: date | None = None

    @model_validator(mode="after")
    def validate_kind_fields(self) -> "AvailabilityRuleBase":
        """Check the fields each rule kind requires."""
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")

        if self.kind == AvailabilityRuleKind.REGULAR:
            if self.day_of_week is None:
                raise ValueError("Regular rules require day_of_week")
            if self.specific_date is not None:
                raise ValueError("Regular rules cannot carry specific_date")
        else:
            if self.specific_date is None:
                raise ValueError(f"{self.kind.value} rules require specific_date")
            if self.day_of_week is not None:
                raise ValueError(f"{self.kind.value} rules cannot carry day_of_week")

        if self.kind == AvailabilityRuleKind.BLOCKED:
            self.is_available = False

        if (
            self.effective_from is not None
            and self.effective_until is not None
            and self.effective_from > self.effective_until
        ):
            raise ValueError("effective_from must not be after effective_until")
        return self


class AvailabilityRuleCreate(AvailabilityRuleBase):
    """Schema for creating an availability rule."""

    doctor_id: UUID
    facility_id: UUID


class AvailabilityRuleUpdate(BaseModel):
    """Schema for partially updating an availability rule."""

    day_of_week: int | None = Field(None, ge=1, le=7)
    specific_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool | None = None
    buffer_minutes: int | None = Field(None, ge=0, le=240)
    slot_duration_minutes: int | None = Field(None, ge=1, le=480)
    unavailability_reason: str | None = Field(None, max_length=500)
    effective_from: date | None = None
    effective_until: date | None = None


class AvailabilityRule(AvailabilityRuleBase):
    """Schema for a stored availability rule."""

    id: UUID
    doctor_id: UUID
    facility_id: UUID

    model_config = {"from_attributes": True}

    def applies_on(self, day: date) -> bool:
        """Check whether the rule governs the given calendar date."""
        if self.kind == AvailabilityRuleKind.REGULAR:
            if self.day_of_week != day.isoweekday():
                return False
            if self.effective_from is not None and day < self.effective_from:
                return False
            if self.effective_until is not None and day > self.effective_until:
                return False
            return True
        return self.specific_date == day


class BookedInterval(BaseModel):
    """An existing appointment occupying part of a doctor's timeline."""

    id: UUID | None = None
    start_at: datetime
    end_at: datetime


class AvailabilityResult(BaseModel):
    """Verdict of an availability check."""

    available: bool
    reason: str | None = None


class AvailabilityCheckResponse(AvailabilityResult):
    """Schema for availability check response."""

    doctor_id: UUID
    facility_id: UUID
    start_at: datetime
    duration_minutes: int


class Slot(BaseModel):
    """A candidate time slot and its availability."""

    time_of_day: time
    start_at: datetime
    available: bool
    reason: str | None = None


class SlotListResponse(BaseModel):
    """Schema for a day's slot list."""

    doctor_id: UUID
    facility_id: UUID
    slot_date: date
    slot_duration_minutes: int
    total_slots: int
    available_slots: int
    slots: list[Slot]
