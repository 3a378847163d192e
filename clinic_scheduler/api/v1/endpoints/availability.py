"""Availability endpoints."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import AvailabilityRuleServiceDep, AvailabilityServiceDep
from clinic_scheduler.schemas.availability import (
    AvailabilityCheckResponse,
    AvailabilityRule,
    AvailabilityRuleCreate,
    AvailabilityRuleKind,
    AvailabilityRuleUpdate,
    SlotListResponse,
)

router = APIRouter()


@router.get(
    "/check",
    response_model=AvailabilityCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Check doctor availability",
)
async def check_availability(
    service: AvailabilityServiceDep,
    doctor_id: UUID = Query(...),
    facility_id: UUID = Query(...),
    start_at: datetime = Query(..., description="Requested start in facility time"),
    duration_minutes: int = Query(30, ge=1, le=480),
) -> AvailabilityCheckResponse:
    """
    Check whether a doctor can take an appointment at a given time.

    Args:
        service: Availability service
        doctor_id: Doctor ID
        facility_id: Facility ID
        start_at: Requested start
        duration_minutes: Requested length

    Returns:
        Availability verdict with a reason when unavailable
    """
    return await service.check_availability(doctor_id, facility_id, start_at, duration_minutes)


@router.get(
    "/slots",
    response_model=SlotListResponse,
    status_code=status.HTTP_200_OK,
    summary="List a doctor's slots for a day",
)
async def get_available_slots(
    service: AvailabilityServiceDep,
    doctor_id: UUID = Query(...),
    facility_id: UUID = Query(...),
    slot_date: date = Query(..., alias="date"),
    slot_duration_minutes: int | None = Query(None, ge=1, le=480),
) -> SlotListResponse:
    """
    List every slot of a doctor's day, available or not.

    Args:
        service: Availability service
        doctor_id: Doctor ID
        facility_id: Facility ID
        slot_date: Calendar date
        slot_duration_minutes: Slot length; defaults to the schedule rule's

    Returns:
        Slots with summary counts
    """
    return await service.get_available_slots(
        doctor_id, facility_id, slot_date, slot_duration_minutes
    )


@router.post(
    "/rules",
    response_model=AvailabilityRule,
    status_code=status.HTTP_201_CREATED,
    summary="Create availability rule",
)
async def create_rule(
    data: AvailabilityRuleCreate,
    service: AvailabilityRuleServiceDep,
) -> AvailabilityRule:
    """Create a regular, specific-date or blocked availability rule."""
    return await service.create_rule(data)


@router.get(
    "/rules",
    response_model=list[AvailabilityRule],
    status_code=status.HTTP_200_OK,
    summary="List availability rules",
)
async def list_rules(
    service: AvailabilityRuleServiceDep,
    doctor_id: UUID = Query(...),
    facility_id: UUID = Query(...),
    kind: AvailabilityRuleKind | None = Query(None),
) -> list[AvailabilityRule]:
    """List a doctor's availability rules at a facility."""
    return await service.list_rules(doctor_id, facility_id, kind)


@router.get(
    "/rules/{rule_id}",
    response_model=AvailabilityRule,
    status_code=status.HTTP_200_OK,
    summary="Get availability rule",
)
async def get_rule(rule_id: UUID, service: AvailabilityRuleServiceDep) -> AvailabilityRule:
    """Get an availability rule by ID."""
    return await service.get_rule(rule_id)


@router.patch(
    "/rules/{rule_id}",
    response_model=AvailabilityRule,
    status_code=status.HTTP_200_OK,
    summary="Update availability rule",
)
async def update_rule(
    rule_id: UUID,
    data: AvailabilityRuleUpdate,
    service: AvailabilityRuleServiceDep,
) -> AvailabilityRule:
    """Partially update an availability rule."""
    return await service.update_rule(rule_id, data)
