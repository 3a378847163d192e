"""Waiting list endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from clinic_scheduler.dependencies import WaitingListServiceDep
from clinic_scheduler.schemas.waiting_list import WaitingListEntryCreate, WaitingListEntryResponse

router = APIRouter()


@router.post(
    "/",
    response_model=WaitingListEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add patient to waiting list",
)
async def add_to_waiting_list(
    data: WaitingListEntryCreate,
    service: WaitingListServiceDep,
) -> WaitingListEntryResponse:
    """Append a patient to a facility's waiting list."""
    return await service.add_entry(data)


@router.get(
    "/{entry_id}",
    response_model=WaitingListEntryResponse,
    status_code=status.HTTP_200_OK,
    summary="Get waiting list entry",
)
async def get_waiting_list_entry(
    entry_id: UUID,
    service: WaitingListServiceDep,
) -> WaitingListEntryResponse:
    """Get a waiting list entry by ID."""
    return await service.get_entry(entry_id)
