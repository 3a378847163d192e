"""Interfaces of the collaborators the scheduling engine calls out to."""

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession


class Directory(Protocol):
    """Facility/doctor identity and existence checks."""

    async def facility_exists(self, session: AsyncSession, facility_id: UUID) -> bool: ...

    async def doctor_exists(self, session: AsyncSession, doctor_id: UUID) -> bool: ...


class ReminderQueue(Protocol):
    """Queue that delivers reminders at their scheduled time."""

    def enqueue(
        self,
        recipient: str,
        channel: str,
        scheduled_for: datetime,
        payload: dict[str, Any],
    ) -> None: ...


class WaitingListRepository(Protocol):
    """Waiting list updates performed inside a booking transaction."""

    async def mark_scheduled(
        self,
        session: AsyncSession,
        entry_id: UUID,
        appointment_id: UUID,
        facility_id: UUID,
        scheduled_at: datetime,
    ) -> None: ...
