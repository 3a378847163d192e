"""Waiting list repository and service."""

from datetime import datetime
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import ConflictException, NotFoundException
from clinic_scheduler.models.waiting_list import appointment_waiting_list
from clinic_scheduler.schemas.waiting_list import (
    WaitingListEntryCreate,
    WaitingListEntryResponse,
    WaitingListStatus,
)

logger = structlog.get_logger(__name__)

# Concurrent appends can race for the same position
MAX_POSITION_ATTEMPTS = 3


class SqlWaitingListRepository:
    """Waiting list updates executed on the caller's session."""

    async def mark_scheduled(
        self,
        session: AsyncSession,
        entry_id: UUID,
        appointment_id: UUID,
        facility_id: UUID,
        scheduled_at: datetime,
    ) -> None:
        """
        Link an active waiting list entry to its booked appointment.

        Raises:
            NotFoundException: If the entry does not exist
            ConflictException: If the entry is not active or belongs elsewhere
        """
        result = await session.execute(
            select(appointment_waiting_list)
            .where(appointment_waiting_list.c.id == entry_id)
            .with_for_update()
        )
        entry = result.mappings().first()

        if not entry:
            raise NotFoundException("Waiting list entry not found")
        if entry["status"] != WaitingListStatus.ACTIVE.value:
            raise ConflictException("Waiting list entry is not active")
        if entry["facility_id"] != facility_id:
            raise ConflictException("Waiting list entry belongs to another facility")

        await session.execute(
            update(appointment_waiting_list)
            .where(appointment_waiting_list.c.id == entry_id)
            .values(
                status=WaitingListStatus.SCHEDULED.value,
                appointment_id=appointment_id,
                scheduled_at=scheduled_at,
            )
        )


class WaitingListService:
    """Service for adding and reading waiting list entries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock):
        """Initialize service with a session factory and clock."""
        self.session_factory = session_factory
        self.clock = clock

    async def add_entry(self, data: WaitingListEntryCreate) -> WaitingListEntryResponse:
        """
        Append a patient to a facility's waiting list.

        Positions are 1-based and never reused within a facility.

        Args:
            data: Waiting list entry data

        Returns:
            Created entry with its position
        """
        for attempt in range(1, MAX_POSITION_ATTEMPTS + 1):
            try:
                async with self.session_factory() as session, session.begin():
                    result = await session.execute(
                        select(func.max(appointment_waiting_list.c.position)).where(
                            appointment_waiting_list.c.facility_id == data.facility_id
                        )
                    )
                    position = (result.scalar() or 0) + 1

                    values = data.model_dump(mode="python")
                    values.update(
                        id=uuid4(),
                        priority=data.priority.value,
                        position=position,
                        status=WaitingListStatus.ACTIVE.value,
                        created_at=self.clock.now(),
                    )
                    result = await session.execute(
                        insert(appointment_waiting_list)
                        .values(**values)
                        .returning(appointment_waiting_list)
                    )
                    row = result.mappings().one()
                break
            except IntegrityError:
                if attempt == MAX_POSITION_ATTEMPTS:
                    raise ConflictException("Could not allocate a waiting list position")
                logger.warning(
                    "waiting_list_position_retry",
                    facility_id=str(data.facility_id),
                    attempt=attempt,
                )

        entry = WaitingListEntryResponse.model_validate(dict(row))
        logger.info(
            "waiting_list_entry_added",
            entry_id=str(entry.id),
            facility_id=str(entry.facility_id),
            position=entry.position,
        )
        return entry

    async def get_entry(self, entry_id: UUID) -> WaitingListEntryResponse:
        """
        Get waiting list entry by ID.

        Raises:
            NotFoundException: If entry not found
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(appointment_waiting_list).where(appointment_waiting_list.c.id == entry_id)
            )
            row = result.mappings().first()

        if not row:
            raise NotFoundException("Waiting list entry not found")
        return WaitingListEntryResponse.model_validate(dict(row))
