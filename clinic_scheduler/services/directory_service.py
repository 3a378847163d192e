"""Facility/doctor directory lookups."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import NotFoundException
from clinic_scheduler.models.directory import doctors, facilities
from clinic_scheduler.services.ports import Directory


class SqlDirectory:
    """Directory backed by the facilities and doctors tables."""

    async def facility_exists(self, session: AsyncSession, facility_id: UUID) -> bool:
        """Check that an active facility with this ID exists."""
        stmt = select(facilities.c.id).where(
            facilities.c.id == facility_id,
            facilities.c.is_active == True,  # noqa: E712
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def doctor_exists(self, session: AsyncSession, doctor_id: UUID) -> bool:
        """Check that an active doctor with this ID exists."""
        stmt = select(doctors.c.id).where(
            doctors.c.id == doctor_id,
            doctors.c.is_active == True,  # noqa: E712
        )
        result = await session.execute(stmt)
        return result.first() is not None


async def ensure_resources_exist(
    directory: Directory,
    session: AsyncSession,
    facility_id: UUID,
    doctor_id: UUID,
) -> None:
    """
    Verify the facility and doctor a request refers to.

    Raises:
        NotFoundException: If either does not exist
    """
    if not await directory.facility_exists(session, facility_id):
        raise NotFoundException("Facility not found")
    if not await directory.doctor_exists(session, doctor_id):
        raise NotFoundException("Doctor not found")
