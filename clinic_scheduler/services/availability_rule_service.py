"""Availability rule store."""

from datetime import date
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from clinic_scheduler.models.availability_rules import availability_rules
from clinic_scheduler.schemas.availability import (
    AvailabilityRule,
    AvailabilityRuleCreate,
    AvailabilityRuleKind,
    AvailabilityRuleUpdate,
)

logger = structlog.get_logger(__name__)

DUPLICATE_SPECIFIC_DATE = "A specific-date rule already exists for this doctor, facility and date"


async def load_rules_for_date(
    session: AsyncSession,
    doctor_id: UUID,
    facility_id: UUID,
    day: date,
) -> list[AvailabilityRule]:
    """
    Load every rule that could govern a doctor's schedule on a date.

    Rules are read without locks; they are administered out of band.
    """
    stmt = (
        select(availability_rules)
        .where(
            availability_rules.c.doctor_id == doctor_id,
            availability_rules.c.facility_id == facility_id,
            or_(
                and_(
                    availability_rules.c.kind == AvailabilityRuleKind.REGULAR.value,
                    availability_rules.c.day_of_week == day.isoweekday(),
                ),
                availability_rules.c.specific_date == day,
            ),
        )
        .order_by(availability_rules.c.created_at, availability_rules.c.id)
    )
    result = await session.execute(stmt)
    return [AvailabilityRule.model_validate(dict(row)) for row in result.mappings().all()]


class AvailabilityRuleService:
    """Service for creating and maintaining availability rules."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock):
        """Initialize service with a session factory and clock."""
        self.session_factory = session_factory
        self.clock = clock

    @staticmethod
    async def _ensure_single_specific_date(
        session: AsyncSession,
        doctor_id: UUID,
        facility_id: UUID,
        day: date,
        exclude_id: UUID | None = None,
    ) -> None:
        conditions = [
            availability_rules.c.doctor_id == doctor_id,
            availability_rules.c.facility_id == facility_id,
            availability_rules.c.kind == AvailabilityRuleKind.SPECIFIC_DATE.value,
            availability_rules.c.specific_date == day,
        ]
        if exclude_id is not None:
            conditions.append(availability_rules.c.id != exclude_id)

        result = await session.execute(select(availability_rules.c.id).where(*conditions))
        if result.first() is not None:
            raise ConflictException(DUPLICATE_SPECIFIC_DATE)

    async def create_rule(self, data: AvailabilityRuleCreate) -> AvailabilityRule:
        """
        Create a new availability rule.

        Args:
            data: Rule creation data

        Returns:
            Created rule

        Raises:
            ConflictException: If a second specific-date rule is added for a date
        """
        now = self.clock.now()
        values = data.model_dump(mode="python")
        values.update(
            id=uuid4(),
            kind=data.kind.value,
            created_at=now,
            updated_at=now,
        )

        try:
            async with self.session_factory() as session, session.begin():
                if data.kind == AvailabilityRuleKind.SPECIFIC_DATE:
                    await self._ensure_single_specific_date(
                        session, data.doctor_id, data.facility_id, data.specific_date
                    )
                result = await session.execute(
                    insert(availability_rules).values(**values).returning(availability_rules)
                )
                row = result.mappings().one()
        except IntegrityError as e:
            raise ConflictException(DUPLICATE_SPECIFIC_DATE) from e

        rule = AvailabilityRule.model_validate(dict(row))
        logger.info(
            "availability_rule_created",
            rule_id=str(rule.id),
            doctor_id=str(rule.doctor_id),
            facility_id=str(rule.facility_id),
            kind=rule.kind.value,
        )
        return rule

    async def get_rule(self, rule_id: UUID) -> AvailabilityRule:
        """
        Get availability rule by ID.

        Raises:
            NotFoundException: If rule not found
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(availability_rules).where(availability_rules.c.id == rule_id)
            )
            row = result.mappings().first()

        if not row:
            raise NotFoundException("Availability rule not found")
        return AvailabilityRule.model_validate(dict(row))

    async def list_rules(
        self,
        doctor_id: UUID,
        facility_id: UUID,
        kind: AvailabilityRuleKind | None = None,
    ) -> list[AvailabilityRule]:
        """List a doctor's rules at a facility, optionally filtered by kind."""
        conditions = [
            availability_rules.c.doctor_id == doctor_id,
            availability_rules.c.facility_id == facility_id,
        ]
        if kind is not None:
            conditions.append(availability_rules.c.kind == kind.value)

        stmt = (
            select(availability_rules)
            .where(*conditions)
            .order_by(
                availability_rules.c.kind,
                availability_rules.c.day_of_week,
                availability_rules.c.specific_date,
                availability_rules.c.start_time,
            )
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()

        return [AvailabilityRule.model_validate(dict(row)) for row in rows]

    async def update_rule(self, rule_id: UUID, data: AvailabilityRuleUpdate) -> AvailabilityRule:
        """
        Partially update an availability rule.

        The merged rule is validated as a whole, so a change cannot leave it
        with an inverted window or a field its kind does not allow.

        Raises:
            NotFoundException: If rule not found
            ValidationException: If the merged rule is invalid
            ConflictException: If the change duplicates a specific-date rule
        """
        changes = data.model_dump(exclude_unset=True)

        try:
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    select(availability_rules)
                    .where(availability_rules.c.id == rule_id)
                    .with_for_update()
                )
                current = result.mappings().first()
                if not current:
                    raise NotFoundException("Availability rule not found")

                try:
                    merged = AvailabilityRule.model_validate({**dict(current), **changes})
                except ValidationError as e:
                    raise ValidationException(str(e)) from e

                if merged.kind == AvailabilityRuleKind.SPECIFIC_DATE:
                    await self._ensure_single_specific_date(
                        session,
                        merged.doctor_id,
                        merged.facility_id,
                        merged.specific_date,
                        exclude_id=rule_id,
                    )

                values = merged.model_dump(
                    exclude={"id", "doctor_id", "facility_id", "kind"},
                )
                values["updated_at"] = self.clock.now()
                result = await session.execute(
                    update(availability_rules)
                    .where(availability_rules.c.id == rule_id)
                    .values(**values)
                    .returning(availability_rules)
                )
                row = result.mappings().one()
        except IntegrityError as e:
            raise ConflictException(DUPLICATE_SPECIFIC_DATE) from e

        logger.info("availability_rule_updated", rule_id=str(rule_id), fields=sorted(changes))
        return AvailabilityRule.model_validate(dict(row))
