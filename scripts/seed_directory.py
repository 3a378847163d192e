#!/usr/bin/env python3
"""
Seed a facility, a doctor and a weekly schedule for local development.

Usage:
    python scripts/seed_directory.py "Riverside Clinic" "Dr. Jane Smith"
    python scripts/seed_directory.py "Riverside Clinic" "Dr. Jane Smith" --days 1 2 3 --start 08:00 --end 12:00
"""

import argparse
import asyncio
from datetime import time
from uuid import uuid4

from sqlalchemy import insert

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import SystemClock
from clinic_scheduler.database import AsyncSessionLocal, engine
from clinic_scheduler.models import doctors, facilities
from clinic_scheduler.schemas.availability import AvailabilityRuleCreate, AvailabilityRuleKind
from clinic_scheduler.services.availability_rule_service import AvailabilityRuleService


async def seed(
    facility_name: str,
    doctor_name: str,
    days: list[int],
    start: time,
    end: time,
    slot_minutes: int,
) -> None:
    """Insert the directory rows and one regular rule per weekday."""
    facility_id = uuid4()
    doctor_id = uuid4()

    async with AsyncSessionLocal() as session, session.begin():
        await session.execute(insert(facilities).values(id=facility_id, name=facility_name))
        await session.execute(insert(doctors).values(id=doctor_id, full_name=doctor_name))

    rules = AvailabilityRuleService(AsyncSessionLocal, SystemClock(settings.facility_timezone))
    for day in days:
        await rules.create_rule(
            AvailabilityRuleCreate(
                doctor_id=doctor_id,
                facility_id=facility_id,
                kind=AvailabilityRuleKind.REGULAR,
                day_of_week=day,
                start_time=start,
                end_time=end,
                slot_duration_minutes=slot_minutes,
            )
        )

    await engine.dispose()
    print(f"✓ Facility {facility_name}: {facility_id}")
    print(f"✓ Doctor {doctor_name}: {doctor_id}")
    print(f"✓ {len(days)} weekly rule(s) created")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed directory and schedule data")
    parser.add_argument("facility", help="Facility name")
    parser.add_argument("doctor", help="Doctor full name")
    parser.add_argument(
        "--days",
        type=int,
        nargs="+",
        default=[1, 2, 3, 4, 5],
        help="ISO weekdays to schedule (1 = Monday)",
    )
    parser.add_argument("--start", type=time.fromisoformat, default=time(9, 0))
    parser.add_argument("--end", type=time.fromisoformat, default=time(17, 0))
    parser.add_argument("--slot-minutes", type=int, default=30)

    args = parser.parse_args()
    asyncio.run(
        seed(args.facility, args.doctor, args.days, args.start, args.end, args.slot_minutes)
    )


if __name__ == "__main__":
    main()
