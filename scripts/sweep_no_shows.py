#!/usr/bin/env python3
"""
Run one no-show sweeper tick, for cron-driven deployments.

Usage:
    python scripts/sweep_no_shows.py
    python scripts/sweep_no_shows.py --grace-minutes 30 --skip-backfill
"""

import argparse
import asyncio

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import SystemClock
from clinic_scheduler.core.redis_client import (
    RedisReminderQueue,
    close_redis_connection,
    get_redis_client,
)
from clinic_scheduler.database import AsyncSessionLocal, engine
from clinic_scheduler.middleware.logging import configure_logging
from clinic_scheduler.services.no_show_sweeper import NoShowSweeper
from clinic_scheduler.services.reminder_service import ReminderScheduler


async def sweep(grace_minutes: int | None, backfill: bool) -> int:
    """Run the sweep and, unless skipped, the reminder backfill."""
    clock = SystemClock(settings.facility_timezone)
    scheduler = None
    if backfill:
        scheduler = ReminderScheduler(
            AsyncSessionLocal, RedisReminderQueue(get_redis_client()), clock
        )

    sweeper = NoShowSweeper(
        AsyncSessionLocal,
        clock,
        grace_minutes=grace_minutes,
        reminder_scheduler=scheduler,
    )
    try:
        return await sweeper.run_once()
    finally:
        await engine.dispose()
        close_redis_connection()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Mark overdue appointments as no-shows")
    parser.add_argument("--grace-minutes", type=int, default=None)
    parser.add_argument(
        "--skip-backfill",
        action="store_true",
        help="Do not retry reminder scheduling for upcoming appointments",
    )

    args = parser.parse_args()
    configure_logging()
    marked = asyncio.run(sweep(args.grace_minutes, not args.skip_backfill))
    print(f"✓ Marked {marked} appointment(s) as no-show")


if __name__ == "__main__":
    main()
