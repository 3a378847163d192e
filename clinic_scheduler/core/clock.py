"""Clock abstraction used for every time comparison in the engine."""

from datetime import datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current naive wall-clock time in the facility zone."""
        ...


class SystemClock:
    """Clock backed by the system time, expressed in the facility zone."""

    def __init__(self, timezone: str = "UTC"):
        self.zone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.zone).replace(tzinfo=None)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a ``timedelta(**kwargs)``."""
        self.instant = self.instant + timedelta(**kwargs)
        return self.instant
