"""
Availability evaluation over a doctor's rules and booked appointments.

Everything here is pure: callers load rules and booked intervals (with or
without locks) and pass them in, so the same verdict logic serves slot
browsing and the in-transaction re-check before a booking is written.

All windows are half-open ``[start, end)``.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from clinic_scheduler.core.exceptions import ValidationException
from clinic_scheduler.schemas.availability import (
    AvailabilityResult,
    AvailabilityRule,
    AvailabilityRuleKind,
    BookedInterval,
)

REASON_NOT_AVAILABLE_ON_DAY = "Doctor not available on this day"
REASON_OUTSIDE_SCHEDULE = "Outside doctor schedule"
REASON_BLOCKED = "Time slot is blocked"
REASON_ALREADY_BOOKED = "Time slot already booked"


@dataclass(frozen=True)
class ScheduleWindow:
    """The working window that applies to one calendar date."""

    rule: AvailabilityRule
    start: datetime
    end: datetime

    @property
    def buffer_minutes(self) -> int:
        return self.rule.buffer_minutes

    @property
    def slot_duration_minutes(self) -> int:
        return self.rule.slot_duration_minutes


@dataclass(frozen=True)
class WindowResolution:
    """Outcome of rule selection for a date: a window or the reason there is none."""

    window: ScheduleWindow | None
    reason: str | None = None


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def _window_for(rule: AvailabilityRule, day: date) -> ScheduleWindow:
    return ScheduleWindow(
        rule=rule,
        start=datetime.combine(day, rule.start_time),
        end=datetime.combine(day, rule.end_time),
    )


def resolve_schedule_window(rules: Iterable[AvailabilityRule], day: date) -> WindowResolution:
    """
    Pick the rule that governs a date.

    A specific-date rule wins over the regular weekly rule. An unavailable
    specific-date rule closes the whole date. When several regular rules
    match the weekday, the earliest-starting one is used.

    Args:
        rules: Rules of one doctor at one facility
        day: Calendar date to resolve

    Returns:
        The applicable window, or no window with the reason
    """
    specific: AvailabilityRule | None = None
    regular: list[AvailabilityRule] = []

    for rule in rules:
        if not rule.applies_on(day):
            continue
        if rule.kind == AvailabilityRuleKind.SPECIFIC_DATE and specific is None:
            specific = rule
        elif rule.kind == AvailabilityRuleKind.REGULAR and rule.is_available:
            regular.append(rule)

    if specific is not None:
        if not specific.is_available:
            return WindowResolution(window=None, reason=REASON_OUTSIDE_SCHEDULE)
        return WindowResolution(window=_window_for(specific, day))

    if not regular:
        return WindowResolution(window=None, reason=REASON_NOT_AVAILABLE_ON_DAY)

    regular.sort(key=lambda rule: rule.start_time)
    return WindowResolution(window=_window_for(regular[0], day))


def find_blocking_rule(
    rules: Iterable[AvailabilityRule],
    start: datetime,
    end: datetime,
) -> AvailabilityRule | None:
    """Return the first blocked rule whose window intersects ``[start, end)``."""
    for rule in rules:
        if rule.kind != AvailabilityRuleKind.BLOCKED or rule.specific_date is None:
            continue
        block = _window_for(rule, rule.specific_date)
        if intervals_overlap(block.start, block.end, start, end):
            return rule
    return None


def find_conflict(
    booked: Iterable[BookedInterval],
    start: datetime,
    end: datetime,
) -> BookedInterval | None:
    """Return the first booked interval overlapping ``[start, end)``."""
    for interval in booked:
        if intervals_overlap(interval.start_at, interval.end_at, start, end):
            return interval
    return None


def evaluate_availability(
    rules: Sequence[AvailabilityRule],
    booked: Sequence[BookedInterval],
    instant: datetime,
    duration_minutes: int,
    resolution: WindowResolution | None = None,
) -> AvailabilityResult:
    """
    Decide whether ``[instant, instant + duration)`` can be booked.

    Args:
        rules: Rules of the doctor at the facility
        booked: Non-terminal appointments of the doctor at the facility
        instant: Requested start
        duration_minutes: Requested length
        resolution: Pre-resolved window for ``instant``'s date, if the
            caller already has it

    Returns:
        Availability verdict with a reason when unavailable

    Raises:
        ValidationException: If the duration is not positive
    """
    if duration_minutes <= 0:
        raise ValidationException("Duration must be a positive number of minutes")

    end = instant + timedelta(minutes=duration_minutes)

    if resolution is None:
        resolution = resolve_schedule_window(rules, instant.date())
    if resolution.window is None:
        return AvailabilityResult(available=False, reason=resolution.reason)

    window = resolution.window
    if instant < window.start or end > window.end:
        return AvailabilityResult(available=False, reason=REASON_OUTSIDE_SCHEDULE)

    if find_blocking_rule(rules, instant, end) is not None:
        return AvailabilityResult(available=False, reason=REASON_BLOCKED)

    if find_conflict(booked, instant, end) is not None:
        return AvailabilityResult(available=False, reason=REASON_ALREADY_BOOKED)

    return AvailabilityResult(available=True)
