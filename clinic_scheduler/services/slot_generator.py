"""Day slot generation on top of the availability evaluator."""

from collections.abc import Sequence
from datetime import date, timedelta

from clinic_scheduler.core.exceptions import ValidationException
from clinic_scheduler.schemas.availability import AvailabilityRule, BookedInterval, Slot
from clinic_scheduler.services.availability_evaluator import (
    evaluate_availability,
    resolve_schedule_window,
)


def generate_slots(
    rules: Sequence[AvailabilityRule],
    booked: Sequence[BookedInterval],
    day: date,
    slot_duration_minutes: int | None = None,
) -> list[Slot]:
    """
    Walk the day's schedule window and evaluate each candidate slot.

    Steps are ``slot_duration + buffer`` apart, starting at the window start
    and stopping once the window end is reached. Slots are returned whether
    available or not, each carrying the evaluator's reason.

    Args:
        rules: Rules of the doctor at the facility
        booked: Non-terminal appointments of the doctor on that day
        day: Calendar date
        slot_duration_minutes: Slot length; defaults to the rule's own

    Returns:
        Slots in chronological order, empty when no rule applies
    """
    resolution = resolve_schedule_window(rules, day)
    window = resolution.window
    if window is None:
        return []

    duration = slot_duration_minutes or window.slot_duration_minutes
    if duration <= 0:
        raise ValidationException("Slot duration must be a positive number of minutes")
    step = timedelta(minutes=duration + window.buffer_minutes)

    slots: list[Slot] = []
    current = window.start
    while current < window.end:
        verdict = evaluate_availability(rules, booked, current, duration, resolution=resolution)
        slots.append(
            Slot(
                time_of_day=current.time(),
                start_at=current,
                available=verdict.available,
                reason=verdict.reason,
            )
        )
        current += step

    return slots
