"""Appointment status state machine."""

from clinic_scheduler.core.exceptions import (
    InvalidTransitionException,
    NotCancellableException,
    NotReschedulableException,
)
from clinic_scheduler.schemas.appointments import AppointmentStatus

# Statuses that occupy the doctor's timeline
ACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CHECKED_IN,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.NO_SHOW,
    }
)

# Statuses the no-show sweeper and reschedule may act on
UNRESOLVED_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED})

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CHECKED_IN,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.CHECKED_IN,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CHECKED_IN: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
        }
    ),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Check whether ``current -> target`` is a documented transition."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: AppointmentStatus | str, target: AppointmentStatus) -> None:
    """
    Raise unless ``current -> target`` is allowed.

    Raises:
        NotCancellableException: For a rejected cancellation
        NotReschedulableException: For a rejected reschedule
        InvalidTransitionException: For any other rejected transition
    """
    current = AppointmentStatus(current)
    if can_transition(current, target):
        return

    if target == AppointmentStatus.CANCELLED:
        raise NotCancellableException(
            f"Appointment cannot be cancelled from status '{current.value}'"
        )
    if target == AppointmentStatus.RESCHEDULED:
        raise NotReschedulableException(
            f"Appointment cannot be rescheduled from status '{current.value}'"
        )
    raise InvalidTransitionException(
        f"Cannot move appointment from '{current.value}' to '{target.value}'"
    )
