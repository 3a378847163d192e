"""Tests for the appointment status state machine."""

from datetime import datetime

import pytest

from clinic_scheduler.core.clock import FrozenClock, SystemClock
from clinic_scheduler.core.exceptions import (
    InvalidTransitionException,
    NotCancellableException,
    NotReschedulableException,
)
from clinic_scheduler.schemas.appointments import AppointmentStatus
from clinic_scheduler.services.appointment_state import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    can_transition,
    ensure_transition,
)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.NO_SHOW),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CHECKED_IN),
        (AppointmentStatus.CHECKED_IN, AppointmentStatus.COMPLETED),
        (AppointmentStatus.CHECKED_IN, AppointmentStatus.CANCELLED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


def test_terminal_states_have_no_exits():
    for current in TERMINAL_STATUSES:
        for target in AppointmentStatus:
            assert not can_transition(current, target)


def test_active_and_terminal_partition_statuses():
    assert ACTIVE_STATUSES.isdisjoint(TERMINAL_STATUSES)
    assert ACTIVE_STATUSES | TERMINAL_STATUSES == set(AppointmentStatus)


def test_rejections_raise_specific_errors():
    with pytest.raises(NotCancellableException):
        ensure_transition(AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)
    with pytest.raises(NotReschedulableException):
        ensure_transition(AppointmentStatus.CHECKED_IN, AppointmentStatus.RESCHEDULED)
    with pytest.raises(InvalidTransitionException):
        ensure_transition("scheduled", AppointmentStatus.COMPLETED)


def test_frozen_clock_advances():
    clock = FrozenClock(datetime(2025, 3, 3, 8, 0))

    assert clock.now() == datetime(2025, 3, 3, 8, 0)
    assert clock.advance(minutes=90) == datetime(2025, 3, 3, 9, 30)
    assert clock.now() == datetime(2025, 3, 3, 9, 30)


def test_system_clock_is_naive():
    assert SystemClock("UTC").now().tzinfo is None
