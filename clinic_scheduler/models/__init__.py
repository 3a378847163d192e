"""Database models."""

from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.availability_rules import availability_rules
from clinic_scheduler.models.directory import doctors, facilities, schedule_locks
from clinic_scheduler.models.metadata import metadata
from clinic_scheduler.models.reminders import appointment_reminders
from clinic_scheduler.models.waiting_list import appointment_waiting_list

__all__ = [
    "appointment_reminders",
    "appointment_waiting_list",
    "appointments",
    "availability_rules",
    "doctors",
    "facilities",
    "metadata",
    "schedule_locks",
]
