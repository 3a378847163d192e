"""Appointment reminder tasks table."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from clinic_scheduler.models.metadata import metadata

appointment_reminders = Table(
    "appointment_reminders",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("reminder_kind", String(30), nullable=False),
    Column("scheduled_for", DateTime, nullable=False),
    Column("channel", String(20), nullable=False),
    Column("recipient", Text, nullable=False),
    Column("status", String(20), nullable=False, default="pending"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    CheckConstraint(
        "reminder_kind IN ('seven_days_before', 'one_day_before', 'same_day')",
        name="appointment_reminders_kind_check",
    ),
    CheckConstraint(
        "status IN ('pending', 'dispatched', 'cancelled')",
        name="appointment_reminders_status_check",
    ),
)

Index(
    "idx_appointment_reminders_appointment_status",
    appointment_reminders.c.appointment_id,
    appointment_reminders.c.status,
)
