"""Appointment waiting list table."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from clinic_scheduler.models.metadata import metadata

appointment_waiting_list = Table(
    "appointment_waiting_list",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("facility_id", Uuid, nullable=False),
    Column("preferred_doctor_id", Uuid, nullable=True),
    # Patient reference
    Column("patient_first_name", Text, nullable=False),
    Column("patient_last_name", Text, nullable=False),
    Column("patient_email", Text, nullable=True),
    Column("patient_phone", String(20), nullable=False),
    Column("patient_date_of_birth", Date, nullable=True),
    Column("reason_for_visit", Text, nullable=False),
    Column("priority", String(20), nullable=False, default="medium"),
    # Append-only sequence per facility, 1-based
    Column("position", Integer, nullable=False),
    Column("status", String(20), nullable=False, default="active"),
    Column("appointment_id", Uuid, ForeignKey("appointments.id"), nullable=True),
    Column("scheduled_at", DateTime, nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('active', 'scheduled', 'expired')",
        name="appointment_waiting_list_status_check",
    ),
)

Index(
    "uq_waiting_list_facility_position",
    appointment_waiting_list.c.facility_id,
    appointment_waiting_list.c.position,
    unique=True,
)
