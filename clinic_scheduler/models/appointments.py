"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
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

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True),
    # Patient reference (opaque to the engine)
    Column("patient_first_name", Text, nullable=False),
    Column("patient_last_name", Text, nullable=False),
    Column("patient_email", Text, nullable=True),
    Column("patient_phone", String(20), nullable=False),
    Column("patient_date_of_birth", Date, nullable=True),
    # Resource
    Column("facility_id", Uuid, nullable=False),
    Column("doctor_id", Uuid, nullable=False),
    # Timing; end_at is start_at + duration_minutes
    Column("start_at", DateTime, nullable=False),
    Column("end_at", DateTime, nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    # Visit details
    Column("appointment_type", String(50), nullable=False, default="consultation"),
    Column("reason_for_visit", Text, nullable=False),
    Column("special_requirements", Text, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, default="scheduled"),
    Column("status_notes", Text, nullable=True),
    # Reschedule linkage
    Column("rescheduled_from_id", Uuid, ForeignKey("appointments.id"), nullable=True),
    Column("rescheduled_at", DateTime, nullable=True),
    # Waiting list linkage
    Column("from_waiting_list", Boolean, nullable=False, default=False),
    Column("waiting_list_id", Uuid, nullable=True),
    # Set once reminder scheduling has run for the row
    Column("reminders_scheduled_at", DateTime, nullable=True),
    # Audit fields
    Column("booked_at", DateTime, nullable=False),
    Column("booked_by", Uuid, nullable=True),
    Column("booking_source", String(30), nullable=False, default="web"),
    Column("confirmed_at", DateTime, nullable=True),
    Column("confirmation_method", String(30), nullable=True),
    Column("checked_in_at", DateTime, nullable=True),
    Column("checked_in_by", Uuid, nullable=True),
    Column("completed_at", DateTime, nullable=True),
    Column("completion_notes", Text, nullable=True),
    Column("cancelled_at", DateTime, nullable=True),
    Column("cancelled_by", Uuid, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'checked_in', 'completed', "
        "'cancelled', 'rescheduled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
    CheckConstraint("start_at < end_at", name="appointments_window_check"),
)

# Conflict checks scan one doctor's timeline at a facility
Index(
    "idx_appointments_doctor_window",
    appointments.c.doctor_id,
    appointments.c.facility_id,
    appointments.c.start_at,
    appointments.c.end_at,
)
Index("idx_appointments_status_end", appointments.c.status, appointments.c.end_at)
# A rescheduled appointment has exactly one replacement
Index(
    "uq_appointments_rescheduled_from",
    appointments.c.rescheduled_from_id,
    unique=True,
)
