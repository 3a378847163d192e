"""Facility/doctor directory tables and the per-schedule lock table."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    PrimaryKeyConstraint,
    Table,
    Text,
    Uuid,
    func,
)

from clinic_scheduler.models.metadata import metadata

facilities = Table(
    "facilities",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("name", Text, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("full_name", Text, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

# One row per doctor+facility; booking transactions lock it FOR UPDATE so
# writes against the same timeline are serialized even when no appointment
# rows exist yet in the requested window.
schedule_locks = Table(
    "schedule_locks",
    metadata,
    Column("doctor_id", Uuid, nullable=False),
    Column("facility_id", Uuid, nullable=False),
    Column("locked_at", DateTime, nullable=True, server_default=func.now()),
    PrimaryKeyConstraint("doctor_id", "facility_id", name="schedule_locks_pkey"),
)
