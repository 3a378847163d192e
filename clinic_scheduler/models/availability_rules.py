"""Doctor availability rules table using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
    text,
)

from clinic_scheduler.models.metadata import metadata

availability_rules = Table(
    "availability_rules",
    metadata,
    Column("id", Uuid, primary_key=True),
    # Resource this rule governs
    Column("doctor_id", Uuid, nullable=False),
    Column("facility_id", Uuid, nullable=False),
    Column("kind", String(20), nullable=False),
    # Regular rules: ISO weekday, 1 = Monday
    Column("day_of_week", Integer, nullable=True),
    # Specific-date and blocked rules
    Column("specific_date", Date, nullable=True),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("is_available", Boolean, nullable=False, default=True),
    Column("buffer_minutes", Integer, nullable=False, default=0),
    Column("slot_duration_minutes", Integer, nullable=False, default=30),
    Column("unavailability_reason", Text, nullable=True),
    Column("effective_from", Date, nullable=True),
    Column("effective_until", Date, nullable=True),
    # Audit fields
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "kind IN ('regular', 'specific_date', 'blocked')",
        name="availability_rules_kind_check",
    ),
    CheckConstraint(
        "kind <> 'blocked' OR is_available = false",
        name="availability_rules_blocked_unavailable_check",
    ),
    CheckConstraint("start_time < end_time", name="availability_rules_window_check"),
    CheckConstraint("buffer_minutes >= 0", name="availability_rules_buffer_check"),
)

Index(
    "idx_availability_rules_lookup",
    availability_rules.c.doctor_id,
    availability_rules.c.facility_id,
    availability_rules.c.kind,
)
Index(
    "idx_availability_rules_date",
    availability_rules.c.doctor_id,
    availability_rules.c.facility_id,
    availability_rules.c.specific_date,
)
# At most one specific-date rule per doctor, facility and date
Index(
    "uq_availability_rules_specific_date",
    availability_rules.c.doctor_id,
    availability_rules.c.facility_id,
    availability_rules.c.specific_date,
    unique=True,
    postgresql_where=text("kind = 'specific_date'"),
    sqlite_where=text("kind = 'specific_date'"),
)
