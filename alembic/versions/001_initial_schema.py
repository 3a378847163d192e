"""Initial schema - scheduling tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Directory
    op.create_table(
        "facilities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "doctors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "schedule_locks",
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("facility_id", sa.Uuid(), nullable=False),
        sa.Column("locked_at", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("doctor_id", "facility_id", name="schedule_locks_pkey"),
    )

    # Availability rules
    op.create_table(
        "availability_rules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("facility_id", sa.Uuid(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("specific_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("buffer_minutes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("slot_duration_minutes", sa.Integer(), server_default="30", nullable=False),
        sa.Column("unavailability_reason", sa.Text(), nullable=True),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_until", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "kind IN ('regular', 'specific_date', 'blocked')",
            name="availability_rules_kind_check",
        ),
        sa.CheckConstraint(
            "kind <> 'blocked' OR is_available = false",
            name="availability_rules_blocked_unavailable_check",
        ),
        sa.CheckConstraint("start_time < end_time", name="availability_rules_window_check"),
        sa.CheckConstraint("buffer_minutes >= 0", name="availability_rules_buffer_check"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_availability_rules_lookup",
        "availability_rules",
        ["doctor_id", "facility_id", "kind"],
    )
    op.create_index(
        "idx_availability_rules_date",
        "availability_rules",
        ["doctor_id", "facility_id", "specific_date"],
    )
    op.create_index(
        "uq_availability_rules_specific_date",
        "availability_rules",
        ["doctor_id", "facility_id", "specific_date"],
        unique=True,
        postgresql_where=sa.text("kind = 'specific_date'"),
        sqlite_where=sa.text("kind = 'specific_date'"),
    )

    # Appointments
    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("patient_first_name", sa.Text(), nullable=False),
        sa.Column("patient_last_name", sa.Text(), nullable=False),
        sa.Column("patient_email", sa.Text(), nullable=True),
        sa.Column("patient_phone", sa.String(length=20), nullable=False),
        sa.Column("patient_date_of_birth", sa.Date(), nullable=True),
        sa.Column("facility_id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column(
            "appointment_type", sa.String(length=50), server_default="consultation", nullable=False
        ),
        sa.Column("reason_for_visit", sa.Text(), nullable=False),
        sa.Column("special_requirements", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="scheduled", nullable=False),
        sa.Column("status_notes", sa.Text(), nullable=True),
        sa.Column("rescheduled_from_id", sa.Uuid(), nullable=True),
        sa.Column("rescheduled_at", sa.DateTime(), nullable=True),
        sa.Column("from_waiting_list", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("waiting_list_id", sa.Uuid(), nullable=True),
        sa.Column("reminders_scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("booked_at", sa.DateTime(), nullable=False),
        sa.Column("booked_by", sa.Uuid(), nullable=True),
        sa.Column("booking_source", sa.String(length=30), server_default="web", nullable=False),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("confirmation_method", sa.String(length=30), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(), nullable=True),
        sa.Column("checked_in_by", sa.Uuid(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'checked_in', 'completed', "
            "'cancelled', 'rescheduled', 'no_show')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
        sa.CheckConstraint("start_at < end_at", name="appointments_window_check"),
        sa.ForeignKeyConstraint(["rescheduled_from_id"], ["appointments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_appointments_doctor_window",
        "appointments",
        ["doctor_id", "facility_id", "start_at", "end_at"],
    )
    op.create_index("idx_appointments_status_end", "appointments", ["status", "end_at"])
    op.create_index(
        "uq_appointments_rescheduled_from",
        "appointments",
        ["rescheduled_from_id"],
        unique=True,
    )

    # Reminders
    op.create_table(
        "appointment_reminders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=False),
        sa.Column("reminder_kind", sa.String(length=30), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "reminder_kind IN ('seven_days_before', 'one_day_before', 'same_day')",
            name="appointment_reminders_kind_check",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'dispatched', 'cancelled')",
            name="appointment_reminders_status_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_appointment_reminders_appointment_status",
        "appointment_reminders",
        ["appointment_id", "status"],
    )

    # Waiting list
    op.create_table(
        "appointment_waiting_list",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("facility_id", sa.Uuid(), nullable=False),
        sa.Column("preferred_doctor_id", sa.Uuid(), nullable=True),
        sa.Column("patient_first_name", sa.Text(), nullable=False),
        sa.Column("patient_last_name", sa.Text(), nullable=False),
        sa.Column("patient_email", sa.Text(), nullable=True),
        sa.Column("patient_phone", sa.String(length=20), nullable=False),
        sa.Column("patient_date_of_birth", sa.Date(), nullable=True),
        sa.Column("reason_for_visit", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(length=20), server_default="medium", nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="active", nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('active', 'scheduled', 'expired')",
            name="appointment_waiting_list_status_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_waiting_list_facility_position",
        "appointment_waiting_list",
        ["facility_id", "position"],
        unique=True,
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("uq_waiting_list_facility_position", table_name="appointment_waiting_list")
    op.drop_table("appointment_waiting_list")

    op.drop_index(
        "idx_appointment_reminders_appointment_status", table_name="appointment_reminders"
    )
    op.drop_table("appointment_reminders")

    op.drop_index("uq_appointments_rescheduled_from", table_name="appointments")
    op.drop_index("idx_appointments_status_end", table_name="appointments")
    op.drop_index("idx_appointments_doctor_window", table_name="appointments")
    op.drop_table("appointments")

    op.drop_index("uq_availability_rules_specific_date", table_name="availability_rules")
    op.drop_index("idx_availability_rules_date", table_name="availability_rules")
    op.drop_index("idx_availability_rules_lookup", table_name="availability_rules")
    op.drop_table("availability_rules")

    op.drop_table("schedule_locks")
    op.drop_table("doctors")
    op.drop_table("facilities")
