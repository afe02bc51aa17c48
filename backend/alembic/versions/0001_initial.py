"""initial scheduling schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


time_slot_enum = postgresql.ENUM("morning", "afternoon", "evening", name="time_slot", create_type=False)
request_type_enum = postgresql.ENUM(
    "donor_initiated", "staff_assignment", "walk_in", name="appointment_request_type", create_type=False
)
appointment_status_enum = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    "cancelled",
    "expired",
    "checked_in",
    "completed",
    "failed",
    name="appointment_request_status",
    create_type=False,
)
donation_status_enum = postgresql.ENUM(
    "pending",
    "checked_in",
    "health_check_passed",
    "rejected",
    "in_progress",
    "completed",
    "failed",
    name="donation_event_status",
    create_type=False,
)
urgency_enum = postgresql.ENUM("critical", "high", "medium", "low", name="blood_request_urgency", create_type=False)
blood_request_status_enum = postgresql.ENUM(
    "pending", "processing", "fulfilled", "cancelled", name="blood_request_status", create_type=False
)

ENUMS = (
    time_slot_enum,
    request_type_enum,
    appointment_status_enum,
    donation_status_enum,
    urgency_enum,
    blood_request_status_enum,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "capacity_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("time_slot", time_slot_enum, nullable=False),
        sa.Column("start_hour", sa.Integer(), nullable=False),
        sa.Column("end_hour", sa.Integer(), nullable=False),
        sa.Column("total_capacity", sa.Integer(), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.CheckConstraint("total_capacity >= 0", name="ck_capacity_slots_total_capacity"),
        sa.CheckConstraint("expiry_date >= effective_date", name="ck_capacity_slots_date_range"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_capacity_slots_day_of_week"),
    )
    op.create_index("ix_capacity_slots_location_day", "capacity_slots", ["location_id", "day_of_week"])

    op.create_table(
        "slot_reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(length=20), nullable=False),
        sa.Column("start_hour", sa.Integer(), nullable=False),
        sa.Column("end_hour", sa.Integer(), nullable=False),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "location_id",
            "slot_date",
            "time_slot",
            "start_hour",
            "end_hour",
            name="uq_slot_reservations_slot",
        ),
        sa.CheckConstraint("reserved >= 0", name="ck_slot_reservations_reserved"),
    )

    op.create_table(
        "blood_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("blood_group_id", sa.Integer(), nullable=False),
        sa.Column("component_type_id", sa.Integer(), nullable=False),
        sa.Column("quantity_units", sa.Integer(), nullable=False),
        sa.Column("urgency_level", urgency_enum, nullable=False, server_default="medium"),
        sa.Column("is_emergency", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", blood_request_status_enum, nullable=False, server_default="pending"),
        sa.Column("status_note", sa.Text(), nullable=True),
        sa.Column("needed_by_date", sa.Date(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "appointment_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("donor_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("capacity_slot_id", sa.Integer(), sa.ForeignKey("capacity_slots.id"), nullable=False),
        sa.Column("blood_group_id", sa.Integer(), nullable=True),
        sa.Column("component_type_id", sa.Integer(), nullable=True),
        sa.Column("preferred_date", sa.Date(), nullable=False),
        sa.Column("preferred_time_slot", time_slot_enum, nullable=False),
        sa.Column("start_hour", sa.Integer(), nullable=False),
        sa.Column("end_hour", sa.Integer(), nullable=False),
        sa.Column("request_type", request_type_enum, nullable=False),
        sa.Column("initiated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("status", appointment_status_enum, nullable=False, server_default="pending"),
        sa.Column("is_urgent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
        sa.Column(
            "related_blood_request_id", sa.Integer(), sa.ForeignKey("blood_requests.id"), nullable=True
        ),
        sa.Column("auto_expire_hours", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("donor_accepted", sa.Boolean(), nullable=True),
        sa.Column("donor_response_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("donor_response_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
        sa.Column("confirmed_date", sa.Date(), nullable=True),
        sa.Column("confirmed_time_slot", time_slot_enum, nullable=True),
        sa.Column("confirmed_location_id", sa.Integer(), nullable=True),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("priority BETWEEN 1 AND 5", name="ck_appointment_requests_priority"),
    )
    op.create_index("ix_appointment_requests_donor_id", "appointment_requests", ["donor_id"])
    op.create_index("ix_appointment_requests_location_id", "appointment_requests", ["location_id"])
    op.create_index("ix_appointment_requests_preferred_date", "appointment_requests", ["preferred_date"])
    op.create_index("ix_appointment_requests_status", "appointment_requests", ["status"])
    op.create_index(
        "ix_appointment_requests_related_blood_request_id",
        "appointment_requests",
        ["related_blood_request_id"],
    )

    op.create_table(
        "donation_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "appointment_request_id",
            sa.Integer(),
            sa.ForeignKey("appointment_requests.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("donor_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("blood_group_id", sa.Integer(), nullable=True),
        sa.Column("component_type_id", sa.Integer(), nullable=True),
        sa.Column("staff_id", sa.Integer(), nullable=True),
        sa.Column("status", donation_status_enum, nullable=False, server_default="pending"),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("blood_pressure", sa.String(length=20), nullable=True),
        sa.Column("temperature", sa.Float(), nullable=True),
        sa.Column("hemoglobin_level", sa.Float(), nullable=True),
        sa.Column("weight", sa.Float(), nullable=True),
        sa.Column("height", sa.Float(), nullable=True),
        sa.Column("verified_blood_group_id", sa.Integer(), nullable=True),
        sa.Column("is_eligible", sa.Boolean(), nullable=True),
        sa.Column("medical_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.Column("health_check_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("donation_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("donation_date", sa.Date(), nullable=True),
        sa.Column("quantity_donated", sa.Float(), nullable=True),
        sa.Column("quantity_units", sa.Integer(), nullable=True),
        sa.Column("complication_type", sa.String(length=120), nullable=True),
        sa.Column("complication_details", sa.Text(), nullable=True),
        sa.Column("collected_amount", sa.Float(), nullable=True),
        sa.Column("is_usable", sa.Boolean(), nullable=True),
        sa.Column("action_taken", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_donation_events_donor_id", "donation_events", ["donor_id"])
    op.create_index("ix_donation_events_status", "donation_events", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("request_id", sa.String(length=120), nullable=True),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("donation_events")
    op.drop_table("appointment_requests")
    op.drop_table("blood_requests")
    op.drop_table("slot_reservations")
    op.drop_table("capacity_slots")
    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
