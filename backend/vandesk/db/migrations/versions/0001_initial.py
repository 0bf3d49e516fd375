"""Initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-01-01 00:00:00
"""
from typing import Sequence, Union
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("roles", sa.String(255), nullable=False, server_default="field_staff"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # ── van_incidents ─────────────────────────────────────────────────────────
    op.create_table(
        "van_incidents",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reporter_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ops_area", sa.String(100), nullable=False),
        sa.Column("trip_id", sa.String(100), nullable=True),
        sa.Column("van_id", sa.String(50), nullable=False),
        sa.Column("license_plate", sa.String(30), nullable=False),
        sa.Column("vin", sa.String(30), nullable=False),
        sa.Column("incident_date", sa.Date, nullable=False),
        sa.Column("incident_time", sa.Time, nullable=False),
        sa.Column("location_text", sa.String(500), nullable=False),
        sa.Column("weather", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("vehicle_drivable", sa.Boolean, nullable=True),
        sa.Column("was_towed", sa.Boolean, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("ops_admin_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("internal_notes", sa.Text, nullable=True),
        sa.Column("confirmation_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_cost_bucket", sa.String(20), nullable=True),
        sa.Column("ai_severity", sa.String(20), nullable=True),
        sa.Column("ai_confidence", sa.String(10), nullable=True),
        sa.Column("ai_repair_complexity", sa.String(10), nullable=True),
        sa.Column("ai_cost_range", sa.String(100), nullable=True),
        sa.Column("ai_damaged_components", postgresql.JSONB, nullable=True),
        sa.Column("ai_analysis_notes", sa.Text, nullable=True),
        sa.Column("season_incident_count", sa.Integer, nullable=True),
        sa.Column("ld_review_status", sa.String(20), nullable=True),
        sa.Column("ld_preventability_decision", sa.String(20), nullable=True),
        sa.Column("ld_reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ld_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ld_review_comment", sa.Text, nullable=True),
        sa.Column("ld_cost_bucket_override", sa.String(20), nullable=True),
        sa.Column("ld_draft_content", postgresql.JSONB, nullable=True),
        sa.Column("ld_edited_draft", postgresql.JSONB, nullable=True),
        sa.Column("ld_draft_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("ld_draft_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_email_content", postgresql.JSONB, nullable=True),
        sa.Column("ops_email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ops_email_sent_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["reporter_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["ops_admin_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["ld_reviewed_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["ops_email_sent_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('submitted','in_review','closed')", name="ck_van_incidents_status"),
        sa.CheckConstraint(
            "ld_review_status IS NULL OR ld_review_status = 'pending' "
            "OR (ld_reviewed_by IS NOT NULL AND ld_reviewed_at IS NOT NULL)",
            name="ck_van_incidents_ld_decided",
        ),
    )
    op.create_index("ix_van_incidents_reporter_id", "van_incidents", ["reporter_id"])
    op.create_index("ix_van_incidents_ops_area", "van_incidents", ["ops_area"])
    op.create_index("ix_van_incidents_incident_date", "van_incidents", ["incident_date"])
    op.create_index("ix_van_incidents_ld_review_status", "van_incidents", ["ld_review_status"])
    op.create_index("ix_van_incidents_ld_draft_status", "van_incidents", ["ld_draft_status"])

    op.create_table(
        "van_incident_files",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("incident_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("file_path", sa.String(1000), nullable=False),
        sa.Column("file_type", sa.String(100), nullable=False),
        sa.Column("file_name", sa.String(500), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["incident_id"], ["van_incidents.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_van_incident_files_incident_id", "van_incident_files", ["incident_id"])

    op.create_table(
        "incident_review_comments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("incident_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["incident_id"], ["van_incidents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_incident_review_comments_incident_id", "incident_review_comments", ["incident_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("detail", postgresql.JSONB, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("trace_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("ix_audit_log_resource", "audit_log", ["resource_type", "resource_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("incident_review_comments")
    op.drop_table("van_incident_files")
    op.drop_table("van_incidents")
    op.drop_table("users")
