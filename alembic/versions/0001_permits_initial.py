"""permit to work initial schema

Revision ID: 0001_permits_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_permits_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("department", sa.String(), nullable=False, server_default=""),
        sa.Column("role", sa.String(), nullable=False, server_default="employee"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "work_locations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("building", sa.String(), nullable=True),
        sa.Column("area", sa.String(), nullable=True),
        sa.Column("map_position_x", sa.Float(), nullable=True),
        sa.Column("map_position_y", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "map_backgrounds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=False, server_default="800"),
        sa.Column("height", sa.Integer(), nullable=False, server_default="600"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "permits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("permit_id", sa.String(), nullable=False, unique=True),
        sa.Column("type", sa.String(), nullable=False, server_default="general"),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("location", sa.String(), nullable=False, server_default=""),
        sa.Column("work_location_id", sa.Integer(), sa.ForeignKey("work_locations.id"), nullable=True),
        sa.Column("department", sa.String(), nullable=False, server_default=""),
        sa.Column("requestor_name", sa.String(), nullable=False, server_default=""),
        sa.Column("contact_number", sa.String(), nullable=True),
        sa.Column("emergency_contact", sa.String(), nullable=True),
        sa.Column("additional_comments", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("work_started_at", sa.DateTime(), nullable=True),
        sa.Column("work_completed_at", sa.DateTime(), nullable=True),
        sa.Column("selected_hazards", sa.JSON(), nullable=False),
        sa.Column("hazard_notes", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("identified_hazards", sa.Text(), nullable=True),
        sa.Column("overall_risk", sa.String(), nullable=True),
        sa.Column("immediate_actions", sa.Text(), nullable=True),
        sa.Column("before_work_starts", sa.Text(), nullable=True),
        sa.Column("compliance_notes", sa.Text(), nullable=True),
        sa.Column("department_head", sa.String(), nullable=True),
        sa.Column("department_head_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("department_head_approval_date", sa.DateTime(), nullable=True),
        sa.Column("safety_officer", sa.String(), nullable=True),
        sa.Column("safety_officer_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("safety_officer_approval_date", sa.DateTime(), nullable=True),
        sa.Column("maintenance_approver", sa.String(), nullable=True),
        sa.Column("maintenance_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("maintenance_approval_date", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("map_position_x", sa.Float(), nullable=True),
        sa.Column("map_position_y", sa.Float(), nullable=True),
        sa.Column("performer_name", sa.String(), nullable=True),
        sa.Column("performer_signature", sa.Text(), nullable=True),
        sa.Column("completed_measures", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_permits_status", "permits", ["status"])

    op.create_table(
        "permit_attachments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("permit_id", sa.Integer(), sa.ForeignKey("permits.id"), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("original_name", sa.String(), nullable=False),
        sa.Column("file_type", sa.String(), nullable=False, server_default="document"),
        sa.Column("mime_type", sa.String(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("file_url", sa.String(), nullable=False),
        sa.Column("uploaded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "ai_suggestions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("permit_id", sa.Integer(), sa.ForeignKey("permits.id"), nullable=False),
        sa.Column("batch_id", sa.String(), nullable=True),
        sa.Column("suggestion_type", sa.String(), nullable=False, server_default="improvement"),
        sa.Column("field_name", sa.String(), nullable=True),
        sa.Column("original_value", sa.Text(), nullable=True),
        sa.Column("suggested_value", sa.Text(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=False, server_default=""),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("applied_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ai_suggestions_permit_batch", "ai_suggestions", ["permit_id", "batch_id"])

    op.create_table(
        "analysis_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("permit_id", sa.Integer(), sa.ForeignKey("permits.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="queued"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("suggestion_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "webhook_configs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("webhook_url", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_tested_at", sa.DateTime(), nullable=True),
        sa.Column("last_test_status", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="info"),
        sa.Column("related_permit_id", sa.Integer(), sa.ForeignKey("permits.id"), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "app_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("app_name", sa.String(), nullable=False, server_default="Arbeitserlaubnis"),
        sa.Column("logo_url", sa.String(), nullable=True),
        sa.Column("header_background_color", sa.String(), nullable=False, server_default="#1e293b"),
        sa.Column("header_text_color", sa.String(), nullable=False, server_default="#ffffff"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_table("notifications")
    op.drop_table("webhook_configs")
    op.drop_table("analysis_runs")
    op.drop_index("ix_ai_suggestions_permit_batch", table_name="ai_suggestions")
    op.drop_table("ai_suggestions")
    op.drop_table("permit_attachments")
    op.drop_index("ix_permits_status", table_name="permits")
    op.drop_table("permits")
    op.drop_table("map_backgrounds")
    op.drop_table("work_locations")
    op.drop_table("users")
