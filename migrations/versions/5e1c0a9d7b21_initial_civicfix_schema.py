"""initial_civicfix_schema

Creates the CivicFix schema:
  - reports        - citizen hazard reports (raw classification + triage state)
  - teams          - response teams (soft-deleted via is_active)
  - notifications  - citizen notifications keyed by user id and/or device id
  - report_notes   - staff notes, optionally public
  - activity_log   - append-only per-report action trail

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 5e1c0a9d7b21
Revises:
Create Date: 2026-10-19 09:12:40.118302
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1c0a9d7b21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Reports ───────────────────────────────────────────────────────────
    if "reports" not in existing:
        op.create_table(
            "reports",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("image_url", sa.String(length=500), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True,
                      comment="Label as classified"),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("ai_model", sa.String(length=100), nullable=True,
                      comment="Model that produced the classification"),
            sa.Column("reporter_id", sa.String(length=100), nullable=True,
                      comment="Authenticated user id"),
            sa.Column("device_id", sa.String(length=100), nullable=True,
                      comment="Anonymous device id"),
            sa.Column("assigned_to", sa.String(length=200), nullable=True,
                      comment="Team name"),
            sa.Column("priority", sa.String(length=20), nullable=True,
                      comment="Manual override; derived when NULL"),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("proof_image_url", sa.String(length=500), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_reports_status", "reports", ["status"])
        op.create_index("idx_reports_created", "reports", ["created_at"])
        op.create_index("ix_reports_reporter_id", "reports", ["reporter_id"])
        op.create_index("ix_reports_device_id", "reports", ["device_id"])
        op.create_index("ix_reports_assigned_to", "reports", ["assigned_to"])

    # ── Teams ─────────────────────────────────────────────────────────────
    if "teams" not in existing:
        op.create_table(
            "teams",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("department", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("members_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("contact_email", sa.String(length=200), nullable=True),
            sa.Column("contact_phone", sa.String(length=50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=True),
            sa.Column("user_id", sa.String(length=100), nullable=True),
            sa.Column("device_id", sa.String(length=100), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True,
                      comment="Report status at notification time"),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_report_id", "notifications", ["report_id"])
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_device_id", "notifications", ["device_id"])

    # ── Report notes ──────────────────────────────────────────────────────
    if "report_notes" not in existing:
        op.create_table(
            "report_notes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("author_id", sa.String(length=100), nullable=True),
            sa.Column("author_name", sa.String(length=200), nullable=False),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("mentions", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_report_notes_report_id", "report_notes", ["report_id"])

    # ── Activity log ──────────────────────────────────────────────────────
    if "activity_log" not in existing:
        op.create_table(
            "activity_log",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=True),
            sa.Column("action", sa.String(length=50), nullable=False),
            sa.Column("performed_by", sa.String(length=200), nullable=False),
            sa.Column("performed_by_type", sa.String(length=20), nullable=False),
            sa.Column("details", sa.Text(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_activity_log_report_id", "activity_log", ["report_id"])
        op.create_index("idx_activity_report_created", "activity_log", ["report_id", "created_at"])


def downgrade():
    op.drop_table("activity_log")
    op.drop_table("report_notes")
    op.drop_table("notifications")
    op.drop_table("teams")
    op.drop_table("reports")
