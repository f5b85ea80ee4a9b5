"""phase_progress_engine_tables

Creates the engine schema:
  - users                  — principals referenced by ledgers and audit rows
  - projects / phases      — project with ordered phases and derived aggregates
  - work_logs              — hours ledger (soft delete)
  - progress_adjustments   — append-only manual override trail
  - phase_payments         — payment ledger (soft delete)
  - audit_logs             — lifecycle / ledger audit trail
  - notifications          — in-app notifications

Tables are created conditionally so the migration can run against a
database that already received them via db.create_all() in development.

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c3e5f70001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="engineer",
                      comment="engineer | supervisor | administrator"),
            sa.Column("job_description", sa.String(length=200), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("role IN ('engineer', 'supervisor', 'administrator')", name="ck_users_role"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("client_name", sa.String(length=200), nullable=True),
            sa.Column("location", sa.String(length=200), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active",
                      comment="active | on_hold | completed | cancelled"),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Phases ────────────────────────────────────────────────────────────
    if "phases" not in existing:
        op.create_table(
            "phases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase_order", sa.Integer(), nullable=False,
                      comment="1-based position, unique per project"),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("is_custom", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("planned_weeks", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("planned_start_date", sa.Date(), nullable=True),
            sa.Column("planned_end_date", sa.Date(), nullable=True),
            sa.Column("actual_start_date", sa.Date(), nullable=True),
            sa.Column("actual_end_date", sa.Date(), nullable=True),
            sa.Column("submitted_date", sa.Date(), nullable=True),
            sa.Column("approved_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started",
                      comment="not_started | ready | in_progress | submitted | approved | completed"),
            sa.Column("delay_reason", sa.String(length=10), nullable=False, server_default="none",
                      comment="none | client | company"),
            sa.Column("warning_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("early_access_granted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("early_access_status", sa.String(length=20), nullable=False,
                      server_default="not_accessible",
                      comment="not_accessible | accessible | in_progress"),
            sa.Column("early_access_granted_by", sa.Integer(), nullable=True),
            sa.Column("early_access_granted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("early_access_note", sa.Text(), nullable=True),
            sa.Column("predicted_hours", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("actual_hours", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("calculated_progress", sa.Numeric(5, 2), nullable=False, server_default="0"),
            sa.Column("actual_progress", sa.Numeric(5, 2), nullable=False, server_default="0"),
            sa.Column("progress_variance", sa.Numeric(6, 2), nullable=False, server_default="0"),
            sa.Column("total_amount", sa.Numeric(14, 2), nullable=True,
                      comment="NULL = no contracted total"),
            sa.Column("paid_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="unpaid",
                      comment="unpaid | partially_paid | fully_paid"),
            sa.Column("payment_deadline", sa.Date(), nullable=True),
            sa.Column("payment_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("actual_progress >= 0 AND actual_progress <= 100",
                               name="ck_phases_actual_progress"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["early_access_granted_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "phase_order", name="uq_phases_project_order"),
        )
        op.create_index("ix_phases_project_id", "phases", ["project_id"])
        op.create_index("ix_phases_project_status", "phases", ["project_id", "status"])

    # ── Work logs ─────────────────────────────────────────────────────────
    if "work_logs" not in existing:
        op.create_table(
            "work_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("phase_id", sa.Integer(), nullable=False),
            sa.Column("engineer_id", sa.Integer(), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("hours", sa.Numeric(5, 2), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_by", sa.Integer(), nullable=True),
            sa.CheckConstraint("hours > 0", name="ck_work_logs_hours_positive"),
            sa.ForeignKeyConstraint(["phase_id"], ["phases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["engineer_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_work_logs_phase_id", "work_logs", ["phase_id"])
        op.create_index("ix_work_logs_engineer_id", "work_logs", ["engineer_id"])
        op.create_index("ix_work_logs_deleted_at", "work_logs", ["deleted_at"])
        op.create_index("ix_work_logs_phase_engineer", "work_logs", ["phase_id", "engineer_id"])

    # ── Progress adjustments ──────────────────────────────────────────────
    if "progress_adjustments" not in existing:
        op.create_table(
            "progress_adjustments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("phase_id", sa.Integer(), nullable=False),
            sa.Column("engineer_id", sa.Integer(), nullable=True),
            sa.Column("work_log_id", sa.Integer(), nullable=True),
            sa.Column("adjustment_type", sa.String(length=20), nullable=False,
                      server_default="phase_engineer",
                      comment="phase_engineer | work_log_entry | phase_overall"),
            sa.Column("hours_logged", sa.Numeric(10, 2), nullable=False),
            sa.Column("hours_based_progress", sa.Numeric(5, 2), nullable=False),
            sa.Column("manual_progress_percentage", sa.Numeric(5, 2), nullable=False),
            sa.Column("adjustment_reason", sa.Text(), nullable=False),
            sa.Column("adjusted_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint(
                "manual_progress_percentage >= 0 AND manual_progress_percentage <= 100",
                name="ck_progress_adjustments_pct",
            ),
            sa.ForeignKeyConstraint(["phase_id"], ["phases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["engineer_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["work_log_id"], ["work_logs.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["adjusted_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_progress_adjustments_phase_id", "progress_adjustments", ["phase_id"])
        op.create_index("ix_progress_adjustments_engineer_id", "progress_adjustments", ["engineer_id"])
        op.create_index("ix_progress_adjustments_phase_engineer", "progress_adjustments",
                        ["phase_id", "engineer_id"])

    # ── Phase payments ────────────────────────────────────────────────────
    if "phase_payments" not in existing:
        op.create_table(
            "phase_payments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("phase_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("payment_amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("payment_date", sa.Date(), nullable=False),
            sa.Column("payment_type", sa.String(length=20), nullable=False, server_default="partial",
                      comment="advance | partial | milestone | final"),
            sa.Column("payment_method", sa.String(length=20), nullable=True,
                      comment="bank_transfer | cheque | cash | other"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("recorded_by", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_by", sa.Integer(), nullable=True),
            sa.CheckConstraint("payment_amount > 0", name="ck_phase_payments_amount_positive"),
            sa.ForeignKeyConstraint(["phase_id"], ["phases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["recorded_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_phase_payments_phase_id", "phase_payments", ["phase_id"])
        op.create_index("ix_phase_payments_project_id", "phase_payments", ["project_id"])
        op.create_index("ix_phase_payments_deleted_at", "phase_payments", ["deleted_at"])

    # ── Audit logs ────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_project", "audit_logs", ["project_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("event", sa.String(length=40), nullable=False, server_default="notification"),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("phase_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade():
    for table in (
        "notifications",
        "audit_logs",
        "phase_payments",
        "progress_adjustments",
        "work_logs",
        "phases",
        "projects",
        "users",
    ):
        op.drop_table(table)
