"""initial_sampling_schema

Create farmers, activities, call tasks, cooling periods and the sampling
config / run / audit tables.

Revision ID: a1f0c3d2e401
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1f0c3d2e401"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "farmers" not in existing_tables:
        op.create_table(
            "farmers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("mobile_number", sa.String(length=20), nullable=False),
            sa.Column("location", sa.String(length=200), nullable=True),
            sa.Column("preferred_language", sa.String(length=30), nullable=True),
            sa.Column("territory", sa.String(length=200), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("mobile_number"),
        )

    if "activities" not in existing_tables:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.String(length=100), nullable=False),
            sa.Column("type", sa.String(length=50), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("officer_id", sa.String(length=100), nullable=True),
            sa.Column("officer_name", sa.String(length=200), nullable=True),
            sa.Column("location", sa.String(length=200), nullable=True),
            sa.Column("territory", sa.String(length=200), nullable=True),
            sa.Column("first_sample_run", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("first_sampled_at"),
            sa.Column("lifecycle_status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("pre_ineligible_status", sa.String(length=20), nullable=True),
            _ts("lifecycle_updated_at"),
            _ts("last_sampling_run_at"),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("activity_id"),
        )
        op.create_index("ix_activities_type", "activities", ["type"])
        op.create_index("ix_activities_date", "activities", ["date"])
        op.create_index("ix_activities_officer_id", "activities", ["officer_id"])
        op.create_index(
            "ix_activities_lifecycle_first_date", "activities",
            ["lifecycle_status", "first_sample_run", "date"],
        )

    if "activity_farmers" not in existing_tables:
        op.create_table(
            "activity_farmers",
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("farmer_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("activity_id", "farmer_id"),
        )

    if "call_tasks" not in existing_tables:
        op.create_table(
            "call_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("farmer_id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="unassigned"),
            sa.Column("assigned_agent_id", sa.String(length=150), nullable=True),
            _ts("scheduled_date", nullable=False),
            sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("call_log", sa.JSON(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("activity_id", "farmer_id", name="uq_call_task_activity_farmer"),
        )
        op.create_index("ix_call_tasks_farmer_id", "call_tasks", ["farmer_id"])
        op.create_index("ix_call_tasks_activity_id", "call_tasks", ["activity_id"])
        op.create_index("ix_call_tasks_status", "call_tasks", ["status"])
        op.create_index("ix_call_tasks_assigned_agent_id", "call_tasks", ["assigned_agent_id"])

    if "cooling_periods" not in existing_tables:
        op.create_table(
            "cooling_periods",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("farmer_id", sa.Integer(), nullable=False),
            _ts("last_call_date", nullable=False),
            sa.Column("cooling_period_days", sa.Integer(), nullable=False, server_default="30"),
            _ts("expires_at", nullable=False),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("farmer_id"),
        )
        op.create_index("ix_cooling_periods_expires_at", "cooling_periods", ["expires_at"])

    if "sampling_config" not in existing_tables:
        op.create_table(
            "sampling_config",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=20), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("activity_cooling_days", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("farmer_cooling_days", sa.Integer(), nullable=False, server_default="30"),
            sa.Column("default_percentage", sa.Float(), nullable=False, server_default="10"),
            sa.Column("activity_type_percentages", sa.JSON(), nullable=False),
            sa.Column("eligible_activity_types", sa.JSON(), nullable=False),
            sa.Column("auto_run_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("auto_run_threshold", sa.Integer(), nullable=False, server_default="200"),
            sa.Column("auto_run_activate_from", sa.Date(), nullable=True),
            sa.Column("task_due_in_days", sa.Integer(), nullable=False, server_default="0"),
            _ts("last_auto_run_at"),
            sa.Column("last_auto_run_id", sa.Integer(), nullable=True),
            sa.Column("last_auto_run_matched", sa.Integer(), nullable=True),
            sa.Column("last_auto_run_processed", sa.Integer(), nullable=True),
            sa.Column("last_auto_run_tasks_created", sa.Integer(), nullable=True),
            sa.Column("updated_by_user_id", sa.String(length=150), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key"),
        )

    if "sampling_runs" not in existing_tables:
        op.create_table(
            "sampling_runs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("created_by_user_id", sa.String(length=150), nullable=True),
            sa.Column("run_type", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            _ts("started_at", nullable=False),
            _ts("finished_at"),
            sa.Column("lifecycle_status", sa.String(length=20), nullable=True),
            sa.Column("date_from", sa.Date(), nullable=True),
            sa.Column("date_to", sa.Date(), nullable=True),
            sa.Column("sampling_percentage", sa.Float(), nullable=True),
            sa.Column("force_run", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("activity_ids_count", sa.Integer(), nullable=True),
            sa.Column("scheduled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("matched", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("processed", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("tasks_created_total", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sampled_activities", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("inactive_activities", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
            _ts("last_progress_at"),
            sa.Column("last_activity_id", sa.Integer(), nullable=True),
            sa.Column("error_messages", sa.JSON(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sampling_runs_created_by_user_id", "sampling_runs", ["created_by_user_id"])
        op.create_index("ix_sampling_runs_status", "sampling_runs", ["status"])
        op.create_index("ix_sampling_runs_user_started", "sampling_runs",
                        ["created_by_user_id", "started_at"])
        op.create_index("ix_sampling_runs_user_type_started", "sampling_runs",
                        ["created_by_user_id", "run_type", "started_at"])

    if "sampling_audits" not in existing_tables:
        op.create_table(
            "sampling_audits",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("run_id", sa.Integer(), nullable=True),
            sa.Column("sampling_percentage", sa.Float(), nullable=False),
            sa.Column("total_farmers", sa.Integer(), nullable=False),
            sa.Column("sampled_count", sa.Integer(), nullable=False),
            sa.Column("algorithm", sa.String(length=50), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=False),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sampling_audits_activity_id", "sampling_audits", ["activity_id"])
        op.create_index("ix_sampling_audits_run_id", "sampling_audits", ["run_id"])
        op.create_index("ix_sampling_audits_created_at", "sampling_audits", ["created_at"])


def downgrade():
    for table in (
        "sampling_audits", "sampling_runs", "sampling_config", "cooling_periods",
        "call_tasks", "activity_farmers", "activities", "farmers",
    ):
        op.drop_table(table)
