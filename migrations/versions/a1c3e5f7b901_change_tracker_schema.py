"""Change tracker schema: users, tasks, events, hour revisions, access meta, weekly plans

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1c3e5f7b901"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "app_users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(256)),
        sa.Column("role", sa.String(20), nullable=False, server_default="client"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("approved_by_user_id", sa.String(64), sa.ForeignKey("app_users.id", ondelete="SET NULL")),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("rejection_reason", sa.Text()),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)

    op.create_table(
        "project_tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("change_points", sa.JSON(), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=False),
        sa.Column("client_name", sa.String(200)),
        sa.Column("status", sa.String(30), nullable=False, server_default="Requested"),
        sa.Column("delivery_date", sa.Date()),
        sa.Column("client_review_date", sa.Date()),
        sa.Column("confirmed_date", sa.Date()),
        sa.Column("approved_date", sa.Date()),
        sa.Column("start_date", sa.Date()),
        sa.Column("completed_date", sa.Date()),
        sa.Column("handover_date", sa.Date()),
        sa.Column("estimated_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("logged_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("hourly_rate", sa.Float()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_project_tasks_status", "project_tasks", ["status"])
    op.create_index("ix_project_tasks_requested_date", "project_tasks", ["requested_date"])

    op.create_table(
        "task_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(64), sa.ForeignKey("project_tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_event_id", sa.String(64), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="status_change"),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("task_id", "source_event_id", name="uq_task_events_source"),
    )
    op.create_index("ix_task_events_task_id", "task_events", ["task_id"])

    op.create_table(
        "task_hour_revisions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(64), sa.ForeignKey("project_tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_revision_id", sa.String(64), nullable=False),
        sa.Column("previous_estimated_hours", sa.Float(), nullable=False),
        sa.Column("next_estimated_hours", sa.Float(), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("task_id", "source_revision_id", name="uq_task_hour_revisions_source"),
    )
    op.create_index("ix_task_hour_revisions_task_id", "task_hour_revisions", ["task_id"])

    op.create_table(
        "task_access_meta",
        sa.Column("task_id", sa.String(64), sa.ForeignKey("project_tasks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("owner_user_id", sa.String(64), sa.ForeignKey("app_users.id", ondelete="SET NULL")),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("decision_note", sa.Text()),
        sa.Column("decided_by_user_id", sa.String(64), sa.ForeignKey("app_users.id", ondelete="SET NULL")),
        sa.Column("decided_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_task_access_meta_owner_user_id", "task_access_meta", ["owner_user_id"])

    op.create_table(
        "weekly_plans",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("week_end_date", sa.Date(), nullable=False),
        sa.Column("created_by_user_id", sa.String(64), sa.ForeignKey("app_users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_weekly_plans_week_start_date", "weekly_plans", ["week_start_date"])

    op.create_table(
        "weekly_plan_daily_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("weekly_plan_id", sa.String(64), sa.ForeignKey("weekly_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_update_id", sa.String(64), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("developer_name", sa.String(200), nullable=False),
        sa.Column("project_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("work_area", sa.String(30), nullable=False, server_default="Other"),
        sa.Column("morning_plan", sa.Text(), server_default=""),
        sa.Column("evening_update", sa.Text(), server_default=""),
        sa.Column("spent_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("progress_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("office_check_in", sa.String(5)),
        sa.Column("office_check_out", sa.String(5)),
        sa.Column("has_blocker", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("blocker_details", sa.Text(), server_default=""),
        sa.Column("has_pending_work", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pending_work_details", sa.Text(), server_default=""),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("weekly_plan_id", "source_update_id", name="uq_weekly_plan_entry_source"),
    )
    op.create_index("ix_weekly_plan_daily_entries_weekly_plan_id", "weekly_plan_daily_entries", ["weekly_plan_id"])


def downgrade():
    op.drop_index("ix_weekly_plan_daily_entries_weekly_plan_id", table_name="weekly_plan_daily_entries")
    op.drop_table("weekly_plan_daily_entries")
    op.drop_index("ix_weekly_plans_week_start_date", table_name="weekly_plans")
    op.drop_table("weekly_plans")
    op.drop_index("ix_task_access_meta_owner_user_id", table_name="task_access_meta")
    op.drop_table("task_access_meta")
    op.drop_index("ix_task_hour_revisions_task_id", table_name="task_hour_revisions")
    op.drop_table("task_hour_revisions")
    op.drop_index("ix_task_events_task_id", table_name="task_events")
    op.drop_table("task_events")
    op.drop_index("ix_project_tasks_requested_date", table_name="project_tasks")
    op.drop_index("ix_project_tasks_status", table_name="project_tasks")
    op.drop_table("project_tasks")
    op.drop_index("ix_app_users_email", table_name="app_users")
    op.drop_table("app_users")
