"""Create deal automation tables.

Revision ID: 001_deal_automation
Revises:
Create Date: 2026-10-19

Creates the tables for email deal intake and pod team assignment:
- users, personality_profiles: staffing candidates and their preferences
- deals, milestones, tasks: deal scaffolding
- email_deals, intake_jobs: one row per mail thread (unique thread_id)
- deal_ai_context, notifications, ai_task_suggestions

No foreign key constraints (application-level referential integrity via
the repository). The unique thread_id constraints are the intake
deduplication signal.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_deal_automation"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # ── users / personality_profiles ────────────────────────────────────

    op.create_table(
        "users",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("job_title", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "personality_profiles",
        _id(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("preferred_deal_types", sa.JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("preferred_sectors", sa.JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("workload_capacity", sa.Integer(), nullable=True),
        sa.Column("experience_level", sa.String(20), nullable=True),
        sa.Column("leadership_style", sa.String(100), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", name="uq_personality_profile_user"),
    )

    # ── deals / milestones / tasks ──────────────────────────────────────

    op.create_table(
        "deals",
        _id(),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("deal_type", sa.String(50), server_default=sa.text("'M&A'"), nullable=False),
        sa.Column("stage", sa.String(50), server_default=sa.text("'Origination'"), nullable=False),
        sa.Column("value", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("client", sa.String(300), nullable=False),
        sa.Column("client_contact_name", sa.String(200), nullable=True),
        sa.Column("client_contact_email", sa.String(255), nullable=True),
        sa.Column("sector", sa.String(100), nullable=False),
        sa.Column("lead", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pod_team", sa.JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("progress", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'Active'"), nullable=False),
        _created_at(),
    )
    op.create_index("idx_deals_status", "deals", ["status"])

    op.create_table(
        "milestones",
        _id(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stage", sa.String(50), nullable=False),
        sa.Column("order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        _created_at(),
    )
    op.create_index("idx_milestones_deal_stage", "milestones", ["deal_id", "stage"])

    op.create_table(
        "tasks",
        _id(),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("deal_stage", sa.String(50), nullable=True),
        sa.Column("assigned_to", UUID(as_uuid=True), nullable=True),
        sa.Column("priority", sa.String(10), server_default=sa.text("'Medium'"), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'Pending'"), nullable=False),
        sa.Column("type", sa.String(50), server_default=sa.text("'General'"), nullable=True),
        _created_at(),
    )
    op.create_index("idx_tasks_assigned_status", "tasks", ["assigned_to", "status"])
    op.create_index("idx_tasks_deal", "tasks", ["deal_id"])

    # ── email intake ────────────────────────────────────────────────────

    op.create_table(
        "email_deals",
        _id(),
        sa.Column("email_id", sa.String(200), nullable=False),
        sa.Column("thread_id", sa.String(200), nullable=False),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("sender", sa.String(300), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extracted_data", sa.JSON(), nullable=True),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("processing_notes", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("thread_id", name="uq_email_deals_thread_id"),
    )

    op.create_table(
        "intake_jobs",
        _id(),
        sa.Column("thread_id", sa.String(200), nullable=False),
        sa.Column("folder_name", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'running'"), nullable=False),
        sa.Column("completed_steps", sa.JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        _created_at("started_at"),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("thread_id", name="uq_intake_jobs_thread_id"),
    )
    op.create_index("idx_intake_jobs_status", "intake_jobs", ["status"])

    # ── deal context / notifications / suggestions ──────────────────────

    op.create_table(
        "deal_ai_context",
        _id(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("context_type", sa.String(50), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("source_id", sa.String(200), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_deal_ai_context_deal", "deal_ai_context", ["deal_id"])

    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), server_default=sa.text("'info'"), nullable=False),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        _created_at(),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "read"])

    op.create_table(
        "ai_task_suggestions",
        _id(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("suggestion_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("suggested_changes", sa.JSON(), server_default=sa.text("'{}'::json"), nullable=False),
        sa.Column("priority", sa.String(10), server_default=sa.text("'medium'"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        _created_at(),
    )
    op.create_index("idx_ai_task_suggestions_deal", "ai_task_suggestions", ["deal_id"])


def downgrade() -> None:
    op.drop_index("idx_ai_task_suggestions_deal", table_name="ai_task_suggestions")
    op.drop_table("ai_task_suggestions")
    op.drop_index("idx_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_deal_ai_context_deal", table_name="deal_ai_context")
    op.drop_table("deal_ai_context")
    op.drop_index("idx_intake_jobs_status", table_name="intake_jobs")
    op.drop_table("intake_jobs")
    op.drop_table("email_deals")
    op.drop_index("idx_tasks_deal", table_name="tasks")
    op.drop_index("idx_tasks_assigned_status", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("idx_milestones_deal_stage", table_name="milestones")
    op.drop_table("milestones")
    op.drop_index("idx_deals_status", table_name="deals")
    op.drop_table("deals")
    op.drop_table("personality_profiles")
    op.drop_table("users")
