"""Deal automation persistence models.

SQLAlchemy models backing the deal intake pipeline:
- UserModel / PersonalityProfileModel: staffing candidates and their preferences
- DealModel: deals with an embedded JSON pod team
- MilestoneModel / TaskModel: stage checkpoints and the work generated from them
- EmailDealModel: one row per processed mail thread (unique thread_id)
- DealAiContextModel: append-only source material attached to a deal
- NotificationModel: in-app notifications for pod team members
- AiTaskSuggestionModel: LLM-proposed task adjustments awaiting review
- IntakeJobModel: per-thread intake record with completed steps

Referential integrity between deals, milestones and tasks is enforced at
the application level (repository), not with FK constraints.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class UserModel(Base):
    """Platform user who can be staffed on deals."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class PersonalityProfileModel(Base):
    """Staffing preferences for one user (1:1 with users)."""

    __tablename__ = "personality_profiles"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_personality_profile_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    preferred_deal_types: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    preferred_sectors: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    workload_capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    experience_level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    leadership_style: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class DealModel(Base):
    """Deal in the pipeline, created by intake or by manual entry.

    The pod team is stored as a JSON list of PodTeamMember dicts and lives
    exactly as long as the deal.
    """

    __tablename__ = "deals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    deal_type: Mapped[str] = mapped_column(
        String(50), default="M&A", server_default=text("'M&A'")
    )
    stage: Mapped[str] = mapped_column(
        String(50), default="Origination", server_default=text("'Origination'")
    )
    value: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))
    client: Mapped[str] = mapped_column(String(300), nullable=False)
    client_contact_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sector: Mapped[str] = mapped_column(String(100), nullable=False)
    lead: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pod_team: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(
        String(20), default="Active", server_default=text("'Active'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class MilestoneModel(Base):
    """Stage-scoped checkpoint for a deal, ordered within its stage."""

    __tablename__ = "milestones"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    stage: Mapped[str] = mapped_column(String(50), nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'")
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class TaskModel(Base):
    """Unit of work on a deal, assigned to one pod team member."""

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    deal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    deal_stage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    priority: Mapped[str] = mapped_column(
        String(10), default="Medium", server_default=text("'Medium'")
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="Pending", server_default=text("'Pending'")
    )
    type: Mapped[str | None] = mapped_column(
        String(50), default="General", server_default=text("'General'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class EmailDealModel(Base):
    """Outcome of processing one mail thread.

    thread_id is unique: a thread is processed at most once and its row is
    never revisited by the intake pipeline.
    """

    __tablename__ = "email_deals"
    __table_args__ = (
        UniqueConstraint("thread_id", name="uq_email_deals_thread_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    email_id: Mapped[str] = mapped_column(String(200), nullable=False)
    thread_id: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    sender: Mapped[str | None] = mapped_column(String(300), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    extracted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    deal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    processing_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class DealAiContextModel(Base):
    """Source material attached to a deal (append-only)."""

    __tablename__ = "deal_ai_context"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    context_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class NotificationModel(Base):
    """In-app notification for a single user."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), default="info", server_default=text("'info'")
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class AiTaskSuggestionModel(Base):
    """LLM-proposed task adjustment for a deal, pending human review."""

    __tablename__ = "ai_task_suggestions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    suggestion_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", server_default=text("''"))
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_changes: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    priority: Mapped[str] = mapped_column(
        String(10), default="medium", server_default=text("'medium'")
    )
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class IntakeJobModel(Base):
    """Per-thread intake record.

    Inserting the row claims the thread (unique thread_id). completed_steps
    lists the sub-steps that finished, so a run that failed halfway is
    distinguishable from one that never started or fully succeeded.
    """

    __tablename__ = "intake_jobs"
    __table_args__ = (
        UniqueConstraint("thread_id", name="uq_intake_jobs_thread_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    thread_id: Mapped[str] = mapped_column(String(200), nullable=False)
    folder_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="running", server_default=text("'running'")
    )
    completed_steps: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    deal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
