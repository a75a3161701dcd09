"""Deal automation repository -- async CRUD for all intake entities.

Provides DealRepository with the session_factory callable pattern. Handles
serialization between Pydantic schemas and SQLAlchemy models for users,
profiles, deals, milestones, tasks, email-deal records, deal context,
notifications, task suggestions and intake jobs.

Also hosts the workload accessors used by staffing: open task counts and
active deal counts are always read live, never cached.

Uniqueness violations on thread_id surface as DuplicateThreadError so the
intake orchestrator can treat them as "already processed".
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.deals.models import (
    AiTaskSuggestionModel,
    DealAiContextModel,
    DealModel,
    EmailDealModel,
    IntakeJobModel,
    MilestoneModel,
    NotificationModel,
    PersonalityProfileModel,
    TaskModel,
    UserModel,
)
from src.app.deals.schemas import (
    AiTaskSuggestionCreate,
    AiTaskSuggestionRead,
    DealContextCreate,
    DealContextRead,
    DealCreate,
    DealRead,
    EmailDealCreate,
    EmailDealRead,
    EmailDealStatus,
    ExperienceLevel,
    IntakeJobRead,
    IntakeJobStatus,
    IntakeStep,
    MilestoneCreate,
    MilestoneRead,
    NotificationCreate,
    NotificationRead,
    PersonalityProfileRead,
    PodTeamMember,
    TaskCreate,
    TaskRead,
    TaskStatus,
    UserRead,
)

logger = structlog.get_logger(__name__)


class DuplicateThreadError(Exception):
    """Raised when a mail thread already has an intake record."""

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        super().__init__(f"Thread already processed: {thread_id}")


def _uuid_or_none(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def _str_or_none(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_user(model: UserModel) -> UserRead:
    return UserRead(
        id=str(model.id),
        name=model.name,
        email=model.email,
        phone=model.phone,
        status=model.status,
    )


def _model_to_profile(model: PersonalityProfileModel) -> PersonalityProfileRead:
    """Convert PersonalityProfileModel to PersonalityProfileRead schema.

    Unknown experience levels are dropped rather than failing the whole
    staffing run.
    """
    experience = None
    if model.experience_level:
        try:
            experience = ExperienceLevel(model.experience_level)
        except ValueError:
            logger.warning(
                "repository.unknown_experience_level",
                user_id=str(model.user_id),
                experience_level=model.experience_level,
            )

    return PersonalityProfileRead(
        user_id=str(model.user_id),
        preferred_deal_types=list(model.preferred_deal_types or []),
        preferred_sectors=list(model.preferred_sectors or []),
        workload_capacity=model.workload_capacity,
        experience_level=experience,
        leadership_style=model.leadership_style,
    )


def _model_to_deal(model: DealModel) -> DealRead:
    return DealRead(
        id=str(model.id),
        name=model.name,
        deal_type=model.deal_type,
        stage=model.stage,
        value=model.value or 0.0,
        client=model.client,
        client_contact_name=model.client_contact_name,
        client_contact_email=model.client_contact_email,
        sector=model.sector,
        lead=model.lead,
        description=model.description,
        pod_team=[PodTeamMember.model_validate(m) for m in (model.pod_team or [])],
        progress=model.progress or 0,
        status=model.status,
        created_at=model.created_at,
    )


def _model_to_milestone(model: MilestoneModel) -> MilestoneRead:
    return MilestoneRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        title=model.title,
        description=model.description,
        stage=model.stage,
        order=model.order,
        status=model.status,
        due_date=model.due_date,
    )


def _model_to_task(model: TaskModel) -> TaskRead:
    return TaskRead(
        id=str(model.id),
        title=model.title,
        description=model.description,
        deal_id=_str_or_none(model.deal_id),
        deal_stage=model.deal_stage,
        assigned_to=_str_or_none(model.assigned_to),
        priority=model.priority,
        due_date=model.due_date,
        status=model.status,
        type=model.type,
    )


def _model_to_email_deal(model: EmailDealModel) -> EmailDealRead:
    return EmailDealRead(
        id=str(model.id),
        email_id=model.email_id,
        thread_id=model.thread_id,
        subject=model.subject,
        sender=model.sender,
        received_at=model.received_at,
        extracted_data=model.extracted_data,
        deal_id=_str_or_none(model.deal_id),
        status=model.status,
        processing_notes=model.processing_notes,
        created_at=model.created_at,
    )


def _model_to_context(model: DealAiContextModel) -> DealContextRead:
    return DealContextRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        context_type=model.context_type,
        content=model.content,
        summary=model.summary,
        source_id=model.source_id,
        processed_at=model.processed_at,
    )


def _model_to_intake_job(model: IntakeJobModel) -> IntakeJobRead:
    return IntakeJobRead(
        id=str(model.id),
        thread_id=model.thread_id,
        folder_name=model.folder_name,
        status=model.status,
        completed_steps=list(model.completed_steps or []),
        deal_id=_str_or_none(model.deal_id),
        error=model.error,
        started_at=model.started_at,
        finished_at=model.finished_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for deal automation entities.

    Each method opens its own session from session_factory and commits
    individually; there is no transaction spanning multiple calls.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Workload ────────────────────────────────────────────────────────────

    async def get_user_workload(self, user_id: str) -> int:
        """Count the user's tasks that are not Completed."""
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(TaskModel).where(
                TaskModel.assigned_to == uuid.UUID(user_id),
                TaskModel.status != TaskStatus.COMPLETED.value,
            )
            result = await session.execute(stmt)
            return int(result.scalar_one() or 0)

    async def get_active_deals_count(self, user_id: str) -> int:
        """Count Active deals the user leads or is a pod team member of.

        Scans every active deal; the pod team is JSON so membership is
        checked in Python.
        """
        async for session in self._session_factory():
            stmt = select(DealModel).where(DealModel.status == "Active")
            result = await session.execute(stmt)
            count = 0
            for deal in result.scalars().all():
                if deal.lead == user_id or any(
                    (member or {}).get("user_id") == user_id
                    for member in (deal.pod_team or [])
                ):
                    count += 1
            return count

    # ── Users & Profiles ────────────────────────────────────────────────────

    async def list_active_users(self) -> list[UserRead]:
        async for session in self._session_factory():
            stmt = (
                select(UserModel)
                .where(UserModel.status == "active")
                .order_by(UserModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_user(m) for m in result.scalars().all()]

    async def list_personality_profiles(self) -> list[PersonalityProfileRead]:
        async for session in self._session_factory():
            result = await session.execute(select(PersonalityProfileModel))
            return [_model_to_profile(m) for m in result.scalars().all()]

    # ── Deals ───────────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate) -> DealRead:
        """Create a new deal.

        Args:
            data: DealCreate schema; the pod team is serialized to JSON.

        Returns:
            DealRead with all persisted fields.
        """
        async for session in self._session_factory():
            model = DealModel(
                name=data.name,
                deal_type=data.deal_type.value,
                stage=data.stage.value,
                value=data.value,
                client=data.client,
                client_contact_name=data.client_contact_name,
                client_contact_email=data.client_contact_email,
                sector=data.sector,
                lead=data.lead,
                description=data.description,
                pod_team=[m.model_dump(mode="json") for m in data.pod_team],
                progress=data.progress,
                status=data.status,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("repository.deal_created", deal_id=str(model.id), name=model.name)
            return _model_to_deal(model)

    async def get_deal(self, deal_id: str) -> DealRead | None:
        async for session in self._session_factory():
            model = await session.get(DealModel, uuid.UUID(deal_id))
            if model is None:
                return None
            return _model_to_deal(model)

    # ── Milestones ──────────────────────────────────────────────────────────

    async def create_milestone(self, data: MilestoneCreate) -> MilestoneRead:
        async for session in self._session_factory():
            model = MilestoneModel(
                deal_id=uuid.UUID(data.deal_id),
                title=data.title,
                description=data.description,
                stage=data.stage.value,
                order=data.order,
                status=data.status,
                due_date=data.due_date,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_milestone(model)

    async def get_milestone(self, milestone_id: str) -> MilestoneRead | None:
        async for session in self._session_factory():
            model = await session.get(MilestoneModel, uuid.UUID(milestone_id))
            if model is None:
                return None
            return _model_to_milestone(model)

    async def list_milestones(self, deal_id: str) -> list[MilestoneRead]:
        async for session in self._session_factory():
            stmt = (
                select(MilestoneModel)
                .where(MilestoneModel.deal_id == uuid.UUID(deal_id))
                .order_by(MilestoneModel.stage, MilestoneModel.order)
            )
            result = await session.execute(stmt)
            return [_model_to_milestone(m) for m in result.scalars().all()]

    # ── Tasks ───────────────────────────────────────────────────────────────

    async def create_task(self, data: TaskCreate) -> TaskRead:
        async for session in self._session_factory():
            model = TaskModel(
                title=data.title,
                description=data.description,
                deal_id=_uuid_or_none(data.deal_id),
                deal_stage=data.deal_stage.value if data.deal_stage else None,
                assigned_to=_uuid_or_none(data.assigned_to),
                priority=data.priority.value,
                due_date=data.due_date,
                status=data.status.value,
                type=data.type,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_task(model)

    async def list_tasks(self, deal_id: str) -> list[TaskRead]:
        async for session in self._session_factory():
            stmt = (
                select(TaskModel)
                .where(TaskModel.deal_id == uuid.UUID(deal_id))
                .order_by(TaskModel.due_date)
            )
            result = await session.execute(stmt)
            return [_model_to_task(m) for m in result.scalars().all()]

    # ── Email Deals ─────────────────────────────────────────────────────────

    async def get_email_deal_by_thread(self, thread_id: str) -> EmailDealRead | None:
        async for session in self._session_factory():
            stmt = select(EmailDealModel).where(EmailDealModel.thread_id == thread_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_email_deal(model)

    async def record_email_deal(self, data: EmailDealCreate) -> EmailDealRead:
        """Insert the outcome row for a mail thread.

        Raises:
            DuplicateThreadError: If the thread already has a row.
        """
        async for session in self._session_factory():
            model = EmailDealModel(
                email_id=data.email_id,
                thread_id=data.thread_id,
                subject=data.subject,
                sender=data.sender,
                received_at=data.received_at,
                extracted_data=data.extracted_data,
                deal_id=_uuid_or_none(data.deal_id),
                status=data.status.value,
                processing_notes=data.processing_notes,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateThreadError(data.thread_id) from exc
            await session.refresh(model)
            return _model_to_email_deal(model)

    async def list_email_deals(
        self, status: EmailDealStatus | None = None
    ) -> list[EmailDealRead]:
        async for session in self._session_factory():
            stmt = select(EmailDealModel).order_by(EmailDealModel.created_at.desc())
            if status is not None:
                stmt = stmt.where(EmailDealModel.status == status.value)
            result = await session.execute(stmt)
            return [_model_to_email_deal(m) for m in result.scalars().all()]

    # ── Deal Context ────────────────────────────────────────────────────────

    async def create_deal_context(self, data: DealContextCreate) -> DealContextRead:
        async for session in self._session_factory():
            model = DealAiContextModel(
                deal_id=uuid.UUID(data.deal_id),
                context_type=data.context_type,
                content=data.content,
                summary=data.summary,
                source_id=data.source_id,
                processed_at=data.processed_at or datetime.now(timezone.utc),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_context(model)

    async def list_deal_context(self, deal_id: str) -> list[DealContextRead]:
        async for session in self._session_factory():
            stmt = (
                select(DealAiContextModel)
                .where(DealAiContextModel.deal_id == uuid.UUID(deal_id))
                .order_by(DealAiContextModel.processed_at)
            )
            result = await session.execute(stmt)
            return [_model_to_context(m) for m in result.scalars().all()]

    # ── Notifications ───────────────────────────────────────────────────────

    async def create_notification(self, data: NotificationCreate) -> NotificationRead:
        async for session in self._session_factory():
            model = NotificationModel(
                user_id=uuid.UUID(data.user_id),
                title=data.title,
                message=data.message,
                type=data.type,
                link=data.link,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return NotificationRead(
                id=str(model.id),
                user_id=str(model.user_id),
                title=model.title,
                message=model.message,
                type=model.type,
                link=model.link,
                read=model.read,
                created_at=model.created_at,
            )

    # ── Task Suggestions ────────────────────────────────────────────────────

    async def create_task_suggestion(
        self, data: AiTaskSuggestionCreate
    ) -> AiTaskSuggestionRead:
        async for session in self._session_factory():
            model = AiTaskSuggestionModel(
                deal_id=uuid.UUID(data.deal_id),
                suggestion_type=data.suggestion_type,
                title=data.title,
                description=data.description,
                reasoning=data.reasoning,
                suggested_changes=data.suggested_changes,
                priority=data.priority,
                status=data.status,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return AiTaskSuggestionRead(
                id=str(model.id),
                deal_id=str(model.deal_id),
                suggestion_type=model.suggestion_type,
                title=model.title,
                description=model.description,
                reasoning=model.reasoning,
                suggested_changes=model.suggested_changes or {},
                priority=model.priority,
                status=model.status,
                created_at=model.created_at,
            )

    # ── Intake Jobs ─────────────────────────────────────────────────────────

    async def claim_intake_job(
        self, thread_id: str, folder_name: str | None = None
    ) -> IntakeJobRead:
        """Claim a mail thread for processing by inserting its intake job.

        Raises:
            DuplicateThreadError: If another run already claimed the thread.
        """
        async for session in self._session_factory():
            model = IntakeJobModel(
                thread_id=thread_id,
                folder_name=folder_name,
                status=IntakeJobStatus.RUNNING.value,
                completed_steps=[],
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateThreadError(thread_id) from exc
            await session.refresh(model)
            return _model_to_intake_job(model)

    async def mark_intake_step(
        self, job_id: str, step: IntakeStep, deal_id: str | None = None
    ) -> None:
        """Append a completed step to the intake job (and link the deal)."""
        async for session in self._session_factory():
            model = await session.get(IntakeJobModel, uuid.UUID(job_id))
            if model is None:
                logger.warning("repository.intake_job_missing", job_id=job_id)
                return
            # Reassign so the JSON column is flagged dirty
            model.completed_steps = [*(model.completed_steps or []), step.value]
            if deal_id is not None:
                model.deal_id = uuid.UUID(deal_id)
            await session.commit()

    async def finish_intake_job(
        self,
        job_id: str,
        status: IntakeJobStatus,
        error: str | None = None,
    ) -> None:
        async for session in self._session_factory():
            model = await session.get(IntakeJobModel, uuid.UUID(job_id))
            if model is None:
                logger.warning("repository.intake_job_missing", job_id=job_id)
                return
            model.status = status.value
            model.error = error
            model.finished_at = datetime.now(timezone.utc)
            await session.commit()

    async def list_intake_jobs(
        self, status: IntakeJobStatus | None = None
    ) -> list[IntakeJobRead]:
        async for session in self._session_factory():
            stmt = select(IntakeJobModel).order_by(IntakeJobModel.started_at.desc())
            if status is not None:
                stmt = stmt.where(IntakeJobModel.status == status.value)
            result = await session.execute(stmt)
            return [_model_to_intake_job(m) for m in result.scalars().all()]
