"""Shared fixtures for deal automation tests.

Provides:
- InMemoryDealRepository: DealRepository test double (no database)
- Fake LLMService built on AsyncMock
- ParsedEmail factory
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.deals.repository import DuplicateThreadError
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
    TaskCreate,
    TaskRead,
    TaskStatus,
    UserRead,
)
from src.app.services.gsuite.models import ParsedEmail


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemoryDealRepository:
    """In-memory DealRepository for testing without database."""

    def __init__(self) -> None:
        self.users: list[UserRead] = []
        self.profiles: dict[str, PersonalityProfileRead] = {}
        self.deals: dict[str, DealRead] = {}
        self.milestones: dict[str, MilestoneRead] = {}
        self.tasks: dict[str, TaskRead] = {}
        self.email_deals: dict[str, EmailDealRead] = {}
        self.contexts: list[DealContextRead] = []
        self.notifications: list[NotificationRead] = []
        self.suggestions: list[AiTaskSuggestionRead] = []
        self.intake_jobs: dict[str, IntakeJobRead] = {}

    # ── Seeding helpers ─────────────────────────────────────────────────

    def add_user(
        self,
        name: str,
        *,
        experience_level: ExperienceLevel | None = None,
        preferred_deal_types: list[str] | None = None,
        preferred_sectors: list[str] | None = None,
        workload_capacity: int | None = None,
        leadership_style: str | None = None,
        with_profile: bool = True,
    ) -> UserRead:
        user = UserRead(
            id=str(uuid.uuid4()),
            name=name,
            email=f"{name.lower().replace(' ', '.')}@bank.example",
        )
        self.users.append(user)
        if with_profile:
            self.profiles[user.id] = PersonalityProfileRead(
                user_id=user.id,
                preferred_deal_types=preferred_deal_types or [],
                preferred_sectors=preferred_sectors or [],
                workload_capacity=workload_capacity,
                experience_level=experience_level,
                leadership_style=leadership_style,
            )
        return user

    def add_open_tasks(self, user_id: str, count: int, status: TaskStatus = TaskStatus.PENDING) -> None:
        for i in range(count):
            task_id = str(uuid.uuid4())
            self.tasks[task_id] = TaskRead(
                id=task_id, title=f"Existing task {i}", assigned_to=user_id, status=status
            )

    # ── Workload ────────────────────────────────────────────────────────

    async def get_user_workload(self, user_id: str) -> int:
        return sum(
            1
            for t in self.tasks.values()
            if t.assigned_to == user_id and t.status != TaskStatus.COMPLETED
        )

    async def get_active_deals_count(self, user_id: str) -> int:
        return sum(
            1
            for d in self.deals.values()
            if d.status == "Active"
            and (d.lead == user_id or any(m.user_id == user_id for m in d.pod_team))
        )

    # ── Users & Profiles ────────────────────────────────────────────────

    async def list_active_users(self) -> list[UserRead]:
        return [u for u in self.users if u.status == "active"]

    async def list_personality_profiles(self) -> list[PersonalityProfileRead]:
        return list(self.profiles.values())

    # ── Deals ───────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate) -> DealRead:
        deal = DealRead(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self.deals[deal.id] = deal
        return deal

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return self.deals.get(deal_id)

    # ── Milestones & Tasks ──────────────────────────────────────────────

    async def create_milestone(self, data: MilestoneCreate) -> MilestoneRead:
        milestone = MilestoneRead(id=str(uuid.uuid4()), **data.model_dump())
        self.milestones[milestone.id] = milestone
        return milestone

    async def get_milestone(self, milestone_id: str) -> MilestoneRead | None:
        return self.milestones.get(milestone_id)

    async def list_milestones(self, deal_id: str) -> list[MilestoneRead]:
        return [m for m in self.milestones.values() if m.deal_id == deal_id]

    async def create_task(self, data: TaskCreate) -> TaskRead:
        task = TaskRead(id=str(uuid.uuid4()), **data.model_dump())
        self.tasks[task.id] = task
        return task

    async def list_tasks(self, deal_id: str) -> list[TaskRead]:
        return [t for t in self.tasks.values() if t.deal_id == deal_id]

    # ── Email Deals ─────────────────────────────────────────────────────

    async def get_email_deal_by_thread(self, thread_id: str) -> EmailDealRead | None:
        for record in self.email_deals.values():
            if record.thread_id == thread_id:
                return record
        return None

    async def record_email_deal(self, data: EmailDealCreate) -> EmailDealRead:
        if await self.get_email_deal_by_thread(data.thread_id) is not None:
            raise DuplicateThreadError(data.thread_id)
        record = EmailDealRead(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self.email_deals[record.id] = record
        return record

    async def list_email_deals(
        self, status: EmailDealStatus | None = None
    ) -> list[EmailDealRead]:
        records = list(self.email_deals.values())
        if status is not None:
            records = [r for r in records if r.status == status]
        return records

    # ── Context / Notifications / Suggestions ───────────────────────────

    async def create_deal_context(self, data: DealContextCreate) -> DealContextRead:
        record = DealContextRead(id=str(uuid.uuid4()), **data.model_dump())
        self.contexts.append(record)
        return record

    async def list_deal_context(self, deal_id: str) -> list[DealContextRead]:
        return [c for c in self.contexts if c.deal_id == deal_id]

    async def create_notification(self, data: NotificationCreate) -> NotificationRead:
        record = NotificationRead(id=str(uuid.uuid4()), **data.model_dump())
        self.notifications.append(record)
        return record

    async def create_task_suggestion(
        self, data: AiTaskSuggestionCreate
    ) -> AiTaskSuggestionRead:
        record = AiTaskSuggestionRead(id=str(uuid.uuid4()), **data.model_dump())
        self.suggestions.append(record)
        return record

    # ── Intake Jobs ─────────────────────────────────────────────────────

    async def claim_intake_job(
        self, thread_id: str, folder_name: str | None = None
    ) -> IntakeJobRead:
        if any(j.thread_id == thread_id for j in self.intake_jobs.values()):
            raise DuplicateThreadError(thread_id)
        job = IntakeJobRead(
            id=str(uuid.uuid4()),
            thread_id=thread_id,
            folder_name=folder_name,
            started_at=datetime.now(timezone.utc),
        )
        self.intake_jobs[job.id] = job
        return job

    async def mark_intake_step(
        self, job_id: str, step: IntakeStep, deal_id: str | None = None
    ) -> None:
        job = self.intake_jobs[job_id]
        update: dict = {"completed_steps": [*job.completed_steps, step]}
        if deal_id is not None:
            update["deal_id"] = deal_id
        self.intake_jobs[job_id] = job.model_copy(update=update)

    async def finish_intake_job(
        self, job_id: str, status: IntakeJobStatus, error: str | None = None
    ) -> None:
        job = self.intake_jobs[job_id]
        self.intake_jobs[job_id] = job.model_copy(
            update={
                "status": status,
                "error": error,
                "finished_at": datetime.now(timezone.utc),
            }
        )

    async def list_intake_jobs(
        self, status: IntakeJobStatus | None = None
    ) -> list[IntakeJobRead]:
        jobs = list(self.intake_jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return jobs


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def repo() -> InMemoryDealRepository:
    return InMemoryDealRepository()


def llm_response(content: str | dict) -> dict:
    """Shape a completion result the way LLMService.completion returns it."""
    if isinstance(content, dict):
        content = json.dumps(content)
    return {"content": content, "model": "gpt-4o", "usage": {}}


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLMService stand-in whose completion() is an AsyncMock."""
    llm = MagicMock()
    llm.available = True
    llm.completion = AsyncMock(return_value=llm_response({}))
    return llm


@pytest.fixture
def make_email():
    """Factory for ParsedEmail instances."""

    def _make(
        message_id: str = "msg-1",
        thread_id: str = "thread-1",
        subject: str = "Project Atlas - sell-side mandate",
        body: str = "We would like to engage you on the sale of our software business.",
        sender: str = "ceo@client.example",
    ) -> ParsedEmail:
        return ParsedEmail(
            id=message_id,
            thread_id=thread_id,
            sender=sender,
            to="deals@bank.example",
            subject=subject,
            date=datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc),
            body=body,
            snippet=body[:100],
        )

    return _make


@pytest.fixture
def llm_reply():
    """Build LLMService.completion return values from dicts or strings."""
    return llm_response
