"""REST API endpoints for deal automation.

Exposes the intake pipeline and its building blocks: run an inbox pass,
inspect intake records, preview team selection, generate milestones,
milestone tasks and AI task suggestions.

Collaborators are constructed in the application lifespan and read from
app.state; an endpoint returns 503 when the one it needs is missing.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.app.deals.schemas import (
    AiTaskSuggestionRead,
    DealRead,
    DealStage,
    DealType,
    EmailDealRead,
    EmailDealStatus,
    IntakeJobRead,
    IntakeJobStatus,
    IntakeStats,
    MilestoneRead,
    TaskRead,
    TeamSelection,
)

router = APIRouter(prefix="/automation", tags=["automation"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class ProcessEmailsRequest(BaseModel):
    """Request body for an on-demand inbox pass."""

    folder_name: str | None = None


class TeamPreviewRequest(BaseModel):
    deal_type: DealType = DealType.MA
    sector: str
    stage: DealStage = DealStage.ORIGINATION


class CreateMilestonesRequest(BaseModel):
    stage: DealStage = DealStage.ORIGINATION


# ── Dependency Injection Helper ──────────────────────────────────────────────


def _get_state(request: Request, name: str, label: str) -> Any:
    """Retrieve a collaborator from app.state, 503 if not available."""
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def _not_found(what: str, identifier: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{what} {identifier} not found",
    )


async def _load_deal(repo: Any, deal_id: str) -> DealRead:
    try:
        deal = await repo.get_deal(deal_id)
    except ValueError:
        # Ids are UUIDs; anything else cannot match a row
        raise _not_found("Deal", deal_id)
    if deal is None:
        raise _not_found("Deal", deal_id)
    return deal


async def _load_milestone(repo: Any, milestone_id: str) -> MilestoneRead:
    try:
        milestone = await repo.get_milestone(milestone_id)
    except ValueError:
        raise _not_found("Milestone", milestone_id)
    if milestone is None:
        raise _not_found("Milestone", milestone_id)
    return milestone


# ── Intake Endpoints ─────────────────────────────────────────────────────────


@router.post("/process-emails", response_model=IntakeStats)
async def process_emails(body: ProcessEmailsRequest, request: Request) -> IntakeStats:
    """Run one intake pass over the deal label."""
    orchestrator = _get_state(request, "intake_orchestrator", "Email intake")
    return await orchestrator.process_email_folder(body.folder_name)


@router.get("/email-deals", response_model=list[EmailDealRead])
async def list_email_deals(
    request: Request,
    status_filter: EmailDealStatus | None = Query(default=None, alias="status"),
) -> list[EmailDealRead]:
    repo = _get_state(request, "deal_repository", "Deal repository")
    return await repo.list_email_deals(status=status_filter)


@router.get("/intake-jobs", response_model=list[IntakeJobRead])
async def list_intake_jobs(
    request: Request,
    status_filter: IntakeJobStatus | None = Query(default=None, alias="status"),
) -> list[IntakeJobRead]:
    """List intake jobs, optionally filtered by status (e.g. failed)."""
    repo = _get_state(request, "deal_repository", "Deal repository")
    return await repo.list_intake_jobs(status=status_filter)


# ── Staffing & Planning Endpoints ────────────────────────────────────────────


@router.post("/team-preview", response_model=TeamSelection)
async def preview_team(body: TeamPreviewRequest, request: Request) -> TeamSelection:
    """Show the team the scorer would pick, without creating anything."""
    scorer = _get_state(request, "team_scorer", "Team scorer")
    return await scorer.select_team(body.deal_type, body.sector, body.stage)


@router.post(
    "/deals/{deal_id}/milestones",
    response_model=list[MilestoneRead],
    status_code=201,
)
async def create_milestones(
    deal_id: str, body: CreateMilestonesRequest, request: Request
) -> list[MilestoneRead]:
    repo = _get_state(request, "deal_repository", "Deal repository")
    generator = _get_state(request, "milestone_generator", "Milestone generator")

    await _load_deal(repo, deal_id)
    return await generator.create_milestones_for_deal(deal_id, body.stage)


@router.post(
    "/milestones/{milestone_id}/tasks",
    response_model=list[TaskRead],
    status_code=201,
)
async def create_milestone_tasks(milestone_id: str, request: Request) -> list[TaskRead]:
    """Expand a milestone into tasks for its deal's pod team."""
    repo = _get_state(request, "deal_repository", "Deal repository")
    generator = _get_state(request, "milestone_generator", "Milestone generator")

    milestone = await _load_milestone(repo, milestone_id)
    deal = await _load_deal(repo, milestone.deal_id)

    return await generator.create_tasks_from_milestone(milestone.id, deal.id, deal.pod_team)


@router.post(
    "/deals/{deal_id}/suggestions",
    response_model=list[AiTaskSuggestionRead],
    status_code=201,
)
async def generate_suggestions(deal_id: str, request: Request) -> list[AiTaskSuggestionRead]:
    repo = _get_state(request, "deal_repository", "Deal repository")
    generator = _get_state(request, "suggestion_generator", "Task suggestions")

    await _load_deal(repo, deal_id)
    return await generator.generate_task_suggestions(deal_id)
