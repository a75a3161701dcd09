"""Stage milestones and milestone task generation.

Each deal stage has a fixed list of four milestones. A milestone expands
into task templates chosen by keyword on its title, and the tasks are
dealt round-robin across the pod team ordered by current workload (least
loaded first).

Exports:
    STAGE_MILESTONES: Static milestone catalogue per DealStage.
    generate_task_templates: Title -> list[TaskTemplate] (pure).
    MilestoneGenerator: Persists milestones and their tasks.
"""

from __future__ import annotations

from datetime import date, timedelta

import structlog

from src.app.deals.repository import DealRepository
from src.app.deals.schemas import (
    DealStage,
    MilestoneCreate,
    MilestoneRead,
    PodTeamMember,
    TaskCreate,
    TaskPriority,
    TaskRead,
    TaskStatus,
    TaskTemplate,
)

logger = structlog.get_logger(__name__)

MILESTONE_INTERVAL_DAYS = 7

STAGE_MILESTONES: dict[DealStage, list[tuple[str, str]]] = {
    DealStage.ORIGINATION: [
        ("Initial Client Meeting", "Schedule and conduct initial meeting with client to understand needs"),
        ("Preliminary Information Request", "Send information request list to client"),
        ("Market Assessment", "Conduct preliminary market and sector analysis"),
        ("Engagement Letter", "Prepare and send engagement letter for signing"),
    ],
    DealStage.STRUCTURING: [
        ("Financial Model Development", "Build comprehensive financial model for the deal"),
        ("Valuation Analysis", "Complete valuation analysis using multiple methodologies"),
        ("Deal Structure Proposal", "Develop and present optimal deal structure"),
        ("Marketing Materials", "Create teaser and CIM documents"),
    ],
    DealStage.DILIGENCE: [
        ("Data Room Setup", "Organize and populate virtual data room"),
        ("Due Diligence Checklist", "Complete all due diligence items"),
        ("Management Presentations", "Coordinate management presentation sessions"),
        ("Buyer/Investor Outreach", "Contact and qualify potential buyers/investors"),
    ],
    DealStage.LEGAL: [
        ("LOI/Term Sheet", "Review and negotiate letter of intent"),
        ("Legal Documentation", "Coordinate preparation of definitive agreements"),
        ("Regulatory Filings", "Prepare and submit required regulatory filings"),
        ("Final Negotiations", "Support final negotiation sessions"),
    ],
    DealStage.CLOSE: [
        ("Closing Checklist", "Complete all closing requirements"),
        ("Funds Transfer", "Coordinate fund flow and closing mechanics"),
        ("Post-Closing Items", "Handle post-closing deliverables"),
        ("Deal Wrap-Up", "Complete deal file and lessons learned"),
    ],
}


# ── Task Templates ──────────────────────────────────────────────────────────


def _template(title: str, description: str, priority: TaskPriority, type_: str) -> TaskTemplate:
    return TaskTemplate(title=title, description=description, priority=priority, type=type_)


def generate_task_templates(milestone_title: str) -> list[TaskTemplate]:
    """Pick task templates by keyword on the milestone title.

    Keywords are checked in order and the first match wins: Meeting,
    Financial Model/Valuation, Document/Materials, Due Diligence/Diligence.
    Anything else gets a generic Complete/Review pair.
    """
    high, medium, low = TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW

    if "Meeting" in milestone_title:
        return [
            _template("Schedule meeting", "Coordinate calendars and send invites", high, "Coordination"),
            _template("Prepare meeting agenda", "Draft agenda and key discussion points", medium, "Documentation"),
            _template("Send meeting materials", "Distribute pre-read materials to participants", medium, "Communication"),
        ]

    if "Financial Model" in milestone_title or "Valuation" in milestone_title:
        return [
            _template("Gather financial data", "Collect historical financials and projections", high, "Analysis"),
            _template("Build model structure", "Create model framework and assumptions", high, "Analysis"),
            _template("Run sensitivity analysis", "Test key assumptions and scenarios", medium, "Analysis"),
            _template("Quality check model", "Review formulas and cross-check calculations", high, "Review"),
        ]

    if "Document" in milestone_title or "Materials" in milestone_title:
        return [
            _template("Draft initial content", "Create first draft of document", high, "Documentation"),
            _template("Internal review", "Circulate for team feedback", medium, "Review"),
            _template("Incorporate feedback", "Address comments and revise", medium, "Documentation"),
            _template("Final formatting", "Polish layout and design", low, "Documentation"),
        ]

    # "Due Diligence" contains "Diligence", one check covers both
    if "Diligence" in milestone_title:
        return [
            _template("Create DD checklist", "Compile comprehensive due diligence items", high, "Analysis"),
            _template("Request information", "Send information requests to relevant parties", high, "Communication"),
            _template("Review received materials", "Analyze submitted documents", medium, "Analysis"),
            _template("Summarize findings", "Document key observations and issues", medium, "Documentation"),
        ]

    return [
        _template(f"Complete {milestone_title}", f"Execute {milestone_title} requirements", high, "General"),
        _template(f"Review {milestone_title}", "Quality check and approval", medium, "Review"),
    ]


# ── Generator ───────────────────────────────────────────────────────────────


class MilestoneGenerator:
    """Create stage milestones for a deal and expand them into tasks.

    Args:
        repository: DealRepository for persistence and live workload counts.
    """

    def __init__(self, repository: DealRepository) -> None:
        self._repo = repository

    async def create_milestones_for_deal(
        self, deal_id: str, stage: DealStage | str
    ) -> list[MilestoneRead]:
        """Insert the stage's milestones, one week apart starting next week.

        Unknown stages produce no milestones.
        """
        try:
            stage = DealStage(stage)
        except ValueError:
            logger.warning("milestones.unknown_stage", deal_id=deal_id, stage=str(stage))
            return []

        today = date.today()
        created: list[MilestoneRead] = []
        for i, (title, description) in enumerate(STAGE_MILESTONES.get(stage, [])):
            milestone = await self._repo.create_milestone(
                MilestoneCreate(
                    deal_id=deal_id,
                    title=title,
                    description=description,
                    stage=stage,
                    order=i,
                    status="pending",
                    due_date=today + timedelta(days=MILESTONE_INTERVAL_DAYS * (i + 1)),
                )
            )
            created.append(milestone)

        logger.info(
            "milestones.created",
            deal_id=deal_id,
            stage=stage.value,
            count=len(created),
        )
        return created

    async def create_tasks_from_milestone(
        self,
        milestone_id: str,
        deal_id: str,
        pod_team: list[PodTeamMember],
    ) -> list[TaskRead]:
        """Expand a milestone into tasks assigned across the pod team.

        Members without a user_id cannot hold tasks and are left out of the
        rotation. Task i goes to the i-th least loaded member (modulo team
        size), and due dates step back from the milestone due date so the
        earlier tasks land first.

        Returns:
            Created tasks; empty when the milestone is missing or nobody on
            the team can be assigned.
        """
        milestone = await self._repo.get_milestone(milestone_id)
        if milestone is None:
            logger.warning("milestones.milestone_not_found", milestone_id=milestone_id)
            return []

        assignable: list[tuple[PodTeamMember, int]] = []
        for member in pod_team:
            if member.user_id:
                workload = await self._repo.get_user_workload(member.user_id)
                assignable.append((member, workload))

        if not assignable:
            logger.warning(
                "milestones.no_assignable_members",
                milestone_id=milestone_id,
                deal_id=deal_id,
                team_size=len(pod_team),
            )
            return []

        # Stable: equal workloads keep pod team order
        assignable.sort(key=lambda pair: pair[1])

        templates = generate_task_templates(milestone.title)
        anchor = milestone.due_date or date.today()
        total = len(templates)

        tasks: list[TaskRead] = []
        for i, template in enumerate(templates):
            assignee, _ = assignable[i % len(assignable)]
            task = await self._repo.create_task(
                TaskCreate(
                    title=template.title,
                    description=template.description,
                    deal_id=deal_id,
                    deal_stage=milestone.stage,
                    assigned_to=assignee.user_id,
                    priority=template.priority,
                    due_date=anchor - timedelta(days=(total - i) // 2),
                    status=TaskStatus.PENDING,
                    type=template.type,
                )
            )
            tasks.append(task)

        logger.info(
            "milestones.tasks_created",
            milestone_id=milestone_id,
            deal_id=deal_id,
            count=len(tasks),
            assignees=len(assignable),
        )
        return tasks
