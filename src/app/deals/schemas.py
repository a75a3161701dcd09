"""Pydantic schemas for deal automation -- records, extraction, staffing, intake.

Defines all structured types for the intake pipeline:
- Enums: DealType, DealStage, TeamRole, ExperienceLevel, TaskPriority, TaskStatus,
  EmailDealStatus, IntakeJobStatus, IntakeStep
- Staffing: UserRead, PersonalityProfileRead, PodTeamMember, CandidateScore, TeamSelection
- Records: DealCreate/Read, MilestoneCreate/Read, TaskCreate/Read, EmailDealCreate/Read,
  DealContextCreate/Read, NotificationCreate/Read, AiTaskSuggestionCreate/Read, IntakeJobRead
- LLM trust boundary: DealExtractionPayload, ExtractedDealInfo, ExtractionOutcome
  (Accepted | Rejected | Malformed), TaskSuggestionPayload
- Reporting: IntakeStats
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class DealType(str, Enum):
    """Deal classification used for staffing affinity."""

    MA = "M&A"
    CAPITAL_RAISING = "Capital Raising"
    ASSET_MANAGEMENT = "Asset Management"
    OPPORTUNITY = "Opportunity"


class DealStage(str, Enum):
    """Sequential deal lifecycle phases."""

    ORIGINATION = "Origination"
    STRUCTURING = "Structuring"
    DILIGENCE = "Diligence"
    LEGAL = "Legal"
    CLOSE = "Close"


class TeamRole(str, Enum):
    """Role of a pod team member on a deal."""

    LEAD = "Lead"
    ASSOCIATE = "Associate"
    ANALYST = "Analyst"


class ExperienceLevel(str, Enum):
    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"
    EXPERT = "expert"


class TaskPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class EmailDealStatus(str, Enum):
    """Terminal outcome of processing one mail thread."""

    PROCESSED = "processed"
    IGNORED = "ignored"
    ERROR = "error"


class IntakeJobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    IGNORED = "ignored"
    FAILED = "failed"


class IntakeStep(str, Enum):
    """Sub-steps of turning an accepted thread into a staffed deal."""

    EXTRACTED = "extracted"
    DEAL_CREATED = "deal_created"
    EMAIL_RECORDED = "email_recorded"
    MILESTONES_CREATED = "milestones_created"
    TASKS_CREATED = "tasks_created"
    CONTEXT_ATTACHED = "context_attached"
    TEAM_NOTIFIED = "team_notified"


# ── Staffing ────────────────────────────────────────────────────────────────


class UserRead(BaseModel):
    """Staffing candidate as seen by the scorer."""

    id: str
    name: str
    email: str
    phone: str | None = None
    status: str = "active"


class PersonalityProfileRead(BaseModel):
    """Staffing preferences for a user. Read-only input to scoring."""

    user_id: str
    preferred_deal_types: list[str] = Field(default_factory=list)
    preferred_sectors: list[str] = Field(default_factory=list)
    workload_capacity: int | None = None
    experience_level: ExperienceLevel | None = None
    leadership_style: str | None = None

    @property
    def is_senior(self) -> bool:
        return self.experience_level in (ExperienceLevel.SENIOR, ExperienceLevel.EXPERT)


class PodTeamMember(BaseModel):
    """Team member snapshot embedded in a deal.

    user_id is optional: a pod team may reference an unregistered contact.
    """

    user_id: str | None = None
    name: str
    role: TeamRole
    email: str | None = None
    phone: str | None = None


class CandidateScore(BaseModel):
    """Scored staffing candidate (intermediate result of the team scorer)."""

    user: UserRead
    profile: PersonalityProfileRead | None = None
    workload: int = 0
    active_deals: int = 0
    score: float = 0.0


class TeamSelection(BaseModel):
    """Lead plus members chosen for a deal."""

    lead: PodTeamMember
    members: list[PodTeamMember] = Field(default_factory=list)

    @property
    def pod_team(self) -> list[PodTeamMember]:
        return [self.lead, *self.members]


# ── Deals ───────────────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Schema for creating a deal."""

    name: str
    deal_type: DealType = DealType.MA
    stage: DealStage = DealStage.ORIGINATION
    value: float = 0.0
    client: str
    client_contact_name: str | None = None
    client_contact_email: str | None = None
    sector: str
    lead: str
    description: str | None = None
    pod_team: list[PodTeamMember] = Field(default_factory=list)
    progress: int = Field(default=0, ge=0, le=100)
    status: str = "Active"


class DealRead(DealCreate):
    """Schema for reading a deal (includes persisted fields)."""

    id: str
    created_at: datetime | None = None


# ── Milestones & Tasks ──────────────────────────────────────────────────────


class MilestoneCreate(BaseModel):
    deal_id: str
    title: str
    description: str | None = None
    stage: DealStage
    order: int = 0
    status: str = "pending"
    due_date: date | None = None


class MilestoneRead(MilestoneCreate):
    id: str


class TaskTemplate(BaseModel):
    """Static template a milestone expands into."""

    title: str
    description: str
    priority: TaskPriority
    type: str


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    deal_id: str | None = None
    deal_stage: DealStage | None = None
    assigned_to: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: date | None = None
    status: TaskStatus = TaskStatus.PENDING
    type: str | None = "General"


class TaskRead(TaskCreate):
    id: str


# ── Email intake records ────────────────────────────────────────────────────


class EmailDealCreate(BaseModel):
    email_id: str
    thread_id: str
    subject: str | None = None
    sender: str | None = None
    received_at: datetime | None = None
    extracted_data: dict[str, Any] | None = None
    deal_id: str | None = None
    status: EmailDealStatus
    processing_notes: str | None = None


class EmailDealRead(EmailDealCreate):
    id: str
    created_at: datetime | None = None


class IntakeJobRead(BaseModel):
    id: str
    thread_id: str
    folder_name: str | None = None
    status: IntakeJobStatus = IntakeJobStatus.RUNNING
    completed_steps: list[IntakeStep] = Field(default_factory=list)
    deal_id: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class DealContextCreate(BaseModel):
    deal_id: str
    context_type: str
    content: str
    summary: str | None = None
    source_id: str | None = None
    processed_at: datetime | None = None


class DealContextRead(DealContextCreate):
    id: str


class NotificationCreate(BaseModel):
    user_id: str
    title: str
    message: str
    type: Literal["info", "success", "warning", "error"] = "info"
    link: str | None = None


class NotificationRead(NotificationCreate):
    id: str
    read: bool = False
    created_at: datetime | None = None


# ── LLM Trust Boundary ──────────────────────────────────────────────────────


class DealExtractionPayload(BaseModel):
    """Raw JSON object returned by the extraction prompt.

    Field names follow the camelCase keys requested in the prompt. Every
    field except is_deal/confidence is optional; defaults are applied when
    the payload is promoted to ExtractedDealInfo.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    deal_type: DealType | None = Field(default=None, alias="dealType")
    client: str | None = None
    sector: str | None = None
    estimated_value: float | None = Field(default=None, alias="estimatedValue")
    description: str | None = None
    client_contact_name: str | None = Field(default=None, alias="clientContactName")
    client_contact_email: str | None = Field(default=None, alias="clientContactEmail")
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    is_deal: bool = Field(default=False, alias="isDeal")

    @field_validator("deal_type", mode="before")
    @classmethod
    def _unknown_deal_type_to_none(cls, value: Any) -> Any:
        """Unrecognised deal types fall back to the default instead of failing."""
        if value is None or isinstance(value, DealType):
            return value
        if isinstance(value, str):
            for deal_type in DealType:
                if value.strip().lower() == deal_type.value.lower():
                    return deal_type
        return None


class ExtractedDealInfo(BaseModel):
    """Validated deal fields extracted from a mail thread."""

    name: str = "Unknown Deal"
    deal_type: DealType = DealType.MA
    client: str = "Unknown Client"
    sector: str = "Other"
    estimated_value: float = 0.0
    description: str = ""
    client_contact_name: str | None = None
    client_contact_email: str | None = None
    confidence: float = 0.0
    related_emails: list[str] = Field(default_factory=list)


class ExtractionAccepted(BaseModel):
    kind: Literal["accepted"] = "accepted"
    deal: ExtractedDealInfo


class ExtractionRejected(BaseModel):
    kind: Literal["rejected"] = "rejected"
    reason: str
    confidence: float | None = None


class ExtractionMalformed(BaseModel):
    kind: Literal["malformed"] = "malformed"
    error: str


ExtractionOutcome = Annotated[
    Union[ExtractionAccepted, ExtractionRejected, ExtractionMalformed],
    Field(discriminator="kind"),
]


class TaskSuggestionPayload(BaseModel):
    """One entry of the task-suggestion LLM response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    suggestion_type: Literal[
        "reassign", "reschedule", "reprioritize", "new_task", "modify"
    ] = Field(default="modify", alias="suggestionType")
    title: str = Field(min_length=1)
    description: str = ""
    reasoning: str | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    suggested_changes: dict[str, Any] = Field(
        default_factory=dict, alias="suggestedChanges"
    )

    @field_validator("suggestion_type", "priority", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class AiTaskSuggestionCreate(BaseModel):
    deal_id: str
    suggestion_type: str
    title: str
    description: str = ""
    reasoning: str | None = None
    suggested_changes: dict[str, Any] = Field(default_factory=dict)
    priority: str = "medium"
    status: str = "pending"


class AiTaskSuggestionRead(AiTaskSuggestionCreate):
    id: str
    created_at: datetime | None = None


# ── Reporting ───────────────────────────────────────────────────────────────


class IntakeStats(BaseModel):
    """Aggregate counters returned by a folder intake run."""

    processed: int = 0
    created: int = 0
    ignored: int = 0
    skipped: int = 0
    errors: int = 0
