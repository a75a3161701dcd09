"""Email intake orchestrator: Gmail label -> staffed deals.

Scans a Gmail label, groups messages by thread and turns each new thread
into either a staffed deal (with milestones, tasks, context and team
notifications) or an ignored/error record.

Each thread is claimed by inserting an IntakeJob row whose thread_id is
unique, so a thread can only be processed once even if two runs overlap.
Sub-steps are appended to the job as they complete; there is no
transaction around the whole sequence, so a failed job shows exactly how
far it got.

Exports:
    group_by_thread: Group emails by thread id, first-seen order.
    EmailIntakeOrchestrator: Runs one pass over a label.
"""

from __future__ import annotations

import structlog

from src.app.deals.context import DealContextRecorder
from src.app.deals.extraction import DealExtractor
from src.app.deals.memo import DealMemoSender
from src.app.deals.milestones import MilestoneGenerator
from src.app.deals.repository import DealRepository, DuplicateThreadError
from src.app.deals.schemas import (
    DealCreate,
    DealRead,
    DealStage,
    DealType,
    EmailDealCreate,
    EmailDealStatus,
    ExtractedDealInfo,
    ExtractionAccepted,
    ExtractionOutcome,
    IntakeJobRead,
    IntakeJobStatus,
    IntakeStats,
    IntakeStep,
)
from src.app.deals.team import TeamScorer
from src.app.services.gsuite.gmail import GmailService
from src.app.services.gsuite.models import ParsedEmail

logger = structlog.get_logger(__name__)

IGNORED_NOTE = "Not identified as a deal"


def group_by_thread(emails: list[ParsedEmail]) -> dict[str, list[ParsedEmail]]:
    threads: dict[str, list[ParsedEmail]] = {}
    for email in emails:
        threads.setdefault(email.thread_id, []).append(email)
    return threads


class EmailIntakeOrchestrator:
    """Process a Gmail label into deals, one thread at a time.

    Args:
        gmail: GmailService used to scan the label.
        repository: DealRepository for intake records and deals.
        extractor: DealExtractor that classifies each thread.
        team_scorer: TeamScorer that staffs accepted deals.
        milestone_generator: Creates Origination milestones and tasks.
        context_recorder: Attaches each email body to the deal.
        memo_sender: Notifies the pod team.
        default_folder: Label scanned when no folder is given.
        create_as_opportunity: Store new deals with type Opportunity
            instead of the extracted type.
    """

    def __init__(
        self,
        gmail: GmailService,
        repository: DealRepository,
        extractor: DealExtractor,
        team_scorer: TeamScorer,
        milestone_generator: MilestoneGenerator,
        context_recorder: DealContextRecorder,
        memo_sender: DealMemoSender,
        default_folder: str = "Deals",
        create_as_opportunity: bool = True,
    ) -> None:
        self._gmail = gmail
        self._repo = repository
        self._extractor = extractor
        self._team_scorer = team_scorer
        self._milestones = milestone_generator
        self._context = context_recorder
        self._memo = memo_sender
        self._default_folder = default_folder
        self._create_as_opportunity = create_as_opportunity

    async def process_email_folder(self, folder_name: str | None = None) -> IntakeStats:
        """Run one intake pass over a label.

        Threads are handled sequentially. A failing thread is recorded and
        counted in errors; it never stops the remaining threads.

        Returns:
            IntakeStats with processed/created/ignored/skipped/errors.
        """
        folder_name = folder_name or self._default_folder
        stats = IntakeStats()

        try:
            emails = await self._gmail.scan_deal_folder(folder_name)
        except Exception as exc:
            logger.error(
                "deal_intake.folder_scan_failed",
                folder_name=folder_name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            stats.errors += 1
            return stats

        for thread_id, thread_emails in group_by_thread(emails).items():
            stats.processed += 1

            try:
                job = await self._claim_thread(thread_id, folder_name)
            except Exception as exc:
                logger.error(
                    "deal_intake.claim_failed",
                    thread_id=thread_id,
                    error=str(exc),
                )
                stats.errors += 1
                continue

            if job is None:
                stats.skipped += 1
                continue

            steps: list[IntakeStep] = []
            try:
                created = await self._process_thread(job, thread_emails, steps)
            except Exception as exc:
                stats.errors += 1
                logger.error(
                    "deal_intake.thread_failed",
                    thread_id=thread_id,
                    completed_steps=[s.value for s in steps],
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await self._record_failure(job, thread_emails, steps, exc)
                continue

            if created:
                stats.created += 1
            else:
                stats.ignored += 1

        logger.info("deal_intake.run_complete", folder_name=folder_name, **stats.model_dump())
        return stats

    # ── Per-thread steps ────────────────────────────────────────────────────

    async def _claim_thread(self, thread_id: str, folder_name: str) -> IntakeJobRead | None:
        """Claim a thread, or return None if it was already handled."""
        if await self._repo.get_email_deal_by_thread(thread_id) is not None:
            logger.debug("deal_intake.thread_already_recorded", thread_id=thread_id)
            return None
        try:
            return await self._repo.claim_intake_job(thread_id, folder_name)
        except DuplicateThreadError:
            logger.debug("deal_intake.thread_already_claimed", thread_id=thread_id)
            return None

    async def _mark(
        self,
        job: IntakeJobRead,
        steps: list[IntakeStep],
        step: IntakeStep,
        deal_id: str | None = None,
    ) -> None:
        await self._repo.mark_intake_step(job.id, step, deal_id=deal_id)
        steps.append(step)

    async def _process_thread(
        self,
        job: IntakeJobRead,
        emails: list[ParsedEmail],
        steps: list[IntakeStep],
    ) -> bool:
        """Handle one claimed thread. Returns True when a deal was created."""
        outcome = await self._extractor.classify(emails)
        if not isinstance(outcome, ExtractionAccepted):
            await self._record_ignored(job, emails, outcome)
            return False

        extracted = outcome.deal
        await self._mark(job, steps, IntakeStep.EXTRACTED)

        deal = await self._create_deal(extracted)
        await self._mark(job, steps, IntakeStep.DEAL_CREATED, deal_id=deal.id)

        first = emails[0]
        await self._repo.record_email_deal(
            EmailDealCreate(
                email_id=first.id,
                thread_id=job.thread_id,
                subject=first.subject,
                sender=first.sender,
                received_at=first.date,
                extracted_data=extracted.model_dump(mode="json"),
                deal_id=deal.id,
                status=EmailDealStatus.PROCESSED,
            )
        )
        await self._mark(job, steps, IntakeStep.EMAIL_RECORDED)

        milestones = await self._milestones.create_milestones_for_deal(
            deal.id, DealStage.ORIGINATION
        )
        await self._mark(job, steps, IntakeStep.MILESTONES_CREATED)

        for milestone in milestones:
            await self._milestones.create_tasks_from_milestone(
                milestone.id, deal.id, deal.pod_team
            )
        await self._mark(job, steps, IntakeStep.TASKS_CREATED)

        for email in emails:
            await self._context.add_deal_context(deal.id, "email", email.body, email.id)
        await self._mark(job, steps, IntakeStep.CONTEXT_ATTACHED)

        await self._memo.send_deal_memo(deal.id)
        await self._mark(job, steps, IntakeStep.TEAM_NOTIFIED)

        await self._repo.finish_intake_job(job.id, IntakeJobStatus.COMPLETED)
        logger.info(
            "deal_intake.deal_created",
            thread_id=job.thread_id,
            deal_id=deal.id,
            name=deal.name,
            milestones=len(milestones),
        )
        return True

    async def _create_deal(self, extracted: ExtractedDealInfo) -> DealRead:
        team = await self._team_scorer.select_team(
            extracted.deal_type, extracted.sector, DealStage.ORIGINATION
        )
        deal_type = DealType.OPPORTUNITY if self._create_as_opportunity else extracted.deal_type
        return await self._repo.create_deal(
            DealCreate(
                name=extracted.name,
                deal_type=deal_type,
                stage=DealStage.ORIGINATION,
                value=extracted.estimated_value,
                client=extracted.client,
                client_contact_name=extracted.client_contact_name,
                client_contact_email=extracted.client_contact_email,
                sector=extracted.sector,
                lead=team.lead.name,
                description=extracted.description,
                pod_team=team.pod_team,
                progress=0,
                status="Active",
            )
        )

    async def _record_ignored(
        self,
        job: IntakeJobRead,
        emails: list[ParsedEmail],
        outcome: ExtractionOutcome,
    ) -> None:
        first = emails[0]
        await self._repo.record_email_deal(
            EmailDealCreate(
                email_id=first.id,
                thread_id=job.thread_id,
                subject=first.subject,
                sender=first.sender,
                received_at=first.date,
                extracted_data=outcome.model_dump(mode="json"),
                status=EmailDealStatus.IGNORED,
                processing_notes=IGNORED_NOTE,
            )
        )
        await self._repo.finish_intake_job(job.id, IntakeJobStatus.IGNORED)
        logger.info("deal_intake.thread_ignored", thread_id=job.thread_id, outcome=outcome.kind)

    async def _record_failure(
        self,
        job: IntakeJobRead,
        emails: list[ParsedEmail],
        steps: list[IntakeStep],
        exc: Exception,
    ) -> None:
        """Record the error row and fail the job. Never raises."""
        message = str(exc) or type(exc).__name__
        first = emails[0]

        # A processed row already stands for this thread once it was recorded
        if IntakeStep.EMAIL_RECORDED not in steps:
            try:
                await self._repo.record_email_deal(
                    EmailDealCreate(
                        email_id=first.id,
                        thread_id=job.thread_id,
                        subject=first.subject,
                        sender=first.sender,
                        received_at=first.date,
                        status=EmailDealStatus.ERROR,
                        processing_notes=message,
                    )
                )
            except Exception as record_exc:
                logger.error(
                    "deal_intake.error_record_failed",
                    thread_id=job.thread_id,
                    error=str(record_exc),
                )

        try:
            await self._repo.finish_intake_job(job.id, IntakeJobStatus.FAILED, error=message)
        except Exception as finish_exc:
            logger.error(
                "deal_intake.job_finish_failed",
                job_id=job.id,
                thread_id=job.thread_id,
                error=str(finish_exc),
            )
