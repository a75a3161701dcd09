"""Tests for EmailIntakeOrchestrator end to end over in-memory collaborators.

Gmail is a MagicMock returning ParsedEmail lists, the LLM is an AsyncMock
routed by model group and thread id, and everything else is real code
running against InMemoryDealRepository.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.deals.context import DealContextRecorder
from src.app.deals.extraction import DealExtractor
from src.app.deals.intake import IGNORED_NOTE, EmailIntakeOrchestrator, group_by_thread
from src.app.deals.memo import DealMemoSender
from src.app.deals.milestones import MilestoneGenerator
from src.app.deals.schemas import (
    DealStage,
    DealType,
    EmailDealCreate,
    EmailDealStatus,
    ExperienceLevel,
    IntakeJobStatus,
    IntakeStep,
    TeamRole,
)
from src.app.deals.team import TeamScorer


def _deal_payload(name: str = "Project Atlas", **overrides) -> dict:
    payload = {
        "name": name,
        "dealType": "M&A",
        "client": "Atlas Software Inc",
        "sector": "Technology",
        "estimatedValue": 250,
        "description": "Sell-side mandate",
        "confidence": 85,
        "isDeal": True,
    }
    payload.update(overrides)
    return payload


def _route_llm(mock_llm, llm_reply, deals_by_thread: dict[str, dict]) -> None:
    """Answer extraction calls per thread and summary calls with a fixed text."""

    async def completion(messages, **kwargs):
        if kwargs.get("model") == "fast":
            return llm_reply("Client wants to sell its software unit.")
        thread_id = kwargs["metadata"]["thread_id"]
        return llm_reply(deals_by_thread.get(thread_id, {"isDeal": False, "confidence": 95}))

    mock_llm.completion.side_effect = completion


def _orchestrator(repo, llm, emails, **kwargs) -> EmailIntakeOrchestrator:
    gmail = MagicMock()
    gmail.scan_deal_folder = AsyncMock(return_value=emails)
    return EmailIntakeOrchestrator(
        gmail=gmail,
        repository=repo,
        extractor=DealExtractor(llm),
        team_scorer=TeamScorer(repo),
        milestone_generator=MilestoneGenerator(repo),
        context_recorder=DealContextRecorder(repo, llm),
        memo_sender=DealMemoSender(repo),
        **kwargs,
    )


def _seed_team(repo):
    lead = repo.add_user(
        "Lena Lead",
        experience_level=ExperienceLevel.SENIOR,
        preferred_sectors=["Technology"],
    )
    associate = repo.add_user("Adam Associate", experience_level=ExperienceLevel.MID)
    analyst = repo.add_user("Ana Analyst", experience_level=ExperienceLevel.JUNIOR)
    return lead, associate, analyst


# ── Grouping ─────────────────────────────────────────────────────────────────


def test_group_by_thread_keeps_first_seen_order(make_email):
    emails = [
        make_email("m1", "t-b"),
        make_email("m2", "t-a"),
        make_email("m3", "t-b"),
    ]

    threads = group_by_thread(emails)

    assert list(threads) == ["t-b", "t-a"]
    assert [e.id for e in threads["t-b"]] == ["m1", "m3"]


# ── Happy path ───────────────────────────────────────────────────────────────


class TestDealCreation:
    @pytest.mark.asyncio
    async def test_accepted_thread_becomes_staffed_deal(self, repo, mock_llm, llm_reply, make_email):
        lead, associate, analyst = _seed_team(repo)
        _route_llm(mock_llm, llm_reply, {"thread-1": _deal_payload()})
        emails = [make_email("m1", "thread-1"), make_email("m2", "thread-1", body="Follow-up")]

        stats = await _orchestrator(repo, mock_llm, emails).process_email_folder("Deals")

        assert stats.processed == 1
        assert stats.created == 1
        assert stats.errors == 0

        (deal,) = repo.deals.values()
        assert deal.name == "Project Atlas"
        assert deal.deal_type == DealType.OPPORTUNITY
        assert deal.stage == DealStage.ORIGINATION
        assert deal.status == "Active"
        assert deal.value == 250
        assert deal.lead == "Lena Lead"
        assert deal.pod_team[0].user_id == lead.id
        assert deal.pod_team[0].role == TeamRole.LEAD
        assert {m.user_id for m in deal.pod_team[1:]} == {associate.id, analyst.id}

        (record,) = repo.email_deals.values()
        assert record.status == EmailDealStatus.PROCESSED
        assert record.deal_id == deal.id
        assert record.email_id == "m1"
        assert record.extracted_data["name"] == "Project Atlas"

    @pytest.mark.asyncio
    async def test_unrecognised_deal_type_still_creates_deal(
        self, repo, mock_llm, llm_reply, make_email
    ):
        _seed_team(repo)
        _route_llm(
            mock_llm,
            llm_reply,
            {"thread-1": _deal_payload(dealType="Debt Financing", confidence=95)},
        )

        stats = await _orchestrator(repo, mock_llm, [make_email()]).process_email_folder()

        assert stats.created == 1
        assert stats.ignored == 0
        (record,) = repo.email_deals.values()
        assert record.status == EmailDealStatus.PROCESSED
        assert record.extracted_data["deal_type"] == "M&A"

    @pytest.mark.asyncio
    async def test_deal_is_scaffolded_and_team_notified(self, repo, mock_llm, llm_reply, make_email):
        _seed_team(repo)
        _route_llm(mock_llm, llm_reply, {"thread-1": _deal_payload()})
        emails = [make_email("m1", "thread-1"), make_email("m2", "thread-1")]

        await _orchestrator(repo, mock_llm, emails).process_email_folder()

        (deal,) = repo.deals.values()
        milestones = await repo.list_milestones(deal.id)
        assert len(milestones) == 4
        assert all(m.stage == DealStage.ORIGINATION for m in milestones)

        # Meeting (3) + three generic milestones (2 each)
        tasks = await repo.list_tasks(deal.id)
        assert len(tasks) == 9
        assigned = {t.assigned_to for t in tasks}
        assert assigned <= {m.user_id for m in deal.pod_team}

        contexts = await repo.list_deal_context(deal.id)
        assert [c.source_id for c in contexts] == ["m1", "m2"]
        assert all(c.context_type == "email" for c in contexts)
        assert contexts[0].summary == "Client wants to sell its software unit."

        assert len(repo.notifications) == 3

        (job,) = repo.intake_jobs.values()
        assert job.status == IntakeJobStatus.COMPLETED
        assert job.deal_id == deal.id
        assert job.completed_steps == list(IntakeStep)

    @pytest.mark.asyncio
    async def test_extracted_deal_type_kept_when_not_opportunity(
        self, repo, mock_llm, llm_reply, make_email
    ):
        _seed_team(repo)
        _route_llm(mock_llm, llm_reply, {"thread-1": _deal_payload(dealType="Capital Raising")})

        await _orchestrator(
            repo, mock_llm, [make_email("m1", "thread-1")], create_as_opportunity=False
        ).process_email_folder()

        (deal,) = repo.deals.values()
        assert deal.deal_type == DealType.CAPITAL_RAISING

    @pytest.mark.asyncio
    async def test_no_users_creates_unassigned_deal_without_tasks(
        self, repo, mock_llm, llm_reply, make_email
    ):
        _route_llm(mock_llm, llm_reply, {"thread-1": _deal_payload()})

        stats = await _orchestrator(repo, mock_llm, [make_email("m1", "thread-1")]).process_email_folder()

        assert stats.created == 1
        (deal,) = repo.deals.values()
        assert deal.lead == "Unassigned"
        assert deal.pod_team[0].user_id is None
        assert len(repo.milestones) == 4
        assert repo.tasks == {}
        assert repo.notifications == []

    @pytest.mark.asyncio
    async def test_default_folder_used_when_none_given(self, repo, mock_llm, make_email):
        orchestrator = _orchestrator(repo, mock_llm, [], default_folder="Inbound Deals")

        await orchestrator.process_email_folder()

        orchestrator._gmail.scan_deal_folder.assert_awaited_once_with("Inbound Deals")


# ── Non-deals ────────────────────────────────────────────────────────────────


class TestIgnoredThreads:
    @pytest.mark.asyncio
    async def test_rejected_thread_recorded_as_ignored(self, repo, mock_llm, llm_reply, make_email):
        _route_llm(mock_llm, llm_reply, {})

        stats = await _orchestrator(repo, mock_llm, [make_email("m1", "newsletter")]).process_email_folder()

        assert stats.processed == 1
        assert stats.ignored == 1
        assert stats.created == 0
        assert repo.deals == {}
        (record,) = repo.email_deals.values()
        assert record.status == EmailDealStatus.IGNORED
        assert record.processing_notes == IGNORED_NOTE
        assert record.deal_id is None
        (job,) = repo.intake_jobs.values()
        assert job.status == IntakeJobStatus.IGNORED

    @pytest.mark.asyncio
    async def test_malformed_extraction_recorded_as_ignored(
        self, repo, mock_llm, llm_reply, make_email
    ):
        mock_llm.completion.return_value = llm_reply("```json not really```")

        stats = await _orchestrator(repo, mock_llm, [make_email("m1", "t1")]).process_email_folder()

        assert stats.ignored == 1
        assert stats.errors == 0
        (record,) = repo.email_deals.values()
        assert record.status == EmailDealStatus.IGNORED
        assert record.extracted_data["kind"] == "malformed"


# ── Idempotency ──────────────────────────────────────────────────────────────


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_rerun_skips_processed_threads(self, repo, mock_llm, llm_reply, make_email):
        _seed_team(repo)
        _route_llm(mock_llm, llm_reply, {"thread-1": _deal_payload()})
        emails = [make_email("m1", "thread-1"), make_email("m2", "thread-2")]
        orchestrator = _orchestrator(repo, mock_llm, emails)

        first = await orchestrator.process_email_folder()
        second = await orchestrator.process_email_folder()

        assert first.created == 1
        assert first.ignored == 1
        assert second.processed == 2
        assert second.skipped == 2
        assert second.created == 0
        assert len(repo.deals) == 1
        assert len(repo.email_deals) == 2

    @pytest.mark.asyncio
    async def test_thread_with_existing_record_is_skipped(self, repo, mock_llm, make_email):
        await repo.record_email_deal(
            EmailDealCreate(email_id="m0", thread_id="thread-1", status=EmailDealStatus.IGNORED)
        )

        stats = await _orchestrator(repo, mock_llm, [make_email("m1", "thread-1")]).process_email_folder()

        assert stats.skipped == 1
        assert stats.processed == 1
        mock_llm.completion.assert_not_called()
        assert repo.intake_jobs == {}

    @pytest.mark.asyncio
    async def test_thread_claimed_by_another_run_is_skipped(self, repo, mock_llm, make_email):
        await repo.claim_intake_job("thread-1", "Deals")

        stats = await _orchestrator(repo, mock_llm, [make_email("m1", "thread-1")]).process_email_folder()

        assert stats.skipped == 1
        mock_llm.completion.assert_not_called()


# ── Failures ─────────────────────────────────────────────────────────────────


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_failing_thread_does_not_undo_earlier_deal(
        self, repo, mock_llm, llm_reply, make_email
    ):
        _seed_team(repo)
        _route_llm(
            mock_llm,
            llm_reply,
            {"good": _deal_payload("Good Deal"), "bad": _deal_payload("Broken Deal")},
        )
        original_create = repo.create_deal

        async def flaky_create(data):
            if data.name == "Broken Deal":
                raise RuntimeError("database unavailable")
            return await original_create(data)

        repo.create_deal = flaky_create
        emails = [make_email("m1", "good"), make_email("m2", "bad")]

        stats = await _orchestrator(repo, mock_llm, emails).process_email_folder()

        assert stats.processed == 2
        assert stats.created == 1
        assert stats.errors == 1

        (deal,) = repo.deals.values()
        assert deal.name == "Good Deal"
        assert len(await repo.list_milestones(deal.id)) == 4
        assert len(await repo.list_tasks(deal.id)) > 0

        bad = await repo.get_email_deal_by_thread("bad")
        assert bad.status == EmailDealStatus.ERROR
        assert bad.processing_notes == "database unavailable"

        (failed_job,) = await repo.list_intake_jobs(IntakeJobStatus.FAILED)
        assert failed_job.thread_id == "bad"
        assert failed_job.completed_steps == [IntakeStep.EXTRACTED]
        assert failed_job.error == "database unavailable"

    @pytest.mark.asyncio
    async def test_failure_after_recording_keeps_processed_row(
        self, repo, mock_llm, llm_reply, make_email
    ):
        _seed_team(repo)
        _route_llm(mock_llm, llm_reply, {"thread-1": _deal_payload()})
        repo.create_milestone = AsyncMock(side_effect=RuntimeError("milestone insert failed"))

        stats = await _orchestrator(repo, mock_llm, [make_email("m1", "thread-1")]).process_email_folder()

        assert stats.errors == 1
        assert stats.created == 0
        (record,) = repo.email_deals.values()
        assert record.status == EmailDealStatus.PROCESSED
        (job,) = repo.intake_jobs.values()
        assert job.status == IntakeJobStatus.FAILED
        assert job.completed_steps == [
            IntakeStep.EXTRACTED,
            IntakeStep.DEAL_CREATED,
            IntakeStep.EMAIL_RECORDED,
        ]
        assert job.deal_id is not None

    @pytest.mark.asyncio
    async def test_folder_scan_failure_counts_one_error(self, repo, mock_llm):
        orchestrator = _orchestrator(repo, mock_llm, [])
        orchestrator._gmail.scan_deal_folder.side_effect = RuntimeError("gmail down")

        stats = await orchestrator.process_email_folder()

        assert stats.errors == 1
        assert stats.processed == 0
