"""Deterministic pod team selection for new deals.

Ranks every active user by fitness for a deal and picks a Lead plus two
members. The ranking is a greedy heuristic over a snapshot of live
workload signals -- there is no lookahead or global assignment.

Score (starting at BASE_SCORE):
    -10 per open task
    -15 per active deal
    with a personality profile:
        +20 if the deal type is preferred
        +15 if the sector is preferred
        -50 if active deals >= workload capacity (default 5)
        +10 for senior/expert experience

IMPORTANT: Do NOT use LLM for scoring. The weights are fixed tuning values
kept identical across releases so staffing stays comparable.

Exports:
    TeamScorer: Loads candidates, scores them, and builds a TeamSelection.
"""

from __future__ import annotations

import structlog

from src.app.deals.repository import DealRepository
from src.app.deals.schemas import (
    CandidateScore,
    DealStage,
    DealType,
    ExperienceLevel,
    PersonalityProfileRead,
    PodTeamMember,
    TeamRole,
    TeamSelection,
)

logger = structlog.get_logger(__name__)

BASE_SCORE = 100
WORKLOAD_PENALTY = 10
ACTIVE_DEAL_PENALTY = 15
DEAL_TYPE_BONUS = 20
SECTOR_BONUS = 15
OVER_CAPACITY_PENALTY = 50
SENIORITY_BONUS = 10
DEFAULT_WORKLOAD_CAPACITY = 5
TEAM_MEMBER_COUNT = 2


class TeamScorer:
    """Rank active users for a deal and pick its pod team.

    Args:
        repository: Source of users, profiles and live workload counts.
    """

    def __init__(self, repository: DealRepository) -> None:
        self._repo = repository

    # ── Scoring (pure) ──────────────────────────────────────────────────────

    @staticmethod
    def score_candidate(
        deal_type: DealType | str,
        sector: str,
        workload: int,
        active_deals: int,
        profile: PersonalityProfileRead | None = None,
    ) -> float:
        """Compute one user's fitness score for a deal."""
        deal_type_value = deal_type.value if isinstance(deal_type, DealType) else deal_type

        score = float(BASE_SCORE)
        score -= workload * WORKLOAD_PENALTY
        score -= active_deals * ACTIVE_DEAL_PENALTY

        if profile is not None:
            if deal_type_value in profile.preferred_deal_types:
                score += DEAL_TYPE_BONUS
            if sector in profile.preferred_sectors:
                score += SECTOR_BONUS

            capacity = profile.workload_capacity or DEFAULT_WORKLOAD_CAPACITY
            if active_deals >= capacity:
                score -= OVER_CAPACITY_PENALTY

            if profile.is_senior:
                score += SENIORITY_BONUS

        return score

    @staticmethod
    def is_lead_eligible(candidate: CandidateScore) -> bool:
        profile = candidate.profile
        if profile is None:
            return False
        return profile.is_senior or bool(profile.leadership_style)

    # ── Selection ───────────────────────────────────────────────────────────

    async def rank_candidates(
        self, deal_type: DealType | str, sector: str
    ) -> list[CandidateScore]:
        """Score every active user and sort by descending score.

        Python's sort is stable, so ties keep the order users were loaded in.
        """
        users = await self._repo.list_active_users()
        profiles = {p.user_id: p for p in await self._repo.list_personality_profiles()}

        candidates: list[CandidateScore] = []
        for user in users:
            profile = profiles.get(user.id)
            workload = await self._repo.get_user_workload(user.id)
            active_deals = await self._repo.get_active_deals_count(user.id)
            candidates.append(
                CandidateScore(
                    user=user,
                    profile=profile,
                    workload=workload,
                    active_deals=active_deals,
                    score=self.score_candidate(
                        deal_type, sector, workload, active_deals, profile
                    ),
                )
            )

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates

    async def select_team(
        self,
        deal_type: DealType | str,
        sector: str,
        stage: DealStage = DealStage.ORIGINATION,
    ) -> TeamSelection:
        """Pick the Lead and members for a new deal.

        The Lead is the best-scoring lead-eligible user (senior/expert or with
        a leadership style), falling back to the best scorer overall. Members
        are the next TEAM_MEMBER_COUNT scorers excluding the Lead.

        Args:
            deal_type: Extracted deal type, matched against preferences.
            sector: Extracted sector, matched against preferences.
            stage: Stage the team is staffed for. Scoring does not depend on
                it today; it is logged for traceability.

        Returns:
            TeamSelection; the Lead is an "Unassigned" placeholder with no
            user_id when there are no active users.
        """
        ranked = await self.rank_candidates(deal_type, sector)

        if not ranked:
            logger.warning("team_scorer.no_active_users", stage=stage.value)
            return TeamSelection(
                lead=PodTeamMember(name="Unassigned", role=TeamRole.LEAD),
                members=[],
            )

        eligible = [c for c in ranked if self.is_lead_eligible(c)]
        lead_candidate = eligible[0] if eligible else ranked[0]

        member_candidates = [
            c for c in ranked if c.user.id != lead_candidate.user.id
        ][:TEAM_MEMBER_COUNT]

        lead = self._to_member(lead_candidate, TeamRole.LEAD)
        members = [
            self._to_member(
                c,
                TeamRole.ANALYST
                if c.profile is not None
                and c.profile.experience_level == ExperienceLevel.JUNIOR
                else TeamRole.ASSOCIATE,
            )
            for c in member_candidates
        ]

        logger.info(
            "team_scorer.team_selected",
            stage=stage.value,
            candidates=len(ranked),
            lead=lead.name,
            lead_score=lead_candidate.score,
            lead_fallback=not eligible,
            members=[m.name for m in members],
        )
        return TeamSelection(lead=lead, members=members)

    @staticmethod
    def _to_member(candidate: CandidateScore, role: TeamRole) -> PodTeamMember:
        user = candidate.user
        return PodTeamMember(
            user_id=user.id,
            name=user.name,
            role=role,
            email=user.email,
            phone=user.phone or None,
        )
