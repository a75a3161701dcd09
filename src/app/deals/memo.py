"""Deal memo: in-app assignment notifications for a deal's pod team.

Delivery is fire-and-forget. Each notification is attempted independently;
a failure is logged and never propagates, mirroring how post-creation
hooks behave elsewhere in the deal pipeline.
"""

from __future__ import annotations

import structlog

from src.app.deals.repository import DealRepository
from src.app.deals.schemas import DealRead, NotificationCreate, PodTeamMember

logger = structlog.get_logger(__name__)


def build_assignment_notification(deal: DealRead, member: PodTeamMember) -> NotificationCreate:
    """Compose the assignment notification for one pod team member."""
    value = f"{deal.value:f}".rstrip("0").rstrip(".") or "0"
    return NotificationCreate(
        user_id=member.user_id or "",
        title=f"New Deal Assignment: {deal.name}",
        message=(
            f"You have been assigned to the {deal.name} deal as {member.role.value}. "
            f"Client: {deal.client}. Sector: {deal.sector}. Value: ${value}M."
        ),
        type="info",
        link=f"/ceo/deals?dealId={deal.id}",
    )


class DealMemoSender:
    """Notify every registered pod team member of a new assignment."""

    def __init__(self, repository: DealRepository) -> None:
        self._repo = repository

    async def send_deal_memo(self, deal_id: str) -> int:
        """Send assignment notifications for a deal.

        Members without a user_id are skipped.

        Returns:
            Number of notifications delivered (0 when the deal is missing).
        """
        deal = await self._repo.get_deal(deal_id)
        if deal is None:
            logger.warning("deal_memo.deal_not_found", deal_id=deal_id)
            return 0

        sent = 0
        for member in deal.pod_team:
            if not member.user_id:
                continue
            try:
                await self._repo.create_notification(
                    build_assignment_notification(deal, member)
                )
                sent += 1
            except Exception as exc:
                logger.warning(
                    "deal_memo.notification_failed",
                    deal_id=deal_id,
                    user_id=member.user_id,
                    error=str(exc),
                )

        logger.info("deal_memo.sent", deal_id=deal_id, notifications=sent)
        return sent
