"""Deal AI context: raw content attached to a deal with a short summary."""

from __future__ import annotations

import structlog

from src.app.deals.repository import DealRepository
from src.app.deals.schemas import DealContextCreate, DealContextRead
from src.app.services.llm import LLMService

logger = structlog.get_logger(__name__)

SUMMARY_INPUT_CHAR_LIMIT = 4000
FALLBACK_SUMMARY_CHARS = 500
SUMMARY_SYSTEM_PROMPT = (
    "Summarize this deal-related content in 2-3 sentences for quick reference."
)


class DealContextRecorder:
    """Store deal context rows, summarized by the fast model when possible.

    Args:
        repository: DealRepository that persists the context row.
        llm: LLMService used for summarization.
    """

    def __init__(self, repository: DealRepository, llm: LLMService) -> None:
        self._repo = repository
        self._llm = llm

    async def summarize(self, content: str) -> str:
        """Return a 2-3 sentence summary, or the first 500 chars on failure."""
        fallback = content[:FALLBACK_SUMMARY_CHARS]
        try:
            response = await self._llm.completion(
                messages=[
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {"role": "user", "content": content[:SUMMARY_INPUT_CHAR_LIMIT]},
                ],
                model="fast",
                max_tokens=150,
                metadata={"operation": "deal_context_summary"},
            )
        except Exception as exc:
            logger.warning(
                "deal_context.summary_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return fallback
        return response.get("content") or fallback

    async def add_deal_context(
        self,
        deal_id: str,
        context_type: str,
        content: str,
        source_id: str | None = None,
    ) -> DealContextRead:
        summary = await self.summarize(content)
        record = await self._repo.create_deal_context(
            DealContextCreate(
                deal_id=deal_id,
                context_type=context_type,
                content=content,
                summary=summary,
                source_id=source_id,
            )
        )
        logger.info(
            "deal_context.added",
            deal_id=deal_id,
            context_type=context_type,
            source_id=source_id,
        )
        return record
