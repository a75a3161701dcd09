"""Deal extraction from email threads.

Sends a thread to the LLM in JSON mode and validates the response against
DealExtractionPayload immediately after parsing, producing one of:
- ExtractionAccepted: is_deal and confidence >= ACCEPTANCE_THRESHOLD
- ExtractionRejected: the model says this is not a deal (or is unsure)
- ExtractionMalformed: the call failed or the JSON did not validate

Downstream code only ever sees a fully-defaulted ExtractedDealInfo.

Exports:
    DealExtractor: LLM-powered deal classification and field extraction.
"""

from __future__ import annotations

import json

import structlog
from pydantic import ValidationError

from src.app.deals.schemas import (
    DealExtractionPayload,
    DealType,
    ExtractedDealInfo,
    ExtractionAccepted,
    ExtractionMalformed,
    ExtractionOutcome,
    ExtractionRejected,
)
from src.app.services.gsuite.models import ParsedEmail
from src.app.services.llm import LLMService

logger = structlog.get_logger(__name__)

BODY_CHAR_LIMIT = 2000
EMAIL_SEPARATOR = "\n\n---\n\n"

EXTRACTION_SYSTEM_PROMPT = """You are an investment banking deal analyst. Extract deal information from emails.
Return a JSON object with these fields:
- name: Deal name/project name (string)
- dealType: One of "M&A", "Capital Raising", or "Asset Management"
- client: Client company name (string)
- sector: Industry sector like Technology, Healthcare, Consumer, Financial Services, Energy, Real Estate, Manufacturing, etc.
- estimatedValue: Deal value in millions USD (number, estimate if not explicit)
- description: Brief deal description (string)
- clientContactName: Primary contact name if mentioned (string or null)
- clientContactEmail: Contact email if mentioned (string or null)
- confidence: How confident you are in the extraction, 0-100 (number)
- isDeal: Boolean indicating if this actually appears to be a deal (vs spam/unrelated)

Only extract if the emails appear to describe an actual investment banking deal opportunity."""


def format_thread(emails: list[ParsedEmail]) -> str:
    """Render a thread as the user message of the extraction prompt."""
    blocks = [
        f"From: {e.sender}\nSubject: {e.subject}\nDate: {e.date.isoformat()}\n\n"
        f"{e.body[:BODY_CHAR_LIMIT]}"
        for e in emails
    ]
    return EMAIL_SEPARATOR.join(blocks)


class DealExtractor:
    """Classify a mail thread as deal/not-deal and extract its fields.

    Thresholds:
    - ACCEPTANCE_THRESHOLD = 50: minimum model confidence (inclusive)

    Args:
        llm: LLMService used for the JSON-mode completion.
        model: Router model group (default: "reasoning").
    """

    ACCEPTANCE_THRESHOLD = 50.0

    def __init__(self, llm: LLMService, model: str = "reasoning") -> None:
        self._llm = llm
        self._model = model

    async def classify(self, emails: list[ParsedEmail]) -> ExtractionOutcome:
        """Run extraction and return a tagged outcome. Never raises."""
        if not emails:
            return ExtractionRejected(reason="Empty thread")

        try:
            response = await self._llm.completion(
                messages=[
                    {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                    {"role": "user", "content": format_thread(emails)},
                ],
                model=self._model,
                temperature=0.3,
                max_tokens=1024,
                response_format={"type": "json_object"},
                metadata={"operation": "deal_extraction", "thread_id": emails[0].thread_id},
            )
        except Exception as exc:
            # Fail-soft: the orchestrator treats this thread as not-a-deal
            logger.warning(
                "deal_extraction.llm_call_failed",
                thread_id=emails[0].thread_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return ExtractionMalformed(error=f"{type(exc).__name__}: {exc}")

        return self.interpret(response.get("content") or "{}", emails)

    def interpret(self, raw: str, emails: list[ParsedEmail]) -> ExtractionOutcome:
        """Validate the raw JSON text returned by the model and apply the gate."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("deal_extraction.invalid_json", error=str(exc))
            return ExtractionMalformed(error=f"Invalid JSON: {exc}")

        if not isinstance(data, dict):
            return ExtractionMalformed(error="Expected a JSON object")

        try:
            payload = DealExtractionPayload.model_validate(data)
        except ValidationError as exc:
            logger.warning(
                "deal_extraction.schema_mismatch",
                errors=exc.error_count(),
            )
            return ExtractionMalformed(error=f"Schema mismatch: {exc.error_count()} errors")

        if not payload.is_deal:
            return ExtractionRejected(reason="Not identified as a deal", confidence=payload.confidence)
        if payload.confidence < self.ACCEPTANCE_THRESHOLD:
            return ExtractionRejected(
                reason="Confidence below threshold", confidence=payload.confidence
            )

        deal = ExtractedDealInfo(
            name=payload.name or "Unknown Deal",
            deal_type=payload.deal_type or DealType.MA,
            client=payload.client or "Unknown Client",
            sector=payload.sector or "Other",
            estimated_value=payload.estimated_value or 0.0,
            description=payload.description or "",
            client_contact_name=payload.client_contact_name,
            client_contact_email=payload.client_contact_email,
            confidence=payload.confidence,
            related_emails=[e.id for e in emails],
        )
        logger.info(
            "deal_extraction.accepted",
            name=deal.name,
            deal_type=deal.deal_type.value,
            sector=deal.sector,
            confidence=deal.confidence,
        )
        return ExtractionAccepted(deal=deal)

    async def extract(self, emails: list[ParsedEmail]) -> ExtractedDealInfo | None:
        """Return the extracted deal, or None when the thread is not accepted."""
        outcome = await self.classify(emails)
        if isinstance(outcome, ExtractionAccepted):
            return outcome.deal
        return None
