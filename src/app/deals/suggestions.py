"""AI task suggestions for an existing deal.

Builds a snapshot of the deal (tasks, pod team workloads, recent context)
and asks the reasoning model for up to three task adjustments. Each entry
of the response is validated on its own; invalid entries are dropped and
valid ones are stored as pending suggestions for a human to accept.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from pydantic import ValidationError

from src.app.deals.repository import DealRepository
from src.app.deals.schemas import (
    AiTaskSuggestionCreate,
    AiTaskSuggestionRead,
    DealContextRead,
    DealRead,
    TaskRead,
    TaskSuggestionPayload,
)
from src.app.services.llm import LLMService

logger = structlog.get_logger(__name__)

MAX_SUGGESTIONS = 3
RECENT_CONTEXT_COUNT = 5
CONTEXT_EXCERPT_CHARS = 200

SUGGESTION_SYSTEM_PROMPT = (
    "You are an investment banking operations optimizer. Suggest task "
    "adjustments to improve efficiency and balance workload."
)


def build_suggestion_prompt(
    deal: DealRead,
    tasks: list[TaskRead],
    workloads: dict[str, int],
    context: list[DealContextRead],
) -> str:
    task_lines = "\n".join(
        f"- {t.title} ({t.status.value}, assigned to: {t.assigned_to or 'unassigned'}, "
        f"due: {t.due_date.isoformat() if t.due_date else 'no date'})"
        for t in tasks
    )
    workload_lines = "\n".join(
        f"- User {user_id}: {count} active tasks" for user_id, count in workloads.items()
    )
    context_lines = "\n".join(
        c.summary or c.content[:CONTEXT_EXCERPT_CHARS]
        for c in context[-RECENT_CONTEXT_COUNT:]
    )

    return f"""Analyze this deal and suggest task optimizations:

Deal: {deal.name}
Type: {deal.deal_type.value}
Stage: {deal.stage.value}
Client: {deal.client}

Current Tasks ({len(tasks)}):
{task_lines}

Team Workloads:
{workload_lines}

Recent Context:
{context_lines}

Suggest up to {MAX_SUGGESTIONS} task adjustments. For each, provide:
- suggestionType: "reassign" | "reschedule" | "reprioritize" | "new_task"
- title: Brief title
- description: What to do
- reasoning: Why this helps
- priority: "low" | "medium" | "high"
- suggestedChanges: Object with specific changes (taskId, newAssignee, newDueDate, newPriority, etc.)

Return a JSON object of the form {{"suggestions": [...]}}."""


def parse_suggestions(raw: str) -> list[TaskSuggestionPayload]:
    """Validate the model's JSON, keeping only well-formed entries.

    Accepts {"suggestions": [...]}, a bare list, or a single object.
    """
    data: Any = json.loads(raw or '{"suggestions": []}')
    if isinstance(data, dict) and "suggestions" in data:
        data = data["suggestions"]
    entries = data if isinstance(data, list) else [data]

    valid: list[TaskSuggestionPayload] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            valid.append(TaskSuggestionPayload.model_validate(entry))
        except ValidationError as exc:
            logger.info(
                "task_suggestions.entry_dropped",
                errors=exc.error_count(),
                title=entry.get("title"),
            )
    return valid[:MAX_SUGGESTIONS]


class TaskSuggestionGenerator:
    """Generate and persist AI task suggestions for a deal.

    Args:
        repository: DealRepository for the deal snapshot and persistence.
        llm: LLMService for the reasoning-model call.
    """

    def __init__(self, repository: DealRepository, llm: LLMService) -> None:
        self._repo = repository
        self._llm = llm

    async def generate_task_suggestions(self, deal_id: str) -> list[AiTaskSuggestionRead]:
        """Ask the model for task adjustments and store the valid ones.

        Returns:
            Stored suggestions; empty when the deal is missing or the model
            call fails.
        """
        deal = await self._repo.get_deal(deal_id)
        if deal is None:
            logger.warning("task_suggestions.deal_not_found", deal_id=deal_id)
            return []

        tasks = await self._repo.list_tasks(deal_id)
        context = await self._repo.list_deal_context(deal_id)
        workloads: dict[str, int] = {}
        for member in deal.pod_team:
            if member.user_id:
                workloads[member.user_id] = await self._repo.get_user_workload(member.user_id)

        try:
            response = await self._llm.completion(
                messages=[
                    {"role": "system", "content": SUGGESTION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": build_suggestion_prompt(deal, tasks, workloads, context),
                    },
                ],
                model="reasoning",
                temperature=0.5,
                response_format={"type": "json_object"},
                metadata={"operation": "task_suggestions", "deal_id": deal_id},
            )
            payloads = parse_suggestions(response.get("content") or "")
        except Exception as exc:
            logger.warning(
                "task_suggestions.generation_failed",
                deal_id=deal_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

        stored: list[AiTaskSuggestionRead] = []
        for payload in payloads:
            stored.append(
                await self._repo.create_task_suggestion(
                    AiTaskSuggestionCreate(
                        deal_id=deal_id,
                        suggestion_type=payload.suggestion_type,
                        title=payload.title,
                        description=payload.description,
                        reasoning=payload.reasoning,
                        suggested_changes=payload.suggested_changes,
                        priority=payload.priority,
                        status="pending",
                    )
                )
            )

        logger.info(
            "task_suggestions.generated",
            deal_id=deal_id,
            stored=len(stored),
        )
        return stored
