"""LLM provider abstraction via LiteLLM Router.

Provides an injectable LLM service with:
- GPT-4o as the primary "reasoning" model and GPT-4o-mini as "fast"
- Claude models registered in the same groups as fallbacks
- JSON response mode for structured extraction
- Caller metadata forwarded on every call for cost tracking

The service is constructed once at application start (see main.lifespan)
and passed to the components that need it.
"""

from __future__ import annotations

from typing import Any

import structlog
from litellm import Router

from src.app.config import Settings

logger = structlog.get_logger(__name__)


class LLMUnavailableError(RuntimeError):
    """Raised when a completion is requested but no provider is configured."""


class LLMService:
    """LLM provider abstraction with LiteLLM Router.

    Args:
        openai_api_key: Key for the primary OpenAI models.
        anthropic_api_key: Key for the Anthropic fallback models.
        timeout: Per-request timeout in seconds.
        max_retries: Router-level retries before failing over.
    """

    def __init__(
        self,
        openai_api_key: str = "",
        anthropic_api_key: str = "",
        timeout: int = 30,
        max_retries: int = 3,
    ) -> None:
        model_list: list[dict[str, Any]] = []

        if openai_api_key:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {"model": "openai/gpt-4o", "api_key": openai_api_key},
            })
            model_list.append({
                "model_name": "fast",
                "litellm_params": {"model": "openai/gpt-4o-mini", "api_key": openai_api_key},
            })

        if anthropic_api_key:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "anthropic/claude-sonnet-4-20250514",
                    "api_key": anthropic_api_key,
                },
            })
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "anthropic/claude-3-5-haiku-20241022",
                    "api_key": anthropic_api_key,
                },
            })

        if not model_list:
            logger.warning("llm.no_api_keys", detail="LLM service will be unavailable")
            self.router: Router | None = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=max_retries,
            timeout=timeout,
            allowed_fails=3,
            cooldown_time=30,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> LLMService:
        return cls(
            openai_api_key=settings.OPENAI_API_KEY,
            anthropic_api_key=settings.ANTHROPIC_API_KEY,
            timeout=settings.LLM_TIMEOUT,
            max_retries=settings.LLM_MAX_RETRIES,
        )

    @property
    def available(self) -> bool:
        return self.router is not None

    async def completion(
        self,
        messages: list[dict],
        model: str = "reasoning",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        response_format: dict | None = None,
        metadata: dict | None = None,
    ) -> dict:
        """Execute a completion call through the LiteLLM Router.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model group name ("reasoning" or "fast").
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0-2).
            response_format: Optional provider response format, e.g.
                {"type": "json_object"} for structured extraction.
            metadata: Additional metadata to include in the call.

        Returns:
            Dict with content, model and usage.

        Raises:
            LLMUnavailableError: If no LLM API keys are configured.
        """
        if self.router is None:
            raise LLMUnavailableError("No LLM API keys configured")

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "metadata": metadata or {},
        }
        if response_format is not None:
            kwargs["response_format"] = response_format

        response = await self.router.acompletion(**kwargs)

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return {
            "content": response.choices[0].message.content,
            "model": response.model,
            "usage": usage,
        }
