"""Structured request logging middleware.

Logs every request with method, path, status_code and duration_ms, and
binds request_id plus any deal_id/milestone_id found in the path so
pipeline events logged during the request can be traced back to it.

Uses structlog for structured JSON logging in production and
human-readable console output in development.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.config import Environment, get_settings

logger = structlog.get_logger(__name__)

_HEALTH_PREFIX = "/health"
# /api/v1/automation/deals/{deal_id}/... and /milestones/{milestone_id}/...
_PATH_ID_RE = re.compile(r"/(deals|milestones)/([^/]+)")
_PATH_ID_KEYS = {"deals": "deal_id", "milestones": "milestone_id"}


def _path_ids(path: str) -> dict[str, str]:
    return {_PATH_ID_KEYS[kind]: value for kind, value in _PATH_ID_RE.findall(path)}


def _elapsed_ms(start_time: float) -> float:
    return round((time.monotonic() - start_time) * 1000, 2)


def configure_structlog() -> None:
    """Configure structlog processors based on environment."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.production:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with timing and bind its ids for downstream logs.

    The request id (also returned as X-Request-ID) and any deal or
    milestone id in the path are bound to structlog contextvars, so the
    intake, milestone and suggestion events emitted while serving the
    request carry them too. Health checks are logged at debug level.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            **_path_ids(request.url.path),
        )
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_error",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=_elapsed_ms(start_time),
            )
            raise

        duration_ms = _elapsed_ms(start_time)
        response.headers["X-Request-ID"] = request_id

        if request.url.path.startswith(_HEALTH_PREFIX) and response.status_code < 400:
            log_method = logger.debug
        elif response.status_code >= 500:
            log_method = logger.error
        elif response.status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.info

        log_method(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        structlog.contextvars.clear_contextvars()
        return response
