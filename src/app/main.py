"""FastAPI application factory.

Creates the app with logging middleware, CORS, lifespan events for database
initialization and deal automation wiring, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.app.config import Settings, get_settings
from src.app.core.database import close_db, get_session, init_db
from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.v1 import health
from src.app.api.v1.router import router as v1_router

log = structlog.get_logger(__name__)

_STATE_KEYS = (
    "llm_service",
    "gmail_service",
    "deal_repository",
    "team_scorer",
    "milestone_generator",
    "suggestion_generator",
    "intake_orchestrator",
    "intake_scheduler",
)


def _build_gmail_service(settings: Settings):
    """Build the Gmail collaborator, or None when credentials are missing."""
    from src.app.services.gsuite import GmailService, GSuiteAuthManager

    sa_path = settings.get_service_account_path()
    if not sa_path or not settings.GOOGLE_DELEGATED_USER_EMAIL:
        log.warning(
            "deal_automation.gmail_not_configured",
            hint="Set GOOGLE_SERVICE_ACCOUNT_FILE and GOOGLE_DELEGATED_USER_EMAIL",
        )
        return None

    auth = GSuiteAuthManager(
        service_account_file=sa_path,
        delegated_user_email=settings.GOOGLE_DELEGATED_USER_EMAIL,
    )
    return GmailService(
        auth_manager=auth,
        default_user_email=settings.GOOGLE_DELEGATED_USER_EMAIL,
        max_results=settings.DEAL_INTAKE_MAX_RESULTS,
    )


def init_deal_automation(app: FastAPI, settings: Settings) -> None:
    """Construct the deal automation collaborators and store them on app.state."""
    from src.app.deals.context import DealContextRecorder
    from src.app.deals.extraction import DealExtractor
    from src.app.deals.intake import EmailIntakeOrchestrator
    from src.app.deals.memo import DealMemoSender
    from src.app.deals.milestones import MilestoneGenerator
    from src.app.deals.repository import DealRepository
    from src.app.deals.scheduler import IntakeScheduler
    from src.app.deals.suggestions import TaskSuggestionGenerator
    from src.app.deals.team import TeamScorer
    from src.app.services.llm import LLMService

    llm = LLMService.from_settings(settings)
    repository = DealRepository(session_factory=get_session)
    team_scorer = TeamScorer(repository)
    milestone_generator = MilestoneGenerator(repository)

    app.state.llm_service = llm
    app.state.deal_repository = repository
    app.state.team_scorer = team_scorer
    app.state.milestone_generator = milestone_generator
    app.state.suggestion_generator = TaskSuggestionGenerator(repository, llm)

    gmail = _build_gmail_service(settings)
    app.state.gmail_service = gmail
    if gmail is None:
        return

    orchestrator = EmailIntakeOrchestrator(
        gmail=gmail,
        repository=repository,
        extractor=DealExtractor(llm),
        team_scorer=team_scorer,
        milestone_generator=milestone_generator,
        context_recorder=DealContextRecorder(repository, llm),
        memo_sender=DealMemoSender(repository),
        default_folder=settings.DEAL_INTAKE_FOLDER,
    )
    app.state.intake_orchestrator = orchestrator

    scheduler = IntakeScheduler(
        orchestrator,
        folder_name=settings.DEAL_INTAKE_FOLDER,
        interval_minutes=settings.DEAL_INTAKE_INTERVAL_MINUTES,
    )
    if scheduler.start():
        app.state.intake_scheduler = scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB and collaborators on startup, close on shutdown."""
    settings = get_settings()
    configure_structlog()
    await init_db()

    for key in _STATE_KEYS:
        setattr(app.state, key, None)

    # Failure-tolerant: the API still serves health checks without automation
    try:
        init_deal_automation(app, settings)
        log.info(
            "deal_automation.initialized",
            intake_enabled=app.state.intake_orchestrator is not None,
            scheduler_enabled=app.state.intake_scheduler is not None,
        )
    except Exception:
        log.warning("deal_automation.init_failed", exc_info=True)

    yield

    if app.state.intake_scheduler is not None:
        app.state.intake_scheduler.stop()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Deal Intake API",
        version="0.1.0",
        description="Email deal intake and pod team assignment",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Liveness/readiness at the root, everything else under /api/v1
    app.include_router(health.router)
    app.include_router(v1_router, prefix="/api/v1")

    return app


# Module-level app for uvicorn
app = create_app()
