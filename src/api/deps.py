"""
FastAPI dependencies: database session, repository and engine services.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ai.suggestions import SuggestionCache, SuggestionService, build_provider
from src.config import get_settings
from src.database import get_db
from src.engines.assembly import (
    ExportAssembler,
    ImportOrchestrator,
    ResourceAssigner,
)
from src.kernel.events.event_store import EventStore
from src.kernel.repository import SqlResourceRepository

ACTOR_HEADER = "X-Actor"


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_repository(db: DbSession) -> SqlResourceRepository:
    """One repository per request, bound to the request's session."""
    return SqlResourceRepository(db)


Repository = Annotated[SqlResourceRepository, Depends(get_repository)]


def get_event_store(db: DbSession) -> EventStore:
    return EventStore(db)


Events = Annotated[EventStore, Depends(get_event_store)]


def get_assigner(repo: Repository, events: Events) -> ResourceAssigner:
    return ResourceAssigner(repo, events)


Assigner = Annotated[ResourceAssigner, Depends(get_assigner)]


def get_orchestrator(repo: Repository, events: Events, assigner: Assigner) -> ImportOrchestrator:
    return ImportOrchestrator(repo, assigner, events)


Orchestrator = Annotated[ImportOrchestrator, Depends(get_orchestrator)]


def get_assembler(repo: Repository, events: Events) -> ExportAssembler:
    settings = get_settings()
    return ExportAssembler(repo, events, template_version=settings.export_template_version)


Assembler = Annotated[ExportAssembler, Depends(get_assembler)]


def get_suggestion_service(repo: Repository) -> SuggestionService:
    """Suggestion service with a cache that lives for this request only."""
    settings = get_settings()
    return SuggestionService(
        repo,
        build_provider(settings),
        SuggestionCache(),
        max_items=settings.suggestion_max_items,
    )


Suggestions = Annotated[SuggestionService, Depends(get_suggestion_service)]


def get_actor(request: Request) -> Optional[str]:
    """Free-form actor label for audit rows. Authentication happens upstream."""
    actor = request.headers.get(ACTOR_HEADER)
    return actor.strip()[:200] if actor and actor.strip() else None


Actor = Annotated[Optional[str], Depends(get_actor)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
