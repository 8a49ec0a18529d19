"""Dependency injection for API endpoints."""

from collections.abc import AsyncGenerator
from typing import cast

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bitrot.application.services.release_ingestion_service import ReleaseIngestionService
from bitrot.application.use_cases.trigger_discogs_match import (
    GetDiscogsStatusUseCase,
    TriggerDiscogsMatchUseCase,
)
from bitrot.application.workers.discogs_queue import DiscogsJobQueue
from bitrot.infrastructure.persistence.database import Database


# Hey future me, everything long-lived (db, queue, use cases) is built ONCE in lifespan() and
# parked on app.state. These helpers just fetch it. A missing attribute means startup failed
# or a test forgot to wire it - answer 503 instead of an AttributeError 500.
def _from_state(request: Request, name: str, label: str) -> object:
    if not hasattr(request.app.state, name):
        raise HTTPException(status_code=503, detail=f"{label} not initialized")
    return getattr(request.app.state, name)


def get_database(request: Request) -> Database:
    """Get the Database from app state."""
    return cast(Database, _from_state(request, "db", "Database"))


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield one session_scope() session for the request (read-only endpoints)."""
    async with get_database(request).session_scope() as session:
        yield session


def get_discogs_queue(request: Request) -> DiscogsJobQueue:
    """Get the shared Discogs job queue from app state."""
    return cast(DiscogsJobQueue, _from_state(request, "discogs_queue", "Discogs queue"))


def get_trigger_match_use_case(request: Request) -> TriggerDiscogsMatchUseCase:
    """Get the trigger-match use case (cooldown + queue) from app state."""
    return cast(
        TriggerDiscogsMatchUseCase,
        _from_state(request, "trigger_match", "Discogs matching"),
    )


def get_status_use_case(request: Request) -> GetDiscogsStatusUseCase:
    return GetDiscogsStatusUseCase(get_database(request))


def get_ingestion_service(request: Request) -> ReleaseIngestionService:
    """Get the release ingestion service from app state."""
    return cast(
        ReleaseIngestionService,
        _from_state(request, "ingestion_service", "Release ingestion"),
    )
