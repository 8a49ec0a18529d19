"""Application lifecycle management for startup and shutdown tasks.

Startup order matters:
    logging -> database -> rate limiter -> Discogs client -> queue
    -> persister/matcher -> trigger use case -> ingestion service

Everything long-lived lands on app.state so the API dependencies can find it.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bitrot.application.services.discogs_matcher import DiscogsMatcherService
from bitrot.application.services.enrichment_persister import EnrichmentPersister
from bitrot.application.services.release_ingestion_service import ReleaseIngestionService
from bitrot.application.use_cases.trigger_discogs_match import TriggerDiscogsMatchUseCase
from bitrot.application.workers.discogs_queue import DiscogsJobQueue
from bitrot.config import Settings, get_settings
from bitrot.infrastructure.integrations.discogs_client import DiscogsClient
from bitrot.infrastructure.observability import LogMessages, configure_logging
from bitrot.infrastructure.persistence import Database
from bitrot.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0


def wire_services(app: FastAPI, settings: Settings, db: Database, client: DiscogsClient) -> None:
    """Build the enrichment stack on top of a database and a Discogs client.

    Split out of lifespan() so tests can wire an app against a temp database
    and a mocked Discogs transport.
    """
    queue = DiscogsJobQueue(max_concurrency=settings.discogs.queue_concurrency)
    persister = EnrichmentPersister(db)
    matcher = DiscogsMatcherService(client, persister, settings.discogs)
    trigger_match = TriggerDiscogsMatchUseCase(db, matcher, queue)

    app.state.settings = settings
    app.state.db = db
    app.state.discogs_client = client
    app.state.discogs_queue = queue
    app.state.discogs_matcher = matcher
    app.state.trigger_match = trigger_match
    app.state.ingestion_service = ReleaseIngestionService(
        db, persister, dispatch_match=trigger_match.dispatch
    )


# Listen future me, everything before `yield` is STARTUP, everything after is SHUTDOWN. The
# try/finally makes sure the HTTP client and the engine are closed even when startup blows up.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    db: Database | None = None
    client: DiscogsClient | None = None
    try:
        db = Database(settings)
        if settings.database.auto_create_tables:
            await db.create_tables()
        logger.info("Database initialized: %s", settings.database.url)

        # ONE limiter for the whole process - the 1.3s spacing is global, not per request
        rate_limiter = RateLimiter.for_discogs(
            min_interval_seconds=settings.discogs.min_interval_seconds,
            rate_limit_cooldown_seconds=settings.discogs.rate_limit_retry_seconds,
        )
        client = DiscogsClient(settings.discogs, rate_limiter)
        if not settings.discogs.is_configured:
            logger.warning(
                LogMessages.service_not_configured(
                    "Discogs",
                    "DISCOGS_TOKEN",
                    hint="Ingestion works, but every match returns discogs_not_configured",
                )
            )

        wire_services(app, settings, db, client)
        logger.info(
            "Discogs matching ready (concurrency %d, min interval %.1fs)",
            settings.discogs.queue_concurrency,
            settings.discogs.min_interval_seconds,
        )

        yield

    except Exception as e:
        logger.exception("Error during application startup: %s", e)
        raise
    finally:
        logger.info("Shutting down application")

        # Queued jobs are not cancelled; give running ones a moment, the rest is lost
        queue: DiscogsJobQueue | None = getattr(app.state, "discogs_queue", None)
        if queue is not None and not await queue.wait_idle(SHUTDOWN_DRAIN_SECONDS):
            logger.warning("Discogs queue not idle at shutdown: %s", queue.stats())

        if client is not None:
            await client.close()
        if db is not None:
            await db.close()
        logger.info("Shutdown complete")
