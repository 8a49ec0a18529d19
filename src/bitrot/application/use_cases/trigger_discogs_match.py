"""Trigger Discogs match use case (with re-match cooldown) and the status view."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from bitrot.application.services.discogs_matcher import DiscogsMatcherService
from bitrot.application.services.enrichment_persister import rating_from_document
from bitrot.application.use_cases import UseCase
from bitrot.application.workers.discogs_queue import DiscogsJobQueue
from bitrot.domain.entities import (
    DiscogsEntityType,
    MatchResult,
    MatchStatusView,
    TriggerMatchResult,
)
from bitrot.domain.exceptions import EntityNotFoundException
from bitrot.infrastructure.observability.logging import set_correlation_id
from bitrot.infrastructure.persistence.database import Database
from bitrot.infrastructure.persistence.models import utc_now
from bitrot.infrastructure.persistence.repositories import (
    DiscogsEntityRepository,
    MatchAttemptRepository,
    ReleaseRepository,
)

logger = logging.getLogger(__name__)

MATCH_COOLDOWN = timedelta(hours=1)
COOLDOWN_SKIP_REASON = "cooldown_1h"


@dataclass
class TriggerDiscogsMatchRequest:
    """Request to (re-)match one release."""

    release_id: str
    force: bool = False


class TriggerDiscogsMatchUseCase(
    UseCase[TriggerDiscogsMatchRequest, TriggerMatchResult]
):
    """Run a Discogs match through the cooldown policy and the job queue.

    Hey future me - the cooldown check happens HERE, before anything is queued,
    and costs zero Discogs calls. The matcher itself has no idea about cooldowns.
    A manual "force" skips the check; automatic triggers (ingestion) never force.

    Also: the cooldown looks at the latest attempt of ANY status. A release that
    was just rejected stays rejected for an hour - which is exactly why temporary
    Discogs errors must never write attempt rows.
    """

    def __init__(
        self,
        database: Database,
        matcher: DiscogsMatcherService,
        queue: DiscogsJobQueue,
        cooldown: timedelta = MATCH_COOLDOWN,
    ) -> None:
        self._db = database
        self._matcher = matcher
        self._queue = queue
        self._cooldown = cooldown
        self._background: set[asyncio.Task[TriggerMatchResult]] = set()

    async def execute(self, request: TriggerDiscogsMatchRequest) -> TriggerMatchResult:
        """Match a release unless its latest attempt is inside the cooldown.

        Raises:
            EntityNotFoundException: unknown release id
        """
        async with self._db.session_scope() as session:
            if await ReleaseRepository(session).get_by_id(request.release_id) is None:
                raise EntityNotFoundException("Release", request.release_id)
            latest = await MatchAttemptRepository(session).get_latest(request.release_id)

        if not request.force and latest is not None:
            age = utc_now() - latest.created_at
            if age < self._cooldown:
                logger.debug(
                    "Skipping Discogs match for %s, last attempt %.0fs ago",
                    request.release_id,
                    age.total_seconds(),
                )
                return TriggerMatchResult(
                    release_id=request.release_id,
                    status=latest.status,
                    confidence_score=latest.confidence_score,
                    discogs_release_id=latest.discogs_release_id,
                    discogs_master_id=latest.discogs_master_id,
                    skipped=True,
                    skip_reason=COOLDOWN_SKIP_REASON,
                )

        result = await self._queue.enqueue(lambda: self._match_current(request.release_id))
        return TriggerMatchResult(
            release_id=result.release_id or request.release_id,
            status=result.status,
            confidence_score=result.confidence_score,
            discogs_release_id=result.discogs_release_id,
            discogs_master_id=result.discogs_master_id,
            skipped=False,
            skip_reason=None,
            debug=result.debug,
            refreshed=result.refreshed,
        )

    # Hey future me - the job may sit in the queue behind another match of the SAME
    # release. Read the row again when the slot opens so a pointer accepted meanwhile
    # sends us down the one-call fast path instead of a second full search.
    async def _match_current(self, release_id: str) -> MatchResult:
        async with self._db.session_scope() as session:
            release = await ReleaseRepository(session).get_by_id(release_id)
        if release is None:
            raise EntityNotFoundException("Release", release_id)
        return await self._matcher.match_release(release)

    # Yo, this is the ingestion hook. It must return immediately and never raise into the
    # caller - the task is tracked (so it isn't garbage collected mid-flight) and its
    # failure is only logged.
    def dispatch(self, release_id: str) -> asyncio.Task[TriggerMatchResult]:
        """Fire-and-forget an automatic (non-forced) match for a release."""

        async def _run() -> TriggerMatchResult:
            set_correlation_id(f"discogs-{release_id}")
            return await self.execute(TriggerDiscogsMatchRequest(release_id=release_id))

        task = asyncio.create_task(_run(), name=f"discogs-dispatch-{release_id}")
        self._background.add(task)
        task.add_done_callback(self._on_dispatch_done)
        return task

    def _on_dispatch_done(self, task: asyncio.Task[TriggerMatchResult]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Background Discogs match failed (%s): %s",
                task.get_name(),
                error,
                exc_info=(type(error), error, error.__traceback__),
            )

    @property
    def pending_dispatches(self) -> int:
        return len(self._background)


def parse_release_ids(raw: str | None) -> list[str]:
    """Split a comma-separated id list, dropping blanks and duplicates."""
    ids: list[str] = []
    for part in (raw or "").split(","):
        release_id = part.strip()
        if release_id and release_id not in ids:
            ids.append(release_id)
    return ids


class GetDiscogsStatusUseCase(UseCase[list[str], dict[str, MatchStatusView]]):
    """Latest match attempt per release plus rating info.

    Ratings come from the release row first and fall back to the cached raw
    release document of the latest attempt's Discogs id. Releases that were
    never attempted are absent from the result.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def execute(self, request: list[str]) -> dict[str, MatchStatusView]:
        if not request:
            return {}

        async with self._db.session_scope() as session:
            latest = await MatchAttemptRepository(session).get_latest_for_releases(request)
            if not latest:
                return {}
            releases = await ReleaseRepository(session).get_many(list(latest))
            discogs_ids = [
                a.discogs_release_id for a in latest.values() if a.discogs_release_id
            ]
            cached = await DiscogsEntityRepository(session).get_many(
                discogs_ids, DiscogsEntityType.RELEASE
            )

        out: dict[str, MatchStatusView] = {}
        for release_id, attempt in latest.items():
            release = releases.get(release_id)
            cached_avg, cached_count = rating_from_document(
                cached.get(attempt.discogs_release_id) if attempt.discogs_release_id else None
            )
            average = release.rating_average if release else None
            count = release.rating_count if release else None
            out[release_id] = MatchStatusView(
                status=attempt.status,
                confidence_score=attempt.confidence_score,
                discogs_release_id=attempt.discogs_release_id,
                discogs_master_id=attempt.discogs_master_id,
                rating_average=average if average is not None else cached_avg,
                rating_count=count if count is not None else cached_count,
            )
        return out


__all__ = [
    "COOLDOWN_SKIP_REASON",
    "GetDiscogsStatusUseCase",
    "MATCH_COOLDOWN",
    "TriggerDiscogsMatchRequest",
    "TriggerDiscogsMatchUseCase",
    "parse_release_ids",
]
