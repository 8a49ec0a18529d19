"""Discogs matching endpoints.

Hey future me - these are called by the web UI and the extensions:

- POST /discogs/match/{release_id}?force=1   manual (re-)match, cooldown aware
- GET  /discogs/status?ids=a,b,c             latest attempt + rating per release
- GET  /discogs/queue                        queue snapshot for debugging

A temporary Discogs outage is NOT an HTTP error here. The match endpoint answers
200 with status "rejected" and debug.reason "discogs_temporary_error" - the
caller can simply try again later, nothing was recorded.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from bitrot.api.dependencies import (
    get_discogs_queue,
    get_status_use_case,
    get_trigger_match_use_case,
)
from bitrot.application.use_cases.trigger_discogs_match import (
    GetDiscogsStatusUseCase,
    TriggerDiscogsMatchRequest,
    TriggerDiscogsMatchUseCase,
    parse_release_ids,
)
from bitrot.application.workers.discogs_queue import DiscogsJobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discogs", tags=["discogs"])


# =============================================================================
# Response Models
# =============================================================================


class MatchTriggerResponse(BaseModel):
    """Outcome of a match request (possibly skipped by the cooldown)."""

    release_id: str
    status: str | None
    confidence_score: float
    discogs_release_id: int | None = None
    discogs_master_id: int | None = None
    skipped: bool
    skip_reason: str | None = None
    debug: dict[str, Any] | None = None
    refreshed: bool | None = None


class MatchStatusEntry(BaseModel):
    """Latest attempt and rating info for one release."""

    status: str
    confidence_score: float
    discogs_release_id: int | None = None
    discogs_master_id: int | None = None
    rating_average: float | None = None
    rating_count: int | None = None


class QueueStatsResponse(BaseModel):
    active: int
    queued: int
    max: int


def _parse_force(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true")


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/match/{release_id}", response_model=MatchTriggerResponse)
async def trigger_match(
    release_id: str,
    force: str | None = Query(default=None, description="1 or true bypasses the 1h cooldown"),
    use_case: TriggerDiscogsMatchUseCase = Depends(get_trigger_match_use_case),
) -> MatchTriggerResponse:
    """Match one release against Discogs, unless it was attempted within the last hour."""
    result = await use_case.execute(
        TriggerDiscogsMatchRequest(release_id=release_id, force=_parse_force(force))
    )
    return MatchTriggerResponse(
        release_id=result.release_id,
        status=result.status.value if result.status else None,
        confidence_score=result.confidence_score,
        discogs_release_id=result.discogs_release_id,
        discogs_master_id=result.discogs_master_id,
        skipped=result.skipped,
        skip_reason=result.skip_reason,
        debug=result.debug,
        refreshed=True if result.refreshed else None,
    )


@router.get("/status", response_model=dict[str, MatchStatusEntry])
async def get_status(
    ids: str | None = Query(default=None, description="Comma-separated release ids"),
    use_case: GetDiscogsStatusUseCase = Depends(get_status_use_case),
) -> dict[str, MatchStatusEntry]:
    """Latest match status per release. Never-attempted releases are omitted."""
    views = await use_case.execute(parse_release_ids(ids))
    return {
        release_id: MatchStatusEntry(
            status=view.status.value,
            confidence_score=view.confidence_score,
            discogs_release_id=view.discogs_release_id,
            discogs_master_id=view.discogs_master_id,
            rating_average=view.rating_average,
            rating_count=view.rating_count,
        )
        for release_id, view in views.items()
    }


@router.get("/queue", response_model=QueueStatsResponse)
async def get_queue_stats(
    queue: DiscogsJobQueue = Depends(get_discogs_queue),
) -> QueueStatsResponse:
    return QueueStatsResponse(**queue.stats())
