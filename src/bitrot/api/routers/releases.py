"""Release ingestion, detail and browse endpoints."""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bitrot.api.dependencies import get_db_session, get_ingestion_service
from bitrot.application.services.release_ingestion_service import ReleaseIngestionService
from bitrot.domain.entities import ReleaseSubmission, TrackInput
from bitrot.domain.exceptions import ValidationException
from bitrot.infrastructure.persistence.repositories import ReleaseRepository

logger = logging.getLogger(__name__)

# Hey future me - no prefix: the extensions post to /release/..., the web UI browses /releases.
router = APIRouter(tags=["releases"])

RELEASES_PAGE_SIZE = 20


# =============================================================================
# Request / Response Models
# =============================================================================


class TrackPayload(BaseModel):
    title: str | None = None
    duration: float | None = None
    spotify_track_id: str | None = None


# Hey future me - the identifying fields are Optional on purpose: the extensions sometimes
# send empty strings, and "missing artist" should come back as one readable message from
# the service instead of a pydantic error list.
class ReleaseLookupRequest(BaseModel):
    """Release as scraped by an extension."""

    artist: str | None = None
    title: str | None = None
    platform: str | None = None
    platform_release_id: str | None = None
    url: str | None = None
    release_date: str | None = None
    tags: list[str | None] = Field(default_factory=list)
    tracks: list[TrackPayload] = Field(default_factory=list)
    price_label: str | None = None
    is_free: bool | None = None

    def to_submission(self) -> ReleaseSubmission:
        return ReleaseSubmission(
            artist=(self.artist or "").strip(),
            title=(self.title or "").strip(),
            platform=(self.platform or "").strip(),
            platform_release_id=(self.platform_release_id or "").strip(),
            url=self.url or None,
            release_date=_parse_release_date(self.release_date),
            tags=[tag for tag in self.tags if tag],
            tracks=[
                TrackInput(
                    title=t.title,
                    duration=int(t.duration) if t.duration is not None else None,
                    spotify_track_id=t.spotify_track_id or None,
                )
                for t in self.tracks
                if t.title
            ],
            price_label=self.price_label or None,
            is_free=self.is_free,
        )


class ReleaseLookupResponse(BaseModel):
    release_id: str


class TrackResponse(BaseModel):
    title: str
    duration: int | None = None
    spotify_track_id: str | None = None


class ReleaseDetailResponse(BaseModel):
    """A release with its primary url, tags and tracks."""

    id: str
    artist_name: str
    title: str
    release_date: date | None = None
    price_label: str | None = None
    is_free: bool | None = None
    url: str | None = None
    tags: list[str]
    tracks: list[TrackResponse]
    discogs_release_id: int | None = None
    discogs_genres: list[str] | None = None
    discogs_styles: list[str] | None = None
    discogs_cover_image_url: str | None = None
    discogs_rating_average: float | None = None
    discogs_rating_count: int | None = None


class ReleaseListItemResponse(BaseModel):
    id: str
    title: str
    artist_name: str
    created_at: datetime
    url: str | None = None


def _parse_release_date(value: str | None) -> date | None:
    """Accept "YYYY-MM-DD" or a full ISO timestamp."""
    if not value or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as e:
        raise ValidationException(f"Invalid release_date: {value!r}") from e


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/release/lookup", response_model=ReleaseLookupResponse)
async def lookup_release(
    payload: ReleaseLookupRequest,
    service: ReleaseIngestionService = Depends(get_ingestion_service),
) -> ReleaseLookupResponse:
    """Store (or re-use) a release and schedule its Discogs match in the background."""
    release_id = await service.ingest(payload.to_submission())
    return ReleaseLookupResponse(release_id=release_id)


@router.get("/release/{release_id}", response_model=ReleaseDetailResponse)
async def get_release(
    release_id: str,
    service: ReleaseIngestionService = Depends(get_ingestion_service),
) -> ReleaseDetailResponse:
    """Single release with url, tags and tracks."""
    detail = await service.get_release(release_id)
    release = detail["release"]
    return ReleaseDetailResponse(
        id=release.id,
        artist_name=release.artist_name,
        title=release.title,
        release_date=release.release_date,
        price_label=detail["price_label"],
        is_free=detail["is_free"],
        url=detail["url"],
        tags=[name for name, _source in detail["tags"]],
        tracks=[
            TrackResponse(
                title=t.title, duration=t.duration, spotify_track_id=t.spotify_track_id
            )
            for t in detail["tracks"]
        ],
        discogs_release_id=release.discogs_release_id,
        discogs_genres=release.genres,
        discogs_styles=release.styles,
        discogs_cover_image_url=release.cover_image_url,
        discogs_rating_average=release.rating_average,
        discogs_rating_count=release.rating_count,
    )


# Listen up - the total goes into X-Total-Count instead of wrapping the list, the web UI
# reads the body as a plain array. Page numbers start at 1; a page past the end is just [].
@router.get("/releases", response_model=list[ReleaseListItemResponse])
async def list_releases(
    response: Response,
    artist: str | None = Query(None, description="Case-insensitive artist substring"),
    page: int = Query(1, ge=1, description="1-based page number"),
    session: AsyncSession = Depends(get_db_session),
) -> list[ReleaseListItemResponse]:
    """List releases newest first, 20 per page, optionally filtered by artist."""
    artist_filter = artist.strip() if artist else None
    repo = ReleaseRepository(session)

    items = await repo.list_page(
        artist=artist_filter,
        limit=RELEASES_PAGE_SIZE,
        offset=(page - 1) * RELEASES_PAGE_SIZE,
    )
    total = await repo.count_matching(artist=artist_filter)

    response.headers["X-Total-Count"] = str(total)
    return [
        ReleaseListItemResponse(
            id=item.id,
            title=item.title,
            artist_name=item.artist_name,
            created_at=item.created_at,
            url=item.url,
        )
        for item in items
    ]
