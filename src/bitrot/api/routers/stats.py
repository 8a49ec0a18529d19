"""Catalogue stats endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bitrot.api.dependencies import get_db_session
from bitrot.application.services.stats_service import StatsService

router = APIRouter(prefix="/stats", tags=["stats"])


class StatsSummaryResponse(BaseModel):
    """Headline counts shown on the landing page."""

    total_releases: int = Field(description="All releases")
    unique_artists: int = Field(description="Distinct artist names")
    total_tracks: int = Field(description="All tracks")
    total_free_releases: int = Field(description="Releases flagged free")
    total_free_tracks: int = Field(description="Tracks on free releases")


@router.get("/summary", response_model=StatsSummaryResponse)
async def get_summary(
    session: AsyncSession = Depends(get_db_session),
) -> StatsSummaryResponse:
    """Get release, artist and track totals."""
    summary = await StatsService(session).get_summary()
    return StatsSummaryResponse(**summary.to_dict())
