"""Stats Service - catalogue counts for the public summary.

Hey future me - one AsyncSession can't run queries in parallel, so these are plain
sequential awaits. Five COUNTs on indexed tables, no caching needed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bitrot.infrastructure.persistence.models import ReleaseModel, TrackModel


@dataclass(frozen=True)
class CatalogSummary:
    """Headline numbers of the release database."""

    total_releases: int
    unique_artists: int
    total_tracks: int
    total_free_releases: int
    total_free_tracks: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class StatsService:
    """Service for catalogue statistics and counts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize stats service.

        Args:
            session: Database session
        """
        self._session = session

    async def _count(self, stmt: Select[Any]) -> int:
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def get_total_releases(self) -> int:
        """Get total number of releases."""
        return await self._count(select(func.count(ReleaseModel.id)))

    async def get_unique_artists(self) -> int:
        """Get number of distinct artist names (exact spelling)."""
        return await self._count(select(func.count(func.distinct(ReleaseModel.artist_name))))

    async def get_total_tracks(self) -> int:
        """Get total number of tracks."""
        return await self._count(select(func.count(TrackModel.id)))

    async def get_total_free_releases(self) -> int:
        """Get number of releases flagged free. Unknown (NULL) does not count."""
        return await self._count(
            select(func.count(ReleaseModel.id)).where(ReleaseModel.is_free.is_(True))
        )

    async def get_total_free_tracks(self) -> int:
        """Get number of tracks whose release is free."""
        stmt = (
            select(func.count(TrackModel.id))
            .join(ReleaseModel, ReleaseModel.id == TrackModel.release_id)
            .where(ReleaseModel.is_free.is_(True))
        )
        return await self._count(stmt)

    async def get_summary(self) -> CatalogSummary:
        """Collect all headline counts."""
        return CatalogSummary(
            total_releases=await self.get_total_releases(),
            unique_artists=await self.get_unique_artists(),
            total_tracks=await self.get_total_tracks(),
            total_free_releases=await self.get_total_free_releases(),
            total_free_tracks=await self.get_total_free_tracks(),
        )


__all__ = ["CatalogSummary", "StatsService"]
