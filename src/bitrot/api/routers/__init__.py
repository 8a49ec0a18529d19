"""API router initialization."""

# Hey future me, the extensions call these paths WITHOUT an /api prefix (/release/lookup,
# /discogs/match/...). Keep it that way or every installed extension breaks.

from fastapi import APIRouter

from bitrot.api.routers import discogs, releases, stats

api_router = APIRouter()
api_router.include_router(releases.router)
api_router.include_router(discogs.router)
api_router.include_router(stats.router)

__all__ = ["api_router"]
