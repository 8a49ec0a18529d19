"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from bitrot.domain.entities import (
    DiscogsEntityType,
    MatchAttempt,
    Release,
    ReleaseEnrichment,
)


class IDiscogsClient(ABC):
    """Port for the Discogs catalog API.

    Implementations raise ``DiscogsApiError`` with a ``kind`` for every failure.
    """

    @abstractmethod
    async def search_releases(
        self,
        artist: str,
        title: str,
        year: int | None = None,
        label: str | None = None,
        catalog_number: str | None = None,
    ) -> dict[str, Any]:
        """Search releases. Returns the raw response (``results`` + ``pagination``)."""
        pass

    @abstractmethod
    async def get_release(self, release_id: int) -> dict[str, Any]:
        """Fetch a full release document."""
        pass

    @abstractmethod
    async def get_master(self, master_id: int) -> dict[str, Any]:
        """Fetch a full master-release document."""
        pass


class IReleaseRepository(ABC):
    """Repository for the releases the enrichment core reads and writes."""

    @abstractmethod
    async def get_by_id(self, release_id: str) -> Release | None:
        pass

    @abstractmethod
    async def set_match_pointer(
        self,
        release_id: str,
        discogs_release_id: int,
        discogs_master_id: int | None,
        confidence: float,
        matched_at: datetime,
    ) -> None:
        """Write the accepted-match pointer without touching enrichment fields."""
        pass

    @abstractmethod
    async def merge_enrichment(
        self,
        release_id: str,
        enrichment: ReleaseEnrichment,
        refreshed_at: datetime,
    ) -> None:
        """Merge enrichment values, never replacing known values with None."""
        pass

    @abstractmethod
    async def accept_match(
        self,
        release_id: str,
        discogs_release_id: int,
        discogs_master_id: int | None,
        confidence: float,
        matched_at: datetime,
        enrichment: ReleaseEnrichment,
        refreshed_at: datetime,
    ) -> None:
        """Write the match pointer and merge enrichment in one statement."""
        pass

    @abstractmethod
    async def get_many(self, release_ids: list[str]) -> dict[str, Release]:
        pass


class IMatchAttemptRepository(ABC):
    """Append-only store of match attempts."""

    @abstractmethod
    async def add(self, attempt: MatchAttempt) -> None:
        pass

    @abstractmethod
    async def get_latest(self, release_id: str) -> MatchAttempt | None:
        pass

    @abstractmethod
    async def get_latest_for_releases(
        self, release_ids: list[str]
    ) -> dict[str, MatchAttempt]:
        pass


class IDiscogsEntityRepository(ABC):
    """Cache of raw Discogs documents."""

    @abstractmethod
    async def upsert(
        self, discogs_id: int, entity_type: DiscogsEntityType, raw_json: dict[str, Any]
    ) -> None:
        pass

    @abstractmethod
    async def get(
        self, discogs_id: int, entity_type: DiscogsEntityType
    ) -> dict[str, Any] | None:
        pass


class ITagRepository(ABC):
    """Tags and release<->tag attachments."""

    @abstractmethod
    async def ensure_tag(self, name: str) -> int:
        """Return the id of the tag, creating it if absent."""
        pass

    @abstractmethod
    async def attach(self, release_id: str, tag_id: int, source: str) -> bool:
        """Link a tag to a release. No-op if the pair already exists.

        Returns:
            True if a new attachment was created
        """
        pass

    @abstractmethod
    async def list_for_release(self, release_id: str) -> list[tuple[str, str]]:
        """Return (tag name, source) pairs for a release."""
        pass


__all__ = [
    "IDiscogsClient",
    "IDiscogsEntityRepository",
    "IMatchAttemptRepository",
    "IReleaseRepository",
    "ITagRepository",
]
