"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any


# Hey future me, these three values are the ONLY statuses a match attempt can have. They're
# stored as plain strings in the DB (release_discogs_matches.status), so keep the values stable.
class MatchStatus(str, Enum):
    """Outcome of one Discogs matching run."""

    MATCHED = "matched"
    SUGGESTED = "suggested"
    REJECTED = "rejected"


class MatchMethod(str, Enum):
    """Provenance tag written on every match attempt."""

    SEARCH_TITLE_ARTIST = "search_title_artist"
    REFRESH_EXISTING = "refresh_existing"


class DiscogsEntityType(str, Enum):
    """Kinds of raw Discogs documents kept in the local cache."""

    SEARCH_RESULT = "search_result"
    RELEASE = "release"
    MASTER = "master"


# Yo, tag sources! Platform tags use the platform name itself ("bandcamp"), so this enum only
# covers the sources the app writes on its own. release_tags.source is free text in the DB.
class TagSource(str, Enum):
    """Source of a release<->tag attachment."""

    DISCOGS_GENRE = "discogs_genre"
    DISCOGS_STYLE = "discogs_style"
    USER = "user"


@dataclass
class Release:
    """A canonical music release as the enrichment core sees it.

    Hey future me - the pointer fields (discogs_release_id/discogs_master_id) are only
    set when a MATCHED attempt exists. Enrichment payload fields can be filled for
    matched releases and never go back to None once known.
    """

    id: str
    artist_name: str
    title: str
    release_date: date | None = None
    discogs_release_id: int | None = None
    discogs_master_id: int | None = None
    discogs_confidence: float | None = None
    genres: list[str] | None = None
    styles: list[str] | None = None
    country: str | None = None
    labels: list[str] | None = None
    cover_image_url: str | None = None
    thumb_url: str | None = None
    rating_average: float | None = None
    rating_count: int | None = None
    matched_at: datetime | None = None
    last_refreshed_at: datetime | None = None

    @property
    def year(self) -> int | None:
        """Release year derived from the release date."""
        return self.release_date.year if self.release_date else None

    @property
    def has_accepted_match(self) -> bool:
        return self.discogs_release_id is not None


@dataclass(frozen=True)
class MatchAttempt:
    """Immutable log entry of one matching run. Never updated, never deleted."""

    release_id: str
    status: MatchStatus
    confidence_score: float
    match_method: MatchMethod | str
    discogs_release_id: int | None = None
    discogs_master_id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: int | None = None


@dataclass(frozen=True)
class ReleaseEnrichment:
    """Metadata extracted from a full Discogs release document.

    Every field is optional - None means "unknown, keep what we have".
    """

    genres: list[str] | None = None
    styles: list[str] | None = None
    country: str | None = None
    labels: list[str] | None = None
    cover_image_url: str | None = None
    thumb_url: str | None = None
    rating_average: float | None = None
    rating_count: int | None = None
    master_id: int | None = None


@dataclass
class MatchResult:
    """What a matching run reports back to its caller.

    ``debug`` carries operator-facing context such as ``{"reason": "no_discogs_results"}``.
    """

    release_id: str
    status: MatchStatus
    confidence_score: float = 0
    discogs_release_id: int | None = None
    discogs_master_id: int | None = None
    debug: dict[str, Any] | None = None
    refreshed: bool = False

    @classmethod
    def rejected(cls, release_id: str, **debug: Any) -> "MatchResult":
        """Build a rejection that carries only debug context."""
        return cls(
            release_id=release_id,
            status=MatchStatus.REJECTED,
            debug=debug or None,
        )


@dataclass(frozen=True)
class TriggerMatchResult:
    """Result of a manual/automatic re-match request (after the cooldown check)."""

    release_id: str
    status: MatchStatus | None
    confidence_score: float
    discogs_release_id: int | None
    discogs_master_id: int | None
    skipped: bool
    skip_reason: str | None = None
    debug: dict[str, Any] | None = None
    refreshed: bool = False


@dataclass(frozen=True)
class MatchStatusView:
    """Read-only projection of the latest attempt plus rating info."""

    status: MatchStatus
    confidence_score: float
    discogs_release_id: int | None
    discogs_master_id: int | None
    rating_average: float | None
    rating_count: int | None


@dataclass
class TrackInput:
    """One track of an ingested release."""

    title: str
    duration: int | None = None
    spotify_track_id: str | None = None


@dataclass
class ReleaseSubmission:
    """A release as submitted by the browser extensions."""

    artist: str
    title: str
    platform: str
    platform_release_id: str
    url: str | None = None
    release_date: date | None = None
    tags: list[str] = field(default_factory=list)
    tracks: list[TrackInput] = field(default_factory=list)
    price_label: str | None = None
    is_free: bool | None = None


@dataclass(frozen=True)
class ReleaseListItem:
    """One row of the release browser: identity, source url and when it was first seen."""

    id: str
    artist_name: str
    title: str
    created_at: datetime
    url: str | None = None


__all__ = [
    "DiscogsEntityType",
    "MatchAttempt",
    "MatchMethod",
    "MatchResult",
    "MatchStatus",
    "MatchStatusView",
    "Release",
    "ReleaseEnrichment",
    "ReleaseListItem",
    "ReleaseSubmission",
    "TagSource",
    "TrackInput",
    "TriggerMatchResult",
]
