"""SQLAlchemy ORM models for Bitrot."""

import uuid
from datetime import UTC, date, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Hey future me, ALL timestamps are UTC. The 1h re-match cooldown compares created_at against
# "now" - a naive local timestamp would silently shift the window by the server's UTC offset.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# SQLite hands DateTime columns back without tzinfo. Attach UTC before comparing with
# utc_now() or Python raises "can't compare offset-naive and offset-aware datetimes".
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, ReleaseModel is the canonical release row. The discogs_* columns come in two groups:
# - POINTER: discogs_release_id / discogs_master_id / discogs_confidence / discogs_matched_at.
#   Only written when a MATCHED attempt exists.
# - ENRICHMENT: genres, styles, country, labels, images, rating. Monotonic - a refresh never
#   replaces a known value with NULL (the repository merges Python-side).
# Lists are JSON columns so SQLite and PostgreSQL behave the same.
class ReleaseModel(Base):
    """SQLAlchemy model for a canonical release."""

    __tablename__ = "releases"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    artist_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    release_date: Mapped[date | None] = mapped_column(sa.Date, nullable=True)
    price_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_free: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    discogs_release_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discogs_master_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discogs_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    discogs_matched_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    discogs_genres: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    discogs_styles: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    discogs_country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    discogs_labels: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    discogs_cover_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    discogs_thumb_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    discogs_rating_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    discogs_rating_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discogs_refreshed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    sources: Mapped[list["ReleaseSourceModel"]] = relationship(
        "ReleaseSourceModel", back_populates="release", cascade="all, delete-orphan"
    )
    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="release", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_releases_artist_title", "artist_name", "title"),
        Index("ix_releases_discogs_release_id", "discogs_release_id"),
    )


# Yo, one release can be seen on several platforms (Bandcamp page + a label mirror...). The
# (platform, platform_release_id) pair is how ingestion finds "have we seen this before?".
class ReleaseSourceModel(Base):
    """Where a release was scraped from."""

    __tablename__ = "release_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    platform_release_id: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    release: Mapped["ReleaseModel"] = relationship("ReleaseModel", back_populates="sources")

    __table_args__ = (
        sa.UniqueConstraint(
            "platform", "platform_release_id", name="uq_release_sources_platform_id"
        ),
        Index("ix_release_sources_release_id", "release_id"),
    )


class TrackModel(Base):
    """A track of an ingested release. Unique per (release, title)."""

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spotify_track_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    release: Mapped["ReleaseModel"] = relationship("ReleaseModel", back_populates="tracks")

    __table_args__ = (
        sa.UniqueConstraint("release_id", "title", name="uq_tracks_release_title"),
    )


class TagModel(Base):
    """A unique tag name."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


# Hey future me - the uniqueness is (release_id, tag_id), NOT including source. If Bandcamp
# already attached "techno", the Discogs genre projection is a no-op for that tag and the
# source stays "bandcamp". First writer wins, enrichment never deletes rows here.
class ReleaseTagModel(Base):
    """Release <-> tag attachment with its source."""

    __tablename__ = "release_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("release_id", "tag_id", name="uq_release_tags_release_tag"),
    )


# Listen up, this table is APPEND-ONLY. Every matching run that reached a decision writes exactly
# one row, nothing ever updates or deletes. "Current status" = newest row by created_at (id breaks
# ties when two rows land in the same clock tick).
class DiscogsMatchModel(Base):
    """One Discogs matching attempt."""

    __tablename__ = "release_discogs_matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    discogs_release_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discogs_master_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    match_method: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_release_discogs_matches_release_created", "release_id", "created_at"),
    )


# Raw Discogs payloads. A cache only - nothing reads it as the source of truth except the
# rating fallback in the status view.
class DiscogsEntityModel(Base):
    """Cached raw Discogs document keyed by (discogs_id, entity_type)."""

    __tablename__ = "discogs_entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discogs_id: Mapped[int] = mapped_column(Integer, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    raw_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    last_synced_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        sa.UniqueConstraint("discogs_id", "entity_type", name="uq_discogs_entities_id_type"),
        Index("ix_discogs_entities_last_synced", "last_synced_at"),
    )


__all__ = [
    "Base",
    "DiscogsEntityModel",
    "DiscogsMatchModel",
    "ReleaseModel",
    "ReleaseSourceModel",
    "ReleaseTagModel",
    "TagModel",
    "TrackModel",
    "ensure_utc_aware",
    "utc_now",
]
