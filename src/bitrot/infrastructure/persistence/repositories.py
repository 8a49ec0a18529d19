"""Repository implementations for domain entities."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bitrot.domain.entities import (
    DiscogsEntityType,
    MatchAttempt,
    MatchMethod,
    MatchStatus,
    Release,
    ReleaseEnrichment,
    ReleaseListItem,
    ReleaseSubmission,
    TrackInput,
)
from bitrot.domain.exceptions import EntityNotFoundException
from bitrot.domain.ports import (
    IDiscogsEntityRepository,
    IMatchAttemptRepository,
    IReleaseRepository,
    ITagRepository,
)

from .models import (
    DiscogsEntityModel,
    DiscogsMatchModel,
    ReleaseModel,
    ReleaseSourceModel,
    ReleaseTagModel,
    TagModel,
    TrackModel,
    ensure_utc_aware,
    utc_now,
)

# Hey future me - maps ReleaseEnrichment fields onto ReleaseModel columns. master_id is NOT in
# here: it's a pointer field, only accept_match()/set_match_pointer() may write it.
_ENRICHMENT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("genres", "discogs_genres"),
    ("styles", "discogs_styles"),
    ("country", "discogs_country"),
    ("labels", "discogs_labels"),
    ("cover_image_url", "discogs_cover_image_url"),
    ("thumb_url", "discogs_thumb_url"),
    ("rating_average", "discogs_rating_average"),
    ("rating_count", "discogs_rating_count"),
)


def _model_to_release(model: ReleaseModel) -> Release:
    return Release(
        id=model.id,
        artist_name=model.artist_name,
        title=model.title,
        release_date=model.release_date,
        discogs_release_id=model.discogs_release_id,
        discogs_master_id=model.discogs_master_id,
        discogs_confidence=model.discogs_confidence,
        genres=model.discogs_genres,
        styles=model.discogs_styles,
        country=model.discogs_country,
        labels=model.discogs_labels,
        cover_image_url=model.discogs_cover_image_url,
        thumb_url=model.discogs_thumb_url,
        rating_average=model.discogs_rating_average,
        rating_count=model.discogs_rating_count,
        matched_at=ensure_utc_aware(model.discogs_matched_at)
        if model.discogs_matched_at
        else None,
        last_refreshed_at=ensure_utc_aware(model.discogs_refreshed_at)
        if model.discogs_refreshed_at
        else None,
    )


def _coalesce_enrichment(model: ReleaseModel, enrichment: ReleaseEnrichment) -> None:
    """Copy every non-None enrichment value onto the model (COALESCE semantics)."""
    for field_name, column in _ENRICHMENT_COLUMNS:
        value = getattr(enrichment, field_name)
        if value is not None:
            setattr(model, column, value)


class ReleaseRepository(IReleaseRepository):
    """SQLAlchemy implementation of the release repository."""

    # Hey future me, repos get the session injected and NEVER commit. The caller owns the
    # transaction via Database.session_scope(). Don't open sessions in here.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def _get_model(self, release_id: str) -> ReleaseModel:
        model = await self.session.get(ReleaseModel, release_id)
        if model is None:
            raise EntityNotFoundException("Release", release_id)
        return model

    async def get_by_id(self, release_id: str) -> Release | None:
        """Get a release by id."""
        model = await self.session.get(ReleaseModel, release_id)
        return _model_to_release(model) if model else None

    async def get_many(self, release_ids: list[str]) -> dict[str, Release]:
        """Get several releases at once, keyed by id. Unknown ids are absent."""
        if not release_ids:
            return {}
        stmt = select(ReleaseModel).where(ReleaseModel.id.in_(release_ids))
        result = await self.session.execute(stmt)
        return {model.id: _model_to_release(model) for model in result.scalars().all()}

    async def set_match_pointer(
        self,
        release_id: str,
        discogs_release_id: int,
        discogs_master_id: int | None,
        confidence: float,
        matched_at: datetime,
    ) -> None:
        """Write only the pointer fields (fallback when hydration failed)."""
        stmt = (
            update(ReleaseModel)
            .where(ReleaseModel.id == release_id)
            .values(
                discogs_release_id=discogs_release_id,
                discogs_master_id=discogs_master_id,
                discogs_confidence=confidence,
                discogs_matched_at=matched_at,
            )
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("Release", release_id)

    async def merge_enrichment(
        self,
        release_id: str,
        enrichment: ReleaseEnrichment,
        refreshed_at: datetime,
    ) -> None:
        """Merge enrichment onto the release, keeping known values over None.

        Pointer fields are left untouched.
        """
        model = await self._get_model(release_id)
        _coalesce_enrichment(model, enrichment)
        model.discogs_refreshed_at = refreshed_at

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
        """Write the accepted pointer and merge hydrated enrichment together."""
        model = await self._get_model(release_id)
        model.discogs_release_id = discogs_release_id
        # Keep a known master id if neither the hit nor the document carries one
        model.discogs_master_id = (
            discogs_master_id or enrichment.master_id or model.discogs_master_id
        )
        model.discogs_confidence = confidence
        model.discogs_matched_at = matched_at
        _coalesce_enrichment(model, enrichment)
        model.discogs_refreshed_at = refreshed_at

    # =========================================================================
    # INGESTION
    # =========================================================================

    async def find_id_by_source(self, platform: str, platform_release_id: str) -> str | None:
        """Look up a release id via its (platform, platform_release_id) source."""
        stmt = select(ReleaseSourceModel.release_id).where(
            ReleaseSourceModel.platform == platform,
            ReleaseSourceModel.platform_release_id == platform_release_id,
        )
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def add_from_submission(self, submission: ReleaseSubmission) -> str:
        """Create a release and its source row. Returns the new release id."""
        model = ReleaseModel(
            artist_name=submission.artist,
            title=submission.title,
            release_date=submission.release_date,
            price_label=submission.price_label or None,
            is_free=submission.is_free,
        )
        model.sources.append(
            ReleaseSourceModel(
                platform=submission.platform,
                platform_release_id=submission.platform_release_id,
                url=submission.url or None,
            )
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    # Yo, re-submissions only ever FILL IN: a missing date or price in the new payload keeps
    # the stored one. artist/title are required so they always win.
    async def update_from_submission(
        self, release_id: str, submission: ReleaseSubmission
    ) -> None:
        """COALESCE-update an existing release from a re-submission."""
        model = await self._get_model(release_id)
        model.artist_name = submission.artist or model.artist_name
        model.title = submission.title or model.title
        if submission.release_date is not None:
            model.release_date = submission.release_date
        if submission.price_label:
            model.price_label = submission.price_label
        if submission.is_free is not None:
            model.is_free = submission.is_free

        if submission.url:
            await self.session.execute(
                update(ReleaseSourceModel)
                .where(
                    ReleaseSourceModel.release_id == release_id,
                    ReleaseSourceModel.platform == submission.platform,
                    ReleaseSourceModel.platform_release_id == submission.platform_release_id,
                )
                .values(url=submission.url)
            )

    async def upsert_tracks(self, release_id: str, tracks: list[TrackInput]) -> int:
        """Insert or update tracks by (release, title).

        Duration always takes the new value; a known spotify_track_id is kept
        when the new payload has none.

        Returns:
            Number of tracks written
        """
        written = 0
        for track in tracks:
            title = (track.title or "").strip()
            if not title:
                continue
            stmt = select(TrackModel).where(
                TrackModel.release_id == release_id, TrackModel.title == title
            )
            existing = (await self.session.execute(stmt)).scalar_one_or_none()
            if existing:
                existing.duration = track.duration
                existing.spotify_track_id = track.spotify_track_id or existing.spotify_track_id
            else:
                self.session.add(
                    TrackModel(
                        release_id=release_id,
                        title=title,
                        duration=track.duration,
                        spotify_track_id=track.spotify_track_id,
                    )
                )
                # Flush per row so a duplicate title later in the same payload finds it
                await self.session.flush()
            written += 1
        return written

    async def get_detail(self, release_id: str) -> dict[str, Any] | None:
        """Load a release with its primary url and tracks for the detail view."""
        model = await self.session.get(ReleaseModel, release_id)
        if model is None:
            return None

        source_stmt = (
            select(ReleaseSourceModel.url)
            .where(ReleaseSourceModel.release_id == release_id)
            .order_by(ReleaseSourceModel.id.asc())
            .limit(1)
        )
        url = (await self.session.execute(source_stmt)).scalar_one_or_none()

        track_stmt = (
            select(TrackModel)
            .where(TrackModel.release_id == release_id)
            .order_by(TrackModel.id.asc())
        )
        tracks = (await self.session.execute(track_stmt)).scalars().all()

        return {
            "release": _model_to_release(model),
            "price_label": model.price_label,
            "is_free": model.is_free,
            "url": url,
            "tracks": [
                TrackInput(
                    title=t.title, duration=t.duration, spotify_track_id=t.spotify_track_id
                )
                for t in tracks
            ],
        }

    # =========================================================================
    # BROWSING
    # =========================================================================

    @staticmethod
    def _artist_filter(artist: str | None) -> list[Any]:
        # Case-insensitive substring; autoescape keeps "%" and "_" in names literal
        if not artist:
            return []
        return [ReleaseModel.artist_name.icontains(artist, autoescape=True)]

    async def list_page(
        self, artist: str | None = None, limit: int = 20, offset: int = 0
    ) -> list[ReleaseListItem]:
        """List releases newest first, optionally filtered by artist.

        Args:
            artist: Substring of the artist name (case-insensitive), None for all
            limit: Page size
            offset: Rows to skip

        Returns:
            One item per release with the url of its first known source
        """
        first_url = (
            select(ReleaseSourceModel.url)
            .where(ReleaseSourceModel.release_id == ReleaseModel.id)
            .order_by(ReleaseSourceModel.id.asc())
            .limit(1)
            .correlate(ReleaseModel)
            .scalar_subquery()
        )
        stmt = (
            select(
                ReleaseModel.id,
                ReleaseModel.artist_name,
                ReleaseModel.title,
                ReleaseModel.created_at,
                first_url.label("url"),
            )
            .where(*self._artist_filter(artist))
            .order_by(ReleaseModel.created_at.desc(), ReleaseModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            ReleaseListItem(
                id=row.id,
                artist_name=row.artist_name,
                title=row.title,
                created_at=ensure_utc_aware(row.created_at),
                url=row.url,
            )
            for row in rows
        ]

    async def count_matching(self, artist: str | None = None) -> int:
        """Count releases matching the same artist filter as list_page()."""
        stmt = select(func.count(ReleaseModel.id)).where(*self._artist_filter(artist))
        result = await self.session.execute(stmt)
        return result.scalar() or 0


class MatchAttemptRepository(IMatchAttemptRepository):
    """Append-only store of Discogs match attempts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _to_entity(model: DiscogsMatchModel) -> MatchAttempt:
        try:
            method: MatchMethod | str = MatchMethod(model.match_method)
        except ValueError:
            method = model.match_method
        return MatchAttempt(
            id=model.id,
            release_id=model.release_id,
            status=MatchStatus(model.status),
            confidence_score=model.confidence_score,
            match_method=method,
            discogs_release_id=model.discogs_release_id,
            discogs_master_id=model.discogs_master_id,
            created_at=ensure_utc_aware(model.created_at),
        )

    async def add(self, attempt: MatchAttempt) -> None:
        """Append a match attempt."""
        method = attempt.match_method
        self.session.add(
            DiscogsMatchModel(
                release_id=attempt.release_id,
                status=attempt.status.value,
                confidence_score=attempt.confidence_score,
                match_method=method.value if isinstance(method, MatchMethod) else method,
                discogs_release_id=attempt.discogs_release_id,
                discogs_master_id=attempt.discogs_master_id,
                created_at=attempt.created_at,
            )
        )

    async def get_latest(self, release_id: str) -> MatchAttempt | None:
        """Get the newest attempt for a release (None if never attempted)."""
        stmt = (
            select(DiscogsMatchModel)
            .where(DiscogsMatchModel.release_id == release_id)
            .order_by(DiscogsMatchModel.created_at.desc(), DiscogsMatchModel.id.desc())
            .limit(1)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_latest_for_releases(
        self, release_ids: list[str]
    ) -> dict[str, MatchAttempt]:
        """Get the newest attempt per release. Releases without attempts are absent."""
        if not release_ids:
            return {}
        stmt = (
            select(DiscogsMatchModel)
            .where(DiscogsMatchModel.release_id.in_(release_ids))
            .order_by(
                DiscogsMatchModel.release_id,
                DiscogsMatchModel.created_at.desc(),
                DiscogsMatchModel.id.desc(),
            )
        )
        latest: dict[str, MatchAttempt] = {}
        for model in (await self.session.execute(stmt)).scalars():
            if model.release_id not in latest:
                latest[model.release_id] = self._to_entity(model)
        return latest

    async def list_for_release(self, release_id: str) -> list[MatchAttempt]:
        """All attempts for a release, newest first."""
        stmt = (
            select(DiscogsMatchModel)
            .where(DiscogsMatchModel.release_id == release_id)
            .order_by(DiscogsMatchModel.created_at.desc(), DiscogsMatchModel.id.desc())
        )
        return [self._to_entity(m) for m in (await self.session.execute(stmt)).scalars()]


class DiscogsEntityRepository(IDiscogsEntityRepository):
    """Cache of raw Discogs documents."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def _get_model(
        self, discogs_id: int, entity_type: DiscogsEntityType
    ) -> DiscogsEntityModel | None:
        stmt = select(DiscogsEntityModel).where(
            DiscogsEntityModel.discogs_id == discogs_id,
            DiscogsEntityModel.entity_type == entity_type.value,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def upsert(
        self, discogs_id: int, entity_type: DiscogsEntityType, raw_json: dict[str, Any]
    ) -> None:
        """Insert or replace the cached document and bump last_synced_at."""
        existing = await self._get_model(discogs_id, entity_type)
        if existing:
            existing.raw_json = raw_json
            existing.last_synced_at = utc_now()
            return
        self.session.add(
            DiscogsEntityModel(
                discogs_id=discogs_id,
                entity_type=entity_type.value,
                raw_json=raw_json,
                last_synced_at=utc_now(),
            )
        )

    async def get(
        self, discogs_id: int, entity_type: DiscogsEntityType
    ) -> dict[str, Any] | None:
        """Get a cached raw document."""
        model = await self._get_model(discogs_id, entity_type)
        return model.raw_json if model else None

    async def get_many(
        self, discogs_ids: list[int], entity_type: DiscogsEntityType
    ) -> dict[int, dict[str, Any]]:
        """Get several cached documents of one type, keyed by Discogs id."""
        if not discogs_ids:
            return {}
        stmt = select(DiscogsEntityModel).where(
            DiscogsEntityModel.discogs_id.in_(discogs_ids),
            DiscogsEntityModel.entity_type == entity_type.value,
        )
        return {m.discogs_id: m.raw_json for m in (await self.session.execute(stmt)).scalars()}


class TagRepository(ITagRepository):
    """Tags and release<->tag attachments."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    # Hey future me - select-then-insert. Two concurrent writers of the same NEW tag name can
    # both miss the select; the loser gets an IntegrityError at flush. Callers run each tag in
    # its own session scope and simply retry once - the second select then finds the row.
    async def ensure_tag(self, name: str) -> int:
        """Return the id of the tag, creating it if absent."""
        stmt = select(TagModel.id).where(TagModel.name == name)
        tag_id = (await self.session.execute(stmt)).scalar_one_or_none()
        if tag_id is not None:
            return tag_id
        model = TagModel(name=name)
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def attach(self, release_id: str, tag_id: int, source: str) -> bool:
        """Link a tag to a release. Existing attachments keep their source."""
        stmt = select(ReleaseTagModel.id).where(
            ReleaseTagModel.release_id == release_id, ReleaseTagModel.tag_id == tag_id
        )
        if (await self.session.execute(stmt)).scalar_one_or_none() is not None:
            return False
        self.session.add(ReleaseTagModel(release_id=release_id, tag_id=tag_id, source=source))
        await self.session.flush()
        return True

    async def list_for_release(self, release_id: str) -> list[tuple[str, str]]:
        """Return (tag name, source) pairs for a release, oldest attachment first."""
        stmt = (
            select(TagModel.name, ReleaseTagModel.source)
            .join(ReleaseTagModel, ReleaseTagModel.tag_id == TagModel.id)
            .where(ReleaseTagModel.release_id == release_id)
            .order_by(ReleaseTagModel.id.asc())
        )
        result = await self.session.execute(stmt)
        return [(name, source) for name, source in result.all()]


__all__ = [
    "DiscogsEntityRepository",
    "MatchAttemptRepository",
    "ReleaseRepository",
    "TagRepository",
]
