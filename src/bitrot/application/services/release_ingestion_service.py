"""Release ingestion - stores releases submitted by the browser extensions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from bitrot.application.services.enrichment_persister import EnrichmentPersister
from bitrot.domain.entities import ReleaseSubmission
from bitrot.domain.exceptions import EntityNotFoundException, ValidationException
from bitrot.infrastructure.persistence.database import Database
from bitrot.infrastructure.persistence.repositories import ReleaseRepository, TagRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("artist", "title", "platform", "platform_release_id")


class ReleaseIngestionService:
    """Upsert submitted releases and kick off Discogs matching.

    Hey future me - a release is identified by its SOURCE, not by artist/title:
    the same (platform, platform_release_id) always maps to the same release id.
    Re-submissions only fill in fields, they never blank anything.

    Matching is dispatched AFTER the write has committed and never blocks or
    fails the ingestion response - the extension doesn't care about Discogs.
    """

    def __init__(
        self,
        database: Database,
        tag_writer: EnrichmentPersister,
        dispatch_match: Callable[[str], Any] | None = None,
    ) -> None:
        """Initialize service.

        Args:
            database: Database for the release/source/track writes
            tag_writer: Writes tag attachments (race-safe, one scope per tag)
            dispatch_match: Called with the release id once stored (fire-and-forget)
        """
        self._db = database
        self._tags = tag_writer
        self._dispatch_match = dispatch_match

    @staticmethod
    def validate(submission: ReleaseSubmission) -> None:
        """Reject submissions missing any identifying field.

        Raises:
            ValidationException: a required field is empty
        """
        missing = [
            name for name in REQUIRED_FIELDS if not str(getattr(submission, name) or "").strip()
        ]
        if missing:
            raise ValidationException(
                "artist, title, platform, and platform_release_id are required fields"
                f" (missing: {', '.join(missing)})"
            )

    async def ingest(self, submission: ReleaseSubmission) -> str:
        """Store a submitted release.

        Args:
            submission: Release data from an extension

        Returns:
            The release id (existing or newly created)

        Raises:
            ValidationException: a required field is empty
        """
        self.validate(submission)

        async with self._db.session_scope() as session:
            repo = ReleaseRepository(session)
            release_id = await repo.find_id_by_source(
                submission.platform, submission.platform_release_id
            )
            if release_id:
                await repo.update_from_submission(release_id, submission)
                created = False
            else:
                release_id = await repo.add_from_submission(submission)
                created = True
            tracks_written = await repo.upsert_tracks(release_id, submission.tracks)

        tags_attached = await self._tags.attach_tags(
            release_id, submission.tags, submission.platform
        )

        logger.info(
            "%s release %s from %s (%d tracks, %d new tags)",
            "Created" if created else "Updated",
            release_id,
            submission.platform,
            tracks_written,
            tags_attached,
        )

        if self._dispatch_match is not None:
            self._dispatch_match(release_id)

        return release_id

    async def get_release(self, release_id: str) -> dict[str, Any]:
        """Load a release with url, tracks and tags.

        Raises:
            EntityNotFoundException: unknown release id
        """
        async with self._db.session_scope() as session:
            detail = await ReleaseRepository(session).get_detail(release_id)
            if detail is None:
                raise EntityNotFoundException("Release", release_id)
            detail["tags"] = await TagRepository(session).list_for_release(release_id)
        return detail


__all__ = ["ReleaseIngestionService"]
