"""Enrichment persister - writes Discogs match outcomes and metadata to storage.

Hey future me - every public method here opens its OWN session scope. That's on
purpose: the matcher writes an attempt row, then hydrates, then updates the
release, then projects tags, and a failure in a later step must never roll back
an earlier one. There is no cross-step transaction.

Merge rules (the important bit):
- Enrichment is MONOTONIC. None in a payload means "unknown", never "clear it".
  The repository merges Python-side and only copies non-None values.
- Empty genre/style/label lists count as None for the same reason.
- Tag projection only ADDS attachments. A tag another source attached first
  keeps that source.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError

from bitrot.domain.entities import (
    DiscogsEntityType,
    MatchAttempt,
    ReleaseEnrichment,
    TagSource,
)
from bitrot.infrastructure.persistence.database import Database
from bitrot.infrastructure.persistence.models import utc_now
from bitrot.infrastructure.persistence.repositories import (
    DiscogsEntityRepository,
    MatchAttemptRepository,
    ReleaseRepository,
    TagRepository,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PAYLOAD EXTRACTION (pure)
# =============================================================================


def _clean_strings(values: Any) -> list[str] | None:
    if not isinstance(values, list):
        return None
    cleaned: list[str] = []
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned or None


def _finite_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _finite_int(value: Any) -> int | None:
    number = _finite_float(value)
    return int(number) if number is not None else None


def _pick_image(images: Any) -> dict[str, Any] | None:
    if not isinstance(images, list):
        return None
    candidates = [img for img in images if isinstance(img, dict)]
    if not candidates:
        return None
    for image in candidates:
        if image.get("type") == "primary":
            return image
    return candidates[0]


def extract_enrichment(payload: dict[str, Any]) -> ReleaseEnrichment:
    """Pull the enrichment fields out of a full Discogs release document.

    Args:
        payload: Raw ``GET /releases/{id}`` response

    Returns:
        ReleaseEnrichment with None for anything absent or malformed
    """
    image = _pick_image(payload.get("images"))

    labels = payload.get("labels")
    label_names = _clean_strings(
        [label.get("name") for label in labels if isinstance(label, dict)]
        if isinstance(labels, list)
        else None
    )

    community = payload.get("community")
    rating = community.get("rating") if isinstance(community, dict) else None
    if not isinstance(rating, dict):
        rating = {}

    country = payload.get("country")
    country = str(country).strip() if country else None

    return ReleaseEnrichment(
        genres=_clean_strings(payload.get("genres")),
        styles=_clean_strings(payload.get("styles")),
        country=country or None,
        labels=label_names,
        cover_image_url=(image.get("uri") or None) if image else None,
        thumb_url=(image.get("uri150") or None) if image else None,
        rating_average=_finite_float(rating.get("average")),
        rating_count=_finite_int(rating.get("count")),
        master_id=_finite_int(payload.get("master_id")) or None,
    )


def rating_from_document(payload: dict[str, Any] | None) -> tuple[float | None, int | None]:
    """Read community.rating average/count from a cached release document."""
    if not payload:
        return None, None
    enrichment = extract_enrichment(payload)
    return enrichment.rating_average, enrichment.rating_count


# =============================================================================
# PERSISTER
# =============================================================================


class EnrichmentPersister:
    """Idempotent writer for match attempts, cached documents, enrichment and tags."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def record_attempt(self, attempt: MatchAttempt) -> None:
        """Append one match attempt row."""
        async with self._db.session_scope() as session:
            await MatchAttemptRepository(session).add(attempt)

    # Hey future me - the raw cache is never authoritative, so a failed cache write must not
    # fail the match. Log it and move on.
    async def cache_entity(
        self, discogs_id: int | None, entity_type: DiscogsEntityType, raw_json: Any
    ) -> bool:
        """Best-effort upsert of a raw Discogs document.

        Returns:
            True if the document was written
        """
        if not discogs_id or not isinstance(raw_json, dict):
            return False
        try:
            async with self._db.session_scope() as session:
                await DiscogsEntityRepository(session).upsert(discogs_id, entity_type, raw_json)
        except Exception as e:
            logger.warning(
                "Could not cache Discogs %s %s: %s", entity_type.value, discogs_id, e
            )
            return False
        return True

    async def merge_enrichment(
        self, release_id: str, enrichment: ReleaseEnrichment, refreshed_at: datetime | None = None
    ) -> None:
        """Merge enrichment onto a release without touching its match pointer."""
        async with self._db.session_scope() as session:
            await ReleaseRepository(session).merge_enrichment(
                release_id, enrichment, refreshed_at or utc_now()
            )

    async def accept_match(
        self,
        release_id: str,
        discogs_release_id: int,
        discogs_master_id: int | None,
        confidence: float,
        enrichment: ReleaseEnrichment,
    ) -> None:
        """Write the accepted pointer and the hydrated enrichment together."""
        now = utc_now()
        async with self._db.session_scope() as session:
            await ReleaseRepository(session).accept_match(
                release_id,
                discogs_release_id,
                discogs_master_id,
                confidence,
                matched_at=now,
                enrichment=enrichment,
                refreshed_at=now,
            )

    async def set_match_pointer(
        self,
        release_id: str,
        discogs_release_id: int,
        discogs_master_id: int | None,
        confidence: float,
    ) -> None:
        """Minimal pointer-only update used when hydration failed."""
        async with self._db.session_scope() as session:
            await ReleaseRepository(session).set_match_pointer(
                release_id, discogs_release_id, discogs_master_id, confidence, utc_now()
            )

    async def attach_tags(self, release_id: str, names: Iterable[str], source: str) -> int:
        """Ensure each tag exists and attach it to the release.

        Each tag gets its own session scope; a unique-constraint race with a
        concurrent writer is retried once, after which the row exists.

        Returns:
            Number of NEW attachments
        """
        attached = 0
        for raw_name in names:
            name = (raw_name or "").strip()
            if not name:
                continue
            for attempt in range(2):
                try:
                    async with self._db.session_scope() as session:
                        tags = TagRepository(session)
                        tag_id = await tags.ensure_tag(name)
                        if await tags.attach(release_id, tag_id, source):
                            attached += 1
                    break
                except IntegrityError:
                    if attempt == 1:
                        raise
                    logger.debug("Tag '%s' was written concurrently, retrying", name)
        return attached

    async def project_tags(
        self, release_id: str, genres: list[str] | None, styles: list[str] | None
    ) -> int:
        """Project Discogs genres and styles into the shared tag system.

        Returns:
            Number of NEW attachments
        """
        added = await self.attach_tags(release_id, genres or [], TagSource.DISCOGS_GENRE.value)
        added += await self.attach_tags(release_id, styles or [], TagSource.DISCOGS_STYLE.value)
        if added:
            logger.debug("Projected %d Discogs tag(s) onto release %s", added, release_id)
        return added


__all__ = ["EnrichmentPersister", "extract_enrichment", "rating_from_document"]
