"""Discogs matcher - finds, scores and persists the Discogs counterpart of a release.

Flow for one release:

    START
      ├─ has discogs_release_id ──► FAST PATH: 1x get_release, refresh_existing attempt,
      │                             merge enrichment, project tags. Pointer unchanged.
      └─ otherwise ──────────────► SEARCH (artist x title candidates, with year, then
                                    without) ─► SCORE ─► DECIDE ─► PERSIST attempt
                                    ─► (matched only) HYDRATE: 1x get_release, merge,
                                    project tags. Hydration failure ─► pointer-only update.

Hey future me - the ONE rule that matters most: a TEMPORARY Discogs failure (429, 5xx,
HTML interstitial) must NEVER produce an attempt row. A "rejected" row would sit inside
the 1h cooldown and look exactly like "not on Discogs". So every Discogs failure is
caught at the top, classified by kind, and returned as a non-persisted rejection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from bitrot.application.services.enrichment_persister import (
    EnrichmentPersister,
    extract_enrichment,
)
from bitrot.config.settings import DiscogsSettings
from bitrot.domain.entities import (
    DiscogsEntityType,
    MatchAttempt,
    MatchMethod,
    MatchResult,
    MatchStatus,
    Release,
)
from bitrot.domain.exceptions import DiscogsApiError, DiscogsErrorKind, ValidationException
from bitrot.domain.ports import IDiscogsClient
from bitrot.domain.value_objects.release_matching import (
    MAX_SEARCH_ATTEMPTS,
    SEARCH_RESULTS_CONSIDERED,
    artist_candidates,
    decide_status,
    pick_best_hit,
    title_candidates,
)
from bitrot.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)


@dataclass
class _SearchLog:
    """Running count of search calls, readable even after a failure mid-search."""

    attempts_tried: int = 0
    last_response: dict[str, Any] | None = None


def _as_id(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number or None


class DiscogsMatcherService:
    """Match a single release against Discogs and persist the outcome."""

    def __init__(
        self,
        client: IDiscogsClient,
        persister: EnrichmentPersister,
        settings: DiscogsSettings | None = None,
    ) -> None:
        """Initialize matcher.

        Args:
            client: Discogs API client (all calls pass its throttle gate)
            persister: Storage writer for attempts, caches, enrichment and tags
            settings: Discogs settings (master caching switch)
        """
        self._client = client
        self._persister = persister
        self._cache_masters = bool(settings and settings.cache_master_documents)

    async def match_release(self, release: Release) -> MatchResult:
        """Run the full matching state machine for one release.

        Args:
            release: The release to match (must carry an id)

        Returns:
            MatchResult; Discogs failures come back as non-persisted rejections
            with ``debug["reason"]`` set

        Raises:
            ValidationException: release has no id (caller bug)
        """
        if release is None or not release.id:
            raise ValidationException("match_release: missing release id")

        search_log = _SearchLog()
        try:
            if release.discogs_release_id:
                return await self._refresh_existing(release, release.discogs_release_id)
            return await self._search_and_decide(release, search_log)
        except DiscogsApiError as err:
            return self._classify_failure(release.id, err, search_log)
        except Exception as e:
            logger.error(
                "Discogs match failed for release %s: %s", release.id, e, exc_info=True
            )
            return MatchResult.rejected(
                release.id, reason="discogs_search_error", message=str(e)
            )

    def _classify_failure(
        self, release_id: str, err: DiscogsApiError, search_log: _SearchLog
    ) -> MatchResult:
        if err.kind is DiscogsErrorKind.CONFIG:
            logger.error(
                "Discogs not configured, skipping release %s: %s", release_id, err.message
            )
            return MatchResult.rejected(release_id, reason="discogs_not_configured")

        if err.kind is DiscogsErrorKind.TEMPORARY:
            logger.warning(
                LogMessages.upstream_temporary_error(
                    "Discogs",
                    err.message,
                    err.status,
                    hint=(
                        f"Nothing was recorded for release {release_id}"
                        " - the next trigger retries it"
                    ),
                )
            )
            return MatchResult.rejected(
                release_id,
                reason="discogs_temporary_error",
                message=err.message,
                status=err.status,
                attempts_tried=search_log.attempts_tried,
            )

        logger.error(
            "Discogs request failed for release %s (status %s): %s",
            release_id,
            err.status,
            err.message,
        )
        return MatchResult.rejected(
            release_id, reason="discogs_search_error", message=err.message
        )

    # =========================================================================
    # FAST PATH
    # =========================================================================

    # Yo, the fast path is the idempotent one: same pointer in, same pointer out, just
    # fresher enrichment. Exactly ONE Discogs call, no searching.
    async def _refresh_existing(self, release: Release, discogs_release_id: int) -> MatchResult:
        payload = await self._client.get_release(discogs_release_id)
        enrichment = extract_enrichment(payload)
        confidence = (
            release.discogs_confidence if release.discogs_confidence is not None else 100
        )

        await self._persister.record_attempt(
            MatchAttempt(
                release_id=release.id,
                status=MatchStatus.MATCHED,
                confidence_score=confidence,
                match_method=MatchMethod.REFRESH_EXISTING,
                discogs_release_id=discogs_release_id,
                discogs_master_id=release.discogs_master_id,
            )
        )
        await self._persister.cache_entity(discogs_release_id, DiscogsEntityType.RELEASE, payload)
        await self._persister.merge_enrichment(release.id, enrichment)
        await self._project_tags(release.id, enrichment.genres, enrichment.styles)

        logger.info(
            "Refreshed Discogs enrichment for release %s (discogs %s)",
            release.id,
            discogs_release_id,
        )
        return MatchResult(
            release_id=release.id,
            status=MatchStatus.MATCHED,
            confidence_score=confidence,
            discogs_release_id=discogs_release_id,
            discogs_master_id=release.discogs_master_id,
            refreshed=True,
        )

    # =========================================================================
    # SEARCH PATH
    # =========================================================================

    async def _run_search(
        self,
        artists: list[str],
        titles: list[str],
        year: int | None,
        search_log: _SearchLog,
    ) -> list[dict[str, Any]]:
        """Try artist x title combinations until one returns hits (max 12 calls)."""
        calls = 0
        for artist in artists:
            for title in titles:
                response = await self._client.search_releases(artist, title, year=year)
                calls += 1
                search_log.attempts_tried += 1
                search_log.last_response = response

                results = response.get("results") if isinstance(response, dict) else None
                hits = [
                    hit
                    for hit in (results if isinstance(results, list) else [])[
                        :SEARCH_RESULTS_CONSIDERED
                    ]
                    if isinstance(hit, dict)
                ]
                if hits:
                    return hits
                if calls >= MAX_SEARCH_ATTEMPTS:
                    return []
        return []

    async def _search_and_decide(self, release: Release, search_log: _SearchLog) -> MatchResult:
        raw_artist = (release.artist_name or "").strip()
        raw_title = (release.title or "").strip()
        year = release.year

        if not raw_artist or not raw_title:
            # Nothing to search with - no attempt row, it'd only block a later retry
            return MatchResult.rejected(release.id, reason="missing_artist_or_title")

        artists = artist_candidates(raw_artist)
        titles = title_candidates(raw_title, raw_artist)
        logger.debug(
            "Matching release %s: artist=%r title=%r year=%s (%d x %d candidates)",
            release.id,
            raw_artist,
            raw_title,
            year,
            len(artists),
            len(titles),
        )

        hits = await self._run_search(artists, titles, year, search_log)
        if not hits and year:
            hits = await self._run_search(artists, titles, None, search_log)

        best = pick_best_hit(raw_artist, raw_title, year, hits)
        if best is None:
            # Genuine "not on Discogs" - THIS one is persisted so the cooldown sticks
            await self._persister.record_attempt(
                MatchAttempt(
                    release_id=release.id,
                    status=MatchStatus.REJECTED,
                    confidence_score=0,
                    match_method=MatchMethod.SEARCH_TITLE_ARTIST,
                )
            )
            pagination = (search_log.last_response or {}).get("pagination")
            items = pagination.get("items") if isinstance(pagination, dict) else None
            logger.info(
                "No Discogs results for release %s after %d searches",
                release.id,
                search_log.attempts_tried,
            )
            return MatchResult.rejected(
                release.id,
                reason="no_discogs_results",
                raw_artist=raw_artist,
                raw_title=raw_title,
                year=year,
                attempts_tried=search_log.attempts_tried,
                discogs_pagination_items=items if isinstance(items, int) else 0,
            )

        hit, score = best
        status = decide_status(score)
        discogs_release_id = _as_id(hit.get("id"))
        discogs_master_id = _as_id(hit.get("master_id"))

        await self._persister.record_attempt(
            MatchAttempt(
                release_id=release.id,
                status=status,
                confidence_score=score,
                match_method=MatchMethod.SEARCH_TITLE_ARTIST,
                discogs_release_id=discogs_release_id,
                discogs_master_id=discogs_master_id,
            )
        )

        if status in (MatchStatus.MATCHED, MatchStatus.SUGGESTED):
            await self._persister.cache_entity(
                discogs_release_id, DiscogsEntityType.SEARCH_RESULT, hit
            )

        if status is MatchStatus.MATCHED and discogs_release_id:
            await self._hydrate(release.id, discogs_release_id, discogs_master_id, score)

        logger.info(
            LogMessages.match_decided(release.id, status.value, score, discogs_release_id)
        )
        return MatchResult(
            release_id=release.id,
            status=status,
            confidence_score=score,
            discogs_release_id=discogs_release_id,
            discogs_master_id=discogs_master_id,
        )

    # =========================================================================
    # HYDRATION
    # =========================================================================

    # Hey future me - at this point the MATCHED attempt row already exists. Whatever goes
    # wrong below, the release must still end up with its pointer, otherwise the attempt
    # table says "matched" while the release row says "never matched".
    async def _hydrate(
        self,
        release_id: str,
        discogs_release_id: int,
        discogs_master_id: int | None,
        confidence: float,
    ) -> None:
        try:
            payload = await self._client.get_release(discogs_release_id)
            enrichment = extract_enrichment(payload)
            await self._persister.cache_entity(
                discogs_release_id, DiscogsEntityType.RELEASE, payload
            )
            await self._persister.accept_match(
                release_id, discogs_release_id, discogs_master_id, confidence, enrichment
            )
        except Exception as e:
            logger.warning(
                "Hydration failed for release %s (discogs %s), writing pointer only: %s",
                release_id,
                discogs_release_id,
                e,
            )
            await self._persister.set_match_pointer(
                release_id, discogs_release_id, discogs_master_id, confidence
            )
            return

        await self._project_tags(release_id, enrichment.genres, enrichment.styles)

        master_id = discogs_master_id or enrichment.master_id
        if self._cache_masters and master_id:
            await self._cache_master(master_id)

    async def _cache_master(self, master_id: int) -> None:
        try:
            master = await self._client.get_master(master_id)
        except DiscogsApiError as err:
            logger.warning("Could not fetch Discogs master %s: %s", master_id, err.message)
            return
        await self._persister.cache_entity(master_id, DiscogsEntityType.MASTER, master)

    async def _project_tags(
        self, release_id: str, genres: list[str] | None, styles: list[str] | None
    ) -> None:
        # Tags are a projection of data already stored on the release - a failure here
        # must not turn a recorded match into an error result.
        try:
            await self._persister.project_tags(release_id, genres, styles)
        except Exception as e:
            logger.warning(
                "Tag projection failed for release %s: %s", release_id, e, exc_info=True
            )


__all__ = ["DiscogsMatcherService"]
