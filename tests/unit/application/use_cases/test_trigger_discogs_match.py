"""Tests for the trigger-match use case (cooldown) and the status view."""

import asyncio
from datetime import timedelta
from typing import Any

import pytest

from bitrot.application.services.discogs_matcher import DiscogsMatcherService
from bitrot.application.services.enrichment_persister import EnrichmentPersister
from bitrot.application.use_cases.trigger_discogs_match import (
    COOLDOWN_SKIP_REASON,
    GetDiscogsStatusUseCase,
    TriggerDiscogsMatchRequest,
    TriggerDiscogsMatchUseCase,
    parse_release_ids,
)
from bitrot.application.workers.discogs_queue import DiscogsJobQueue
from bitrot.domain.entities import (
    DiscogsEntityType,
    MatchAttempt,
    MatchMethod,
    MatchStatus,
)
from bitrot.domain.exceptions import DiscogsApiError, EntityNotFoundException
from bitrot.infrastructure.persistence.models import utc_now


@pytest.fixture
def trigger(
    db: Any, fake_discogs: Any, persister: EnrichmentPersister
) -> TriggerDiscogsMatchUseCase:
    matcher = DiscogsMatcherService(fake_discogs, persister)
    return TriggerDiscogsMatchUseCase(db, matcher, DiscogsJobQueue(max_concurrency=2))


async def _record(
    persister: EnrichmentPersister,
    release_id: str,
    status: MatchStatus,
    age: timedelta,
    discogs_release_id: int | None = None,
    confidence: float = 0,
) -> None:
    await persister.record_attempt(
        MatchAttempt(
            release_id=release_id,
            status=status,
            confidence_score=confidence,
            match_method=MatchMethod.SEARCH_TITLE_ARTIST,
            discogs_release_id=discogs_release_id,
            created_at=utc_now() - age,
        )
    )


class TestTriggerDiscogsMatch:
    """Test the re-match cooldown."""

    async def test_unknown_release(self, trigger: TriggerDiscogsMatchUseCase) -> None:
        """Test that an unknown id raises EntityNotFoundException."""
        with pytest.raises(EntityNotFoundException):
            await trigger.execute(TriggerDiscogsMatchRequest(release_id="nope"))

    async def test_recent_attempt_is_skipped_without_calls(
        self,
        trigger: TriggerDiscogsMatchUseCase,
        persister: EnrichmentPersister,
        fake_discogs: Any,
        make_release: Any,
    ) -> None:
        """Test that an attempt inside the cooldown short-circuits."""
        release = await make_release()
        await _record(persister, release.id, MatchStatus.REJECTED, timedelta(minutes=5))

        result = await trigger.execute(TriggerDiscogsMatchRequest(release_id=release.id))

        assert result.skipped is True
        assert result.skip_reason == COOLDOWN_SKIP_REASON
        assert result.status is MatchStatus.REJECTED
        assert fake_discogs.calls == []

    async def test_force_bypasses_cooldown(
        self,
        trigger: TriggerDiscogsMatchUseCase,
        persister: EnrichmentPersister,
        fake_discogs: Any,
        make_release: Any,
        list_attempts: Any,
    ) -> None:
        """Test that force=True runs the matcher even inside the cooldown."""
        release = await make_release()
        await _record(persister, release.id, MatchStatus.REJECTED, timedelta(minutes=5))

        result = await trigger.execute(
            TriggerDiscogsMatchRequest(release_id=release.id, force=True)
        )

        assert result.skipped is False
        assert fake_discogs.search_calls
        assert len(await list_attempts(release.id)) == 2

    async def test_old_attempt_allows_rematch(
        self,
        trigger: TriggerDiscogsMatchUseCase,
        persister: EnrichmentPersister,
        fake_discogs: Any,
        make_release: Any,
    ) -> None:
        """Test that an attempt older than one hour does not block."""
        release = await make_release()
        await _record(persister, release.id, MatchStatus.REJECTED, timedelta(hours=2))

        result = await trigger.execute(TriggerDiscogsMatchRequest(release_id=release.id))

        assert result.skipped is False
        assert fake_discogs.search_calls

    async def test_temporary_failure_does_not_start_cooldown(
        self,
        trigger: TriggerDiscogsMatchUseCase,
        fake_discogs: Any,
        make_release: Any,
    ) -> None:
        """Test that a transient failure leaves the next trigger free to run."""

        def _unavailable(artist: str, title: str, year: int | None) -> dict[str, Any]:
            raise DiscogsApiError.temporary("Discogs returned HTTP 503", status=503)

        fake_discogs.search_handler = _unavailable
        release = await make_release()

        first = await trigger.execute(TriggerDiscogsMatchRequest(release_id=release.id))
        second = await trigger.execute(TriggerDiscogsMatchRequest(release_id=release.id))

        assert first.debug is not None
        assert first.debug["reason"] == "discogs_temporary_error"
        assert second.skipped is False
        assert len(fake_discogs.search_calls) == 2

    async def test_queued_job_sees_match_accepted_while_waiting(
        self,
        db: Any,
        fake_discogs: Any,
        persister: EnrichmentPersister,
        make_release: Any,
        list_attempts: Any,
    ) -> None:
        """Test that a job admitted before a match lands takes the refresh path."""
        fake_discogs.search_results = [
            {
                "id": 7001,
                "master_id": 501,
                "title": "Boards Of Canada - Geogaddi",
                "year": "2002",
            }
        ]
        single_slot = TriggerDiscogsMatchUseCase(
            db,
            DiscogsMatcherService(fake_discogs, persister),
            DiscogsJobQueue(max_concurrency=1),
        )
        release = await make_release()
        request = TriggerDiscogsMatchRequest(release_id=release.id, force=True)

        first, second = await asyncio.gather(
            single_slot.execute(request), single_slot.execute(request)
        )

        assert first.status is MatchStatus.MATCHED
        assert first.refreshed is False
        assert second.status is MatchStatus.MATCHED
        assert second.refreshed is True
        assert second.discogs_release_id == 7001
        assert len(fake_discogs.search_calls) == 1
        methods = [a.match_method for a in await list_attempts(release.id)]
        assert methods == [MatchMethod.REFRESH_EXISTING, MatchMethod.SEARCH_TITLE_ARTIST]

    async def test_dispatch_runs_in_background(
        self,
        trigger: TriggerDiscogsMatchUseCase,
        fake_discogs: Any,
        make_release: Any,
        list_attempts: Any,
    ) -> None:
        """Test the fire-and-forget ingestion hook."""
        release = await make_release()

        task = trigger.dispatch(release.id)
        assert trigger.pending_dispatches == 1
        result = await task

        assert result.skipped is False
        assert len(await list_attempts(release.id)) == 1

    async def test_dispatch_failure_is_logged(
        self, trigger: TriggerDiscogsMatchUseCase, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a failing dispatch never raises into the caller."""
        task = trigger.dispatch("missing-release")

        with pytest.raises(EntityNotFoundException):
            await task

        assert "Background Discogs match failed" in caplog.text
        assert trigger.pending_dispatches == 0


class TestParseReleaseIds:
    """Test the ids query parser."""

    def test_splits_and_dedupes(self) -> None:
        assert parse_release_ids(" a, b,,a ,c ") == ["a", "b", "c"]

    def test_empty(self) -> None:
        assert parse_release_ids(None) == []
        assert parse_release_ids("") == []


class TestGetDiscogsStatus:
    """Test the status projection."""

    async def test_never_attempted_releases_are_absent(
        self, db: Any, make_release: Any
    ) -> None:
        """Test that only attempted releases appear."""
        release = await make_release()

        assert await GetDiscogsStatusUseCase(db).execute([release.id, "unknown"]) == {}

    async def test_latest_attempt_wins(
        self, db: Any, persister: EnrichmentPersister, make_release: Any
    ) -> None:
        """Test that the newest attempt is reported."""
        release = await make_release()
        await _record(persister, release.id, MatchStatus.REJECTED, timedelta(hours=3))
        await _record(
            persister,
            release.id,
            MatchStatus.SUGGESTED,
            timedelta(hours=1),
            discogs_release_id=55,
            confidence=60,
        )

        status = await GetDiscogsStatusUseCase(db).execute([release.id])

        view = status[release.id]
        assert view.status is MatchStatus.SUGGESTED
        assert view.confidence_score == 60
        assert view.discogs_release_id == 55

    async def test_rating_prefers_release_row(
        self, db: Any, persister: EnrichmentPersister, make_release: Any
    ) -> None:
        """Test that stored ratings win over the cached document."""
        release = await make_release(
            discogs_release_id=7, discogs_rating_average=4.2, discogs_rating_count=10
        )
        await _record(
            persister, release.id, MatchStatus.MATCHED, timedelta(0), discogs_release_id=7
        )
        await persister.cache_entity(
            7,
            DiscogsEntityType.RELEASE,
            {"community": {"rating": {"average": 1.0, "count": 1}}},
        )

        view = (await GetDiscogsStatusUseCase(db).execute([release.id]))[release.id]

        assert view.rating_average == 4.2
        assert view.rating_count == 10

    async def test_rating_falls_back_to_cached_document(
        self, db: Any, persister: EnrichmentPersister, make_release: Any
    ) -> None:
        """Test the rating fallback when the release row has none."""
        release = await make_release()
        await _record(
            persister, release.id, MatchStatus.MATCHED, timedelta(0), discogs_release_id=7
        )
        await persister.cache_entity(
            7,
            DiscogsEntityType.RELEASE,
            {"community": {"rating": {"average": 3.5, "count": 40}}},
        )

        view = (await GetDiscogsStatusUseCase(db).execute([release.id]))[release.id]

        assert view.rating_average == 3.5
        assert view.rating_count == 40
