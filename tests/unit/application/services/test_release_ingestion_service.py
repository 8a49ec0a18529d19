"""Tests for release ingestion from extension submissions."""

from datetime import date
from typing import Any
from unittest.mock import MagicMock

import pytest

from bitrot.application.services.enrichment_persister import EnrichmentPersister
from bitrot.application.services.release_ingestion_service import ReleaseIngestionService
from bitrot.domain.entities import ReleaseSubmission, TrackInput
from bitrot.domain.exceptions import EntityNotFoundException, ValidationException


def _submission(**overrides: Any) -> ReleaseSubmission:
    values: dict[str, Any] = {
        "artist": "Boards of Canada",
        "title": "Geogaddi",
        "platform": "bandcamp",
        "platform_release_id": "boc-geogaddi",
        "url": "https://boardsofcanada.bandcamp.com/album/geogaddi",
        "release_date": date(2002, 2, 18),
        "tags": ["idm", "ambient"],
        "tracks": [TrackInput(title="Ready Lets Go", duration=59)],
        "price_label": "£9",
        "is_free": False,
    }
    values.update(overrides)
    return ReleaseSubmission(**values)


@pytest.fixture
def dispatch() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(
    db: Any, persister: EnrichmentPersister, dispatch: MagicMock
) -> ReleaseIngestionService:
    return ReleaseIngestionService(db, persister, dispatch_match=dispatch)


class TestIngest:
    """Test creating and re-submitting releases."""

    async def test_creates_release_and_dispatches_match(
        self, service: ReleaseIngestionService, dispatch: MagicMock
    ) -> None:
        """Test a first submission."""
        release_id = await service.ingest(_submission())

        detail = await service.get_release(release_id)
        release = detail["release"]
        assert release.artist_name == "Boards of Canada"
        assert release.title == "Geogaddi"
        assert release.release_date == date(2002, 2, 18)
        assert detail["url"] == "https://boardsofcanada.bandcamp.com/album/geogaddi"
        assert detail["price_label"] == "£9"
        assert detail["is_free"] is False
        assert [t.title for t in detail["tracks"]] == ["Ready Lets Go"]
        assert detail["tags"] == [("idm", "bandcamp"), ("ambient", "bandcamp")]
        dispatch.assert_called_once_with(release_id)

    async def test_resubmission_keeps_id_and_fills_in(
        self, service: ReleaseIngestionService, dispatch: MagicMock
    ) -> None:
        """Test that the same source maps to the same release and nothing is blanked."""
        first = await service.ingest(_submission())
        second = await service.ingest(
            _submission(
                title="Geogaddi (Remastered)",
                url=None,
                release_date=None,
                price_label=None,
                is_free=None,
                tags=["idm", "electronic"],
                tracks=[
                    TrackInput(title="Ready Lets Go", duration=60),
                    TrackInput(title="Music Is Math", duration=321, spotify_track_id="sp1"),
                ],
            )
        )

        assert second == first
        detail = await service.get_release(first)
        assert detail["release"].title == "Geogaddi (Remastered)"
        assert detail["release"].release_date == date(2002, 2, 18)
        assert detail["url"] == "https://boardsofcanada.bandcamp.com/album/geogaddi"
        assert detail["price_label"] == "£9"
        assert detail["is_free"] is False
        assert [(t.title, t.duration) for t in detail["tracks"]] == [
            ("Ready Lets Go", 60),
            ("Music Is Math", 321),
        ]
        assert [name for name, _ in detail["tags"]] == ["idm", "ambient", "electronic"]
        assert dispatch.call_count == 2

    async def test_track_keeps_known_spotify_id(self, service: ReleaseIngestionService) -> None:
        """Test that a re-submitted track without spotify id keeps the stored one."""
        release_id = await service.ingest(
            _submission(tracks=[TrackInput(title="Dawn Chorus", spotify_track_id="sp-dawn")])
        )
        await service.ingest(_submission(tracks=[TrackInput(title="Dawn Chorus", duration=231)]))

        tracks = (await service.get_release(release_id))["tracks"]
        assert tracks == [
            TrackInput(title="Dawn Chorus", duration=231, spotify_track_id="sp-dawn")
        ]

    async def test_other_platform_is_a_new_release(self, service: ReleaseIngestionService) -> None:
        """Test that identity is per (platform, platform_release_id)."""
        first = await service.ingest(_submission())
        second = await service.ingest(_submission(platform="beatport"))

        assert first != second

    @pytest.mark.parametrize("field", ["artist", "title", "platform", "platform_release_id"])
    async def test_missing_required_field(
        self, service: ReleaseIngestionService, dispatch: MagicMock, field: str
    ) -> None:
        """Test that every identifying field is required."""
        with pytest.raises(ValidationException, match=field):
            await service.ingest(_submission(**{field: "  "}))
        dispatch.assert_not_called()

    async def test_works_without_dispatcher(self, db: Any, persister: EnrichmentPersister) -> None:
        """Test ingestion with matching disabled."""
        service = ReleaseIngestionService(db, persister)
        assert await service.ingest(_submission())

    async def test_unknown_release(self, service: ReleaseIngestionService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.get_release("does-not-exist")
