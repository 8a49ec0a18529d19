"""Shared test fixtures.

Hey future me - every DB test gets its OWN SQLite file under tmp_path, so tests never
see each other's rows and can run in any order. The Discogs side is always faked:
either FakeDiscogsClient (matcher/use-case tests) or httpx.MockTransport (client tests).
Nothing in this suite talks to the real Discogs API.
"""

from collections.abc import AsyncGenerator, Callable
from datetime import date
from typing import Any

import pytest

from bitrot.application.services.enrichment_persister import EnrichmentPersister
from bitrot.config.settings import DatabaseSettings, DiscogsSettings, Settings
from bitrot.domain.entities import Release
from bitrot.domain.ports import IDiscogsClient
from bitrot.infrastructure.persistence.database import Database
from bitrot.infrastructure.persistence.models import ReleaseModel


class FakeDiscogsClient(IDiscogsClient):
    """Scriptable in-memory Discogs client that records every call.

    - ``search_handler(artist, title, year)`` decides search responses (default:
      ``search_results`` for every call)
    - ``releases`` maps Discogs ids to full release documents
    - ``release_error`` is raised by get_release when set
    """

    def __init__(self) -> None:
        self.search_results: list[dict[str, Any]] = []
        self.search_handler: Callable[[str, str, int | None], dict[str, Any]] | None = None
        self.releases: dict[int, dict[str, Any]] = {}
        self.masters: dict[int, dict[str, Any]] = {}
        self.release_error: Exception | None = None
        self.calls: list[tuple[Any, ...]] = []

    @property
    def search_calls(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == "search"]

    async def search_releases(
        self,
        artist: str,
        title: str,
        year: int | None = None,
        label: str | None = None,
        catalog_number: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("search", artist, title, year))
        if self.search_handler is not None:
            return self.search_handler(artist, title, year)
        return {
            "results": list(self.search_results),
            "pagination": {"items": len(self.search_results)},
        }

    async def get_release(self, release_id: int) -> dict[str, Any]:
        self.calls.append(("release", release_id))
        if self.release_error is not None:
            raise self.release_error
        return self.releases.get(release_id, {"id": release_id})

    async def get_master(self, master_id: int) -> dict[str, Any]:
        self.calls.append(("master", master_id))
        return self.masters.get(master_id, {"id": master_id})


@pytest.fixture
def discogs_settings() -> DiscogsSettings:
    """Discogs settings with a token and no waiting anywhere."""
    return DiscogsSettings(
        token="test-token",
        user_agent="bitrot-tests/1.0",
        base_url="https://api.discogs.test",
        min_interval_seconds=0,
        rate_limit_retry_seconds=0,
        temporary_retry_seconds=0,
    )


@pytest.fixture
def settings(tmp_path: Any, discogs_settings: DiscogsSettings) -> Settings:
    """Settings pointing at a per-test SQLite file."""
    return Settings(
        log_level="DEBUG",
        discogs=discogs_settings,
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path}/bitrot-test.db"),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    """Database with all tables created."""
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def persister(db: Database) -> EnrichmentPersister:
    return EnrichmentPersister(db)


@pytest.fixture
def fake_discogs() -> FakeDiscogsClient:
    return FakeDiscogsClient()


@pytest.fixture
def make_release(db: Database) -> Callable[..., Any]:
    """Factory inserting a release row and returning it as a domain entity."""

    async def _make(
        artist_name: str = "Boards of Canada",
        title: str = "Geogaddi",
        release_date: date | None = date(2002, 2, 18),
        **columns: Any,
    ) -> Release:
        model = ReleaseModel(
            artist_name=artist_name, title=title, release_date=release_date, **columns
        )
        async with db.session_scope() as session:
            session.add(model)
            await session.flush()
            release_id = model.id
        return await load_release(db, release_id)

    return _make


async def load_release(db: Database, release_id: str) -> Release:
    """Re-read a release through the repository."""
    from bitrot.infrastructure.persistence.repositories import ReleaseRepository

    async with db.session_scope() as session:
        release = await ReleaseRepository(session).get_by_id(release_id)
    assert release is not None
    return release


@pytest.fixture
def reload_release(db: Database) -> Callable[[str], Any]:
    async def _reload(release_id: str) -> Release:
        return await load_release(db, release_id)

    return _reload


@pytest.fixture
def list_attempts(db: Database) -> Callable[[str], Any]:
    """All match attempts of a release, newest first."""
    from bitrot.infrastructure.persistence.repositories import MatchAttemptRepository

    async def _list(release_id: str) -> list[Any]:
        async with db.session_scope() as session:
            return await MatchAttemptRepository(session).list_for_release(release_id)

    return _list


@pytest.fixture
def list_tags(db: Database) -> Callable[[str], Any]:
    """(name, source) pairs attached to a release."""
    from bitrot.infrastructure.persistence.repositories import TagRepository

    async def _list(release_id: str) -> list[tuple[str, str]]:
        async with db.session_scope() as session:
            return await TagRepository(session).list_for_release(release_id)

    return _list
