"""Tests for the release ingestion and detail endpoints."""

from typing import Any

import httpx

LOOKUP_PAYLOAD = {
    "artist": "Burial",
    "title": "Untrue",
    "platform": "bandcamp",
    "platform_release_id": "burial-untrue",
    "url": "https://burial.bandcamp.com/album/untrue",
    "release_date": "2007-11-05T00:00:00Z",
    "tags": ["dubstep", None, ""],
    "tracks": [
        {"title": "Archangel", "duration": 238.6},
        {"title": None, "duration": 10},
    ],
    "price_label": "£8",
    "is_free": False,
}


class TestReleaseLookup:
    """Test POST /release/lookup."""

    async def test_lookup_creates_release(
        self, client: httpx.AsyncClient, drain: Any
    ) -> None:
        """Test that a submission is stored and readable."""
        response = await client.post("/release/lookup", json=LOOKUP_PAYLOAD)

        assert response.status_code == 200
        release_id = response.json()["release_id"]

        detail = await client.get(f"/release/{release_id}")
        assert detail.status_code == 200
        body = detail.json()
        assert body["artist_name"] == "Burial"
        assert body["release_date"] == "2007-11-05"
        assert body["url"] == "https://burial.bandcamp.com/album/untrue"
        assert body["tags"] == ["dubstep"]
        assert body["tracks"] == [
            {"title": "Archangel", "duration": 238, "spotify_track_id": None}
        ]
        await drain()

    async def test_lookup_is_idempotent_per_source(self, client: httpx.AsyncClient) -> None:
        """Test that the same source returns the same release id."""
        first = await client.post("/release/lookup", json=LOOKUP_PAYLOAD)
        second = await client.post("/release/lookup", json=LOOKUP_PAYLOAD)

        assert first.json()["release_id"] == second.json()["release_id"]

    async def test_lookup_dispatches_a_match(
        self, client: httpx.AsyncClient, drain: Any, fake_discogs: Any
    ) -> None:
        """Test that ingestion schedules a Discogs match in the background."""
        response = await client.post("/release/lookup", json=LOOKUP_PAYLOAD)
        await drain()

        assert fake_discogs.search_calls[0] == ("search", "Burial", "Untrue", 2007)
        status = await client.get(
            "/discogs/status", params={"ids": response.json()["release_id"]}
        )
        assert status.json()[response.json()["release_id"]]["status"] == "rejected"

    async def test_missing_fields_are_rejected(self, client: httpx.AsyncClient) -> None:
        """Test that an incomplete submission is a 422 naming the fields."""
        payload = {**LOOKUP_PAYLOAD, "artist": "", "platform_release_id": None}

        response = await client.post("/release/lookup", json=payload)

        assert response.status_code == 422
        assert "artist" in response.json()["detail"]
        assert "platform_release_id" in response.json()["detail"]

    async def test_invalid_date(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/release/lookup", json={**LOOKUP_PAYLOAD, "release_date": "last tuesday"}
        )
        assert response.status_code == 422

    async def test_unknown_release_is_404(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/release/does-not-exist")
        assert response.status_code == 404

    async def test_correlation_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        """Test that the middleware returns the caller's correlation id."""
        response = await client.get("/health", headers={"X-Correlation-ID": "ext-42"})

        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == "ext-42"
