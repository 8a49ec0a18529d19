"""Discogs HTTP client implementation with rate limiting and failure classification."""

import asyncio
import json
import logging
from typing import Any, cast

import httpx

from bitrot.config.settings import DiscogsSettings
from bitrot.domain.exceptions import DiscogsApiError, DiscogsErrorKind
from bitrot.domain.ports import IDiscogsClient
from bitrot.infrastructure.observability.log_messages import LogMessages
from bitrot.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

TEMPORARY_STATUS_CODES = frozenset({502, 503, 504})
BODY_SNIPPET_LENGTH = 300


def is_likely_html(text: str | None) -> bool:
    """Detect HTML bodies (maintenance pages, Cloudflare interstitials)."""
    if not text:
        return False
    lowered = text.strip().lower()
    return lowered.startswith("<!doctype") or lowered.startswith("<html") or "<head" in lowered


class DiscogsClient(IDiscogsClient):
    """HTTP client for the Discogs database API.

    Every failure surfaces as ``DiscogsApiError`` with a ``kind``:
    CONFIG (no token), TEMPORARY (429 after retry, 5xx gateway errors, HTML or
    non-JSON bodies, network errors) or FATAL (any other non-2xx).
    """

    # Hey future me, the rate limiter is INJECTED, not created per client. All clients in the
    # process must share one limiter or the 1.3s spacing means nothing. lifespan() builds one
    # limiter and hands it to the one client that lives on app.state. Tests pass their own
    # limiter (interval 0) and an httpx.MockTransport so nothing leaves the box.
    def __init__(
        self,
        settings: DiscogsSettings,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize Discogs client.

        Args:
            settings: Discogs configuration settings
            rate_limiter: Shared throttle gate (created from settings if omitted)
            transport: Optional httpx transport (tests)
        """
        self.settings = settings
        self._rate_limiter = rate_limiter or RateLimiter.for_discogs(
            min_interval_seconds=settings.min_interval_seconds,
            rate_limit_cooldown_seconds=settings.rate_limit_retry_seconds,
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Authorization": f"Discogs token={self.settings.token.strip()}",
                    "Accept": "application/json",
                },
                timeout=self.settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DiscogsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Yo, EVERY outbound request goes through here, including the 429 retry. That keeps the
    # spacing guarantee simple: no request leaves this process without passing the gate.
    async def _send(self, path: str, params: dict[str, Any] | None) -> httpx.Response:
        await self._rate_limiter.acquire()
        client = await self._get_client()
        try:
            return await client.get(path, params=params)
        except httpx.TransportError as e:
            # Connection resets and timeouts are as transient as a 503.
            raise DiscogsApiError.temporary(
                f"Discogs request failed: {e.__class__.__name__}: {e}"
            ) from e

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Make one classified request (with the single 429 retry).

        Raises:
            DiscogsApiError: classified failure
        """
        if not self.settings.is_configured:
            logger.error(LogMessages.service_not_configured("Discogs", "DISCOGS_TOKEN"))
            raise DiscogsApiError.config(
                "Discogs token not configured (DISCOGS_TOKEN missing)"
            )

        response = await self._send(path, params)

        if response.status_code == 429:
            first_snippet = response.text[:BODY_SNIPPET_LENGTH]
            await self._rate_limiter.wait_after_rate_limit()
            response = await self._send(path, params)
            if response.status_code == 429:
                raise DiscogsApiError.temporary(
                    "Discogs rate limited (429) after retry",
                    429,
                    response.text[:BODY_SNIPPET_LENGTH] or first_snippet,
                )

        text = response.text
        snippet = text[:BODY_SNIPPET_LENGTH]

        if response.status_code in TEMPORARY_STATUS_CODES:
            raise DiscogsApiError.temporary(
                f"Discogs upstream error {response.status_code}",
                response.status_code,
                snippet,
            )

        if not response.is_success:
            if is_likely_html(text):
                raise DiscogsApiError.temporary(
                    f"Discogs returned HTML error {response.status_code}",
                    response.status_code,
                    snippet,
                )
            logger.error(
                LogMessages.upstream_request_failed(
                    "Discogs", snippet or response.reason_phrase, response.status_code, path
                )
            )
            raise DiscogsApiError.fatal(
                f"Discogs API error {response.status_code}: {snippet}",
                response.status_code,
                snippet,
            )

        # Hey future me - Discogs sometimes answers 200 with an HTML maintenance page during
        # incidents. If we parsed that as "no results" we'd write a permanent false negative!
        if is_likely_html(text):
            raise DiscogsApiError.temporary(
                "Discogs returned HTML instead of JSON", response.status_code, snippet
            )

        try:
            return cast(dict[str, Any], json.loads(text))
        except ValueError as e:
            raise DiscogsApiError.temporary(
                "Discogs returned non-JSON response", response.status_code, snippet
            ) from e

    async def _request_with_retry(
        self, operation: str, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Run a request, retrying a TEMPORARY failure exactly once."""
        try:
            return await self._request(path, params)
        except DiscogsApiError as err:
            if err.kind is not DiscogsErrorKind.TEMPORARY:
                raise
            logger.warning(
                LogMessages.upstream_temporary_error(
                    "Discogs", f"{operation}: {err.message}", err.status, will_retry=True
                )
            )
            await asyncio.sleep(self.settings.temporary_retry_seconds)
            return await self._request(path, params)

    async def search_releases(
        self,
        artist: str,
        title: str,
        year: int | None = None,
        label: str | None = None,
        catalog_number: str | None = None,
    ) -> dict[str, Any]:
        """
        Search Discogs releases by structured fields.

        Args:
            artist: Artist name
            title: Release title
            year: Optional release year
            label: Optional label name
            catalog_number: Optional catalog number

        Returns:
            Raw search response with "results" and "pagination"

        Raises:
            DiscogsApiError: classified failure
        """
        a = (artist or "").strip()
        t = (title or "").strip()

        params: dict[str, Any] = {"type": "release"}
        if a:
            params["artist"] = a
        if t:
            params["release_title"] = t
        # Combined free-text fallback - helps when Discogs splits credits differently
        combined = " - ".join(part for part in (a, t) if part)
        if combined:
            params["q"] = combined
        if label:
            params["label"] = str(label)
        if catalog_number:
            params["catno"] = str(catalog_number)
        if year:
            params["year"] = str(year)

        return await self._request_with_retry("search", "/database/search", params)

    async def get_release(self, release_id: int) -> dict[str, Any]:
        """
        Fetch a full release document.

        Raises:
            DiscogsApiError: classified failure
        """
        return await self._request_with_retry("get_release", f"/releases/{release_id}")

    async def get_master(self, master_id: int) -> dict[str, Any]:
        """
        Fetch a full master-release document.

        Raises:
            DiscogsApiError: classified failure
        """
        return await self._request_with_retry("get_master", f"/masters/{master_id}")


__all__ = ["DiscogsClient", "is_likely_html"]
