"""Serialized min-interval rate limiter for external API calls.

Hey future me - this is THE gate every Discogs request passes through!

WHY A GATE AND NOT A TOKEN BUCKET?
- Discogs counts requests per minute and punishes bursts with 429s
- We run up to 2 matching jobs in parallel, each firing several searches
- A per-caller limiter would let both jobs fire back-to-back
- So: ONE limiter instance, injected into the client, ONE lock, and a
  "last call" timestamp. Callers queue on the lock in arrival order.

ALGORITHM:
- Take the lock
- If less than min_interval passed since the last call: sleep the remainder
  (still holding the lock, so nobody sneaks in)
- Record "now" as the last call, release the lock

USAGE:
    limiter = RateLimiter.for_discogs(min_interval_seconds=1.3)

    async with limiter:
        response = await client.get(url)

    # On 429:
    await limiter.wait_after_rate_limit()

State is in-memory only. A process restart resets the history, which is fine.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    Hey future me - the defaults are the Discogs ones. 1.3s spacing is a bit
    safer than the documented 60 req/min, and 8s after a 429 usually clears it.
    """

    min_interval_seconds: float = 1.3
    rate_limit_cooldown_seconds: float = 8.0


@dataclass
class RateLimiter:
    """Min-interval rate limiter shared by all callers of one API.

    Attributes:
        config: Rate limiter configuration
        _last_call: monotonic time of the last admitted call (0 = never)
        _lock: serializes admission
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _last_call: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _admitted: int = field(default=0, init=False)

    @classmethod
    def for_discogs(
        cls,
        min_interval_seconds: float = 1.3,
        rate_limit_cooldown_seconds: float = 8.0,
    ) -> "RateLimiter":
        """Create the limiter for the Discogs API."""
        return cls(
            config=RateLimiterConfig(
                min_interval_seconds=min_interval_seconds,
                rate_limit_cooldown_seconds=rate_limit_cooldown_seconds,
            ),
            name="discogs",
        )

    async def acquire(self) -> None:
        """Wait until this caller may send its request.

        Hey future me - we sleep INSIDE the lock on purpose. Releasing it while
        waiting would let a second caller compute the same "wait" and both
        would fire at the same instant.
        """
        async with self._lock:
            if self._last_call:
                elapsed = time.monotonic() - self._last_call
                wait_time = self.config.min_interval_seconds - elapsed
                if wait_time > 0:
                    logger.debug(
                        "RateLimiter[%s]: waiting %.2fs before next call",
                        self.name,
                        wait_time,
                    )
                    await asyncio.sleep(wait_time)
            self._last_call = time.monotonic()
            self._admitted += 1

    async def wait_after_rate_limit(self) -> float:
        """Sleep the fixed cooldown after a 429.

        Only the caller that got the 429 waits. Its retry goes through
        acquire() again like any other call.

        Returns:
            The wait time used
        """
        wait_time = self.config.rate_limit_cooldown_seconds
        logger.warning(
            "RateLimiter[%s]: 429 Rate Limited! Waiting %.1fs before retry",
            self.name,
            wait_time,
        )
        await asyncio.sleep(wait_time)
        return wait_time

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        pass

    @property
    def admitted_calls(self) -> int:
        """Number of calls admitted so far (for debugging/tests)."""
        return self._admitted


__all__ = ["RateLimiter", "RateLimiterConfig"]
