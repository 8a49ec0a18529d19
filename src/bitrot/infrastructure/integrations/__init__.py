"""External service integrations."""

from bitrot.infrastructure.integrations.discogs_client import DiscogsClient

__all__ = ["DiscogsClient"]
