"""Background workers."""

from bitrot.application.workers.discogs_queue import DiscogsJobQueue

__all__ = ["DiscogsJobQueue"]
