"""Domain exceptions."""

from enum import Enum
from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Always raise a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    # Yo, entity_type and entity_id are kept separately so the exception handler can log
    # them structured. Release "abc" not found -> 404 in the API layer.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input or a call contract is invalid.

    Example: an ingestion payload without artist/title, or a release handed
    to the matcher without an id.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)
    """

    pass


class ExternalServiceError(DomainException):
    """External service returned an error.

    HTTP Status: 502 (Bad Gateway)
    """

    pass


class DiscogsErrorKind(str, Enum):
    """How a Discogs failure must be treated by callers.

    Hey future me - this is THE decision table of the enrichment subsystem:
    - CONFIG: no token. Never retried, never persisted as "not found".
    - TEMPORARY: 429 after retry, 502/503/504, HTML or non-JSON bodies.
      Retried once at the call site, then returned as a NON-persisted rejection
      so the 1h cooldown can't lock in a false "not found".
    - FATAL: any other non-2xx. Not retried, surfaced to the caller.
    """

    CONFIG = "config"
    TEMPORARY = "temporary"
    FATAL = "fatal"


class DiscogsApiError(ExternalServiceError):
    """A classified failure of a Discogs API call.

    Callers branch on ``kind`` instead of on exception subclasses.
    """

    def __init__(
        self,
        kind: DiscogsErrorKind,
        message: str,
        status: int | None = None,
        body_snippet: str = "",
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.body_snippet = body_snippet

    @classmethod
    def config(cls, message: str) -> "DiscogsApiError":
        return cls(DiscogsErrorKind.CONFIG, message)

    @classmethod
    def temporary(
        cls, message: str, status: int | None = None, body_snippet: str = ""
    ) -> "DiscogsApiError":
        return cls(DiscogsErrorKind.TEMPORARY, message, status, body_snippet)

    @classmethod
    def fatal(
        cls, message: str, status: int | None = None, body_snippet: str = ""
    ) -> "DiscogsApiError":
        return cls(DiscogsErrorKind.FATAL, message, status, body_snippet)

    @property
    def is_temporary(self) -> bool:
        return self.kind is DiscogsErrorKind.TEMPORARY


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "ValidationException",
    "ConfigurationError",
    "ExternalServiceError",
    "DiscogsErrorKind",
    "DiscogsApiError",
]
