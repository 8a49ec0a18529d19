"""Observability infrastructure for structured logging."""

from bitrot.infrastructure.observability.log_messages import LogMessages
from bitrot.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)
from bitrot.infrastructure.observability.middleware import RequestLoggingMiddleware

__all__ = [
    "LogMessages",
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_correlation_id",
    "set_correlation_id",
]
