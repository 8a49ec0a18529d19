"""Persistence layer."""

from .database import Database
from .models import Base
from .repositories import (
    DiscogsEntityRepository,
    MatchAttemptRepository,
    ReleaseRepository,
    TagRepository,
)

__all__ = [
    "Base",
    "Database",
    "DiscogsEntityRepository",
    "MatchAttemptRepository",
    "ReleaseRepository",
    "TagRepository",
]
