"""Configuration module for Bitrot."""

from .settings import (
    ApiSettings,
    DatabaseSettings,
    DiscogsSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "ApiSettings",
    "DatabaseSettings",
    "DiscogsSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
