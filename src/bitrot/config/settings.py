"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscogsSettings(BaseSettings):
    """Discogs API configuration.

    Hey future me - the token is a personal access token from
    https://www.discogs.com/settings/developers. Without it every call fails
    with a CONFIG error (not "no results"!). The User-Agent is REQUIRED by
    Discogs, requests without one get a 403.
    """

    model_config = SettingsConfigDict(
        env_prefix="DISCOGS_", env_file=".env", extra="ignore"
    )

    token: str = Field(default="", description="Discogs personal access token")
    user_agent: str = Field(default="bitrot/0.1", description="Identifying User-Agent")
    base_url: str = Field(default="https://api.discogs.com")
    timeout_seconds: float = Field(default=30.0, gt=0)

    # Throttle and retry timings. Discogs allows 60 authenticated req/min,
    # 1.3s spacing keeps us under that with some slack.
    min_interval_seconds: float = Field(default=1.3, ge=0)
    rate_limit_retry_seconds: float = Field(default=8.0, ge=0)
    temporary_retry_seconds: float = Field(default=6.0, ge=0)

    queue_concurrency: int = Field(default=2, ge=1)
    cache_master_documents: bool = Field(
        default=False,
        description="Also fetch and cache the master document after hydration",
    )

    @property
    def is_configured(self) -> bool:
        """Check whether a Discogs token is available."""
        return bool(self.token.strip())


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_", env_file=".env", extra="ignore"
    )

    url: str = Field(default="sqlite+aiosqlite:///./data/bitrot.db")
    echo: bool = False
    pool_pre_ping: bool = True
    # Schema migrations live outside this service; local SQLite setups create tables on start
    auto_create_tables: bool = True
    # PostgreSQL only
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore"
    )

    log_json_format: bool = False


class ApiSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_", env_file=".env", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8765


class Settings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "bitrot"
    log_level: str = "INFO"

    discogs: DiscogsSettings = Field(default_factory=DiscogsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    def _get_sqlite_db_path(self) -> Path | None:
        """Return the SQLite database file path, or None for other backends."""
        url = self.database.url
        if not url.startswith("sqlite") or ":memory:" in url:
            return None
        _, _, path = url.partition(":///")
        return Path(path) if path else None


# Hey future me - cached so every Depends(get_settings) gets the SAME object.
# Tests that need different values build Settings(...) directly instead.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
