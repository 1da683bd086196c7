"""Feed client settings and configuration.

This module defines all configuration options for the UpDown feed client.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Feed client settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Hosted backend (PostgREST) connection
    backend_url: str = Field(default="http://localhost:54321", alias="SUPABASE_URL")
    backend_anon_key: str = Field(default="", alias="SUPABASE_ANON_KEY")
    backend_rest_path: str = Field(default="/rest/v1", alias="SUPABASE_REST_PATH")
    backend_http_timeout_seconds: float = Field(
        default=10.0,
        alias="BACKEND_HTTP_TIMEOUT_SECONDS",
    )

    # Feed reconciliation
    feed_freshness_seconds: float = Field(default=30.0, alias="FEED_FRESHNESS_SECONDS")
    feed_page_size: int = Field(default=10, alias="FEED_PAGE_SIZE")
    feed_load_more_delay_seconds: float = Field(
        default=0.4,
        alias="FEED_LOAD_MORE_DELAY_SECONDS",
    )

    # Bounded retry for recoverable reads
    read_retry_attempts: int = Field(default=3, alias="READ_RETRY_ATTEMPTS")
    read_retry_delay_seconds: float = Field(default=0.5, alias="READ_RETRY_DELAY_SECONDS")

    # Local persistent cache; in-process store when no redis URL is set
    feed_cache_redis_url: str | None = Field(default=None, alias="FEED_CACHE_REDIS_URL")
    feed_cache_key_prefix: str = Field(
        default="cached_social_feed_",
        alias="FEED_CACHE_KEY_PREFIX",
    )

    # Friends currently working out
    active_friends_poll_interval_seconds: float = Field(
        default=30.0,
        alias="ACTIVE_FRIENDS_POLL_INTERVAL_SECONDS",
    )
    active_session_max_age_hours: float = Field(
        default=12.0,
        alias="ACTIVE_SESSION_MAX_AGE_HOURS",
    )
    active_session_stale_minutes: float = Field(
        default=30.0,
        alias="ACTIVE_SESSION_STALE_MINUTES",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def rest_base_url(self) -> str:
        """Return the PostgREST base URL.

        Returns:
            Backend URL joined with the REST path, without a trailing slash
        """
        return self.backend_url.rstrip("/") + "/" + self.backend_rest_path.strip("/")


settings = Settings()
