"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import Optional

from pydantic_settings import BaseSettings

from order_sync.config.constants import (
    CACHE_FRESHNESS_SECONDS,
    DEFAULT_BASE_URL,
    DEFAULT_POLL_INTERVAL_SECONDS,
    MAX_PAGES,
    ORDER_PAGE_SIZE,
)


class Settings(BaseSettings):
    """Application configuration."""

    # Provider credentials
    credentials_path: str = "config/credentials.json"
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    sync_all_credentials: bool = True

    # HTTP client
    http_timeout_seconds: float = 30.0
    http_retries: int = 2

    # Pagination
    page_size: int = ORDER_PAGE_SIZE
    max_pages: int = MAX_PAGES
    page_delay_seconds: float = 0.0

    # Cache and scheduling
    database_url: str = "sqlite+aiosqlite:///./order_cache.db"
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    cache_freshness_seconds: float = CACHE_FRESHNESS_SECONDS
    warning_status_path: str = "config/warning_statuses.json"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 9000
    log_level: str = "INFO"
    environment: str = "development"

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
