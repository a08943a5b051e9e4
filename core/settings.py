"""
Service Configuration

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Engagement API configuration."""

    database_url: str = "sqlite+aiosqlite:///./engagement.db"
    environment: str = "development"
    log_level: str = "INFO"

    # Conditional-write retries for version conflicts
    max_retries: int = 10
    retry_backoff_ms: int = 5

    default_page_size: int = 20
    max_page_size: int = 100

    host: str = "0.0.0.0"
    port: int = 8002

    @classmethod
    def from_env(cls) -> "Settings":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            environment=os.getenv("ENVIRONMENT", cls.environment).lower(),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            max_retries=int(os.getenv("ENGAGEMENT_MAX_RETRIES", str(cls.max_retries))),
            retry_backoff_ms=int(
                os.getenv("ENGAGEMENT_RETRY_BACKOFF_MS", str(cls.retry_backoff_ms))
            ),
            default_page_size=int(
                os.getenv("DEFAULT_PAGE_SIZE", str(cls.default_page_size))
            ),
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", str(cls.max_page_size))),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
        )
