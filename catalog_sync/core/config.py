# catalog_sync/core/config.py

import os
from functools import lru_cache
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Credential vault (AES-256-GCM, key derived with sha256)
    ENCRYPTION_KEY: str = ""

    # Worker pool
    WORKER_CONCURRENCY: int = 5
    WORKER_POLL_INTERVAL: float = 5.0       # seconds between empty queue polls
    STALLED_JOB_MINUTES: int = 30           # PROCESSING longer than this is reset on startup

    # Source ERP API
    SOURCE_TIMEOUT: float = 30.0
    SOURCE_MAX_RETRIES: int = 3
    SOURCE_RETRY_DELAY_MS: int = 1000       # multiplied by the attempt number
    SOURCE_PAGE_DELAY_MS: int = 100         # pause between pages
    SOURCE_RATE_LIMIT_WAIT: int = 60        # seconds, used when 429 has no Retry-After
    SOURCE_ITEMS_PER_PAGE: int = 100

    # Destination API
    DESTINATION_TIMEOUT: float = 30.0
    USE_STANDIN_DESTINATION: bool = True    # persistence-backed destination instead of the remote one

    # Sync behaviour
    TRANSFORM_CACHE_TTL: int = 300          # seconds
    CONFIG_STALE_HOURS: float = 6.0
    SYNC_LOG_BATCH_SIZE: int = 50
    PRODUCT_BATCH_SIZE: int = 100
    STOCK_BATCH_SIZE: int = 100

    # Housekeeping
    JOB_RETENTION_DAYS: int = 30
    SYNC_LOG_RETENTION_DAYS: int = 14

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid re-reading the environment for every job"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
