# app/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Security - used to encrypt production access tokens at rest
    ENCRYPTION_KEY: str = ""

    # Shopify Admin API
    SHOPIFY_API_VERSION: str = "2025-04"
    SHOPIFY_REQUEST_TIMEOUT: float = 30.0
    SHOPIFY_MAX_RETRIES: int = 3

    # Staging store (the shop of record the app is installed on)
    SHOPIFY_STAGING_STORE_DOMAIN: Optional[str] = None
    SHOPIFY_STAGING_ACCESS_TOKEN: Optional[str] = None

    # Sync behaviour
    SYNC_TIMEOUT_SECONDS: float = 90.0
    FILE_POLL_ATTEMPTS: int = 10
    FILE_POLL_INTERVAL_SECONDS: float = 2.0

    # Scheduler
    SYNC_SCHEDULER_ENABLED: bool = True
    SCHEDULER_MISFIRE_GRACE_SECONDS: int = 3600

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()
