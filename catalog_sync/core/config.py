# catalog_sync/core/config.py

import os
from functools import lru_cache
from typing import Tuple

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


def _parse_delays(value) -> Tuple[float, ...]:
    if value in (None, ""):
        return ()
    if isinstance(value, str):
        return tuple(float(part) for part in value.split(",") if part.strip())
    return tuple(float(part) for part in value)

class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./catalog_sync.db"
    DATABASE_ECHO: bool = False

    # Credential vault
    CREDENTIAL_ROOT_SECRET: str = ""
    CREDENTIAL_KDF_SALT: str = "catalog-sync-credential-vault"
    CREDENTIAL_KDF_N: int = 2 ** 15   # scrypt cost, must be a power of two

    # Sync engine
    SYNC_STALE_AFTER_HOURS: float = 25.0
    SYNC_RETRY_MAX_ATTEMPTS: int = 3
    SYNC_RETRY_DELAYS: str = "5,10"   # seconds between attempts, comma separated
    SYNC_IMPORT_BATCH_SIZE: int = 500
    SYNC_MAX_CONCURRENT: int = 4
    SYNC_MAX_RECORDED_ERRORS: int = 100

    # Scheduling
    SYNC_SCHEDULE_ENABLED: bool = False
    SYNC_SCHEDULE: str = "0 3 * * *"   # daily at 03:00
    SYNC_SCHEDULE_MODE: str = "incremental"
    SYNC_INVENTORY_SCHEDULE: str = "5 * * * *"   # hourly stock/price feeds, empty disables

    # Vendor I/O
    VENDOR_HTTP_TIMEOUT: float = 60.0
    FTP_TIMEOUT: float = 10.0

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    @property
    def retry_delays(self) -> Tuple[float, ...]:
        return _parse_delays(self.SYNC_RETRY_DELAYS)

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists(os.environ.get('ENV_FILE', '.env')) else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every run"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
