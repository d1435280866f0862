# catalog_sync/core/logging_config.py
"""
Centralized logging configuration for the sync engine.

Quiets verbose libraries while keeping sync logs visible.
"""

import logging
from typing import Optional

from catalog_sync.core.config import get_settings


def configure_logging(level: Optional[str] = None):
    """
    Configure logging for the application.

    - catalog_sync code: INFO (or LOG_LEVEL)
    - HTTP clients, database, scheduler: WARNING only
    """
    log_level = (level or get_settings().LOG_LEVEL or "INFO").upper()
    resolved = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=resolved,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    # Quiet noisy HTTP client loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # Quiet database loggers
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.getLogger("catalog_sync").setLevel(resolved)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")
