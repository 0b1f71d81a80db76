# catalog_sync/core/logging_config.py
"""
Centralized logging configuration for the sync worker.

Keeps the sync engine's own loggers at the configured level and quiets the
HTTP and database libraries, which are very chatty at INFO.
"""

import logging
import os
from typing import Any, Dict, Optional


def configure_logging(level: Optional[str] = None):
    """
    Configure logging for the worker process.

    Sets appropriate log levels for different modules:
    - catalog_sync code: INFO (or whatever LOG_LEVEL says)
    - HTTP clients (httpx, httpcore): WARNING only
    - Database and scheduler: WARNING only
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
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

    # Keep app loggers at configured level
    logging.getLogger("catalog_sync").setLevel(getattr(logging, log_level, logging.INFO))
    logging.getLogger("__main__").setLevel(getattr(logging, log_level, logging.INFO))

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")


class JobLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the job, tenant and sync type it belongs to."""

    def process(self, msg: Any, kwargs: Dict[str, Any]):
        extra = self.extra or {}
        prefix = f"[job={extra.get('job_id')} tenant={extra.get('tenant_id')} type={extra.get('sync_type')}]"
        kwargs.setdefault("extra", {}).update(extra)
        return f"{prefix} {msg}", kwargs


def get_job_logger(job_id: Any, tenant_id: Any, sync_type: Any, name: str = "catalog_sync.job") -> JobLoggerAdapter:
    sync_type = getattr(sync_type, "value", sync_type)
    return JobLoggerAdapter(
        logging.getLogger(name),
        {"job_id": job_id, "tenant_id": tenant_id, "sync_type": sync_type},
    )
