"""Shared result contract and plumbing of the sync orchestrators."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.integrations.base import DestinationClient
from catalog_sync.services.source.client import SourceClient

logger = logging.getLogger(__name__)

# Max error messages kept in job metadata
MAX_REPORTED_ERRORS = 100


@dataclass
class SyncResult:
    items_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_failed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)

    def record_created(self) -> None:
        self.items_processed += 1
        self.items_created += 1

    def record_updated(self) -> None:
        self.items_processed += 1
        self.items_updated += 1

    def record_skipped(self) -> None:
        self.items_processed += 1

    def record_failed(self, message: str) -> None:
        self.items_processed += 1
        self.items_failed += 1
        self.add_error(message)

    def merge(self, other: "SyncResult") -> None:
        self.items_processed += other.items_processed
        self.items_created += other.items_created
        self.items_updated += other.items_updated
        self.items_failed += other.items_failed
        for error in other.errors:
            self.add_error(error)

    @property
    def success(self) -> bool:
        return self.items_failed == 0

    def counters(self) -> Dict[str, int]:
        return {
            "items_processed": self.items_processed,
            "items_created": self.items_created,
            "items_updated": self.items_updated,
            "items_failed": self.items_failed,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "itemsProcessed": self.items_processed,
            "itemsCreated": self.items_created,
            "itemsUpdated": self.items_updated,
            "itemsFailed": self.items_failed,
            "errors": list(self.errors),
            "durationMs": self.duration_ms,
        }
        if self.details:
            data["details"] = self.details
        return data


class BaseProcessor:
    """One orchestrator run for one tenant. Instances are not reused between jobs."""

    def __init__(
        self,
        db: AsyncSession,
        tenant_id: str,
        source: SourceClient,
        destination: DestinationClient,
        job_id: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.source = source
        self.destination = destination
        self.job_id = job_id
        self.options = options or {}
        self._started = 0.0

    def start_timer(self) -> None:
        self._started = time.monotonic()

    def finish(self, result: SyncResult) -> SyncResult:
        result.duration_ms = int((time.monotonic() - self._started) * 1000)
        return result
