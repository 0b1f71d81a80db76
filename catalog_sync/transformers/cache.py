"""Per-tenant read-through cache with a fixed TTL."""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TenantCache:
    """
    Values keyed by tenant id, loaded on first use and dropped after `ttl`
    seconds or on invalidate()/clear(). One instance per orchestrator run;
    never shared between concurrently running jobs.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def peek(self, tenant_id: str) -> Optional[Any]:
        entry = self._entries.get(tenant_id)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[tenant_id]
            return None
        return value

    def put(self, tenant_id: str, value: Any) -> None:
        self._entries[tenant_id] = (self._clock(), value)

    async def get(self, tenant_id: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        value = self.peek(tenant_id)
        if value is None:
            logger.debug(f"Loading cached config for tenant {tenant_id}")
            value = await loader()
            self.put(tenant_id, value)
        return value

    def invalidate(self, tenant_id: str) -> None:
        self._entries.pop(tenant_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, tenant_id: str) -> bool:
        return self.peek(tenant_id) is not None
