import pytest

from catalog_sync.transformers.cache import TenantCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_loader_runs_once_within_ttl():
    clock = FakeClock()
    cache = TenantCache(ttl=300, clock=clock)
    calls = []

    async def loader():
        calls.append(clock.now)
        return {"loaded": len(calls)}

    first = await cache.get("tenant-1", loader)
    clock.now += 299
    second = await cache.get("tenant-1", loader)

    assert first is second
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TenantCache(ttl=300, clock=clock)
    calls = []

    async def loader():
        calls.append(clock.now)
        return len(calls)

    await cache.get("tenant-1", loader)
    clock.now += 300

    assert "tenant-1" not in cache
    assert await cache.get("tenant-1", loader) == 2


@pytest.mark.asyncio
async def test_invalidate_and_tenant_isolation():
    cache = TenantCache(ttl=300, clock=FakeClock())
    cache.put("tenant-1", "one")
    cache.put("tenant-2", "two")

    cache.invalidate("tenant-1")

    assert cache.peek("tenant-1") is None
    assert cache.peek("tenant-2") == "two"

    cache.clear()
    assert "tenant-2" not in cache
