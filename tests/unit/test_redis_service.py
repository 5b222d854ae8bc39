"""RedisService and MemoryCache backend tests"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from feedrank.services.memory_cache import MemoryCache
from feedrank.services.redis_service import RedisService


class BrokenRedis:
    """Client whose every call fails like a dropped connection."""

    def __init__(self):
        self.calls = 0

    async def _fail(self, *args, **kwargs):
        self.calls += 1
        raise RedisConnectionError("connection refused")

    get = set = setex = delete = exists = ping = _fail


@pytest.mark.asyncio
async def test_set_get_delete(fake_redis):
    cache = RedisService(client=fake_redis)

    assert await cache.set("feed:user:1", "payload", ttl=60)
    assert await cache.get("feed:user:1") == "payload"
    assert await cache.exists("feed:user:1")
    assert 0 < await fake_redis.ttl("feed:user:1") <= 60

    assert await cache.delete("feed:user:1")
    assert await cache.get("feed:user:1") is None


@pytest.mark.asyncio
async def test_delete_by_pattern_only_touches_matches(fake_redis):
    cache = RedisService(client=fake_redis)
    for page in range(3):
        await cache.set(f"feed:user:1:{page}:20:all:ranked", "x")
    await cache.set("feed:user:2:1:20:all:ranked", "x")

    deleted = await cache.delete_by_pattern("feed:user:1:*")

    assert deleted == 3
    assert await cache.get("feed:user:2:1:20:all:ranked") == "x"


@pytest.mark.asyncio
async def test_failures_fall_through_and_back_off():
    client = BrokenRedis()
    cache = RedisService(client=client, retry_interval=60)

    assert await cache.get("k") is None
    assert not cache.is_available()
    assert client.calls == 1

    # inside the retry interval calls are skipped entirely
    assert await cache.set("k", "v") is False
    assert await cache.delete_by_pattern("k*") == 0
    assert client.calls == 1


@pytest.mark.asyncio
async def test_retries_after_interval():
    client = BrokenRedis()
    cache = RedisService(client=client, retry_interval=0)

    await cache.get("k")
    assert cache.is_available()
    await cache.get("k")

    assert client.calls == 2


@pytest.mark.asyncio
async def test_unconfigured_redis_is_unavailable():
    cache = RedisService(url="")

    assert not cache.is_available()
    assert await cache.get("k") is None
    assert await cache.set("k", "v") is False


@pytest.mark.asyncio
async def test_memory_cache_expires_entries():
    clock = [0.0]
    cache = MemoryCache(timer=lambda: clock[0])

    await cache.set("feed:anon:1:20:all:ranked", "page", ttl=300)
    assert await cache.get("feed:anon:1:20:all:ranked") == "page"

    clock[0] = 301.0
    assert await cache.get("feed:anon:1:20:all:ranked") is None


@pytest.mark.asyncio
async def test_memory_cache_delete_by_pattern():
    cache = MemoryCache()
    await cache.set("feed:user:1", "a")
    await cache.set("feed:user:1:1:20:all:ranked", "b")
    await cache.set("feed:user:10:1:20:all:ranked", "c")

    assert await cache.delete_by_pattern("feed:user:1:*") == 1
    assert await cache.exists("feed:user:1")
    assert await cache.exists("feed:user:10:1:20:all:ranked")
