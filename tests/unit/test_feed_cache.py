"""FeedCache unit tests"""

import asyncio

import pytest

from feedrank.models.feed import FeedPage, FeedPost, Pagination
from feedrank.services.feed_cache import FeedCache
from feedrank.services.memory_cache import MemoryCache
from feedrank.services.redis_service import RedisService


def sample_page(*post_ids: str) -> FeedPage:
    posts = [FeedPost(id=pid, tags=["cats"], ranking_score=0.5) for pid in post_ids]
    return FeedPage(posts=posts, pagination=Pagination(limit=20, total_fetched=len(posts)))


class SlowBackend(MemoryCache):
    async def get(self, key):
        await asyncio.sleep(1)
        return await super().get(key)


def test_key_for_user_and_anonymous():
    assert FeedCache.key_for("42", 1, 20, ["Dogs", "cats"], "ranked") == "feed:user:42:1:20:cats,dogs:ranked"
    assert FeedCache.key_for(None, 2, 10) == "feed:anon:2:10:all:ranked"
    assert FeedCache.key_for("42", 1, 20, ["cats", "dogs"]) == FeedCache.key_for("42", 1, 20, ["dogs", "CATS"])


@pytest.mark.asyncio
async def test_set_then_get_returns_same_order(feed_cache):
    key = FeedCache.key_for("u1", 1, 20)
    await feed_cache.set(key, sample_page("p3", "p1", "p2"))

    page = await feed_cache.get(key)

    assert [p.id for p in page.posts] == ["p3", "p1", "p2"]
    assert page.cached is False


@pytest.mark.asyncio
async def test_miss_returns_none(feed_cache):
    assert await feed_cache.get("feed:user:nobody:1:20:all:ranked") is None


@pytest.mark.asyncio
async def test_invalidate_user_scopes_to_that_user(feed_cache):
    mine = FeedCache.key_for("u1", 1, 20)
    other = FeedCache.key_for("u10", 1, 20)
    await feed_cache.set(mine, sample_page("p1"))
    await feed_cache.set(FeedCache.key_for("u1", 2, 20, ["cats"]), sample_page("p2"))
    await feed_cache.set(other, sample_page("p3"))
    await feed_cache.set_preferred_tags("u1", [("cats", 2.0)])

    deleted = await feed_cache.invalidate_user("u1")

    assert deleted == 2
    assert await feed_cache.get(mine) is None
    assert await feed_cache.get(other) is not None
    assert await feed_cache.get_preferred_tags("u1") is None


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(memory_cache, feed_cache):
    key = FeedCache.key_for("u1", 1, 20)
    await memory_cache.set(key, "{not json")

    assert await feed_cache.get(key) is None


@pytest.mark.asyncio
async def test_timeout_is_a_miss():
    cache = FeedCache(SlowBackend(), timeout=0.01)
    key = FeedCache.key_for("u1", 1, 20)
    await cache.set(key, sample_page("p1"))

    assert await cache.get(key) is None


@pytest.mark.asyncio
async def test_preferred_tags_round_trip(feed_cache):
    await feed_cache.set_preferred_tags("u1", [("cats", 3.0), ("dogs", 1.5)])

    assert await feed_cache.get_preferred_tags("u1") == [("cats", 3.0), ("dogs", 1.5)]


@pytest.mark.asyncio
async def test_redis_backed_invalidation(fake_redis):
    cache = FeedCache(RedisService(client=fake_redis), ttl_seconds=300)
    await cache.set(FeedCache.key_for("u1", 1, 20), sample_page("p1"))
    await cache.set(FeedCache.key_for("u1", 1, 20, sort_by="recent"), sample_page("p1"))

    assert await fake_redis.ttl(FeedCache.key_for("u1", 1, 20)) > 0
    assert await cache.invalidate(FeedCache.user_prefix("u1")) == 2
    assert await fake_redis.keys("feed:*") == []


@pytest.mark.asyncio
async def test_unavailable_backend_falls_through():
    cache = FeedCache(RedisService(url=""))

    assert not cache.is_available()
    assert await cache.set("feed:anon:1:20:all:ranked", sample_page("p1")) is False
    assert await cache.get("feed:anon:1:20:all:ranked") is None
    assert await cache.invalidate("feed:anon") == 0


@pytest.mark.asyncio
async def test_misconfigured_redis_url_falls_through():
    cache = FeedCache(RedisService(url="notascheme://host"))

    assert await cache.set("feed:anon:1:20:all:ranked", sample_page("p1")) is False
    assert await cache.get("feed:anon:1:20:all:ranked") is None


class ExplodingBackend(MemoryCache):
    async def get(self, key):
        raise RuntimeError("serializer blew up")


@pytest.mark.asyncio
async def test_unexpected_backend_error_is_a_miss():
    cache = FeedCache(ExplodingBackend())

    assert await cache.get(FeedCache.key_for("u1", 1, 20)) is None
    assert await cache.get_preferred_tags("u1") is None


def test_user_ids_are_escaped_in_keys():
    assert FeedCache.user_prefix("*") == "feed:user:%2A"
    assert FeedCache.user_prefix("u1:2") == "feed:user:u1%3A2"


@pytest.mark.asyncio
async def test_wildcard_user_cannot_invalidate_others(feed_cache):
    other = FeedCache.key_for("u1", 1, 20)
    nested = FeedCache.key_for("u1:2", 1, 20)
    await feed_cache.set(other, sample_page("p1"))
    await feed_cache.set(nested, sample_page("p2"))

    assert await feed_cache.invalidate_user("*") == 0
    assert await feed_cache.invalidate_user("u1") == 1
    assert await feed_cache.get(nested) is not None
