"""Shared fixtures: in-memory collaborators, cache backends and a deterministic assembler."""

import random

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from feedrank.services.feed.assembler import RecommendationAssembler
from feedrank.services.feed_cache import FeedCache
from feedrank.services.memory_cache import MemoryCache
from feedrank.services.memory_store import InMemoryContentStore, InMemoryLikeLog, InMemoryProfileStore
from feedrank.services.profile.service import TagProfileService
from tests.factories import NOW


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def content_store():
    return InMemoryContentStore()


@pytest.fixture
def like_log(content_store):
    return InMemoryLikeLog(content_store)


@pytest.fixture
def profile_store():
    return InMemoryProfileStore()


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def feed_cache(memory_cache):
    return FeedCache(memory_cache, ttl_seconds=300, timeout=1.0)


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
def profile_service(profile_store, like_log, content_store, feed_cache):
    return TagProfileService(profile_store, like_log, content_store, feed_cache)


@pytest.fixture
def assembler(content_store, like_log, profile_service, feed_cache):
    return RecommendationAssembler(
        content_store,
        like_log,
        profile_service=profile_service,
        feed_cache=feed_cache,
        rng=random.Random(7),
        clock=lambda: NOW,
        upstream_timeout=1.0,
    )
