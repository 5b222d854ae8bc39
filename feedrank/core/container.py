import random

import redis.asyncio as redis
from loguru import logger

from feedrank.core.config import Settings
from feedrank.services.feed.assembler import RecommendationAssembler
from feedrank.services.feed_cache import CacheBackend, FeedCache
from feedrank.services.memory_cache import MemoryCache
from feedrank.services.memory_store import InMemoryContentStore, InMemoryLikeLog, InMemoryProfileStore
from feedrank.services.ports import ContentStore, LikeLog, ProfileStore
from feedrank.services.profile.service import TagProfileService
from feedrank.services.profile.store import RedisProfileStore
from feedrank.services.ranking.scoring import ScoringWeights
from feedrank.services.redis_service import RedisService


class FeedServices:
    """Everything a request handler needs, built once per application."""

    def __init__(
        self,
        content_store: ContentStore,
        like_log: LikeLog,
        profile_store: ProfileStore,
        cache_backend: CacheBackend | None,
        profiles: TagProfileService,
        assembler: RecommendationAssembler,
        feed_cache: FeedCache | None = None,
    ):
        self.content_store = content_store
        self.like_log = like_log
        self.profile_store = profile_store
        self.cache_backend = cache_backend
        self.feed_cache = feed_cache
        self.profiles = profiles
        self.assembler = assembler

    async def close(self) -> None:
        if self.cache_backend is not None:
            await self.cache_backend.close()
        if isinstance(self.profile_store, RedisProfileStore):
            await self.profile_store.close()


def build_cache_backend(settings: Settings) -> CacheBackend | None:
    if settings.CACHE_BACKEND == "none":
        logger.info("Feed caching disabled")
        return None
    if settings.CACHE_BACKEND == "memory":
        logger.info("Using in-process feed cache")
        return MemoryCache()
    logger.info("Using Redis feed cache")
    return RedisService(url=settings.REDIS_URL, retry_interval=settings.CACHE_RETRY_INTERVAL_SECONDS)


def build_services(
    settings: Settings,
    content_store: ContentStore | None = None,
    like_log: LikeLog | None = None,
    profile_store: ProfileStore | None = None,
    cache_backend: CacheBackend | None = None,
    rng: random.Random | None = None,
) -> FeedServices:
    """
    Wire the ranking engine from settings.

    Any collaborator passed in explicitly wins over the configured default,
    which is how tests and embedding applications plug in their own stores.
    """
    if content_store is None:
        content_store = InMemoryContentStore()
    if like_log is None:
        if not isinstance(content_store, InMemoryContentStore):
            raise ValueError("A like log must be supplied together with a custom content store")
        like_log = InMemoryLikeLog(content_store)

    if profile_store is None:
        if settings.PROFILE_STORE == "redis":
            client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                encoding="utf-8",
                max_connections=settings.REDIS_MAX_CONNECTIONS,
            )
            profile_store = RedisProfileStore(client)
        else:
            profile_store = InMemoryProfileStore()

    if cache_backend is None:
        cache_backend = build_cache_backend(settings)
    feed_cache = (
        FeedCache(cache_backend, ttl_seconds=settings.FEED_CACHE_TTL, timeout=settings.CACHE_TIMEOUT_SECONDS)
        if cache_backend is not None
        else None
    )

    profiles = TagProfileService(profile_store, like_log, content_store, feed_cache)
    assembler = RecommendationAssembler(
        content_store,
        like_log,
        profile_service=profiles,
        feed_cache=feed_cache,
        weights=ScoringWeights(
            personalization=settings.PERSONALIZATION_WEIGHT,
            recency=settings.RECENCY_WEIGHT,
            popularity=settings.POPULARITY_WEIGHT,
        ),
        rng=rng,
        upstream_timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
    )
    logger.info(
        f"Feed services ready (cache={settings.CACHE_BACKEND}, profiles={type(profile_store).__name__})"
    )
    return FeedServices(
        content_store=content_store,
        like_log=like_log,
        profile_store=profile_store,
        cache_backend=cache_backend,
        feed_cache=feed_cache,
        profiles=profiles,
        assembler=assembler,
    )
