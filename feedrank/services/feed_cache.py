import asyncio
import json
from urllib.parse import quote
from collections.abc import Awaitable, Sequence
from typing import Any, TypeVar

from loguru import logger
from pydantic import ValidationError

from feedrank.core.config import settings
from feedrank.core.constants import FEED_ANON_KEY, FEED_PAGE_KEY, FEED_USER_KEY, USER_LIKED_TAGS_KEY
from feedrank.models.feed import FeedPage
from feedrank.services.memory_cache import MemoryCache
from feedrank.services.redis_service import RedisService
from feedrank.utils import normalize_tags

CacheBackend = RedisService | MemoryCache
T = TypeVar("T")


def _key_safe(user_id: str) -> str:
    # percent-encode so ids cannot carry glob characters or extra key separators
    return quote(str(user_id), safe="")


class FeedCache:
    """
    Cache-aside storage for assembled feed pages and preferred tags.

    Purely an optimization: every method swallows backend failures and
    timeouts and reports a miss, so callers can always fall through to live
    computation.
    """

    def __init__(
        self,
        backend: CacheBackend,
        ttl_seconds: int | None = None,
        timeout: float | None = None,
    ):
        self.backend = backend
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.FEED_CACHE_TTL
        self.timeout = timeout if timeout is not None else settings.CACHE_TIMEOUT_SECONDS

    def is_available(self) -> bool:
        return self.backend.is_available()

    @staticmethod
    def user_prefix(user_id: str | None) -> str:
        return FEED_USER_KEY.format(user_id=_key_safe(user_id)) if user_id else FEED_ANON_KEY

    @staticmethod
    def key_for(
        user_id: str | None,
        page: int,
        limit: int,
        tags: Sequence[str] | None = None,
        sort_by: str = "ranked",
    ) -> str:
        """Build the feed page key. Tags are normalized and sorted so equivalent filters share an entry."""
        tag_part = ",".join(sorted(normalize_tags(tags))) or "all"
        return FEED_PAGE_KEY.format(
            prefix=FeedCache.user_prefix(user_id), page=page, limit=limit, tags=tag_part, sort=sort_by
        )

    async def _call(self, op: Awaitable[T], action: str, key: str, default: T) -> T:
        try:
            return await asyncio.wait_for(op, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Cache {action} timed out for '{key}'")
            return default
        except Exception as e:
            logger.warning(f"Cache {action} failed for '{key}', falling through: {e}")
            return default

    # Feed pages

    async def get(self, key: str) -> FeedPage | None:
        raw = await self._call(self.backend.get(key), "get", key, None)
        if not raw:
            logger.debug(f"Feed cache miss for '{key}'")
            return None
        try:
            page = FeedPage.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Failed to decode cached feed page '{key}': {e}")
            return None
        logger.debug(f"Feed cache hit for '{key}'")
        return page

    async def set(self, key: str, page: FeedPage, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        # stored pages are always the freshly computed form
        payload = page.model_copy(update={"cached": False}).model_dump_json()
        stored = await self._call(self.backend.set(key, payload, ttl), "set", key, False)
        if stored:
            logger.debug(f"Cached feed page '{key}' for {ttl}s")
        return stored

    async def invalidate(self, user_key_prefix: str) -> int:
        """Delete the canonical key and, best effort, every key below it."""
        deleted = 0
        if await self._call(self.backend.delete(user_key_prefix), "delete", user_key_prefix, False):
            deleted += 1
        pattern = f"{user_key_prefix}:*"
        deleted += await self._call(self.backend.delete_by_pattern(pattern), "delete", pattern, 0)
        logger.debug(f"Invalidated {deleted} feed cache key(s) under '{user_key_prefix}'")
        return deleted

    async def invalidate_user(self, user_id: str) -> int:
        deleted = await self.invalidate(self.user_prefix(user_id))
        await self.invalidate_preferred_tags(user_id)
        return deleted

    # Preferred tags

    async def get_preferred_tags(self, user_id: str) -> list[tuple[str, float]] | None:
        key = USER_LIKED_TAGS_KEY.format(user_id=_key_safe(user_id))
        raw = await self._call(self.backend.get(key), "get", key, None)
        if not raw:
            return None
        try:
            return [(str(tag), float(weight)) for tag, weight in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Failed to decode cached preferred tags for user {user_id}: {e}")
            return None

    async def set_preferred_tags(self, user_id: str, tags: list[tuple[str, float]], ttl_seconds: int | None = None):
        key = USER_LIKED_TAGS_KEY.format(user_id=_key_safe(user_id))
        ttl = ttl_seconds if ttl_seconds is not None else settings.PREFERRED_TAGS_CACHE_TTL
        payload: list[Any] = [[tag, weight] for tag, weight in tags]
        await self._call(self.backend.set(key, json.dumps(payload), ttl), "set", key, False)

    async def invalidate_preferred_tags(self, user_id: str) -> None:
        key = USER_LIKED_TAGS_KEY.format(user_id=_key_safe(user_id))
        await self._call(self.backend.delete(key), "delete", key, False)
