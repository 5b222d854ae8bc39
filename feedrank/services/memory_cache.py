import fnmatch
import time
from typing import Any

from cachetools import TLRUCache
from loguru import logger

# Entries without a TTL still expire eventually so the process cannot grow unbounded
DEFAULT_TTL_SECONDS = 24 * 3600


def _ttu(_key: str, value: tuple[str, float], now: float) -> float:
    return now + value[1]


class MemoryCache:
    """In-process cache backend with per-key TTL. Same interface as RedisService."""

    def __init__(self, maxsize: int = 10000, timer=time.monotonic):
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_ttu, timer=timer)

    def is_available(self) -> bool:
        return True

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self._cache[key] = (str(value), float(ttl or DEFAULT_TTL_SECONDS))
        return True

    async def get(self, key: str) -> str | None:
        entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        return key in self._cache

    async def delete_by_pattern(self, pattern: str) -> int:
        matching = [k for k in list(self._cache.keys()) if fnmatch.fnmatchcase(k, pattern)]
        removed = sum(1 for key in matching if self._cache.pop(key, None) is not None)
        if removed:
            logger.debug(f"MemoryCache removed {removed} key(s) matching '{pattern}'")
        return removed

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._cache.clear()
