import asyncio
import time
from typing import Any

import redis.asyncio as redis
from loguru import logger

from feedrank.core.config import settings
from feedrank.core.exceptions import CacheUnavailable

CACHE_ERRORS = (redis.RedisError, OSError, asyncio.TimeoutError, CacheUnavailable)


class RedisService:
    """
    Redis cache backend.

    Never raises to callers: failures are logged and reported through return
    values and `is_available()`. After a failure, calls are skipped for
    `retry_interval` seconds so a dead Redis does not add latency to every request.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        url: str | None = None,
        retry_interval: float | None = None,
    ) -> None:
        self._client = client
        self._url = url if url is not None else settings.REDIS_URL
        self._retry_interval = (
            retry_interval if retry_interval is not None else settings.CACHE_RETRY_INTERVAL_SECONDS
        )
        self._available = True
        self._failed_at: float | None = None
        if client is None and not self._url:
            logger.warning("REDIS_URL is not set. Cache operations will be skipped until configured.")

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            if not self._url:
                raise CacheUnavailable("REDIS_URL is not configured")
            logger.info("Creating Redis client for RedisService")
            try:
                self._client = redis.from_url(
                    self._url,
                    decode_responses=True,
                    encoding="utf-8",
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    max_connections=settings.REDIS_MAX_CONNECTIONS,
                    health_check_interval=30,
                    socket_keepalive=True,
                )
            except ValueError as exc:
                raise CacheUnavailable(f"Invalid REDIS_URL: {exc}") from exc
        return self._client

    def is_available(self) -> bool:
        """Whether the last cache call succeeded or the retry interval has elapsed since a failure."""
        if self._client is None and not self._url:
            return False
        if self._available:
            return True
        return self._failed_at is None or (time.monotonic() - self._failed_at) >= self._retry_interval

    def _mark_failed(self, action: str, key: str, exc: Exception) -> None:
        if self._available:
            logger.warning(f"Redis {action} failed for '{key}', treating cache as unavailable: {exc}")
        else:
            logger.debug(f"Redis {action} failed again for '{key}': {exc}")
        self._available = False
        self._failed_at = time.monotonic()

    def _mark_ok(self) -> None:
        if not self._available:
            logger.info("Redis cache is reachable again")
        self._available = True
        self._failed_at = None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value with optional TTL in seconds. Returns True if stored."""
        if not self.is_available():
            logger.debug(f"Cache not available, skipping set for '{key}'")
            return False
        try:
            client = await self.get_client()
            str_value = str(value)
            if ttl:
                result = await client.setex(key, ttl, str_value)
            else:
                result = await client.set(key, str_value)
            self._mark_ok()
            return bool(result)
        except CACHE_ERRORS as exc:
            self._mark_failed("SET", key, exc)
            return False

    async def get(self, key: str) -> str | None:
        """Get a value by key; None if missing or the cache is unavailable."""
        if not self.is_available():
            logger.debug(f"Cache not available, skipping get for '{key}'")
            return None
        try:
            client = await self.get_client()
            value = await client.get(key)
            self._mark_ok()
            return value
        except CACHE_ERRORS as exc:
            self._mark_failed("GET", key, exc)
            return None

    async def delete(self, key: str) -> bool:
        if not self.is_available():
            logger.debug(f"Cache not available, skipping delete for '{key}'")
            return False
        try:
            client = await self.get_client()
            result = await client.delete(key)
            self._mark_ok()
            return bool(result)
        except CACHE_ERRORS as exc:
            self._mark_failed("DELETE", key, exc)
            return False

    async def exists(self, key: str) -> bool:
        if not self.is_available():
            return False
        try:
            client = await self.get_client()
            result = await client.exists(key)
            self._mark_ok()
            return bool(result)
        except CACHE_ERRORS as exc:
            self._mark_failed("EXISTS", key, exc)
            return False

    async def delete_by_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Redis key pattern (e.g., "feed:user:42:*")

        Returns:
            Number of keys deleted
        """
        if not self.is_available():
            logger.debug(f"Cache not available, skipping delete for pattern '{pattern}'")
            return 0
        try:
            client = await self.get_client()
            deleted_count = 0
            keys_to_delete = []
            async for key in client.scan_iter(match=pattern, count=500):
                keys_to_delete.append(key)
                if len(keys_to_delete) >= 500:
                    deleted_count += await client.delete(*keys_to_delete)
                    keys_to_delete = []
            if keys_to_delete:
                deleted_count += await client.delete(*keys_to_delete)
            self._mark_ok()
            return deleted_count
        except CACHE_ERRORS as exc:
            self._mark_failed("SCAN/DELETE", pattern, exc)
            return 0

    async def ping(self) -> bool:
        try:
            client = await self.get_client()
            result = await client.ping()
            self._mark_ok()
            return bool(result)
        except CACHE_ERRORS as exc:
            self._mark_failed("PING", "-", exc)
            return False

    async def close(self) -> None:
        """Close and disconnect the Redis client"""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("RedisService client closed")
            except Exception as exc:
                logger.warning(f"Failed to close RedisService client: {exc}")
            finally:
                self._client = None
