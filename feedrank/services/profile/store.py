from collections.abc import Iterable

import redis.asyncio as redis
from loguru import logger
from pydantic import ValidationError
from redis.exceptions import WatchError

from feedrank.core.constants import PROFILE_KEY
from feedrank.core.exceptions import UpstreamUnavailable
from feedrank.models.tag_profile import SimilarUser, TagPreferenceProfile, rank_by_tag_overlap
from feedrank.services.ports import ProfileStore
from feedrank.utils import normalize_tags

MAX_WATCH_RETRIES = 10


class RedisProfileStore(ProfileStore):
    """
    Tag profiles stored as JSON documents in Redis.

    Upserts run inside WATCH/MULTI so two likes from the same user on
    different devices cannot overwrite each other; a conflicting write
    simply retries against the new document.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    @staticmethod
    def _key(user_id: str) -> str:
        return PROFILE_KEY.format(user_id=user_id)

    @staticmethod
    def _decode(raw: str | bytes | None, user_id: str) -> TagPreferenceProfile:
        if not raw:
            return TagPreferenceProfile()
        try:
            return TagPreferenceProfile.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            # A corrupt document would otherwise block every future like
            logger.warning(f"Discarding unreadable tag profile for user {user_id}: {e}")
            return TagPreferenceProfile()

    async def upsert_tag_weights(self, user_id: str, tags: Iterable[str], boost_factor: float = 1.0) -> None:
        normalized = normalize_tags(tags)
        if not normalized:
            return

        key = self._key(user_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for attempt in range(1, MAX_WATCH_RETRIES + 1):
                    try:
                        await pipe.watch(key)
                        profile = self._decode(await pipe.get(key), user_id)
                        profile.record_engagement(normalized, boost_factor)
                        pipe.multi()
                        pipe.set(key, profile.model_dump_json())
                        await pipe.execute()
                        logger.debug(f"Upserted {len(normalized)} tag(s) for user {user_id} (attempt {attempt})")
                        return
                    except WatchError:
                        logger.debug(f"Concurrent profile update for user {user_id}, retrying")
                        continue
        except (redis.RedisError, OSError) as exc:
            raise UpstreamUnavailable("profile store", f"Failed to update profile for user {user_id}: {exc}") from exc

        raise UpstreamUnavailable("profile store", f"Gave up updating profile for user {user_id} after contention")

    async def load_profile(self, user_id: str) -> TagPreferenceProfile:
        try:
            raw = await self._client.get(self._key(user_id))
        except (redis.RedisError, OSError) as exc:
            raise UpstreamUnavailable("profile store", f"Failed to load profile for user {user_id}: {exc}") from exc
        return self._decode(raw, user_id)

    async def find_users_sharing_tags(
        self, tags: Iterable[str], exclude_user_id: str, min_overlap: int, limit: int
    ) -> list[SimilarUser]:
        """Scan every stored profile. Linear in the number of users."""
        prefix = PROFILE_KEY.format(user_id="")
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{prefix}*", count=500)]
            raw_profiles = await self._client.mget(keys) if keys else []
        except (redis.RedisError, OSError) as exc:
            raise UpstreamUnavailable("profile store", f"Failed to scan profiles: {exc}") from exc

        profiles = []
        for key, raw in zip(keys, raw_profiles):
            user_id = key[len(prefix) :]
            profiles.append((user_id, self._decode(raw, user_id)))
        return rank_by_tag_overlap(profiles, tags, exclude_user_id, min_overlap, limit)

    async def close(self) -> None:
        try:
            await self._client.aclose()
            logger.info("RedisProfileStore client closed")
        except Exception as exc:
            logger.warning(f"Failed to close RedisProfileStore client: {exc}")
