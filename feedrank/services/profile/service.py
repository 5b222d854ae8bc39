import math
from collections.abc import Iterable

from loguru import logger

from feedrank.core.config import settings
from feedrank.core.constants import SIMILAR_USERS_TAG_LIMIT
from feedrank.core.exceptions import UpstreamUnavailable
from feedrank.models.post import Candidate
from feedrank.models.tag_profile import SimilarUser
from feedrank.services.feed_cache import FeedCache
from feedrank.services.ports import ContentStore, LikeLog, ProfileStore, call_upstream
from feedrank.utils import normalize_tags


class TagProfileService:
    """
    Maintains tag preference profiles and serves the ranked preferred tags
    that personalization scoring consumes.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        like_log: LikeLog,
        content_store: ContentStore,
        feed_cache: FeedCache | None = None,
    ):
        self.profile_store = profile_store
        self.like_log = like_log
        self.content_store = content_store
        self.feed_cache = feed_cache

    async def record_engagement(self, user_id: str, tags: Iterable[str], boost_factor: float = 1.0) -> list[str]:
        """Bump the user's weight for each tag and drop their now stale cached feed."""
        normalized = normalize_tags(tags)
        if not normalized:
            return []

        await call_upstream(
            self.profile_store.upsert_tag_weights(user_id, normalized, boost_factor), "profile store"
        )
        if self.feed_cache is not None:
            await self.feed_cache.invalidate_user(user_id)

        logger.info(f"Updated preferences for user {user_id} with tags: {', '.join(normalized)}")
        return normalized

    async def record_like(self, user_id: str, post_id: str, boost_factor: float = 1.0) -> list[str]:
        """
        Update preferences from a like event.

        Returns the tags that were applied; unknown or untagged posts are a no-op.
        """
        record = await call_upstream(self.content_store.find_by_id(post_id), "content store")
        if record is None:
            logger.debug(f"Like on unknown post {post_id} by user {user_id}; nothing to record")
            return []

        post = record if isinstance(record, Candidate) else Candidate.model_validate(record)
        if not post.tags:
            return []
        return await self.record_engagement(user_id, post.tags, boost_factor)

    async def get_preferred_tags(
        self,
        user_id: str,
        limit: int | None = None,
        include_recent: bool = True,
        use_cache: bool = True,
    ) -> list[tuple[str, float]]:
        """
        Get the user's tags with their weights, best first.

        Recent likes from the like log are blended in on read, so tags the
        user engaged with lately rank high even with a modest stored weight.
        """
        limit = limit or settings.PREFERRED_TAGS_LIMIT

        if use_cache and self.feed_cache is not None:
            cached = await self.feed_cache.get_preferred_tags(user_id)
            if cached is not None:
                return cached[:limit]

        profile = await call_upstream(self.profile_store.load_profile(user_id), "profile store")

        if include_recent:
            try:
                recent = await call_upstream(
                    self.like_log.count_recent_tag_engagements(user_id, settings.RECENT_ACTIVITY_WINDOW_DAYS),
                    "like log",
                )
                profile = profile.merge_recent_activity(recent, settings.RECENT_ACTIVITY_MULTIPLIER)
            except UpstreamUnavailable as e:
                logger.warning(f"Recent activity unavailable for user {user_id}, using stored profile: {e}")

        # Cache the full default-sized list so smaller limits can be served from it
        preferred = profile.weighted_tags(max(limit, settings.PREFERRED_TAGS_LIMIT))

        if use_cache and self.feed_cache is not None:
            await self.feed_cache.set_preferred_tags(user_id, preferred)

        return preferred[:limit]

    async def get_similar_users(self, user_id: str, limit: int = 10, min_similarity: float = 0.1) -> list[SimilarUser]:
        """
        Find users who engaged with the same tags as this user.

        A user qualifies when their profile holds at least `min_similarity`
        of this user's preferred tags (rounded up). Users without a profile
        have no neighbours.
        """
        preferred = await self.get_preferred_tags(user_id, limit=SIMILAR_USERS_TAG_LIMIT)
        if not preferred:
            return []

        tags = [tag for tag, _ in preferred]
        min_overlap = max(1, math.ceil(len(tags) * min_similarity))
        similar = await call_upstream(
            self.profile_store.find_users_sharing_tags(tags, user_id, min_overlap, limit), "profile store"
        )
        logger.debug(f"Found {len(similar)} similar users for {user_id} (min overlap {min_overlap})")
        return similar
