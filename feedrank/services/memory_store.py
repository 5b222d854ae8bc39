"""In-process implementations of the collaborator ports (development and tests)."""

import asyncio
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from loguru import logger

from feedrank.core.constants import TRENDING_DEFAULT_TIMEFRAME_HOURS
from feedrank.models.post import Candidate, CandidateFilter
from feedrank.models.tag_profile import SimilarUser, TagPreferenceProfile, rank_by_tag_overlap
from feedrank.services.ports import CandidateRecord, ContentStore, LikeLog, ProfileStore
from feedrank.services.ranking.scoring import RankingScoring
from feedrank.utils import now_utc


def _created_ts(post: Candidate) -> float:
    return post.created_at.timestamp() if post.created_at else float("-inf")


class InMemoryContentStore(ContentStore):
    def __init__(self, posts: Iterable[CandidateRecord] | None = None):
        self._posts: dict[str, Candidate] = {}
        for post in posts or []:
            self.add(post)

    def add(self, post: CandidateRecord) -> Candidate:
        candidate = post if isinstance(post, Candidate) else Candidate.model_validate(post)
        self._posts[candidate.id] = candidate
        return candidate

    async def find_candidates(
        self,
        candidate_filter: CandidateFilter,
        exclude_ids: set[str],
        fetch_limit: int,
    ) -> list[Candidate]:
        wanted_tags = set(candidate_filter.tags)
        matches = []
        for post in self._posts.values():
            if post.id in exclude_ids:
                continue
            if getattr(post, "is_active", True) is False:
                continue
            if candidate_filter.exclude_author_id and post.author_id == candidate_filter.exclude_author_id:
                continue
            if wanted_tags and not wanted_tags.intersection(post.tags):
                continue
            if candidate_filter.created_before and (
                post.created_at is None or post.created_at >= candidate_filter.created_before
            ):
                continue
            if candidate_filter.created_after and (
                post.created_at is None or post.created_at < candidate_filter.created_after
            ):
                continue
            matches.append(post)

        if candidate_filter.sort_by == "popular":
            matches.sort(key=lambda p: (p.likes_count, _created_ts(p)), reverse=True)
        elif candidate_filter.sort_by == "trending":
            as_of = candidate_filter.as_of or now_utc()
            window_hours = (
                (as_of - candidate_filter.created_after).total_seconds() / 3600
                if candidate_filter.created_after
                else TRENDING_DEFAULT_TIMEFRAME_HOURS
            )
            matches.sort(
                key=lambda p: (-RankingScoring.trending_score(p, window_hours, as_of), -_created_ts(p), p.id)
            )
        else:
            matches.sort(key=_created_ts, reverse=True)

        return matches[: max(fetch_limit, 0)]

    async def find_by_id(self, post_id: str) -> Candidate | None:
        return self._posts.get(post_id)


class InMemoryLikeLog(LikeLog):
    def __init__(self, content_store: InMemoryContentStore):
        self.content_store = content_store
        # (user_id, post_id) -> liked_at
        self._likes: dict[tuple[str, str], datetime] = {}

    def add_like(self, user_id: str, post_id: str, liked_at: datetime | None = None) -> None:
        self._likes[(user_id, post_id)] = liked_at or now_utc()

    def remove_like(self, user_id: str, post_id: str) -> None:
        self._likes.pop((user_id, post_id), None)

    async def count_recent_tag_engagements(self, user_id: str, window_days: int) -> dict[str, int]:
        cutoff = now_utc() - timedelta(days=window_days)
        counts: dict[str, int] = defaultdict(int)
        for (liker, post_id), liked_at in self._likes.items():
            if liker != user_id or liked_at < cutoff:
                continue
            post = await self.content_store.find_by_id(post_id)
            if post is None:
                continue
            for tag in post.tags:
                counts[tag] += 1
        return dict(counts)

    async def is_liked_by_user(self, user_id: str, post_ids: Sequence[str]) -> dict[str, bool]:
        return {pid: (user_id, pid) in self._likes for pid in post_ids}


class InMemoryProfileStore(ProfileStore):
    """
    Profiles kept in a dict; a per-user lock makes each upsert atomic.

    Locks are never evicted, so the lock map grows with the number of users
    seen. Fine for development and tests, not for a long-running service.
    """

    def __init__(self):
        self._profiles: dict[str, TagPreferenceProfile] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def upsert_tag_weights(self, user_id: str, tags: Iterable[str], boost_factor: float = 1.0) -> None:
        async with self._locks[user_id]:
            profile = self._profiles.setdefault(user_id, TagPreferenceProfile())
            profile.record_engagement(tags, boost_factor)
        logger.debug(f"Upserted tag weights for user {user_id}")

    async def load_profile(self, user_id: str) -> TagPreferenceProfile:
        profile = self._profiles.get(user_id)
        # Hand out a copy so callers never mutate stored state
        return profile.model_copy(deep=True) if profile else TagPreferenceProfile()

    async def find_users_sharing_tags(
        self, tags: Iterable[str], exclude_user_id: str, min_overlap: int, limit: int
    ) -> list[SimilarUser]:
        return rank_by_tag_overlap(list(self._profiles.items()), tags, exclude_user_id, min_overlap, limit)

    def put(self, user_id: str, profile: TagPreferenceProfile) -> None:
        self._profiles[user_id] = profile
