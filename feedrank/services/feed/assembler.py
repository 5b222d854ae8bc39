import random
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from loguru import logger

from feedrank.core.config import settings
from feedrank.core.constants import CANDIDATE_OVERSAMPLE_FACTOR, MAX_CANDIDATE_FETCH, TRENDING_MAX_TIMEFRAME_HOURS
from feedrank.models.feed import FeedPage, FeedRequest, Pagination
from feedrank.models.post import Candidate, CandidateFilter, ScoredCandidate
from feedrank.services.feed.enrichment import enrich_posts
from feedrank.services.feed_cache import FeedCache
from feedrank.services.ports import ContentStore, LikeLog, call_upstream
from feedrank.services.profile.service import TagProfileService
from feedrank.services.ranking.diversity import DiversityReranker
from feedrank.services.ranking.scoring import RankingScoring, ScoringWeights
from feedrank.utils import now_utc


def candidate_fetch_limit(limit: int) -> int:
    """Oversample so diversity and tag mismatches still leave a full page."""
    return min(limit * CANDIDATE_OVERSAMPLE_FACTOR, MAX_CANDIDATE_FETCH)


def build_pagination(posts: Sequence, page: int, limit: int) -> Pagination:
    # A short page means the store ran out of candidates
    return Pagination(
        current_page=page,
        limit=limit,
        has_next_page=len(posts) == limit,
        next_last_post_id=posts[-1].id if posts else None,
        total_fetched=len(posts),
    )


class RecommendationAssembler:
    """
    Builds feed pages: fetch candidates, score, diversify, enrich, paginate.

    Candidate fetches are mandatory and fail the request with
    UpstreamUnavailable. Cache and like-status enrichment only degrade.
    """

    def __init__(
        self,
        content_store: ContentStore,
        like_log: LikeLog,
        profile_service: TagProfileService | None = None,
        feed_cache: FeedCache | None = None,
        weights: ScoringWeights | None = None,
        reranker: DiversityReranker | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = now_utc,
        upstream_timeout: float | None = None,
    ):
        self.content_store = content_store
        self.like_log = like_log
        self.profile_service = profile_service
        self.feed_cache = feed_cache
        self.weights = weights or ScoringWeights()
        self.reranker = reranker or DiversityReranker(rng=rng)
        self.clock = clock
        self.upstream_timeout = upstream_timeout or settings.UPSTREAM_TIMEOUT_SECONDS

    async def _preferred_tags(self, user_id: str | None) -> list[tuple[str, float]]:
        if not user_id or self.profile_service is None:
            return []
        return await self.profile_service.get_preferred_tags(user_id, limit=settings.PREFERRED_TAGS_LIMIT)

    async def _resolve_cursor(self, last_post_id: str | None) -> datetime | None:
        """Turn the last seen post into a created_before bound. Unknown cursors are ignored."""
        if not last_post_id:
            return None
        record = await call_upstream(
            self.content_store.find_by_id(last_post_id), "content store", self.upstream_timeout
        )
        if record is None:
            logger.debug(f"Cursor post {last_post_id} not found; ignoring cursor")
            return None
        post = record if isinstance(record, Candidate) else Candidate.model_validate(record)
        return post.created_at

    async def _fetch_candidates(
        self,
        candidate_filter: CandidateFilter,
        exclude_ids: Sequence[str],
        fetch_limit: int,
    ) -> Sequence:
        records = await call_upstream(
            self.content_store.find_candidates(candidate_filter, set(exclude_ids), fetch_limit),
            "content store",
            self.upstream_timeout,
        )
        logger.debug(f"Fetched {len(records)} candidates (fetch_limit={fetch_limit})")
        return records

    async def _rank_candidates(
        self,
        candidate_filter: CandidateFilter,
        exclude_ids: Sequence[str],
        profile_tags: list[tuple[str, float]],
        limit: int,
        sort_by: str,
        diversity_factor: float,
        now: datetime,
    ) -> list[ScoredCandidate]:
        records = await self._fetch_candidates(candidate_filter, exclude_ids, candidate_fetch_limit(limit))
        scored = RankingScoring.batch_score(records, profile_tags, self.weights, now)

        if sort_by == "recent":
            ordered = sorted(scored, key=lambda s: (-_created_ts(s.candidate), s.id))
        elif sort_by == "popular":
            ordered = sorted(
                scored, key=lambda s: (-s.candidate.likes_count, -_created_ts(s.candidate), s.id)
            )
        else:
            ordered = RankingScoring.sort_by_ranking(scored)
            ordered = self.reranker.diversify(ordered, diversity_factor)

        return ordered[:limit]

    async def get_feed(self, request: FeedRequest) -> FeedPage:
        """Get one page of a user's (or the anonymous) feed, served from cache when possible."""
        cache_key = FeedCache.key_for(request.user_id, request.page, request.limit, request.tags, request.sort_by)

        if self.feed_cache is not None and not request.refresh:
            cached = await self.feed_cache.get(cache_key)
            if cached is not None:
                return cached.model_copy(update={"cached": True})

        now = self.clock()
        logger.info(
            f"Assembling {request.sort_by} feed for {request.user_id or 'anonymous'} "
            f"(page={request.page}, limit={request.limit}, tags={request.tags or 'all'})"
        )

        personalized = request.sort_by == "ranked"
        profile_tags = await self._preferred_tags(request.user_id) if personalized else []

        candidate_filter = CandidateFilter(
            tags=request.tags,
            # own posts only make sense in the chronological views
            exclude_author_id=request.user_id if personalized else None,
            created_before=await self._resolve_cursor(request.last_post_id),
            sort_by=request.sort_by,
        )

        ranked = await self._rank_candidates(
            candidate_filter,
            request.exclude_post_ids,
            profile_tags,
            request.limit,
            request.sort_by,
            settings.FEED_DIVERSITY_FACTOR,
            now,
        )
        posts = await enrich_posts(
            ranked, self.like_log, request.user_id, now, include_score=personalized, timeout=self.upstream_timeout
        )
        page = FeedPage(posts=posts, pagination=build_pagination(posts, request.page, request.limit))

        if self.feed_cache is not None:
            await self.feed_cache.set(cache_key, page)
        return page

    async def get_recommendations(
        self,
        user_id: str,
        limit: int | None = None,
        exclude_post_ids: Sequence[str] | None = None,
    ) -> FeedPage:
        """Personalized picks outside the user's own posts, with a stronger diversity pass. Never cached."""
        limit = limit or settings.DEFAULT_PAGE_SIZE
        now = self.clock()
        profile_tags = await self._preferred_tags(user_id)

        ranked = await self._rank_candidates(
            CandidateFilter(exclude_author_id=user_id, sort_by="ranked"),
            exclude_post_ids or [],
            profile_tags,
            limit,
            "ranked",
            settings.RECOMMENDATION_DIVERSITY_FACTOR,
            now,
        )
        logger.info(f"Built {len(ranked)} recommendations for user {user_id} from {len(profile_tags)} preferred tags")
        posts = await enrich_posts(ranked, self.like_log, user_id, now, timeout=self.upstream_timeout)
        return FeedPage(posts=posts, pagination=build_pagination(posts, 1, limit))

    async def get_trending(
        self,
        limit: int | None = None,
        timeframe_hours: int = 24,
        user_id: str | None = None,
    ) -> FeedPage:
        """Posts created inside the window, ordered by how fast they collected engagement."""
        limit = limit or settings.DEFAULT_PAGE_SIZE
        timeframe_hours = max(1, min(timeframe_hours, TRENDING_MAX_TIMEFRAME_HOURS))
        now = self.clock()

        records = await self._fetch_candidates(
            CandidateFilter(created_after=now - timedelta(hours=timeframe_hours), as_of=now, sort_by="trending"),
            [],
            MAX_CANDIDATE_FETCH,
        )
        # batch_score validates the records and drops the unusable ones
        candidates = [s.candidate for s in RankingScoring.batch_score(records, None, self.weights, now)]
        scored = [
            ScoredCandidate(candidate=c, ranking_score=RankingScoring.trending_score(c, timeframe_hours, now))
            for c in candidates
        ]
        ranked = sorted(scored, key=lambda s: (-s.ranking_score, s.id))[:limit]

        posts = await enrich_posts(ranked, self.like_log, user_id, now, timeout=self.upstream_timeout)
        return FeedPage(posts=posts, pagination=build_pagination(posts, 1, limit))


def _created_ts(candidate: Candidate) -> float:
    return candidate.created_at.timestamp() if candidate.created_at else float("-inf")
