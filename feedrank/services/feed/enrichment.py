import asyncio
from collections.abc import Sequence
from datetime import datetime

from loguru import logger

from feedrank.core.config import settings
from feedrank.models.feed import FeedPost
from feedrank.models.post import ScoredCandidate
from feedrank.services.ports import LikeLog
from feedrank.utils import ensure_aware, now_utc, relative_time


async def fetch_like_status(
    like_log: LikeLog,
    user_id: str | None,
    post_ids: Sequence[str],
    timeout: float | None = None,
) -> dict[str, bool]:
    """
    Look up which posts the user likes.

    Never raises: on failure or timeout every post is reported as not liked.
    """
    if not user_id or not post_ids:
        return {}
    try:
        status = await asyncio.wait_for(
            like_log.is_liked_by_user(user_id, list(post_ids)),
            timeout=timeout or settings.UPSTREAM_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Like status lookup timed out for user {user_id}; marking {len(post_ids)} posts as not liked")
        return {}
    except Exception as e:
        logger.warning(f"Like status lookup failed for user {user_id}; marking posts as not liked: {e}")
        return {}
    return {pid: bool(liked) for pid, liked in (status or {}).items()}


def to_feed_post(
    scored: ScoredCandidate,
    liked: dict[str, bool],
    now: datetime,
    include_score: bool = True,
) -> FeedPost:
    candidate = scored.candidate
    age_in_hours = None
    if candidate.created_at is not None:
        age_in_hours = int((ensure_aware(now) - candidate.created_at).total_seconds() // 3600)

    # store-side fields with the same names (e.g. a denormalized ranking_score) are overwritten
    data = candidate.model_dump()
    data.update(
        ranking_score=scored.ranking_score if include_score else None,
        is_liked=liked.get(candidate.id, False),
        age_in_hours=age_in_hours,
        time_ago=relative_time(candidate.created_at, now),
    )
    return FeedPost.model_validate(data)


async def enrich_posts(
    ranked: Sequence[ScoredCandidate],
    like_log: LikeLog,
    user_id: str | None,
    now: datetime | None = None,
    include_score: bool = True,
    timeout: float | None = None,
) -> list[FeedPost]:
    """Attach like status and age fields to ranked posts, keeping their order."""
    now = now or now_utc()
    liked = await fetch_like_status(like_log, user_id, [s.id for s in ranked], timeout)
    return [to_feed_post(s, liked, now, include_score) for s in ranked]
