import math
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from feedrank.core.config import settings
from feedrank.core.constants import (
    ENGAGEMENT_WEIGHT_COMMENT,
    ENGAGEMENT_WEIGHT_LIKE,
    ENGAGEMENT_WEIGHT_SHARE,
    POPULARITY_ABSOLUTE_SHARE,
    POPULARITY_DECAY_HOURS,
    POPULARITY_LOG_BASE,
    POPULARITY_MIN_TIME_ADJUSTMENT,
    POPULARITY_RATE_SHARE,
    RECENCY_HALF_LIFE_DAYS,
    TRENDING_VIEWS_DIVISOR,
)
from feedrank.models.post import Candidate, ScoredCandidate
from feedrank.utils import ensure_aware, now_utc


class ScoringWeights(BaseModel):
    """Blend of the three sub-scores. Should sum to 1 to keep composite scores in [0, 1]."""

    personalization: float = settings.PERSONALIZATION_WEIGHT
    recency: float = settings.RECENCY_WEIGHT
    popularity: float = settings.POPULARITY_WEIGHT


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class RankingScoring:
    """
    Combines personalization, recency and popularity into one ranking score.

    Pure functions only: no state, no I/O. Pass `now` for reproducible results.
    """

    @staticmethod
    def personalization_score(post_tags: Iterable[str] | None, profile_tags: Sequence[tuple[str, float]] | None) -> float:
        """
        Share of the user's tag weight covered by the post, in [0, 1].

        Dividing by sqrt(len(post_tags)) keeps heavily tagged posts from
        collecting matches cheaply; the match percentage rewards posts whose
        tags mostly hit the profile.
        """
        tags = [t.lower() for t in (post_tags or []) if isinstance(t, str)]
        if not tags or not profile_tags:
            return 0.0

        preferences: dict[str, float] = {}
        total_weight = 0.0
        for tag, weight in profile_tags:
            weight = max(float(weight or 0.0), 0.0)
            preferences[tag.lower()] = weight
            total_weight += weight

        if total_weight == 0:
            return 0.0

        match_score = 0.0
        matched_tags = 0
        for tag in tags:
            if tag in preferences:
                match_score += preferences[tag] / total_weight
                matched_tags += 1

        normalized = match_score / math.sqrt(len(tags))
        match_percentage = matched_tags / len(tags)
        return min(normalized * (1 + match_percentage), 1.0)

    @staticmethod
    def recency_score(created_at: datetime | None, now: datetime | None = None) -> float:
        """Exponential decay with a two day half-life."""
        if created_at is None:
            return 0.0
        now = now or now_utc()
        # future timestamps count as brand new
        age_days = max((ensure_aware(now) - ensure_aware(created_at)).total_seconds() / 86400, 0.0)
        return _clamp(0.5 ** (age_days / RECENCY_HALF_LIFE_DAYS))

    @staticmethod
    def popularity_score(
        likes: int,
        comments: int,
        shares: int,
        views: int,
        created_at: datetime | None,
        now: datetime | None = None,
    ) -> float:
        """Log-scaled engagement, decayed over a day, blended with engagement rate."""
        engagement = (
            likes * ENGAGEMENT_WEIGHT_LIKE + comments * ENGAGEMENT_WEIGHT_COMMENT + shares * ENGAGEMENT_WEIGHT_SHARE
        )
        engagement_rate = engagement / views if views > 0 else 0.0

        age_hours = 0.0
        if created_at is not None:
            now = now or now_utc()
            age_hours = max((ensure_aware(now) - ensure_aware(created_at)).total_seconds() / 3600, 0.0)
        time_adjustment = max(POPULARITY_MIN_TIME_ADJUSTMENT, math.exp(-age_hours / POPULARITY_DECAY_HOURS))

        raw = math.log(engagement + 1) / math.log(POPULARITY_LOG_BASE)
        adjusted = raw * time_adjustment
        return _clamp(adjusted * POPULARITY_ABSOLUTE_SHARE + engagement_rate * POPULARITY_RATE_SHARE)

    @staticmethod
    def composite_score(
        candidate: Candidate,
        profile_tags: Sequence[tuple[str, float]] | None,
        weights: ScoringWeights | None = None,
        now: datetime | None = None,
    ) -> ScoredCandidate:
        weights = weights or ScoringWeights()
        now = now or now_utc()

        personalization = RankingScoring.personalization_score(candidate.tags, profile_tags)
        recency = RankingScoring.recency_score(candidate.created_at, now)
        popularity = RankingScoring.popularity_score(
            candidate.likes_count,
            candidate.comments_count,
            candidate.shares_count,
            candidate.views_count,
            candidate.created_at,
            now,
        )
        final = (
            personalization * weights.personalization + recency * weights.recency + popularity * weights.popularity
        )

        logger.debug(
            f"Post {candidate.id}: final={final:.3f} "
            f"(pers={personalization:.3f}, rec={recency:.3f}, pop={popularity:.3f})"
        )

        return ScoredCandidate(
            candidate=candidate,
            personalization_score=personalization,
            recency_score=recency,
            popularity_score=popularity,
            ranking_score=final,
            personalized_for="user" if profile_tags else "general",
        )

    @staticmethod
    def batch_score(
        records: Iterable[Candidate | dict[str, Any]],
        profile_tags: Sequence[tuple[str, float]] | None,
        weights: ScoringWeights | None = None,
        now: datetime | None = None,
    ) -> list[ScoredCandidate]:
        """
        Score every record independently.

        A record that cannot be scored gets a zero score instead of aborting
        the batch. Records without an identifier cannot be placed in a feed and
        are dropped.
        """
        now = now or now_utc()
        weights = weights or ScoringWeights()
        personalized_for = "user" if profile_tags else "general"
        scored: list[ScoredCandidate] = []

        for record in records:
            try:
                candidate = record if isinstance(record, Candidate) else Candidate.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Dropping candidate without usable id: {e.errors()[:1]}")
                continue

            bad_fields = Candidate.malformed_fields(record)
            if bad_fields:
                logger.warning(f"Post {candidate.id} has missing or malformed fields {bad_fields}; scoring them as zero")

            try:
                scored.append(RankingScoring.composite_score(candidate, profile_tags, weights, now))
            except Exception as e:
                logger.warning(f"Scoring failed for post {candidate.id}, defaulting to 0: {e}")
                scored.append(ScoredCandidate(candidate=candidate, personalized_for=personalized_for))

        return scored

    @staticmethod
    def sort_by_ranking(scored: Iterable[ScoredCandidate], fallback: str = "recent") -> list[ScoredCandidate]:
        """Highest score first; ties go to the newer (or more engaged) post, then to the lower id."""

        def created_ts(item: ScoredCandidate) -> float:
            created = item.candidate.created_at
            return created.timestamp() if created is not None else float("-inf")

        if fallback == "popular":
            return sorted(
                scored,
                key=lambda s: (-s.ranking_score, -s.candidate.total_engagement(), s.id),
            )
        return sorted(scored, key=lambda s: (-s.ranking_score, -created_ts(s), s.id))

    @staticmethod
    def trending_score(candidate: Candidate, timeframe_hours: float, now: datetime | None = None) -> float:
        """Raw engagement weighted by how early in the window the post collected it."""
        now = now or now_utc()
        engagement = (
            candidate.likes_count * ENGAGEMENT_WEIGHT_LIKE
            + candidate.comments_count * ENGAGEMENT_WEIGHT_COMMENT
            + candidate.shares_count * ENGAGEMENT_WEIGHT_SHARE
            + candidate.views_count / TRENDING_VIEWS_DIVISOR
        )
        if candidate.created_at is None:
            return 0.0
        age_ms = max((ensure_aware(now) - candidate.created_at).total_seconds() * 1000, 0.0)
        window_ms = timeframe_hours * 3600 * 1000
        return engagement * (window_ms / (age_ms + 1))
