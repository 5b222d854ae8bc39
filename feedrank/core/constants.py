"""
Core constants used across the ranking engine. Keep these simple and documented.
"""

from typing import Final

# Tag preference profile
MAX_PROFILE_TAGS: Final[int] = 100
# (max age in days, boost) steps applied on top of raw tag weight
TAG_RECENCY_BOOST_STEPS: Final[tuple[tuple[int, float], ...]] = ((7, 5.0), (30, 2.0), (90, 1.0))

# Recency: score halves every 2 days
RECENCY_HALF_LIFE_DAYS: Final[float] = 2.0

# Popularity
ENGAGEMENT_WEIGHT_LIKE: Final[float] = 1.0
ENGAGEMENT_WEIGHT_COMMENT: Final[float] = 2.0
ENGAGEMENT_WEIGHT_SHARE: Final[float] = 3.0
# log scale normalizer, ~1000 weighted engagements saturate the raw score
POPULARITY_LOG_BASE: Final[float] = 1000.0
POPULARITY_DECAY_HOURS: Final[float] = 24.0
POPULARITY_MIN_TIME_ADJUSTMENT: Final[float] = 0.1
POPULARITY_ABSOLUTE_SHARE: Final[float] = 0.7
POPULARITY_RATE_SHARE: Final[float] = 0.3

# Trending
TRENDING_VIEWS_DIVISOR: Final[float] = 10.0
TRENDING_DEFAULT_TIMEFRAME_HOURS: Final[int] = 24
TRENDING_MAX_TIMEFRAME_HOURS: Final[int] = 168

# Diversity: posts at or above this tag overlap count as near-duplicates
DIVERSITY_SIMILARITY_THRESHOLD: Final[float] = 0.5

# Similar users: how many of the caller's preferred tags to compare
SIMILAR_USERS_TAG_LIMIT: Final[int] = 50
SIMILAR_USERS_MAX_LIMIT: Final[int] = 20

# Candidate oversampling
CANDIDATE_OVERSAMPLE_FACTOR: Final[int] = 3
MAX_CANDIDATE_FETCH: Final[int] = 100

# Cache keys
FEED_USER_KEY: Final[str] = "feed:user:{user_id}"
FEED_ANON_KEY: Final[str] = "feed:anon"
FEED_PAGE_KEY: Final[str] = "{prefix}:{page}:{limit}:{tags}:{sort}"
USER_LIKED_TAGS_KEY: Final[str] = "tags:user:{user_id}"
PROFILE_KEY: Final[str] = "feedrank:profile:{user_id}"
