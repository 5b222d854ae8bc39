from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    PORT: int = 8000
    APP_ENV: Literal["development", "production", "test"] = "production"

    REDIS_URL: str = "redis://redis:6379/0"
    # Maximum number of connections Redis client will open per process
    REDIS_MAX_CONNECTIONS: int = 20
    # "none" disables feed caching entirely; requests always compute live
    CACHE_BACKEND: Literal["redis", "memory", "none"] = "redis"
    PROFILE_STORE: Literal["memory", "redis"] = "memory"
    # After a cache failure, skip cache calls for this long before retrying
    CACHE_RETRY_INTERVAL_SECONDS: float = 30.0
    CACHE_TIMEOUT_SECONDS: float = 1.0

    FEED_CACHE_TTL: int = 300  # 5 minutes
    PREFERRED_TAGS_CACHE_TTL: int = 300

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Ranking weights, expected to sum to 1
    PERSONALIZATION_WEIGHT: float = 0.4
    RECENCY_WEIGHT: float = 0.3
    POPULARITY_WEIGHT: float = 0.3

    FEED_DIVERSITY_FACTOR: float = 0.3
    RECOMMENDATION_DIVERSITY_FACTOR: float = 0.4

    PREFERRED_TAGS_LIMIT: int = 30
    RECENT_ACTIVITY_WINDOW_DAYS: int = 30
    RECENT_ACTIVITY_MULTIPLIER: float = 2.0
    # Share of the caller's preferred tags another user must have engaged with
    SIMILAR_USERS_MIN_SIMILARITY: float = 0.2

    UPSTREAM_TIMEOUT_SECONDS: float = 5.0


settings = Settings()
