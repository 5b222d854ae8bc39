from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedrank.core.config import settings
from feedrank.utils import normalize_tags

SortMode = Literal["ranked", "recent", "popular"]


class FeedRequest(BaseModel):
    user_id: str | None = Field(default=None, description="None for anonymous callers")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    last_post_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    sort_by: SortMode = "ranked"
    refresh: bool = False
    exclude_post_ids: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        return normalize_tags(value)


class FeedPost(BaseModel):
    """A ranked post as returned to the caller."""

    model_config = ConfigDict(extra="allow")

    id: str
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    author_id: str | None = None
    likes_count: int = 0
    comments_count: int = 0
    shares_count: int = 0
    views_count: int = 0
    ranking_score: float | None = None
    is_liked: bool = False
    age_in_hours: int | None = None
    time_ago: str | None = None


class Pagination(BaseModel):
    current_page: int = 1
    limit: int
    has_next_page: bool = False
    next_last_post_id: str | None = None
    total_fetched: int = 0


class FeedPage(BaseModel):
    posts: list[FeedPost] = Field(default_factory=list)
    pagination: Pagination
    cached: bool = False
