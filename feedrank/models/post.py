from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedrank.utils import ensure_aware, normalize_tags

ENGAGEMENT_FIELDS = ("likes_count", "comments_count", "shares_count", "views_count")


class Candidate(BaseModel):
    """
    A post considered for ranking.

    Records coming from the content store are loosely shaped, so every
    engagement counter defaults to zero and bad values are coerced instead of
    rejected. Only the identifier is mandatory. Extra fields are carried
    through untouched for rendering.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    author_id: str | None = None
    likes_count: int = 0
    comments_count: int = 0
    shares_count: int = 0
    views_count: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None or value == "":
            raise ValueError("candidate id is required")
        return str(value)

    @field_validator("author_id", mode="before")
    @classmethod
    def _coerce_author(cls, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get("id") or value.get("_id")
            return str(value) if value is not None else None
        return str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        if isinstance(value, (list, tuple, set, frozenset, str)):
            return normalize_tags(value)
        return []

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> datetime | None:
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value) if value is not None else None

    @field_validator(*ENGAGEMENT_FIELDS, mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError, OverflowError):
            return 0
        return max(count, 0)

    @staticmethod
    def malformed_fields(record: Any) -> list[str]:
        """Fields of a raw record that will fall back to defaults (missing or unusable)."""
        if isinstance(record, Candidate):
            return [] if record.created_at is not None else ["created_at"]
        if not isinstance(record, dict):
            return ["record"]

        bad = []
        for name in ENGAGEMENT_FIELDS:
            value = record.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                bad.append(name)
        created = record.get("created_at")
        if not isinstance(created, datetime):
            if not isinstance(created, str):
                bad.append("created_at")
            else:
                try:
                    datetime.fromisoformat(created.replace("Z", "+00:00"))
                except ValueError:
                    bad.append("created_at")
        return bad

    def total_engagement(self) -> int:
        return self.likes_count + self.comments_count + self.shares_count


class ScoredCandidate(BaseModel):
    """Candidate plus its per-request scores. Never persisted."""

    candidate: Candidate
    personalization_score: float = 0.0
    recency_score: float = 0.0
    popularity_score: float = 0.0
    ranking_score: float = 0.0
    personalized_for: Literal["user", "general"] = "general"

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def tags(self) -> list[str]:
        return self.candidate.tags


class CandidateFilter(BaseModel):
    """Query shape handed to the content store."""

    tags: list[str] = Field(default_factory=list)
    exclude_author_id: str | None = None
    created_before: datetime | None = None
    created_after: datetime | None = None
    # reference time for trending order, defaults to now
    as_of: datetime | None = None
    sort_by: Literal["ranked", "recent", "popular", "trending"] = "recent"

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)
