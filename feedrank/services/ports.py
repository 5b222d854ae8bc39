"""Collaborator ports: the narrow interfaces the ranking engine depends on."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable, Sequence
from typing import Any, TypeVar

from feedrank.core.config import settings
from feedrank.core.exceptions import UpstreamUnavailable
from feedrank.models.post import Candidate, CandidateFilter
from feedrank.models.tag_profile import SimilarUser, TagPreferenceProfile

CandidateRecord = Candidate | dict[str, Any]
T = TypeVar("T")


class ContentStore(ABC):
    """Source of candidate posts."""

    @abstractmethod
    async def find_candidates(
        self,
        candidate_filter: CandidateFilter,
        exclude_ids: set[str],
        fetch_limit: int,
    ) -> Sequence[CandidateRecord]:
        """
        Return at most `fetch_limit` active posts matching the filter.

        The cut must honour `sort_by`: for "trending" the store orders every
        post in the window by trending score before applying the limit.
        """
        ...

    @abstractmethod
    async def find_by_id(self, post_id: str) -> CandidateRecord | None:
        """Return a single post, used for cursor resolution and like events."""
        ...


class LikeLog(ABC):
    """Read access to the like history."""

    @abstractmethod
    async def count_recent_tag_engagements(self, user_id: str, window_days: int) -> dict[str, int]:
        """Tag → number of likes by the user inside the window."""
        ...

    @abstractmethod
    async def is_liked_by_user(self, user_id: str, post_ids: Sequence[str]) -> dict[str, bool]:
        """Post id → whether the user currently likes it."""
        ...


class ProfileStore(ABC):
    """Persistence for tag preference profiles."""

    @abstractmethod
    async def upsert_tag_weights(self, user_id: str, tags: Iterable[str], boost_factor: float = 1.0) -> None:
        """Atomically increment-or-insert tag weights for one user."""
        ...

    @abstractmethod
    async def load_profile(self, user_id: str) -> TagPreferenceProfile:
        """Return the user's profile, empty if none exists yet."""
        ...

    @abstractmethod
    async def find_users_sharing_tags(
        self, tags: Iterable[str], exclude_user_id: str, min_overlap: int, limit: int
    ) -> list[SimilarUser]:
        """Other users whose profiles hold at least `min_overlap` of `tags`, largest overlap first."""
        ...


async def call_upstream(op: Awaitable[T], collaborator: str, timeout: float | None = None) -> T:
    """Await a mandatory collaborator call; any failure or timeout becomes UpstreamUnavailable."""
    try:
        return await asyncio.wait_for(op, timeout=timeout or settings.UPSTREAM_TIMEOUT_SECONDS)
    except UpstreamUnavailable:
        raise
    except asyncio.TimeoutError as exc:
        raise UpstreamUnavailable(collaborator, f"{collaborator} timed out") from exc
    except Exception as exc:
        raise UpstreamUnavailable(collaborator, f"{collaborator} failed: {exc}") from exc
