from collections.abc import Iterable, Mapping
from datetime import datetime

from pydantic import BaseModel, Field

from feedrank.core.constants import MAX_PROFILE_TAGS, TAG_RECENCY_BOOST_STEPS
from feedrank.utils import ensure_aware, normalize_tags, now_utc


class TagEntry(BaseModel):
    weight: float = Field(default=0.0, ge=0.0)
    last_updated_at: datetime = Field(default_factory=now_utc)


class TagPreferenceProfile(BaseModel):
    """
    Bounded, additive tag-affinity profile owned by a single user.

    Weights only grow on engagement; the profile never holds more than
    MAX_PROFILE_TAGS entries. Recency is applied at read time only, so the
    stored weights stay a plain accumulation.
    """

    entries: dict[str, TagEntry] = Field(default_factory=dict, description="Lowercase tag → weight entry")

    def record_engagement(
        self,
        tags: Iterable[str],
        boost_factor: float = 1.0,
        now: datetime | None = None,
    ) -> None:
        """Add `boost_factor` to every tag's weight, inserting unseen tags, then enforce the size cap."""
        normalized = normalize_tags(tags)
        # also rejects NaN
        if not normalized or not boost_factor > 0:
            return

        now = now or now_utc()
        for tag in normalized:
            entry = self.entries.get(tag)
            if entry is not None:
                entry.weight += 1 * boost_factor
                entry.last_updated_at = now
            else:
                self.entries[tag] = TagEntry(weight=1 * boost_factor, last_updated_at=now)

        if len(self.entries) > MAX_PROFILE_TAGS:
            self._evict()

    def _evict(self) -> None:
        # Heaviest first, most recently touched wins ties
        kept = sorted(
            self.entries.items(),
            key=lambda kv: (kv[1].weight, ensure_aware(kv[1].last_updated_at)),
            reverse=True,
        )[:MAX_PROFILE_TAGS]
        self.entries = dict(kept)

    @staticmethod
    def recency_boost(last_updated_at: datetime | None, now: datetime | None = None) -> float:
        if last_updated_at is None:
            return 0.0
        now = now or now_utc()
        days_since = (ensure_aware(now) - ensure_aware(last_updated_at)).total_seconds() / 86400

        for max_days, boost in TAG_RECENCY_BOOST_STEPS:
            if days_since <= max_days:
                return boost
        return 0.0

    def _ranked(self, recency_bias_enabled: bool, now: datetime | None) -> list[tuple[str, TagEntry, float]]:
        now = now or now_utc()
        ranked = []
        for tag, entry in self.entries.items():
            effective = entry.weight
            if recency_bias_enabled:
                effective += self.recency_boost(entry.last_updated_at, now)
            ranked.append((tag, entry, effective))
        # sorted() is stable, so equal scores keep insertion order
        return sorted(ranked, key=lambda x: x[2], reverse=True)

    def top_tags(
        self, limit: int, recency_bias_enabled: bool = True, now: datetime | None = None
    ) -> list[tuple[str, float]]:
        """Get top N tags by weight plus recency boost."""
        if limit <= 0:
            return []
        return [(tag, effective) for tag, _, effective in self._ranked(recency_bias_enabled, now)[:limit]]

    def weighted_tags(
        self, limit: int, recency_bias_enabled: bool = True, now: datetime | None = None
    ) -> list[tuple[str, float]]:
        """Same ordering as top_tags but yields raw weights, the shape personalization scoring consumes."""
        if limit <= 0:
            return []
        return [(tag, entry.weight) for tag, entry, _ in self._ranked(recency_bias_enabled, now)[:limit]]

    def merge_recent_activity(
        self,
        recent_tag_counts: Mapping[str, float],
        multiplier: float = 2.0,
        now: datetime | None = None,
    ) -> "TagPreferenceProfile":
        """
        Blend a recent activity window into a transient copy of the profile.

        The receiver is left untouched; the returned profile is a read-side
        ranking view and is not subject to the size cap.
        """
        merged = self.model_copy(deep=True)
        if not recent_tag_counts:
            return merged

        now = now or now_utc()
        for raw_tag, count in recent_tag_counts.items():
            tags = normalize_tags([raw_tag])
            if not tags or count is None or count <= 0:
                continue
            tag = tags[0]
            boost = float(count) * multiplier
            entry = merged.entries.get(tag)
            if entry is not None:
                entry.weight += boost
                entry.last_updated_at = now
            else:
                merged.entries[tag] = TagEntry(weight=boost, last_updated_at=now)
        return merged

    def is_empty(self) -> bool:
        return not self.entries


class SimilarUser(BaseModel):
    user_id: str
    similarity_score: int = Field(description="Number of the caller's preferred tags this user has engaged with")


def rank_by_tag_overlap(
    profiles: Iterable[tuple[str, TagPreferenceProfile]],
    tags: Iterable[str],
    exclude_user_id: str,
    min_overlap: int,
    limit: int,
) -> list[SimilarUser]:
    """Users sharing at least `min_overlap` of `tags`, largest overlap first, ties by user id."""
    wanted = set(normalize_tags(tags))
    if not wanted or limit <= 0:
        return []

    matches = []
    for user_id, profile in profiles:
        if user_id == exclude_user_id:
            continue
        overlap = len(wanted.intersection(profile.entries))
        if overlap > 0 and overlap >= min_overlap:
            matches.append(SimilarUser(user_id=user_id, similarity_score=overlap))
    matches.sort(key=lambda m: (-m.similarity_score, m.user_id))
    return matches[:limit]
