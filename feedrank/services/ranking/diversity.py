import random
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from feedrank.core.constants import DIVERSITY_SIMILARITY_THRESHOLD

T = TypeVar("T")


def jaccard_similarity(tags_a: Iterable[str] | None, tags_b: Iterable[str] | None) -> float:
    """Calculate Jaccard similarity between two tag collections (case-insensitive)."""
    set_a = {t.lower() for t in (tags_a or []) if isinstance(t, str)}
    set_b = {t.lower() for t in (tags_b or []) if isinstance(t, str)}
    if not set_a or not set_b:
        return 0.0

    intersection = len(set_a & set_b)
    union = len(set_a | set_b)
    return intersection / union if union > 0 else 0.0


def _default_tags(post: Any) -> Iterable[str]:
    if isinstance(post, dict):
        return post.get("tags") or []
    return getattr(post, "tags", None) or []


class DiversityReranker:
    """
    Spreads out near-duplicate posts in an already ranked list.

    The top post always stays first. At each later slot, with probability
    `diversity_factor`, the best-ranked post whose tags differ enough from the
    previous slot jumps ahead; otherwise ranking order is kept.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        tags_of: Callable[[Any], Iterable[str]] = _default_tags,
        similarity_threshold: float = DIVERSITY_SIMILARITY_THRESHOLD,
    ):
        self.rng = rng or random.Random()
        self.tags_of = tags_of
        self.similarity_threshold = similarity_threshold

    def diversify(self, ranked: Sequence[T], diversity_factor: float) -> list[T]:
        if len(ranked) <= 1 or diversity_factor <= 0:
            return list(ranked)

        tag_sets = [self.tags_of(post) for post in ranked]
        remaining = list(range(1, len(ranked)))  # indices, kept in rank order
        order = [0]

        while remaining:
            last_tags = tag_sets[order[-1]]
            draw = self.rng.random()

            pick_pos = 0
            if draw < diversity_factor:
                for pos, idx in enumerate(remaining):
                    if jaccard_similarity(last_tags, tag_sets[idx]) < self.similarity_threshold:
                        pick_pos = pos
                        break

            order.append(remaining.pop(pick_pos))

        return [ranked[i] for i in order]
