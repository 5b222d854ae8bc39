"""TagPreferenceProfile unit tests"""

from datetime import timedelta

from feedrank.core.constants import MAX_PROFILE_TAGS
from feedrank.models.tag_profile import TagEntry, TagPreferenceProfile


def test_record_engagement_inserts_and_increments(now):
    profile = TagPreferenceProfile()

    profile.record_engagement(["Cats", "dogs"], now=now)
    profile.record_engagement(["cats"], boost_factor=2.5, now=now)

    assert profile.entries["cats"].weight == 3.5
    assert profile.entries["dogs"].weight == 1.0
    assert profile.entries["cats"].last_updated_at == now


def test_record_engagement_with_no_tags_is_noop():
    profile = TagPreferenceProfile()

    profile.record_engagement([])
    profile.record_engagement(["  "])

    assert profile.is_empty()


def test_record_engagement_ignores_invalid_boost(now):
    profile = TagPreferenceProfile()

    profile.record_engagement(["cats"], boost_factor=float("nan"), now=now)
    profile.record_engagement(["cats"], boost_factor=0, now=now)
    profile.record_engagement(["cats"], boost_factor=-1, now=now)

    assert profile.is_empty()


def test_weights_never_decrease_on_engagement(now):
    profile = TagPreferenceProfile()
    previous = 0.0
    for i in range(5):
        profile.record_engagement(["python", f"tag-{i}"], now=now)
        assert profile.entries["python"].weight > previous
        previous = profile.entries["python"].weight


def test_profile_is_bounded_and_keeps_heaviest_then_newest(now):
    """Eviction keeps the heaviest tags, preferring recently touched ones on ties."""
    old = now - timedelta(days=10)
    profile = TagPreferenceProfile()
    profile.record_engagement([f"old-{i}" for i in range(50)], now=old)
    for _ in range(3):
        profile.record_engagement(["heavy"], now=old)

    new_tags = [f"new-{i}" for i in range(60)]
    profile.record_engagement(new_tags, now=now)

    assert len(profile.entries) == MAX_PROFILE_TAGS
    assert profile.entries["heavy"].weight == 3.0
    assert all(tag in profile.entries for tag in new_tags)
    assert sum(1 for tag in profile.entries if tag.startswith("old-")) == 39


def test_recency_boost_steps(now):
    assert TagPreferenceProfile.recency_boost(now - timedelta(days=7), now) == 5.0
    assert TagPreferenceProfile.recency_boost(now - timedelta(days=8), now) == 2.0
    assert TagPreferenceProfile.recency_boost(now - timedelta(days=31), now) == 1.0
    assert TagPreferenceProfile.recency_boost(now - timedelta(days=91), now) == 0.0


def test_top_tags_applies_recency_boost(now):
    profile = TagPreferenceProfile(
        entries={
            "stale": TagEntry(weight=3.0, last_updated_at=now - timedelta(days=60)),
            "fresh": TagEntry(weight=1.0, last_updated_at=now),
        }
    )

    assert profile.top_tags(2, now=now) == [("fresh", 6.0), ("stale", 4.0)]
    assert profile.top_tags(2, recency_bias_enabled=False, now=now) == [("stale", 3.0), ("fresh", 1.0)]
    # raw weights, same ordering
    assert profile.weighted_tags(2, now=now) == [("fresh", 1.0), ("stale", 3.0)]


def test_top_tags_with_non_positive_limit(now):
    profile = TagPreferenceProfile()
    profile.record_engagement(["cats"], now=now)

    assert profile.top_tags(0, now=now) == []
    assert profile.weighted_tags(-1, now=now) == []


def test_merge_recent_activity_returns_new_profile(now):
    profile = TagPreferenceProfile()
    profile.record_engagement(["cats"], now=now - timedelta(days=40))

    merged = profile.merge_recent_activity({"cats": 2, "Dogs": 1, "birds": 0}, multiplier=2.0, now=now)

    assert merged.entries["cats"].weight == 5.0
    assert merged.entries["cats"].last_updated_at == now
    assert merged.entries["dogs"].weight == 2.0
    assert "birds" not in merged.entries
    # receiver untouched
    assert profile.entries["cats"].weight == 1.0
    assert "dogs" not in profile.entries


def test_profile_json_round_trip(now):
    profile = TagPreferenceProfile()
    profile.record_engagement(["cats", "dogs"], now=now)

    restored = TagPreferenceProfile.model_validate_json(profile.model_dump_json())

    assert restored.weighted_tags(10, now=now) == profile.weighted_tags(10, now=now)
