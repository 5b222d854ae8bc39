"""TagProfileService unit tests"""

import pytest

from feedrank.core.exceptions import UpstreamUnavailable
from feedrank.models.tag_profile import TagPreferenceProfile
from feedrank.services.feed_cache import FeedCache
from feedrank.services.memory_store import InMemoryLikeLog
from feedrank.services.profile.service import TagProfileService
from tests.factories import make_post


class FailingLikeLog(InMemoryLikeLog):
    async def count_recent_tag_engagements(self, user_id, window_days):
        raise RuntimeError("like log down")


class FailingProfileStore:
    async def load_profile(self, user_id):
        raise ConnectionError("profile db down")


@pytest.mark.asyncio
async def test_record_like_updates_profile(profile_service, content_store, profile_store):
    content_store.add(make_post("p1", ["Cats", "dogs"]))

    applied = await profile_service.record_like("u1", "p1")

    assert applied == ["cats", "dogs"]
    profile = await profile_store.load_profile("u1")
    assert profile.entries["cats"].weight == 1.0


@pytest.mark.asyncio
async def test_record_like_invalidates_cached_feed(profile_service, content_store, feed_cache):
    content_store.add(make_post("p1", ["cats"]))
    key = FeedCache.key_for("u1", 1, 20)
    await feed_cache.backend.set(key, '{"posts": [], "pagination": {"limit": 20}}')
    await feed_cache.set_preferred_tags("u1", [("dogs", 1.0)])

    await profile_service.record_like("u1", "p1")

    assert await feed_cache.get(key) is None
    assert await feed_cache.get_preferred_tags("u1") is None


@pytest.mark.asyncio
async def test_like_on_untagged_or_unknown_post_is_noop(profile_service, content_store, profile_store):
    content_store.add(make_post("plain", []))

    assert await profile_service.record_like("u1", "plain") == []
    assert await profile_service.record_like("u1", "missing") == []
    assert (await profile_store.load_profile("u1")).is_empty()


@pytest.mark.asyncio
async def test_preferred_tags_blend_recent_likes(profile_service, content_store, like_log, profile_store, now):
    profile = TagPreferenceProfile()
    profile.record_engagement(["cats"], now=now)
    profile_store.put("u1", profile)
    content_store.add(make_post("p-dogs", ["dogs"]))
    like_log.add_like("u1", "p-dogs")

    preferred = await profile_service.get_preferred_tags("u1", use_cache=False)

    assert preferred == [("dogs", 2.0), ("cats", 1.0)]
    # stored profile untouched by the read-side merge
    assert "dogs" not in (await profile_store.load_profile("u1")).entries


@pytest.mark.asyncio
async def test_preferred_tags_are_cached(profile_service, profile_store):
    await profile_service.record_engagement("u1", ["cats"])
    first = await profile_service.get_preferred_tags("u1")

    # bypass the service so nothing invalidates the cached list
    await profile_store.upsert_tag_weights("u1", ["dogs"])

    assert await profile_service.get_preferred_tags("u1") == first
    assert ("dogs", 1.0) in await profile_service.get_preferred_tags("u1", use_cache=False)


@pytest.mark.asyncio
async def test_like_log_failure_degrades_to_stored_profile(profile_store, content_store):
    await profile_store.upsert_tag_weights("u1", ["cats"])
    service = TagProfileService(profile_store, FailingLikeLog(content_store), content_store)

    assert await service.get_preferred_tags("u1") == [("cats", 1.0)]


@pytest.mark.asyncio
async def test_profile_store_failure_is_fatal(like_log, content_store):
    service = TagProfileService(FailingProfileStore(), like_log, content_store)

    with pytest.raises(UpstreamUnavailable):
        await service.get_preferred_tags("u1")


@pytest.mark.asyncio
async def test_new_user_has_no_preferred_tags(profile_service):
    assert await profile_service.get_preferred_tags("brand-new") == []


@pytest.mark.asyncio
async def test_similar_users_ranked_by_shared_tags(profile_service, profile_store):
    await profile_store.upsert_tag_weights("me", ["cats", "dogs", "birds", "fish"])
    await profile_store.upsert_tag_weights("close", ["cats", "dogs", "birds"])
    await profile_store.upsert_tag_weights("far", ["cats", "cars"])
    await profile_store.upsert_tag_weights("stranger", ["cars"])

    similar = await profile_service.get_similar_users("me", limit=10, min_similarity=0.1)

    assert [(u.user_id, u.similarity_score) for u in similar] == [("close", 3), ("far", 1)]


@pytest.mark.asyncio
async def test_similar_users_respect_threshold_and_limit(profile_service, profile_store):
    await profile_store.upsert_tag_weights("me", ["cats", "dogs", "birds", "fish"])
    await profile_store.upsert_tag_weights("close", ["cats", "dogs"])
    await profile_store.upsert_tag_weights("far", ["cats"])
    await profile_store.upsert_tag_weights("also-close", ["birds", "fish"])

    # 4 tags * 0.5 requires two shared tags
    assert [u.user_id for u in await profile_service.get_similar_users("me", min_similarity=0.5)] == [
        "also-close",
        "close",
    ]
    assert len(await profile_service.get_similar_users("me", limit=1, min_similarity=0.1)) == 1


@pytest.mark.asyncio
async def test_user_without_profile_has_no_similar_users(profile_service, profile_store):
    await profile_store.upsert_tag_weights("other", ["cats"])

    assert await profile_service.get_similar_users("brand-new") == []
