import pytest

from tests.factories import VIEWER_ID, make_post
from updown_feed.services.backend import BackendError
from updown_feed.services.interactions import PostInteractions


@pytest.mark.asyncio
async def test_like_is_shown_before_backend_answers(store, backend):
    backend.get_feed.return_value = [make_post("p1", like_count=3)]
    await store.refresh(VIEWER_ID)
    seen = {}

    async def like_post(post_id, user_id):
        post = store.get(post_id)
        seen["state"] = (post.is_liked_by_current_user, post.like_count)

    backend.like_post.side_effect = like_post
    interactions = PostInteractions(backend, store)

    assert await interactions.toggle_like("p1", VIEWER_ID) is True

    assert seen["state"] == (True, 4)
    post = store.get("p1")
    assert (post.is_liked_by_current_user, post.like_count) == (True, 4)
    assert store.counters.get("p1").like_count == 4


@pytest.mark.asyncio
async def test_failed_like_restores_previous_state(store, backend):
    backend.get_feed.return_value = [make_post("p1", like_count=3)]
    await store.refresh(VIEWER_ID)
    backend.like_post.side_effect = BackendError("offline")
    interactions = PostInteractions(backend, store)

    assert await interactions.toggle_like("p1", VIEWER_ID) is False

    post = store.get("p1")
    assert (post.is_liked_by_current_user, post.like_count) == (False, 3)
    assert store.counters.get("p1").like_count == 3
    backend.like_post.assert_awaited_once_with("p1", VIEWER_ID)


@pytest.mark.asyncio
async def test_unlike_lowers_count_on_screen(store, backend):
    backend.get_feed.return_value = [make_post("p2", like_count=5, is_liked_by_current_user=True)]
    await store.refresh(VIEWER_ID)
    interactions = PostInteractions(backend, store)

    assert await interactions.toggle_like("p2", VIEWER_ID) is True

    post = store.get("p2")
    assert (post.is_liked_by_current_user, post.like_count) == (False, 4)
    assert store.counters.get("p2").like_count == 5
    backend.unlike_post.assert_awaited_once_with("p2", VIEWER_ID)
    backend.like_post.assert_not_awaited()


@pytest.mark.asyncio
async def test_toggle_like_on_unknown_post_does_nothing(store, backend):
    interactions = PostInteractions(backend, store)

    assert await interactions.toggle_like("missing", VIEWER_ID) is False
    backend.like_post.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_post_removes_only_after_backend_success(store, backend):
    backend.get_feed.return_value = [make_post("p1"), make_post("p2")]
    await store.refresh(VIEWER_ID)
    interactions = PostInteractions(backend, store)

    backend.delete_post.side_effect = BackendError("denied")
    assert await interactions.delete_post("p1") is False
    assert store.get("p1") is not None

    backend.delete_post.side_effect = None
    assert await interactions.delete_post("p1") is True
    assert store.get("p1") is None
