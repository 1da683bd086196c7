"""Viewer actions on feed posts: likes and deletion."""

from __future__ import annotations

import logging

from updown_feed.services.backend import BackendClient, BackendError
from updown_feed.services.feed_store import FeedStore

logger = logging.getLogger(__name__)


class PostInteractions:
    """Applies the viewer's post actions to the shared FeedStore."""

    def __init__(self, backend: BackendClient, feed_store: FeedStore) -> None:
        self._backend = backend
        self._feed = feed_store

    async def toggle_like(self, post_id: str, viewer_id: str) -> bool:
        """Like or unlike a post.

        The new state is shown before the request is sent. On success the state is
        confirmed through ``set_like_status``; on failure the previous state is put
        back exactly.

        Returns:
            True if the backend accepted the change
        """
        post = self._feed.get(post_id)
        if post is None:
            return False

        liked = not bool(post.is_liked_by_current_user)
        count = max(0, (post.like_count or 0) + (1 if liked else -1))
        previous = self._feed.stage_like_status(post_id, liked, count)
        if previous is None:
            return False

        try:
            if liked:
                await self._backend.like_post(post_id, viewer_id)
            else:
                await self._backend.unlike_post(post_id, viewer_id)
        except BackendError as exc:
            logger.warning("Like toggle on post %s failed; reverting: %s", post_id, exc)
            self._feed.restore_like_status(post_id, previous)
            return False

        current = self._feed.get(post_id)
        confirmed = current.like_count if current is not None and current.like_count is not None else count
        self._feed.set_like_status(post_id, liked, confirmed)
        return True

    async def delete_post(self, post_id: str) -> bool:
        """Delete a post on the backend, then drop it from the feed."""
        try:
            await self._backend.delete_post(post_id)
        except BackendError as exc:
            logger.warning("Deleting post %s failed: %s", post_id, exc)
            return False
        await self._feed.remove_post(post_id)
        return True
