"""Optimistic comment operations for the comment sheet of one post."""

from __future__ import annotations

import logging
import uuid

from updown_feed.schemas import Comment, CommentThread, KnownAuthor, UnknownAuthor
from updown_feed.services.backend import BackendClient, BackendError
from updown_feed.services.feed_store import FeedStore
from updown_feed.services.retry import retry_async
from updown_feed.services.threads import CommentThreadBuilder
from updown_feed.utils.timestamps import format_timestamp, utcnow

logger = logging.getLogger(__name__)


class CommentsController:
    """Owns the thread view of one post and keeps the feed's comment count in step.

    Local edits apply immediately; a failed backend call reverses them. Writes
    are never retried.
    """

    def __init__(
        self,
        post_id: str,
        backend: BackendClient,
        feed_store: FeedStore | None = None,
        *,
        builder: CommentThreadBuilder | None = None,
    ) -> None:
        self.post_id = post_id
        self._backend = backend
        self._feed = feed_store
        self.builder = builder if builder is not None else CommentThreadBuilder(post_id)

    @property
    def threads(self) -> tuple[CommentThread, ...]:
        return self.builder.threads

    def _count(self, delta: int, comment_id: str) -> None:
        if self._feed is not None:
            self._feed.apply_comment_delta(self.post_id, delta, comment_id)

    async def load(self, viewer_id: str) -> bool:
        """Fetch all comments and rebuild the threads.

        Returns:
            False if the fetch failed; the current threads are kept in that case
        """
        try:
            comments = await retry_async(
                lambda: self._backend.get_comments(self.post_id, viewer_id),
                label=f"Comment fetch for post {self.post_id}",
            )
        except BackendError as exc:
            logger.warning("Could not load comments for post %s: %s", self.post_id, exc)
            return False

        self.builder.rebuild(comments)
        await self.enrich_authors()
        return True

    async def enrich_authors(self) -> int:
        """Replace unknown comment authors with loaded profiles."""
        pending = [c for c in self.builder.comments() if isinstance(c.author, UnknownAuthor)]
        if not pending:
            return 0
        try:
            profiles = await self._backend.get_profiles(c.user_id for c in pending)
        except BackendError as exc:
            logger.warning("Comment author lookup failed for post %s: %s", self.post_id, exc)
            return 0

        authors = {profile.id: profile.to_author() for profile in profiles}
        updated = 0
        for comment in pending:
            author = authors.get(comment.user_id)
            if isinstance(author, KnownAuthor):
                current = self.builder.find(comment.id)
                if current is not None and self.builder.update(
                    current.model_copy(update={"author": author})
                ):
                    updated += 1
        return updated

    async def add_comment(
        self,
        viewer_id: str,
        content: str,
        *,
        parent_comment_id: str | None = None,
        author: KnownAuthor | None = None,
    ) -> Comment | None:
        """Show a new comment right away and post it.

        Returns:
            The comment, or None when the text was blank or the backend rejected it
        """
        text = content.strip()
        if not text:
            return None

        comment = Comment(
            id=str(uuid.uuid4()),
            post_id=self.post_id,
            user_id=viewer_id,
            content=text,
            parent_comment_id=parent_comment_id,
            created_at=format_timestamp(utcnow()),
            author=author or UnknownAuthor(),
        )
        self.builder.append(comment)
        self._count(1, comment.id)

        try:
            stored = await self._backend.add_comment(comment)
        except BackendError as exc:
            logger.warning("Comment on post %s failed; removing it: %s", self.post_id, exc)
            self.builder.remove(comment.id)
            self._count(-1, comment.id)
            return None

        # Keep the server's row (its created_at) in place of the local draft.
        current = self.builder.find(comment.id)
        if stored.id != comment.id or current is None:
            return comment
        stored = stored.model_copy(
            update={
                "like_count": current.like_count,
                "is_liked_by_current_user": current.is_liked_by_current_user,
            }
        )
        self.builder.update(stored)
        return stored

    async def delete_comment(self, comment_id: str) -> bool:
        """Delete a comment on the backend, then drop it locally."""
        try:
            await self._backend.delete_comment(comment_id)
        except BackendError as exc:
            logger.warning("Deleting comment %s failed: %s", comment_id, exc)
            return False

        for removed in self.builder.remove(comment_id):
            self._count(-1, removed.id)
        return True

    async def toggle_like(self, comment_id: str, viewer_id: str) -> bool:
        """Like or unlike a comment optimistically; undo the toggle if the call fails."""
        updated = self.builder.toggle_like(comment_id, viewer_id)
        if updated is None:
            return False

        try:
            if updated.is_liked_by_current_user:
                await self._backend.like_comment(comment_id, viewer_id)
            else:
                await self._backend.unlike_comment(comment_id, viewer_id)
        except BackendError as exc:
            logger.warning("Comment like toggle on %s failed; reverting: %s", comment_id, exc)
            self.builder.toggle_like(comment_id, viewer_id)
            return False
        return True

    # --- Realtime -------------------------------------------------------------------
    def on_comment_added(self, comment: Comment) -> bool:
        if comment.post_id != self.post_id:
            return False
        return self.builder.append(comment)

    def on_comment_deleted(self, comment_id: str) -> list[Comment]:
        return self.builder.remove(comment_id)

    def on_comment_like_delta(
        self, comment_id: str, actor_id: str, delta: int, viewer_id: str
    ) -> bool:
        return self.builder.apply_realtime_like_delta(comment_id, actor_id, delta, viewer_id)
