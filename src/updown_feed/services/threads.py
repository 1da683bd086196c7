"""Two-level comment threads for a single post."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from updown_feed.schemas import Comment, CommentThread
from updown_feed.utils.timestamps import sort_oldest_first

logger = logging.getLogger(__name__)

# (thread index, reply index); reply index is None for the thread root
_Location = tuple[int, int | None]


class CommentThreadBuilder:
    """Maintains root comments with their replies, always displayed two levels deep.

    Replies to replies are attached to the root's reply list rather than nested
    further. Every comment id appears at most once across all threads.
    """

    def __init__(self, post_id: str | None = None) -> None:
        self.post_id = post_id
        self._threads: list[CommentThread] = []

    @property
    def threads(self) -> tuple[CommentThread, ...]:
        """Snapshot of the current threads; later edits do not affect it."""
        return tuple(
            CommentThread(root=thread.root, replies=list(thread.replies))
            for thread in self._threads
        )

    @property
    def comment_count(self) -> int:
        return sum(thread.size for thread in self._threads)

    def _locate(self, comment_id: str) -> _Location | None:
        for thread_index, thread in enumerate(self._threads):
            if thread.root.id == comment_id:
                return thread_index, None
            for reply_index, reply in enumerate(thread.replies):
                if reply.id == comment_id:
                    return thread_index, reply_index
        return None

    def _at(self, location: _Location) -> Comment:
        thread_index, reply_index = location
        thread = self._threads[thread_index]
        return thread.root if reply_index is None else thread.replies[reply_index]

    def _put(self, location: _Location, comment: Comment) -> None:
        thread_index, reply_index = location
        thread = self._threads[thread_index]
        if reply_index is None:
            thread.root = comment
        else:
            thread.replies[reply_index] = comment

    def find(self, comment_id: str) -> Comment | None:
        location = self._locate(comment_id)
        return None if location is None else self._at(location)

    def contains(self, comment_id: str) -> bool:
        return self._locate(comment_id) is not None

    def comments(self) -> list[Comment]:
        """All comments in display order."""
        return [comment for thread in self._threads for comment in (thread.root, *thread.replies)]

    def update(self, comment: Comment) -> bool:
        """Swap in a new version of a comment already present, keeping its position."""
        location = self._locate(comment.id)
        if location is None:
            return False
        self._put(location, comment)
        return True

    def can_reply(self, comment_id: str) -> bool:
        """Roots and direct replies to roots accept replies; deeper replies do not."""
        location = self._locate(comment_id)
        if location is None:
            return False
        thread_index, reply_index = location
        if reply_index is None:
            return True
        thread = self._threads[thread_index]
        return thread.replies[reply_index].parent_comment_id == thread.root.id

    def rebuild(self, comments: Iterable[Comment]) -> None:
        """Replace all threads from a flat comment list."""
        ordered: list[Comment] = []
        by_id: dict[str, Comment] = {}
        for comment in sort_oldest_first(comments):
            if comment.id not in by_id:
                by_id[comment.id] = comment
                ordered.append(comment)

        def top_of(comment: Comment) -> str:
            # Walk up to the oldest loaded ancestor; a missing parent makes the
            # comment its own root.
            seen: set[str] = set()
            current = comment
            while (
                current.parent_comment_id is not None
                and current.parent_comment_id in by_id
                and current.id not in seen
            ):
                seen.add(current.id)
                current = by_id[current.parent_comment_id]
            return current.id

        tops = {comment.id: top_of(comment) for comment in ordered}
        threads: dict[str, CommentThread] = {}
        for comment in ordered:
            if tops[comment.id] == comment.id:
                threads[comment.id] = CommentThread(root=comment)
        for comment in ordered:
            top = tops[comment.id]
            if top != comment.id:
                threads[top].replies.append(comment)
        self._threads = list(threads.values())

    def append(self, comment: Comment) -> bool:
        """Add a comment unless its id is already present.

        Returns:
            True if the comment was inserted
        """
        if self.contains(comment.id):
            return False
        if comment.parent_comment_id is None:
            self._threads.append(CommentThread(root=comment))
            return True
        return self.insert_reply(comment)

    def insert_reply(self, reply: Comment) -> bool:
        """Attach a reply to the thread holding its parent.

        The parent may be a root or an existing reply. When the parent is not
        loaded the reply starts a thread of its own.
        """
        if self.contains(reply.id):
            return False

        parent_id = reply.parent_comment_id
        target: CommentThread | None = None
        if parent_id is not None:
            target = next((t for t in self._threads if t.root.id == parent_id), None)
            if target is None:
                target = next(
                    (t for t in self._threads if any(r.id == parent_id for r in t.replies)),
                    None,
                )

        if target is None:
            logger.debug("Parent %s of reply %s not loaded; starting a new thread", parent_id, reply.id)
            self._threads.append(CommentThread(root=reply))
            return True

        target.replies = sort_oldest_first([*target.replies, reply])
        return True

    def remove(self, comment_id: str) -> list[Comment]:
        """Remove one comment. Removing a root drops its whole thread.

        Returns:
            The comments that left the view, empty if the id was not found
        """
        location = self._locate(comment_id)
        if location is None:
            return []
        thread_index, reply_index = location
        if reply_index is None:
            thread = self._threads.pop(thread_index)
            return [thread.root, *thread.replies]
        return [self._threads[thread_index].replies.pop(reply_index)]

    def toggle_like(self, comment_id: str, actor_id: str | None = None) -> Comment | None:
        """Flip the viewer's like on a comment and adjust its count by one.

        Applying the same toggle again undoes it, which is how failed backend
        calls are rolled back.
        """
        location = self._locate(comment_id)
        if location is None:
            return None
        comment = self._at(location)
        liked = not comment.is_liked_by_current_user
        count = max(0, comment.like_count + (1 if liked else -1))
        updated = comment.model_copy(
            update={"is_liked_by_current_user": liked, "like_count": count}
        )
        self._put(location, updated)
        logger.debug("Comment %s like toggled by %s -> %s", comment_id, actor_id, liked)
        return updated

    def apply_realtime_like_delta(
        self, comment_id: str, actor_id: str, delta: int, viewer_id: str
    ) -> bool:
        """Apply a like change reported by the realtime channel.

        An event from the viewer whose like flag already matches is the echo of an
        optimistic toggle and is ignored.

        Returns:
            True if the comment changed
        """
        location = self._locate(comment_id)
        if location is None or delta == 0:
            return False
        comment = self._at(location)

        is_own = actor_id == viewer_id
        if is_own and comment.is_liked_by_current_user == (delta > 0):
            return False

        changes: dict[str, object] = {"like_count": max(0, comment.like_count + delta)}
        if is_own:
            changes["is_liked_by_current_user"] = delta > 0
        self._put(location, comment.model_copy(update=changes))
        return True
