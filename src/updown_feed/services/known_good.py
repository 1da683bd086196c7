"""Known-good like and comment counts per post.

The backend reads are eventually consistent: a feed fetch can return a lower
count (often zero) for a post whose higher count the client has already seen.
The cache records the highest count observed for each post during the process
lifetime and lifts stale values back up before they reach the UI.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from updown_feed.schemas import Post


@dataclass
class KnownGoodCount:
    """Highest like and comment counts observed for one post."""

    like_count: int = 0
    comment_count: int = 0


class KnownGoodCounterCache:
    """Process-lifetime high-water marks for post counters.

    Like and comment counts are tracked independently and only ever move up.
    There is no persistence and no eviction.
    """

    def __init__(self) -> None:
        self._entries: dict[str, KnownGoodCount] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, post_id: object) -> bool:
        return post_id in self._entries

    def get(self, post_id: str) -> KnownGoodCount | None:
        entry = self._entries.get(post_id)
        if entry is None:
            return None
        return KnownGoodCount(entry.like_count, entry.comment_count)

    def record(
        self,
        post_id: str,
        *,
        like_count: int | None = None,
        comment_count: int | None = None,
    ) -> None:
        """Raise the cached counts for ``post_id`` to the observed values.

        Zero and missing observations never create an entry.
        """
        like = like_count or 0
        comment = comment_count or 0
        if like <= 0 and comment <= 0:
            return
        entry = self._entries.get(post_id)
        if entry is None:
            entry = self._entries[post_id] = KnownGoodCount()
        entry.like_count = max(entry.like_count, like)
        entry.comment_count = max(entry.comment_count, comment)

    def observe(self, post: Post) -> None:
        self.record(post.id, like_count=post.like_count, comment_count=post.comment_count)

    def reconcile(self, posts: Iterable[Post]) -> list[Post]:
        """Lift stale counts to the known-good values, then learn from the input.

        Posts whose counts are already at least the cached values are passed
        through as the same objects so upstream diffing stays cheap.
        """
        incoming = list(posts)
        result: list[Post] = []
        for post in incoming:
            cached = self._entries.get(post.id)
            if cached is None:
                result.append(post)
                continue
            final_like = max(post.like_count or 0, cached.like_count)
            final_comment = max(post.comment_count or 0, cached.comment_count)
            if final_like != (post.like_count or 0) or final_comment != (post.comment_count or 0):
                result.append(
                    post.model_copy(
                        update={"like_count": final_like, "comment_count": final_comment}
                    )
                )
            else:
                result.append(post)

        for post in incoming:
            self.observe(post)
        return result
