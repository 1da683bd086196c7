"""In-memory feed state reconciled against fetches, realtime deltas and user actions.

The FeedStore owns the ordered post list shared by every screen that shows
posts. Three sources update it:

- Full fetches and refreshes from the backend
- Realtime like and comment deltas
- Optimistic and confirmed results of the viewer's own actions

Every count that reaches the list goes through the KnownGoodCounterCache so a
stale read never lowers a count the viewer has already seen. All mutations run
synchronously on the event loop; readers get tuples of frozen posts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from typing import Protocol

from updown_feed.core.settings import settings
from updown_feed.schemas import KnownAuthor, Post
from updown_feed.services.backend import BackendClient, BackendError
from updown_feed.services.feed_cache import FeedCache, get_feed_cache
from updown_feed.services.known_good import KnownGoodCounterCache
from updown_feed.services.retry import retry_async
from updown_feed.utils.timestamps import sort_newest_first

# Configure logger for this module
logger = logging.getLogger(__name__)

LikeState = tuple[bool | None, int | None]


class PrefetchPriority(str, Enum):
    """Priority hint passed to the image prefetcher."""

    HIGH = "high"
    LOW = "low"


class ImagePrefetcher(Protocol):
    """Fire-and-forget image cache warmer supplied by the UI layer."""

    def prefetch(self, urls: Sequence[str], *, priority: PrefetchPriority) -> None: ...


class FeedStore:
    """Canonical ordered post list for the current viewer.

    Construct one per application session and share the reference between
    screens. Mutate only through the methods below so the known-good counts
    stay consistent everywhere.
    """

    def __init__(
        self,
        backend: BackendClient,
        *,
        counters: KnownGoodCounterCache | None = None,
        cache: FeedCache | None = None,
        prefetcher: ImagePrefetcher | None = None,
        freshness_seconds: float | None = None,
        page_size: int | None = None,
        load_more_delay_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            backend: REST client used for feed and profile reads.
            counters: Shared known-good counter cache. A fresh one is created if None.
            cache: Local persistent cache. Built from settings by ``get_feed_cache`` if None.
            prefetcher: Optional image prefetcher for visible pages.
            freshness_seconds: Window in which ``load_initial`` skips refetching.
            page_size: Number of posts revealed per page.
            load_more_delay_seconds: Delay before revealing another page.
            clock: Monotonic clock used for the freshness window.
        """
        self._backend = backend
        self.counters = counters if counters is not None else KnownGoodCounterCache()
        self._cache = cache if cache is not None else get_feed_cache()
        self._prefetcher = prefetcher
        self._freshness_seconds = (
            settings.feed_freshness_seconds if freshness_seconds is None else freshness_seconds
        )
        self._page_size = max(1, page_size if page_size is not None else settings.feed_page_size)
        self._load_more_delay = (
            settings.feed_load_more_delay_seconds
            if load_more_delay_seconds is None
            else load_more_delay_seconds
        )
        self._clock = clock

        self._posts: list[Post] = []
        self._viewer_id: str | None = None
        self._last_fetch: dict[str, float] = {}
        self._visible_count = self._page_size
        self._dispatched_seq = 0
        self._applied_seq = 0
        self._added_comment_ids: set[str] = set()
        self._deleted_comment_ids: set[str] = set()

    # --- Reads ----------------------------------------------------------------------
    @property
    def posts(self) -> tuple[Post, ...]:
        return tuple(self._posts)

    @property
    def viewer_id(self) -> str | None:
        return self._viewer_id

    @property
    def visible_posts(self) -> tuple[Post, ...]:
        return tuple(self._posts[: self._visible_count])

    @property
    def has_more(self) -> bool:
        return self._visible_count < len(self._posts)

    def get(self, post_id: str) -> Post | None:
        index = self._index(post_id)
        return None if index is None else self._posts[index]

    def is_fresh(self, viewer_id: str) -> bool:
        """Return True if a fetch for ``viewer_id`` succeeded within the freshness window."""
        fetched_at = self._last_fetch.get(viewer_id)
        if fetched_at is None or not self._posts or viewer_id != self._viewer_id:
            return False
        return self._clock() - fetched_at < self._freshness_seconds

    def _index(self, post_id: str) -> int | None:
        for index, post in enumerate(self._posts):
            if post.id == post_id:
                return index
        return None

    # --- Fetch and refresh ----------------------------------------------------------
    async def load_initial(self, viewer_id: str) -> None:
        """Show cached posts immediately, then replace them with a fresh fetch.

        A no-op when the last successful fetch for this viewer is still fresh.
        Errors and cancellation leave the held list untouched.
        """
        if self.is_fresh(viewer_id):
            logger.debug("Feed for %s is fresh; skipping fetch", viewer_id)
            return

        self._select_viewer(viewer_id)
        if not self._posts:
            cached = await self._cache.load(viewer_id)
            # A fetch may have filled the list while the cache was read.
            if cached and not self._posts and self._viewer_id == viewer_id:
                self._replace(sort_newest_first(self.counters.reconcile(cached)))
                logger.debug("Surfaced %d cached posts for %s", len(self._posts), viewer_id)

        await self._fetch_and_apply(viewer_id, keep_on_empty=False)

    async def refresh(self, viewer_id: str) -> bool:
        """Force a refetch. An empty response keeps the current list.

        Returns:
            True if the held list was replaced
        """
        self._select_viewer(viewer_id)
        return await self._fetch_and_apply(viewer_id, keep_on_empty=True)

    def _select_viewer(self, viewer_id: str) -> None:
        if self._viewer_id is not None and self._viewer_id != viewer_id:
            logger.info("Feed viewer changed from %s to %s", self._viewer_id, viewer_id)
            self._replace([])
            self._added_comment_ids.clear()
            self._deleted_comment_ids.clear()
        self._viewer_id = viewer_id

    async def _fetch_and_apply(self, viewer_id: str, *, keep_on_empty: bool) -> bool:
        self._dispatched_seq += 1
        seq = self._dispatched_seq

        try:
            fetched = await retry_async(
                lambda: self._backend.get_feed(viewer_id),
                label=f"Feed fetch for {viewer_id}",
            )
        except asyncio.CancelledError:
            logger.info("Feed fetch for %s cancelled; keeping %d posts", viewer_id, len(self._posts))
            raise
        except BackendError as exc:
            logger.warning(
                "Feed fetch for %s failed; keeping %d posts: %s", viewer_id, len(self._posts), exc
            )
            return False

        if seq < self._applied_seq or viewer_id != self._viewer_id:
            logger.info(
                "Discarding stale feed response %d for %s (applied %d)",
                seq,
                viewer_id,
                self._applied_seq,
            )
            return False
        self._applied_seq = seq

        if not fetched and keep_on_empty and self._posts:
            logger.warning(
                "Empty feed response for %s; keeping %d posts", viewer_id, len(self._posts)
            )
            return False

        merged = sort_newest_first(self.counters.reconcile(fetched))
        self._replace(merged)
        self._last_fetch[viewer_id] = self._clock()
        self._prefetch(self._posts[: self._page_size], PrefetchPriority.HIGH)
        self._prefetch(self._posts[self._page_size : 2 * self._page_size], PrefetchPriority.LOW)
        await self._cache.save(viewer_id, merged)
        return True

    def _replace(self, posts: Iterable[Post]) -> None:
        self._posts = list(posts)
        self._visible_count = max(self._page_size, min(self._visible_count, len(self._posts)))

    async def _persist(self) -> None:
        if self._viewer_id is not None:
            await self._cache.save(self._viewer_id, list(self._posts))

    # --- Pagination -----------------------------------------------------------------
    async def load_more(self) -> bool:
        """Reveal the next page of already-fetched posts.

        Returns:
            True if more posts became visible
        """
        if not self.has_more:
            return False
        if self._load_more_delay > 0:
            await asyncio.sleep(self._load_more_delay)

        start = self._visible_count
        self._visible_count = min(len(self._posts), start + self._page_size)
        end = self._visible_count
        self._prefetch(self._posts[start:end], PrefetchPriority.HIGH)
        self._prefetch(self._posts[end : end + self._page_size], PrefetchPriority.LOW)
        return end > start

    def _prefetch(self, posts: Sequence[Post], priority: PrefetchPriority) -> None:
        if self._prefetcher is None:
            return
        urls = list(dict.fromkeys(url for post in posts for url in post.media_urls))
        if not urls:
            return
        try:
            self._prefetcher.prefetch(urls, priority=priority)
        except Exception as exc:  # pragma: no cover - prefetch is best effort
            logger.warning("Image prefetch failed: %s", exc)

    # --- Counter updates ------------------------------------------------------------
    def apply_like_delta(self, post_id: str, actor_id: str, delta: int, viewer_id: str) -> None:
        """Apply a realtime like (+1) or unlike (-1) event."""
        index = self._index(post_id)
        if index is None or delta == 0:
            return
        post = self._posts[index]

        is_own = actor_id == viewer_id
        if is_own and post.is_liked_by_current_user == (delta > 0):
            logger.debug("Ignoring echo of own like change on post %s", post_id)
            return

        new_count = max(0, (post.like_count or 0) + delta)
        changes: dict[str, object] = {"like_count": new_count}
        if is_own:
            changes["is_liked_by_current_user"] = delta > 0
        self._posts[index] = post.model_copy(update=changes)
        if new_count > 0:
            self.counters.record(post_id, like_count=new_count)

    def apply_comment_delta(self, post_id: str, delta: int, comment_id: str | None = None) -> None:
        """Adjust the comment count of a post, floored at zero.

        When ``comment_id`` is given, each comment is counted at most once as added
        and once as deleted, so realtime echoes of local changes are ignored.
        """
        index = self._index(post_id)
        if index is None or delta == 0:
            return

        if comment_id is not None:
            if delta > 0:
                if comment_id in self._added_comment_ids:
                    return
                self._added_comment_ids.add(comment_id)
                self._deleted_comment_ids.discard(comment_id)
            else:
                if comment_id in self._deleted_comment_ids:
                    return
                self._deleted_comment_ids.add(comment_id)
                self._added_comment_ids.discard(comment_id)

        post = self._posts[index]
        new_count = max(0, (post.comment_count or 0) + delta)
        self._posts[index] = post.model_copy(update={"comment_count": new_count})
        self.counters.record(post_id, comment_count=new_count)

    def stage_like_status(self, post_id: str, is_liked: bool, like_count: int) -> LikeState | None:
        """Apply an unconfirmed like state without touching the known-good cache.

        Returns:
            The previous ``(is_liked, like_count)`` for rollback, or None if absent
        """
        index = self._index(post_id)
        if index is None:
            return None
        post = self._posts[index]
        previous = (post.is_liked_by_current_user, post.like_count)
        self._posts[index] = post.model_copy(
            update={"is_liked_by_current_user": is_liked, "like_count": max(0, like_count)}
        )
        return previous

    def restore_like_status(self, post_id: str, previous: LikeState) -> None:
        """Put back a like state returned by :meth:`stage_like_status`."""
        index = self._index(post_id)
        if index is None:
            return
        is_liked, like_count = previous
        self._posts[index] = self._posts[index].model_copy(
            update={"is_liked_by_current_user": is_liked, "like_count": like_count}
        )

    def set_like_status(self, post_id: str, is_liked: bool, like_count: int) -> bool:
        """Apply a confirmed like state.

        The post fields are overwritten even when lower than the known-good value;
        the known-good cache itself only moves up.
        """
        index = self._index(post_id)
        if index is None:
            return False
        count = max(0, like_count)
        self._posts[index] = self._posts[index].model_copy(
            update={"is_liked_by_current_user": is_liked, "like_count": count}
        )
        self.counters.record(post_id, like_count=count)
        return True

    # --- Membership -----------------------------------------------------------------
    async def remove_post(self, post_id: str) -> bool:
        index = self._index(post_id)
        if index is None:
            return False
        del self._posts[index]
        await self._persist()
        return True

    def insert_at_top(self, post: Post) -> bool:
        """Insert a post missing from the current window, e.g. from a notification link."""
        if self._index(post.id) is not None:
            return False
        (reconciled,) = self.counters.reconcile([post])
        self._posts.insert(0, reconciled)
        return True

    # --- Author enrichment ----------------------------------------------------------
    async def enrich_authors(self) -> int:
        """Load profiles for posts whose author is still unknown.

        Returns:
            Number of posts that gained author info
        """
        user_ids = {post.user_id for post in self._posts if not post.has_known_author}
        if not user_ids:
            return 0
        try:
            profiles = await self._backend.get_profiles(sorted(user_ids))
        except BackendError as exc:
            logger.warning("Author enrichment failed for %d users: %s", len(user_ids), exc)
            return 0

        authors: dict[str, KnownAuthor] = {}
        for profile in profiles:
            author = profile.to_author()
            if isinstance(author, KnownAuthor):
                authors[profile.id] = author

        updated = 0
        for index, post in enumerate(self._posts):
            if not post.has_known_author and post.user_id in authors:
                self._posts[index] = post.model_copy(update={"author": authors[post.user_id]})
                updated += 1
        if updated:
            await self._persist()
        return updated
