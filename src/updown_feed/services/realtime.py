"""Realtime social updates for the feed and open comment sheets.

This module turns postgres-change payloads from the backend's realtime channel
into typed events and applies them to the FeedStore and the attached
CommentsController. Delivery is at-least-once with no ordering guarantee, so
every handler is idempotent where the event carries an id.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from updown_feed.schemas import Comment, UnknownAuthor
from updown_feed.services.comments import CommentsController
from updown_feed.services.feed_store import FeedStore

# Configure logger for this module
logger = logging.getLogger(__name__)

TABLE_POST_LIKES = "workout_post_likes"
TABLE_COMMENTS = "workout_post_comments"
TABLE_COMMENT_LIKES = "comment_likes"


@dataclass(frozen=True)
class PostLikeDelta:
    post_id: str
    actor_id: str
    delta: int


@dataclass(frozen=True)
class CommentAdded:
    post_id: str
    comment: Comment


@dataclass(frozen=True)
class CommentDeleted:
    post_id: str
    comment_id: str


@dataclass(frozen=True)
class CommentLikeDelta:
    comment_id: str
    actor_id: str
    delta: int


RealtimeEvent = PostLikeDelta | CommentAdded | CommentDeleted | CommentLikeDelta


def _extract_string(record: Mapping[str, Any], key: str) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text or None


def parse_change(message: Mapping[str, Any]) -> RealtimeEvent | None:
    """Map a postgres-change payload to a realtime event.

    Payloads for other tables, other change types or with missing keys return None.
    """
    table = message.get("table")
    change_type = str(message.get("type") or message.get("eventType") or "").upper()
    if change_type == "INSERT":
        record = message.get("record") or message.get("new") or {}
        delta = 1
    elif change_type == "DELETE":
        record = message.get("old_record") or message.get("old") or {}
        delta = -1
    else:
        return None

    if table == TABLE_POST_LIKES:
        post_id = _extract_string(record, "workout_post_id")
        user_id = _extract_string(record, "user_id")
        if post_id is None or user_id is None:
            logger.warning("Could not parse post like %s event", change_type.lower())
            return None
        return PostLikeDelta(post_id=post_id, actor_id=user_id, delta=delta)

    if table == TABLE_COMMENT_LIKES:
        comment_id = _extract_string(record, "comment_id")
        user_id = _extract_string(record, "user_id")
        if comment_id is None or user_id is None:
            logger.warning("Could not parse comment like %s event", change_type.lower())
            return None
        return CommentLikeDelta(comment_id=comment_id, actor_id=user_id, delta=delta)

    if table == TABLE_COMMENTS:
        if delta < 0:
            comment_id = _extract_string(record, "id")
            post_id = _extract_string(record, "workout_post_id")
            if comment_id is None or post_id is None:
                logger.warning("Could not parse comment delete event")
                return None
            return CommentDeleted(post_id=post_id, comment_id=comment_id)
        try:
            comment = Comment.model_validate(
                {**record, "like_count": 0, "is_liked_by_current_user": False}
            )
        except ValidationError:
            logger.warning("Could not parse comment insert event")
            return None
        return CommentAdded(post_id=comment.post_id, comment=comment)

    return None


class RealtimeChannel(Protocol):
    """Stream of postgres-change payloads from the backend's realtime service."""

    def __aiter__(self) -> AsyncIterator[Mapping[str, Any]]: ...

    async def close(self) -> None: ...


class QueueChannel:
    """In-process realtime channel fed by ``publish``; ends after ``close``."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[Mapping[str, Any] | None] = asyncio.Queue(maxsize)
        self._closed = False

    async def publish(self, message: Mapping[str, Any]) -> None:
        if self._closed:
            return
        await self._queue.put(message)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    def __aiter__(self) -> QueueChannel:
        return self

    async def __anext__(self) -> Mapping[str, Any]:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class RealtimeSocialService:
    """Consumes a realtime channel and applies its events.

    Start it when a feed screen appears and stop it when the screen goes away so
    no stale subscription keeps mutating state. Comment events reach the
    CommentsController attached for their post.
    """

    def __init__(self, feed_store: FeedStore, viewer_id: str) -> None:
        self._feed = feed_store
        self.viewer_id = viewer_id
        self._threads: dict[str, CommentsController] = {}
        self._channel: RealtimeChannel | None = None
        self._task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def is_listening(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, channel: RealtimeChannel) -> None:
        """Start consuming ``channel``. A second start while listening is ignored."""
        if self.is_listening:
            logger.debug("Already listening; ignoring duplicate start")
            return
        self._channel = channel
        self._task = asyncio.create_task(self._run(channel))
        logger.info("Realtime social updates started for %s", self.viewer_id)

    async def stop(self) -> None:
        """Close the channel and wait for the consumer to finish."""
        if self._task is None:
            return

        channel, task = self._channel, self._task
        self._channel = None
        self._task = None
        if channel is not None:
            await channel.close()
        if not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        for pending in list(self._background):
            pending.cancel()
        self._background.clear()
        logger.info("Realtime social updates stopped for %s", self.viewer_id)

    async def _run(self, channel: RealtimeChannel) -> None:
        try:
            async for message in channel:
                event = parse_change(message)
                if event is None:
                    continue
                try:
                    self.dispatch(event)
                except (ValueError, TypeError, KeyError, AttributeError) as e:
                    logger.error("Failed to apply realtime event %r: %s", event, e, exc_info=True)
        except (OSError, ConnectionError) as e:
            logger.warning("Realtime channel for %s ended with network error: %s", self.viewer_id, e)

    def attach_thread(self, controller: CommentsController) -> None:
        """Route comment events for ``controller.post_id`` to the open comment sheet."""
        self._threads[controller.post_id] = controller

    def detach_thread(self, post_id: str) -> None:
        self._threads.pop(post_id, None)

    def dispatch(self, event: RealtimeEvent) -> None:
        """Apply one event to the feed and the attached comment sheet."""
        if isinstance(event, PostLikeDelta):
            self._feed.apply_like_delta(event.post_id, event.actor_id, event.delta, self.viewer_id)

        elif isinstance(event, CommentAdded):
            controller = self._threads.get(event.post_id)
            if controller is not None and controller.on_comment_added(event.comment):
                if isinstance(event.comment.author, UnknownAuthor):
                    self._spawn(controller.enrich_authors())
            self._feed.apply_comment_delta(event.post_id, 1, event.comment.id)

        elif isinstance(event, CommentDeleted):
            controller = self._threads.get(event.post_id)
            removed = controller.on_comment_deleted(event.comment_id) if controller else []
            for comment_id in [c.id for c in removed] or [event.comment_id]:
                self._feed.apply_comment_delta(event.post_id, -1, comment_id)

        elif isinstance(event, CommentLikeDelta):
            for controller in self._threads.values():
                if controller.on_comment_like_delta(
                    event.comment_id, event.actor_id, event.delta, self.viewer_id
                ):
                    break

    def _spawn(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
