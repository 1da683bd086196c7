"""Local persistent cache for the last-known feed of each viewer."""

from __future__ import annotations

import logging

import redis
import redis.asyncio as aioredis
from pydantic import TypeAdapter, ValidationError

from updown_feed.core.settings import settings
from updown_feed.schemas import Post

logger = logging.getLogger(__name__)

_POSTS_ADAPTER: TypeAdapter[list[Post]] = TypeAdapter(list[Post])


class FeedCache:
    """Key-value store of serialized post lists keyed by viewer id.

    Backed by redis when a client is given; otherwise, or after a redis failure,
    entries live in an in-process dictionary for the rest of the session.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis | None = None,
        *,
        key_prefix: str | None = None,
    ) -> None:
        self._redis = redis_client
        self._key_prefix = key_prefix if key_prefix is not None else settings.feed_cache_key_prefix
        self._memory: dict[str, bytes] = {}

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    def _key(self, viewer_id: str) -> str:
        return f"{self._key_prefix}{viewer_id}"

    async def _read(self, key: str) -> bytes | None:
        if self._redis is not None:
            try:
                value = await self._redis.get(key)
            except redis.RedisError as exc:
                logger.warning("Feed cache read failed, using in-process store: %s", exc)
                self._redis = None
            else:
                if value is None:
                    return None
                return value if isinstance(value, bytes) else str(value).encode()
        return self._memory.get(key)

    async def _write(self, key: str, value: bytes) -> None:
        if self._redis is not None:
            try:
                await self._redis.set(key, value)
                return
            except redis.RedisError as exc:
                logger.warning("Feed cache write failed, using in-process store: %s", exc)
                self._redis = None
        self._memory[key] = value

    async def load(self, viewer_id: str) -> list[Post] | None:
        """Return the cached feed for ``viewer_id`` or None if absent or unreadable."""
        raw = await self._read(self._key(viewer_id))
        if raw is None:
            return None
        try:
            return _POSTS_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable cached feed for %s: %s", viewer_id, exc)
            return None

    async def save(self, viewer_id: str, posts: list[Post]) -> None:
        await self._write(self._key(viewer_id), _POSTS_ADAPTER.dump_json(posts))

    async def clear(self, viewer_id: str) -> None:
        key = self._key(viewer_id)
        self._memory.pop(key, None)
        if self._redis is not None:
            try:
                await self._redis.delete(key)
            except redis.RedisError as exc:
                logger.warning("Feed cache delete failed: %s", exc)
                self._redis = None


def get_feed_cache() -> FeedCache:
    """Return a feed cache backed by redis when ``FEED_CACHE_REDIS_URL`` is set."""
    client = None
    if settings.feed_cache_redis_url:
        client = aioredis.from_url(settings.feed_cache_redis_url)
    return FeedCache(client)
