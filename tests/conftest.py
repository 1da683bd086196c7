# tests/conftest.py
from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest

from tests.factories import FakeClock
from updown_feed.core.settings import settings
from updown_feed.services.backend import BackendClient
from updown_feed.services.feed_cache import FeedCache
from updown_feed.services.feed_store import FeedStore
from updown_feed.services.known_good import KnownGoodCounterCache


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep bounded retries but drop the delay between attempts."""
    monkeypatch.setattr(settings, "read_retry_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "read_retry_attempts", 3)
    yield


@pytest.fixture()
def backend() -> AsyncMock:
    client = AsyncMock(spec=BackendClient)
    client.get_feed.return_value = []
    client.get_comments.return_value = []
    client.get_profiles.return_value = []
    client.get_following.return_value = []
    client.get_active_sessions.return_value = []
    client.add_comment.side_effect = lambda comment: comment
    return client


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def feed_cache() -> FeedCache:
    return FeedCache()


@pytest.fixture()
def counters() -> KnownGoodCounterCache:
    return KnownGoodCounterCache()


@pytest.fixture()
def store(
    backend: AsyncMock,
    feed_cache: FeedCache,
    counters: KnownGoodCounterCache,
    clock: FakeClock,
) -> FeedStore:
    return FeedStore(
        backend,
        counters=counters,
        cache=feed_cache,
        freshness_seconds=30.0,
        page_size=2,
        load_more_delay_seconds=0.0,
        clock=clock,
    )
