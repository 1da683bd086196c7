"""Bounded retry for recoverable backend reads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from updown_feed.core.settings import settings
from updown_feed.services.backend import BackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    delay_seconds: float | None = None,
    label: str = "operation",
) -> T:
    """Run ``operation`` up to ``attempts`` times with a fixed delay between tries.

    Only :class:`BackendError` is retried. Cancellation propagates immediately and
    the last backend error is re-raised once every attempt has failed. Writes must
    not go through here: a failed write is rolled back instead of retried.
    """
    total = max(1, attempts if attempts is not None else settings.read_retry_attempts)
    delay = max(
        0.0, delay_seconds if delay_seconds is not None else settings.read_retry_delay_seconds
    )

    for attempt in range(1, total + 1):
        try:
            return await operation()
        except BackendError as exc:
            if attempt == total:
                logger.warning("%s failed after %d attempts: %s", label, total, exc)
                raise
            logger.info("%s attempt %d/%d failed: %s", label, attempt, total, exc)
            if delay:
                await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
