import asyncio
from unittest.mock import AsyncMock

import pytest

from updown_feed.services.backend import BackendError
from updown_feed.services.retry import retry_async


@pytest.mark.asyncio
async def test_returns_first_success_after_failures():
    operation = AsyncMock(side_effect=[BackendError("a"), BackendError("b"), "rows"])

    assert await retry_async(operation, attempts=3, delay_seconds=0) == "rows"
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_reraises_last_error_when_attempts_run_out():
    last = BackendError("last")
    operation = AsyncMock(side_effect=[BackendError("first"), last])

    with pytest.raises(BackendError) as excinfo:
        await retry_async(operation, attempts=2, delay_seconds=0)

    assert excinfo.value is last


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    operation = AsyncMock(side_effect=ValueError("bug"))

    with pytest.raises(ValueError):
        await retry_async(operation, attempts=3, delay_seconds=0)

    assert operation.await_count == 1


@pytest.mark.asyncio
async def test_waits_fixed_delay_between_attempts(mocker):
    sleep = mocker.patch("updown_feed.services.retry.asyncio.sleep", new=AsyncMock())
    operation = AsyncMock(side_effect=[BackendError("a"), BackendError("b"), "ok"])

    await retry_async(operation, attempts=3, delay_seconds=0.5)

    assert [call.args for call in sleep.await_args_list] == [(0.5,), (0.5,)]


@pytest.mark.asyncio
async def test_cancellation_is_not_retried():
    operation = AsyncMock(side_effect=asyncio.CancelledError())

    with pytest.raises(asyncio.CancelledError):
        await retry_async(operation, attempts=3, delay_seconds=0)

    assert operation.await_count == 1
