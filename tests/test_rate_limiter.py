"""
Tests for RateLimiter.

Covers dispatch spacing, 429 retry with backoff, retry exhaustion and
pass-through of non-throttling errors.
"""

import asyncio
from unittest.mock import MagicMock

import aiohttp
import pytest

from select_start.services.rate_limiter import RateLimiter, is_rate_limit_error
from select_start.utils.exceptions import (
    ProviderUnavailableError, RateLimitedError, RateLimitExceededError
)


def make_limiter(clock, **kwargs) -> RateLimiter:
    options = dict(interval=1.2, max_retries=3, retry_delay=3.0)
    options.update(kwargs)
    return RateLimiter(clock=clock, sleep=clock.sleep, **options)


class TestSpacing:
    """Dispatch start times are at least one interval apart."""

    @pytest.mark.asyncio
    async def test_sequential_calls_are_spaced(self, clock):
        limiter = make_limiter(clock)
        starts = []

        async def operation():
            starts.append(clock())
            return len(starts)

        for _ in range(5):
            await limiter.enqueue(operation)

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert len(starts) == 5
        assert all(gap >= 1.2 - 1e-9 for gap in gaps)

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_spaced(self, clock):
        limiter = make_limiter(clock)
        starts = []

        async def operation():
            starts.append(clock())
            await asyncio.sleep(0)
            return True

        results = await asyncio.gather(*(limiter.enqueue(operation) for _ in range(4)))

        assert results == [True] * 4
        starts.sort()
        assert all(b - a >= 1.2 - 1e-9 for a, b in zip(starts, starts[1:]))

    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self, clock):
        limiter = make_limiter(clock)

        async def operation():
            return "ok"

        assert await limiter.enqueue(operation) == "ok"
        assert clock.sleeps == []
        assert limiter.last_request_timestamp == 1000.0

    @pytest.mark.asyncio
    async def test_multiple_requests_per_interval(self, clock):
        limiter = make_limiter(clock, requests_per_interval=2)
        starts = []

        async def operation():
            starts.append(clock())

        for _ in range(4):
            await limiter.enqueue(operation)

        # Two dispatches share a window, the third waits for the window to roll
        assert starts[0] == starts[1]
        assert starts[2] - starts[0] >= 1.2 - 1e-9

    def test_invalid_configuration(self, clock):
        with pytest.raises(ValueError):
            make_limiter(clock, requests_per_interval=0)
        with pytest.raises(ValueError):
            make_limiter(clock, interval=-1)


class TestRetry:
    """Throttled calls are retried with increasing delay."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, clock):
        limiter = make_limiter(clock)
        attempts = []

        async def operation():
            attempts.append(clock())
            if len(attempts) < 3:
                raise RateLimitedError("API_GetGame.php")
            return "done"

        assert await limiter.enqueue(operation) == "done"
        assert len(attempts) == 3
        assert clock.sleeps == [3.0, 6.0]
        assert limiter.total_dispatched == 3
        assert limiter.last_request_timestamp == attempts[-1]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, clock):
        limiter = make_limiter(clock, max_retries=2)
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise RateLimitedError("API_GetGame.php")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.enqueue(operation)

        assert calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, RateLimitedError)

    @pytest.mark.asyncio
    async def test_aiohttp_429_is_retried(self, clock):
        limiter = make_limiter(clock)
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise aiohttp.ClientResponseError(MagicMock(), (), status=429)
            return "ok"

        assert await limiter.enqueue(operation) == "ok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_other_errors_propagate_without_retry(self, clock):
        limiter = make_limiter(clock)
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise ProviderUnavailableError("API_GetGame.php", "HTTP 500", status=500)

        with pytest.raises(ProviderUnavailableError):
            await limiter.enqueue(operation)

        assert calls == 1
        assert clock.sleeps == []

    def test_rate_limit_classification(self):
        assert is_rate_limit_error(RateLimitedError("x"))
        assert is_rate_limit_error(aiohttp.ClientResponseError(MagicMock(), (), status=429))
        assert not is_rate_limit_error(aiohttp.ClientResponseError(MagicMock(), (), status=500))
        assert not is_rate_limit_error(ValueError("429"))
