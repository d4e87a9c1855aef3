"""
Outbound rate limiting for the RetroAchievements API.

All provider calls go through one shared limiter so dispatch start times are
spaced no closer than the configured interval. Calls rejected with HTTP 429
are retried with a linearly increasing delay.
"""

import time
import asyncio
from collections import deque
from typing import Awaitable, Callable, Optional, TypeVar
import logging

import aiohttp

from select_start.constants import RateLimitConstants
from select_start.utils.exceptions import RateLimitedError, RateLimitExceededError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether an exception is the provider's throttling signal."""
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, aiohttp.ClientResponseError) and error.status == 429:
        return True
    return False


class RateLimiter:
    """Spaces outbound calls and retries throttled ones.

    The lane lock is held only while waiting for the spacing rule, so start
    times are ordered but completions may interleave.
    """

    def __init__(
        self,
        requests_per_interval: int = RateLimitConstants.REQUESTS_PER_INTERVAL,
        interval: float = RateLimitConstants.INTERVAL_SECONDS,
        max_retries: int = RateLimitConstants.MAX_RETRIES,
        retry_delay: float = RateLimitConstants.RETRY_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if requests_per_interval < 1:
            raise ValueError("requests_per_interval must be at least 1")
        if interval < 0:
            raise ValueError("interval cannot be negative")

        self.requests_per_interval = requests_per_interval
        self.interval = interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._dispatches = deque()  # Start times inside the current window
        self._last_request_timestamp: Optional[float] = None
        self.total_dispatched = 0

    @property
    def last_request_timestamp(self) -> Optional[float]:
        return self._last_request_timestamp

    async def _acquire_slot(self) -> None:
        """Wait until another dispatch is allowed, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                while self._dispatches and now - self._dispatches[0] >= self.interval:
                    self._dispatches.popleft()

                if len(self._dispatches) < self.requests_per_interval:
                    break

                wait = self.interval - (now - self._dispatches[0])
                if wait > 0:
                    await self._sleep(wait)
                else:
                    self._dispatches.popleft()

            now = self._clock()
            self._dispatches.append(now)
            self._last_request_timestamp = now
            self.total_dispatched += 1

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation once a dispatch slot is free.

        Raises:
            RateLimitExceededError: If the provider is still throttling after all retries
        """
        attempt = 0
        while True:
            await self._acquire_slot()
            try:
                return await operation()
            except Exception as e:
                if not is_rate_limit_error(e):
                    raise

                if attempt >= self.max_retries:
                    logger.error(f"Rate limit retries exhausted after {attempt + 1} attempts")
                    raise RateLimitExceededError(attempt + 1) from e

                attempt += 1
                delay = self.retry_delay * attempt
                logger.warning(f"Rate limited, retrying in {delay:.1f}s (attempt {attempt}/{self.max_retries})")
                await self._sleep(delay)
