"""Rate limiter for Firestore REST calls.

This module provides an asyncio rate limiter using a fixed window algorithm.
One limiter is shared by every writer of a processor, so concurrent uploads
draw from a single request budget.

Example:
    from firestore_transfer.firestore.rate_limiter import RateLimiter

    # Create limiter: 500 requests per 60 seconds
    limiter = RateLimiter(max_requests=500, window_seconds=60)

    # Before each API call
    await limiter.acquire()
    await client.commit(...)
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """Asyncio rate limiter using fixed window algorithm.

    This limiter allows a maximum number of requests within a time window.
    If the limit is exceeded, acquire() suspends until the window resets.

    Firestore does not publish a hard per-client write quota; the default of
    500 requests per 60 seconds keeps a bulk import well below the sustained
    write rate at which the service starts answering 429.

    Attributes:
        max_requests: Maximum number of requests allowed per window.
        window_seconds: Length of each time window in seconds.
    """

    DEFAULT_MAX_REQUESTS = 500
    DEFAULT_WINDOW_SECONDS = 60.0

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests: Maximum requests per window (default: 500).
            window_seconds: Window duration in seconds (default: 60).
            clock: Monotonic time source.
            sleep: Awaitable sleep used while waiting for the next window.
        """
        self._max_requests = max_requests or self.DEFAULT_MAX_REQUESTS
        self._window_seconds = window_seconds or self.DEFAULT_WINDOW_SECONDS
        self._clock = clock
        self._sleep = sleep

        self._window_start: float = clock()
        self._request_count: int = 0

        self._lock = asyncio.Lock()

    @property
    def max_requests(self) -> int:
        """Maximum requests allowed per window."""
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        """Window duration in seconds."""
        return self._window_seconds

    async def acquire(self) -> None:
        """Acquire permission to make an API call.

        Suspends if the rate limit has been exceeded for the current window,
        until the next window begins. Waiters are served in arrival order
        because the lock is held across the wait.
        """
        async with self._lock:
            current_time = self._clock()

            elapsed = current_time - self._window_start
            if elapsed >= self._window_seconds:
                self._window_start = current_time
                self._request_count = 0

            if self._request_count >= self._max_requests:
                time_remaining = self._window_seconds - elapsed
                if time_remaining > 0:
                    await self._sleep(time_remaining)

                self._window_start = self._clock()
                self._request_count = 0

            self._request_count += 1

    def get_status(self) -> dict[str, object]:
        """Get current rate limiter status.

        Returns:
            Dictionary with current window state:
            - request_count: Requests made in current window
            - max_requests: Maximum allowed per window
            - window_seconds: Window duration
            - seconds_remaining: Time until window resets
            - requests_remaining: Requests available in current window
        """
        elapsed = self._clock() - self._window_start

        if elapsed >= self._window_seconds:
            seconds_remaining = self._window_seconds
            requests_remaining = self._max_requests
            current_count = 0
        else:
            seconds_remaining = self._window_seconds - elapsed
            current_count = self._request_count
            requests_remaining = max(0, self._max_requests - current_count)

        return {
            "request_count": current_count,
            "max_requests": self._max_requests,
            "window_seconds": self._window_seconds,
            "seconds_remaining": round(seconds_remaining, 2),
            "requests_remaining": requests_remaining,
        }

    def reset(self) -> None:
        """Reset the rate limiter to start a new window."""
        self._window_start = self._clock()
        self._request_count = 0
