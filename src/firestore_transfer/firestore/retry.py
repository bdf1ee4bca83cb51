"""Retry policy shared by batch commits and token exchange.

A RetryPolicy is a small value (max attempts, base delay) that builds a
``tenacity.AsyncRetrying`` controller. The delay before attempt ``k + 1``
is ``base_delay * 2 ** (k - 1)``: with the defaults a failing call is tried
three times, waiting 2s and then 4s.

Example:
    policy = RetryPolicy(max_attempts=3, base_delay_seconds=2.0)
    result = await policy.run(commit, batch, retry_on=TransientWriteError)
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar, Union

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

logger = structlog.get_logger()

T = TypeVar("T")

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay_seconds: Delay after the first failure; doubles each time.
        max_delay_seconds: Ceiling for a single delay.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 60.0

    def backoff(self, attempt: int) -> float:
        """Return the delay that follows failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay_seconds * 2 ** (attempt - 1), self.max_delay_seconds)

    def retrying(
        self,
        retry_on: ExceptionTypes,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        label: str = "call",
    ) -> AsyncRetrying:
        """Build a tenacity controller for this policy.

        Args:
            retry_on: Exception type(s) that trigger another attempt.
            sleep: Awaitable sleep used between attempts.
            label: Name included in retry log events.

        Returns:
            AsyncRetrying that re-raises the last error when attempts run out.
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "retrying_after_failure",
                operation=label,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(error),
            )

        return AsyncRetrying(
            sleep=sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda retry_state: self.backoff(retry_state.attempt_number),
            retry=retry_if_exception_type(retry_on),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        retry_on: ExceptionTypes,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        label: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        """Call ``func`` under this policy and return its result.

        Raises:
            The last exception raised by ``func`` once attempts run out, or
            any exception not listed in ``retry_on`` immediately.
        """
        controller = self.retrying(retry_on, sleep=sleep, label=label or func.__name__)
        return await controller(func, *args, **kwargs)


NO_RETRY = RetryPolicy(max_attempts=1)
