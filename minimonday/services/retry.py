"""
Retry with exponential backoff for async operations.

The delay before retry n (0-based) is
min(initial_delay * backoff_multiplier ** n, max_delay).
When retries run out, the last error is re-raised as the same object.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from minimonday.services.errors import CircuitOpenError

T = TypeVar("T")


def _status_code(error: BaseException) -> int | None:
    """Pull an HTTP status out of an error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code

    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status

    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def is_retryable_error(error: BaseException) -> bool:
    """
    Default retry predicate.

    Retries 5xx and 429 responses and network-level failures (errors that
    carry no HTTP status). Other 4xx responses and open circuits are final.
    """
    if isinstance(error, CircuitOpenError):
        return False

    status = _status_code(error)
    if status is None:
        return True
    return status >= 500 or status == 429


@dataclass
class RetryOptions:
    """Configuration for retry_with_backoff."""

    max_retries: int = 3
    initial_delay: timedelta = timedelta(seconds=1)
    max_delay: timedelta = timedelta(seconds=30)
    backoff_multiplier: float = 2.0
    retryable_errors: Callable[[BaseException], bool] = is_retryable_error

    def delay_for(self, attempt: int) -> timedelta:
        """Backoff delay after the given 0-based failed attempt."""
        cap = self.max_delay.total_seconds()
        try:
            seconds = self.initial_delay.total_seconds() * self.backoff_multiplier**attempt
        except OverflowError:
            return self.max_delay
        # Clamp in seconds; large exponents do not fit in a timedelta
        if seconds >= cap:
            return self.max_delay
        return timedelta(seconds=seconds)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Await operation, retrying retryable failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine function to attempt
        options: Retry configuration (defaults to RetryOptions())
        sleep: Awaitable sleep taking seconds

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: The error of the last attempt, unchanged
    """
    opts = options or RetryOptions()
    if opts.max_retries < 0:
        raise ValueError(f"max_retries must be non-negative, got {opts.max_retries}")

    for attempt in range(opts.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == opts.max_retries or not opts.retryable_errors(e):
                raise

            delay = opts.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{opts.max_retries + 1} failed: {e!r}, "
                f"retrying in {delay.total_seconds():.2f}s"
            )
            await sleep(delay.total_seconds())

    raise AssertionError("unreachable")
