"""Retry with exponential backoff for outbound calls.

Every provider call goes through ``with_retry``. It never raises: the caller
receives a ``RetryOutcome`` describing success, attempts used and the last
error, and decides how to degrade.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from .exceptions import is_non_retryable_error, is_retryable_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried call.

    Attributes:
        success: True if one attempt returned normally
        data: Return value of the successful attempt
        attempts: Number of attempts made
        last_error: Error of the final failed attempt
    """

    success: bool
    data: T | None = None
    attempts: int = 0
    last_error: BaseException | None = None


@dataclass
class RetryPolicy:
    """Backoff parameters for ``with_retry``.

    Example:
        >>> policy = RetryPolicy(max_attempts=3, initial_delay=1.0)
        >>> [policy.delay_for(n) for n in range(4)]
        [1.0, 2.0, 4.0, 8.0]
    """

    max_attempts: int = 3
    initial_delay: float = 1.0  # Seconds
    max_delay: float = 10.0  # Seconds
    backoff_multiplier: float = 2.0

    def delay_for(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based), capped at max_delay."""
        return min(self.initial_delay * self.backoff_multiplier**retry_index, self.max_delay)


async def _sleep(delay: float) -> None:
    """Backoff sleep (patched in tests)."""
    await asyncio.sleep(delay)


async def with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    retry_on: Callable[[BaseException], bool] = is_retryable_error,
    operation: str | None = None,
    **kwargs: Any,
) -> RetryOutcome[T]:
    """Call ``func`` with retries and exponential backoff.

    Args:
        func: Async function to call
        *args: Positional args for func
        policy: Backoff parameters (defaults to RetryPolicy())
        retry_on: Predicate deciding whether an error is worth another attempt
        operation: Label used in log events
        **kwargs: Keyword args for func

    Returns:
        RetryOutcome with the result or the last error

    Example:
        >>> outcome = await with_retry(client.search, "solar charger")
        >>> if outcome.success:
        ...     results = outcome.data
    """
    policy = policy or RetryPolicy()
    label = operation or getattr(func, "__name__", "call")
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            data = await func(*args, **kwargs)
            if attempt > 1:
                logger.info("retry_succeeded", operation=label, attempts=attempt)
            return RetryOutcome(success=True, data=data, attempts=attempt)
        except Exception as e:
            last_error = e

            if is_non_retryable_error(e):
                logger.warning(
                    "retry_aborted_non_retryable", operation=label, attempt=attempt, error=str(e)
                )
                return RetryOutcome(success=False, attempts=attempt, last_error=e)

            if attempt >= policy.max_attempts or not retry_on(e):
                break

            delay = policy.delay_for(attempt - 1)
            logger.warning(
                "retry_scheduled",
                operation=label,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await _sleep(delay)

    logger.error("retry_exhausted", operation=label, attempts=attempt, error=str(last_error))
    return RetryOutcome(success=False, attempts=attempt, last_error=last_error)


__all__ = ["RetryOutcome", "RetryPolicy", "with_retry"]
