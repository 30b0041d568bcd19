"""Retry utilities for handling transient failures.

Provides a call helper for retrying async operations with exponential
backoff. Used for platform calls, key-file reads and AI calls.

Key Exports:
    retry_async: Call an async function with retry logic.
    is_transient: Predicate selecting failures worth retrying.

Example:
    >>> from repo_planner.utils.retry import is_transient, retry_async
    >>>
    >>> tree = await retry_async(
    ...     lambda: git.get_tree(owner, repo, "main"),
    ...     exceptions=(ExternalServiceError,),
    ...     retry_if=is_transient,
    ... )

Backoff Formula:
    delay = base_delay * 2 ** (attempt - 1)
    For base_delay=1.0: 1s, 2s, 4s, ...
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from repo_planner.exceptions import ExternalServiceError

log = structlog.get_logger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """Return True for failures that may succeed on a later attempt.

    Timeouts, network errors, HTTP 429 and 5xx responses and malformed AI
    output qualify. Domain failures (403, 404, validation) never do.
    """
    if isinstance(error, ExternalServiceError):
        return error.retryable
    return isinstance(error, asyncio.TimeoutError | ConnectionError)


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay to wait after the given failed attempt (1-based)."""
    return base_delay * 2 ** (attempt - 1)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    retry_if: Callable[[BaseException], bool] | None = None,
    operation: str | None = None,
) -> T:
    """Call ``func`` until it succeeds or the attempt ceiling is reached.

    Args:
        func: Zero-argument coroutine factory, called once per attempt.
        max_attempts: Maximum number of attempts, including the first.
        base_delay: Base of the exponential backoff in seconds.
        exceptions: Exception types that are caught at all. Others propagate
            immediately.
        retry_if: Optional predicate; caught exceptions for which it returns
            False propagate immediately without further attempts.
        operation: Name used in log events, defaults to the function name.

    Returns:
        The result of the first successful attempt.

    Raises:
        The last caught exception if all attempts are exhausted, or the
        first exception rejected by ``retry_if``.
    """
    name = operation or getattr(func, "__name__", "operation")

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except exceptions as e:
            if retry_if is not None and not retry_if(e):
                log.debug("retry_skipped_non_retryable", function=name, attempt=attempt, error=str(e))
                raise
            if attempt == max_attempts:
                log.error(
                    "retry_exhausted",
                    function=name,
                    attempts=attempt,
                    error=str(e),
                )
                raise

            delay = backoff_delay(attempt, base_delay)
            log.warning(
                "retry_attempt",
                function=name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")

