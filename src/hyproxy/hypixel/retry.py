"""Retry logic with exponential backoff for stats API requests."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

import httpx

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_MAX_DELAY = 5.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter
DEFAULT_MAX_RATE_LIMIT_WAIT = 10  # seconds

# Exceptions that should trigger retry
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    # httpx network failures (connect errors, read errors, timeouts)
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    OSError,
)

# Exceptions that should never be retried
NON_RETRYABLE_EXCEPTIONS = (asyncio.CancelledError,)


class RateLimitedError(Exception):
    """Raised when an API answers 429 Too Many Requests.

    Attributes:
        seconds: Seconds the server asked us to wait before retrying
    """

    def __init__(self, seconds: int, message: str = "") -> None:
        super().__init__(message or f"Rate limited, retry after {seconds}s")
        self.seconds = seconds


def retry_after_seconds(response: httpx.Response, default: int = 60) -> int:
    """Read the Retry-After header of a 429 response (seconds form only)."""
    value = response.headers.get("Retry-After", "")
    try:
        return max(0, int(value))
    except ValueError:
        return default


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
) -> float:
    """Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Jitter factor (0.0 to 1.0)

    Returns:
        Delay in seconds before next retry
    """
    # Exponential backoff: base_delay * 2^attempt
    delay = min(base_delay * (2**attempt), max_delay)

    # Add jitter: randomize ±jitter% of delay
    if jitter > 0:
        jitter_amount = delay * jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return float(max(0, delay))


def with_retry(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    retryable_exceptions: tuple[type[Exception], ...] = RETRYABLE_EXCEPTIONS,
    operation_name: str | None = None,
    max_rate_limit_wait: int = DEFAULT_MAX_RATE_LIMIT_WAIT,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator to add retry logic with exponential backoff to async functions.

    Retries on network-related exceptions (httpx transport errors, timeouts,
    OSError). RateLimitedError is retried after the server-provided wait when
    that wait is within ``max_rate_limit_wait``. Never retries on
    asyncio.CancelledError (propagates immediately for session teardown).

    Args:
        max_attempts: Maximum number of attempts (including first try)
        base_delay: Base delay in seconds for exponential backoff
        max_delay: Maximum delay in seconds between retries
        jitter: Jitter factor (0.0 to 1.0) to randomize delays
        retryable_exceptions: Tuple of exception types that should trigger retry
        operation_name: Optional name for logging (defaults to function name)
        max_rate_limit_wait: Longest Retry-After (seconds) worth waiting for

    Returns:
        Decorated async function with retry logic

    Example:
        @with_retry(max_attempts=3, base_delay=1.0)
        async def fetch_player(uuid):
            ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            op_name = operation_name or func.__name__
            last_exception: Exception | None = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except NON_RETRYABLE_EXCEPTIONS:
                    logger.debug(f"{op_name}: CancelledError received, not retrying")
                    raise
                except RateLimitedError as e:
                    last_exception = e
                    if e.seconds > max_rate_limit_wait:
                        logger.error(
                            f"{op_name}: Rate limited for {e.seconds}s which exceeds "
                            f"maximum allowed wait of {max_rate_limit_wait}s. Aborting."
                        )
                        raise
                    if attempt == max_attempts - 1:
                        logger.error(
                            f"{op_name}: Still rate limited after {max_attempts} attempts. Aborting."
                        )
                        raise
                    logger.warning(
                        f"{op_name}: Rate limited (429). Attempt {attempt + 1}/{max_attempts}. "
                        f"Waiting {e.seconds}s before retry..."
                    )
                    await asyncio.sleep(e.seconds)
                except retryable_exceptions as e:
                    last_exception = e
                    if attempt == max_attempts - 1:
                        logger.error(f"{op_name}: Failed after {max_attempts} attempts: {e}")
                        raise
                    delay = calculate_backoff_delay(attempt, base_delay, max_delay, jitter)
                    logger.warning(
                        f"{op_name}: Attempt {attempt + 1}/{max_attempts} failed "
                        f"with {type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)

            # Should never reach here, but satisfy type checker
            if last_exception:
                raise last_exception
            raise RuntimeError(f"{op_name}: Unexpected retry loop exit")

        return wrapper

    return decorator
