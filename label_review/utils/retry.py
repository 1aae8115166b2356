"""Bounded retry with exponential backoff for async calls.

The label analyzer is the only non-deterministic, rate-limited dependency of
a validation run. Every failure is retried the same way (no jitter, no
per-error-type handling) and the last error is re-raised once the attempt
budget is spent.
"""

import asyncio
import functools
from typing import Awaitable, Callable, TypeVar

from label_review.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Build a decorator that retries an async callable.

    Args:
        max_attempts: Total number of invocations allowed (>= 1).
        base_delay: Seconds to wait after the first failure. The wait after
            attempt n (0-based) is base_delay * 2**n.
        sleep: Awaitable sleep function, replaceable in tests.

    Returns:
        A decorator that wraps an async function with the retry policy.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> T:
            last_error: Exception | None = None
            for attempt in range(max_attempts):
                try:
                    return await fn(*args, **kwargs)
                except Exception as e:
                    last_error = e
                    LOGGER.warning(f"Attempt {attempt + 1}/{max_attempts} failed: {e}")
                    # No wait after the final attempt
                    if attempt < max_attempts - 1:
                        await sleep(base_delay * 2**attempt)
            raise last_error

        return wrapper

    return decorator
