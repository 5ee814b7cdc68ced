"""
Retry executor with exponential backoff.

Wraps a zero-argument coroutine factory and re-invokes it on failure. The
executor does not decide which errors are transient: callers only wrap
provider calls, never request validation, so structural errors fail fast.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try an operation and how long to wait in between.

    Delays are in seconds. With exponential backoff the wait before attempt
    ``n + 1`` is ``min(max_delay, base_delay * 2**n)``; otherwise it is
    ``base_delay``. ``jitter`` adds up to that fraction of the delay at
    random, still capped at ``max_delay``.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_backoff: bool = True
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")

    def calculate_backoff(self, attempt: int) -> float:
        """Delay to wait after the zero-based ``attempt`` failed."""
        if self.exponential_backoff:
            delay = min(self.max_delay, self.base_delay * (2**attempt))
        else:
            delay = min(self.max_delay, self.base_delay)
        if self.jitter:
            delay = min(self.max_delay, delay + random.uniform(0, delay * self.jitter))
        return delay


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or the policy's attempts run out.

    Args:
        operation: Factory returning a fresh awaitable for each attempt
        policy: Retry policy (defaults to DEFAULT_RETRY_POLICY)
        description: Label used in log messages

    Returns:
        Whatever the first successful attempt returned

    Raises:
        The exception from the final attempt, unchanged
    """
    policy = policy or DEFAULT_RETRY_POLICY

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as e:
            if attempt + 1 >= policy.max_attempts:
                if policy.max_attempts > 1:
                    logger.error(
                        f"{description} failed after {policy.max_attempts} attempts: {e}"
                    )
                raise
            wait_time = policy.calculate_backoff(attempt)
            logger.warning(
                f"{description} failed with {type(e).__name__}, retrying in {wait_time:.2f}s "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            await asyncio.sleep(wait_time)

    # Unreachable: the loop either returns or re-raises.
    raise RuntimeError(f"{description} exhausted retries")
