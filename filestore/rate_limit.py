"""
Moving window rate limiting for URL generation.

Built on the ``limits`` package. Counters live in process memory by default;
pass a ``redis://`` storage URI to share one limit across processes.
"""

import time
import uuid
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from filestore.exceptions import RateLimitExceededError

DEFAULT_STORAGE_URI = "memory://"


@dataclass
class RateLimitStatus:
    """Snapshot of a limiter's window."""

    limit: int
    remaining: int
    reset_in: float  # Seconds until the oldest request leaves the window


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` calls in any ``window_seconds`` span."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        storage_uri: str = DEFAULT_STORAGE_URI,
        key: str | None = None,
    ):
        """
        Args:
            max_requests: Requests allowed per window
            window_seconds: Window length in whole seconds
            storage_uri: ``limits`` storage, e.g. ``memory://`` or ``redis://host:6379``
            key: Identifier of the counter; limiters sharing storage and key
                share one quota. Defaults to a key unique to this limiter.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key = key or f"filestore-{uuid.uuid4().hex}"
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._limiter = MovingWindowRateLimiter(storage_from_string(storage_uri))

    def status(self) -> RateLimitStatus:
        reset_time, remaining = self._limiter.get_window_stats(self._item, self.key)
        reset_in = 0.0
        if remaining < self.max_requests:
            reset_in = max(0.0, reset_time - time.time())
        return RateLimitStatus(
            limit=self.max_requests,
            remaining=max(0, remaining),
            reset_in=reset_in,
        )

    def acquire(self) -> None:
        """
        Record one request.

        Raises:
            RateLimitExceededError: If the window is already full
        """
        if self._limiter.hit(self._item, self.key):
            return
        reset_time, _ = self._limiter.get_window_stats(self._item, self.key)
        raise RateLimitExceededError(
            f"Rate limit exceeded: {self.max_requests} requests per {self.window_seconds}s",
            retry_after=max(0.0, reset_time - time.time()),
        )

    def reset(self) -> None:
        self._limiter.clear(self._item, self.key)
