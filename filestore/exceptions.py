"""
Storage exception types.

Provides consistent error handling across all drivers. Public driver and
manager operations convert provider failures into result values; these
exceptions surface only for configuration problems and internal control
flow.
"""


class StorageError(Exception):
    """Base exception for all storage errors."""

    def __init__(
        self,
        message: str,
        driver: str | None = None,
    ):
        self.message = message
        self.driver = driver
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.driver:
            return f"[{self.driver}] {self.message}"
        return self.message


class ConfigurationError(StorageError):
    """Raised when a storage configuration cannot be used to build a driver."""

    def __init__(
        self,
        message: str,
        driver: str | None = None,
        errors: list[str] | None = None,
    ):
        super().__init__(message, driver)
        self.errors = errors or []


class RateLimitExceededError(StorageError):
    """Raised when URL generation exceeds the configured rate limit."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        driver: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, driver)
        self.retry_after = retry_after

    def __str__(self) -> str:
        base = super().__str__()
        if self.retry_after:
            return f"{base} - retry after {self.retry_after:.1f}s"
        return base
