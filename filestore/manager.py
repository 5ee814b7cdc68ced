"""
StorageManager: the facade applications use.

Validates the configuration once, holds exactly one driver for its lifetime
and adds the request-level checks that do not belong to any single backend:
per-call upload rules, filename and folder validation for URL generation,
and optional rate limiting.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from filestore.config import StorageConfig, load_storage_config, validate_storage_config
from filestore.drivers.base import StorageDriver
from filestore.exceptions import ConfigurationError, RateLimitExceededError
from filestore.factory import (
    available_drivers,
    clear_driver_cache,
    create_driver,
    release_driver,
    retain_driver,
)
from filestore.file_utils import (
    generate_unique_file_name,
    get_file_extension,
    normalize_folder_path,
    validate_content_type,
    validate_file_name,
    validate_reference,
)
from filestore.rate_limit import RateLimitStatus, SlidingWindowRateLimiter
from filestore.results import (
    delete_error,
    grant_error,
    list_error,
    upload_error,
    validation_error,
)
from filestore.schemas import (
    DeleteOutcome,
    FileMetadata,
    FileValidationOptions,
    ListFilesResult,
    PresignedGrant,
    UploadOptions,
    UploadResult,
    UploadTarget,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)


def check_upload_rules(target: UploadTarget, rules: FileValidationOptions) -> str | None:
    """Apply caller-supplied upload rules; returns an error message or None."""
    # Bytes present win over the declared size
    size = len(target.content) if target.content else (target.size or 0)
    if rules.max_size is not None and size > rules.max_size:
        return f"File size {size} exceeds maximum allowed size of {rules.max_size} bytes"

    if rules.allowed_mime_types and target.content_type not in rules.allowed_mime_types:
        return (
            f"File type '{target.content_type}' is not allowed. "
            f"Allowed types: {', '.join(rules.allowed_mime_types)}"
        )

    if rules.allowed_extensions:
        extension = get_file_extension(target.original_name)
        allowed = [
            e.lower() if e.startswith(".") else f".{e.lower()}" for e in rules.allowed_extensions
        ]
        if extension not in allowed:
            return (
                f"File extension '{extension}' is not allowed. "
                f"Allowed extensions: {', '.join(rules.allowed_extensions)}"
            )
    return None


class StorageManager:
    """
    Unified entry point for file storage.

    Example:
        manager = StorageManager(StorageConfig(driver="s3", bucket_name="b", aws_region="us-east-1"))
        result = await manager.upload_file(UploadTarget(content, "a.txt", "text/plain"))
    """

    def __init__(
        self,
        config: StorageConfig,
        *,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ):
        """
        Args:
            config: Storage configuration, validated before any driver is built
            rate_limiter: Optional limit applied to URL generation

        Raises:
            ConfigurationError: If the configuration is invalid or the driver
                cannot be constructed (e.g. presigned Azure without a key)
        """
        validation = validate_storage_config(config)
        if not validation.is_valid:
            raise ConfigurationError(
                f"Configuration validation failed: {', '.join(validation.errors)}",
                driver=config.driver,
                errors=validation.errors,
            )
        self._config = config
        self._driver: StorageDriver = retain_driver(create_driver(config))
        self._rate_limiter = rate_limiter
        self._closed = False

    @classmethod
    def from_env(
        cls,
        *,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        **overrides: Any,
    ) -> "StorageManager":
        """Build a manager from FILE_DRIVER, BUCKET_NAME, ... environment settings."""
        return cls(load_storage_config(**overrides), rate_limiter=rate_limiter)

    @property
    def driver(self) -> StorageDriver:
        return self._driver

    # ==========================================================================
    # Uploads
    # ==========================================================================

    async def upload_file(
        self,
        target: UploadTarget | None,
        validation: FileValidationOptions | None = None,
        options: UploadOptions | None = None,
    ) -> UploadResult:
        if target is not None and validation is not None:
            error = check_upload_rules(target, validation)
            if error:
                return upload_error(error)
        return await self._driver.upload(target, options)

    async def upload_files(
        self,
        targets: Sequence[UploadTarget],
        validation: FileValidationOptions | None = None,
        options: UploadOptions | None = None,
    ) -> list[UploadResult]:
        """Upload several files; rejected files keep their slot with an error result."""
        results: list[UploadResult | None] = [None] * len(targets)
        accepted: list[tuple[int, UploadTarget]] = []
        for index, target in enumerate(targets):
            error = None
            if target is not None and validation is not None:
                error = check_upload_rules(target, validation)
            if error:
                results[index] = upload_error(error)
            else:
                accepted.append((index, target))

        uploaded = await self._driver.upload_multiple([t for _, t in accepted], options)
        for (index, _), result in zip(accepted, uploaded):
            results[index] = result
        return results

    # ==========================================================================
    # Presigned URLs
    # ==========================================================================

    def _check_rate_limit(self) -> str | None:
        if self._rate_limiter is None:
            return None
        try:
            self._rate_limiter.acquire()
        except RateLimitExceededError as e:
            logger.warning(f"[{self._driver.driver_name}] {e}")
            return str(e)
        return None

    async def generate_upload_url(
        self,
        file_name: str,
        content_type: str | None = None,
        file_size: int | None = None,
        folder: str | None = None,
    ) -> PresignedGrant:
        """
        Issue a signed upload URL for a new object.

        A fresh stored name is generated from ``file_name``; the returned
        ``reference`` is what later view, delete and validate calls need.
        """
        error = validate_file_name(file_name)
        if error:
            return grant_error(error)
        if content_type:
            error = validate_content_type(content_type)
            if error:
                return grant_error(error)
        if file_size is not None:
            if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0:
                return grant_error("File size must be a non-negative integer")
            if file_size > self._config.max_file_size:
                return grant_error(
                    f"File size {file_size} exceeds maximum allowed size of "
                    f"{self._config.max_file_size} bytes"
                )
        normalized_folder, error = normalize_folder_path(folder)
        if error:
            return grant_error(error)

        error = self._check_rate_limit()
        if error:
            return grant_error(error)

        stored_name = generate_unique_file_name(file_name)
        reference = self._driver.build_reference(stored_name, normalized_folder or None)
        grant = await self._driver.generate_upload_url(reference, content_type, file_size)
        if not grant.success:
            return grant

        file_path = normalized_folder or (self._config.bucket_path or "").strip("/")
        return grant.model_copy(
            update={
                "file_name": stored_name,
                "file_path": file_path,
                "reference": reference,
                "content_type": grant.content_type or content_type,
                "file_size": file_size,
                "expires_in": self._config.presigned_url_expiry,
                "requires_validation": self._driver.requires_validation,
            }
        )

    async def generate_view_url(self, reference: str) -> PresignedGrant:
        error = validate_reference(reference)
        if error:
            return grant_error(error)
        error = self._check_rate_limit()
        if error:
            return grant_error(error)

        grant = await self._driver.generate_view_url(reference)
        if not grant.success:
            return grant
        return grant.model_copy(
            update={
                "file_name": reference,
                "reference": reference,
                "expires_in": self._config.presigned_url_expiry,
            }
        )

    async def _bounded(self, calls) -> list[PresignedGrant]:
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def run(call):
            async with semaphore:
                return await call()

        return list(await asyncio.gather(*(run(call) for call in calls)))

    async def generate_upload_urls(self, files: Sequence[FileMetadata]) -> list[PresignedGrant]:
        """One grant per file, in input order; each is validated on its own."""
        return await self._bounded(
            [
                lambda f=f: self.generate_upload_url(f.file_name, f.content_type, f.file_size)
                for f in files
            ]
        )

    async def generate_view_urls(self, references: Sequence[str]) -> list[PresignedGrant]:
        return await self._bounded(
            [lambda r=reference: self.generate_view_url(r) for reference in references]
        )

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        error = validate_reference(reference)
        if error:
            return validation_error(error)
        return await self._driver.validate_and_confirm_upload(
            reference, expected_content_type, expected_file_size, delete_on_failure
        )

    # ==========================================================================
    # Deletion and listing
    # ==========================================================================

    async def delete_file(self, reference: str) -> bool:
        if validate_reference(reference):
            return False
        return await self._driver.delete(reference)

    async def delete_files(self, references: Sequence[str]) -> list[DeleteOutcome]:
        results: list[DeleteOutcome | None] = [None] * len(references)
        accepted: list[tuple[int, str]] = []
        for index, reference in enumerate(references):
            error = validate_reference(reference)
            if error:
                results[index] = delete_error(reference or "", error)
            else:
                accepted.append((index, reference))

        deleted = await self._driver.delete_multiple([r for _, r in accepted])
        for (index, _), outcome in zip(accepted, deleted):
            results[index] = outcome
        return results

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        if max_results < 1:
            return list_error("max_results must be at least 1")
        return await self._driver.list_files(prefix, max_results, continuation_token)

    # ==========================================================================
    # Introspection
    # ==========================================================================

    @property
    def config(self) -> StorageConfig:
        return self._config.model_copy()

    def get_safe_config(self) -> dict[str, Any]:
        """Configuration with credentials masked, safe to log or return."""
        return self._config.masked()

    @property
    def driver_type(self) -> str:
        return self._config.driver

    def is_presigned_supported(self) -> bool:
        """True iff the configured driver is one of the presigned variants."""
        return self._config.driver_kind.is_presigned

    def requires_validation(self) -> bool:
        """True when uploads through signed URLs must be confirmed afterwards."""
        return self._driver.supports_presigned_urls and self._driver.requires_validation

    def get_rate_limit_status(self) -> RateLimitStatus | None:
        if self._rate_limiter is None:
            return None
        return self._rate_limiter.status()

    @staticmethod
    def available_drivers() -> list[str]:
        return available_drivers()

    @staticmethod
    def clear_cache() -> None:
        clear_driver_cache()

    async def close(self) -> None:
        """
        Release this manager's hold on its driver.

        Managers built from equal configs share one cached driver; its SDK
        clients are closed only when the last of them is closed.
        """
        if self._closed:
            return
        self._closed = True
        await release_driver(self._driver)
