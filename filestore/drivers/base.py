"""
Abstract base class for storage drivers.

Subclasses implement a handful of provider primitives (``put_object``,
``delete``, URL generation, listing). The base class turns those into the
public contract: request validation, stored-name generation, retries around
provider calls, bounded-parallel batch operations and result normalization.

Public methods return result values. Provider exceptions are logged and
converted, never raised to the caller.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from filestore.config import StorageConfig
from filestore.file_utils import generate_unique_file_name, join_reference
from filestore.results import (
    FILE_NOT_FOUND,
    delete_error,
    delete_outcome,
    error_message,
    grant_error,
    upload_error,
    upload_success,
    validation_error,
    validation_success,
)
from filestore.retry import with_retry
from filestore.schemas import (
    DeleteOutcome,
    FileMetadata,
    ListFilesResult,
    PresignedGrant,
    UploadOptions,
    UploadResult,
    UploadTarget,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _base_mime_type(content_type: str | None) -> str:
    """``"Text/Plain; charset=utf-8"`` -> ``"text/plain"``."""
    return (content_type or "").split(";", 1)[0].strip().lower()


class StorageDriver(ABC):
    """
    Abstract base for storage drivers.

    Capability flags (override in subclasses):
    - driver_name: short name used in logs and errors
    - enforces_upload_constraints: signed upload URLs bind content type and
      size, so no post-upload validation is needed
    - supports_presigned_urls: the backend has a notion of signed URLs
    - can_sign_urls: this instance holds what it needs to sign them
    """

    # ==========================================================================
    # Class Attributes (override in subclasses)
    # ==========================================================================

    driver_name: str = "base"
    enforces_upload_constraints: bool = True
    supports_presigned_urls: bool = True

    def __init__(self, config: StorageConfig):
        self.config = config
        self.retry_policy = config.retry_policy()

    @property
    def can_sign_urls(self) -> bool:
        return self.supports_presigned_urls

    @property
    def requires_validation(self) -> bool:
        """Whether uploads through signed URLs must be confirmed afterwards."""
        return not self.enforces_upload_constraints

    # ==========================================================================
    # Provider primitives
    # ==========================================================================

    @abstractmethod
    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        options: UploadOptions | None = None,
    ) -> str:
        """
        Write bytes under ``key``.

        Args:
            key: Full object key (prefix included)
            content: File bytes
            content_type: MIME type to store with the object
            options: Optional headers and metadata

        Returns:
            URL (or path) of the stored object

        Raises:
            Exception: Provider errors propagate so the retry executor sees them
        """
        pass

    @abstractmethod
    async def delete(self, reference: str) -> bool:
        """
        Delete a stored object.

        Args:
            reference: Full key returned from an upload or grant

        Returns:
            True if deleted, False if absent or the delete failed
        """
        pass

    @abstractmethod
    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        """
        Create a time-limited URL a client can PUT the object to.

        Args:
            reference: Full key the object will be stored under
            content_type: MIME type to bind into the signature, if supported
            file_size: Exact byte count to bind into the signature, if supported

        Returns:
            PresignedGrant with upload_url and expires_in on success
        """
        pass

    @abstractmethod
    async def generate_view_url(self, reference: str) -> PresignedGrant:
        """
        Create a time-limited URL for reading an object.

        Args:
            reference: Full key of the object

        Returns:
            PresignedGrant with view_url and expires_in on success
        """
        pass

    @abstractmethod
    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        """
        List stored objects, one page at a time.

        Args:
            prefix: Only list keys starting with this prefix
            max_results: Page size
            continuation_token: Token from a previous page's next_token

        Returns:
            ListFilesResult with files and next_token when more remain
        """
        pass

    async def close(self) -> None:
        """Release SDK clients. Safe to call more than once."""
        return None

    # ==========================================================================
    # Uploads
    # ==========================================================================

    def check_target_identity(self, target: UploadTarget | None) -> str | None:
        """Checks that do not depend on the payload: presence, name, MIME type."""
        if target is None:
            return "No file provided"
        if not target.original_name:
            return "File must have an original name"
        if not target.content_type:
            return "File must have a MIME type"
        return None

    def check_file_size(self, size: int) -> str | None:
        if size > self.config.max_file_size:
            return (
                f"File size {size} exceeds maximum allowed size of "
                f"{self.config.max_file_size} bytes"
            )
        return None

    def validate_target(self, target: UploadTarget | None) -> str | None:
        """
        Structural checks on a direct upload; returns an error message or None.

        The size limit is applied to the bytes actually present. A declared
        size that disagrees with the payload is rejected.
        """
        error = self.check_target_identity(target)
        if error:
            return error
        if not target.content:
            return "File content is empty"
        actual = len(target.content)
        if target.size is not None and target.size != actual:
            return f"Declared file size {target.size} does not match content length {actual}"
        return self.check_file_size(actual)

    def build_reference(self, file_name: str, folder: str | None = None) -> str:
        """Prefix a stored name with the folder (or configured bucket_path)."""
        return join_reference(folder if folder is not None else self.config.bucket_path, file_name)

    async def upload(
        self,
        target: UploadTarget | None,
        options: UploadOptions | None = None,
    ) -> UploadResult:
        """
        Store one file under a freshly generated name.

        Returns:
            UploadResult whose file_name is the full reference of the object
        """
        error = self.validate_target(target)
        if error:
            return upload_error(error)

        key = self.build_reference(generate_unique_file_name(target.original_name))
        content_type = (options.content_type if options else None) or target.content_type

        try:
            file_url = await with_retry(
                lambda: self.put_object(key, target.content, content_type, options),
                self.retry_policy,
                description=f"[{self.driver_name}] upload of {key}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Upload failed for {target.original_name}: {e}")
            return upload_error(error_message(e, "Upload failed"))

        logger.info(f"[{self.driver_name}] Uploaded {key} ({len(target.content)} bytes)")
        return upload_success(key, file_url)

    # ==========================================================================
    # Batch operations
    # ==========================================================================

    async def _fan_out(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[R]],
        on_error: Callable[[T, Exception], R],
    ) -> list[R]:
        """Run ``operation`` over items with bounded parallelism, keeping input order."""
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def run(item: T) -> R:
            async with semaphore:
                try:
                    return await operation(item)
                except Exception as e:
                    logger.warning(f"[{self.driver_name}] Batch item failed: {e}")
                    return on_error(item, e)

        return list(await asyncio.gather(*(run(item) for item in items)))

    async def upload_multiple(
        self,
        targets: Sequence[UploadTarget],
        options: UploadOptions | None = None,
    ) -> list[UploadResult]:
        return await self._fan_out(
            targets,
            lambda target: self.upload(target, options),
            lambda _, e: upload_error(error_message(e, "Upload failed")),
        )

    async def delete_multiple(self, references: Sequence[str]) -> list[DeleteOutcome]:
        """Delete several objects; each outcome is keyed by the requested name."""

        async def delete_one(reference: str) -> DeleteOutcome:
            return delete_outcome(reference, await self.delete(reference))

        return await self._fan_out(
            references,
            delete_one,
            lambda reference, e: delete_error(reference, error_message(e, FILE_NOT_FOUND)),
        )

    async def generate_multiple_upload_urls(
        self,
        files: Sequence[FileMetadata],
    ) -> list[PresignedGrant]:
        return await self._fan_out(
            files,
            lambda f: self.generate_upload_url(f.file_name, f.content_type, f.file_size),
            lambda _, e: grant_error(error_message(e, "Failed to generate upload URL")),
        )

    async def generate_multiple_view_urls(
        self,
        references: Sequence[str],
    ) -> list[PresignedGrant]:
        return await self._fan_out(
            references,
            self.generate_view_url,
            lambda _, e: grant_error(error_message(e, "Failed to generate view URL")),
        )

    # ==========================================================================
    # Post-upload validation
    # ==========================================================================

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        """
        Confirm that an object uploaded through a signed URL is usable.

        The default only proves the object can be read back. Drivers whose
        upload URLs do not bind content type and size override this to read
        the real metadata and compare it.

        Args:
            reference: Full key of the uploaded object
            expected_content_type: Content type the client promised
            expected_file_size: Byte count the client promised
            delete_on_failure: Delete the object when it does not match

        Returns:
            ValidationOutcome with a view URL on success
        """
        grant = await self.generate_view_url(reference)
        if not grant.success:
            return validation_error(grant.error or "File not found or access denied")
        return validation_success(reference, view_url=grant.view_url, expires_in=grant.expires_in)

    async def _check_uploaded_object(
        self,
        reference: str,
        actual_content_type: str | None,
        actual_file_size: int | None,
        expected_content_type: str | None,
        expected_file_size: int | None,
        delete_on_failure: bool,
    ) -> ValidationOutcome:
        """Compare real object metadata with what the client promised."""
        suffix = "(file deleted)" if delete_on_failure else "(file kept for inspection)"

        problem = None
        if expected_content_type and _base_mime_type(actual_content_type) != _base_mime_type(
            expected_content_type
        ):
            problem = (
                f"Content type mismatch: expected '{expected_content_type}', "
                f"got '{actual_content_type}' {suffix}"
            )
        elif expected_file_size is not None and actual_file_size != expected_file_size:
            problem = (
                f"File size mismatch: expected {expected_file_size} bytes, "
                f"got {actual_file_size} bytes {suffix}"
            )

        if problem:
            logger.warning(f"[{self.driver_name}] Rejected upload {reference}: {problem}")
            if delete_on_failure:
                await self.delete(reference)
            return validation_error(
                problem,
                actual_content_type=actual_content_type,
                actual_file_size=actual_file_size,
            )

        grant = await self.generate_view_url(reference)
        return validation_success(
            reference,
            view_url=grant.view_url if grant.success else None,
            actual_content_type=actual_content_type,
            actual_file_size=actual_file_size,
            expires_in=grant.expires_in if grant.success else None,
        )
