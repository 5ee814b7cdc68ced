"""
Presigned-upload wrapper.

``PresignedUploadDriver`` turns any signing-capable driver into its
``*-presigned`` variant: ``upload`` returns a signed URL for the client to
PUT the bytes to, instead of writing them. Every other operation is
delegated to the wrapped driver unchanged.
"""

import logging

from filestore.drivers.base import StorageDriver
from filestore.exceptions import ConfigurationError
from filestore.file_utils import generate_unique_file_name
from filestore.results import upload_error, upload_success
from filestore.schemas import (
    ListFilesResult,
    PresignedGrant,
    UploadOptions,
    UploadResult,
    UploadTarget,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)


class PresignedUploadDriver(StorageDriver):
    """Wraps a driver so uploads hand out signed URLs instead of writing bytes."""

    supports_presigned_urls = True

    def __init__(self, inner: StorageDriver):
        """
        Args:
            inner: Driver that signs the URLs and serves everything else

        Raises:
            ConfigurationError: If the inner driver cannot sign URLs
        """
        if not inner.supports_presigned_urls:
            raise ConfigurationError(
                f"{inner.driver_name} storage does not support presigned URLs",
                driver=inner.driver_name,
            )
        if not inner.can_sign_urls:
            raise ConfigurationError(
                f"{inner.driver_name}-presigned requires credentials that can sign URLs "
                f"(Managed Identity cannot be used with presigned URLs, use the "
                f"'{inner.driver_name}' driver instead)",
                driver=inner.driver_name,
            )
        super().__init__(inner.config)
        self.inner = inner
        self.driver_name = f"{inner.driver_name}-presigned"
        self.enforces_upload_constraints = inner.enforces_upload_constraints

    @property
    def can_sign_urls(self) -> bool:
        return self.inner.can_sign_urls

    def validate_declared_target(self, target: UploadTarget | None) -> str | None:
        """
        Checks for a target whose bytes the client will send later.

        Uses the declared size when given, since the signed URL binds it;
        falls back to any bytes that are present.
        """
        error = self.check_target_identity(target)
        if error:
            return error
        if target.content and target.size is not None and target.size != len(target.content):
            return (
                f"Declared file size {target.size} does not match content length "
                f"{len(target.content)}"
            )
        size = target.size if target.size is not None else len(target.content or b"")
        if size <= 0:
            return "File content is empty"
        return self.check_file_size(size)

    async def upload(
        self,
        target: UploadTarget | None,
        options: UploadOptions | None = None,
    ) -> UploadResult:
        """
        Validate the target and return a signed upload URL as ``file_url``.

        The URL is bound to the target's content type and declared size where
        the backend supports it.
        """
        error = self.validate_declared_target(target)
        if error:
            return upload_error(error)

        size = target.size if target.size is not None else len(target.content)
        key = self.build_reference(generate_unique_file_name(target.original_name))
        content_type = (options.content_type if options else None) or target.content_type
        grant = await self.inner.generate_upload_url(key, content_type, size)
        if not grant.success:
            return upload_error(grant.error or "Failed to generate presigned URL")

        logger.info(f"[{self.driver_name}] Issued upload URL for {key}")
        return upload_success(key, grant.upload_url)

    # ==========================================================================
    # Delegation
    # ==========================================================================

    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        options: UploadOptions | None = None,
    ) -> str:
        return await self.inner.put_object(key, content, content_type, options)

    async def delete(self, reference: str) -> bool:
        return await self.inner.delete(reference)

    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        return await self.inner.generate_upload_url(reference, content_type, file_size)

    async def generate_view_url(self, reference: str) -> PresignedGrant:
        return await self.inner.generate_view_url(reference)

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        return await self.inner.list_files(prefix, max_results, continuation_token)

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        return await self.inner.validate_and_confirm_upload(
            reference, expected_content_type, expected_file_size, delete_on_failure
        )

    async def close(self) -> None:
        await self.inner.close()
