"""Google Cloud Storage driver."""

import asyncio
import logging
from datetime import timedelta

from google.api_core.exceptions import NotFound
from google.cloud import storage

from filestore.config import StorageConfig
from filestore.drivers.base import StorageDriver
from filestore.results import (
    error_message,
    grant_error,
    grant_success,
    list_error,
    list_success,
    validation_error,
    validation_success,
)
from filestore.retry import with_retry
from filestore.schemas import (
    FileInfo,
    ListFilesResult,
    PresignedGrant,
    UploadOptions,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_CONTENT_TYPE = "application/octet-stream"


class GCSStorageDriver(StorageDriver):
    """
    Google Cloud Storage driver.

    The google-cloud-storage client is blocking, so every call runs in a
    worker thread. Without ``gcs_credentials`` the client uses Application
    Default Credentials. Signed upload URLs bind the content type and an
    exact ``x-goog-content-length-range``.
    """

    driver_name = "gcs"
    enforces_upload_constraints = True
    supports_presigned_urls = True

    def __init__(self, config: StorageConfig, client: storage.Client | None = None):
        """
        Initialize GCS storage.

        Args:
            config: Storage configuration (bucket_name and gcs_project_id required)
            client: Pre-built storage client, mainly for tests
        """
        super().__init__(config)
        self.bucket_name = config.bucket_name
        if client is None:
            if config.gcs_credentials:
                client = storage.Client.from_service_account_json(
                    config.gcs_credentials, project=config.gcs_project_id
                )
            else:
                client = storage.Client(project=config.gcs_project_id)
        self._client = client
        self._bucket = client.bucket(self.bucket_name)

    def _file_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    # ==========================================================================
    # Primitives
    # ==========================================================================

    def _put_sync(
        self,
        key: str,
        content: bytes,
        content_type: str,
        options: UploadOptions | None,
    ) -> None:
        blob = self._bucket.blob(key)
        if options:
            if options.metadata:
                blob.metadata = dict(options.metadata)
            if options.cache_control:
                blob.cache_control = options.cache_control
            if options.content_disposition:
                blob.content_disposition = options.content_disposition
        blob.upload_from_string(content, content_type=content_type)

    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        options: UploadOptions | None = None,
    ) -> str:
        await asyncio.to_thread(self._put_sync, key, content, content_type, options)
        return self._file_url(key)

    def _delete_sync(self, reference: str) -> bool:
        try:
            self._bucket.blob(reference).delete()
        except NotFound:
            return False
        return True

    async def delete(self, reference: str) -> bool:
        try:
            deleted = await with_retry(
                lambda: asyncio.to_thread(self._delete_sync, reference),
                self.retry_policy,
                description=f"[{self.driver_name}] delete of {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to delete {reference}: {e}")
            return False
        if deleted:
            logger.info(f"[{self.driver_name}] Deleted {reference}")
        return deleted

    def _sign_sync(
        self,
        reference: str,
        method: str,
        content_type: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        kwargs = {
            "version": "v4",
            "expiration": timedelta(seconds=self.config.presigned_url_expiry),
            "method": method,
        }
        if content_type:
            kwargs["content_type"] = content_type
        if headers:
            kwargs["headers"] = headers
        return self._bucket.blob(reference).generate_signed_url(**kwargs)

    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        resolved_content_type = content_type or DEFAULT_UPLOAD_CONTENT_TYPE
        headers = None
        if file_size is not None:
            # Restricts the upload to exactly file_size bytes
            headers = {"x-goog-content-length-range": f"{file_size},{file_size}"}

        try:
            url = await with_retry(
                lambda: asyncio.to_thread(
                    self._sign_sync, reference, "PUT", resolved_content_type, headers
                ),
                self.retry_policy,
                description=f"[{self.driver_name}] upload URL for {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to sign upload URL for {reference}: {e}")
            return grant_error(error_message(e, "Failed to generate upload URL"))

        return grant_success(
            reference,
            upload_url=url,
            content_type=resolved_content_type,
            file_size=file_size,
            expires_in=self.config.presigned_url_expiry,
            requires_validation=self.requires_validation,
        )

    async def generate_view_url(self, reference: str) -> PresignedGrant:
        try:
            url = await with_retry(
                lambda: asyncio.to_thread(self._sign_sync, reference, "GET"),
                self.retry_policy,
                description=f"[{self.driver_name}] view URL for {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to sign view URL for {reference}: {e}")
            return grant_error(error_message(e, "Failed to generate view URL"))

        return grant_success(reference, view_url=url, expires_in=self.config.presigned_url_expiry)

    def _list_sync(
        self,
        prefix: str | None,
        max_results: int,
        continuation_token: str | None,
    ) -> tuple[list[FileInfo], str | None]:
        iterator = self._client.list_blobs(
            self.bucket_name,
            prefix=prefix or None,
            max_results=max_results,
            page_token=continuation_token or None,
        )
        page = next(iterator.pages, None)
        blobs = list(page) if page is not None else []
        files = [
            FileInfo(
                name=blob.name,
                size=blob.size,
                content_type=blob.content_type,
                last_modified=blob.updated,
            )
            for blob in blobs
        ]
        return files, iterator.next_page_token

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        effective_prefix = prefix if prefix is not None else self.config.bucket_path
        page_size = max(1, min(max_results, 1000))
        try:
            files, next_token = await with_retry(
                lambda: asyncio.to_thread(
                    self._list_sync, effective_prefix, page_size, continuation_token
                ),
                self.retry_policy,
                description=f"[{self.driver_name}] list",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to list files: {e}")
            return list_error(error_message(e, "Failed to list files"))
        return list_success(files, next_token)

    # ==========================================================================
    # Validation
    # ==========================================================================

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        """
        Confirm the object exists and report its real metadata.

        The signed upload URL already bound content type and size, so no
        comparison is made here.
        """
        try:
            blob = await with_retry(
                lambda: asyncio.to_thread(self._bucket.get_blob, reference),
                self.retry_policy,
                description=f"[{self.driver_name}] metadata of {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to inspect {reference}: {e}")
            return validation_error("File not found or access denied")
        if blob is None:
            return validation_error("File not found or access denied")

        grant = await self.generate_view_url(reference)
        if not grant.success:
            return validation_error(grant.error or "Failed to generate view URL")
        return validation_success(
            reference,
            view_url=grant.view_url,
            actual_content_type=blob.content_type,
            actual_file_size=blob.size,
            expires_in=grant.expires_in,
        )

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)
