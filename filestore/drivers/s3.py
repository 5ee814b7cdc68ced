"""Amazon S3 (and S3-compatible, e.g. MinIO) storage driver."""

import logging
from typing import Any

import aioboto3
from botocore.exceptions import ClientError

from filestore.config import StorageConfig
from filestore.drivers.base import StorageDriver
from filestore.file_utils import detect_mime_type_by_extension
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

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in NOT_FOUND_CODES


class S3StorageDriver(StorageDriver):
    """
    S3 storage driver.

    Supports both AWS S3 and S3-compatible services (via aws_endpoint_url).
    Credentials are optional; without them the default AWS credential chain
    applies. Signed upload URLs bind Content-Type and Content-Length, so S3
    enforces upload constraints itself.
    """

    driver_name = "s3"
    enforces_upload_constraints = True
    supports_presigned_urls = True

    def __init__(self, config: StorageConfig, session: aioboto3.Session | None = None):
        """
        Initialize S3 storage.

        Args:
            config: Storage configuration (bucket_name and aws_region required)
            session: aioboto3 session to use instead of a fresh one
        """
        super().__init__(config)
        self.bucket = config.bucket_name
        self.region = config.aws_region
        self.endpoint_url = config.aws_endpoint_url
        self._session = session or aioboto3.Session()

    def _get_client_kwargs(self) -> dict:
        """Build kwargs for S3 client."""
        kwargs = {
            "region_name": self.region,
        }
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.config.aws_access_key and self.config.aws_secret_key:
            kwargs["aws_access_key_id"] = self.config.aws_access_key
            kwargs["aws_secret_access_key"] = self.config.aws_secret_key
        return kwargs

    def _client(self):
        return self._session.client("s3", **self._get_client_kwargs())

    def _file_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    # ==========================================================================
    # Primitives
    # ==========================================================================

    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        options: UploadOptions | None = None,
    ) -> str:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": content,
            "ContentType": content_type,
        }
        if options:
            if options.metadata:
                params["Metadata"] = dict(options.metadata)
            if options.cache_control:
                params["CacheControl"] = options.cache_control
            if options.content_disposition:
                params["ContentDisposition"] = options.content_disposition

        async with self._client() as s3:
            await s3.put_object(**params)
        return self._file_url(key)

    async def _delete_once(self, reference: str) -> bool:
        async with self._client() as s3:
            # delete_object succeeds for missing keys, so check first
            try:
                await s3.head_object(Bucket=self.bucket, Key=reference)
            except ClientError as e:
                if _is_not_found(e):
                    return False
                raise
            await s3.delete_object(Bucket=self.bucket, Key=reference)
            return True

    async def delete(self, reference: str) -> bool:
        try:
            deleted = await with_retry(
                lambda: self._delete_once(reference),
                self.retry_policy,
                description=f"[{self.driver_name}] delete of {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to delete {reference}: {e}")
            return False
        if deleted:
            logger.info(f"[{self.driver_name}] Deleted {reference}")
        return deleted

    async def _presign(self, method: str, params: dict[str, Any]) -> str:
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                ClientMethod=method,
                Params=params,
                ExpiresIn=self.config.presigned_url_expiry,
            )

    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": reference}
        if content_type:
            params["ContentType"] = content_type
        if file_size is not None:
            params["ContentLength"] = file_size

        try:
            url = await with_retry(
                lambda: self._presign("put_object", params),
                self.retry_policy,
                description=f"[{self.driver_name}] upload URL for {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to sign upload URL for {reference}: {e}")
            return grant_error(error_message(e, "Failed to generate upload URL"))

        return grant_success(
            reference,
            upload_url=url,
            content_type=content_type,
            file_size=file_size,
            expires_in=self.config.presigned_url_expiry,
            requires_validation=self.requires_validation,
        )

    async def generate_view_url(self, reference: str) -> PresignedGrant:
        try:
            url = await with_retry(
                lambda: self._presign("get_object", {"Bucket": self.bucket, "Key": reference}),
                self.retry_policy,
                description=f"[{self.driver_name}] view URL for {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to sign view URL for {reference}: {e}")
            return grant_error(error_message(e, "Failed to generate view URL"))

        return grant_success(
            reference,
            view_url=url,
            expires_in=self.config.presigned_url_expiry,
        )

    async def _list_once(self, params: dict[str, Any]) -> dict:
        async with self._client() as s3:
            return await s3.list_objects_v2(**params)

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "MaxKeys": max(1, min(max_results, 1000)),
        }
        effective_prefix = prefix if prefix is not None else self.config.bucket_path
        if effective_prefix:
            params["Prefix"] = effective_prefix
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = await with_retry(
                lambda: self._list_once(params),
                self.retry_policy,
                description=f"[{self.driver_name}] list",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to list files: {e}")
            return list_error(error_message(e, "Failed to list files"))

        files = [
            FileInfo(
                name=item["Key"],
                size=item.get("Size"),
                content_type=detect_mime_type_by_extension(item["Key"]),
                last_modified=item.get("LastModified"),
            )
            for item in response.get("Contents", [])
        ]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return list_success(files, next_token)

    # ==========================================================================
    # Validation
    # ==========================================================================

    async def _head(self, reference: str) -> dict | None:
        async with self._client() as s3:
            try:
                return await s3.head_object(Bucket=self.bucket, Key=reference)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise

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
            head = await with_retry(
                lambda: self._head(reference),
                self.retry_policy,
                description=f"[{self.driver_name}] head of {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to inspect {reference}: {e}")
            return validation_error("File not found or access denied")
        if head is None:
            return validation_error("File not found or access denied")

        grant = await self.generate_view_url(reference)
        if not grant.success:
            return validation_error(grant.error or "Failed to generate view URL")
        return validation_success(
            reference,
            view_url=grant.view_url,
            actual_content_type=head.get("ContentType"),
            actual_file_size=head.get("ContentLength"),
            expires_in=grant.expires_in,
        )
