"""
Azure Blob Storage driver.

Supports three authentication methods:
1. Connection string
2. Account name + account key
3. Account name only, using DefaultAzureCredential (Managed Identity)

SAS URL generation needs an account key (methods 1 or 2). Managed Identity
supports direct upload, delete and listing only.
"""

import logging
from datetime import datetime, timedelta, timezone

from azure.core.exceptions import ResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential
from azure.storage.blob import BlobSasPermissions, ContentSettings, generate_blob_sas
from azure.storage.blob.aio import BlobServiceClient

from filestore.config import StorageConfig, azure_account_name, azure_signing_key
from filestore.drivers.base import StorageDriver
from filestore.exceptions import ConfigurationError
from filestore.results import (
    error_message,
    grant_error,
    grant_success,
    list_error,
    list_success,
    validation_error,
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

ACCOUNT_KEY_REQUIRED = (
    "Account key is required for generating SAS URLs. "
    "Use azure_connection_string or provide azure_account_key."
)
DEFAULT_UPLOAD_CONTENT_TYPE = "application/octet-stream"


class AzureStorageDriver(StorageDriver):
    """
    Azure Blob Storage driver.

    SAS upload URLs cannot bind content type or size, so uploads made through
    them must be confirmed with ``validate_and_confirm_upload``, which reads
    the blob's real properties and deletes mismatches.
    """

    driver_name = "azure"
    enforces_upload_constraints = False
    supports_presigned_urls = True

    def __init__(
        self,
        config: StorageConfig,
        service_client: BlobServiceClient | None = None,
    ):
        """
        Initialize Azure storage.

        Args:
            config: Storage configuration
            service_client: Pre-built async BlobServiceClient, mainly for tests

        Raises:
            ConfigurationError: If no usable authentication method is configured
        """
        super().__init__(config)
        self.container_name = config.container_name
        self.account_name = azure_account_name(config)
        self.account_key = azure_signing_key(config)
        self._credential: DefaultAzureCredential | None = None

        if service_client is None:
            service_client = self._build_service_client(config)
        self._service = service_client
        self._container = service_client.get_container_client(self.container_name)

    def _build_service_client(self, config: StorageConfig) -> BlobServiceClient:
        if config.azure_connection_string:
            return BlobServiceClient.from_connection_string(config.azure_connection_string)
        if not config.azure_account_name:
            raise ConfigurationError(
                "Azure configuration requires azure_connection_string, "
                "azure_account_name + azure_account_key, or azure_account_name "
                "(for Managed Identity)",
                driver=self.driver_name,
            )
        account_url = f"https://{config.azure_account_name}.blob.core.windows.net"
        if config.azure_account_key:
            return BlobServiceClient(
                account_url,
                credential={
                    "account_name": config.azure_account_name,
                    "account_key": config.azure_account_key,
                },
            )
        self._credential = DefaultAzureCredential()
        return BlobServiceClient(account_url, credential=self._credential)

    @property
    def can_sign_urls(self) -> bool:
        return bool(self.account_name and self.account_key)

    def _sas_url(self, reference: str, permission: BlobSasPermissions, **kwargs) -> str:
        blob_client = self._container.get_blob_client(reference)
        token = generate_blob_sas(
            account_name=self.account_name,
            container_name=self.container_name,
            blob_name=reference,
            account_key=self.account_key,
            permission=permission,
            expiry=datetime.now(timezone.utc)
            + timedelta(seconds=self.config.presigned_url_expiry),
            **kwargs,
        )
        return f"{blob_client.url}?{token}"

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
        blob_client = self._container.get_blob_client(key)
        content_settings = ContentSettings(
            content_type=content_type,
            cache_control=options.cache_control if options else None,
            content_disposition=options.content_disposition if options else None,
        )
        await blob_client.upload_blob(
            content,
            overwrite=True,
            content_settings=content_settings,
            metadata=dict(options.metadata) if options and options.metadata else None,
        )
        return blob_client.url

    async def _delete_once(self, reference: str) -> bool:
        blob_client = self._container.get_blob_client(reference)
        if not await blob_client.exists():
            return False
        try:
            await blob_client.delete_blob()
        except ResourceNotFoundError:
            return False
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

    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        """
        Create a create+write SAS URL.

        ``content_type`` and ``file_size`` are informational only: SAS tokens
        cannot enforce either, hence ``requires_validation``.
        """
        if not self.can_sign_urls:
            return grant_error(ACCOUNT_KEY_REQUIRED)
        resolved_content_type = content_type or DEFAULT_UPLOAD_CONTENT_TYPE
        try:
            url = self._sas_url(
                reference,
                BlobSasPermissions(create=True, write=True),
                content_type=resolved_content_type,
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
        if not self.can_sign_urls:
            return grant_error(ACCOUNT_KEY_REQUIRED)
        try:
            url = self._sas_url(reference, BlobSasPermissions(read=True))
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to sign view URL for {reference}: {e}")
            return grant_error(error_message(e, "Failed to generate view URL"))
        return grant_success(reference, view_url=url, expires_in=self.config.presigned_url_expiry)

    async def _list_once(
        self,
        prefix: str | None,
        page_size: int,
        continuation_token: str | None,
    ) -> tuple[list[FileInfo], str | None]:
        pages = self._container.list_blobs(
            name_starts_with=prefix or None,
            results_per_page=page_size,
        ).by_page(continuation_token=continuation_token)

        files: list[FileInfo] = []
        async for page in pages:
            async for blob in page:
                files.append(
                    FileInfo(
                        name=blob.name,
                        size=blob.size,
                        content_type=blob.content_settings.content_type
                        if blob.content_settings
                        else None,
                        last_modified=blob.last_modified,
                    )
                )
            # One page per call
            break
        return files, pages.continuation_token

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        effective_prefix = prefix if prefix is not None else self.config.bucket_path
        page_size = max(1, min(max_results, 5000))
        try:
            files, next_token = await with_retry(
                lambda: self._list_once(effective_prefix, page_size, continuation_token),
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

    async def _properties(self, reference: str):
        try:
            return await self._container.get_blob_client(reference).get_blob_properties()
        except ResourceNotFoundError:
            return None

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        try:
            properties = await with_retry(
                lambda: self._properties(reference),
                self.retry_policy,
                description=f"[{self.driver_name}] properties of {reference}",
            )
        except Exception as e:
            logger.error(f"[{self.driver_name}] Failed to inspect {reference}: {e}")
            return validation_error(error_message(e, "Failed to validate upload"))
        if properties is None:
            return validation_error("File not found or access denied")

        content_settings = properties.content_settings
        return await self._check_uploaded_object(
            reference,
            content_settings.content_type if content_settings else None,
            properties.size,
            expected_content_type,
            expected_file_size,
            delete_on_failure,
        )

    async def close(self) -> None:
        await self._service.close()
        if self._credential is not None:
            await self._credential.close()
