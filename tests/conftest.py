"""
Pytest configuration and fixtures.

Provides reusable fixtures for storage tests:
- local_config: StorageConfig for the local driver under tmp_path
- memory_driver: in-memory driver whose signed URLs cannot enforce constraints
- upload_target: factory for UploadTarget values
- clear_driver_cache: resets the factory cache around every test
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from filestore.config import StorageConfig
from filestore.drivers.base import StorageDriver
from filestore.factory import clear_driver_cache as _clear_driver_cache
from filestore.results import (
    grant_error,
    grant_success,
    list_success,
    validation_error,
)
from filestore.schemas import (
    FileInfo,
    ListFilesResult,
    PresignedGrant,
    UploadOptions,
    UploadTarget,
    ValidationOutcome,
)

# =============================================================================
# Test Doubles
# =============================================================================


class InMemoryDriver(StorageDriver):
    """
    Driver backed by a dict, for exercising the shared base behavior.

    Its signed URLs behave like SAS URLs: they cannot bind content type or
    size, so uploads through them need validate_and_confirm_upload.
    """

    driver_name = "memory"
    enforces_upload_constraints = False
    supports_presigned_urls = True

    def __init__(self, config: StorageConfig, failures: int = 0):
        super().__init__(config)
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_calls = 0
        self.delete_calls: list[str] = []
        self.failures = failures

    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        options: UploadOptions | None = None,
    ) -> str:
        self.put_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("connection reset by peer")
        self.objects[key] = (content, content_type)
        return f"memory://bucket/{key}"

    async def delete(self, reference: str) -> bool:
        self.delete_calls.append(reference)
        return self.objects.pop(reference, None) is not None

    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        return grant_success(
            reference,
            upload_url=f"memory://upload/{reference}?sig=abc",
            content_type=content_type,
            file_size=file_size,
            expires_in=self.config.presigned_url_expiry,
            requires_validation=self.requires_validation,
        )

    async def generate_view_url(self, reference: str) -> PresignedGrant:
        if reference not in self.objects:
            return grant_error("File not found")
        return grant_success(
            reference,
            view_url=f"memory://view/{reference}?sig=abc",
            expires_in=self.config.presigned_url_expiry,
        )

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        names = sorted(n for n in self.objects if not prefix or n.startswith(prefix))
        return list_success(
            [FileInfo(name=n, size=len(self.objects[n][0])) for n in names[:max_results]]
        )

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        if reference not in self.objects:
            return validation_error("File not found or access denied")
        content, content_type = self.objects[reference]
        return await self._check_uploaded_object(
            reference,
            content_type,
            len(content),
            expected_content_type,
            expected_file_size,
            delete_on_failure,
        )

    def simulate_client_upload(self, reference: str, content: bytes, content_type: str) -> None:
        """What a browser PUT to the signed URL would do."""
        self.objects[reference] = (content, content_type)


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def memory_config() -> StorageConfig:
    """Config with fast retries, used by the in-memory driver."""
    return StorageConfig(
        driver="local",
        retry_max_attempts=3,
        retry_base_delay=0.001,
        retry_max_delay=0.01,
        max_file_size=1024 * 1024,
    )


@pytest.fixture
def local_config(tmp_path: Path) -> StorageConfig:
    """Local driver config rooted in a temporary directory."""
    return StorageConfig(
        driver="local",
        local_path=str(tmp_path / "uploads"),
        max_file_size=1024 * 1024,
        retry_base_delay=0.001,
        retry_max_delay=0.01,
    )


@pytest.fixture
def s3_config() -> StorageConfig:
    return StorageConfig(
        driver="s3",
        bucket_name="test-bucket",
        aws_region="us-east-1",
        aws_access_key="AKIATEST",
        aws_secret_key="secret",
        retry_base_delay=0.001,
        retry_max_delay=0.01,
    )


@pytest.fixture
def gcs_config() -> StorageConfig:
    return StorageConfig(
        driver="gcs",
        bucket_name="test-bucket",
        gcs_project_id="test-project",
        retry_base_delay=0.001,
        retry_max_delay=0.01,
    )


@pytest.fixture
def azure_config() -> StorageConfig:
    return StorageConfig(
        driver="azure",
        azure_account_name="testaccount",
        azure_account_key="dGVzdGtleQ==",
        azure_container_name="test-container",
        retry_base_delay=0.001,
        retry_max_delay=0.01,
    )


# =============================================================================
# Driver Fixtures
# =============================================================================


@pytest.fixture
def memory_driver(memory_config: StorageConfig) -> InMemoryDriver:
    return InMemoryDriver(memory_config)


@pytest.fixture
def upload_target():
    """Factory for upload targets."""

    def _create(
        content: bytes = b"hello world",
        original_name: str = "a.txt",
        content_type: str = "text/plain",
        size: int | None = None,
    ) -> UploadTarget:
        return UploadTarget(
            content=content,
            original_name=original_name,
            content_type=content_type,
            size=size,
        )

    return _create


@pytest.fixture(autouse=True)
def clear_driver_cache() -> Generator[None, None, None]:
    """Each test starts and ends with an empty driver cache."""
    _clear_driver_cache()
    yield
    _clear_driver_cache()
