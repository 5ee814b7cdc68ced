"""
Unit tests for the S3 driver.

Uses a mocked aioboto3 session - does not hit real AWS endpoints.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from filestore.config import StorageConfig
from filestore.drivers.s3 import S3StorageDriver
from filestore.schemas import UploadOptions, UploadTarget


def client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def s3_client() -> AsyncMock:
    """The object yielded by ``session.client("s3")``."""
    client = AsyncMock()
    client.generate_presigned_url = AsyncMock(return_value="https://signed.example/url")
    return client


@pytest.fixture
def session(s3_client) -> MagicMock:
    session = MagicMock()
    session.client.return_value.__aenter__.return_value = s3_client
    session.client.return_value.__aexit__.return_value = False
    return session


@pytest.fixture
def driver(s3_config: StorageConfig, session) -> S3StorageDriver:
    return S3StorageDriver(s3_config, session=session)


# =============================================================================
# Test: Upload
# =============================================================================


class TestS3Upload:
    """Tests for direct uploads."""

    async def test_upload_puts_object(self, driver, s3_client, session):
        result = await driver.upload(
            UploadTarget(b"hello", "a.txt", "text/plain"),
            UploadOptions(metadata={"owner": "u1"}, cache_control="max-age=60"),
        )

        assert result.success is True
        assert result.file_url == (
            f"https://test-bucket.s3.us-east-1.amazonaws.com/{result.file_name}"
        )
        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["Key"] == result.file_name
        assert kwargs["Body"] == b"hello"
        assert kwargs["ContentType"] == "text/plain"
        assert kwargs["Metadata"] == {"owner": "u1"}
        assert kwargs["CacheControl"] == "max-age=60"

        client_kwargs = session.client.call_args.kwargs
        assert client_kwargs["region_name"] == "us-east-1"
        assert client_kwargs["aws_access_key_id"] == "AKIATEST"

    async def test_credentials_optional(self, session):
        config = StorageConfig(driver="s3", bucket_name="b", aws_region="eu-west-1")
        driver = S3StorageDriver(config, session=session)
        assert "aws_access_key_id" not in driver._get_client_kwargs()

    async def test_endpoint_url_used_for_file_url(self, s3_config, session):
        config = s3_config.model_copy(update={"aws_endpoint_url": "http://minio:9000/"})
        driver = S3StorageDriver(config, session=session)

        result = await driver.upload(UploadTarget(b"x", "a.txt", "text/plain"))

        assert result.file_url == f"http://minio:9000/test-bucket/{result.file_name}"
        assert driver._get_client_kwargs()["endpoint_url"] == "http://minio:9000/"

    async def test_transient_error_retried(self, driver, s3_client):
        s3_client.put_object.side_effect = [client_error("SlowDown", "PutObject"), {}]

        result = await driver.upload(UploadTarget(b"x", "a.txt", "text/plain"))

        assert result.success is True
        assert s3_client.put_object.call_count == 2

    async def test_persistent_error_normalized(self, driver, s3_client):
        s3_client.put_object.side_effect = client_error("AccessDenied", "PutObject")

        result = await driver.upload(UploadTarget(b"x", "a.txt", "text/plain"))

        assert result.success is False
        assert "AccessDenied" in result.error
        assert s3_client.put_object.call_count == 3


# =============================================================================
# Test: Delete
# =============================================================================


class TestS3Delete:
    """Tests for deletion."""

    async def test_delete_existing(self, driver, s3_client):
        assert await driver.delete("a.txt") is True
        s3_client.delete_object.assert_awaited_once_with(Bucket="test-bucket", Key="a.txt")

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    async def test_delete_missing_returns_false_without_retry(self, driver, s3_client, code):
        s3_client.head_object.side_effect = client_error(code)

        assert await driver.delete("missing") is False
        assert await driver.delete("missing") is False
        assert s3_client.head_object.call_count == 2
        s3_client.delete_object.assert_not_called()

    async def test_delete_error_returns_false(self, driver, s3_client):
        s3_client.head_object.side_effect = client_error("AccessDenied")
        assert await driver.delete("a.txt") is False


# =============================================================================
# Test: Presigned URLs
# =============================================================================


class TestS3Presigned:
    """Tests for signed URL generation."""

    async def test_upload_url_signs_type_and_length(self, driver, s3_client):
        grant = await driver.generate_upload_url("k/a.txt", "text/plain", 42)

        assert grant.success is True
        assert grant.upload_url == "https://signed.example/url"
        assert grant.requires_validation is False
        assert grant.expires_in == 600
        s3_client.generate_presigned_url.assert_awaited_once_with(
            ClientMethod="put_object",
            Params={
                "Bucket": "test-bucket",
                "Key": "k/a.txt",
                "ContentType": "text/plain",
                "ContentLength": 42,
            },
            ExpiresIn=600,
        )

    async def test_view_url(self, driver, s3_client):
        grant = await driver.generate_view_url("a.txt")

        assert grant.success is True
        assert grant.view_url == "https://signed.example/url"
        assert s3_client.generate_presigned_url.call_args.kwargs["ClientMethod"] == "get_object"

    async def test_signing_failure_normalized(self, driver, s3_client):
        s3_client.generate_presigned_url.side_effect = RuntimeError("no credentials")

        grant = await driver.generate_upload_url("a.txt")

        assert grant.success is False
        assert grant.error == "no credentials"


# =============================================================================
# Test: Listing and Validation
# =============================================================================


class TestS3ListAndValidate:
    async def test_list_files(self, driver, s3_client):
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        s3_client.list_objects_v2.return_value = {
            "Contents": [{"Key": "a.txt", "Size": 3, "LastModified": modified}],
            "IsTruncated": True,
            "NextContinuationToken": "token-2",
        }

        result = await driver.list_files(prefix="a", max_results=5000, continuation_token="t1")

        assert result.success is True
        assert result.files[0].name == "a.txt"
        assert result.files[0].size == 3
        assert result.files[0].content_type == "text/plain"
        assert result.next_token == "token-2"
        s3_client.list_objects_v2.assert_awaited_once_with(
            Bucket="test-bucket", MaxKeys=1000, Prefix="a", ContinuationToken="t1"
        )

    async def test_validate_reports_actual_metadata(self, driver, s3_client):
        s3_client.head_object.return_value = {"ContentType": "image/png", "ContentLength": 10}

        outcome = await driver.validate_and_confirm_upload("a.png", "image/png", 10)

        assert outcome.success is True
        assert outcome.actual_content_type == "image/png"
        assert outcome.actual_file_size == 10
        assert outcome.view_url == "https://signed.example/url"

    async def test_validate_missing(self, driver, s3_client):
        s3_client.head_object.side_effect = client_error("404")

        outcome = await driver.validate_and_confirm_upload("missing")

        assert outcome.success is False
        assert outcome.error == "File not found or access denied"
