"""
Storage configuration.

``StorageConfig`` is the value every driver is built from. It is frozen, so
the factory can cache drivers keyed by the config itself. ``StorageSettings``
reads the same values from the environment (or ``.env``) for applications
that want that; nothing in the package reads the environment on its own.
"""

from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from filestore.retry import RetryPolicy
from filestore.schemas import ConfigValidationResult, StorageDriverKind

MAX_PRESIGNED_URL_EXPIRY = 604800  # 7 days, the longest any provider signs
DEFAULT_PRESIGNED_URL_EXPIRY = 600
DEFAULT_MAX_FILE_SIZE = 5 * 1024**3  # 5 GiB
MAX_FILE_SIZE_LIMIT = 5 * 1024**4  # 5 TiB

SECRET_FIELDS = (
    "aws_access_key",
    "aws_secret_key",
    "gcs_credentials",
    "azure_connection_string",
    "azure_account_key",
)


class StorageConfig(BaseModel):
    """Configuration for one storage driver."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    driver: str = Field(..., description="One of the StorageDriverKind values")

    # Common
    bucket_name: str | None = None
    bucket_path: str | None = Field(None, description="Key prefix for stored files")
    local_path: str = "uploads"
    presigned_url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_concurrency: int = 10

    # Retry
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 10.0

    # AWS / S3-compatible
    aws_region: str | None = None
    aws_access_key: str | None = None
    aws_secret_key: str | None = None
    aws_endpoint_url: str | None = None  # Set for MinIO, None for AWS S3

    # Google Cloud Storage
    gcs_project_id: str | None = None
    gcs_credentials: str | None = Field(None, description="Path to a service account key file")

    # Azure Blob Storage
    azure_connection_string: str | None = None
    azure_account_name: str | None = None
    azure_account_key: str | None = None
    azure_container_name: str | None = None

    @property
    def driver_kind(self) -> StorageDriverKind:
        """The driver as an enum; raises ValueError for unknown drivers."""
        return StorageDriverKind(self.driver)

    @property
    def container_name(self) -> str | None:
        """Azure container, falling back to the generic bucket name."""
        return self.azure_container_name or self.bucket_name

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )

    def masked(self) -> dict[str, Any]:
        """Config as a dict with credentials replaced by ``***``."""
        data = self.model_dump()
        for name in SECRET_FIELDS:
            if data.get(name):
                data[name] = "***"
        return data


# =============================================================================
# Validation
# =============================================================================


def _parse_connection_string(connection_string: str) -> dict[str, str]:
    parts: dict[str, str] = {}
    for segment in connection_string.split(";"):
        key, sep, value = segment.partition("=")
        if sep and key.strip():
            parts[key.strip()] = value.strip()
    return parts


def azure_signing_key(config: StorageConfig) -> str | None:
    """Account key usable for SAS signing, explicit or from the connection string."""
    if config.azure_account_key:
        return config.azure_account_key
    if config.azure_connection_string:
        return _parse_connection_string(config.azure_connection_string).get("AccountKey")
    return None


def azure_account_name(config: StorageConfig) -> str | None:
    """Account name, explicit or from the connection string."""
    if config.azure_account_name:
        return config.azure_account_name
    if config.azure_connection_string:
        return _parse_connection_string(config.azure_connection_string).get("AccountName")
    return None


def validate_storage_config(config: StorageConfig) -> ConfigValidationResult:
    """
    Check a config against the requirements of its driver kind.

    All problems are collected, not just the first one.

    Args:
        config: Configuration to check

    Returns:
        ConfigValidationResult with is_valid and the list of errors
    """
    errors: list[str] = []

    try:
        kind = StorageDriverKind(config.driver)
    except ValueError:
        valid = ", ".join(k.value for k in StorageDriverKind)
        errors.append(f"Invalid driver '{config.driver}'. Valid drivers: {valid}")
        kind = None

    if kind is not None and kind.provider == "s3":
        if not config.bucket_name:
            errors.append("bucket_name is required for S3")
        if not config.aws_region:
            errors.append("aws_region is required for S3")
        # Keys are optional: the default AWS credential chain applies

    if kind is not None and kind.provider == "gcs":
        if not config.bucket_name:
            errors.append("bucket_name is required for GCS")
        if not config.gcs_project_id:
            errors.append("gcs_project_id is required for GCS")
        # Credentials are optional: Application Default Credentials apply

    if kind is not None and kind.provider == "azure":
        has_connection_string = bool(config.azure_connection_string)
        has_account_name = bool(config.azure_account_name)
        if not has_connection_string and not has_account_name:
            errors.append(
                "Azure requires azure_connection_string or azure_account_name "
                "(with azure_account_key, or Managed Identity for direct operations)"
            )
        if kind.is_presigned and (has_connection_string or has_account_name):
            if not azure_signing_key(config):
                errors.append(
                    "azure-presigned requires an account key for SAS signing "
                    "(azure_account_key or AccountKey in azure_connection_string)"
                )
        if not config.container_name:
            errors.append("azure_container_name or bucket_name is required for Azure")

    if config.presigned_url_expiry <= 0:
        errors.append("presigned_url_expiry must be a positive number of seconds")
    elif config.presigned_url_expiry > MAX_PRESIGNED_URL_EXPIRY:
        errors.append(
            f"presigned_url_expiry cannot exceed {MAX_PRESIGNED_URL_EXPIRY} seconds (7 days)"
        )

    if config.max_file_size <= 0:
        errors.append("max_file_size must be a positive number of bytes")
    elif config.max_file_size > MAX_FILE_SIZE_LIMIT:
        errors.append(f"max_file_size cannot exceed {MAX_FILE_SIZE_LIMIT} bytes (5 TiB)")

    if config.max_concurrency < 1:
        errors.append("max_concurrency must be at least 1")
    if config.retry_max_attempts < 1:
        errors.append("retry_max_attempts must be at least 1")
    if config.retry_base_delay < 0 or config.retry_max_delay < 0:
        errors.append("retry delays must be non-negative")

    return ConfigValidationResult(is_valid=not errors, errors=errors)


# =============================================================================
# Environment settings
# =============================================================================


class StorageSettings(BaseSettings):
    """Storage settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    file_driver: str = "local"
    bucket_name: str | None = None
    bucket_path: str | None = None
    local_path: str = "uploads"
    presigned_url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_concurrency: int = 10

    retry_max_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 10.0

    aws_region: str | None = None
    aws_access_key: str | None = None
    aws_secret_key: str | None = None
    aws_endpoint_url: str | None = None

    gcs_project_id: str | None = None
    gcs_credentials: str | None = None

    azure_connection_string: str | None = None
    azure_account_name: str | None = None
    azure_account_key: str | None = None
    azure_container_name: str | None = None

    def to_config(self, **overrides: Any) -> StorageConfig:
        """Build a StorageConfig, letting explicit values win over the environment."""
        values = self.model_dump()
        values["driver"] = values.pop("file_driver")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return StorageConfig(**values)


@lru_cache
def get_storage_settings() -> StorageSettings:
    """Get cached settings instance."""
    return StorageSettings()


def load_storage_config(**overrides: Any) -> StorageConfig:
    """Environment-backed config with optional explicit overrides."""
    return get_storage_settings().to_config(**overrides)
