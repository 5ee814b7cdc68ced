"""
Unified async file storage.

Provides one interface over:
- Local disk storage (development)
- Amazon S3 and S3-compatible services (MinIO)
- Google Cloud Storage
- Azure Blob Storage

Each cloud backend also has a ``*-presigned`` variant where uploads hand out
signed URLs for direct client uploads.
"""

from filestore.config import StorageConfig, StorageSettings, load_storage_config, validate_storage_config
from filestore.drivers.base import StorageDriver
from filestore.exceptions import ConfigurationError, RateLimitExceededError, StorageError
from filestore.factory import create_driver
from filestore.manager import StorageManager
from filestore.rate_limit import SlidingWindowRateLimiter
from filestore.retry import RetryPolicy, with_retry
from filestore.schemas import (
    DeleteOutcome,
    FileInfo,
    FileMetadata,
    FileValidationOptions,
    ListFilesResult,
    PresignedGrant,
    StorageDriverKind,
    UploadOptions,
    UploadResult,
    UploadTarget,
    ValidationOutcome,
)

__all__ = [
    "ConfigurationError",
    "DeleteOutcome",
    "FileInfo",
    "FileMetadata",
    "FileValidationOptions",
    "ListFilesResult",
    "PresignedGrant",
    "RateLimitExceededError",
    "RetryPolicy",
    "SlidingWindowRateLimiter",
    "StorageConfig",
    "StorageDriver",
    "StorageDriverKind",
    "StorageError",
    "StorageManager",
    "StorageSettings",
    "UploadOptions",
    "UploadResult",
    "UploadTarget",
    "ValidationOutcome",
    "create_driver",
    "load_storage_config",
    "validate_storage_config",
    "with_retry",
]
