"""
Normalized value types for storage operations.

These schemas provide a consistent interface regardless of backend. Result
models are frozen once returned; ``to_wire()`` renders the camelCase shape
used by HTTP callers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, BinaryIO

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class StorageDriverKind(str, Enum):
    """Configured storage driver."""

    S3 = "s3"
    S3_PRESIGNED = "s3-presigned"
    GCS = "gcs"
    GCS_PRESIGNED = "gcs-presigned"
    AZURE = "azure"
    AZURE_PRESIGNED = "azure-presigned"
    LOCAL = "local"

    @property
    def is_presigned(self) -> bool:
        return self.value.endswith("-presigned")

    @property
    def provider(self) -> str:
        """Backend family without the presigned suffix (e.g. 's3')."""
        return self.value.removesuffix("-presigned")


# =============================================================================
# Inputs
# =============================================================================


@dataclass
class UploadTarget:
    """
    A file handed to the storage layer for upload.

    The declared size is a constraint checked against the configured maximum,
    never a trusted measurement; drivers write ``len(content)`` bytes.
    """

    content: bytes
    original_name: str
    content_type: str
    size: int | None = None

    def __post_init__(self) -> None:
        if self.size is None and self.content is not None:
            self.size = len(self.content)

    @classmethod
    def from_file(
        cls,
        file: BinaryIO,
        original_name: str,
        content_type: str,
    ) -> "UploadTarget":
        """Read a file-like object (seeked to start) into an upload target."""
        file.seek(0)
        content = file.read()
        file.seek(0)
        return cls(content=content, original_name=original_name, content_type=content_type)


@dataclass
class UploadOptions:
    """Optional headers and metadata applied to direct uploads."""

    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    cache_control: str | None = None
    content_disposition: str | None = None


@dataclass
class FileValidationOptions:
    """Per-call upload rules enforced by the manager before any driver call."""

    max_size: int | None = None
    allowed_mime_types: list[str] = field(default_factory=list)
    allowed_extensions: list[str] = field(default_factory=list)


class FileMetadata(BaseModel):
    """Describes one file for batch upload-URL generation."""

    file_name: str
    content_type: str | None = None
    file_size: int | None = None


# =============================================================================
# Results
# =============================================================================


class _StorageResult(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class UploadResult(_StorageResult):
    """Outcome of one upload attempt."""

    success: bool
    file_name: str | None = Field(None, description="Stored name / reference, never the caller's name")
    file_url: str | None = None
    error: str | None = None


class PresignedGrant(_StorageResult):
    """Outcome of an upload- or view-URL request."""

    success: bool
    file_name: str | None = None
    file_path: str | None = None
    reference: str | None = Field(None, description="Full key to use for view/delete/validate")
    upload_url: str | None = None
    view_url: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    expires_in: int | None = None
    requires_validation: bool | None = None
    error: str | None = None


class ValidationOutcome(_StorageResult):
    """Outcome of checking an uploaded object against expected constraints."""

    success: bool
    reference: str | None = None
    view_url: str | None = None
    actual_content_type: str | None = None
    actual_file_size: int | None = None
    expires_in: int | None = None
    error: str | None = None


class DeleteOutcome(_StorageResult):
    """Per-file deletion result, always keyed by the requested name."""

    success: bool
    file_name: str
    error: str | None = None


class FileInfo(_StorageResult):
    """Metadata for a single stored object."""

    name: str
    size: int | None = None
    content_type: str | None = None
    last_modified: datetime | None = None


class ListFilesResult(_StorageResult):
    """One page of a listing."""

    success: bool
    files: list[FileInfo] | None = None
    next_token: str | None = None
    error: str | None = None


class ConfigValidationResult(BaseModel):
    """Result of validating a StorageConfig."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
