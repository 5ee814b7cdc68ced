"""
Result normalization helpers.

Every driver builds its return values through these functions so callers
see the same shapes no matter which provider answered.
"""

from filestore.schemas import (
    DeleteOutcome,
    FileInfo,
    ListFilesResult,
    PresignedGrant,
    UploadResult,
    ValidationOutcome,
)

FILE_NOT_FOUND = "File not found or already deleted"


def error_message(error: BaseException, fallback: str) -> str:
    """Human-readable message for an exception, preserving the provider's text."""
    message = str(error).strip()
    return message or f"{fallback} ({type(error).__name__})"


# =============================================================================
# Uploads
# =============================================================================


def upload_success(file_name: str, file_url: str | None = None) -> UploadResult:
    return UploadResult(success=True, file_name=file_name, file_url=file_url or None)


def upload_error(error: str) -> UploadResult:
    return UploadResult(success=False, error=error)


# =============================================================================
# Presigned grants
# =============================================================================


def grant_success(
    reference: str,
    *,
    upload_url: str | None = None,
    view_url: str | None = None,
    content_type: str | None = None,
    file_size: int | None = None,
    expires_in: int | None = None,
    requires_validation: bool | None = None,
) -> PresignedGrant:
    return PresignedGrant(
        success=True,
        reference=reference,
        upload_url=upload_url,
        view_url=view_url,
        content_type=content_type,
        file_size=file_size,
        expires_in=expires_in,
        requires_validation=requires_validation,
    )


def grant_error(error: str) -> PresignedGrant:
    return PresignedGrant(success=False, error=error)


# =============================================================================
# Validation
# =============================================================================


def validation_success(
    reference: str,
    *,
    view_url: str | None = None,
    actual_content_type: str | None = None,
    actual_file_size: int | None = None,
    expires_in: int | None = None,
) -> ValidationOutcome:
    return ValidationOutcome(
        success=True,
        reference=reference,
        view_url=view_url,
        actual_content_type=actual_content_type,
        actual_file_size=actual_file_size,
        expires_in=expires_in,
    )


def validation_error(
    error: str,
    *,
    actual_content_type: str | None = None,
    actual_file_size: int | None = None,
) -> ValidationOutcome:
    return ValidationOutcome(
        success=False,
        error=error,
        actual_content_type=actual_content_type,
        actual_file_size=actual_file_size,
    )


# =============================================================================
# Deletion and listing
# =============================================================================


def delete_outcome(file_name: str, deleted: bool) -> DeleteOutcome:
    if deleted:
        return DeleteOutcome(success=True, file_name=file_name)
    return DeleteOutcome(success=False, file_name=file_name, error=FILE_NOT_FOUND)


def delete_error(file_name: str, error: str) -> DeleteOutcome:
    return DeleteOutcome(success=False, file_name=file_name, error=error)


def list_success(files: list[FileInfo], next_token: str | None = None) -> ListFilesResult:
    return ListFilesResult(success=True, files=files, next_token=next_token or None)


def list_error(error: str) -> ListFilesResult:
    return ListFilesResult(success=False, error=error)
