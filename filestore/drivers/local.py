"""Local disk storage driver for development and single-host deployments."""

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import unquote

import aiofiles
import aiofiles.os

from filestore.config import StorageConfig
from filestore.drivers.base import StorageDriver
from filestore.file_utils import (
    DEFAULT_CONTENT_TYPE,
    detect_mime_type_by_content,
    detect_mime_type_by_extension,
)
from filestore.results import (
    grant_error,
    list_error,
    list_success,
    validation_error,
)
from filestore.schemas import (
    FileInfo,
    ListFilesResult,
    PresignedGrant,
    UploadOptions,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)

PRESIGNED_NOT_SUPPORTED = "Presigned URLs are not supported for local storage"
MAX_LIST_RESULTS = 1000


class LocalStorageDriver(StorageDriver):
    """
    Local disk storage.

    Files live at ``<local_path>/<reference>``. References are resolved against
    the base directory and anything that would escape it (``..``, null bytes,
    absolute paths, symlinks) is treated as absent.
    """

    driver_name = "local"
    supports_presigned_urls = False

    def __init__(self, config: StorageConfig):
        super().__init__(config)
        self.base_path = Path(config.local_path)
        # Create base directory synchronously on init
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, reference: str | None) -> Path | None:
        """
        Map a reference to a path inside the base directory.

        Returns:
            The path, or None if the reference is unsafe
        """
        if not reference:
            return None
        decoded = unquote(reference)
        if "\0" in decoded or ".." in decoded:
            return None
        if decoded.startswith(("/", "\\")) or "\\" in decoded:
            return None

        path = self.base_path / decoded
        try:
            resolved = path.resolve()
            base = self.base_path.resolve()
        except (OSError, RuntimeError):
            return None
        if resolved == base or not resolved.is_relative_to(base):
            return None
        if path.is_symlink():
            return None
        return path

    def _file_url(self, key: str) -> str:
        local_path = self.config.local_path.replace("\\", "/").strip("/")
        if local_path.startswith("public/"):
            local_path = local_path[len("public/") :]
        elif local_path == "public":
            local_path = ""
        return str(PurePosixPath("/", local_path, key)) if local_path else f"/{key}"

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
        full_path = self._resolve(key)
        if full_path is None:
            raise ValueError(f"Invalid file path: {key}")

        # Create directory if needed
        await aiofiles.os.makedirs(full_path.parent, exist_ok=True)
        async with aiofiles.open(full_path, "wb") as f:
            await f.write(content)

        return self._file_url(key)

    async def delete(self, reference: str) -> bool:
        full_path = self._resolve(reference)
        if full_path is None or not full_path.is_file():
            return False
        try:
            await aiofiles.os.remove(full_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"[{self.driver_name}] Failed to delete {reference}: {e}")
            return False
        logger.info(f"[{self.driver_name}] Deleted {reference}")
        return True

    async def generate_upload_url(
        self,
        reference: str,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> PresignedGrant:
        return grant_error(PRESIGNED_NOT_SUPPORTED)

    async def generate_view_url(self, reference: str) -> PresignedGrant:
        return grant_error(PRESIGNED_NOT_SUPPORTED)

    def _walk(self) -> list[FileInfo]:
        base = self.base_path.resolve()
        files: list[FileInfo] = []
        for root, dirs, names in os.walk(base):
            # Don't descend into symlinked directories
            dirs[:] = [d for d in dirs if not os.path.islink(os.path.join(root, d))]
            for name in names:
                path = Path(root) / name
                if path.is_symlink() or not path.is_file():
                    continue
                stat = path.stat()
                relative = path.relative_to(base).as_posix()
                files.append(
                    FileInfo(
                        name=relative,
                        size=stat.st_size,
                        content_type=detect_mime_type_by_extension(relative)
                        or DEFAULT_CONTENT_TYPE,
                        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    )
                )
        return files

    async def list_files(
        self,
        prefix: str | None = None,
        max_results: int = 1000,
        continuation_token: str | None = None,
    ) -> ListFilesResult:
        effective_prefix = prefix if prefix is not None else self.config.bucket_path
        if effective_prefix and ("\0" in effective_prefix or ".." in effective_prefix):
            return list_error("Invalid prefix")
        max_results = max(1, min(max_results, MAX_LIST_RESULTS))

        try:
            files = await asyncio.to_thread(self._walk)
        except OSError as e:
            logger.error(f"[{self.driver_name}] Failed to list files: {e}")
            return list_error(f"Failed to list files: {e}")

        files.sort(key=lambda f: f.name)
        if effective_prefix:
            files = [f for f in files if f.name.startswith(effective_prefix)]
        if continuation_token:
            files = [f for f in files if f.name > continuation_token]

        page = files[:max_results]
        next_token = page[-1].name if len(files) > max_results else None
        return list_success(page, next_token)

    # ==========================================================================
    # Validation
    # ==========================================================================

    async def _detect_content_type(self, path: Path) -> str:
        async with aiofiles.open(path, "rb") as f:
            head = await f.read(16)
        by_content = detect_mime_type_by_content(head)
        by_extension = detect_mime_type_by_extension(path.name)
        # Office documents are zip containers; trust the extension for those
        if by_content == "application/zip" and by_extension:
            return by_extension
        return by_content or by_extension or DEFAULT_CONTENT_TYPE

    async def validate_and_confirm_upload(
        self,
        reference: str,
        expected_content_type: str | None = None,
        expected_file_size: int | None = None,
        delete_on_failure: bool = True,
    ) -> ValidationOutcome:
        full_path = self._resolve(reference)
        if full_path is None or not full_path.is_file():
            return validation_error("File not found")

        try:
            stat = await aiofiles.os.stat(full_path)
            actual_content_type = await self._detect_content_type(full_path)
        except OSError as e:
            logger.error(f"[{self.driver_name}] Failed to inspect {reference}: {e}")
            return validation_error(f"Failed to inspect file: {e}")

        return await self._check_uploaded_object(
            reference,
            actual_content_type,
            stat.st_size,
            expected_content_type,
            expected_file_size,
            delete_on_failure,
        )
