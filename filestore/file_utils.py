"""
Filename and content-type helpers shared by all drivers.

Stored names look like ``<unix millis>_<12 hex chars>_<sanitized base><ext>``.
The random suffix keeps names unique across concurrent uploads in the same
millisecond, so no driver needs locking to avoid overwrites.
"""

import re
import time
import unicodedata
import uuid

MAX_FILE_NAME_LENGTH = 255
MAX_BASE_NAME_LENGTH = 200

# Magic bytes for common formats: (signature, mime type, offset)
MAGIC_BYTES: list[tuple[bytes, str, int]] = [
    # Images
    (b"\xff\xd8\xff", "image/jpeg", 0),
    (b"\x89PNG\r\n\x1a\n", "image/png", 0),
    (b"GIF87a", "image/gif", 0),
    (b"GIF89a", "image/gif", 0),
    (b"RIFF", "image/webp", 0),
    (b"BM", "image/bmp", 0),
    # Documents
    (b"%PDF", "application/pdf", 0),
    (b"PK\x03\x04", "application/zip", 0),
    (b"PK\x05\x06", "application/zip", 0),
    (b"PK\x07\x08", "application/zip", 0),
    # Archives
    (b"\x1f\x8b", "application/gzip", 0),
    (b"Rar!\x1a\x07", "application/vnd.rar", 0),
    (b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed", 0),
    # Audio/Video
    (b"ID3", "audio/mpeg", 0),
    (b"\xff\xfb", "audio/mpeg", 0),
    (b"\xff\xfa", "audio/mpeg", 0),
    (b"OggS", "audio/ogg", 0),
    (b"ftyp", "video/mp4", 4),
    # Executables
    (b"MZ", "application/x-msdownload", 0),
    (b"\x7fELF", "application/x-executable", 0),
]

EXTENSION_MIME_TYPES: dict[str, str] = {
    # Images
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    # Documents
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
    # Audio/Video
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    # Archives
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".rar": "application/vnd.rar",
    ".7z": "application/x-7z-compressed",
    # Web
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
_FOLDER_CHARS = re.compile(r"^[a-zA-Z0-9._/-]+$")
_MIME_TYPE = re.compile(r"^[a-zA-Z0-9][\w!#$&^.+-]*/[a-zA-Z0-9][\w!#$&^.+-]*$")


# =============================================================================
# Names
# =============================================================================


def get_file_extension(file_name: str | None) -> str:
    """Lower-cased extension including the dot, or '' when there is none."""
    if not file_name:
        return ""
    base = re.split(r"[\\/]", file_name)[-1]
    dot = base.rfind(".")
    if dot <= 0 or dot == len(base) - 1:
        return ""
    return base[dot:].lower()


def sanitize_file_name(file_name: str) -> str:
    """
    Reduce a caller-supplied name to a safe ASCII filename.

    Strips any directory part, folds unicode to ASCII, replaces everything
    outside ``[a-zA-Z0-9.-]`` with underscores and collapses runs of them.
    Returns ``"file"`` when nothing usable remains.
    """
    base = re.split(r"[\\/]", file_name or "")[-1]
    base = unicodedata.normalize("NFKD", base).encode("ascii", "ignore").decode("ascii")
    base = _UNSAFE_CHARS.sub("_", base)
    base = _REPEATED_UNDERSCORES.sub("_", base).strip("_")
    if not base.strip("."):
        return "file"
    return base


def generate_unique_file_name(original_name: str) -> str:
    """Build a collision-resistant stored name from the caller's name."""
    sanitized = sanitize_file_name(original_name)
    extension = get_file_extension(sanitized)
    base = sanitized[: len(sanitized) - len(extension)] if extension else sanitized
    base = base[:MAX_BASE_NAME_LENGTH] or "file"
    timestamp = int(time.time() * 1000)
    return f"{timestamp}_{uuid.uuid4().hex[:12]}_{base}{extension}"


def join_reference(folder: str | None, file_name: str) -> str:
    """Combine an optional folder and a stored name into an object key."""
    folder = (folder or "").strip("/")
    if folder:
        return f"{folder}/{file_name}"
    return file_name


# =============================================================================
# Validation
# =============================================================================


def validate_file_name(file_name: str | None) -> str | None:
    """
    Check a caller-supplied filename for URL generation.

    Returns:
        An error message, or None when the name is acceptable
    """
    if not file_name:
        return "File name is required"
    if "\0" in file_name:
        return "File name must not contain null bytes"
    if ".." in file_name or "/" in file_name or "\\" in file_name:
        return "File name must not contain path separators or path traversal sequences"
    if len(file_name) > MAX_FILE_NAME_LENGTH:
        return f"File name exceeds {MAX_FILE_NAME_LENGTH} characters"
    return None


def validate_reference(reference: str | None) -> str | None:
    """Check a stored reference (which may include folders) before use."""
    if not reference:
        return "File reference is required"
    if "\0" in reference:
        return "File reference must not contain null bytes"
    if ".." in reference or "\\" in reference:
        return "File reference must not contain path traversal sequences"
    return None


def normalize_folder_path(folder: str | None) -> tuple[str, str | None]:
    """
    Validate and normalize a folder path.

    Leading and trailing slashes are trimmed rather than rejected.

    Returns:
        Tuple of (normalized folder, error message or None)
    """
    if not folder:
        return "", None
    if "\0" in folder:
        return "", "Folder path must not contain null bytes"
    if ".." in folder:
        return "", "Folder path must not contain path traversal sequences"
    normalized = folder.strip("/")
    if not normalized:
        return "", None
    if "//" in normalized:
        return "", "Folder path must not contain consecutive slashes"
    if not _FOLDER_CHARS.match(normalized):
        return "", "Folder path contains invalid characters"
    return normalized, None


def validate_content_type(content_type: str) -> str | None:
    """Check that a MIME type looks like ``type/subtype``."""
    if not _MIME_TYPE.match(content_type):
        return f"Invalid contentType format: '{content_type}'"
    return None


# =============================================================================
# Content type detection
# =============================================================================


def detect_mime_type_by_content(content: bytes) -> str | None:
    """Detect MIME type from the leading bytes of a file."""
    sample = content[:16]
    if not sample:
        return None
    for signature, mime_type, offset in MAGIC_BYTES:
        if sample[offset : offset + len(signature)] == signature:
            return mime_type
    return None


def detect_mime_type_by_extension(file_name: str) -> str | None:
    """Map a filename extension to a MIME type."""
    return EXTENSION_MIME_TYPES.get(get_file_extension(file_name))

