"""
Tests for filename, folder and content-type helpers.
"""

import re

import pytest

from filestore.file_utils import (
    detect_mime_type_by_content,
    detect_mime_type_by_extension,
    generate_unique_file_name,
    get_file_extension,
    join_reference,
    normalize_folder_path,
    sanitize_file_name,
    validate_content_type,
    validate_file_name,
    validate_reference,
)

STORED_NAME = re.compile(r"^\d+_[a-f0-9]{12}_.+$")


# =============================================================================
# Test: Name Generation
# =============================================================================


class TestGenerateUniqueFileName:
    """Tests for stored-name generation."""

    def test_format(self):
        name = generate_unique_file_name("a.txt")
        assert re.match(r"^\d+_[a-z0-9]+_a\.txt$", name)

    def test_never_equals_original(self):
        assert generate_unique_file_name("report.pdf") != "report.pdf"

    def test_unique_across_many_calls(self):
        names = {generate_unique_file_name("same.txt") for _ in range(1000)}
        assert len(names) == 1000

    def test_path_components_are_dropped(self):
        name = generate_unique_file_name("../../etc/passwd")
        assert "/" not in name
        assert ".." not in name
        assert name.endswith("_passwd")

    def test_windows_path_components_are_dropped(self):
        name = generate_unique_file_name("C:\\Users\\me\\photo.JPG")
        assert name.endswith("_photo.jpg")

    def test_dotfile_keeps_its_name(self):
        assert generate_unique_file_name(".txt").endswith(".txt")

    def test_empty_name_becomes_file(self):
        assert generate_unique_file_name("").endswith("_file")

    def test_long_names_are_truncated(self):
        name = generate_unique_file_name("x" * 500 + ".txt")
        assert len(name) <= 255
        assert name.endswith(".txt")


class TestSanitizeFileName:
    """Tests for filename sanitization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("my file.txt", "my_file.txt"),
            ("a  b!!c.png", "a_b_c.png"),
            ("__leading.txt", "leading.txt"),
            ("café.txt", "cafe.txt"),
            ("???", "file"),
            ("...", "file"),
        ],
    )
    def test_sanitize(self, raw, expected):
        assert sanitize_file_name(raw) == expected

    def test_only_safe_characters_remain(self):
        assert re.match(r"^[a-zA-Z0-9._-]+$", sanitize_file_name("weird<>|:*name?.txt"))


class TestHelpers:
    """Tests for small path helpers."""

    @pytest.mark.parametrize(
        "name,extension",
        [
            ("a.TXT", ".txt"),
            ("archive.tar.gz", ".gz"),
            ("noext", ""),
            (".hidden", ""),
            ("trailing.", ""),
            ("dir.v2/file", ""),
            (None, ""),
        ],
    )
    def test_get_file_extension(self, name, extension):
        assert get_file_extension(name) == extension

    def test_join_reference(self):
        assert join_reference("docs/", "a.txt") == "docs/a.txt"
        assert join_reference(None, "a.txt") == "a.txt"
        assert join_reference("/", "a.txt") == "a.txt"


# =============================================================================
# Test: Validation
# =============================================================================


class TestValidateFileName:
    """Tests for caller-supplied filename validation."""

    def test_valid_name(self):
        assert validate_file_name("photo.jpg") is None

    @pytest.mark.parametrize("name", ["../secret.txt", "dir/file.txt", "dir\\file.txt", ".."])
    def test_rejects_path_separators_and_traversal(self, name):
        assert "path" in validate_file_name(name)

    def test_rejects_null_bytes(self):
        assert "null" in validate_file_name("file\0.txt")

    def test_rejects_overlong_names(self):
        assert "255" in validate_file_name("a" * 256)

    def test_rejects_empty(self):
        assert validate_file_name("") is not None


class TestValidateReference:
    def test_allows_folders(self):
        assert validate_reference("docs/2024/a.txt") is None

    @pytest.mark.parametrize("reference", ["", "../a.txt", "a\0b", "a\\b"])
    def test_rejects_unsafe(self, reference):
        assert validate_reference(reference) is not None


class TestNormalizeFolderPath:
    """Tests for folder validation and normalization."""

    @pytest.mark.parametrize(
        "folder,expected",
        [
            ("uploads", "uploads"),
            ("/uploads/images/", "uploads/images"),
            ("a-b_c.d/e", "a-b_c.d/e"),
            (None, ""),
            ("/", ""),
        ],
    )
    def test_valid_folders(self, folder, expected):
        assert normalize_folder_path(folder) == (expected, None)

    @pytest.mark.parametrize(
        "folder", ["folder;rm -rf /", "a`whoami`", "$(id)", "a|b", "with space"]
    )
    def test_shell_characters_rejected(self, folder):
        _, error = normalize_folder_path(folder)
        assert "invalid characters" in error

    def test_consecutive_slashes_rejected(self):
        _, error = normalize_folder_path("a//b")
        assert "consecutive slashes" in error

    def test_traversal_rejected(self):
        _, error = normalize_folder_path("a/../b")
        assert "traversal" in error

    def test_null_bytes_rejected(self):
        _, error = normalize_folder_path("a\0b")
        assert "null" in error


class TestValidateContentType:
    @pytest.mark.parametrize(
        "content_type",
        ["text/plain", "image/svg+xml", "application/vnd.ms-excel", "application/x-7z-compressed"],
    )
    def test_valid(self, content_type):
        assert validate_content_type(content_type) is None

    @pytest.mark.parametrize("content_type", ["textplain", "text/", "/plain", "text/plain/x", "te xt/plain"])
    def test_invalid(self, content_type):
        assert validate_content_type(content_type) is not None


# =============================================================================
# Test: Content Type Detection
# =============================================================================


class TestDetection:
    """Tests for magic-byte and extension detection."""

    @pytest.mark.parametrize(
        "head,expected",
        [
            (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
            (b"\x89PNG\r\n\x1a\nrest", "image/png"),
            (b"GIF89a...", "image/gif"),
            (b"%PDF-1.7", "application/pdf"),
            (b"PK\x03\x04rest", "application/zip"),
            (b"\x1f\x8b\x08", "application/gzip"),
            (b"\x00\x00\x00\x18ftypmp42", "video/mp4"),
            (b"MZ\x90\x00", "application/x-msdownload"),
            (b"\x7fELF\x02", "application/x-executable"),
        ],
    )
    def test_magic_bytes(self, head, expected):
        assert detect_mime_type_by_content(head) == expected

    def test_unknown_content(self):
        assert detect_mime_type_by_content(b"just some text") is None
        assert detect_mime_type_by_content(b"") is None

    def test_extension(self):
        assert detect_mime_type_by_extension("notes.TXT") == "text/plain"
        assert detect_mime_type_by_extension("x.unknown") is None
