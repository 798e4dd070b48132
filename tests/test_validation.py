"""Tests for uploaded image validation."""

import base64

import pytest

from snapname.app.services.validation import validate_image

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _data_uri(payload: bytes = PNG_BYTES, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode()}"


class TestValidateImage:

    @pytest.mark.parametrize("mime", ["image/jpeg", "image/png", "image/webp"])
    def test_supported_types(self, mime):
        result = validate_image(_data_uri(mime=mime))
        assert result.valid is True
        assert result.mime_type == mime
        assert result.size_bytes == len(PNG_BYTES)

    @pytest.mark.parametrize("value", ["", "not a data uri", "https://example.com/cat.png", "data:image/png,abc"])
    def test_invalid_format(self, value):
        result = validate_image(value)
        assert result.valid is False
        assert result.error == "Invalid image format"

    def test_unsupported_type(self):
        result = validate_image(_data_uri(mime="image/gif"))
        assert result.valid is False
        assert result.error == "Unsupported file type. Please use JPEG, PNG, or WebP"

    def test_mime_type_is_case_insensitive(self):
        assert validate_image(_data_uri(mime="IMAGE/PNG")).valid is True

    def test_bad_base64(self):
        result = validate_image("data:image/png;base64,@@not-base64@@")
        assert result.valid is False
        assert result.error == "Invalid image format"

    def test_oversized_image(self):
        result = validate_image(_data_uri(b"\x00" * 2048), max_bytes=1024)
        assert result.valid is False
        assert "exceeds" in result.error

    def test_size_at_limit_is_accepted(self):
        assert validate_image(_data_uri(b"\x01" * 1024), max_bytes=1024).valid is True

    def test_default_limit_is_ten_megabytes(self):
        result = validate_image(_data_uri(b"\x00" * (10 * 1024 * 1024 + 1)))
        assert result.valid is False
        assert result.error == "File size exceeds 10MB limit"

    def test_custom_allowed_types(self):
        result = validate_image(_data_uri(mime="image/gif"), allowed_types=["image/gif"])
        assert result.valid is True
