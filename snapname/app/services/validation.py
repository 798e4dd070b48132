"""Validation of uploaded images sent as base64 data URIs."""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from snapname.app.core.config import settings

_DATA_URI_RE = re.compile(r"^data:([A-Za-z0-9.+/-]+);base64,(.+)$", re.DOTALL)


@dataclass
class ImageValidationResult:
    valid: bool
    error: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: int = 0


def validate_image(
    data_uri: str,
    max_bytes: Optional[int] = None,
    allowed_types: Optional[Iterable[str]] = None,
) -> ImageValidationResult:
    """Check that ``data_uri`` is a supported image within the size limit.

    Args:
        data_uri: ``data:<mime>;base64,<payload>`` string
        max_bytes: Maximum decoded size; settings.max_image_bytes by default
        allowed_types: Accepted MIME types; settings.allowed_image_types by default
    """
    max_bytes = settings.max_image_bytes if max_bytes is None else max_bytes
    allowed = list(settings.allowed_image_types if allowed_types is None else allowed_types)

    match = _DATA_URI_RE.match(data_uri.strip()) if data_uri else None
    if not match:
        return ImageValidationResult(valid=False, error="Invalid image format")

    mime_type, payload = match.group(1).lower(), match.group(2)
    if mime_type not in allowed:
        return ImageValidationResult(
            valid=False,
            error="Unsupported file type. Please use JPEG, PNG, or WebP",
            mime_type=mime_type,
        )

    # Reject oversized payloads before decoding them
    if len(payload) * 3 // 4 > max_bytes + 2:
        return ImageValidationResult(
            valid=False,
            error=f"File size exceeds {max_bytes // (1024 * 1024)}MB limit",
            mime_type=mime_type,
        )

    try:
        size = len(base64.b64decode(payload, validate=True))
    except (binascii.Error, ValueError):
        return ImageValidationResult(valid=False, error="Invalid image format", mime_type=mime_type)

    if size == 0:
        return ImageValidationResult(valid=False, error="Image is empty", mime_type=mime_type)
    if size > max_bytes:
        return ImageValidationResult(
            valid=False,
            error=f"File size exceeds {max_bytes // (1024 * 1024)}MB limit",
            mime_type=mime_type,
            size_bytes=size,
        )

    return ImageValidationResult(valid=True, mime_type=mime_type, size_bytes=size)
