"""Validation helpers for inbound image payloads."""

import base64
import binascii
import io
import re
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from utils.errors import ValidationError

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.+-]+)*;base64,", re.IGNORECASE)

# Pillow format name -> MIME type
FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
}


def split_data_url(value: str) -> Tuple[Optional[str], str]:
    """Return `(mime_type, payload)` with any `data:<mime>;base64,` prefix removed."""
    text = value.strip()
    match = DATA_URL_RE.match(text)
    if not match:
        return None, text
    mime = match.group("mime")
    return (mime.lower() if mime else None), text[match.end():]


def decode_base64_image(value: str) -> bytes:
    """Strip an optional data-URL prefix and decode the base64 payload.

    Raises:
        ValidationError: If the payload is empty or not valid base64.
    """
    _, payload = split_data_url(value or "")
    payload = "".join(payload.split())
    if not payload:
        raise ValidationError("Image data is empty")
    payload += "=" * (-len(payload) % 4)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Invalid base64 image data", str(exc)) from exc
    if not data:
        raise ValidationError("Image data is empty")
    return data


def detect_image_mime(data: bytes, fallback: Optional[str] = None) -> str:
    """Identify the image format of `data` with Pillow.

    When Pillow knows the format but it is not in `FORMAT_MIME_TYPES`, the
    declared `fallback` (or `image/jpeg`) is used.

    Raises:
        ValidationError: If the bytes are not an image Pillow can open.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Uploaded data is not a supported image") from exc
    return FORMAT_MIME_TYPES.get(fmt or "", fallback or "image/jpeg")


def extension_for_mime(mime_type: str) -> str:
    return MIME_EXTENSIONS.get((mime_type or "").lower().split(";", 1)[0].strip(), ".jpg")


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encode raw image bytes as a `data:` URI for vision input."""
    encoded = base64.b64encode(data).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"
