from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class StoredImage:
    """An image written to the upload directory.

    Attributes:
        filename: Generated name (epoch milliseconds plus a random token).
        mime_type: Detected MIME type of the bytes.
        byte_length: Size of the stored file.
        path: Absolute location on disk.
        url: Public URL the file is served from.
    """

    filename: str
    mime_type: str
    byte_length: int
    path: Path
    url: str


@dataclass
class ImageReference:
    """What the assistant receives for an image: a URL or a data URI.

    `stored` is set only when the bytes were re-hosted locally; `data` keeps
    the raw bytes of inline images for APIs that take uploads instead of URIs.
    """

    url: str
    mime_type: str
    byte_length: int
    stored: Optional[StoredImage] = None
    data: Optional[bytes] = field(default=None, repr=False)
