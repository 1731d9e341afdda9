"""Turn an inbound image into a reference the assistant API can read.

Inbound images arrive as base64 (optionally a full data URL) or as a remote
reference. Either way the bytes are decoded or downloaded and sniffed, then
handed on according to the delivery mode:

- `inline`: a `data:<mime>;base64,...` URI, nothing is written to disk.
- `hosted`: the bytes are written to the upload directory and the public
  URL is returned; the remote API fetches it again from this service.
"""

from __future__ import annotations

import logging
from typing import Optional

from models.stored_image import ImageReference
from services.image_fetcher import ImageFetcher
from services.image_store import ImageStore
from utils.errors import ImageFetchFailed, ValidationError
from utils.media_validation import decode_base64_image, detect_image_mime, split_data_url, to_data_url

LOGGER = logging.getLogger(__name__)


class ImageMaterializer:
    """Normalize base64 or remote images into an `ImageReference`."""

    def __init__(self, store: ImageStore, fetcher: ImageFetcher, delivery: str = "inline") -> None:
        if delivery not in ("inline", "hosted"):
            raise ValueError(f"Unknown image delivery mode: {delivery!r}")
        self.store = store
        self.fetcher = fetcher
        self.delivery = delivery

    async def materialize(
        self,
        image_base64: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> ImageReference:
        """Decode or download the image and return its reference.

        Args:
            image_base64: Base64 payload, with or without a data-URL prefix.
            image_url: Remote reference to download instead.

        Raises:
            ValidationError: If zero or both sources are given, or the bytes are not an image.
            ImageFetchFailed: If the remote image cannot be downloaded.
        """
        if bool(image_base64) == bool(image_url):
            raise ValidationError("Provide exactly one of imageUrl or imageBase64")

        if image_base64:
            declared_mime, _ = split_data_url(image_base64)
            data = decode_base64_image(image_base64)
        else:
            fetched = await self.fetcher.fetch(image_url)
            declared_mime, data = fetched.mime_type, fetched.data

        try:
            mime_type = detect_image_mime(data, fallback=declared_mime)
        except ValidationError as exc:
            if image_url:
                raise ImageFetchFailed("Fetched content is not an image", image_url) from exc
            raise

        return await self.reference_for(data, mime_type)

    async def reference_for(self, data: bytes, mime_type: str) -> ImageReference:
        if self.delivery == "hosted":
            stored = await self.store.save(data, mime_type)
            return ImageReference(url=stored.url, mime_type=mime_type, byte_length=len(data), stored=stored)
        LOGGER.debug("Inlining %d byte %s image", len(data), mime_type)
        return ImageReference(
            url=to_data_url(data, mime_type), mime_type=mime_type, byte_length=len(data), data=data
        )
