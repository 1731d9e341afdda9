"""Download remote images through an ordered list of candidate URLs.

A reference is either a plain http(s) URL or a media reference such as
`wix:image://v1/<key>/<name>#originWidth=...`. Candidates are tried in order:

1. the reference itself, when it is an http(s) URL,
2. each configured template, formatted with `{ref}` (the reference without
   its fragment) and `{key}` (the media key, see `media_key`).

The first candidate answering 2xx with a non-empty body wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence
from urllib.parse import urlsplit

import httpx

from utils.errors import ImageFetchFailed

LOGGER = logging.getLogger(__name__)
VERSION_SEGMENT_RE = re.compile(r"v\d+")

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}


@dataclass
class FetchedImage:
    data: bytes
    mime_type: Optional[str]
    source_url: str


def media_key(ref: str) -> str:
    """Return the identifying path segment of a reference.

    For `scheme://vN/<key>/...` references this is `<key>`; otherwise it is
    the last non-empty path segment.
    """
    bare = ref.split("#", 1)[0].split("?", 1)[0]
    segments = [s for s in bare.split("/") if s and not s.endswith(":")]
    for index, segment in enumerate(segments[:-1]):
        if VERSION_SEGMENT_RE.fullmatch(segment):
            return segments[index + 1]
    return segments[-1] if segments else bare


class ImageFetcher:
    """Resolve and download an image reference."""

    def __init__(
        self,
        url_templates: Sequence[str] = (),
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url_templates = list(url_templates)
        self.timeout = timeout
        self._transport = transport

    def candidate_urls(self, ref: str) -> List[str]:
        ref = (ref or "").strip()
        if not ref:
            return []
        bare = ref.split("#", 1)[0]
        candidates: List[str] = []
        if urlsplit(ref).scheme in ("http", "https"):
            candidates.append(ref)
        key = media_key(bare)
        for template in self.url_templates:
            url = template.format(ref=bare, key=key)
            if url not in candidates:
                candidates.append(url)
        return candidates

    async def fetch(self, ref: str) -> FetchedImage:
        """Download the first reachable candidate for `ref`.

        Raises:
            ImageFetchFailed: If no candidate exists or every candidate fails.
        """
        candidates = self.candidate_urls(ref)
        if not candidates:
            raise ImageFetchFailed("Unsupported image reference", f"no resolver accepts {ref!r}")

        last_detail = ""
        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, transport=self._transport
        ) as client:
            for index, url in enumerate(candidates, start=1):
                split = urlsplit(url)
                headers = dict(BROWSER_HEADERS)
                headers["Referer"] = f"{split.scheme}://{split.netloc}/"
                try:
                    response = await client.get(url, headers=headers)
                except httpx.HTTPError as exc:
                    last_detail = f"{url}: {exc.__class__.__name__}: {exc}"
                    LOGGER.warning("Image candidate %d/%d failed: %s", index, len(candidates), last_detail)
                    continue
                if not response.is_success:
                    last_detail = f"{url}: HTTP {response.status_code}"
                    LOGGER.warning("Image candidate %d/%d failed: %s", index, len(candidates), last_detail)
                    continue
                if not response.content:
                    last_detail = f"{url}: empty body"
                    LOGGER.warning("Image candidate %d/%d failed: %s", index, len(candidates), last_detail)
                    continue
                content_type = response.headers.get("content-type")
                mime = content_type.split(";", 1)[0].strip().lower() if content_type else None
                LOGGER.info("Fetched image from candidate %d/%d: %s", index, len(candidates), url)
                return FetchedImage(data=response.content, mime_type=mime, source_url=url)

        raise ImageFetchFailed("Failed to fetch image", last_detail)
