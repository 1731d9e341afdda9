"""Local storage for materialized images.

Images are written under the configured upload directory with a generated
name of the form `<epoch-ms>-<random hex><ext>` so concurrent writers never
collide, and are served back at `<public_base_url>/uploads/<filename>`.
Files are immutable once written.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Optional, Set

import aiofiles

from models.stored_image import StoredImage
from utils.media_validation import extension_for_mime

LOGGER = logging.getLogger(__name__)
UPLOAD_ROUTE = "/uploads"


class ImageStore:
    """Write, resolve, and remove images in one directory."""

    def __init__(self, upload_dir: Path | str, public_base_url: str) -> None:
        self.upload_dir = Path(upload_dir).expanduser().resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self._pending_deletes: Set[asyncio.Task] = set()

    def ensure_directory(self) -> None:
        if self.upload_dir.exists() and not self.upload_dir.is_dir():
            raise RuntimeError(f"UPLOAD_DIR {self.upload_dir} points to a file, not a directory")
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_filename(mime_type: str) -> str:
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{extension_for_mime(mime_type)}"

    def public_url(self, filename: str) -> str:
        return f"{self.public_base_url}{UPLOAD_ROUTE}/{filename}"

    async def save(self, data: bytes, mime_type: str) -> StoredImage:
        """Write `data` under a fresh filename and return its record.

        Raises:
            ValueError: If `data` is empty.
        """
        if not data:
            raise ValueError("Image bytes are required for saving.")
        self.ensure_directory()
        filename = self.generate_filename(mime_type)
        path = self.upload_dir / filename
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        LOGGER.info("Stored image %s (%d bytes, %s)", filename, len(data), mime_type)
        return StoredImage(
            filename=filename,
            mime_type=mime_type,
            byte_length=len(data),
            path=path,
            url=self.public_url(filename),
        )

    def resolve(self, filename: str) -> Optional[Path]:
        """Return the path of a stored file, or None if missing or outside the directory."""
        if not filename or filename in (".", "..") or any(c in filename for c in ("/", "\\", "\x00")):
            return None
        path = (self.upload_dir / filename).resolve()
        if path.parent != self.upload_dir or not path.is_file():
            return None
        return path

    async def delete(self, filename: str) -> bool:
        """Delete a stored file. Returns True if a file was removed."""
        path = self.resolve(filename)
        if path is None:
            return False
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        LOGGER.info("Deleted image %s", filename)
        return True

    def schedule_delete(self, filename: str, delay: float) -> asyncio.Task:
        """Delete `filename` after `delay` seconds on the running loop."""

        async def _delete_later() -> None:
            await asyncio.sleep(delay)
            try:
                await self.delete(filename)
            except OSError as exc:
                LOGGER.warning("Failed to delete image %s: %s", filename, exc)

        task = asyncio.create_task(_delete_later())
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)
        return task

    async def cancel_pending_deletes(self) -> None:
        for task in list(self._pending_deletes):
            task.cancel()
        if self._pending_deletes:
            await asyncio.gather(*self._pending_deletes, return_exceptions=True)

    def prune_expired(self, retention_seconds: float) -> int:
        """Delete files older than `retention_seconds` and return the count removed."""
        if retention_seconds <= 0 or not self.upload_dir.is_dir():
            return 0
        cutoff = time.time() - retention_seconds
        count = 0
        for file_path in self.upload_dir.iterdir():
            if not file_path.is_file():
                continue
            try:
                if file_path.stat().st_mtime < cutoff:
                    file_path.unlink()
                    count += 1
            except OSError as exc:
                LOGGER.warning("Failed to delete expired image %s: %s", file_path, exc)
        if count:
            LOGGER.info("Pruned %d expired images", count)
        return count
