"""Periodic removal of stale files from the upload directory."""

import asyncio
import logging

from services.image_store import ImageStore

LOGGER = logging.getLogger(__name__)


class UploadCleaner:
    """Delete uploaded images older than the configured retention window."""

    def __init__(self, store: ImageStore, retention_seconds: float) -> None:
        """
        Args:
            store: Image store whose directory is swept.
            retention_seconds: Age threshold in seconds; older files are removed.
        """
        self.store = store
        self.retention_seconds = retention_seconds

    async def prune_expired_uploads(self) -> int:
        """Delete expired uploads and return the count removed."""
        return await asyncio.to_thread(self.store.prune_expired, self.retention_seconds)

    async def run_periodic_cleanup(self, interval_seconds: float = 3_600) -> None:
        """
        Repeatedly prune expired uploads at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between cleanup runs.
        """
        while True:
            try:
                await self.prune_expired_uploads()
            except OSError as exc:
                LOGGER.warning("Upload cleanup failed: %s", exc)
            await asyncio.sleep(interval_seconds)
