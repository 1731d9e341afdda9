"""Drive one message/run/reply cycle against the OpenAI Assistants API.

A cycle is a fixed sequence of calls:

0. (inline images only) upload the bytes as a `vision` file,
1. create a thread unless the caller supplies one,
2. add the user's message (text and/or image) to the thread,
3. start a run of the configured assistant,
4. poll the run until it reaches a terminal status or the ceiling is hit,
5. list the thread's messages and pick the newest assistant reply.

Any SDK error aborts the cycle immediately. Only step 4 repeats, and only by
waiting and re-reading the run status.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from openai import APIError, AsyncOpenAI

from models.conversation import FAILED_RUN_STATUSES, ConversationReply, RunHandle
from services.openai.media_inputs import build_thread_content
from services.openai.response_parser import error_body, extract_reply, run_error_detail
from utils.errors import RemoteCallFailed, RemoteEmptyReply, RunFailed, RunTimedOut
from utils.media_validation import extension_for_mime

LOGGER = logging.getLogger(__name__)
MESSAGE_PAGE_SIZE = 20


class ConversationDriver:
    """Relay a user message to an assistant and wait for its reply."""

    def __init__(
        self,
        client: AsyncOpenAI,
        assistant_id: str,
        *,
        poll_interval: float = 1.0,
        max_attempts: int = 60,
        timeout: float = 90.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the driver.

        Args:
            client: Shared async OpenAI client.
            assistant_id: Identifier of the assistant each run uses.
            poll_interval: Seconds to wait between run status checks.
            max_attempts: Maximum number of status checks per run.
            timeout: Maximum seconds spent polling a run.
            sleep: Awaitable used between checks (replaced in tests).
        """
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        if not assistant_id:
            raise ValueError("Assistant id must be provided.")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.client = client
        self.assistant_id = assistant_id
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._sleep = sleep

    async def converse(
        self,
        thread_id: Optional[str],
        text: Optional[str],
        image_url: Optional[str] = None,
        image_file_id: Optional[str] = None,
    ) -> ConversationReply:
        """Send one user turn and return the assistant's reply.

        Args:
            thread_id: Existing thread to continue, or None to open a new one.
            text: User text; may be empty only when `image_url` is given.
            image_url: Public URL of an attached image.
            image_file_id: Id of an image uploaded with `upload_image`.

        Returns:
            The thread id, run id, and reply text.

        Raises:
            RemoteCallFailed: If any API call fails.
            RunFailed: If the run ends failed, cancelled, or expired.
            RunTimedOut: If the run is still pending at the poll ceiling.
            RemoteEmptyReply: If the completed run left no assistant text.
        """
        content = build_thread_content(text, image_url, image_file_id)

        if not thread_id:
            thread = await self._call("thread creation", self.client.beta.threads.create)
            thread_id = thread.id
            LOGGER.info("Created thread %s", thread_id)

        await self._call(
            "message creation",
            self.client.beta.threads.messages.create,
            thread_id,
            role="user",
            content=content,
        )

        run = await self._call(
            "run creation",
            self.client.beta.threads.runs.create,
            thread_id,
            assistant_id=self.assistant_id,
        )
        LOGGER.info("Started run %s on thread %s", run.id, thread_id)

        handle = await self.wait_for_run(thread_id, run.id)
        if handle.status in FAILED_RUN_STATUSES:
            LOGGER.error("Run %s ended %s: %s", handle.run_id, handle.status, handle.error_detail)
            raise RunFailed(handle.status, handle.error_detail)

        messages = await self._call(
            "message listing",
            self.client.beta.threads.messages.list,
            thread_id,
            order="desc",
            limit=MESSAGE_PAGE_SIZE,
        )
        reply = extract_reply(getattr(messages, "data", None) or [])
        if not reply:
            LOGGER.error("Run %s completed without an assistant message", handle.run_id)
            raise RemoteEmptyReply("Assistant returned no reply")

        return ConversationReply(thread_id=thread_id, run_id=handle.run_id, text=reply)

    async def upload_image(self, data: bytes, mime_type: str) -> str:
        """Upload image bytes for use in a thread message and return the file id.

        Raises:
            RemoteCallFailed: If the upload fails.
        """
        filename = f"image{extension_for_mime(mime_type)}"
        uploaded = await self._call(
            "file upload",
            self.client.files.create,
            file=(filename, data, mime_type),
            purpose="vision",
        )
        LOGGER.info("Uploaded %d byte %s image as file %s", len(data), mime_type, uploaded.id)
        return uploaded.id

    async def wait_for_run(self, thread_id: str, run_id: str) -> RunHandle:
        """Poll a run until its status is terminal.

        The status is read before the first wait, so a run that has already
        finished costs a single call.

        Raises:
            RunTimedOut: When `max_attempts` checks or `timeout` seconds pass first.
        """
        deadline = time.monotonic() + self.timeout
        status = "unknown"
        for attempt in range(1, self.max_attempts + 1):
            run = await self._call(
                "run polling",
                self.client.beta.threads.runs.retrieve,
                run_id,
                thread_id=thread_id,
            )
            status = getattr(run, "status", None) or "unknown"
            LOGGER.debug("Run %s status %s (check %d)", run_id, status, attempt)
            handle = RunHandle(run_id=run_id, status=status, error_detail=run_error_detail(run))
            if handle.is_terminal:
                LOGGER.info("Run %s finished with status %s", run_id, status)
                return handle
            if attempt == self.max_attempts or time.monotonic() >= deadline:
                break
            await self._sleep(self.poll_interval)

        LOGGER.error("Run %s still %s after %d checks", run_id, status, attempt)
        raise RunTimedOut(
            "Assistant run timed out",
            f"run {run_id} was still {status} after {attempt} status checks",
        )

    async def _call(self, step: str, method: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Invoke one SDK method, converting SDK errors into RemoteCallFailed."""
        try:
            return await method(*args, **kwargs)
        except APIError as exc:
            detail = error_body(exc)
            LOGGER.error("OpenAI %s failed: %s", step, detail)
            raise RemoteCallFailed(step, detail) from exc
