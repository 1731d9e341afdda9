from __future__ import annotations

import base64
import io
from types import SimpleNamespace
from typing import Any, Iterable, List, Optional

import httpx
import openai
import pytest
from PIL import Image

from utils.settings import Settings


def make_png(size: tuple = (2, 2), color: tuple = (200, 10, 10)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_message(role: str, text: str, created_at: int) -> SimpleNamespace:
    return SimpleNamespace(
        role=role,
        created_at=created_at,
        content=[SimpleNamespace(type="text", text=SimpleNamespace(value=text))],
    )


def make_status_error(status_code: int = 500, message: str = "server exploded") -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/threads")
    response = httpx.Response(status_code, request=request)
    return openai.APIStatusError(message, response=response, body={"error": {"message": message}})


class FakeAssistantAPI:
    """In-memory stand-in for the parts of AsyncOpenAI the relay uses.

    `calls` records the step name of every call in order; `fail_step` makes
    that step raise an HTTP 500 status error.
    """

    def __init__(
        self,
        statuses: Iterable[str] = ("completed",),
        messages: Optional[List[Any]] = None,
        fail_step: Optional[str] = None,
        last_error: Any = None,
        completion_text: str = "A red square.",
    ) -> None:
        self.calls: List[str] = []
        self.statuses = list(statuses)
        self.messages = messages if messages is not None else [make_message("assistant", "Hello there", 100)]
        self.fail_step = fail_step
        self.last_error = last_error
        self.completion_text = completion_text
        self.sent_content: List[Any] = []
        self.completion_requests: List[dict] = []
        self.uploaded_files: List[dict] = []
        self.list_kwargs: dict = {}
        self.beta = SimpleNamespace(
            threads=SimpleNamespace(
                create=self._create_thread,
                messages=SimpleNamespace(create=self._create_message, list=self._list_messages),
                runs=SimpleNamespace(create=self._create_run, retrieve=self._retrieve_run),
            )
        )
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create_completion))
        self.files = SimpleNamespace(create=self._create_file)

    def _record(self, step: str) -> None:
        self.calls.append(step)
        if step == self.fail_step:
            raise make_status_error()

    async def _create_thread(self, **kwargs):
        self._record("thread creation")
        return SimpleNamespace(id="thread_1")

    async def _create_message(self, thread_id, *, role, content):
        self._record("message creation")
        self.sent_content.append(content)
        return SimpleNamespace(id="msg_user", thread_id=thread_id, role=role)

    async def _create_run(self, thread_id, *, assistant_id):
        self._record("run creation")
        return SimpleNamespace(id="run_1", thread_id=thread_id, status="queued")

    async def _retrieve_run(self, run_id, *, thread_id):
        self._record("run polling")
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return SimpleNamespace(id=run_id, status=status, last_error=self.last_error)

    async def _list_messages(self, thread_id, **kwargs):
        self._record("message listing")
        self.list_kwargs = kwargs
        return SimpleNamespace(data=list(self.messages))

    async def _create_file(self, *, file, purpose):
        self._record("file upload")
        self.uploaded_files.append({"file": file, "purpose": purpose})
        return SimpleNamespace(id=f"file_{len(self.uploaded_files)}", purpose=purpose)

    async def _create_completion(self, **kwargs):
        self._record("vision completion")
        self.completion_requests.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.completion_text))]
        )


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_base64(png_bytes: bytes) -> str:
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def fake_api() -> FakeAssistantAPI:
    return FakeAssistantAPI()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="sk-test",
        assistant_id="asst_test",
        public_base_url="http://testserver",
        upload_dir=tmp_path / "uploads",
        run_poll_interval=0,
        run_max_attempts=5,
    )
