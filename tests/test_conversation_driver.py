from types import SimpleNamespace

import httpx
import pytest

from main import create_openai_client
from services.openai.conversation_driver import ConversationDriver
from tests.conftest import FakeAssistantAPI, make_message
from utils.errors import RemoteCallFailed, RemoteEmptyReply, RunFailed, RunTimedOut


def _driver(api: FakeAssistantAPI, sleeps: list, **overrides) -> ConversationDriver:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    options = {"poll_interval": 1.0, "max_attempts": 5, "timeout": 90.0}
    options.update(overrides)
    return ConversationDriver(api, "asst_test", sleep=fake_sleep, **options)


@pytest.mark.asyncio
async def test_converse_runs_full_sequence_on_new_thread() -> None:
    api = FakeAssistantAPI()
    sleeps: list = []

    reply = await _driver(api, sleeps).converse(None, "Hi")

    assert reply.text == "Hello there"
    assert reply.thread_id == "thread_1"
    assert reply.run_id == "run_1"
    assert api.calls == [
        "thread creation",
        "message creation",
        "run creation",
        "run polling",
        "message listing",
    ]
    assert api.sent_content == [[{"type": "text", "text": "Hi"}]]
    assert sleeps == []


@pytest.mark.asyncio
async def test_converse_reuses_supplied_thread() -> None:
    api = FakeAssistantAPI()

    reply = await _driver(api, []).converse("thread_existing", "Again")

    assert reply.thread_id == "thread_existing"
    assert "thread creation" not in api.calls


@pytest.mark.asyncio
async def test_converse_attaches_image_after_text() -> None:
    api = FakeAssistantAPI()

    await _driver(api, []).converse(None, "What is this?", "https://example.com/cat.png")

    assert api.sent_content[0] == [
        {"type": "text", "text": "What is this?"},
        {"type": "image_url", "image_url": {"url": "https://example.com/cat.png", "detail": "high"}},
    ]


@pytest.mark.asyncio
async def test_inline_image_is_uploaded_then_referenced_by_file_id(png_bytes: bytes) -> None:
    api = FakeAssistantAPI()
    driver = _driver(api, [])

    file_id = await driver.upload_image(png_bytes, "image/png")
    await driver.converse(None, "What is this?", image_file_id=file_id)

    assert api.calls[0] == "file upload"
    assert api.uploaded_files == [{"file": ("image.png", png_bytes, "image/png"), "purpose": "vision"}]
    assert api.sent_content[0] == [
        {"type": "text", "text": "What is this?"},
        {"type": "image_file", "image_file": {"file_id": "file_1", "detail": "high"}},
    ]


@pytest.mark.asyncio
async def test_failed_image_upload_raises_remote_call_failed(png_bytes: bytes) -> None:
    api = FakeAssistantAPI(fail_step="file upload")

    with pytest.raises(RemoteCallFailed) as excinfo:
        await _driver(api, []).upload_image(png_bytes, "image/png")

    assert excinfo.value.step == "file upload"
    assert api.calls == ["file upload"]


@pytest.mark.asyncio
async def test_poll_stops_after_single_check_when_completed() -> None:
    api = FakeAssistantAPI(statuses=["completed"])
    sleeps: list = []

    await _driver(api, sleeps).converse(None, "Hi")

    assert api.calls.count("run polling") == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_poll_waits_between_pending_checks() -> None:
    api = FakeAssistantAPI(statuses=["queued", "in_progress", "completed"])
    sleeps: list = []

    await _driver(api, sleeps, poll_interval=1.5).converse(None, "Hi")

    assert api.calls.count("run polling") == 3
    assert sleeps == [1.5, 1.5]


@pytest.mark.asyncio
async def test_poll_times_out_at_attempt_ceiling() -> None:
    api = FakeAssistantAPI(statuses=["in_progress"])
    sleeps: list = []

    with pytest.raises(RunTimedOut) as excinfo:
        await _driver(api, sleeps, max_attempts=4).converse(None, "Hi")

    assert api.calls.count("run polling") == 4
    assert len(sleeps) == 3
    assert "message listing" not in api.calls
    assert "in_progress" in excinfo.value.details


@pytest.mark.asyncio
async def test_poll_times_out_at_wall_clock_ceiling() -> None:
    api = FakeAssistantAPI(statuses=["in_progress"])

    with pytest.raises(RunTimedOut):
        await _driver(api, [], max_attempts=100, timeout=0).converse(None, "Hi")

    assert api.calls.count("run polling") == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "cancelled", "expired"])
async def test_failed_terminal_status_raises_run_failed(status: str) -> None:
    last_error = SimpleNamespace(code="rate_limit_exceeded", message="Quota exhausted")
    api = FakeAssistantAPI(statuses=[status], last_error=last_error)

    with pytest.raises(RunFailed) as excinfo:
        await _driver(api, []).converse(None, "Hi")

    assert excinfo.value.status == status
    assert excinfo.value.details == "rate_limit_exceeded: Quota exhausted"
    assert "message listing" not in api.calls


@pytest.mark.asyncio
async def test_newest_assistant_message_wins() -> None:
    messages = [
        make_message("assistant", "first answer", 1),
        make_message("user", "follow-up", 2),
        make_message("assistant", "latest answer", 3),
    ]
    api = FakeAssistantAPI(messages=messages)

    reply = await _driver(api, []).converse(None, "Hi")

    assert reply.text == "latest answer"
    assert api.list_kwargs == {"order": "desc", "limit": 20}


@pytest.mark.asyncio
async def test_completed_run_without_assistant_text_raises_empty_reply() -> None:
    api = FakeAssistantAPI(messages=[make_message("user", "Hi", 1)])

    with pytest.raises(RemoteEmptyReply):
        await _driver(api, []).converse(None, "Hi")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fail_step",
    ["thread creation", "message creation", "run creation", "run polling", "message listing"],
)
async def test_remote_error_fails_fast(fail_step: str) -> None:
    api = FakeAssistantAPI(fail_step=fail_step)

    with pytest.raises(RemoteCallFailed) as excinfo:
        await _driver(api, []).converse(None, "Hi")

    assert api.calls[-1] == fail_step
    assert api.calls.count(fail_step) == 1
    assert excinfo.value.step == fail_step
    assert "server exploded" in excinfo.value.details


def test_driver_requires_assistant_id() -> None:
    with pytest.raises(ValueError):
        ConversationDriver(FakeAssistantAPI(), "")


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [500, 429])
async def test_app_client_sends_each_failed_call_once(status_code: int) -> None:
    seen: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(status_code, json={"error": {"message": "server exploded"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = create_openai_client("sk-test", http_client=http_client)
        with pytest.raises(RemoteCallFailed) as excinfo:
            await _driver(client, []).converse(None, "Hi")

    assert seen == ["/v1/threads"]
    assert excinfo.value.step == "thread creation"
    assert "server exploded" in excinfo.value.details
