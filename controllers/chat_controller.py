"""Controller for plain text chat requests."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from services.openai.conversation_driver import ConversationDriver
from utils.errors import ServiceNotConfigured, ValidationError

LOGGER = logging.getLogger(__name__)


def get_conversation_driver(request: Request) -> ConversationDriver:
    """Retrieve the shared conversation driver from the app state."""
    driver = getattr(request.app.state, "conversation_driver", None)
    if driver is None:
        raise ServiceNotConfigured(
            "Assistant is not configured",
            "Set OPENAI_API_KEY and OPENAI_ASSISTANT_ID",
        )
    return driver


async def handle_chat(request: Request, message: Optional[str], thread_id: Optional[str] = None) -> Dict[str, Any]:
    """Relay a text message to the assistant and return its reply.

    Args:
        request: FastAPI Request (used to access app.state).
        message: User text; required.
        thread_id: Thread returned by an earlier reply, to continue that conversation.

    Returns:
        A dict with `reply` and the `threadId` the reply belongs to.

    Raises:
        ValidationError: If `message` is missing or blank.
    """
    text = message.strip() if message else ""
    if not text:
        raise ValidationError("Message is required")

    driver = get_conversation_driver(request)
    LOGGER.info("Chat request (%d chars, thread %s)", len(text), thread_id or "new")
    reply = await driver.converse(thread_id, text)
    return {"reply": reply.text, "threadId": reply.thread_id}
