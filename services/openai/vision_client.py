"""Direct image question answering via the Chat Completions API."""

import logging

from openai import APIError, AsyncOpenAI

from services.openai.media_inputs import build_vision_messages
from services.openai.response_parser import completion_text, error_body
from utils.errors import RemoteCallFailed, RemoteEmptyReply

LOGGER = logging.getLogger(__name__)
DEFAULT_VISION_MODEL = "gpt-4o"


class VisionClient:
    """Ask a vision-capable model about one image without a thread."""

    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_VISION_MODEL, max_tokens: int = 1000) -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def describe(self, text: str, image_url: str) -> str:
        """Return the model's answer to `text` about the image at `image_url`."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_vision_messages(text, image_url),
                max_tokens=self.max_tokens,
            )
        except APIError as exc:
            detail = error_body(exc)
            LOGGER.error("OpenAI vision completion failed: %s", detail)
            raise RemoteCallFailed("vision completion", detail) from exc

        reply = completion_text(response)
        if not reply:
            raise RemoteEmptyReply("Vision model returned no reply")
        return reply
