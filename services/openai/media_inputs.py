"""Utilities to build multimodal message content for the assistant APIs."""

from typing import Any, Dict, List, Optional


def build_thread_content(
    text: Optional[str],
    image_url: Optional[str] = None,
    image_file_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Compose the content parts of a thread message.

    The text part comes first, followed by the image part when present.
    Thread messages only accept external URLs in `image_url` parts, so
    uploaded bytes are referenced by file id through an `image_file` part.
    """
    if image_url and image_file_id:
        raise ValueError("Pass either an image URL or an image file id, not both.")
    parts: List[Dict[str, Any]] = []
    if text:
        parts.append({"type": "text", "text": text})
    if image_url:
        parts.append({"type": "image_url", "image_url": {"url": image_url, "detail": "high"}})
    if image_file_id:
        parts.append({"type": "image_file", "image_file": {"file_id": image_file_id, "detail": "high"}})
    if not parts:
        raise ValueError("A message needs text or an image.")
    return parts


def build_vision_messages(text: str, image_url: str) -> List[Dict[str, Any]]:
    """Build the Chat Completions messages array for a single image question."""
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
            ],
        }
    ]
