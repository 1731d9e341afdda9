"""Helpers to read assistant API objects returned by the OpenAI SDK."""

import json
from typing import Any, Iterable, Optional


def message_text(message: Any) -> str:
    """Join the text parts of a thread message."""
    parts = []
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) != "text":
            continue
        text = getattr(block, "text", None)
        value = getattr(text, "value", text)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    return "\n".join(parts)


def extract_reply(messages: Iterable[Any]) -> Optional[str]:
    """Return the text of the most recently created assistant message.

    Messages are sorted by `created_at` (newest first) regardless of the
    order the API returned them in; ties keep the listed order.
    """
    ordered = sorted(messages, key=lambda m: getattr(m, "created_at", 0) or 0, reverse=True)
    for message in ordered:
        if getattr(message, "role", None) != "assistant":
            continue
        text = message_text(message)
        if text:
            return text
    return None


def run_error_detail(run: Any) -> Optional[str]:
    """Return the remote failure detail of a run, if the API provided one."""
    last_error = getattr(run, "last_error", None)
    if last_error is None:
        return None
    code = getattr(last_error, "code", None)
    message = getattr(last_error, "message", None)
    if code and message:
        return f"{code}: {message}"
    return message or code or str(last_error)


def error_body(exc: Exception) -> str:
    """Serialize the remote error body carried by an SDK exception."""
    body = getattr(exc, "body", None)
    if body is not None:
        if isinstance(body, (dict, list)):
            return json.dumps(body)
        return str(body)
    response = getattr(exc, "response", None)
    text = getattr(response, "text", None)
    return text or str(exc)


def completion_text(response: Any) -> str:
    """Extract the first choice content from a Chat Completions response."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return (getattr(message, "content", None) or "").strip()
