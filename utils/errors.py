"""Error types raised while relaying a request to the assistant API.

Every failure that can reach a caller derives from `RelayError`, which knows
its HTTP status and how to render itself as a JSON body. The gateway turns
these into responses in one place (see `main.add_exception_handlers`).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for request-level failures.

    Attributes:
        message: Short human-readable summary returned as `error`.
        details: Optional diagnostic text (e.g. the remote error body).
        status_code: HTTP status used when the error reaches the gateway.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(RelayError):
    """The request is missing a required field or carries unusable data."""

    status_code = 400


class ImageFetchFailed(RelayError):
    """A remote image could not be downloaded from any candidate URL."""


class RemoteCallFailed(RelayError):
    """A call to the assistant API returned a non-success status."""

    def __init__(self, step: str, details: Optional[str] = None) -> None:
        self.step = step
        super().__init__(f"OpenAI request failed during {step}", details)


class RunTimedOut(RelayError):
    """The run did not reach a terminal status within the poll ceiling."""


class RunFailed(RelayError):
    """The run reached a terminal status other than `completed`."""

    def __init__(self, status: str, details: Optional[str] = None) -> None:
        self.status = status
        super().__init__(f"Assistant run {status}", details)


class RemoteEmptyReply(RelayError):
    """The run completed but no assistant text was found."""


class ServiceNotConfigured(RelayError):
    """The OpenAI credential or assistant id is missing."""

    status_code = 503
