"""Environment-driven configuration for the relay service."""

from __future__ import annotations

import os
import string
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

IMAGE_DELIVERY_MODES = ("inline", "hosted")
IMAGE_ANALYSIS_BACKENDS = ("assistant", "completion")
DEFAULT_UPLOAD_DIR = Path(tempfile.gettempdir()) / "assistant-relay-uploads"
DEFAULT_IMAGE_PROMPT = "What do you see in this image?"
URL_TEMPLATE_FIELDS = ("ref", "key")


@dataclass
class Settings:
    """Runtime configuration.

    Attributes:
        openai_api_key: Credential for the OpenAI API (None when unset).
        assistant_id: Identifier of the preconfigured assistant to run.
        host: Interface uvicorn binds to.
        port: Listen port.
        public_base_url: Origin used to build links to served uploads.
        upload_dir: Directory holding materialized images.
        image_delivery: `inline` sends data URIs, `hosted` re-hosts uploads.
        image_analysis_backend: `assistant` (thread/run) or `completion`.
        vision_model: Model used by the `completion` backend.
        run_poll_interval: Seconds between run status checks.
        run_max_attempts: Maximum number of run status checks.
        run_timeout: Maximum seconds spent polling a run.
        image_fetch_timeout: Per-candidate download timeout in seconds.
        image_url_templates: Ordered fallback URL templates for image refs.
        upload_delete_after: Delay before deleting a hosted image after a reply (0 keeps it).
        upload_retention: Age after which the sweeper deletes uploads (0 disables it).
        default_image_prompt: Text sent when an image arrives without a message.
        log_level: Root logging level name.
    """

    openai_api_key: Optional[str] = None
    assistant_id: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3000
    public_base_url: str = "http://localhost:3000"
    upload_dir: Path = DEFAULT_UPLOAD_DIR
    image_delivery: str = "inline"
    image_analysis_backend: str = "assistant"
    vision_model: str = "gpt-4o"
    run_poll_interval: float = 1.0
    run_max_attempts: int = 60
    run_timeout: float = 90.0
    image_fetch_timeout: float = 15.0
    image_url_templates: List[str] = field(default_factory=list)
    upload_delete_after: float = 0.0
    upload_retention: float = 0.0
    default_image_prompt: str = DEFAULT_IMAGE_PROMPT
    log_level: str = "INFO"

    @property
    def assistant_configured(self) -> bool:
        return bool(self.openai_api_key and self.assistant_id)


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _env_choice(name: str, default: str, choices: tuple) -> str:
    raw = (_env_str(name) or default).lower()
    if raw not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}, got {raw!r}")
    return raw


def _env_templates(name: str) -> List[str]:
    """Split a comma-separated template list; only `{ref}` and `{key}` may appear."""
    templates = [t.strip() for t in (_env_str(name) or "").split(",") if t.strip()]
    for template in templates:
        try:
            fields = {f for _, f, _, _ in string.Formatter().parse(template) if f is not None}
        except ValueError as exc:
            raise ValueError(f"{name} has a malformed template {template!r}: {exc}") from exc
        unknown = fields - set(URL_TEMPLATE_FIELDS)
        if unknown:
            raise ValueError(
                f"{name} template {template!r} uses unknown placeholders {sorted(unknown)}; "
                f"allowed: {{ref}}, {{key}}"
            )
    return templates


def load_settings() -> Settings:
    """Build `Settings` from the process environment.

    Missing credentials are allowed here; the app logs a warning at startup
    so health checks keep working.

    Raises:
        ValueError: If any variable has an invalid value.
    """
    port = _env_int("PORT", 3000, minimum=1)
    public_base_url = _env_str("PUBLIC_BASE_URL") or f"http://localhost:{port}"
    upload_dir = _env_str("UPLOAD_DIR")

    return Settings(
        openai_api_key=_env_str("OPENAI_API_KEY"),
        assistant_id=_env_str("OPENAI_ASSISTANT_ID"),
        host=_env_str("HOST") or "0.0.0.0",
        port=port,
        public_base_url=public_base_url.rstrip("/"),
        upload_dir=Path(upload_dir).expanduser() if upload_dir else DEFAULT_UPLOAD_DIR,
        image_delivery=_env_choice("IMAGE_DELIVERY", "inline", IMAGE_DELIVERY_MODES),
        image_analysis_backend=_env_choice("IMAGE_ANALYSIS_BACKEND", "assistant", IMAGE_ANALYSIS_BACKENDS),
        vision_model=_env_str("VISION_MODEL") or "gpt-4o",
        run_poll_interval=_env_float("RUN_POLL_INTERVAL", 1.0),
        run_max_attempts=_env_int("RUN_MAX_ATTEMPTS", 60, minimum=1),
        run_timeout=_env_float("RUN_TIMEOUT", 90.0),
        image_fetch_timeout=_env_float("IMAGE_FETCH_TIMEOUT", 15.0),
        image_url_templates=_env_templates("IMAGE_URL_TEMPLATES"),
        upload_delete_after=_env_float("UPLOAD_DELETE_AFTER", 0.0),
        upload_retention=_env_float("UPLOAD_RETENTION", 0.0),
        default_image_prompt=_env_str("DEFAULT_IMAGE_PROMPT") or DEFAULT_IMAGE_PROMPT,
        log_level=(_env_str("LOG_LEVEL") or "INFO").upper(),
    )
