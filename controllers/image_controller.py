from fastapi import HTTPException, Request
from fastapi.responses import FileResponse
from typing import Dict, Any, Optional
import logging

from controllers.chat_controller import get_conversation_driver
from services.image_materializer import ImageMaterializer
from services.image_store import ImageStore
from services.openai.vision_client import VisionClient
from utils.errors import ServiceNotConfigured, ValidationError
from utils.media_validation import decode_base64_image, detect_image_mime, split_data_url
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)


async def analyze_image(
    request: Request,
    message: Optional[str] = None,
    image_url: Optional[str] = None,
    image_base64: Optional[str] = None,
    thread_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Materialize an image and ask the assistant about it.

    Args:
        request: FastAPI Request object (used to access app.state for shared clients).
        message: Optional user question; a default prompt is used when absent.
        image_url: Remote image reference (mutually exclusive with `image_base64`).
        image_base64: Base64 image data, optionally with a data-URL prefix.
        thread_id: Existing thread to continue (assistant backend only).

    Returns:
        A dict containing: reply, threadId (assistant backend), imageUrl (hosted delivery)
    """
    has_url = bool(image_url and image_url.strip())
    has_base64 = bool(image_base64 and image_base64.strip())
    if not has_url and not has_base64:
        raise ValidationError("Image is required", "Provide imageUrl or imageBase64")
    if has_url and has_base64:
        raise ValidationError("Provide only one of imageUrl or imageBase64")

    settings: Settings = request.app.state.settings
    text = message.strip() if message and message.strip() else settings.default_image_prompt

    # Resolve the backend before touching the image so misconfiguration has no side effects
    driver = None
    vision: Optional[VisionClient] = None
    if settings.image_analysis_backend == "completion":
        vision = getattr(request.app.state, "vision_client", None)
        if vision is None:
            raise ServiceNotConfigured("Vision model is not configured", "Set OPENAI_API_KEY")
    else:
        driver = get_conversation_driver(request)

    materializer: ImageMaterializer = request.app.state.image_materializer
    reference = await materializer.materialize(
        image_base64=image_base64 if has_base64 else None,
        image_url=image_url.strip() if has_url else None,
    )
    LOGGER.info("Analyzing %s image (%d bytes)", reference.mime_type, reference.byte_length)

    result: Dict[str, Any] = {}
    if vision is not None:
        result["reply"] = await vision.describe(text, reference.url)
    else:
        if reference.stored is None:
            # Thread messages reject data URIs; inline bytes go up as a vision file
            file_id = await driver.upload_image(reference.data, reference.mime_type)
            reply = await driver.converse(thread_id, text, image_file_id=file_id)
        else:
            reply = await driver.converse(thread_id, text, image_url=reference.url)
        result["reply"] = reply.text
        result["threadId"] = reply.thread_id

    if reference.stored is not None:
        result["imageUrl"] = reference.stored.url
        if settings.upload_delete_after > 0:
            materializer.store.schedule_delete(reference.stored.filename, settings.upload_delete_after)

    return result


async def upload_image(request: Request, image_base64: Optional[str], file_name: Optional[str] = None) -> Dict[str, Any]:
    """Store a base64 image and return the URL it is served from.

    `file_name` is informational only; stored files always get a generated name.
    """
    if not image_base64 or not image_base64.strip():
        raise ValidationError("imageBase64 is required")

    declared_mime, _ = split_data_url(image_base64)
    data = decode_base64_image(image_base64)
    mime_type = detect_image_mime(data, fallback=declared_mime)

    store: ImageStore = request.app.state.image_store
    stored = await store.save(data, mime_type)
    LOGGER.info("Uploaded %s as %s", file_name or "image", stored.filename)
    return {
        "fileUrl": stored.url,
        "fileName": stored.filename,
        "originalName": file_name,
        "mimeType": stored.mime_type,
        "byteLength": stored.byte_length,
    }


async def get_upload(request: Request, filename: str) -> FileResponse:
    """Controller to serve a previously stored image.

    Raises:
        HTTPException(404) if the file does not exist.
    """
    store: ImageStore = request.app.state.image_store
    path = store.resolve(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)
