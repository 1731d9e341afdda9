import asyncio
import inspect
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI
from starlette.exceptions import HTTPException as StarletteHTTPException

from routes.chat_route import router as chat_router
from routes.image_route import router as image_router
from services.image_fetcher import ImageFetcher
from services.image_materializer import ImageMaterializer
from services.image_store import ImageStore
from services.openai.conversation_driver import ConversationDriver
from services.openai.vision_client import VisionClient
from utils.errors import RelayError
from utils.settings import Settings, load_settings
from utils.upload_cleaner import UploadCleaner

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_openai_client(api_key: str, **kwargs) -> AsyncOpenAI:
    """Build the shared client with SDK retries off; a failed call surfaces at once."""
    return AsyncOpenAI(api_key=api_key, max_retries=0, **kwargs)


async def _close_client(client) -> None:
    """Close the OpenAI client if it exposes a close/aclose method."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        result = aclose()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        # Shutdown errors must not mask the reason the app is stopping
        LOGGER.warning("Failed to close OpenAI client: %s", exc)


def create_app(
    settings: Optional[Settings] = None,
    openai_client: Optional[AsyncOpenAI] = None,
    image_fetcher: Optional[ImageFetcher] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Configuration; read from the environment when omitted.
        openai_client: Pre-built client (otherwise one is created from the API key).
        image_fetcher: Pre-built fetcher for remote images.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Attach the shared services to `app.state`:
          - the image store and materializer
          - the OpenAI async client, conversation driver, and vision client
          - the upload cleaner task when a retention window is set
        """
        store = ImageStore(settings.upload_dir, settings.public_base_url)
        store.ensure_directory()
        fetcher = image_fetcher or ImageFetcher(settings.image_url_templates, timeout=settings.image_fetch_timeout)
        app.state.image_store = store
        app.state.image_materializer = ImageMaterializer(store, fetcher, delivery=settings.image_delivery)

        client = openai_client
        owns_client = False
        if client is None and settings.openai_api_key:
            client = create_openai_client(settings.openai_api_key)
            owns_client = True
        if client is None:
            LOGGER.warning("OPENAI_API_KEY is not set; chat and image endpoints will answer 503")
        app.state.openai_client = client

        app.state.conversation_driver = None
        app.state.vision_client = None
        if client is not None:
            app.state.vision_client = VisionClient(client, model=settings.vision_model)
            if settings.assistant_id:
                app.state.conversation_driver = ConversationDriver(
                    client,
                    settings.assistant_id,
                    poll_interval=settings.run_poll_interval,
                    max_attempts=settings.run_max_attempts,
                    timeout=settings.run_timeout,
                )
            else:
                LOGGER.warning("OPENAI_ASSISTANT_ID is not set; assistant conversations are disabled")

        cleanup_task = None
        if settings.upload_retention > 0:
            cleaner = UploadCleaner(store, settings.upload_retention)
            interval = min(3_600.0, max(60.0, settings.upload_retention / 2))
            cleanup_task = asyncio.create_task(cleaner.run_periodic_cleanup(interval))

        LOGGER.info(
            "Relay ready (delivery=%s, backend=%s, uploads=%s)",
            settings.image_delivery,
            settings.image_analysis_backend,
            store.upload_dir,
        )
        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with suppress(asyncio.CancelledError):
                    await cleanup_task
            await store.cancel_pending_deletes()
            if owns_client:
                await _close_client(client)

    app = FastAPI(title="Assistant Relay", lifespan=lifespan)
    app.state.settings = settings

    @app.get("/")
    @app.get("/health")
    async def health(request: Request):
        """Liveness probe; reports whether the assistant is configured."""
        return {
            "status": "ok",
            "assistantConfigured": getattr(request.app.state, "conversation_driver", None) is not None,
        }

    add_exception_handlers(app)

    # Register application routers
    app.include_router(chat_router)
    app.include_router(image_router)

    return app


def add_exception_handlers(app: FastAPI) -> None:
    """Translate every failure into a JSON `{error, details?}` body."""

    async def relay_error_handler(request: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body", "details": details},
        )

    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    async def unhandled_exception_handler(request: Request, exc: Exception):
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "details": str(exc)},
        )

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
