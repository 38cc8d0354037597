"""
FastAPI application for the Canvas audio recording tool.

``get_app`` builds every component (database, session store, storage
backend, outcome reporter) from one ``Settings`` object and keeps them on
``app.state``.  The storage backend is chosen here, once, for the lifetime
of the process.
"""

from dotenv import load_dotenv

# Load .env file before any other imports that might need env vars
load_dotenv()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware

from audio_api.database import Database
from audio_api.lti.launch import LaunchValidator
from audio_api.lti.outcomes import OutcomeReporter
from audio_api.lti.routes import router as lti_router
from audio_api.lti.sessions import (
    MemorySessionStore,
    RedisSessionStore,
    SessionCookie,
    SessionStore,
)
from audio_api.routes import router
from audio_api.settings import FALLBACK_SESSION_SECRET, Settings, get_settings
from audio_lti.storage import LocalStorageBackend, S3StorageBackend, StorageBackend

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


def build_storage_backend(settings: Settings) -> StorageBackend:
    """Object storage when AWS credentials are configured, local disk otherwise."""
    if settings.use_object_storage:
        return S3StorageBackend.from_credentials(
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            bucket_name=settings.s3_bucket_name,
            region=settings.aws_region,
        )
    return LocalStorageBackend(settings.upload_dir)


def build_session_store(settings: Settings) -> SessionStore:
    if settings.redis_url:
        return RedisSessionStore.from_url(settings.redis_url, settings.session_ttl_seconds)
    return MemorySessionStore(settings.session_ttl_seconds)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Content-Security-Policy and related headers for LMS iframe embedding."""

    def __init__(self, app, frame_ancestors: str = "*", media_origin: str | None = None):
        super().__init__(app)
        media_src = "'self' blob:" + (f" {media_origin}" if media_origin else "")
        self.policy = "; ".join(
            [
                "default-src 'self'",
                "script-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com",
                "style-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com",
                f"media-src {media_src}",
                "connect-src 'self'",
                f"frame-ancestors {frame_ancestors}",
            ]
        )

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["Content-Security-Policy"] = self.policy
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        # Remove X-Frame-Options so CSP frame-ancestors takes precedence
        if "X-Frame-Options" in response.headers:
            del response.headers["X-Frame-Options"]
        return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error as ``{"error": <message>}``."""
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Application error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Something went wrong!"})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    - startup: create the submissions table and the upload directory
    - shutdown: drain pending grade reports, close stores
    """
    state = app.state
    await state.database.create_all()

    mount = state.storage.static_mount()
    if mount is not None:
        mount[1].mkdir(parents=True, exist_ok=True)

    settings: Settings = state.settings
    logger.info(
        "Canvas Audio LTI Tool running on %s:%s (env=%s, storage=%s, sessions=%s, db=%s)",
        settings.host,
        settings.port,
        settings.env,
        state.storage.name,
        state.session_store.name,
        settings.resolved_database_path,
    )
    if settings.session_secret == FALLBACK_SESSION_SECRET:
        logger.warning("SESSION_SECRET is not set; using the insecure fallback value")
    if not settings.lti_secret:
        logger.warning("LTI_SECRET is not set; every launch will be rejected")

    yield

    await state.outcome_reporter.aclose()
    await state.session_store.close()
    await state.database.close()
    logger.info("Shutdown complete")


def get_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    session_store: SessionStore | None = None,
    storage: StorageBackend | None = None,
    outcome_reporter: OutcomeReporter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    database = database or Database.from_path(
        settings.resolved_database_path, echo=settings.log_level.upper() == "DEBUG"
    )
    session_store = session_store or build_session_store(settings)
    storage = storage or build_storage_backend(settings)
    outcome_reporter = outcome_reporter or OutcomeReporter(settings.lti_secret)

    app = FastAPI(
        title="Canvas Audio LTI Tool",
        description="Record audio in the browser and submit it from an LTI launch",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.session_store = session_store
    app.state.session_cookie = SessionCookie(settings.session_secret)
    app.state.storage = storage
    app.state.outcome_reporter = outcome_reporter
    app.state.launch_validator = LaunchValidator(settings.lti_secret, session_store)

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        SecurityHeadersMiddleware,
        frame_ancestors=settings.csp_frame_ancestors,
        media_origin=storage.media_origin(),
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router)
    app.include_router(lti_router)

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    mount = storage.static_mount()
    if mount is not None:
        prefix, directory = mount
        app.mount(prefix, StaticFiles(directory=directory, check_dir=False), name="uploads")

    return app


# Create the app instance
app = get_app()
