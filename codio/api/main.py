"""FastAPI Application Setup for the Codio transport API.

Provides the FastAPI application factory with middleware, exception
handlers and lifespan management.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codio import __version__
from codio.api.dependencies import close_sessions
from codio.api.models import ErrorResponse
from codio.api.player_routes import router as player_router
from codio.api.recorder_routes import router as recorder_router
from codio.api.routes import router as system_router
from codio.config import Settings, get_settings
from codio.editor.timeline import TimelineCorruptionError

logger = logging.getLogger(__name__)


# =============================================================================
# Application Metadata
# =============================================================================

API_TITLE = "Codio API"
API_DESCRIPTION = """
## Codio

Record a coding session and play it back:

- **Recorder**: capture editor events and narration into a codio
- **Player**: VCR-style transport over a recorded codio, keeping editor
  state, audio, subtitles and progress in step
"""

TAGS_METADATA = [
    {"name": "player", "description": "Playback transport"},
    {"name": "recorder", "description": "Session recording"},
    {"name": "system", "description": "Health checks and metrics"},
]


# =============================================================================
# Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close any open playback or recording session on shutdown."""
    settings = get_settings()
    logger.info(f"Starting {API_TITLE} v{__version__}")
    logger.info(f"Environment: {settings.APP_ENV}")

    yield

    logger.info("Shutting down...")
    try:
        await close_sessions()
    except Exception as e:
        logger.warning(f"Session shutdown error: {e}")
    logger.info(f"{API_TITLE} shutdown complete")


# =============================================================================
# Exception Handlers
# =============================================================================


def _error_json(
    request: Request,
    status_code: int,
    error: str,
    code: str,
    detail: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        detail=detail,
        code=code,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # String details become the error message, structured ones stay in detail
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    structured = None if isinstance(exc.detail, str) else exc.detail
    return _error_json(
        request, exc.status_code, message, f"HTTP_{exc.status_code}", structured, exc.headers
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Flatten pydantic errors into ``field.path: message`` pairs."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return _error_json(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        problems,
    )


async def timeline_corruption_handler(
    request: Request,
    exc: TimelineCorruptionError,
) -> JSONResponse:
    """Report corrupt timelines apart from ordinary load failures."""
    logger.warning(f"Rejected corrupt timeline: {exc}")
    return _error_json(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Timeline is corrupt",
        "TIMELINE_CORRUPT",
        str(exc),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception(f"Unhandled error in {request.url.path}: {exc}", extra={"request_id": request_id})

    # Internals stay private in production
    detail = "An internal error occurred" if get_settings().is_production else str(exc)
    return _error_json(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "INTERNAL_ERROR",
        detail,
    )


# =============================================================================
# Middleware
# =============================================================================

SLOW_REQUEST_MS = 1000.0


async def request_context_middleware(request: Request, call_next: Callable) -> Response:
    """Tag each request with an ID and report how long it took."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
    # Loads of large timelines are the usual culprit
    if elapsed_ms > SLOW_REQUEST_MS:
        logger.warning(
            f"{request.method} {request.url.path} took {elapsed_ms:.0f}ms",
            extra={"request_id": request_id, "elapsed_ms": elapsed_ms},
        )
    return response


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    # Interactive docs only while debugging
    docs = settings.DEBUG
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs" if docs else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs else None,
        lifespan=lifespan,
        debug=settings.DEBUG,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )

    app.middleware("http")(request_context_middleware)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(TimelineCorruptionError, timeline_corruption_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(system_router)
    app.include_router(player_router)
    app.include_router(recorder_router)

    @app.get("/", include_in_schema=False)
    async def index() -> dict[str, Any]:
        return {
            "name": API_TITLE,
            "version": __version__,
            "player": player_router.prefix,
            "recorder": recorder_router.prefix,
            "health": "/api/v1/health",
        }

    logger.info(
        f"{API_TITLE} ready ({settings.APP_ENV})",
        extra={"audio_enabled": settings.AUDIO_ENABLED, "debug": settings.DEBUG},
    )
    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Run the API server using uvicorn.

    A single worker: the player and recorder are per-process singletons.
    """
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "codio.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=settings.DEBUG,
        workers=1,
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
