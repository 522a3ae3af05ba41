"""FastAPI application entry point.

Arena Resolver API - round resolution and placement views over the game ledger.

Run:
    uvicorn arena.main:app --host 0.0.0.0 --port 8000
"""

import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from arena.api import games
from arena.config import Settings, get_settings
from arena.ledger.gateway import LedgerGateway
from arena.ledger.reader import LedgerReader
from arena.logging_config import configure_logging, get_logger, log_context
from arena.resolution.service import GamePoller, GameViewService
from arena.utils.errors import (
    ArenaError,
    GameNotFoundError,
    GameNotResolvableError,
    LedgerError,
    LedgerNotFoundError,
)
from arena.utils.json_utils import ORJSONResponse

logger = get_logger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add X-Request-ID header to all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = datetime.now(timezone.utc)

        with log_context(request_id=request_id):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        duration = (datetime.now(timezone.utc) - started).total_seconds()
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 3),
            request_id=request_id,
        )
        return response


# =============================================================================
# Error Handlers
# =============================================================================


def error_status(exc: ArenaError) -> int:
    if isinstance(exc, (GameNotFoundError, LedgerNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, GameNotResolvableError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, LedgerError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def arena_error_handler(request: Request, exc: ArenaError) -> ORJSONResponse:
    """Render domain errors; ledger diagnostics stay in the logs."""
    status_code = error_status(exc)
    content = exc.to_dict()
    if isinstance(exc, LedgerError):
        content["details"] = {}

    logger.warning(
        "arena_error",
        code=exc.code,
        status=status_code,
        details=exc.details,
        path=request.url.path,
    )

    return ORJSONResponse(status_code=status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    return ORJSONResponse(
        status_code=exc.status_code,
        content={
            "errorCode": "HTTP_ERROR",
            "errorMessage": str(exc.detail),
            "details": {},
            "recoverable": exc.status_code >= 500,
        },
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        exc_info=True,
    )

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "errorCode": "INTERNAL_ERROR",
            "errorMessage": "Internal server error",
            "details": {},
            "recoverable": False,
        },
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[LedgerReader] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings (defaults to environment)
        ledger: Ledger reader; a LedgerGateway from settings when omitted
    """
    settings = settings or get_settings()

    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Starting application...", env=settings.app_env)

        stack = AsyncExitStack()
        reader = ledger
        if reader is None:
            reader = await stack.enter_async_context(LedgerGateway.from_settings(settings))
            logger.info("Ledger gateway configured", url=settings.ledger_gateway_url)

        service = GameViewService(reader, settings)
        poller = GamePoller(service)
        for game_id in settings.watch_game_ids:
            poller.watch(game_id)
        if poller.watched:
            await poller.start()

        _app.state.view_service = service
        _app.state.poller = poller
        logger.info("Application startup complete", watched=sorted(poller.watched))

        yield

        logger.info("Shutting down application...")
        await poller.stop()
        await stack.aclose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Arena Resolver API",
        version=VERSION,
        description="Round resolution and placement reconstruction over the game ledger",
        docs_url="/docs" if settings.app_debug else None,
        redoc_url=None,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    app.add_exception_handler(ArenaError, arena_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/health", tags=["Health"], summary="Health check endpoint")
    async def health_check() -> dict[str, Any]:
        """Process health; ledger reachability is reported by the game endpoints."""
        poller: Optional[GamePoller] = getattr(app.state, "poller", None)
        return {
            "status": "healthy",
            "version": VERSION,
            "watched_games": sorted(poller.watched) if poller else [],
        }

    app.include_router(games.router)

    return app


app = create_app()
