"""FastAPI application entry point."""
import logging
import time
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from imagegate.api import api_router
from imagegate.config import Settings, get_settings
from imagegate.database import Database
from imagegate.errors import ErrorKind, ServiceError
from imagegate.services.gemini import GeminiClient
from imagegate.utils.rate_limiter import limiter

log = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind is ErrorKind.UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_body()),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Invalid request",
            "code": ErrorKind.INVALID_INPUT.value,
            "errors": jsonable_encoder(exc.errors()),
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": ErrorKind.INTERNAL.value},
    )


def create_app(
    settings: Settings | None = None,
    *,
    gemini_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the application. Tests pass their own settings and transport."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        configure_logging(settings.log_level)
        if settings.missing_required:
            log.warning("Missing configuration: %s", ", ".join(settings.missing_required))

        db = Database.from_settings(settings)
        app.state.db = db
        app.state.gemini_client = GeminiClient(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            timeout=settings.gemini_timeout_seconds,
            transport=gemini_transport,
        )
        app.state.started_at = time.monotonic()
        try:
            await db.connect()
        except ServiceError as exc:
            log.error("Starting without database: %s (heartbeat will keep retrying)", exc.message)
        db.start_heartbeat()

        yield

        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.app_name,
        description="Credit-metered proxy for AI image generation",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    # Health check endpoint
    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        started_at = getattr(request.app.state, "started_at", None)
        uptime = time.monotonic() - started_at if started_at is not None else 0.0
        db = getattr(request.app.state, "db", None)
        return {
            "status": "healthy",
            "version": settings.version,
            "uptimeSeconds": round(uptime, 1),
            "database": "connected" if db is not None and db.is_connected else "disconnected",
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": settings.app_name,
            "version": settings.version,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_app()


def run() -> None:
    """Serve with uvicorn; in-flight requests get a bounded grace period on shutdown."""
    settings = get_settings()
    uvicorn.run(
        "imagegate.main:app",
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
