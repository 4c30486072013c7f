"""
FastAPI application factory.

The app owns the process-wide reconciliation engine: the lifespan starts
the cron scheduler (unless ``ENGINE_ENABLED=false``) and tears down the
scheduler and database pool on shutdown.
"""

import time
import uuid
from contextlib import asynccontextmanager, nullcontext

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alertcpl import __version__
from alertcpl.api.dependencies import cleanup_dependencies, start_scheduler
from alertcpl.api.routes import accounts, engine, health, logs
from alertcpl.config.settings import get_settings
from alertcpl.observability.tracing import (
    get_tracer,
    is_tracing_enabled,
    setup_tracing,
    shutdown_tracing,
    traced,
)

logger = structlog.get_logger(__name__)

API_DESCRIPTION = """
Cost-per-lead monitoring for Meta ad accounts.

## Authentication

- Dashboard endpoints require the `X-API-KEY` header when `API_KEYS` is set.
- `POST /engine/trigger` requires the `X-TRIGGER-SECRET` header.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health checks"},
    {"name": "engine", "description": "Reconciliation engine status and manual trigger"},
    {"name": "accounts", "description": "Monitored ad accounts and thresholds"},
    {"name": "logs", "description": "CPL history and alert records"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("AlertCPL API starting up", environment=settings.environment)

    # `alertcpl serve` has already installed a provider in this process
    if settings.tracing_enabled and not is_tracing_enabled():
        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )

    if settings.engine_enabled:
        scheduler = await start_scheduler()
        logger.info("Engine scheduler running", next_run=str(scheduler.next_run_time))
    else:
        logger.info("Engine scheduler disabled (ENGINE_ENABLED=false)")

    yield

    logger.info("AlertCPL API shutting down")
    await cleanup_dependencies()
    shutdown_tracing()


async def request_context_middleware(request: Request, call_next):
    """Bind a request id to every log line, trace the request, and log its outcome."""
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or uuid.uuid4().hex
    )
    structlog.contextvars.bind_contextvars(request_id=request_id)
    start = time.perf_counter()

    span_cm = (
        traced(
            get_tracer("alertcpl.api"),
            f"{request.method} {request.url.path}",
            {"http.method": request.method, "http.route": request.url.path},
        )
        if is_tracing_enabled()
        else nullcontext()
    )

    try:
        with span_cm as span:
            response = await call_next(request)
            if span is not None:
                span.set_attribute("http.status_code", response.status_code)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response
    finally:
        structlog.contextvars.clear_contextvars()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_type": "internal"},
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title="AlertCPL API",
        description=API_DESCRIPTION,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    # CORS_ORIGINS is comma-separated
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(engine.router, tags=["engine"])
    app.include_router(accounts.router, tags=["accounts"])
    app.include_router(logs.router, tags=["logs"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "AlertCPL",
            "version": __version__,
            "docs": "/docs",
        }

    return app
