"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_pulse import __version__
from agent_pulse.api.cache import TTLCache
from agent_pulse.api.dependencies import cleanup_dependencies
from agent_pulse.api.routes import cron, health, research, rss, sentiment
from agent_pulse.config.settings import get_settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("agent-pulse API starting up")

    yield

    logger.info("agent-pulse API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "cron", "description": "Scheduler triggers for collection, enrichment, and maintenance"},
        {"name": "rss", "description": "RSS entries with summaries"},
        {"name": "sentiment", "description": "Daily tweet sentiment metrics"},
        {"name": "research", "description": "Coding-agent research paper feed"},
    ]

    app = FastAPI(
        title="agent-pulse API",
        description="""
Batch triggers and dashboard reads for the agent-pulse pipeline.

## Authentication

`/cron/*` endpoints accept the platform scheduler header or an
`X-API-KEY` header matching `INTERNAL_API_KEYS`.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Process-scoped research feed cache
    app.state.research_cache = TTLCache(
        ttl_seconds=settings.research_cache_ttl_seconds,
        max_entries=settings.research_cache_max_entries,
    )

    # Add CORS middleware (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging and correlation ID middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # Correlation ID: use incoming header or generate a new one
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )

        # Bind to structlog contextvars for automatic log correlation
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    # Exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(cron.router, tags=["cron"])
    app.include_router(rss.router, tags=["rss"])
    app.include_router(sentiment.router, tags=["sentiment"])
    app.include_router(research.router, tags=["research"])

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "agent-pulse API",
            "version": __version__,
            "docs": "/docs",
        }

    return app
