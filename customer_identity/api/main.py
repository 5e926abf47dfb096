"""
Customer Identity Service - FastAPI Application

Provides:
- Identity matching across partner customers and bookings
- Unified customer profiles with booking statistics
- Partner customer detail with cached stats refresh
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from customer_identity import __version__
from customer_identity.api.middleware import RequestIDMiddleware
from customer_identity.api.routes import customers, health
from customer_identity.config import get_settings
from customer_identity.db.client import close_db, init_db
from customer_identity.errors import CustomerIdentityError

# Map log level string to logging constant
_LOG_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _get_log_level() -> int:
    """Get numeric log level from settings."""
    level_str = get_settings().log_level.lower()
    return _LOG_LEVEL_MAP.get(level_str, logging.INFO)


# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if get_settings().log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()

    logger.info(
        "Starting Customer Identity Service",
        version=__version__,
        environment=settings.environment,
    )

    await init_db()

    yield

    logger.info("Shutting down Customer Identity Service")
    await close_db()


app = FastAPI(
    title="Customer Identity API",
    description="Customer matching and unified profiles for the travel booking platform",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.exception_handler(CustomerIdentityError)
async def customer_identity_error_handler(request: Request, exc: CustomerIdentityError):
    request_id = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        logger.error("Request failed", code=exc.code, error=exc.message, **exc.meta)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_public_dict(request_id=request_id),
    )


# Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(customers.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Customer Identity API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }
