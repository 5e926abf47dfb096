"""Health check endpoints."""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Response
from sqlalchemy import text

from customer_identity import __version__
from customer_identity.db.client import get_db_session

router = APIRouter()
logger = structlog.get_logger()

# Track startup time
_startup_time = datetime.now(timezone.utc)


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if the service is running.
    """
    return {
        "status": "healthy",
        "service": "customer-identity",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": (datetime.now(timezone.utc) - _startup_time).total_seconds(),
    }


@router.get("/ready")
async def readiness_check(response: Response):
    """
    Readiness check endpoint.
    Verifies the database is reachable.
    """
    checks = {"postgres": False}

    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
            checks["postgres"] = True
    except Exception as e:
        logger.warning("PostgreSQL health check failed", error=str(e))

    ready = all(checks.values())
    if not ready:
        response.status_code = 503

    return {
        "status": "ready" if ready else "not_ready",
        "checks": checks,
    }
