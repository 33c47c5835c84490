"""Health check router."""

import logging
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import ping_db
from ..core.dependencies import DB_DEPENDENCY, STORE_DEPENDENCY
from ..core.store import ExpiringStore
from ..schemas.health import HealthResponse, HealthStatus, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.post("/v1/health/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status and timestamp.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.utcnow(),
        version="1.0.0"
    )

    logger.debug("Health check requested", extra={"status": response_data.status})

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
) -> JSONResponse:
    """
    Readiness check that pings the hold store and the booking database.

    Returns 503 while either dependency is unreachable.
    """
    checks = {
        "hold_store": "ok" if await store.ping() else "unavailable",
        "database": "ok" if await ping_db(db) else "unavailable",
    }
    ready = all(value == "ok" for value in checks.values())

    if not ready:
        logger.warning("Readiness check failed", extra={"checks": checks})

    response_data = ReadinessResponse(
        status=HealthStatus.READY if ready else HealthStatus.DEGRADED,
        checks=checks,
    )
    return JSONResponse(
        status_code=200 if ready else 503,
        content=response_data.model_dump(mode="json")
    )
