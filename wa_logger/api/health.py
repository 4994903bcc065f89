"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from wa_logger.core.config import Settings, get_settings
from wa_logger.core.database import check_db_connection, get_db
from wa_logger.core.logging import get_logger
from wa_logger.pipeline.normalize import now_timestamp
from wa_logger.schemas.message import HealthResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    response_model=HealthResponse,
    summary="Service health",
    description="Returns OK with the current server time."
)
async def health() -> HealthResponse:
    return HealthResponse(status="OK", timestamp=now_timestamp())


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive."
)
async def liveness() -> HealthResponse:
    """
    Liveness probe - always returns 200.

    Used by orchestrators to check if the service is running.
    """
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the service is ready to handle traffic."
)
def readiness(
    request: Request,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """
    Readiness probe - checks if the service can handle traffic.

    Checks:
    - Database is reachable
    - WEBHOOK_SECRET environment variable is configured
    - Transport sidecar is configured (reported, not required)
    """
    checks = {}
    is_ready = True

    db_ok = check_db_connection(db)
    checks["database"] = "ok" if db_ok else "failed"
    if not db_ok:
        is_ready = False
        logger.warning("Readiness check failed: database not reachable")

    secret_ok = settings.is_webhook_secret_configured
    checks["webhook_secret"] = "ok" if secret_ok else "not configured"
    if not secret_ok:
        is_ready = False
        logger.warning("Readiness check failed: WEBHOOK_SECRET not configured")

    transport = getattr(request.app.state, "transport", None)
    checks["transport"] = "configured" if transport is not None else "not configured"

    if is_ready:
        return HealthResponse(status="ok", checks=checks)
    else:
        response.status_code = 503
        return HealthResponse(status="not ready", checks=checks)
