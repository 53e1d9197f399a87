"""Liveness and readiness probes."""

from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel

from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Probe result; readiness adds the dashboard data state."""

    status: Literal["ok", "degraded", "unhealthy"]
    data: Literal["loaded", "not_loaded"] | None = None
    last_error: str | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness: the process is up and serving requests."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(request: Request) -> HealthResponse:
    """Readiness check reporting whether dashboard data has been loaded.

    ``ok`` once a refresh has succeeded, ``degraded`` when the latest
    refresh failed but earlier data is still served, and ``unhealthy``
    when nothing has been loaded.

    Args:
        request: Incoming request, used to reach the dashboard service.

    Returns:
        Health status with data state.
    """
    service = getattr(request.app.state, "dashboard_service", None)
    if service is None:
        logger.warning("health.dashboard_service_missing")
        return HealthResponse(status="unhealthy", data="not_loaded")

    if service.snapshot is None:
        return HealthResponse(
            status="unhealthy",
            data="not_loaded",
            last_error=service.last_error,
        )

    if service.last_error is not None:
        return HealthResponse(status="degraded", data="loaded", last_error=service.last_error)

    return HealthResponse(status="ok", data="loaded")
