"""FastAPI dependencies for the dashboard feature."""

from fastapi import Request

from app.core.exceptions import ServiceUnavailableError
from app.features.dashboard.service import DashboardService


def get_dashboard_service(request: Request) -> DashboardService:
    """Return the dashboard service created by the application lifespan.

    Raises:
        ServiceUnavailableError: If the application has not finished starting.
    """
    service: DashboardService | None = getattr(request.app.state, "dashboard_service", None)
    if service is None:
        raise ServiceUnavailableError("Dashboard service is not running")
    return service
