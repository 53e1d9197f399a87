"""StorePulse API: app factory, lifespan and the ``storepulse`` entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.exceptions import DashboardError, register_exception_handlers
from app.core.health import router as health_router
from app.core.logging import configure_logging, get_logger
from app.core.middleware import RequestIdMiddleware
from app.features.dashboard.config import DashboardConfig
from app.features.dashboard.routes import router as dashboard_router
from app.features.dashboard.service import DashboardService
from app.features.dashboard.source import build_record_source

logger = get_logger(__name__)

# Vite dev server of the dashboard frontend
DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the dashboard service, load the first snapshot, tear down on exit.

    A failed first load is logged and the app keeps serving: dashboard
    endpoints answer 503 until a later refresh succeeds.
    """
    settings = get_settings()
    configure_logging()
    logger.info(
        "app.startup_started",
        app_env=settings.app_env,
        source_backend=settings.record_source_backend,
        source_table=settings.source_table,
    )

    source, engine = build_record_source(settings)
    service = DashboardService(source, DashboardConfig.from_settings(settings))
    app.state.dashboard_service = service

    try:
        await service.refresh()
    except DashboardError as e:
        logger.warning("app.initial_refresh_failed", error=e.message, error_code=e.code)

    if settings.auto_refresh_enabled:
        service.start_auto_refresh()
    logger.info("app.startup_completed", auto_refresh=settings.auto_refresh_enabled)

    try:
        yield
    finally:
        await service.close()
        await source.aclose()
        if engine is not None:
            await engine.dispose()
        logger.info("app.shutdown_completed")


def create_app() -> FastAPI:
    """Create the FastAPI application.

    Returns:
        App with middleware, problem+json handlers and routers installed.
    """
    settings = get_settings()
    docs = settings.is_development

    app = FastAPI(
        title=settings.app_name,
        description="Store performance dashboard for merchant sales funnels",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
    )

    # Last added is outermost: CORS wraps request correlation
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(dashboard_router)
    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
