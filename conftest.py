"""Shared pytest fixtures for StorePulse tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import Base, create_engine_from_settings, create_session_maker
from app.features.dashboard import models  # noqa: F401  (registers tables on Base)
from app.main import app


@pytest.fixture
async def client():
    """Create async HTTP client for testing FastAPI endpoints.

    ASGITransport does not run the lifespan, so no record source is
    contacted; tests install the dashboard service they need.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def db_engine():
    """Create an async engine with all tables for integration tests.

    Requires PostgreSQL to be running (docker-compose up -d).
    """
    engine = create_engine_from_settings()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create async database session for integration tests."""
    async with create_session_maker(db_engine)() as session:
        try:
            yield session
        finally:
            await session.rollback()
