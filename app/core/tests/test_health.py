"""Tests for the liveness and readiness probes."""

from types import SimpleNamespace

import pytest

from app.main import app


@pytest.fixture
def fake_service():
    """Install a stand-in dashboard service on app state."""
    service = SimpleNamespace(snapshot=None, last_error=None)
    app.state.dashboard_service = service
    yield service
    del app.state.dashboard_service


class TestLiveness:
    """Tests for GET /health."""

    async def test_ok_without_dashboard_service(self, client) -> None:
        """Liveness does not depend on dashboard data."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "data": None, "last_error": None}

    async def test_echoes_caller_request_id(self, client) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "lb-probe-7"})

        assert response.headers["X-Request-ID"] == "lb-probe-7"


class TestReadiness:
    """Tests for GET /health/ready."""

    async def test_unhealthy_without_service(self, client) -> None:
        """Before startup has installed the service nothing is ready."""
        response = await client.get("/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["data"] == "not_loaded"

    async def test_failed_first_load_reports_error(self, client, fake_service) -> None:
        fake_service.last_error = "Record source returned 401: Invalid API key"

        body = (await client.get("/health/ready")).json()

        assert body == {
            "status": "unhealthy",
            "data": "not_loaded",
            "last_error": "Record source returned 401: Invalid API key",
        }

    async def test_ok_once_loaded(self, client, fake_service) -> None:
        fake_service.snapshot = object()

        body = (await client.get("/health/ready")).json()

        assert body == {"status": "ok", "data": "loaded", "last_error": None}

    async def test_degraded_when_serving_stale_data(self, client, fake_service) -> None:
        """A failed refresh after a good one keeps serving but reports degraded."""
        fake_service.snapshot = object()
        fake_service.last_error = "Could not reach record source"

        body = (await client.get("/health/ready")).json()

        assert body["status"] == "degraded"
        assert body["data"] == "loaded"
        assert body["last_error"] == "Could not reach record source"
