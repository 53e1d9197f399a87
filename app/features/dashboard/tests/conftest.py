"""Test fixtures for the dashboard module.

The sample data covers three months across two quarters:

| month   | store | incoming | approved | trx | gmv       |
|---------|-------|----------|----------|-----|-----------|
| 2025-01 | S1    | 100      | 60       | 40  | 4,000,000 |
| 2025-01 | S2    | 50       | 20       | 10  | 1,000,000 |
| 2025-02 | S1    | 80       | 50       | 30  | 3,000,000 |
| 2025-02 | S2    | 0        | 0        | 0   | 0         |
| 2025-04 | S3    | 20       | 10       | 5   | 500,000   |
"""

from collections.abc import Callable
from decimal import Decimal
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.features.dashboard.config import DashboardConfig, SortDirection, ThresholdPair
from app.features.dashboard.deps import get_dashboard_service
from app.features.dashboard.schemas import RawRecord
from app.features.dashboard.service import DashboardService
from app.features.dashboard.source import StaticRecordSource
from app.main import app


def _row(
    month: str,
    store_id: str,
    name: str | None,
    incoming: Any,
    approved: Any,
    trx: Any,
    gmv: Any,
) -> dict[str, Any]:
    return {
        "application_month": month,
        "dealer_code": store_id,
        "submerchant": name,
        "net_incoming": incoming,
        "approved": approved,
        "trx_settled": trx,
        "gmv": gmv,
    }


@pytest.fixture
def source_rows() -> list[dict[str, Any]]:
    """Raw source rows as the record source returns them."""
    return [
        _row("2025-01-15", "S1", "ABC Mart", 100, 60, 40, 4000000),
        _row("2025-01-20", "S2", "Beta Store", 50, 20, 10, 1000000),
        _row("2025-02-10", "S1", "ABC Mart", 80, 50, 30, 3000000),
        _row("2025-02-12", "S2", "Beta Store", 0, 0, 0, 0),
        _row("2025-04-03", "S3", "Gamma", 20, 10, 5, "500000.00"),
    ]


@pytest.fixture
def make_row() -> Callable[..., dict[str, Any]]:
    """Factory for a single raw source row."""

    def factory(
        month: str = "2025-01-01",
        store_id: str = "S1",
        name: str | None = "Store 1",
        incoming: Any = 0,
        approved: Any = 0,
        trx: Any = 0,
        gmv: Any = 0,
    ) -> dict[str, Any]:
        return _row(month, store_id, name, incoming, approved, trx, gmv)

    return factory


@pytest.fixture
def make_record() -> Callable[..., RawRecord]:
    """Factory for a normalized record."""

    def factory(
        month: str = "2025-01",
        store_id: str = "S1",
        store_name: str | None = None,
        incoming: int = 0,
        approved: int = 0,
        trx: int = 0,
        gmv: int | str = 0,
    ) -> RawRecord:
        return RawRecord(
            month=month,
            store_id=store_id,
            store_name=store_name,
            incoming=incoming,
            approved=approved,
            settled_transactions=trx,
            gmv=Decimal(str(gmv)),
        )

    return factory


@pytest.fixture
def dashboard_config() -> DashboardConfig:
    """Dashboard configuration with the default thresholds."""
    return DashboardConfig(
        source_table="KVVN_SF_FRT_Store_Level",
        refresh_interval_seconds=300.0,
        approval_thresholds=ThresholdPair(60.0, 50.0),
        conversion_thresholds=ThresholdPair(40.0, 30.0),
        store_penetration_thresholds=ThresholdPair(70.0, 50.0),
        default_sort_key="total_trx",
        default_sort_direction=SortDirection.DESC,
        merchant_name="FRT",
        merchant_full_name="FPT Retail",
    )


@pytest.fixture
async def dashboard_service(
    source_rows: list[dict[str, Any]],
    dashboard_config: DashboardConfig,
):
    """Dashboard service over the sample rows, already refreshed."""
    service = DashboardService(StaticRecordSource(source_rows), dashboard_config)
    await service.refresh()
    yield service
    await service.close()


@pytest.fixture
async def client(dashboard_service: DashboardService):
    """Async HTTP client with the dashboard service dependency overridden."""
    app.dependency_overrides[get_dashboard_service] = lambda: dashboard_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
