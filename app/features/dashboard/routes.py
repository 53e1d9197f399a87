"""API routes for the store performance dashboard.

These endpoints serve the monthly/quarterly overview, the per-store table
and a manual refresh trigger.
"""

from fastapi import APIRouter, Depends, Query

from app.core.logging import get_logger
from app.features.dashboard.config import SortDirection
from app.features.dashboard.deps import get_dashboard_service
from app.features.dashboard.schemas import (
    RefreshResponse,
    StoreRow,
    StoreTableResponse,
    SummaryResponse,
)
from app.features.dashboard.service import DashboardService

logger = get_logger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


# =============================================================================
# Overview
# =============================================================================


@router.get(
    "/summary",
    response_model=SummaryResponse,
    summary="Monthly, quarterly and YTD overview",
    description="""
Overview of every loaded month, the quarters they roll up into, and totals.

**Per period**:
- Store counts (total, with incoming, with settled trx)
- Incoming, approved, settled trx, GMV, AOV
- Approval %, conversion % and store penetration % with badge status
- Trend vs the previous period for counts, GMV and AOV

**Quarters**: sums are additive; total stores is the quarter's last month;
stores with incoming/trx are the rounded monthly mean.

If the last refresh failed, the previous data is returned with `error` set.
""",
)
async def get_summary(
    service: DashboardService = Depends(get_dashboard_service),
) -> SummaryResponse:
    """Return the dashboard overview.

    Args:
        service: Dashboard service.

    Returns:
        Overview of the current snapshot.
    """
    return service.summary()


# =============================================================================
# Store table
# =============================================================================


@router.get(
    "/stores",
    response_model=StoreTableResponse,
    summary="Filtered and sorted store table",
    description="""
Per-store totals, averages and monthly cells.

**Filtering**: `query` matches store id or name (case-insensitive substring).

**Sorting**: `sort_key` is any store field (`total_trx`, `total_gmv`,
`avg_approval`, ...) or a month field such as `2025-01_trx`
(suffixes: incoming, trx, gmv, appr, conv). Missing values sort as 0.

**Header clicks**: pass the clicked column as `toggle` together with the
current `sort_key`/`direction`. The same column flips direction, another
column starts descending. The response carries the resulting sort state.
""",
)
async def get_stores(
    query: str = Query("", max_length=100, description="Store id or name substring."),
    sort_key: str | None = Query(None, description="Active sort field."),
    direction: SortDirection | None = Query(None, description="Active sort direction."),
    toggle: str | None = Query(None, description="Column header that was clicked."),
    service: DashboardService = Depends(get_dashboard_service),
) -> StoreTableResponse:
    """Return the store table.

    Args:
        query: Filter text.
        sort_key: Active sort field (configuration default when omitted).
        direction: Active sort direction (configuration default when omitted).
        toggle: Clicked column, applied on top of the active sort.
        service: Dashboard service.

    Returns:
        Filtered, sorted store rows.
    """
    return service.store_table(
        query=query,
        sort_key=sort_key,
        direction=direction,
        toggle=toggle,
    )


@router.get(
    "/stores/{store_id}",
    response_model=StoreRow,
    summary="Single store row",
)
async def get_store(
    store_id: str,
    service: DashboardService = Depends(get_dashboard_service),
) -> StoreRow:
    """Return one store's row.

    Args:
        store_id: Store identifier (dealer code).
        service: Dashboard service.

    Returns:
        The store's totals and monthly cells.
    """
    return service.store_detail(store_id)


# =============================================================================
# Refresh
# =============================================================================


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Refresh dashboard data now",
    description="""
Pull both source scans and rebuild every aggregate.

Joins a refresh that is already running instead of starting another.
On failure the previous data is kept and a 502 problem response is returned.
""",
)
async def refresh(
    service: DashboardService = Depends(get_dashboard_service),
) -> RefreshResponse:
    """Trigger a refresh cycle.

    Args:
        service: Dashboard service.

    Returns:
        Outcome of the completed cycle.
    """
    logger.info("dashboard.manual_refresh_requested")
    snapshot = await service.refresh()
    return service.refresh_response(snapshot)
