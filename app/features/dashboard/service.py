"""Service layer for the store performance dashboard.

Owns the refresh cycle and the current snapshot:
- both source scans run concurrently; the cycle completes only when both do
- any failure aborts the cycle, keeps the previous snapshot and records the
  error message
- a refresh requested while one is in flight joins the in-flight one
- after ``close()`` nothing mutates state, even if a response still arrives

CRITICAL: The snapshot is replaced as a whole; it is never patched in place.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.core.exceptions import (
    DashboardError,
    DataFetchError,
    NotFoundError,
    ServiceUnavailableError,
)
from app.core.logging import get_logger, refresh_scope
from app.features.dashboard.aggregation import MonthlyAggregate, aggregate_records
from app.features.dashboard.config import DashboardConfig, SortDirection
from app.features.dashboard.metrics import (
    ProcessedStore,
    QuarterlyAggregate,
    Totals,
    compute_totals,
    process_stores,
    roll_up_quarters,
)
from app.features.dashboard.normalize import normalize_directory, normalize_rows
from app.features.dashboard.schemas import (
    RefreshResponse,
    StoreRow,
    StoreTableResponse,
    SummaryResponse,
)
from app.features.dashboard.source import RecordSource
from app.features.dashboard.table import SortState, query_store_table
from app.features.dashboard.views import build_store_row, build_summary

logger = get_logger(__name__)


@dataclass(frozen=True)
class DashboardSnapshot:
    """Every aggregate produced by one successful refresh cycle.

    Attributes:
        months: Monthly aggregates, ascending.
        quarters: Quarterly aggregates, ascending and gapless.
        totals: Sums over all loaded months.
        stores: Processed stores in directory order (unsorted).
        record_count: Normalized records folded into this snapshot.
        loaded_at: When the cycle completed.
    """

    months: tuple[MonthlyAggregate, ...]
    quarters: tuple[QuarterlyAggregate, ...]
    totals: Totals
    stores: tuple[ProcessedStore, ...]
    record_count: int
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def month_keys(self) -> list[str]:
        return [m.month for m in self.months]

    def find_store(self, store_id: str) -> ProcessedStore | None:
        for store in self.stores:
            if store.store_id == store_id:
                return store
        return None


def build_snapshot(
    record_rows: Sequence[Mapping[str, Any]],
    directory_rows: Sequence[Mapping[str, Any]],
    config: DashboardConfig,
) -> DashboardSnapshot:
    """Run normalization, aggregation and derived metrics on raw rows.

    Args:
        record_rows: Rows from the bulk record scan.
        directory_rows: Rows from the store directory scan.
        config: Dashboard configuration.

    Returns:
        A complete snapshot.

    Raises:
        MalformedRecordError: In strict mode, if a row is malformed.
    """
    records = normalize_rows(record_rows, strict=config.strict_validation)
    directory = normalize_directory(directory_rows)
    result = aggregate_records(records)

    return DashboardSnapshot(
        months=result.months,
        quarters=tuple(roll_up_quarters(result.months)),
        totals=compute_totals(result.months),
        stores=tuple(process_stores(result, directory)),
        record_count=result.records_visited,
    )


class DashboardService:
    """Service holding the dashboard snapshot and running refresh cycles."""

    def __init__(self, source: RecordSource, config: DashboardConfig) -> None:
        """Initialize the dashboard service.

        Args:
            source: Record source to pull rows from.
            config: Injected dashboard configuration.
        """
        self.source = source
        self.config = config
        self._snapshot: DashboardSnapshot | None = None
        self._last_error: str | None = None
        self._inflight: asyncio.Task[DashboardSnapshot] | None = None
        self._auto_refresh: asyncio.Task[None] | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> DashboardSnapshot | None:
        return self._snapshot

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def require_snapshot(self) -> DashboardSnapshot:
        """Return the current snapshot.

        Raises:
            ServiceUnavailableError: If no refresh has succeeded yet.
        """
        if self._snapshot is None:
            detail = f" Last error: {self._last_error}" if self._last_error else ""
            raise ServiceUnavailableError(f"Dashboard data has not been loaded yet.{detail}")
        return self._snapshot

    # -------------------------------------------------------------------------
    # Refresh cycle
    # -------------------------------------------------------------------------

    async def refresh(self) -> DashboardSnapshot:
        """Run a refresh cycle, or join the one already in flight.

        Returns:
            The snapshot produced by the cycle.

        Raises:
            DataFetchError: If either source scan fails.
            MalformedRecordError: In strict mode, if a row is malformed.
            ServiceUnavailableError: If the service has been closed.
        """
        if self._closed:
            raise ServiceUnavailableError("Dashboard service is shut down")

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._run_cycle())
        else:
            logger.debug("dashboard.refresh_joined")

        # Shield so a cancelled caller does not cancel the shared cycle
        return await asyncio.shield(self._inflight)

    async def _run_cycle(self) -> DashboardSnapshot:
        with refresh_scope():
            logger.info("dashboard.refresh_started", table=self.config.source_table)
            try:
                record_rows, directory_rows = await self._fetch_both()
                snapshot = build_snapshot(record_rows, directory_rows, self.config)
            except DashboardError as e:
                self._record_failure(e)
                raise
            except Exception as e:
                # Unexpected source failure; report it as a fetch error
                error = DataFetchError(f"Record source failed: {e}")
                self._record_failure(error)
                raise error from e

            if self._closed:
                logger.info("dashboard.refresh_discarded", reason="service_closed")
                return snapshot

            self._snapshot = snapshot
            self._last_error = None
            logger.info(
                "dashboard.refresh_completed",
                record_count=snapshot.record_count,
                month_count=len(snapshot.months),
                store_count=len(snapshot.stores),
            )
            return snapshot

    async def _fetch_both(
        self,
    ) -> tuple[list[Mapping[str, Any]], list[Mapping[str, Any]]]:
        records_task = asyncio.create_task(self.source.fetch_records())
        directory_task = asyncio.create_task(self.source.fetch_store_directory())
        try:
            record_rows, directory_rows = await asyncio.gather(records_task, directory_task)
        except BaseException:
            # First error wins; the other scan's result is discarded
            for task in (records_task, directory_task):
                task.cancel()
            await asyncio.gather(records_task, directory_task, return_exceptions=True)
            raise
        return list(record_rows), list(directory_rows)

    def _record_failure(self, error: DashboardError) -> None:
        if self._closed:
            return
        self._last_error = error.message
        logger.error(
            "dashboard.refresh_failed",
            error=error.message,
            error_type=type(error).__name__,
            kept_previous=self._snapshot is not None,
        )

    # -------------------------------------------------------------------------
    # Auto refresh and teardown
    # -------------------------------------------------------------------------

    def start_auto_refresh(self) -> None:
        """Start the periodic refresh loop (idempotent)."""
        if self._closed or (self._auto_refresh is not None and not self._auto_refresh.done()):
            return
        self._auto_refresh = asyncio.create_task(self._auto_refresh_loop())
        logger.info(
            "dashboard.auto_refresh_started",
            interval_seconds=self.config.refresh_interval_seconds,
        )

    async def _auto_refresh_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.config.refresh_interval_seconds)
            if self.is_refreshing:
                logger.debug("dashboard.auto_refresh_skipped", reason="refresh_in_flight")
                continue
            try:
                await self.refresh()
            except DashboardError:
                # Already recorded and logged by the cycle; try again next tick
                continue

    async def close(self) -> None:
        """Stop auto refresh and abandon any in-flight cycle."""
        self._closed = True
        for task in (self._auto_refresh, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, DashboardError):
                    await task
        self._auto_refresh = None
        self._inflight = None
        logger.info("dashboard.service_closed")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def summary(self) -> SummaryResponse:
        """Monthly, quarterly and YTD overview of the current snapshot."""
        snapshot = self.require_snapshot()
        return build_summary(
            snapshot.months,
            snapshot.quarters,
            snapshot.totals,
            self.config,
            last_updated=snapshot.loaded_at,
            is_refreshing=self.is_refreshing,
            error=self._last_error,
        )

    def default_sort(self) -> SortState:
        return SortState(
            key=self.config.default_sort_key,
            direction=self.config.default_sort_direction,
        )

    def store_table(
        self,
        query: str | None = None,
        sort_key: str | None = None,
        direction: SortDirection | None = None,
        toggle: str | None = None,
    ) -> StoreTableResponse:
        """Filtered and sorted store table.

        Args:
            query: Case-insensitive substring on store id or name.
            sort_key: Active sort field (defaults to configuration).
            direction: Active sort direction (defaults to configuration).
            toggle: Column the user clicked; applied on top of the active sort.

        Returns:
            Table rows plus the sort state to send back on the next request.
        """
        snapshot = self.require_snapshot()
        default = self.default_sort()
        state = SortState(
            key=sort_key or default.key,
            direction=direction or default.direction,
        )
        if toggle:
            state = state.toggle(toggle)

        month_keys = snapshot.month_keys
        rows = query_store_table(snapshot.stores, query, state)

        return StoreTableResponse(
            items=[build_store_row(store, month_keys, self.config) for store in rows],
            total_items=len(snapshot.stores),
            query=query or "",
            sort_key=state.key,
            direction=state.direction,
            months=month_keys,
        )

    def store_detail(self, store_id: str) -> StoreRow:
        """One store's row.

        Raises:
            NotFoundError: If the store is unknown.
        """
        snapshot = self.require_snapshot()
        store = snapshot.find_store(store_id)
        if store is None:
            raise NotFoundError(
                f"Store not found: {store_id}. Use GET /dashboard/stores to list valid ids.",
                details={"store_id": store_id},
            )
        return build_store_row(store, snapshot.month_keys, self.config)

    def refresh_response(self, snapshot: DashboardSnapshot) -> RefreshResponse:
        return RefreshResponse(
            last_updated=snapshot.loaded_at,
            record_count=snapshot.record_count,
            month_count=len(snapshot.months),
            store_count=len(snapshot.stores),
        )
