"""Payload builders turning snapshot aggregates into response schemas.

Each builder attaches the display extras the dashboard needs: rate badges
against the configured thresholds and trends against the previous period.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from app.features.dashboard.aggregation import MonthlyAggregate, StoreMonthMetrics
from app.features.dashboard.config import DashboardConfig, ThresholdPair
from app.features.dashboard.formatting import (
    format_badge_percent,
    format_count,
    format_currency,
    format_percent,
)
from app.features.dashboard.metrics import (
    ProcessedStore,
    QuarterlyAggregate,
    Totals,
    approval_rate,
    conversion_rate,
    period_rates,
)
from app.features.dashboard.schemas import (
    PeriodSummary,
    RateCell,
    StoreMonthCell,
    StoreRow,
    SummaryResponse,
    TotalsSummary,
    Trend,
)
from app.features.dashboard.trends import classify_rate, trend

# Period metrics that get a trend arrow on the summary tables
TRENDED_METRICS = (
    "total_stores",
    "stores_with_incoming",
    "stores_with_trx",
    "incoming",
    "trx",
    "gmv",
    "aov",
)


def rate_cell(value: float | None, thresholds: ThresholdPair) -> RateCell:
    """Wrap a rate with its badge status and text."""
    return RateCell(
        value=value,
        status=classify_rate(value, thresholds),
        display=format_badge_percent(value),
    )


def _period_summary(
    period: MonthlyAggregate | QuarterlyAggregate,
    previous: PeriodSummary | None,
    config: DashboardConfig,
) -> PeriodSummary:
    rates = period_rates(
        period,
        total_stores=period.total_stores,
        stores_with_trx=period.stores_with_trx,
        stores_with_incoming=period.stores_with_incoming,
    )
    key = period.month if isinstance(period, MonthlyAggregate) else period.key
    summary = PeriodSummary(
        period=key,
        label=period.label,
        quarter=period.quarter,
        total_stores=period.total_stores,
        stores_with_sf=period.stores_with_sf,
        stores_with_incoming=period.stores_with_incoming,
        stores_with_trx=period.stores_with_trx,
        incoming=period.incoming,
        approved=period.approved,
        trx=period.trx,
        gmv=period.gmv,
        aov=rates.aov,
        incoming_store_share=rates.incoming_store_share,
        incoming_display=format_count(period.incoming),
        trx_display=format_count(period.trx),
        gmv_display=format_currency(period.gmv),
        aov_display=format_currency(rates.aov),
        incoming_store_share_display=format_percent(rates.incoming_store_share),
        approval_rate=rate_cell(rates.approval, config.approval_thresholds),
        conversion_rate=rate_cell(rates.conversion, config.conversion_thresholds),
        store_penetration=rate_cell(
            rates.store_penetration, config.store_penetration_thresholds
        ),
    )
    summary.trends = {
        name: trend(
            getattr(summary, name),
            getattr(previous, name) if previous is not None else None,
        )
        for name in TRENDED_METRICS
    }
    return summary


def build_period_summaries(
    periods: Sequence[MonthlyAggregate | QuarterlyAggregate],
    config: DashboardConfig,
) -> list[PeriodSummary]:
    """Summaries for consecutive periods, each trended against its predecessor."""
    summaries: list[PeriodSummary] = []
    for period in periods:
        previous = summaries[-1] if summaries else None
        summaries.append(_period_summary(period, previous, config))
    return summaries


def build_totals(totals: Totals, config: DashboardConfig) -> TotalsSummary:
    rates = period_rates(totals)
    return TotalsSummary(
        incoming=totals.incoming,
        approved=totals.approved,
        trx=totals.trx,
        gmv=totals.gmv,
        aov=rates.aov,
        incoming_display=format_count(totals.incoming),
        trx_display=format_count(totals.trx),
        gmv_display=format_currency(totals.gmv),
        aov_display=format_currency(rates.aov),
        approval_rate=rate_cell(rates.approval, config.approval_thresholds),
        conversion_rate=rate_cell(rates.conversion, config.conversion_thresholds),
        latest_total_stores=totals.latest_total_stores,
    )


def build_summary(
    months: Sequence[MonthlyAggregate],
    quarters: Sequence[QuarterlyAggregate],
    totals: Totals,
    config: DashboardConfig,
    *,
    last_updated: datetime | None = None,
    is_refreshing: bool = False,
    error: str | None = None,
) -> SummaryResponse:
    """Overview payload: month and quarter columns plus YTD totals."""
    return SummaryResponse(
        merchant_name=config.merchant_name,
        merchant_full_name=config.merchant_full_name,
        months=build_period_summaries(months, config),
        quarters=build_period_summaries(quarters, config),
        totals=build_totals(totals, config),
        last_updated=last_updated,
        is_refreshing=is_refreshing,
        error=error,
    )


def _store_month_cell(
    month: str,
    bucket: StoreMonthMetrics | None,
    previous: StoreMonthMetrics | None,
    config: DashboardConfig,
) -> StoreMonthCell:
    # Cells show "no data" for zero incoming, unlike the flattened sort fields
    metrics = bucket or StoreMonthMetrics()
    # Absent months render "-" with no arrow
    incoming_trend: Trend | None = None
    trx_trend: Trend | None = None
    if bucket is not None:
        incoming_trend = trend(bucket.incoming, previous.incoming if previous else None)
        trx_trend = trend(bucket.trx, previous.trx if previous else None)
    approval = approval_rate(metrics.approved, metrics.incoming)
    conversion = conversion_rate(metrics.trx, metrics.incoming)
    return StoreMonthCell(
        month=month,
        has_data=bucket is not None,
        incoming=metrics.incoming,
        approved=metrics.approved,
        trx=metrics.trx,
        gmv=metrics.gmv,
        gmv_display=format_currency(metrics.gmv),
        approval_rate=rate_cell(approval, config.approval_thresholds),
        conversion_rate=rate_cell(conversion, config.conversion_thresholds),
        incoming_trend=incoming_trend,
        trx_trend=trx_trend,
    )


def build_store_row(
    store: ProcessedStore,
    month_keys: Sequence[str],
    config: DashboardConfig,
) -> StoreRow:
    """Table row for one store, with one cell per known month."""
    cells: list[StoreMonthCell] = []
    for index, month in enumerate(month_keys):
        previous = store.months.get(month_keys[index - 1]) if index > 0 else None
        cells.append(_store_month_cell(month, store.months.get(month), previous, config))

    return StoreRow(
        store_id=store.store_id,
        store_name=store.store_name,
        total_incoming=store.total_incoming,
        total_approved=store.total_approved,
        total_trx=store.total_trx,
        total_gmv=store.total_gmv,
        total_trx_display=format_count(store.total_trx),
        total_gmv_display=format_currency(store.total_gmv),
        avg_approval=rate_cell(store.avg_approval, config.approval_thresholds),
        avg_conversion=rate_cell(store.avg_conversion, config.conversion_thresholds),
        trx_series=store.trx_series(month_keys),
        months=cells,
    )
