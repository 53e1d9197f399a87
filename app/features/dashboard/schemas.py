"""Pydantic schemas for the store performance dashboard.

Holds the normalized ingest row (``RawRecord``), the trend and badge enums
shared by the core, and the JSON payloads served to the dashboard front end.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.features.dashboard.config import SortDirection

MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

# =============================================================================
# Enums
# =============================================================================


class Trend(str, Enum):
    """Direction of change between two consecutive periods."""

    FLAT = "flat"
    UP = "up"
    DOWN = "down"


class RateStatus(str, Enum):
    """Badge classification of a rate against its threshold pair."""

    GOOD = "good"
    WARN = "warn"
    BAD = "bad"
    UNDEFINED = "undefined"


# =============================================================================
# Ingest Schemas
# =============================================================================


class RawRecord(BaseModel):
    """One store's activity in one month, after normalization.

    Null, missing and unparseable numeric source fields have already been
    coerced to zero by the normalization step.
    """

    model_config = ConfigDict(frozen=True)

    month: str = Field(
        ...,
        pattern=MONTH_KEY_PATTERN,
        description="Calendar month key (YYYY-MM). Day-of-month is dropped at ingestion.",
    )
    store_id: str = Field(..., min_length=1, description="Unique store identifier (dealer code)")
    store_name: str | None = Field(None, description="Store display name, if the row carries one")
    incoming: int = Field(0, ge=0, description="Applications submitted")
    approved: int = Field(0, ge=0, description="Applications approved")
    settled_transactions: int = Field(0, ge=0, description="Approved applications settled")
    gmv: Decimal = Field(Decimal("0"), ge=0, description="Gross merchandise value of settled trx")


class StoreDirectoryEntry(BaseModel):
    """Distinct store from the directory scan."""

    model_config = ConfigDict(frozen=True)

    store_id: str = Field(..., min_length=1, description="Unique store identifier")
    store_name: str = Field(..., description="Store display name (falls back to the id)")


# =============================================================================
# Response Schemas
# =============================================================================


class RateCell(BaseModel):
    """A percentage value with its badge classification.

    ``value`` is null when the rate's denominator is zero ("no data").
    """

    value: float | None = Field(None, description="Rate in percent, null when undefined")
    status: RateStatus = Field(..., description="Badge classification against thresholds")
    display: str = Field(..., description="Badge text, e.g. '53%' or '-'")


class PeriodSummary(BaseModel):
    """Metrics for one month or one quarter column."""

    period: str = Field(..., description="Month key (YYYY-MM) or quarter key (YYYY-Qn)")
    label: str = Field(..., description="Column header, e.g. 'Jan 25', 'Q1' or 'Q1 25'")
    quarter: str = Field(..., description="Quarter tag the period belongs to")
    total_stores: int = Field(..., ge=0, description="Distinct stores present")
    stores_with_sf: int = Field(..., ge=0, description="Stores with Finance+ enabled")
    stores_with_incoming: int = Field(..., ge=0, description="Stores with incoming > 0")
    stores_with_trx: int = Field(..., ge=0, description="Stores with settled trx > 0")
    incoming: int = Field(..., ge=0)
    approved: int = Field(..., ge=0)
    trx: int = Field(..., ge=0)
    gmv: Decimal = Field(..., ge=0)
    aov: Decimal | None = Field(None, description="GMV per settled trx, null when no trx")
    incoming_store_share: float | None = Field(
        None, description="stores_with_incoming / total_stores in percent"
    )
    incoming_display: str = Field(..., description="e.g. '12,345'")
    trx_display: str
    gmv_display: str = Field(..., description="Compact currency, e.g. '4.0M'")
    aov_display: str
    incoming_store_share_display: str
    approval_rate: RateCell
    conversion_rate: RateCell
    store_penetration: RateCell
    trends: dict[str, Trend] = Field(
        default_factory=dict,
        description="Direction vs the previous period, keyed by metric name",
    )


class TotalsSummary(BaseModel):
    """Year-to-date totals over every loaded month."""

    incoming: int = Field(..., ge=0)
    approved: int = Field(..., ge=0)
    trx: int = Field(..., ge=0)
    gmv: Decimal = Field(..., ge=0)
    aov: Decimal | None = None
    incoming_display: str
    trx_display: str
    gmv_display: str
    aov_display: str
    approval_rate: RateCell
    conversion_rate: RateCell
    latest_total_stores: int | None = Field(
        None, description="Total stores in the most recent month"
    )


class SummaryResponse(BaseModel):
    """Monthly, quarterly and YTD overview."""

    merchant_name: str
    merchant_full_name: str
    months: list[PeriodSummary]
    quarters: list[PeriodSummary]
    totals: TotalsSummary
    last_updated: datetime | None = None
    is_refreshing: bool = False
    error: str | None = Field(None, description="Message of the last failed refresh, if any")


class StoreMonthCell(BaseModel):
    """One store's figures for one month."""

    month: str
    has_data: bool = Field(..., description="False when the store has no row for this month")
    incoming: int = 0
    approved: int = 0
    trx: int = 0
    gmv: Decimal = Decimal("0")
    gmv_display: str = Field("-", description="'-' when the month has no GMV")
    approval_rate: RateCell
    conversion_rate: RateCell
    incoming_trend: Trend | None = Field(None, description="Null when the month has no record")
    trx_trend: Trend | None = None


class StoreRow(BaseModel):
    """A row of the per-store table."""

    store_id: str
    store_name: str
    total_incoming: int
    total_approved: int
    total_trx: int
    total_gmv: Decimal
    total_trx_display: str
    total_gmv_display: str
    avg_approval: RateCell
    avg_conversion: RateCell
    trx_series: list[int] = Field(
        default_factory=list, description="Settled trx per known month (sparkline data)"
    )
    months: list[StoreMonthCell] = Field(default_factory=list)


class StoreTableResponse(BaseModel):
    """Filtered and sorted per-store table."""

    items: list[StoreRow]
    total_items: int = Field(..., ge=0, description="Stores before filtering")
    query: str = ""
    sort_key: str
    direction: SortDirection
    months: list[str] = Field(default_factory=list, description="Known month keys, ascending")


class RefreshResponse(BaseModel):
    """Outcome of a successful manual refresh.

    Failed refreshes are reported as problem responses instead.
    """

    last_updated: datetime
    record_count: int = Field(..., ge=0, description="Source rows ingested")
    month_count: int = Field(..., ge=0)
    store_count: int = Field(..., ge=0)
