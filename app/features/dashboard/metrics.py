"""Derived metrics: rates, quarterly roll-ups, YTD totals and per-store views.

Rate formulas (same at every granularity):
- approval rate: approved / incoming * 100
- conversion rate: trx / incoming * 100
- store penetration: stores_with_trx / total_stores * 100
- average order value (AOV): gmv / trx

CRITICAL: A zero denominator yields None ("no data"); no NaN or inf ever
leaves this module.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from app.features.dashboard.aggregation import (
    AggregationResult,
    MonthlyAggregate,
    StoreMonthMetrics,
    StoreRecord,
)
from app.features.dashboard.schemas import StoreDirectoryEntry

# Flattened per-month field suffixes on ProcessedStore
MONTH_FIELD_SUFFIXES = ("incoming", "trx", "gmv", "appr", "conv")


# =============================================================================
# Rate formulas
# =============================================================================


def percentage(numerator: float | int | None, denominator: float | int | None) -> float | None:
    """numerator / denominator * 100, or None when undefined."""
    if numerator is None or not denominator:
        return None
    value = float(numerator) / float(denominator) * 100.0
    return value if math.isfinite(value) else None


def approval_rate(approved: int, incoming: int) -> float | None:
    return percentage(approved, incoming)


def conversion_rate(trx: int, incoming: int) -> float | None:
    return percentage(trx, incoming)


def store_penetration(stores_with_trx: int, total_stores: int) -> float | None:
    return percentage(stores_with_trx, total_stores)


def average_order_value(gmv: Decimal, trx: int) -> Decimal | None:
    """GMV per settled transaction, None when there are no transactions."""
    if not trx:
        return None
    return gmv / Decimal(trx)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return math.floor(value + 0.5)


# =============================================================================
# Period aggregates
# =============================================================================


class PeriodFigures(Protocol):
    """Anything carrying the four summed metrics."""

    incoming: int
    approved: int
    trx: int
    gmv: Decimal


@dataclass(frozen=True)
class QuarterlyAggregate:
    """One quarter folded from its 1-3 monthly aggregates.

    ``total_stores``/``stores_with_sf`` are the last month's snapshot;
    ``stores_with_incoming``/``stores_with_trx`` are the rounded mean of the
    monthly counts. The mean is an approximation of distinct active stores
    across the quarter, kept for comparability with historical reports.
    """

    year: str
    quarter: str
    label: str
    months: tuple[str, ...]
    incoming: int
    approved: int
    trx: int
    gmv: Decimal
    total_stores: int
    stores_with_sf: int
    stores_with_incoming: int
    stores_with_trx: int

    @property
    def key(self) -> str:
        """Chronologically sortable key, e.g. ``2025-Q1``."""
        return f"{self.year}-{self.quarter}"


@dataclass(frozen=True)
class Totals:
    """Sums over every loaded month (labelled YTD on the dashboard)."""

    incoming: int = 0
    approved: int = 0
    trx: int = 0
    gmv: Decimal = Decimal("0")
    latest_total_stores: int | None = None


@dataclass(frozen=True)
class PeriodRates:
    """Derived rates for one period; None marks "no data"."""

    approval: float | None
    conversion: float | None
    store_penetration: float | None
    aov: Decimal | None
    incoming_store_share: float | None


def period_rates(
    figures: PeriodFigures,
    *,
    total_stores: int | None = None,
    stores_with_trx: int | None = None,
    stores_with_incoming: int | None = None,
) -> PeriodRates:
    """Compute every rate for a period.

    Args:
        figures: Summed metrics of the period.
        total_stores: Store count of the period, if the period has one.
        stores_with_trx: Stores with settled trx.
        stores_with_incoming: Stores with incoming.

    Returns:
        Rates for the period.
    """
    return PeriodRates(
        approval=approval_rate(figures.approved, figures.incoming),
        conversion=conversion_rate(figures.trx, figures.incoming),
        store_penetration=(
            store_penetration(stores_with_trx, total_stores)
            if stores_with_trx is not None and total_stores is not None
            else None
        ),
        aov=average_order_value(figures.gmv, figures.trx),
        incoming_store_share=(
            percentage(stores_with_incoming, total_stores)
            if stores_with_incoming is not None and total_stores is not None
            else None
        ),
    )


def roll_up_quarters(months: Sequence[MonthlyAggregate]) -> list[QuarterlyAggregate]:
    """Fold monthly aggregates into calendar quarters.

    Months group by (year, quarter tag), so a quarter holds 1-3 months and
    quarters come out in chronological order. Quarters with no months are
    skipped. Labels are the bare tag (``Q1``) unless the data spans several
    years, then the year is appended (``Q1 25``).

    Args:
        months: Monthly aggregates sorted ascending by month key.

    Returns:
        Quarterly aggregates in chronological order.
    """
    groups: dict[tuple[str, str], list[MonthlyAggregate]] = {}
    for month in months:
        groups.setdefault((month.month[:4], month.quarter), []).append(month)
    multi_year = len({year for year, _ in groups}) > 1

    quarters: list[QuarterlyAggregate] = []
    for (year, tag), members in sorted(groups.items()):
        last = members[-1]
        quarters.append(
            QuarterlyAggregate(
                year=year,
                quarter=tag,
                label=f"{tag} {year[2:]}" if multi_year else tag,
                months=tuple(m.month for m in members),
                incoming=sum(m.incoming for m in members),
                approved=sum(m.approved for m in members),
                trx=sum(m.trx for m in members),
                gmv=sum((m.gmv for m in members), Decimal("0")),
                total_stores=last.total_stores,
                stores_with_sf=last.stores_with_sf,
                stores_with_incoming=round_half_up(
                    sum(m.stores_with_incoming for m in members) / len(members)
                ),
                stores_with_trx=round_half_up(
                    sum(m.stores_with_trx for m in members) / len(members)
                ),
            )
        )
    return quarters


def compute_totals(months: Sequence[MonthlyAggregate]) -> Totals:
    """Sum the four metrics over all loaded months."""
    return Totals(
        incoming=sum(m.incoming for m in months),
        approved=sum(m.approved for m in months),
        trx=sum(m.trx for m in months),
        gmv=sum((m.gmv for m in months), Decimal("0")),
        latest_total_stores=months[-1].total_stores if months else None,
    )


# =============================================================================
# Per-store view
# =============================================================================


def month_field(month: str, suffix: str) -> str:
    """Name of a flattened per-month field, e.g. ``2025-01_trx``."""
    return f"{month}_{suffix}"


@dataclass(frozen=True)
class ProcessedStore:
    """A store enriched with totals, averages and flattened month fields.

    ``avg_approval``/``avg_conversion`` are 0 (not None) when the store has no
    incoming. Flattened month fields are 0 both for absent months and for
    months with zero incoming; ``months`` keeps the sparse original.
    """

    store_id: str
    store_name: str
    months: Mapping[str, StoreMonthMetrics]
    total_incoming: int
    total_approved: int
    total_trx: int
    total_gmv: Decimal
    avg_approval: float
    avg_conversion: float
    month_fields: Mapping[str, float | int | Decimal] = field(default_factory=dict)

    def value_of(self, key: str) -> float | int | Decimal | None:
        """Look up a sortable field by name (attribute or flattened month field)."""
        if key in self.month_fields:
            return self.month_fields[key]
        value = getattr(self, key, None)
        if isinstance(value, (int, float, Decimal)):
            return value
        return None

    def trx_series(self, month_keys: Iterable[str]) -> list[int]:
        """Settled trx per month, 0 for months without a record."""
        return [self.months[m].trx if m in self.months else 0 for m in month_keys]


def process_store(store: StoreRecord, month_keys: Sequence[str]) -> ProcessedStore:
    """Enrich one store record.

    Args:
        store: Store with its sparse month buckets.
        month_keys: Every known month key, ascending.

    Returns:
        The processed store.
    """
    buckets = store.months.values()
    total_incoming = sum(b.incoming for b in buckets)
    total_approved = sum(b.approved for b in buckets)
    total_trx = sum(b.trx for b in buckets)
    total_gmv = sum((b.gmv for b in buckets), Decimal("0"))

    month_fields: dict[str, float | int | Decimal] = {}
    for month in month_keys:
        bucket = store.months.get(month, StoreMonthMetrics())
        month_fields[month_field(month, "incoming")] = bucket.incoming
        month_fields[month_field(month, "trx")] = bucket.trx
        month_fields[month_field(month, "gmv")] = bucket.gmv
        month_fields[month_field(month, "appr")] = (
            approval_rate(bucket.approved, bucket.incoming) or 0.0
        )
        month_fields[month_field(month, "conv")] = (
            conversion_rate(bucket.trx, bucket.incoming) or 0.0
        )

    return ProcessedStore(
        store_id=store.store_id,
        store_name=store.store_name,
        months=store.months,
        total_incoming=total_incoming,
        total_approved=total_approved,
        total_trx=total_trx,
        total_gmv=total_gmv,
        avg_approval=approval_rate(total_approved, total_incoming) or 0.0,
        avg_conversion=conversion_rate(total_trx, total_incoming) or 0.0,
        month_fields=month_fields,
    )


def process_stores(
    result: AggregationResult,
    directory: Sequence[StoreDirectoryEntry] = (),
) -> list[ProcessedStore]:
    """Merge the store directory with aggregated store records.

    Directory stores come first in directory order and take their directory
    name; a directory store without records gets zero totals. Stores that
    only appear in records follow in first-seen order.

    Args:
        result: Aggregation output.
        directory: Distinct stores from the directory scan.

    Returns:
        Processed stores, unsorted.
    """
    month_keys = result.month_keys
    processed: list[ProcessedStore] = []
    seen: set[str] = set()

    for entry in directory:
        record = result.stores.get(entry.store_id)
        store = StoreRecord(
            store_id=entry.store_id,
            store_name=entry.store_name,
            months=record.months if record is not None else {},
        )
        processed.append(process_store(store, month_keys))
        seen.add(entry.store_id)

    for store_id, record in result.stores.items():
        if store_id not in seen:
            processed.append(process_store(record, month_keys))

    return processed
