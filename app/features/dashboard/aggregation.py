"""Aggregation engine: fold raw records into monthly and per-store buckets.

The fold visits every record exactly once and keeps two ordered-key arenas
(month key -> slot, store id -> slot) of mutable accumulators. Once the
pass is over the accumulators are frozen into immutable results, so nothing
outside this module ever sees a partially built aggregate.

Presence semantics:
- ``store_ids``: every store with at least one record in the month, even
  when all of its metrics are zero.
- ``incoming_store_ids``: stores with incoming > 0.
- ``trx_store_ids``: stores with settled transactions > 0.

Duplicate (store, month) records are additive everywhere.
"""

from __future__ import annotations

import calendar
import math
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, TypeVar

from app.features.dashboard.schemas import RawRecord


def quarter_for_month(month_key: str) -> str:
    """Quarter tag for a ``YYYY-MM`` key: ceil(month / 3) as Q1..Q4."""
    return f"Q{math.ceil(int(month_key[5:7]) / 3)}"


def label_for_month(month_key: str) -> str:
    """Short column label for a ``YYYY-MM`` key, e.g. ``2025-01`` -> ``Jan 25``."""
    return f"{calendar.month_abbr[int(month_key[5:7])]} {month_key[2:4]}"


# =============================================================================
# Immutable results
# =============================================================================


@dataclass(frozen=True)
class StoreMonthMetrics:
    """One store's metrics in one month.

    Attributes:
        incoming: Applications submitted.
        approved: Applications approved.
        trx: Settled transactions.
        gmv: Gross merchandise value.
    """

    incoming: int = 0
    approved: int = 0
    trx: int = 0
    gmv: Decimal = Decimal("0")

    def __add__(self, other: StoreMonthMetrics) -> StoreMonthMetrics:
        return StoreMonthMetrics(
            incoming=self.incoming + other.incoming,
            approved=self.approved + other.approved,
            trx=self.trx + other.trx,
            gmv=self.gmv + other.gmv,
        )

    @classmethod
    def from_record(cls, record: RawRecord) -> StoreMonthMetrics:
        return cls(
            incoming=record.incoming,
            approved=record.approved,
            trx=record.settled_transactions,
            gmv=record.gmv,
        )


@dataclass(frozen=True)
class MonthlyAggregate:
    """All stores' activity in one month.

    Attributes:
        month: ``YYYY-MM`` key.
        label: Short display label (``Jan 25``).
        quarter: Quarter tag (``Q1``..``Q4``).
        store_ids: Stores with any record this month.
        incoming_store_ids: Stores with incoming > 0.
        trx_store_ids: Stores with settled transactions > 0.
        incoming: Summed incoming.
        approved: Summed approved.
        trx: Summed settled transactions.
        gmv: Summed GMV.
    """

    month: str
    label: str
    quarter: str
    store_ids: frozenset[str]
    incoming_store_ids: frozenset[str]
    trx_store_ids: frozenset[str]
    incoming: int
    approved: int
    trx: int
    gmv: Decimal

    @property
    def total_stores(self) -> int:
        return len(self.store_ids)

    @property
    def stores_with_sf(self) -> int:
        # Every store present in the source table is Finance+ enabled.
        return len(self.store_ids)

    @property
    def stores_with_incoming(self) -> int:
        return len(self.incoming_store_ids)

    @property
    def stores_with_trx(self) -> int:
        return len(self.trx_store_ids)


@dataclass(frozen=True)
class StoreRecord:
    """A store and its sparse month -> metrics mapping.

    Months without a record for the store are absent, not zero-filled.
    """

    store_id: str
    store_name: str
    months: Mapping[str, StoreMonthMetrics]


@dataclass(frozen=True)
class AggregationResult:
    """Output of one aggregation pass.

    Attributes:
        months: Monthly aggregates sorted ascending by month key.
        stores: Store records keyed by store id, in first-seen order.
        records_visited: Number of records folded.
    """

    months: tuple[MonthlyAggregate, ...]
    stores: Mapping[str, StoreRecord]
    records_visited: int

    @property
    def month_keys(self) -> list[str]:
        return [m.month for m in self.months]


# =============================================================================
# Fold internals
# =============================================================================


@dataclass
class _MonthAccumulator:
    month: str
    store_ids: set[str] = field(default_factory=set)
    incoming_store_ids: set[str] = field(default_factory=set)
    trx_store_ids: set[str] = field(default_factory=set)
    incoming: int = 0
    approved: int = 0
    trx: int = 0
    gmv: Decimal = Decimal("0")

    def add(self, record: RawRecord) -> None:
        self.store_ids.add(record.store_id)
        if record.incoming > 0:
            self.incoming_store_ids.add(record.store_id)
        if record.settled_transactions > 0:
            self.trx_store_ids.add(record.store_id)
        self.incoming += record.incoming
        self.approved += record.approved
        self.trx += record.settled_transactions
        self.gmv += record.gmv

    def freeze(self) -> MonthlyAggregate:
        return MonthlyAggregate(
            month=self.month,
            label=label_for_month(self.month),
            quarter=quarter_for_month(self.month),
            store_ids=frozenset(self.store_ids),
            incoming_store_ids=frozenset(self.incoming_store_ids),
            trx_store_ids=frozenset(self.trx_store_ids),
            incoming=self.incoming,
            approved=self.approved,
            trx=self.trx,
            gmv=self.gmv,
        )


@dataclass
class _StoreAccumulator:
    store_id: str
    store_name: str | None = None
    months: dict[str, StoreMonthMetrics] = field(default_factory=dict)

    def add(self, record: RawRecord) -> None:
        # First-seen name wins
        if self.store_name is None and record.store_name:
            self.store_name = record.store_name
        metrics = StoreMonthMetrics.from_record(record)
        existing = self.months.get(record.month)
        self.months[record.month] = metrics if existing is None else existing + metrics

    def freeze(self) -> StoreRecord:
        return StoreRecord(
            store_id=self.store_id,
            store_name=self.store_name or self.store_id,
            months=dict(self.months),
        )


K = TypeVar("K")
V = TypeVar("V")


class KeyedArena(Generic[K, V]):
    """Ordered-key arena: maps a key to a slot index in a dense list.

    Slots are created on first sight of a key and keep insertion order.
    """

    def __init__(self, factory: Callable[[K], V]) -> None:
        self._factory = factory
        self._index: dict[K, int] = {}
        self._slots: list[V] = []

    def slot(self, key: K) -> V:
        """Return the slot for ``key``, creating it if needed."""
        position = self._index.get(key)
        if position is None:
            position = len(self._slots)
            self._index[key] = position
            self._slots.append(self._factory(key))
        return self._slots[position]

    def keys(self) -> list[K]:
        return list(self._index)

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[V]:
        return iter(self._slots)


# =============================================================================
# Public API
# =============================================================================


def aggregate_records(records: Iterable[RawRecord]) -> AggregationResult:
    """Fold records into monthly aggregates and per-store records.

    Args:
        records: Normalized records in any order.

    Returns:
        Months sorted ascending by key, stores keyed by id.
    """
    month_arena: KeyedArena[str, _MonthAccumulator] = KeyedArena(_MonthAccumulator)
    store_arena: KeyedArena[str, _StoreAccumulator] = KeyedArena(_StoreAccumulator)
    visited = 0

    for record in records:
        month_arena.slot(record.month).add(record)
        store_arena.slot(record.store_id).add(record)
        visited += 1

    # YYYY-MM keys sort chronologically as strings
    months = tuple(sorted((acc.freeze() for acc in month_arena), key=lambda m: m.month))
    stores = {acc.store_id: acc.freeze() for acc in store_arena}

    return AggregationResult(months=months, stores=stores, records_visited=visited)
