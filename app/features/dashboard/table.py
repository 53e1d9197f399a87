"""Filtering and ordering of the per-store table."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from app.features.dashboard.config import SortDirection
from app.features.dashboard.metrics import ProcessedStore


@dataclass(frozen=True)
class SortState:
    """Active sort column and direction.

    Attributes:
        key: ProcessedStore field name (attribute or flattened month field).
        direction: Ascending or descending.
    """

    key: str
    direction: SortDirection = SortDirection.DESC

    def toggle(self, key: str) -> SortState:
        """Next state after a column header click.

        The active column flips direction; any other column starts descending.
        """
        if key == self.key:
            flipped = SortDirection.ASC if self.direction == SortDirection.DESC else SortDirection.DESC
            return SortState(key=key, direction=flipped)
        return SortState(key=key, direction=SortDirection.DESC)


def matches_query(store: ProcessedStore, query: str) -> bool:
    """Case-insensitive substring match on store id or name."""
    needle = query.lower()
    return needle in store.store_id.lower() or needle in store.store_name.lower()


def filter_stores(stores: Sequence[ProcessedStore], query: str | None) -> list[ProcessedStore]:
    """Keep stores whose id or name contains ``query``; empty matches all."""
    if not query:
        return list(stores)
    return [store for store in stores if matches_query(store, query)]


def _sort_value(store: ProcessedStore, key: str) -> Decimal:
    value = store.value_of(key)
    # Missing values compare as zero
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def sort_stores(stores: Sequence[ProcessedStore], state: SortState) -> list[ProcessedStore]:
    """Stable sort by one field; ties keep their input order in both directions.

    Args:
        stores: Stores to order.
        state: Sort key and direction.

    Returns:
        A new, ordered list.
    """
    return sorted(
        stores,
        key=lambda store: _sort_value(store, state.key),
        reverse=state.direction == SortDirection.DESC,
    )


def query_store_table(
    stores: Sequence[ProcessedStore],
    query: str | None,
    state: SortState,
) -> list[ProcessedStore]:
    """Filter then sort the store table."""
    return sort_stores(filter_stores(stores, query), state)
