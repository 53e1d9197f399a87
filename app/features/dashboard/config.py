"""Configuration value objects for the dashboard core.

The core never reads settings itself: a ``DashboardConfig`` is built once at
startup (see ``DashboardConfig.from_settings``) and passed into the service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from app.core.config import Settings


class SortDirection(str, Enum):
    """Direction of the store table ordering."""

    ASC = "asc"
    DESC = "desc"


class ThresholdPair(NamedTuple):
    """Descending [high, low] thresholds for a rate badge.

    Attributes:
        high: Rates at or above this are GOOD.
        low: Rates at or above this (and below high) are WARN; below is BAD.
    """

    high: float
    low: float


@dataclass(frozen=True)
class DashboardConfig:
    """Immutable configuration injected into the dashboard service.

    Attributes:
        source_table: Name of the tabular collection holding store rows.
        refresh_interval_seconds: Auto-refresh period.
        approval_thresholds: Badge thresholds for approval rate.
        conversion_thresholds: Badge thresholds for conversion rate.
        store_penetration_thresholds: Badge thresholds for store penetration.
        default_sort_key: Store table sort field on first load.
        default_sort_direction: Store table sort direction on first load.
        strict_validation: Reject malformed rows instead of zero-filling them.
        merchant_name: Short merchant name shown in the header.
        merchant_full_name: Long merchant name shown in the header.
    """

    source_table: str
    refresh_interval_seconds: float
    approval_thresholds: ThresholdPair
    conversion_thresholds: ThresholdPair
    store_penetration_thresholds: ThresholdPair
    default_sort_key: str = "total_trx"
    default_sort_direction: SortDirection = SortDirection.DESC
    strict_validation: bool = False
    merchant_name: str = field(default="")
    merchant_full_name: str = field(default="")

    @classmethod
    def from_settings(cls, settings: Settings) -> DashboardConfig:
        """Build the dashboard configuration from application settings.

        Args:
            settings: Loaded application settings.

        Returns:
            Frozen configuration snapshot.
        """
        return cls(
            source_table=settings.source_table,
            refresh_interval_seconds=settings.refresh_interval_seconds,
            approval_thresholds=ThresholdPair(*settings.approval_thresholds),
            conversion_thresholds=ThresholdPair(*settings.conversion_thresholds),
            store_penetration_thresholds=ThresholdPair(*settings.store_penetration_thresholds),
            default_sort_key=settings.default_sort_key,
            default_sort_direction=SortDirection(settings.default_sort_direction),
            strict_validation=settings.strict_validation,
            merchant_name=settings.merchant_name,
            merchant_full_name=settings.merchant_full_name,
        )
