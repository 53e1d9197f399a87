"""Store performance dashboard: aggregation, derived metrics and store table.

Folds per-store monthly rows into monthly, quarterly and YTD summaries,
derives approval/conversion/penetration rates, and serves a sortable,
searchable store table.
"""

from app.features.dashboard.config import DashboardConfig, SortDirection, ThresholdPair
from app.features.dashboard.schemas import RateStatus, RawRecord, Trend

__all__ = [
    "DashboardConfig",
    "RateStatus",
    "RawRecord",
    "SortDirection",
    "ThresholdPair",
    "Trend",
]
