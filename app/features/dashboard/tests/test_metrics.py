"""Tests for the derived metrics calculator."""

import math
from decimal import Decimal

import pytest

from app.features.dashboard.aggregation import aggregate_records
from app.features.dashboard.metrics import (
    approval_rate,
    average_order_value,
    compute_totals,
    conversion_rate,
    percentage,
    period_rates,
    process_stores,
    roll_up_quarters,
    round_half_up,
    store_penetration,
)
from app.features.dashboard.schemas import StoreDirectoryEntry


class TestRateFormulas:
    """Tests for the rate formulas."""

    def test_approval_rate(self) -> None:
        """approved / incoming * 100."""
        assert approval_rate(80, 150) == pytest.approx(53.333, abs=0.001)

    def test_conversion_rate(self) -> None:
        """trx / incoming * 100."""
        assert conversion_rate(50, 150) == pytest.approx(33.333, abs=0.001)

    def test_store_penetration(self) -> None:
        """stores_with_trx / total_stores * 100."""
        assert store_penetration(3, 4) == 75.0

    def test_zero_denominator_is_undefined(self) -> None:
        """Zero incoming yields None, never NaN or infinity."""
        assert approval_rate(0, 0) is None
        assert conversion_rate(5, 0) is None
        assert store_penetration(0, 0) is None
        assert percentage(1, None) is None

    def test_zero_numerator_is_zero(self) -> None:
        """A defined rate can be zero."""
        assert approval_rate(0, 10) == 0.0

    def test_aov(self) -> None:
        """GMV per settled transaction."""
        assert average_order_value(Decimal("5000000"), 50) == Decimal("100000")

    def test_aov_without_trx(self) -> None:
        """AOV is undefined without transactions."""
        assert average_order_value(Decimal("100"), 0) is None

    def test_rates_are_finite(self) -> None:
        """Huge values never overflow into infinity."""
        value = percentage(10**300, 1)
        assert value is None or math.isfinite(value)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(1.5, 2), (2.5, 3), (2.4, 2), (0.5, 1), (3.0, 3)],
    )
    def test_round_half_up(self, value, expected) -> None:
        """Halves round up, not to even."""
        assert round_half_up(value) == expected


class TestPeriodRates:
    """Tests for computing all rates of a period."""

    def test_month_rates(self, make_record) -> None:
        """Monthly rates include penetration and incoming share."""
        month = aggregate_records(
            [
                make_record("2025-01", "S1", incoming=100, approved=60, trx=40, gmv=4000000),
                make_record("2025-01", "S2", incoming=50, approved=20, trx=10, gmv=1000000),
                make_record("2025-01", "S3"),
            ]
        ).months[0]

        rates = period_rates(
            month,
            total_stores=month.total_stores,
            stores_with_trx=month.stores_with_trx,
            stores_with_incoming=month.stores_with_incoming,
        )

        assert rates.approval == pytest.approx(53.333, abs=0.001)
        assert rates.conversion == pytest.approx(33.333, abs=0.001)
        assert rates.store_penetration == pytest.approx(66.667, abs=0.001)
        assert rates.incoming_store_share == pytest.approx(66.667, abs=0.001)
        assert rates.aov == Decimal("100000")

    def test_totals_have_no_store_rates(self) -> None:
        """Periods without store counts leave store rates undefined."""
        rates = period_rates(compute_totals([]))

        assert rates.approval is None
        assert rates.conversion is None
        assert rates.store_penetration is None
        assert rates.aov is None


class TestRollUpQuarters:
    """Tests for the quarterly roll-up."""

    @pytest.fixture
    def months(self, make_record):
        """Q1 with three months of varying activity and Q2 with one."""
        records = [
            make_record("2025-01", "S1", incoming=10, approved=5, trx=2, gmv=200),
            make_record("2025-01", "S2", incoming=5, approved=1, trx=1, gmv=50),
            make_record("2025-02", "S1", incoming=8, approved=4, trx=0, gmv=0),
            make_record("2025-03", "S1", incoming=6, approved=3, trx=3, gmv=300),
            make_record("2025-03", "S2", incoming=4, approved=2, trx=2, gmv=100),
            make_record("2025-03", "S3"),
            make_record("2025-04", "S1", incoming=1, approved=1, trx=1, gmv=10),
        ]
        return aggregate_records(records).months

    def test_quarter_sums_are_additive(self, months) -> None:
        """Quarter sums equal the sum of their months."""
        q1 = roll_up_quarters(months)[0]

        q1_months = [m for m in months if m.quarter == "Q1"]
        assert q1.incoming == sum(m.incoming for m in q1_months) == 33
        assert q1.approved == sum(m.approved for m in q1_months) == 15
        assert q1.trx == sum(m.trx for m in q1_months) == 8
        assert q1.gmv == Decimal("650")
        assert q1.months == ("2025-01", "2025-02", "2025-03")

    def test_total_stores_is_last_month_snapshot(self, months) -> None:
        """Quarter total stores is the last month's count, not a sum."""
        q1 = roll_up_quarters(months)[0]

        assert q1.total_stores == 3
        assert q1.stores_with_sf == 3

    def test_active_stores_are_rounded_mean(self, months) -> None:
        """Active store counts are the half-up rounded monthly mean."""
        q1 = roll_up_quarters(months)[0]

        # incoming stores per month: 2, 1, 2 -> mean 1.67 -> 2
        assert q1.stores_with_incoming == 2
        # trx stores per month: 2, 0, 2 -> mean 1.33 -> 1
        assert q1.stores_with_trx == 1

    def test_half_mean_rounds_up(self, make_record) -> None:
        """A mean of exactly .5 rounds up."""
        months = aggregate_records(
            [
                make_record("2025-01", "S1", incoming=1),
                make_record("2025-01", "S2", incoming=1),
                make_record("2025-02", "S1", incoming=1),
            ]
        ).months

        assert roll_up_quarters(months)[0].stores_with_incoming == 2

    def test_quarters_without_months_are_skipped(self, months) -> None:
        """Only quarters with data are emitted, in order."""
        quarters = roll_up_quarters(months)

        assert [q.quarter for q in quarters] == ["Q1", "Q2"]
        assert quarters[1].label == "Q2"

    def test_partial_quarter(self, months) -> None:
        """A single-month quarter mirrors its month."""
        q2 = roll_up_quarters(months)[1]

        assert q2.months == ("2025-04",)
        assert q2.total_stores == 1
        assert q2.stores_with_trx == 1

    def test_year_boundary_keeps_quarters_apart(self, make_record) -> None:
        """Same-tag months of different years are separate, chronological quarters."""
        months = aggregate_records(
            [
                make_record("2024-11", "S1", incoming=1),
                make_record("2024-12", "S1", incoming=2),
                make_record("2025-01", "S1", incoming=3),
                make_record("2025-02", "S2", incoming=4),
                make_record("2024-01", "S1", incoming=5),
            ]
        ).months

        quarters = roll_up_quarters(months)

        assert [q.key for q in quarters] == ["2024-Q1", "2024-Q4", "2025-Q1"]
        assert [q.label for q in quarters] == ["Q1 24", "Q4 24", "Q1 25"]
        assert [q.incoming for q in quarters] == [5, 3, 7]
        assert quarters[2].months == ("2025-01", "2025-02")
        assert all(1 <= len(q.months) <= 3 for q in quarters)

    def test_no_months(self) -> None:
        """No months produce no quarters."""
        assert roll_up_quarters([]) == []


class TestComputeTotals:
    """Tests for the YTD totals."""

    def test_sums_all_months(self, make_record) -> None:
        """Totals sum every loaded month."""
        months = aggregate_records(
            [
                make_record("2025-01", "S1", incoming=10, approved=5, trx=2, gmv=100),
                make_record("2025-02", "S1", incoming=20, approved=10, trx=4, gmv=300),
                make_record("2025-02", "S2"),
            ]
        ).months

        totals = compute_totals(months)

        assert totals.incoming == 30
        assert totals.approved == 15
        assert totals.trx == 6
        assert totals.gmv == Decimal("400")
        assert totals.latest_total_stores == 2

    def test_empty(self) -> None:
        """No months give zero totals."""
        totals = compute_totals([])

        assert totals.incoming == 0
        assert totals.latest_total_stores is None


class TestProcessStores:
    """Tests for per-store enrichment and directory merge."""

    @pytest.fixture
    def result(self, make_record):
        records = [
            make_record("2025-01", "S1", "Alpha", incoming=100, approved=60, trx=40, gmv=4000),
            make_record("2025-02", "S1", "Alpha", incoming=0, approved=0, trx=0, gmv=0),
            make_record("2025-02", "S2", "Beta", incoming=50, approved=20, trx=10, gmv=1000),
            make_record("2025-02", "S9", "Orphan", incoming=5, approved=5, trx=5, gmv=50),
        ]
        return aggregate_records(records)

    def test_totals_and_averages(self, result) -> None:
        """Averages are ratios of totals."""
        stores = {s.store_id: s for s in process_stores(result)}

        s1 = stores["S1"]
        assert s1.total_incoming == 100
        assert s1.total_trx == 40
        assert s1.total_gmv == Decimal("4000")
        assert s1.avg_approval == pytest.approx(60.0)
        assert s1.avg_conversion == pytest.approx(40.0)

    def test_flattened_month_fields(self, result) -> None:
        """Every known month has flattened fields, zero when absent."""
        stores = {s.store_id: s for s in process_stores(result)}

        s2 = stores["S2"]
        assert s2.value_of("2025-01_incoming") == 0
        assert s2.value_of("2025-01_appr") == 0.0
        assert s2.value_of("2025-02_trx") == 10
        assert s2.value_of("2025-02_conv") == pytest.approx(20.0)
        assert s2.value_of("2025-02_gmv") == Decimal("1000")

    def test_zero_incoming_month_fields_are_zero(self, result) -> None:
        """Zero-incoming months flatten to zero rates."""
        s1 = next(s for s in process_stores(result) if s.store_id == "S1")

        assert s1.value_of("2025-02_appr") == 0.0
        assert s1.value_of("2025-02_conv") == 0.0

    def test_store_without_incoming_has_zero_averages(self, make_record) -> None:
        """Averages default to zero rather than undefined."""
        result = aggregate_records([make_record("2025-01", "S1")])

        store = process_stores(result)[0]

        assert store.avg_approval == 0.0
        assert store.avg_conversion == 0.0

    def test_directory_order_and_names_win(self, result) -> None:
        """Directory stores come first with their directory names."""
        directory = [
            StoreDirectoryEntry(store_id="S2", store_name="Beta Directory"),
            StoreDirectoryEntry(store_id="S1", store_name="Alpha Directory"),
            StoreDirectoryEntry(store_id="S5", store_name="No Records"),
        ]

        stores = process_stores(result, directory)

        assert [s.store_id for s in stores] == ["S2", "S1", "S5", "S9"]
        assert stores[0].store_name == "Beta Directory"
        assert stores[3].store_name == "Orphan"

    def test_directory_store_without_records_has_zero_totals(self, result) -> None:
        """A directory-only store is listed with zero totals."""
        directory = [StoreDirectoryEntry(store_id="S5", store_name="No Records")]

        store = next(s for s in process_stores(result, directory) if s.store_id == "S5")

        assert store.total_trx == 0
        assert store.months == {}
        assert store.value_of("2025-02_trx") == 0

    def test_trx_series(self, result) -> None:
        """Sparkline series covers every known month."""
        stores = {s.store_id: s for s in process_stores(result)}

        assert stores["S1"].trx_series(result.month_keys) == [40, 0]
        assert stores["S2"].trx_series(result.month_keys) == [0, 10]

    def test_value_of_unknown_key(self, result) -> None:
        """Unknown and non-numeric keys have no value."""
        store = process_stores(result)[0]

        assert store.value_of("no_such_field") is None
        assert store.value_of("store_name") is None
