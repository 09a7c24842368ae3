"""Tests for the synthetic sales generator."""

from datetime import date

import pytest

from sales_metrics.engine import EngineConfig, compute_all
from sales_metrics.foundation.facts import resolve_facts
from sales_metrics.synthetic import (
    SalesScenario,
    generate_dimensions,
    generate_facts,
    generate_sales_dataset,
)

START = date(2023, 1, 1)
END = date(2023, 12, 31)


class TestGenerateDimensions:
    """Test dimension generation."""

    def test_catalog(self):
        dims = generate_dimensions(10, seed=1)
        assert len(dims.customers) == 10
        assert len(dims.products) == 27
        assert len(dims.geos) == 6
        assert {c.segment for c in dims.customers} <= {"Consumer", "Corporate", "Home Office"}

    def test_negative_customer_count(self):
        with pytest.raises(ValueError, match="n_customers must be >= 0"):
            generate_dimensions(-1)


class TestGenerateFacts:
    """Test fact generation."""

    def test_reproducible_with_seed(self):
        first, _ = generate_sales_dataset(25, START, END, scenario=SalesScenario(seed=7))
        second, _ = generate_sales_dataset(25, START, END, scenario=SalesScenario(seed=7))
        assert first == second

    def test_every_key_resolves(self):
        facts, dims = generate_sales_dataset(30, START, END, scenario=SalesScenario(seed=3))
        _, skipped = resolve_facts(facts, dims, require=("customer", "product", "geo"))
        assert skipped == 0

    def test_every_customer_orders_in_acquisition_month(self):
        facts, dims = generate_sales_dataset(30, START, END, scenario=SalesScenario(seed=3))
        assert {f.customer_id for f in facts} == {c.customer_id for c in dims.customers}

    def test_dates_within_range_and_sorted(self):
        facts, _ = generate_sales_dataset(20, START, END, scenario=SalesScenario(seed=11))
        assert all(START <= f.order_date <= END for f in facts)
        assert facts == sorted(facts, key=lambda f: (f.order_date, f.order_id))

    def test_late_shipping(self):
        """A late-ship rate of 1 puts every ship date before its order date."""
        facts, _ = generate_sales_dataset(
            5, START, END, scenario=SalesScenario(seed=2, late_ship_rate=1.0)
        )
        assert facts
        assert all(f.days_to_ship < 0 for f in facts)

    def test_invalid_range(self):
        dims = generate_dimensions(1, seed=1)
        with pytest.raises(ValueError, match="start date must be <= end date"):
            generate_facts(dims, END, START)

    def test_no_customers(self):
        facts, dims = generate_sales_dataset(0, START, END)
        assert facts == []
        assert dims.customers == ()


class TestSyntheticEngineRun:
    """Run the engine over generated data and check cross-dataset invariants."""

    @pytest.fixture(scope="class")
    def results(self):
        facts, dims = generate_sales_dataset(
            120, date(2022, 1, 1), END, scenario=SalesScenario(seed=42)
        )
        config = EngineConfig(as_of_date=date(2024, 1, 1), parallel=False)
        return compute_all(facts, dims, config)

    def test_category_percentages_sum_to_hundred(self, results):
        dataset = results["metrics_sales_by_category"]
        total = sum(float(row["sales_percentage"]) for row in dataset)
        assert total == pytest.approx(100.0, abs=0.01 * len(dataset))

    def test_rfm_scores_in_range(self, results):
        for row in results["metrics_rfm"]:
            for column in ("recency_score", "frequency_score", "monetary_score"):
                assert 1 <= row[column] <= 5

    def test_cohort_offset_zero_equals_new_customers(self, results):
        acquisition = results["metrics_customer_acquisition"]
        for row in results["metrics_cohort_retention"]:
            assert row["months_since_first_order"] >= 0
            if row["months_since_first_order"] == 0:
                new = acquisition.lookup(year_month=row["cohort_month"])
                assert new["new_customers"] == row["customer_count"]

    def test_growth_has_every_year(self, results):
        years = [row["year"] for row in results["metrics_yoy_growth"]]
        assert years == [2022, 2023]
        assert results["metrics_yoy_growth"].rows[0]["sales_growth_percent"] is None
