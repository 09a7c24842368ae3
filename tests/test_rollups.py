"""Tests for the standard rollup builder."""

from datetime import date
from decimal import Decimal

from sales_metrics.analyses.rollups import (
    build_rollup,
    compute_average_order_value,
    compute_customer_acquisition,
    compute_customer_segment,
    compute_kpi_summary,
    compute_product_performance,
    compute_sales_by_category,
    compute_sales_by_region,
    compute_sales_by_time,
    compute_shipping_performance,
)
from sales_metrics.foundation.facts import (
    CustomerDim,
    Dimensions,
    FactRecord,
    GeoDim,
    ProductDim,
    resolve_facts,
)

HOUSTON = GeoDim.make_key("United States", "Texas", "Houston")
PARIS = GeoDim.make_key("France", "Ile-de-France", "Paris")


def _fact(order_id, customer_id, product_id, order_date, sales, profit, **kwargs):
    values = {
        "order_id": order_id,
        "order_date": order_date,
        "ship_date": kwargs.pop("ship_date", order_date),
        "customer_id": customer_id,
        "product_id": product_id,
        "geo_key": kwargs.pop("geo_key", HOUSTON),
        "sales": Decimal(sales),
        "profit": Decimal(profit),
        "shipping_cost": Decimal(kwargs.pop("shipping_cost", "0")),
        "quantity": kwargs.pop("quantity", 1),
    }
    values.update(kwargs)
    return FactRecord(**values)


DIMS = Dimensions.from_rows(
    customers=[
        CustomerDim("C1", "Alice", "Consumer"),
        CustomerDim("C2", "Bob", "Corporate"),
        CustomerDim("C3", "Cara", "Consumer"),
    ],
    products=[
        ProductDim("P1", "Chair", "Furniture", "Chairs"),
        ProductDim("P2", "Desk", "Furniture", "Tables"),
        ProductDim("P3", "Phone", "Technology", "Phones"),
    ],
    geos=[
        GeoDim(HOUSTON, "United States", "Texas", "Houston", "Central", "US"),
        GeoDim(PARIS, "France", "Ile-de-France", "Paris", "Central", "EU"),
    ],
)

FACTS = [
    # O1 has two lines
    _fact("O1", "C1", "P1", date(2023, 1, 5), "100", "20", quantity=2,
          ship_mode="First Class", ship_date=date(2023, 1, 7), shipping_cost="10"),
    _fact("O1", "C1", "P3", date(2023, 1, 5), "300", "-30", quantity=1,
          ship_mode="First Class", ship_date=date(2023, 1, 7), shipping_cost="20"),
    _fact("O2", "C2", "P2", date(2023, 1, 20), "200", "50", quantity=3,
          ship_mode="Standard Class", ship_date=date(2023, 1, 25), geo_key=PARIS),
    _fact("O3", "C1", "P1", date(2023, 2, 10), "400", "100", quantity=4,
          ship_mode="Standard Class", ship_date=date(2023, 2, 8)),
]


class TestBuildRollup:
    """Test the generic rollup shape."""

    def test_standard_measures(self):
        """Orders are distinct, money is summed, AOV is sales / orders."""
        records, _ = resolve_facts(FACTS, DIMS)
        dataset = build_rollup(
            records, "by_customer", ("customer_id",), lambda r: (r.fact.customer_id,)
        )
        c1 = dataset.lookup(customer_id="C1")
        assert c1["total_orders"] == 2
        assert c1["total_sales"] == Decimal("800.00")
        assert c1["total_profit"] == Decimal("90.00")
        assert c1["total_quantity"] == 7
        assert c1["avg_order_value"] == Decimal("400.00")
        assert "sales_percentage" not in c1

    def test_groups_keep_first_occurrence_order(self):
        """Without a sort key, rows follow first occurrence."""
        records, _ = resolve_facts(FACTS, DIMS)
        dataset = build_rollup(
            records, "by_product", ("product_id",), lambda r: (r.fact.product_id,)
        )
        assert [row["product_id"] for row in dataset] == ["P1", "P3", "P2"]

    def test_sales_percentage_sums_to_hundred(self):
        """Group shares add up to 100 percent."""
        records, _ = resolve_facts(FACTS, DIMS)
        dataset = build_rollup(
            records,
            "by_product",
            ("product_id",),
            lambda r: (r.fact.product_id,),
            include_percentage=True,
        )
        total = sum(row["sales_percentage"] for row in dataset)
        assert abs(total - Decimal("100")) <= Decimal("0.01") * len(dataset)

    def test_zero_grand_total_gives_zero_percentages(self):
        """A zero sales total yields 0 shares rather than an error."""
        facts = [_fact("O1", "C1", "P1", date(2023, 1, 1), "0", "0")]
        records, _ = resolve_facts(facts, DIMS)
        dataset = build_rollup(
            records, "m", ("product_id",), lambda r: (r.fact.product_id,),
            include_percentage=True,
        )
        assert dataset.rows[0]["sales_percentage"] == Decimal("0.00")

    def test_empty_records(self):
        """No records gives an empty dataset with the declared key."""
        dataset = build_rollup([], "m", ("k",), lambda r: (r,), skipped_records=4)
        assert len(dataset) == 0
        assert dataset.key == ("k",)
        assert dataset.skipped_records == 4


class TestSalesByTime:
    """Test monthly time series."""

    def test_monthly_rows_in_order(self):
        """One row per month, chronological."""
        dataset = compute_sales_by_time(FACTS, DIMS)
        assert [row["year_month"] for row in dataset] == ["2023-01", "2023-02"]
        january = dataset.rows[0]
        assert january["year"] == 2023
        assert january["month"] == 1
        assert january["total_orders"] == 2
        assert january["total_sales"] == Decimal("600.00")
        assert january["unique_customers"] == 2
        # aggregate margin: (20 - 30 + 50) / 600
        assert january["profit_margin"] == Decimal("6.67")

    def test_unsorted_input_is_ordered(self):
        """Input order does not change month order."""
        dataset = compute_sales_by_time(list(reversed(FACTS)), DIMS)
        assert [row["year_month"] for row in dataset] == ["2023-01", "2023-02"]


class TestSalesByCategory:
    """Test category breakdown and its row-average margin."""

    def test_category_rows(self):
        """Rows are keyed by (category, sub_category)."""
        dataset = compute_sales_by_category(FACTS, DIMS)
        assert dataset.key == ("category", "sub_category")
        chairs = dataset.lookup(category="Furniture", sub_category="Chairs")
        assert chairs["total_sales"] == Decimal("500.00")
        assert chairs["total_orders"] == 2
        assert chairs["sales_percentage"] == Decimal("50.00")

    def test_margin_is_average_of_line_ratios(self):
        """Chairs lines: 20/100=20% and 100/400=25% average to 22.5%."""
        dataset = compute_sales_by_category(FACTS, DIMS)
        chairs = dataset.lookup(category="Furniture", sub_category="Chairs")
        assert chairs["avg_profit_margin"] == Decimal("22.50")
        # the aggregate margin would be 120 / 500 = 24%
        assert chairs["avg_profit_margin"] != Decimal("24.00")

    def test_zero_sales_lines_skipped_in_margin(self):
        """Lines with zero sales do not enter the margin average."""
        facts = [
            _fact("O1", "C1", "P1", date(2023, 1, 1), "100", "10"),
            _fact("O2", "C1", "P1", date(2023, 1, 2), "0", "-5"),
        ]
        dataset = compute_sales_by_category(facts, DIMS)
        assert dataset.rows[0]["avg_profit_margin"] == Decimal("10.00")

    def test_only_zero_sales_lines_gives_no_margin(self):
        """No usable line leaves the margin empty."""
        facts = [_fact("O1", "C1", "P1", date(2023, 1, 1), "0", "0")]
        dataset = compute_sales_by_category(facts, DIMS)
        assert dataset.rows[0]["avg_profit_margin"] is None

    def test_unknown_product_is_skipped(self):
        """Facts with unresolved products are skipped and counted."""
        facts = FACTS + [_fact("O9", "C1", "P-missing", date(2023, 3, 1), "50", "5")]
        dataset = compute_sales_by_category(facts, DIMS)
        assert dataset.skipped_records == 1
        assert sum(row["total_sales"] for row in dataset) == Decimal("1000.00")


class TestSalesByRegion:
    """Test regional rollup."""

    def test_region_rows(self):
        """Rows are keyed by (country, region, state)."""
        dataset = compute_sales_by_region(FACTS, DIMS)
        texas = dataset.lookup(country="United States", state="Texas")
        france = dataset.lookup(country="France")
        assert texas["total_sales"] == Decimal("800.00")
        assert texas["sales_percentage"] == Decimal("80.00")
        assert france["sales_percentage"] == Decimal("20.00")
        assert texas["unique_customers"] == 1


class TestCustomerSegment:
    """Test segment rollup."""

    def test_segment_rows(self):
        """Segments carry customer counts and sales per customer."""
        dataset = compute_customer_segment(FACTS, DIMS)
        consumer = dataset.lookup(segment="Consumer")
        assert consumer["total_customers"] == 1
        assert consumer["avg_sales_per_customer"] == Decimal("800.00")
        corporate = dataset.lookup(segment="Corporate")
        assert corporate["sales_percentage"] == Decimal("20.00")


class TestShippingPerformance:
    """Test shipping rollup."""

    def test_days_to_ship_including_negative(self):
        """Negative delays are kept, not clamped."""
        dataset = compute_shipping_performance(FACTS, DIMS)
        standard = dataset.lookup(ship_mode="Standard Class")
        # O2 ships after 5 days, O3 is recorded 2 days before its order
        assert standard["min_days_to_ship"] == -2
        assert standard["max_days_to_ship"] == 5
        assert standard["avg_days_to_ship"] == Decimal("1.50")

    def test_shipping_costs(self):
        """Shipping cost totals and averages per line."""
        dataset = compute_shipping_performance(FACTS, DIMS)
        first = dataset.lookup(ship_mode="First Class")
        assert first["total_shipping_cost"] == Decimal("30.00")
        assert first["avg_shipping_cost"] == Decimal("15.00")
        assert first["total_orders"] == 1

    def test_missing_ship_mode_grouped_as_unknown(self):
        """Facts without ship mode fall into Unknown."""
        facts = [_fact("O1", "C1", "P1", date(2023, 1, 1), "10", "1")]
        dataset = compute_shipping_performance(facts, DIMS)
        assert dataset.rows[0]["ship_mode"] == "Unknown"


class TestProductPerformance:
    """Test product ranking and its aggregate margin."""

    def test_ranked_by_sales(self):
        """Products are ordered by total sales, highest first."""
        dataset = compute_product_performance(FACTS, DIMS)
        assert [row["product_id"] for row in dataset] == ["P1", "P3", "P2"]
        assert dataset.rows[0]["product_name"] == "Chair"
        assert dataset.rows[0]["category"] == "Furniture"

    def test_margin_is_aggregate(self):
        """P1 margin is (20 + 100) / (100 + 400) = 24%."""
        dataset = compute_product_performance(FACTS, DIMS)
        assert dataset.lookup(product_id="P1")["profit_margin"] == Decimal("24.00")
        assert dataset.lookup(product_id="P3")["profit_margin"] == Decimal("-10.00")

    def test_limit(self):
        """Limit keeps the top N products."""
        dataset = compute_product_performance(FACTS, DIMS, limit=1)
        assert [row["product_id"] for row in dataset] == ["P1"]


class TestAverageOrderValue:
    """Test order-level AOV rollup."""

    def test_order_totals_per_month(self):
        """Lines are combined into orders before averaging."""
        dataset = compute_average_order_value(FACTS, DIMS)
        january = dataset.lookup(year_month="2023-01")
        assert january["total_orders"] == 2
        assert january["avg_order_value"] == Decimal("300.00")
        assert january["min_order_value"] == Decimal("200.00")
        assert january["max_order_value"] == Decimal("400.00")
        assert january["avg_items_per_order"] == Decimal("3.00")


class TestCustomerAcquisition:
    """Test acquisition cohorts by first order month."""

    def test_new_customers_by_first_month(self):
        """Customers count only in the month of their first order."""
        dataset = compute_customer_acquisition(FACTS, DIMS)
        assert [row["year_month"] for row in dataset] == ["2023-01"]
        january = dataset.rows[0]
        assert january["new_customers"] == 2
        # C1 lifetime 800 over 2 orders, C2 200 over 1 order
        assert january["avg_lifetime_value"] == Decimal("500.00")
        assert january["avg_orders_per_customer"] == Decimal("1.50")

    def test_first_month_uses_minimum_date_not_input_order(self):
        """A later-listed earlier order defines the acquisition month."""
        facts = [
            _fact("O2", "C3", "P1", date(2023, 5, 1), "10", "1"),
            _fact("O1", "C3", "P1", date(2023, 3, 31), "10", "1"),
        ]
        dataset = compute_customer_acquisition(facts, DIMS)
        assert dataset.rows[0]["year_month"] == "2023-03"
        assert dataset.rows[0]["year"] == 2023
        assert dataset.rows[0]["month"] == 3


class TestKPISummary:
    """Test single-row KPI summary."""

    def test_summary_row(self):
        """Headline totals with aggregate margin."""
        dataset = compute_kpi_summary(FACTS, DIMS)
        assert dataset.key == ()
        row = dataset.rows[0]
        assert row["total_orders"] == 3
        assert row["total_customers"] == 2
        assert row["total_products"] == 3
        assert row["total_sales"] == Decimal("1000.00")
        assert row["total_profit"] == Decimal("140.00")
        assert row["profit_margin"] == Decimal("14.00")
        assert row["avg_order_value"] == Decimal("333.33")
        assert row["first_order_date"] == date(2023, 1, 5)
        assert row["last_order_date"] == date(2023, 2, 10)


class TestEmptyInput:
    """Every rollup is total over empty input."""

    def test_all_rollups_return_empty_datasets(self):
        """Empty facts give empty datasets, never errors."""
        for compute in (
            compute_sales_by_time,
            compute_sales_by_category,
            compute_sales_by_region,
            compute_customer_segment,
            compute_shipping_performance,
            compute_product_performance,
            compute_average_order_value,
            compute_customer_acquisition,
            compute_kpi_summary,
        ):
            dataset = compute([], DIMS)
            assert len(dataset) == 0
            assert dataset.skipped_records == 0
