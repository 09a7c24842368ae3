"""Standard rollups over the sales fact stream.

Every rollup in this module is an instance of one shape implemented by
:func:`build_rollup`: partition the (joined) facts by a declared key and
emit ``total_orders``, ``total_sales``, ``total_profit``,
``total_quantity`` and ``avg_order_value`` per group, optionally with the
group's ``sales_percentage`` of the grand total and rollup-specific
measures.

Profit margin is deliberately computed two ways:

- :func:`compute_sales_by_category` reports ``avg_profit_margin``, the
  average of per-line ``profit / sales * 100`` (lines with zero sales are
  skipped).
- :func:`compute_product_performance`, :func:`compute_sales_by_time` and
  :func:`compute_kpi_summary` report ``profit_margin``, the aggregate
  ``sum(profit) / sum(sales) * 100``.

The two are not interchangeable; each dataset keeps its own definition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Hashable, Iterable, Mapping, Sequence

from sales_metrics.foundation.aggregation import (
    group_average,
    group_count_distinct,
    group_sum,
    month_key,
    percent_of_total,
    quantize_money,
    quantize_percent,
    safe_divide,
)
from sales_metrics.foundation.dataset import MetricDataset
from sales_metrics.foundation.facts import (
    Dimensions,
    FactRecord,
    ResolvedFact,
    resolve_facts,
)

_HUNDRED = Decimal("100")

ExtraMeasure = Callable[[Sequence[ResolvedFact]], Any]


def _partition(
    records: Iterable[ResolvedFact], key_fn: Callable[[ResolvedFact], Hashable]
) -> dict[Hashable, list[ResolvedFact]]:
    groups: dict[Hashable, list[ResolvedFact]] = {}
    for record in records:
        groups.setdefault(key_fn(record), []).append(record)
    return groups


def _aggregate_margin(profit: Decimal, sales: Decimal) -> Decimal | None:
    ratio = safe_divide(profit, sales)
    return None if ratio is None else ratio * _HUNDRED


def _line_margin(record: ResolvedFact) -> Decimal | None:
    ratio = safe_divide(record.fact.profit, record.fact.sales)
    return None if ratio is None else ratio * _HUNDRED


def build_rollup(
    records: Sequence[ResolvedFact],
    name: str,
    key_columns: Sequence[str],
    key_fn: Callable[[ResolvedFact], tuple],
    *,
    include_percentage: bool = False,
    extra_measures: Mapping[str, ExtraMeasure] | None = None,
    sort_key: Callable[[Mapping[str, Any]], Any] | None = None,
    reverse: bool = False,
    limit: int | None = None,
    skipped_records: int = 0,
) -> MetricDataset:
    """Group ``records`` by ``key_fn`` and emit the standard measures.

    Parameters
    ----------
    records:
        Facts already joined to the dimensions ``key_fn`` reads.
    name:
        Output dataset name.
    key_columns:
        Column names for the tuple returned by ``key_fn``.
    key_fn:
        Maps a record to its group key tuple.
    include_percentage:
        Add ``sales_percentage`` (group sales as a percent of all sales).
    extra_measures:
        Additional columns computed from each group's records.
    sort_key, reverse:
        Optional row ordering. Groups keep first-occurrence order otherwise.
    limit:
        Keep only the first ``limit`` rows after ordering.
    skipped_records:
        Count of facts dropped by the join step, carried onto the dataset.

    Returns
    -------
    MetricDataset
        One row per group.
    """
    if not records:
        return MetricDataset.empty(name, key_columns, skipped_records)

    orders = group_count_distinct(records, key_fn, lambda r: r.fact.order_id)
    sales = group_sum(records, key_fn, lambda r: r.fact.sales)
    profit = group_sum(records, key_fn, lambda r: r.fact.profit)
    quantity = group_sum(records, key_fn, lambda r: r.fact.quantity)
    grand_total = sum(sales.values(), Decimal("0"))
    groups = _partition(records, key_fn) if extra_measures else {}

    rows: list[dict[str, Any]] = []
    for key, group_sales in sales.items():
        row: dict[str, Any] = dict(zip(key_columns, key))
        row["total_orders"] = orders[key]
        row["total_sales"] = quantize_money(group_sales)
        row["total_profit"] = quantize_money(profit[key])
        row["total_quantity"] = int(quantity[key])
        row["avg_order_value"] = quantize_money(safe_divide(group_sales, orders[key]))
        if include_percentage:
            row["sales_percentage"] = quantize_percent(
                percent_of_total(group_sales, grand_total)
            )
        for column, measure in (extra_measures or {}).items():
            row[column] = measure(groups[key])
        rows.append(row)

    if sort_key is not None:
        rows.sort(key=sort_key, reverse=reverse)
    if limit is not None:
        rows = rows[:limit]
    return MetricDataset.from_rows(name, key_columns, rows, skipped_records)


def compute_sales_by_time(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Monthly sales time series, in chronological order."""
    records, skipped = resolve_facts(facts, dims)
    return build_rollup(
        records,
        "metrics_sales_by_time",
        ("year_month",),
        lambda r: (month_key(r.fact.order_date),),
        extra_measures={
            "year": lambda group: group[0].fact.order_date.year,
            "month": lambda group: group[0].fact.order_date.month,
            "unique_customers": lambda group: len({r.fact.customer_id for r in group}),
            "profit_margin": lambda group: quantize_percent(
                _aggregate_margin(
                    sum((r.fact.profit for r in group), Decimal("0")),
                    sum((r.fact.sales for r in group), Decimal("0")),
                )
            ),
        },
        sort_key=lambda row: row["year_month"],
        skipped_records=skipped,
    )


def compute_sales_by_category(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Sales per (category, sub_category) with row-average profit margin."""
    records, skipped = resolve_facts(facts, dims, require=("product",))
    return build_rollup(
        records,
        "metrics_sales_by_category",
        ("category", "sub_category"),
        lambda r: (r.product.category, r.product.sub_category),
        include_percentage=True,
        extra_measures={
            "avg_profit_margin": lambda group: quantize_percent(
                group_average(group, lambda r: None, _line_margin)[None]
            ),
        },
        skipped_records=skipped,
    )


def compute_sales_by_region(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Sales per (country, region, state)."""
    records, skipped = resolve_facts(facts, dims, require=("geo",))
    return build_rollup(
        records,
        "metrics_sales_by_region",
        ("country", "region", "state"),
        lambda r: (r.geo.country, r.geo.region, r.geo.state),
        include_percentage=True,
        extra_measures={
            "unique_customers": lambda group: len({r.fact.customer_id for r in group}),
        },
        skipped_records=skipped,
    )


def compute_customer_segment(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Sales per customer segment."""
    records, skipped = resolve_facts(facts, dims, require=("customer",))

    def avg_sales_per_customer(group: Sequence[ResolvedFact]) -> Decimal | None:
        total = sum((r.fact.sales for r in group), Decimal("0"))
        return quantize_money(
            safe_divide(total, len({r.fact.customer_id for r in group}))
        )

    return build_rollup(
        records,
        "metrics_customer_segment",
        ("segment",),
        lambda r: (r.customer.segment,),
        include_percentage=True,
        extra_measures={
            "total_customers": lambda group: len({r.fact.customer_id for r in group}),
            "avg_sales_per_customer": avg_sales_per_customer,
        },
        skipped_records=skipped,
    )


def compute_shipping_performance(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Shipping latency and cost per ship mode.

    ``days_to_ship`` may be negative when the provider recorded a ship
    date before the order date; such values are averaged as-is.
    """
    records, skipped = resolve_facts(facts, dims)

    def days(group: Sequence[ResolvedFact]) -> list[int]:
        return [r.fact.days_to_ship for r in group]

    return build_rollup(
        records,
        "metrics_shipping_performance",
        ("ship_mode",),
        lambda r: (r.fact.ship_mode_label,),
        include_percentage=True,
        extra_measures={
            "avg_days_to_ship": lambda group: quantize_percent(
                safe_divide(sum(days(group)), len(group))
            ),
            "min_days_to_ship": lambda group: min(days(group)),
            "max_days_to_ship": lambda group: max(days(group)),
            "total_shipping_cost": lambda group: quantize_money(
                sum((r.fact.shipping_cost for r in group), Decimal("0"))
            ),
            "avg_shipping_cost": lambda group: quantize_money(
                safe_divide(
                    sum((r.fact.shipping_cost for r in group), Decimal("0")),
                    len(group),
                )
            ),
        },
        skipped_records=skipped,
    )


def compute_product_performance(
    facts: Iterable[FactRecord], dims: Dimensions, limit: int | None = None
) -> MetricDataset:
    """Per-product totals ranked by sales, with aggregate profit margin."""
    records, skipped = resolve_facts(facts, dims, require=("product",))
    return build_rollup(
        records,
        "metrics_product_performance",
        ("product_id",),
        lambda r: (r.fact.product_id,),
        include_percentage=True,
        extra_measures={
            "product_name": lambda group: group[0].product.product_name,
            "category": lambda group: group[0].product.category,
            "sub_category": lambda group: group[0].product.sub_category,
            "profit_margin": lambda group: quantize_percent(
                _aggregate_margin(
                    sum((r.fact.profit for r in group), Decimal("0")),
                    sum((r.fact.sales for r in group), Decimal("0")),
                )
            ),
        },
        # ties on sales keep first-seen product order (stable sort)
        sort_key=lambda row: row["total_sales"],
        reverse=True,
        limit=limit,
        skipped_records=skipped,
    )


@dataclass(frozen=True)
class _OrderTotal:
    order_id: str
    order_date: date
    sales: Decimal
    quantity: int


def _order_totals(facts: Iterable[FactRecord]) -> list[_OrderTotal]:
    grouped: dict[str, dict[str, Any]] = {}
    for fact in facts:
        bucket = grouped.setdefault(
            fact.order_id,
            {"order_date": fact.order_date, "sales": Decimal("0"), "quantity": 0},
        )
        bucket["order_date"] = min(bucket["order_date"], fact.order_date)
        bucket["sales"] += fact.sales
        bucket["quantity"] += fact.quantity
    return [
        _OrderTotal(order_id, payload["order_date"], payload["sales"], payload["quantity"])
        for order_id, payload in grouped.items()
    ]


def compute_average_order_value(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Monthly order-level value distribution.

    Lines are first collapsed into orders (an order is dated by its
    earliest line) and orders are then bucketed by month.
    """
    records, skipped = resolve_facts(facts, dims)
    name = "metrics_average_order_value"
    key = ("year_month",)
    orders = _order_totals(r.fact for r in records)
    if not orders:
        return MetricDataset.empty(name, key, skipped)

    by_month: dict[str, list[_OrderTotal]] = {}
    for order in orders:
        by_month.setdefault(month_key(order.order_date), []).append(order)

    rows = []
    for year_month in sorted(by_month):
        bucket = by_month[year_month]
        values = [order.sales for order in bucket]
        rows.append(
            {
                "year_month": year_month,
                "total_orders": len(bucket),
                "total_sales": quantize_money(sum(values, Decimal("0"))),
                "avg_order_value": quantize_money(
                    safe_divide(sum(values, Decimal("0")), len(bucket))
                ),
                "min_order_value": quantize_money(min(values)),
                "max_order_value": quantize_money(max(values)),
                "avg_items_per_order": quantize_percent(
                    safe_divide(sum(order.quantity for order in bucket), len(bucket))
                ),
            }
        )
    return MetricDataset.from_rows(name, key, rows, skipped)


def compute_customer_acquisition(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """New customers per month of their first order.

    For each customer the first order date is ``min(order_date)`` over all
    their facts; customers are then grouped by that month and the bucket
    reports the number of new customers plus the average lifetime sales
    and order count of those customers.
    """
    records, skipped = resolve_facts(facts, dims, require=("customer",))
    name = "metrics_customer_acquisition"
    key = ("year_month",)
    if not records:
        return MetricDataset.empty(name, key, skipped)

    def customer_of(record: ResolvedFact) -> str:
        return record.fact.customer_id

    first_order: dict[str, date] = {}
    for record in records:
        current = first_order.get(record.fact.customer_id)
        if current is None or record.fact.order_date < current:
            first_order[record.fact.customer_id] = record.fact.order_date
    lifetime_sales = group_sum(records, customer_of, lambda r: r.fact.sales)
    order_counts = group_count_distinct(records, customer_of, lambda r: r.fact.order_id)

    def cohort_of(customer_id: str) -> str:
        return month_key(first_order[customer_id])

    customers = list(first_order)
    new_customers = group_count_distinct(customers, cohort_of, lambda cid: cid)
    avg_value = group_average(customers, cohort_of, lambda cid: lifetime_sales[cid])
    avg_orders = group_average(customers, cohort_of, lambda cid: order_counts[cid])

    rows = []
    for year_month in sorted(new_customers):
        year, month = (int(part) for part in year_month.split("-"))
        rows.append(
            {
                "year_month": year_month,
                "year": year,
                "month": month,
                "new_customers": new_customers[year_month],
                "avg_lifetime_value": quantize_money(avg_value[year_month]),
                "avg_orders_per_customer": quantize_percent(avg_orders[year_month]),
            }
        )
    return MetricDataset.from_rows(name, key, rows, skipped)


def compute_kpi_summary(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Single-row headline KPIs with aggregate profit margin."""
    records, skipped = resolve_facts(facts, dims)
    name = "metrics_kpi_summary"
    if not records:
        return MetricDataset.empty(name, (), skipped)

    total_sales = sum((r.fact.sales for r in records), Decimal("0"))
    total_profit = sum((r.fact.profit for r in records), Decimal("0"))
    total_orders = len({r.fact.order_id for r in records})
    dates = [r.fact.order_date for r in records]
    row = {
        "total_orders": total_orders,
        "total_customers": len({r.fact.customer_id for r in records}),
        "total_products": len({r.fact.product_id for r in records}),
        "total_sales": quantize_money(total_sales),
        "total_profit": quantize_money(total_profit),
        "total_quantity": sum(r.fact.quantity for r in records),
        "avg_order_value": quantize_money(safe_divide(total_sales, total_orders)),
        "profit_margin": quantize_percent(_aggregate_margin(total_profit, total_sales)),
        "first_order_date": min(dates),
        "last_order_date": max(dates),
    }
    return MetricDataset.from_rows(name, (), [row], skipped)
