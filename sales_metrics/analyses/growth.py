"""Year-over-year growth of sales, profit and order volume.

Each calendar year with at least one order is compared against the
previous calendar year. A year without a usable prior year (absent, or a
zero prior total) still appears in the output, with growth reported as
``None`` rather than zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sales_metrics.foundation.aggregation import (
    group_count_distinct,
    group_sum,
    quantize_money,
    quantize_percent,
    safe_divide,
)
from sales_metrics.foundation.dataset import MetricDataset
from sales_metrics.foundation.facts import Dimensions, FactRecord, resolve_facts

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class YearlyGrowth:
    """Totals for one calendar year and their change versus the prior year.

    Attributes
    ----------
    year:
        Calendar year of the order dates.
    total_sales, total_profit, total_orders:
        Year totals (orders are distinct ``order_id`` values).
    sales_growth_percent, profit_growth_percent, orders_growth_percent:
        ``(this - prior) / prior * 100``; ``None`` when the prior year is
        missing or its total is zero.
    """

    year: int
    total_sales: Decimal
    total_profit: Decimal
    total_orders: int
    sales_growth_percent: Decimal | None
    profit_growth_percent: Decimal | None
    orders_growth_percent: Decimal | None


def growth_percent(
    current: Decimal | int, prior: Decimal | int | None
) -> Decimal | None:
    """Percent change from ``prior`` to ``current``; ``None`` without a base."""
    change = safe_divide(
        None if prior is None else Decimal(current) - Decimal(prior), prior
    )
    if change is None:
        return None
    return quantize_percent(change * _HUNDRED)


def calculate_yoy_growth(facts: Iterable[FactRecord]) -> list[YearlyGrowth]:
    """Compute per-year totals and growth, ordered by year.

    Examples
    --------
    >>> rows = calculate_yoy_growth(facts)  # doctest: +SKIP
    >>> [(r.year, r.sales_growth_percent) for r in rows]  # doctest: +SKIP
    [(2022, None), (2023, Decimal('25.00'))]
    """
    facts = list(facts)

    def year_of(fact: FactRecord) -> int:
        return fact.order_date.year

    sales = group_sum(facts, year_of, lambda f: f.sales)
    profit = group_sum(facts, year_of, lambda f: f.profit)
    orders = group_count_distinct(facts, year_of, lambda f: f.order_id)

    rows: list[YearlyGrowth] = []
    for year in sorted(sales):
        prior = year - 1
        rows.append(
            YearlyGrowth(
                year=year,
                total_sales=quantize_money(sales[year]),
                total_profit=quantize_money(profit[year]),
                total_orders=orders[year],
                sales_growth_percent=growth_percent(sales[year], sales.get(prior)),
                profit_growth_percent=growth_percent(profit[year], profit.get(prior)),
                orders_growth_percent=growth_percent(orders[year], orders.get(prior)),
            )
        )
    return rows


def compute_yoy_growth(facts: Iterable[FactRecord], dims: Dimensions) -> MetricDataset:
    """Build the ``metrics_yoy_growth`` dataset."""
    records, skipped = resolve_facts(facts, dims)
    rows = calculate_yoy_growth(r.fact for r in records)
    by_year = {row.year: row for row in rows}
    return MetricDataset.from_rows(
        "metrics_yoy_growth",
        ("year",),
        (
            {
                "year": row.year,
                "total_sales": row.total_sales,
                "total_profit": row.total_profit,
                "total_orders": row.total_orders,
                "prev_year_sales": (
                    by_year[row.year - 1].total_sales if row.year - 1 in by_year else None
                ),
                "sales_growth_percent": row.sales_growth_percent,
                "profit_growth_percent": row.profit_growth_percent,
                "orders_growth_percent": row.orders_growth_percent,
            }
            for row in rows
        ),
        skipped,
    )
