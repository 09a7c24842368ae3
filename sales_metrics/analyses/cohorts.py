"""Cohort retention from the sales fact stream.

Every customer belongs to the cohort of the calendar month of their first
order. Each order then marks the customer active in the order's month, and
the retention cells count distinct active customers per
``(cohort_month, activity_month)``.

Quick Start
-----------
>>> cells, skipped = calculate_cohort_cells(facts, dims)  # doctest: +SKIP
>>> [(c.cohort_month, c.months_since_first_order, c.customer_count) for c in cells]  # doctest: +SKIP
[(datetime.date(2023, 1, 1), 0, 1), (datetime.date(2023, 1, 1), 5, 1)]
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sales_metrics.foundation.aggregation import (
    group_count_distinct,
    month_key,
    month_start,
    months_between,
    percent_of_total,
    quantize_percent,
)
from sales_metrics.foundation.dataset import MetricDataset
from sales_metrics.foundation.facts import Dimensions, FactRecord, resolve_facts


@dataclass(frozen=True)
class CohortCell:
    """Active customer count for one cohort in one calendar month.

    Attributes
    ----------
    cohort_month:
        First day of the month of the cohort's first orders.
    activity_month:
        First day of the month in which the customers were active.
    months_since_first_order:
        Whole months from ``cohort_month`` to ``activity_month`` (0 = the
        acquisition month).
    customer_count:
        Distinct cohort customers with at least one order in
        ``activity_month``.
    """

    cohort_month: date
    activity_month: date
    months_since_first_order: int
    customer_count: int

    def __post_init__(self) -> None:
        """Validate cohort cell constraints."""
        if self.months_since_first_order < 0:
            raise ValueError(
                f"months_since_first_order must be >= 0, got {self.months_since_first_order}"
            )
        if self.customer_count < 0:
            raise ValueError(f"customer_count must be >= 0, got {self.customer_count}")
        if months_between(self.cohort_month, self.activity_month) != (
            self.months_since_first_order
        ):
            raise ValueError(
                "months_since_first_order does not match cohort/activity months: "
                f"{self.cohort_month.isoformat()} -> {self.activity_month.isoformat()}"
            )


def assign_cohort_months(facts: Iterable[FactRecord]) -> dict[str, date]:
    """Map each customer to the first day of their first order's month.

    Customers appear in first-seen order.
    """
    cohorts: dict[str, date] = {}
    for fact in facts:
        bucket = month_start(fact.order_date)
        current = cohorts.get(fact.customer_id)
        if current is None or bucket < current:
            cohorts[fact.customer_id] = bucket
    return cohorts


def calculate_cohort_cells(
    facts: Iterable[FactRecord], dims: Dimensions
) -> tuple[list[CohortCell], int]:
    """Count distinct active customers per cohort and activity month.

    Parameters
    ----------
    facts:
        Fact records. Records whose customer does not resolve in the
        customer dimension are skipped.
    dims:
        Dimension lookups.

    Returns
    -------
    tuple[list[CohortCell], int]
        Cells ordered by cohort month then month offset, and the number of
        skipped fact records. The ordering is for reproducibility only;
        consumers pivot and sort as they need.
    """
    records, skipped = resolve_facts(facts, dims, require=("customer",))
    resolved = [r.fact for r in records]
    cohorts = assign_cohort_months(resolved)

    def cell_of(fact: FactRecord) -> tuple[date, date]:
        return cohorts[fact.customer_id], month_start(fact.order_date)

    counts = group_count_distinct(resolved, cell_of, lambda f: f.customer_id)
    cells = [
        CohortCell(
            cohort_month=cohort_month,
            activity_month=activity_month,
            months_since_first_order=months_between(cohort_month, activity_month),
            customer_count=count,
        )
        for (cohort_month, activity_month), count in counts.items()
    ]
    cells.sort(key=lambda c: (c.cohort_month, c.months_since_first_order))
    return cells, skipped


def compute_cohort_retention(
    facts: Iterable[FactRecord], dims: Dimensions
) -> MetricDataset:
    """Build the ``metrics_cohort_retention`` dataset.

    Besides the cell count each row carries the cohort size (customers
    acquired in ``cohort_month``) and ``retention_percentage``, the cell
    count as a percent of that size.
    """
    cells, skipped = calculate_cohort_cells(facts, dims)
    cohort_sizes = {
        cell.cohort_month: cell.customer_count
        for cell in cells
        if cell.months_since_first_order == 0
    }
    return MetricDataset.from_rows(
        "metrics_cohort_retention",
        ("cohort_month", "activity_month"),
        (
            {
                "cohort_month": month_key(cell.cohort_month),
                "activity_month": month_key(cell.activity_month),
                "months_since_first_order": cell.months_since_first_order,
                "customer_count": cell.customer_count,
                "cohort_size": cohort_sizes[cell.cohort_month],
                "retention_percentage": quantize_percent(
                    percent_of_total(
                        cell.customer_count, cohort_sizes[cell.cohort_month]
                    )
                ),
            }
            for cell in cells
        ),
        skipped,
    )
