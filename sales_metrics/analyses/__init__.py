"""Metric components computed over the sales fact stream.

Each ``compute_*`` function takes the facts and dimension lookups and
returns one immutable :class:`~sales_metrics.foundation.MetricDataset`.
"""

from .cohorts import (
    CohortCell,
    assign_cohort_months,
    calculate_cohort_cells,
    compute_cohort_retention,
)
from .growth import YearlyGrowth, calculate_yoy_growth, compute_yoy_growth
from .rfm import (
    RFMRow,
    RFMSegment,
    calculate_rfm,
    compute_rfm,
    label_segment,
    quintile_scores,
)
from .rollups import (
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

__all__ = [
    "CohortCell",
    "RFMRow",
    "RFMSegment",
    "YearlyGrowth",
    "assign_cohort_months",
    "build_rollup",
    "calculate_cohort_cells",
    "calculate_rfm",
    "calculate_yoy_growth",
    "compute_average_order_value",
    "compute_cohort_retention",
    "compute_customer_acquisition",
    "compute_customer_segment",
    "compute_kpi_summary",
    "compute_product_performance",
    "compute_rfm",
    "compute_sales_by_category",
    "compute_sales_by_region",
    "compute_sales_by_time",
    "compute_shipping_performance",
    "compute_yoy_growth",
    "label_segment",
    "quintile_scores",
]
