"""Foundational building blocks for the sales metric engine.

This package exposes the fact/dimension contracts supplied by the Fact
Provider, the grouping primitives every metric component is built on and
the immutable :class:`MetricDataset` output type.
"""

from .aggregation import (
    group_average,
    group_count_distinct,
    group_sum,
    month_key,
    month_start,
    months_between,
    percent_of_total,
    safe_divide,
)
from .dataset import MetricDataset
from .facts import (
    CustomerDim,
    Dimensions,
    FactProvider,
    FactRecord,
    GeoDim,
    InMemoryFactProvider,
    ProductDim,
    ResolvedFact,
    resolve_facts,
)

__all__ = [
    "CustomerDim",
    "Dimensions",
    "FactProvider",
    "FactRecord",
    "GeoDim",
    "InMemoryFactProvider",
    "MetricDataset",
    "ProductDim",
    "ResolvedFact",
    "group_average",
    "group_count_distinct",
    "group_sum",
    "month_key",
    "month_start",
    "months_between",
    "percent_of_total",
    "resolve_facts",
    "safe_divide",
]
