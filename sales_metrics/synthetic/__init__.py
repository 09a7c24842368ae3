"""Synthetic data generation utilities.

This package produces realistic-but-fake superstore-style sales facts and
dimensions to exercise the metric engine without production data.
"""

from .generator import (
    SalesScenario,
    generate_dimensions,
    generate_facts,
    generate_sales_dataset,
)

__all__ = [
    "SalesScenario",
    "generate_dimensions",
    "generate_facts",
    "generate_sales_dataset",
]
