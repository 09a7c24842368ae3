"""Pandas DataFrame adapters for metric datasets."""

import pandas as pd  # type: ignore

from sales_metrics.foundation.dataset import MetricDataset
from ._utils import decimal_to_float


def dataset_to_dataframe(dataset: MetricDataset) -> pd.DataFrame:
    """Convert a MetricDataset to a DataFrame.

    Args:
        dataset: Any metric dataset

    Returns:
        DataFrame with one row per dataset row, in dataset order. Decimal
        values become floats and missing values (``None``) become NaN.
        An empty dataset yields an empty DataFrame with the key columns.

    Example:
        >>> yoy = compute_yoy_growth(facts, dims)
        >>> dataset_to_dataframe(yoy)[["year", "sales_growth_percent"]]
    """
    if not dataset.rows:
        return pd.DataFrame(columns=list(dataset.key))

    columns = list(dataset.columns)
    rows = [
        {column: decimal_to_float(row.get(column)) for column in columns}
        for row in dataset.rows
    ]
    return pd.DataFrame(rows, columns=columns)


def cohort_matrix_to_dataframe(
    cohort_dataset: MetricDataset, value: str = "customer_count"
) -> pd.DataFrame:
    """Pivot cohort retention cells into a cohort × month-offset matrix.

    Args:
        cohort_dataset: The ``metrics_cohort_retention`` dataset
        value: Cell column to place in the matrix (``customer_count`` or
            ``retention_percentage``)

    Returns:
        DataFrame indexed by cohort_month (sorted) with one column per
        months_since_first_order (sorted). Offsets without activity are NaN.

    Raises:
        ValueError: If the dataset lacks the cohort columns
    """
    required = {"cohort_month", "months_since_first_order", value}
    df = dataset_to_dataframe(cohort_dataset)
    if df.empty:
        return pd.DataFrame()
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Dataset missing cohort columns: {sorted(missing)}")

    matrix = df.pivot_table(
        index="cohort_month",
        columns="months_since_first_order",
        values=value,
        aggfunc="sum",
    )
    return matrix.sort_index().sort_index(axis=1)
