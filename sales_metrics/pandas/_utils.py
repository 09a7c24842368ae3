"""Shared utilities for pandas conversion operations."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import numpy as np
import pandas as pd  # type: ignore


def decimal_to_float(value: Any) -> Any:
    """Convert Decimal to float for pandas compatibility; ``None`` becomes NaN."""
    if value is None:
        return np.nan
    if isinstance(value, Decimal):
        return float(value)
    return value


def float_to_decimal(value: Any) -> Decimal:
    """Convert a numeric cell to Decimal, avoiding binary float artefacts.

    Warning:
        Floats with >15 significant digits may lose precision due to
        float representation limits. For financial calculations requiring
        exact precision, read money columns as strings.

    Raises:
        TypeError: If value is not numeric
        ValueError: If value is NaN or a non-numeric string

    Example:
        >>> float_to_decimal(123.45)
        Decimal('123.45')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert {value!r} to Decimal") from None
    if not isinstance(value, (int, float, np.integer, np.floating)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    if pd.isna(value):
        raise ValueError("Cannot convert NaN to Decimal")
    return Decimal(str(value))


def to_date(value: Any) -> date:
    """Coerce a timestamp-like cell (str, datetime, pd.Timestamp) to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.to_datetime(value).date()
