"""Pandas DataFrame adapters for the Fact Provider contract."""

from typing import List

import pandas as pd  # type: ignore

from sales_metrics.foundation.facts import (
    CustomerDim,
    Dimensions,
    FactRecord,
    GeoDim,
    ProductDim,
)
from ._utils import float_to_decimal, to_date

FACT_COLUMNS = [
    "order_id",
    "order_date",
    "ship_date",
    "customer_id",
    "product_id",
    "geo_key",
    "sales",
    "profit",
    "shipping_cost",
    "quantity",
]
CUSTOMER_COLUMNS = ["customer_id", "customer_name", "segment"]
PRODUCT_COLUMNS = ["product_id", "product_name", "category", "sub_category"]
GEO_COLUMNS = ["country", "state", "city", "region", "market"]


def _require_columns(df: pd.DataFrame, required: List[str], label: str) -> None:
    missing_cols = set(required) - set(df.columns)
    if missing_cols:
        raise ValueError(f"{label} DataFrame missing required columns: {sorted(missing_cols)}")


def _require_complete(df: pd.DataFrame, required: List[str], label: str) -> None:
    null_cols = df[required].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in {label} columns: {null_col_names}. "
            "The fact provider contract requires validated rows."
        )


def dataframe_to_facts(facts_df: pd.DataFrame) -> List[FactRecord]:
    """Convert a fact table DataFrame to FactRecord objects.

    Args:
        facts_df: DataFrame with the fact columns. ``geo_key`` may be
            replaced by ``country``/``state``/``city`` columns, from which
            the composite key is built. ``ship_mode`` is optional.

    Returns:
        List of FactRecord objects in DataFrame row order.

    Raises:
        ValueError: If required columns are missing or contain nulls

    Example:
        >>> facts_df = pd.read_csv("fact_sales.csv")
        >>> facts = dataframe_to_facts(facts_df)
    """
    if "geo_key" not in facts_df.columns and set(GEO_COLUMNS[:3]) <= set(facts_df.columns):
        facts_df = facts_df.assign(
            geo_key=[
                GeoDim.make_key(str(country), str(state), str(city))
                for country, state, city in zip(
                    facts_df["country"], facts_df["state"], facts_df["city"]
                )
            ]
        )
    _require_columns(facts_df, FACT_COLUMNS, "Fact")
    if facts_df.empty:
        return []
    _require_complete(facts_df, FACT_COLUMNS, "fact")

    has_ship_mode = "ship_mode" in facts_df.columns
    facts = []
    for record in facts_df.to_dict("records"):
        ship_mode = record.get("ship_mode") if has_ship_mode else None
        facts.append(
            FactRecord(
                order_id=str(record["order_id"]),
                order_date=to_date(record["order_date"]),
                ship_date=to_date(record["ship_date"]),
                customer_id=str(record["customer_id"]),
                product_id=str(record["product_id"]),
                geo_key=str(record["geo_key"]),
                sales=float_to_decimal(record["sales"]),
                profit=float_to_decimal(record["profit"]),
                shipping_cost=float_to_decimal(record["shipping_cost"]),
                quantity=int(record["quantity"]),
                ship_mode=None if pd.isna(ship_mode) else str(ship_mode),
            )
        )
    return facts


def dataframes_to_dimensions(
    customers_df: pd.DataFrame,
    products_df: pd.DataFrame,
    geos_df: pd.DataFrame,
) -> Dimensions:
    """Build dimension lookups from three DataFrames.

    Args:
        customers_df: customer_id, customer_name, segment
        products_df: product_id, product_name, category, sub_category
        geos_df: country, state, city, region, market and optionally geo_key
            (built from country/state/city when absent)

    Returns:
        Dimensions with one lookup row per key (first row wins on duplicates).
    """
    _require_columns(customers_df, CUSTOMER_COLUMNS, "Customer")
    _require_columns(products_df, PRODUCT_COLUMNS, "Product")
    _require_columns(geos_df, GEO_COLUMNS, "Geo")

    customers = [
        CustomerDim(
            customer_id=str(row["customer_id"]),
            customer_name=str(row["customer_name"]),
            segment=str(row["segment"]),
        )
        for row in customers_df.to_dict("records")
    ]
    products = [
        ProductDim(
            product_id=str(row["product_id"]),
            product_name=str(row["product_name"]),
            category=str(row["category"]),
            sub_category=str(row["sub_category"]),
        )
        for row in products_df.to_dict("records")
    ]
    geos = []
    for row in geos_df.to_dict("records"):
        geo_key = row.get("geo_key")
        if geo_key is None or pd.isna(geo_key):
            geo_key = GeoDim.make_key(str(row["country"]), str(row["state"]), str(row["city"]))
        geos.append(
            GeoDim(
                geo_key=str(geo_key),
                country=str(row["country"]),
                state=str(row["state"]),
                city=str(row["city"]),
                region=str(row["region"]),
                market=str(row["market"]),
            )
        )
    return Dimensions.from_rows(customers, products, geos)


def facts_to_dataframe(facts: List[FactRecord]) -> pd.DataFrame:
    """Convert FactRecord objects back to a DataFrame (money as float)."""
    columns = FACT_COLUMNS + ["ship_mode"]
    if not facts:
        return pd.DataFrame(columns=columns)
    rows = [
        {
            "order_id": f.order_id,
            "order_date": f.order_date,
            "ship_date": f.ship_date,
            "customer_id": f.customer_id,
            "product_id": f.product_id,
            "geo_key": f.geo_key,
            "sales": float(f.sales),
            "profit": float(f.profit),
            "shipping_cost": float(f.shipping_cost),
            "quantity": f.quantity,
            "ship_mode": f.ship_mode,
        }
        for f in facts
    ]
    return pd.DataFrame(rows, columns=columns)
