"""Fact and dimension contracts consumed by the metric engine.

The Fact Provider (the upstream cleaning / star-schema stage) hands the
engine an immutable sequence of :class:`FactRecord` objects plus three
lookup dimensions. This module defines those contracts and the join step
every component runs before it reads a dimension attribute.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Protocol, Sequence

logger = logging.getLogger(__name__)

UNKNOWN_SHIP_MODE = "Unknown"


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class FactRecord:
    """One cleaned sales-order line item.

    Attributes
    ----------
    order_id:
        Order identifier. Not unique: an order may span several lines.
    order_date:
        Date the order was placed.
    ship_date:
        Date the line shipped. May precede ``order_date``; the provider
        does not guarantee ordering.
    customer_id, product_id, geo_key:
        Foreign keys into the customer, product and geography dimensions.
    sales, profit, shipping_cost:
        Monetary amounts. ``profit`` may be negative.
    quantity:
        Units on the line (> 0).
    ship_mode:
        Shipping mode label, ``None`` when the source did not record one.
    """

    order_id: str
    order_date: date
    ship_date: date
    customer_id: str
    product_id: str
    geo_key: str
    sales: Decimal
    profit: Decimal
    shipping_cost: Decimal
    quantity: int
    ship_mode: str | None = None

    def __post_init__(self) -> None:
        for name in ("order_id", "customer_id", "product_id", "geo_key"):
            if not getattr(self, name):
                raise ValueError(f"{name} must be a non-empty string")
        # frozen dataclass: coerce numeric inputs in place
        for name in ("sales", "profit", "shipping_cost"):
            object.__setattr__(self, name, _to_decimal(getattr(self, name)))
        if self.quantity <= 0:
            raise ValueError(
                f"Quantity must be positive: {self.quantity} (order_id={self.order_id})"
            )

    @property
    def days_to_ship(self) -> int:
        """Days between order and shipment; negative when shipped "before" ordering."""
        return (self.ship_date - self.order_date).days

    @property
    def ship_mode_label(self) -> str:
        return self.ship_mode or UNKNOWN_SHIP_MODE


@dataclass(frozen=True)
class CustomerDim:
    customer_id: str
    customer_name: str
    segment: str


@dataclass(frozen=True)
class ProductDim:
    product_id: str
    product_name: str
    category: str
    sub_category: str


@dataclass(frozen=True)
class GeoDim:
    """Geography dimension row keyed by country + state + city."""

    geo_key: str
    country: str
    state: str
    city: str
    region: str
    market: str

    @staticmethod
    def make_key(country: str, state: str, city: str) -> str:
        return f"{country}|{state}|{city}"


def _index_rows(rows: Iterable, key_attr: str, label: str) -> dict[str, object]:
    index: dict[str, object] = {}
    duplicates = 0
    for row in rows:
        key = getattr(row, key_attr)
        if key in index:
            duplicates += 1
            continue
        index[key] = row
    if duplicates:
        logger.warning(
            "Ignored %d duplicate %s dimension rows (first row wins)", duplicates, label
        )
    return index


class Dimensions:
    """Read-only lookup tables for the customer, product and geo dimensions."""

    def __init__(
        self,
        customers: Mapping[str, CustomerDim] | None = None,
        products: Mapping[str, ProductDim] | None = None,
        geos: Mapping[str, GeoDim] | None = None,
    ) -> None:
        self._customers = dict(customers or {})
        self._products = dict(products or {})
        self._geos = dict(geos or {})

    @classmethod
    def from_rows(
        cls,
        customers: Iterable[CustomerDim] = (),
        products: Iterable[ProductDim] = (),
        geos: Iterable[GeoDim] = (),
    ) -> "Dimensions":
        return cls(
            customers=_index_rows(customers, "customer_id", "customer"),
            products=_index_rows(products, "product_id", "product"),
            geos=_index_rows(geos, "geo_key", "geo"),
        )

    def lookup_customer(self, customer_id: str) -> CustomerDim | None:
        return self._customers.get(customer_id)

    def lookup_product(self, product_id: str) -> ProductDim | None:
        return self._products.get(product_id)

    def lookup_geo(self, geo_key: str) -> GeoDim | None:
        return self._geos.get(geo_key)

    @property
    def customers(self) -> tuple[CustomerDim, ...]:
        return tuple(self._customers.values())

    @property
    def products(self) -> tuple[ProductDim, ...]:
        return tuple(self._products.values())

    @property
    def geos(self) -> tuple[GeoDim, ...]:
        return tuple(self._geos.values())


class FactProvider(Protocol):
    """Upstream collaborator supplying facts and dimension lookups."""

    def stream_facts(self) -> Iterable[FactRecord]: ...

    def lookup_customer(self, customer_id: str) -> CustomerDim | None: ...

    def lookup_product(self, product_id: str) -> ProductDim | None: ...

    def lookup_geo(self, geo_key: str) -> GeoDim | None: ...


class InMemoryFactProvider:
    """Fact provider backed by an already materialised fact sequence.

    ``stream_facts`` is repeatable: every call returns the same tuple.
    """

    def __init__(self, facts: Iterable[FactRecord], dims: Dimensions) -> None:
        self._facts = tuple(facts)
        self.dims = dims

    def stream_facts(self) -> tuple[FactRecord, ...]:
        return self._facts

    def lookup_customer(self, customer_id: str) -> CustomerDim | None:
        return self.dims.lookup_customer(customer_id)

    def lookup_product(self, product_id: str) -> ProductDim | None:
        return self.dims.lookup_product(product_id)

    def lookup_geo(self, geo_key: str) -> GeoDim | None:
        return self.dims.lookup_geo(geo_key)


@dataclass(frozen=True)
class ResolvedFact:
    """A fact joined to the dimension rows a component asked for.

    Dimensions that were not requested are left as ``None``.
    """

    fact: FactRecord
    customer: CustomerDim | None = None
    product: ProductDim | None = None
    geo: GeoDim | None = None


JOINABLE_DIMENSIONS = frozenset({"customer", "product", "geo"})


def resolve_facts(
    facts: Iterable[FactRecord],
    dims: Dimensions,
    require: Sequence[str] = (),
) -> tuple[list[ResolvedFact], int]:
    """Join facts to the required dimensions, skipping unresolved records.

    Parameters
    ----------
    facts:
        Fact records in provider order.
    dims:
        Dimension lookups.
    require:
        Names of the dimensions to join (``"customer"``, ``"product"``,
        ``"geo"``). A fact whose key does not resolve in any required
        dimension is skipped.

    Returns
    -------
    tuple[list[ResolvedFact], int]
        The resolved facts (input order preserved) and the number of
        skipped records.
    """
    unknown = set(require) - JOINABLE_DIMENSIONS
    if unknown:
        raise ValueError(f"Unknown dimensions requested: {sorted(unknown)}")

    resolved: list[ResolvedFact] = []
    skipped = 0
    for fact in facts:
        customer = product = geo = None
        if "customer" in require:
            customer = dims.lookup_customer(fact.customer_id)
            if customer is None:
                skipped += 1
                continue
        if "product" in require:
            product = dims.lookup_product(fact.product_id)
            if product is None:
                skipped += 1
                continue
        if "geo" in require:
            geo = dims.lookup_geo(fact.geo_key)
            if geo is None:
                skipped += 1
                continue
        resolved.append(
            ResolvedFact(fact=fact, customer=customer, product=product, geo=geo)
        )

    if skipped:
        logger.warning(
            "Skipped %d fact records with unresolved %s keys",
            skipped,
            "/".join(require),
        )
    return resolved, skipped
