from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
import math
import random
from typing import List, Optional, Sequence, Tuple

from sales_metrics.foundation.facts import (
    CustomerDim,
    Dimensions,
    FactRecord,
    GeoDim,
    ProductDim,
)

SEGMENTS = ("Consumer", "Corporate", "Home Office")
SHIP_MODES = ("Standard Class", "Second Class", "First Class", "Same Day")
# Typical order-to-ship delay (days) per ship mode
SHIP_DELAYS = {"Standard Class": 5, "Second Class": 3, "First Class": 2, "Same Day": 0}
CATALOG = {
    "Furniture": ("Chairs", "Tables", "Bookcases"),
    "Office Supplies": ("Binders", "Paper", "Storage"),
    "Technology": ("Phones", "Accessories", "Machines"),
}
LOCATIONS = (
    ("United States", "New York", "New York City", "East", "US"),
    ("United States", "California", "Los Angeles", "West", "US"),
    ("United States", "Texas", "Houston", "Central", "US"),
    ("United States", "Florida", "Miami", "South", "US"),
    ("Germany", "Bavaria", "Munich", "Central", "EU"),
    ("France", "Ile-de-France", "Paris", "Central", "EU"),
)


@dataclass(frozen=True)
class SalesScenario:
    """Configuration for the synthetic sales generator.

    Attributes
    ----------
    base_orders_per_month: Average orders per active customer per month.
    churn_hazard: Monthly probability that an active customer stops buying.
    mean_line_sales: Average sales amount of an order line.
    price_variability: Coefficient in (0, 1] controlling sales variance.
    mean_margin: Average profit / sales ratio; individual lines may lose money.
    late_ship_rate: Share of lines whose ship date precedes the order date,
        reproducing provider data that is not time-ordered.
    seed: Optional RNG seed for reproducibility.
    """

    base_orders_per_month: float = 0.6
    churn_hazard: float = 0.05
    mean_line_sales: float = 120.0
    price_variability: float = 0.6
    mean_margin: float = 0.12
    late_ship_rate: float = 0.0
    seed: Optional[int] = None


def _month_range(start: date, end: date) -> List[date]:
    cur = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    out: List[date] = []
    while cur <= last:
        out.append(cur)
        if cur.month == 12:
            cur = date(cur.year + 1, 1, 1)
        else:
            cur = date(cur.year, cur.month + 1, 1)
    return out


def _money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def generate_dimensions(
    n_customers: int, *, seed: Optional[int] = None
) -> Dimensions:
    """Generate ``n_customers`` customers plus the fixed product/geo catalog."""
    if n_customers < 0:
        raise ValueError("n_customers must be >= 0")
    rng = random.Random(seed)

    customers = [
        CustomerDim(
            customer_id=f"C-{i + 1}",
            customer_name=f"Customer {i + 1}",
            segment=rng.choice(SEGMENTS),
        )
        for i in range(n_customers)
    ]
    products = []
    for category, sub_categories in CATALOG.items():
        for sub_category in sub_categories:
            for n in range(1, 4):
                products.append(
                    ProductDim(
                        product_id=f"{category[:3].upper()}-{sub_category[:3].upper()}-{n}",
                        product_name=f"{sub_category} model {n}",
                        category=category,
                        sub_category=sub_category,
                    )
                )
    geos = [
        GeoDim(
            geo_key=GeoDim.make_key(country, state, city),
            country=country,
            state=state,
            city=city,
            region=region,
            market=market,
        )
        for country, state, city, region, market in LOCATIONS
    ]
    return Dimensions.from_rows(customers, products, geos)


def _orders_for_customer_month(rng: random.Random, lam: float) -> int:
    # Poisson-like draw via Knuth's algorithm for small lambdas
    if lam <= 0:
        return 0
    L = math.exp(-lam)
    k = 0
    p = 1.0
    while p > L:
        k += 1
        p *= rng.random()
    return max(0, k - 1)


def _sample_sales(rng: random.Random, mean: float, variability: float) -> float:
    variability = min(max(variability, 0.01), 1.0)
    # Log-normal-ish by exponentiating a normal draw for positivity
    sigma = variability
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    return round(max(math.exp(rng.normalvariate(mu, sigma)), 0.01), 2)


def generate_facts(
    dims: Dimensions,
    start: date,
    end: date,
    *,
    scenario: Optional[SalesScenario] = None,
) -> List[FactRecord]:
    """Generate order lines for every customer in ``dims`` between ``start`` and ``end``.

    Each customer is acquired in a random month of the range and then
    orders with a Poisson rate until they churn. All foreign keys resolve
    in ``dims``.
    """
    if start > end:
        raise ValueError("start date must be <= end date")
    scenario = scenario or SalesScenario()
    rng = random.Random(scenario.seed)

    months = _month_range(start, end)
    products: Sequence[ProductDim] = dims.products
    geos: Sequence[GeoDim] = dims.geos
    if not months or not products or not geos:
        return []

    acquisition = {c.customer_id: rng.randrange(len(months)) for c in dims.customers}
    home_geo = {c.customer_id: rng.choice(geos).geo_key for c in dims.customers}
    active = set(acquisition)
    facts: List[FactRecord] = []
    order_seq = 1

    for month_index, month_start in enumerate(months):
        for customer_id in sorted(active):
            if acquisition[customer_id] > month_index:
                continue
            if acquisition[customer_id] < month_index and rng.random() < scenario.churn_hazard:
                active.discard(customer_id)
                continue

            num_orders = _orders_for_customer_month(rng, scenario.base_orders_per_month)
            if acquisition[customer_id] == month_index:
                num_orders = max(1, num_orders)
            for _ in range(num_orders):
                order_date = month_start + timedelta(days=rng.randrange(28))
                if order_date < start or order_date > end:
                    order_date = min(max(order_date, start), end)
                ship_mode = rng.choice(SHIP_MODES)
                delay = SHIP_DELAYS[ship_mode] + rng.randrange(2)
                if rng.random() < scenario.late_ship_rate:
                    delay = -1 - rng.randrange(3)
                order_id = f"O-{order_seq}"
                order_seq += 1

                # Sample 1-3 line items per order
                for _line in range(1 + rng.randrange(3)):
                    sales = _sample_sales(
                        rng, scenario.mean_line_sales, scenario.price_variability
                    )
                    margin = rng.normalvariate(scenario.mean_margin, 0.2)
                    facts.append(
                        FactRecord(
                            order_id=order_id,
                            order_date=order_date,
                            ship_date=order_date + timedelta(days=delay),
                            customer_id=customer_id,
                            product_id=rng.choice(products).product_id,
                            geo_key=home_geo[customer_id],
                            sales=_money(sales),
                            profit=_money(sales * margin),
                            shipping_cost=_money(sales * 0.05 + rng.random() * 5),
                            quantity=1 + rng.randrange(5),
                            ship_mode=ship_mode,
                        )
                    )

    facts.sort(key=lambda f: (f.order_date, f.order_id))
    return facts


def generate_sales_dataset(
    n_customers: int,
    start: date,
    end: date,
    *,
    scenario: Optional[SalesScenario] = None,
) -> Tuple[List[FactRecord], Dimensions]:
    """Generate dimensions and matching facts in one call."""
    scenario = scenario or SalesScenario()
    dims = generate_dimensions(n_customers, seed=scenario.seed)
    return generate_facts(dims, start, end, scenario=scenario), dims
