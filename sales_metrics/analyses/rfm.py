"""RFM (Recency-Frequency-Monetary) customer scoring.

RFM analysis segments customers based on three dimensions:
- Recency: How recently did the customer make a purchase?
- Frequency: How many distinct orders have they placed?
- Monetary: How much have they spent in total?

Each measure is ranked independently and split into five equal-count
buckets (quintiles). Scores run from 1 to 5 where 5 is always "better":
most recent, most frequent, highest spend.

Tie-break policy
----------------
Bucket assignment is a rank-and-partition, not a value threshold.
Customers with equal values are ordered by when they first appear in the
fact stream, and the earlier customer takes the lower bucket when the tie
straddles a bucket boundary. The rule is arbitrary but deterministic;
equal values can therefore land in adjacent buckets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Sequence, TypeVar

from sales_metrics.foundation.aggregation import (
    group_count_distinct,
    group_sum,
    quantize_money,
)
from sales_metrics.foundation.dataset import MetricDataset
from sales_metrics.foundation.facts import Dimensions, FactRecord, resolve_facts

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BINS = 5


class RFMSegment(str, Enum):
    """Behavioural segment labels derived from RFM scores."""

    CHAMPIONS = "Champions"
    LOYAL_CUSTOMERS = "Loyal Customers"
    NEW_CUSTOMERS = "New Customers"
    AT_RISK = "At Risk"
    LOST_CUSTOMERS = "Lost Customers"
    POTENTIAL_LOYALISTS = "Potential Loyalists"


@dataclass(frozen=True)
class RFMRow:
    """RFM measures, scores and segment for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_days:
        Days from the customer's most recent order to the as-of date
    frequency:
        Number of distinct orders
    monetary:
        Total sales across all orders
    recency_score, frequency_score, monetary_score:
        Quintile scores (1-5, 5 = best)
    rfm_total_score:
        Sum of the three scores (3-15)
    segment_label:
        Segment assigned from the scores
    """

    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal
    recency_score: int
    frequency_score: int
    monetary_score: int
    rfm_total_score: int
    segment_label: RFMSegment

    def __post_init__(self) -> None:
        """Validate RFM row."""
        if self.recency_days < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        for score_name, score_value in [
            ("recency_score", self.recency_score),
            ("frequency_score", self.frequency_score),
            ("monetary_score", self.monetary_score),
        ]:
            if not 1 <= score_value <= 5:
                raise ValueError(
                    f"{score_name} must be between 1 and 5: {score_value} (customer_id={self.customer_id})"
                )
        expected_total = self.recency_score + self.frequency_score + self.monetary_score
        if self.rfm_total_score != expected_total:
            raise ValueError(
                f"rfm_total_score ({self.rfm_total_score}) does not match r+f+m ({expected_total}) (customer_id={self.customer_id})"
            )


def bucket_sizes(count: int, bins: int = DEFAULT_BINS) -> list[int]:
    """Member count of each bucket for ``count`` ranked items.

    Every bucket gets ``count // bins`` members and the first
    ``count % bins`` buckets get one more.

    >>> bucket_sizes(7)
    [2, 2, 1, 1, 1]
    """
    if bins <= 0:
        raise ValueError(f"bins must be positive: {bins}")
    base, remainder = divmod(count, bins)
    return [base + 1 if index < remainder else base for index in range(bins)]


def quintile_scores(
    items: Sequence[T],
    value_fn: Callable[[T], Decimal | int],
    *,
    descending: bool = False,
    bins: int = DEFAULT_BINS,
) -> list[int]:
    """Assign a 1-based bucket number to each item by rank.

    Parameters
    ----------
    items:
        Items in first-seen order. That order breaks ties.
    value_fn:
        Measure to rank on.
    descending:
        Rank the largest value first (bucket 1) instead of the smallest.
    bins:
        Number of buckets (default: 5 for quintiles).

    Returns
    -------
    list[int]
        Bucket number per item, aligned with ``items``.
    """
    if not items:
        return []

    # sorted() is stable even with reverse=True: equal values keep first-seen order
    ranked = sorted(
        range(len(items)), key=lambda i: value_fn(items[i]), reverse=descending
    )

    scores = [0] * len(items)
    position = 0
    for bucket, size in enumerate(bucket_sizes(len(items), bins), start=1):
        for index in ranked[position : position + size]:
            scores[index] = bucket
        position += size
    return scores


def label_segment(recency: int, frequency: int, monetary: int) -> RFMSegment:
    """Map R/F/M scores to a segment; the first matching rule wins."""
    if recency >= 4 and frequency >= 4 and monetary >= 4:
        return RFMSegment.CHAMPIONS
    if recency >= 3 and frequency >= 3 and monetary >= 3:
        return RFMSegment.LOYAL_CUSTOMERS
    if recency >= 4 and frequency <= 2 and monetary <= 2:
        return RFMSegment.NEW_CUSTOMERS
    if recency <= 2 and frequency >= 3 and monetary >= 3:
        return RFMSegment.AT_RISK
    if recency <= 2 and frequency <= 2:
        return RFMSegment.LOST_CUSTOMERS
    return RFMSegment.POTENTIAL_LOYALISTS


@dataclass(frozen=True)
class _CustomerMeasures:
    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal  # exact sum; rounded only on output


def _customer_measures(
    facts: Sequence[FactRecord], as_of_date: date
) -> list[_CustomerMeasures]:
    last_order: dict[str, date] = {}
    for fact in facts:
        current = last_order.get(fact.customer_id)
        if current is None or fact.order_date > current:
            last_order[fact.customer_id] = fact.order_date

    def customer_of(fact: FactRecord) -> str:
        return fact.customer_id

    frequency = group_count_distinct(facts, customer_of, lambda f: f.order_id)
    monetary = group_sum(facts, customer_of, lambda f: f.sales)

    future_customers = 0
    measures: list[_CustomerMeasures] = []
    for customer_id, last in last_order.items():
        recency_days = (as_of_date - last).days
        if recency_days < 0:
            future_customers += 1
            recency_days = 0
        measures.append(
            _CustomerMeasures(
                customer_id=customer_id,
                recency_days=recency_days,
                frequency=frequency[customer_id],
                monetary=monetary[customer_id],
            )
        )
    if future_customers:
        logger.warning(
            "%d customers have orders after as_of_date %s; recency clamped to 0",
            future_customers,
            as_of_date.isoformat(),
        )
    return measures


def calculate_rfm(
    facts: Iterable[FactRecord],
    dims: Dimensions,
    as_of_date: date | None = None,
) -> tuple[list[RFMRow], int]:
    """Score every customer on recency, frequency and monetary value.

    Parameters
    ----------
    facts:
        Fact records. Records whose customer does not resolve in the
        customer dimension are skipped.
    dims:
        Dimension lookups.
    as_of_date:
        Reference date for recency (default: today). Orders dated after
        it count as recency 0.

    Returns
    -------
    tuple[list[RFMRow], int]
        One row per customer in first-seen order, and the number of
        skipped fact records.

    Examples
    --------
    >>> rows, skipped = calculate_rfm(facts, dims, date(2024, 1, 1))  # doctest: +SKIP
    >>> [(row.customer_id, row.segment_label.value) for row in rows]  # doctest: +SKIP
    [('C1', 'Champions'), ('C2', 'Lost Customers')]
    """
    if as_of_date is None:
        as_of_date = date.today()
    records, skipped = resolve_facts(facts, dims, require=("customer",))
    measures = _customer_measures([r.fact for r in records], as_of_date)
    if not measures:
        return [], skipped

    # Recency ranks largest days first so the longest-absent customers score 1.
    r_scores = quintile_scores(measures, lambda m: m.recency_days, descending=True)
    f_scores = quintile_scores(measures, lambda m: m.frequency)
    m_scores = quintile_scores(measures, lambda m: m.monetary)

    rows = [
        RFMRow(
            customer_id=m.customer_id,
            recency_days=m.recency_days,
            frequency=m.frequency,
            monetary=quantize_money(m.monetary),
            recency_score=r,
            frequency_score=f,
            monetary_score=mon,
            rfm_total_score=r + f + mon,
            segment_label=label_segment(r, f, mon),
        )
        for m, r, f, mon in zip(measures, r_scores, f_scores, m_scores)
    ]
    return rows, skipped


def compute_rfm(
    facts: Iterable[FactRecord], dims: Dimensions, as_of_date: date | None = None
) -> MetricDataset:
    """Build the ``metrics_rfm`` dataset; ``as_of_date`` defaults to today."""
    rows, skipped = calculate_rfm(facts, dims, as_of_date)
    return MetricDataset.from_rows(
        "metrics_rfm",
        ("customer_id",),
        (
            {
                "customer_id": row.customer_id,
                "recency_days": row.recency_days,
                "frequency": row.frequency,
                "monetary": row.monetary,
                "recency_score": row.recency_score,
                "frequency_score": row.frequency_score,
                "monetary_score": row.monetary_score,
                "rfm_total_score": row.rfm_total_score,
                "segment_label": row.segment_label.value,
            }
            for row in rows
        ),
        skipped,
    )
