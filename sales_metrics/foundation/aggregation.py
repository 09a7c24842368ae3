"""Grouping and reduction primitives shared by every metric component.

All grouping helpers are stable: keys appear in the order of their first
occurrence in ``records``. Callers that need another order sort the
result themselves.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Hashable, Iterable, TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

MONEY_PRECISION = Decimal("0.01")
# Standard percentage precision: 2 decimal places (e.g., 45.67%)
PERCENTAGE_PRECISION = Decimal("0.01")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def group_sum(
    records: Iterable[T],
    key_fn: Callable[[T], K],
    value_fn: Callable[[T], Decimal | int],
) -> dict[K, Decimal]:
    """Sum ``value_fn`` per group."""
    totals: dict[K, Decimal] = {}
    for record in records:
        key = key_fn(record)
        totals[key] = totals.get(key, _ZERO) + Decimal(value_fn(record))
    return totals


def group_count_distinct(
    records: Iterable[T],
    key_fn: Callable[[T], K],
    id_fn: Callable[[T], Hashable],
) -> dict[K, int]:
    """Count distinct ``id_fn`` values per group."""
    seen: dict[K, set] = {}
    for record in records:
        seen.setdefault(key_fn(record), set()).add(id_fn(record))
    return {key: len(ids) for key, ids in seen.items()}


def group_average(
    records: Iterable[T],
    key_fn: Callable[[T], K],
    value_fn: Callable[[T], Decimal | int | None],
) -> dict[K, Decimal | None]:
    """Average ``value_fn`` per group.

    Values for which ``value_fn`` returns ``None`` are skipped. A group
    whose values were all skipped still appears, with a ``None`` average.
    """
    sums: dict[K, Decimal] = {}
    counts: dict[K, int] = {}
    for record in records:
        key = key_fn(record)
        sums.setdefault(key, _ZERO)
        counts.setdefault(key, 0)
        value = value_fn(record)
        if value is None:
            continue
        sums[key] += Decimal(value)
        counts[key] += 1
    return {key: safe_divide(sums[key], counts[key]) for key in sums}


def safe_divide(
    numerator: Decimal | int | None, denominator: Decimal | int | None
) -> Decimal | None:
    """Divide, returning ``None`` when the denominator is zero or absent."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return Decimal(numerator) / Decimal(denominator)


def percent_of_total(
    partial_sum: Decimal | int | None, grand_total: Decimal | int | None
) -> Decimal:
    """Share of ``grand_total`` in percent.

    A zero or absent grand total carries no signal and yields ``0``.
    """
    ratio = safe_divide(partial_sum or _ZERO, grand_total)
    if ratio is None:
        return _ZERO
    return ratio * _HUNDRED


def quantize_money(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def quantize_percent(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP)


def month_start(d: date) -> date:
    """First day of the calendar month containing ``d``."""
    return date(d.year, d.month, 1)


def month_key(d: date) -> str:
    """``YYYY-MM`` label of the month containing ``d``."""
    return f"{d.year:04d}-{d.month:02d}"


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month.

    Day of month is ignored: Jan 31 -> Feb 1 is one month.

    >>> months_between(date(2023, 1, 31), date(2023, 2, 1))
    1
    """
    return (end.year - start.year) * 12 + (end.month - start.month)
