"""Immutable output container shared by all metric components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping


def _serialise_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class MetricDataset:
    """Snapshot of one computed metric table.

    Attributes
    ----------
    name:
        Dataset name, e.g. ``"metrics_yoy_growth"``.
    key:
        Grouping columns identifying a row. Empty for single-row summaries.
    rows:
        Ordered, read-only rows mapping column name to value.
    skipped_records:
        Fact records skipped because a foreign key did not resolve.

    Notes
    -----
    A dataset is built once from a full pass over the facts and never
    updated afterwards. Use :meth:`from_rows` to construct one so rows are
    frozen.
    """

    name: str
    key: tuple[str, ...]
    rows: tuple[Mapping[str, Any], ...]
    skipped_records: int = 0

    def __post_init__(self) -> None:
        if self.skipped_records < 0:
            raise ValueError(
                f"skipped_records cannot be negative: {self.skipped_records}"
            )
        for index, row in enumerate(self.rows):
            missing = [column for column in self.key if column not in row]
            if missing:
                raise ValueError(
                    f"Row {index} of {self.name} is missing key columns {missing}"
                )

    @classmethod
    def from_rows(
        cls,
        name: str,
        key: Iterable[str],
        rows: Iterable[Mapping[str, Any]],
        skipped_records: int = 0,
    ) -> "MetricDataset":
        frozen = tuple(MappingProxyType(dict(row)) for row in rows)
        return cls(
            name=name,
            key=tuple(key),
            rows=frozen,
            skipped_records=skipped_records,
        )

    @classmethod
    def empty(
        cls, name: str, key: Iterable[str], skipped_records: int = 0
    ) -> "MetricDataset":
        return cls(
            name=name, key=tuple(key), rows=(), skipped_records=skipped_records
        )

    def __reduce__(self):
        # mappingproxy rows cannot be pickled; rebuild them on load
        return (
            MetricDataset.from_rows,
            (self.name, self.key, [dict(row) for row in self.rows], self.skipped_records),
        )

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self.rows)

    @property
    def columns(self) -> tuple[str, ...]:
        """Column names in first-seen order across all rows."""
        seen: dict[str, None] = {}
        for row in self.rows:
            for column in row:
                seen.setdefault(column, None)
        return tuple(seen)

    def lookup(self, **key_values: Any) -> Mapping[str, Any] | None:
        """Return the first row whose columns match ``key_values``."""
        for row in self.rows:
            if all(row.get(column) == value for column, value in key_values.items()):
                return row
        return None

    def as_dict(self) -> dict[str, object]:
        """Return JSON-serialisable representation of the dataset."""
        return {
            "name": self.name,
            "key": list(self.key),
            "skipped_records": self.skipped_records,
            "rows": [
                {column: _serialise_value(value) for column, value in row.items()}
                for row in self.rows
            ],
        }
