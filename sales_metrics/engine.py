"""Batch runner computing every metric dataset from one fact provider.

The components share nothing but the read-only fact tuple, so they run
either one after another or side by side in a ``multiprocessing`` pool.
Results are returned only after every component has finished.
"""

from __future__ import annotations

import multiprocessing
import os
import time
from datetime import date
from typing import Any, Callable, Mapping, Sequence

import structlog
from pydantic import BaseModel, Field, field_validator

from sales_metrics.analyses.cohorts import compute_cohort_retention
from sales_metrics.analyses.growth import compute_yoy_growth
from sales_metrics.analyses.rfm import compute_rfm
from sales_metrics.analyses.rollups import (
    compute_average_order_value,
    compute_customer_acquisition,
    compute_customer_segment,
    compute_kpi_summary,
    compute_product_performance,
    compute_sales_by_category,
    compute_sales_by_region,
    compute_sales_by_time,
    compute_shipping_performance,
)
from sales_metrics.foundation.dataset import MetricDataset
from sales_metrics.foundation.facts import (
    Dimensions,
    FactProvider,
    FactRecord,
    InMemoryFactProvider,
)

logger = structlog.get_logger(__name__)

COMPONENTS: dict[str, Callable[..., MetricDataset]] = {
    "metrics_sales_by_time": compute_sales_by_time,
    "metrics_sales_by_category": compute_sales_by_category,
    "metrics_sales_by_region": compute_sales_by_region,
    "metrics_customer_segment": compute_customer_segment,
    "metrics_shipping_performance": compute_shipping_performance,
    "metrics_product_performance": compute_product_performance,
    "metrics_average_order_value": compute_average_order_value,
    "metrics_customer_acquisition": compute_customer_acquisition,
    "metrics_kpi_summary": compute_kpi_summary,
    "metrics_rfm": compute_rfm,
    "metrics_yoy_growth": compute_yoy_growth,
    "metrics_cohort_retention": compute_cohort_retention,
}


class EngineConfig(BaseModel):
    """Settings for one engine run."""

    as_of_date: date | None = Field(
        default=None,
        description="Reference date for RFM recency (default: the date each run starts)",
    )
    parallel: bool = Field(
        default=True, description="Run components in a process pool for large inputs"
    )
    parallel_threshold: int = Field(
        default=1_000_000,
        ge=0,
        description="Fact count at or above which the process pool is used",
    )
    n_workers: int | None = Field(
        default=None,
        ge=1,
        description="Worker processes for the pool (default: CPU count)",
    )
    product_limit: int | None = Field(
        default=None,
        ge=1,
        description="Keep only the top N products by sales in metrics_product_performance",
    )
    components: tuple[str, ...] | None = Field(
        default=None,
        description="Dataset names to compute (default: all registered components)",
    )

    @field_validator("components")
    @classmethod
    def _known_components(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if value is None:
            return value
        unknown = sorted(set(value) - set(COMPONENTS))
        if unknown:
            raise ValueError(f"Unknown metric components: {unknown}")
        return tuple(dict.fromkeys(value))

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        """Build a config from ``SALES_METRICS_*`` environment variables.

        Explicit keyword ``overrides`` take precedence over the environment.
        """
        values: dict[str, Any] = {}
        as_of = os.getenv("SALES_METRICS_AS_OF_DATE")
        if as_of:
            values["as_of_date"] = date.fromisoformat(as_of)
        parallel = os.getenv("SALES_METRICS_PARALLEL")
        if parallel is not None:
            values["parallel"] = parallel.strip().lower() in {"1", "true", "yes", "on"}
        n_workers = os.getenv("SALES_METRICS_N_WORKERS")
        if n_workers:
            values["n_workers"] = int(n_workers)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def selected_components(self) -> tuple[str, ...]:
        return self.components if self.components is not None else tuple(COMPONENTS)

    def resolved_as_of_date(self) -> date:
        return self.as_of_date if self.as_of_date is not None else date.today()

    def component_options(
        self, name: str, as_of_date: date | None = None
    ) -> dict[str, Any]:
        if name == "metrics_rfm":
            return {"as_of_date": as_of_date or self.resolved_as_of_date()}
        if name == "metrics_product_performance":
            return {"limit": self.product_limit}
        return {}


def _run_component(
    name: str,
    facts: Sequence[FactRecord],
    dims: Dimensions,
    options: Mapping[str, Any],
) -> tuple[MetricDataset, float]:
    started = time.perf_counter()
    dataset = COMPONENTS[name](facts, dims, **options)
    return dataset, (time.perf_counter() - started) * 1000


def _provider_dimensions(provider: FactProvider) -> Dimensions:
    dims = getattr(provider, "dims", None)
    if isinstance(dims, Dimensions):
        return dims
    return _LookupDimensions(provider)


class _LookupDimensions(Dimensions):
    """Dimensions view delegating to an arbitrary provider's lookups."""

    def __init__(self, provider: FactProvider) -> None:
        super().__init__()
        self._provider = provider

    def lookup_customer(self, customer_id):
        return self._provider.lookup_customer(customer_id)

    def lookup_product(self, product_id):
        return self._provider.lookup_product(product_id)

    def lookup_geo(self, geo_key):
        return self._provider.lookup_geo(geo_key)


class MetricEngine:
    """Compute the configured metric datasets from a fact provider."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def run(self, provider: FactProvider) -> dict[str, MetricDataset]:
        """Run every selected component over one snapshot of the facts.

        Returns
        -------
        dict[str, MetricDataset]
            Datasets keyed by name, in the order the components were selected.
        """
        facts = tuple(provider.stream_facts())
        dims = _provider_dimensions(provider)
        names = self.config.selected_components()
        as_of_date = self.config.resolved_as_of_date()
        use_parallel = (
            self.config.parallel
            and len(names) > 1
            and len(facts) >= self.config.parallel_threshold
        )
        if use_parallel and isinstance(dims, _LookupDimensions):
            # provider-backed lookups may not survive pickling
            use_parallel = False

        log = logger.bind(
            fact_count=len(facts),
            components=len(names),
            as_of_date=as_of_date.isoformat(),
        )
        log.info("metric_engine_started", parallel=use_parallel)

        jobs = [
            (name, facts, dims, self.config.component_options(name, as_of_date))
            for name in names
        ]
        if use_parallel:
            workers = self.config.n_workers or os.cpu_count() or 1
            with multiprocessing.Pool(processes=min(workers, len(jobs))) as pool:
                outcomes = pool.starmap(_run_component, jobs)
        else:
            outcomes = [_run_component(*job) for job in jobs]

        results: dict[str, MetricDataset] = {}
        for name, (dataset, elapsed_ms) in zip(names, outcomes):
            log.info(
                "metric_component_completed",
                component=name,
                rows=len(dataset),
                skipped_records=dataset.skipped_records,
                duration_ms=round(elapsed_ms, 2),
            )
            if dataset.skipped_records:
                log.warning(
                    "metric_component_skipped_records",
                    component=name,
                    skipped_records=dataset.skipped_records,
                )
            results[name] = dataset

        log.info("metric_engine_completed", datasets=len(results))
        return results


def compute_all(
    facts: Sequence[FactRecord],
    dims: Dimensions,
    config: EngineConfig | None = None,
) -> dict[str, MetricDataset]:
    """Convenience wrapper running :class:`MetricEngine` on in-memory facts."""
    return MetricEngine(config).run(InMemoryFactProvider(facts, dims))
