"""Command line entry points for the sales metric engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd
import structlog

from sales_metrics.engine import COMPONENTS, EngineConfig, MetricEngine
from sales_metrics.foundation.facts import InMemoryFactProvider
from sales_metrics.observability import configure_logging
from sales_metrics.pandas import dataframe_to_facts, dataframes_to_dimensions

logger = structlog.get_logger(__name__)


MAX_INPUT_BYTES = 100 * 1024 * 1024  # 100 MiB cap to avoid accidental OOM


# ids stay strings; money is parsed from text to keep Decimal precision
FACT_DTYPES = {
    "order_id": str,
    "customer_id": str,
    "product_id": str,
    "geo_key": str,
    "sales": str,
    "profit": str,
    "shipping_cost": str,
}


def _read_csv(path: Path, dtype: Any = str) -> pd.DataFrame:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    return pd.read_csv(resolved, dtype=dtype)


def _resolve_output_dir(path: Path) -> Path:
    output_dir = path.resolve()
    cwd = Path.cwd().resolve()
    try:
        output_dir.relative_to(cwd)
    except ValueError:
        raise ValueError(
            f"Output directory {output_dir} must reside within the current working directory"
        )
    return output_dir


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute sales metric datasets from fact and dimension CSV files."
    )
    parser.add_argument("facts", type=Path, help="CSV file with fact records")
    parser.add_argument("--customers", type=Path, required=True, help="Customer dimension CSV")
    parser.add_argument("--products", type=Path, required=True, help="Product dimension CSV")
    parser.add_argument("--geos", type=Path, required=True, help="Geography dimension CSV")
    parser.add_argument(
        "--as-of-date",
        type=date.fromisoformat,
        help="Reference date for RFM recency (YYYY-MM-DD, defaults to today).",
    )
    parser.add_argument(
        "--component",
        dest="components",
        action="append",
        choices=sorted(COMPONENTS),
        help="Dataset to compute; repeat for several (defaults to all).",
    )
    parser.add_argument(
        "--product-limit", type=int, help="Keep only the top N products by sales."
    )
    parser.add_argument(
        "--workers", type=int, help="Worker processes for parallel computation."
    )
    parser.add_argument(
        "--serial", action="store_true", help="Disable parallel computation."
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Directory for one JSON file per dataset (defaults to stdout).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    return parser


def compute_metrics_cli(argv: list[str] | None = None) -> int:
    """Compute metric datasets and write them as JSON."""

    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    overrides: dict[str, Any] = {
        "as_of_date": args.as_of_date,
        "components": args.components,
        "product_limit": args.product_limit,
        "n_workers": args.workers,
    }
    if args.serial:
        overrides["parallel"] = False
    config = EngineConfig.from_env(**overrides)

    facts = dataframe_to_facts(_read_csv(args.facts, FACT_DTYPES))
    dims = dataframes_to_dimensions(
        _read_csv(args.customers),
        _read_csv(args.products),
        _read_csv(args.geos),
    )
    logger.info(
        "inputs_loaded",
        facts=len(facts),
        customers=len(dims.customers),
        products=len(dims.products),
        geos=len(dims.geos),
    )

    datasets = MetricEngine(config).run(InMemoryFactProvider(facts, dims))

    if args.output_dir:
        output_dir = _resolve_output_dir(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, dataset in datasets.items():
            output_path = output_dir / f"{name}.json"
            with output_path.open("w", encoding="utf-8") as fh:
                json.dump(dataset.as_dict(), fh, indent=2, sort_keys=True)
            logger.info("dataset_written", dataset=name, path=str(output_path))
    else:  # stdout fallback enables piping in shell usage.
        payload = {name: dataset.as_dict() for name, dataset in datasets.items()}
        json.dump(payload, fp=sys.stdout, indent=2, sort_keys=True)
        print()

    return 0


def main() -> None:  # pragma: no cover - thin wrapper
    sys.exit(compute_metrics_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
