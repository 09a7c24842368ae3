"""End-to-end tests for the compute-sales-metrics command."""

import json
from datetime import date

import pandas as pd
import pytest

from sales_metrics.cli import compute_metrics_cli
from sales_metrics.pandas import facts_to_dataframe
from sales_metrics.synthetic import SalesScenario, generate_sales_dataset


@pytest.fixture
def csv_inputs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    facts, dims = generate_sales_dataset(
        15, date(2022, 6, 1), date(2023, 6, 30), scenario=SalesScenario(seed=5)
    )
    facts_to_dataframe(facts).to_csv(tmp_path / "facts.csv", index=False)
    pd.DataFrame([vars(c) for c in dims.customers]).to_csv(
        tmp_path / "customers.csv", index=False
    )
    pd.DataFrame([vars(p) for p in dims.products]).to_csv(
        tmp_path / "products.csv", index=False
    )
    pd.DataFrame([vars(g) for g in dims.geos]).to_csv(tmp_path / "geos.csv", index=False)
    return tmp_path, facts


def _base_args(root):
    return [
        str(root / "facts.csv"),
        "--customers",
        str(root / "customers.csv"),
        "--products",
        str(root / "products.csv"),
        "--geos",
        str(root / "geos.csv"),
        "--as-of-date",
        "2023-07-01",
        "--serial",
    ]


class TestComputeMetricsCLI:
    """Test the CLI over generated CSV inputs."""

    def test_writes_one_file_per_dataset(self, csv_inputs):
        root, facts = csv_inputs
        exit_code = compute_metrics_cli(_base_args(root) + ["--output-dir", "out"])

        assert exit_code == 0
        written = sorted(path.name for path in (root / "out").iterdir())
        assert "metrics_rfm.json" in written
        assert len(written) == 12

        kpi = json.loads((root / "out" / "metrics_kpi_summary.json").read_text())
        assert kpi["name"] == "metrics_kpi_summary"
        assert kpi["skipped_records"] == 0
        assert kpi["rows"][0]["total_orders"] == len({f.order_id for f in facts})
        assert kpi["rows"][0]["total_sales"] == pytest.approx(
            float(sum(f.sales for f in facts)), abs=0.01
        )

    def test_selected_components_to_stdout(self, csv_inputs, capsys):
        root, _ = csv_inputs
        exit_code = compute_metrics_cli(
            _base_args(root)
            + ["--component", "metrics_yoy_growth", "--component", "metrics_rfm"]
        )

        assert exit_code == 0
        payload = json.loads(capsys.readouterr().out)
        assert sorted(payload) == ["metrics_rfm", "metrics_yoy_growth"]
        years = [row["year"] for row in payload["metrics_yoy_growth"]["rows"]]
        assert years == [2022, 2023]
        assert payload["metrics_yoy_growth"]["rows"][0]["sales_growth_percent"] is None

    def test_output_dir_outside_cwd_rejected(self, csv_inputs, tmp_path_factory):
        root, _ = csv_inputs
        outside = tmp_path_factory.mktemp("elsewhere")
        with pytest.raises(ValueError, match="must reside within the current working directory"):
            compute_metrics_cli(_base_args(root) + ["--output-dir", str(outside)])

    def test_dimension_files_are_size_limited(self, csv_inputs, monkeypatch):
        """Dimension CSVs share the input size cap applied to the fact file."""
        root, _ = csv_inputs
        limit = (root / "facts.csv").stat().st_size
        padding = pd.DataFrame(
            {
                "customer_id": [f"C-pad-{i}" for i in range(limit // 10 + 1)],
                "customer_name": "Padding Customer",
                "segment": "Consumer",
            }
        )
        padding.to_csv(root / "customers.csv", index=False)
        monkeypatch.setattr("sales_metrics.cli.MAX_INPUT_BYTES", limit)

        with pytest.raises(ValueError, match=r"customers\.csv.*exceeds limit"):
            compute_metrics_cli(_base_args(root))

    def test_unknown_component_rejected(self, csv_inputs):
        root, _ = csv_inputs
        with pytest.raises(SystemExit):
            compute_metrics_cli(_base_args(root) + ["--component", "metrics_nope"])
