import csv
import json
import math

from quantumnets.reporting.artifacts import write_manifest
from quantumnets.reporting.metrics import CsvSink, JsonlSink
from quantumnets.reporting.plots import PlotAdapter
from quantumnets.reporting.summary import compute_auc, write_summary


def test_jsonl_sink_records_epochs_and_iterations(tmp_path):
    epochs = JsonlSink(tmp_path / "train.jsonl", seed=3, sha="abc")
    epochs.on_epoch(1, {"loss": 0.5, "note": "ignored"})
    epochs(2, {"loss": 0.25})
    records = [json.loads(line) for line in (tmp_path / "train.jsonl").read_text().splitlines()]
    assert records[0] == {"epoch": 1, "split": "train", "seed": 3, "sha": "abc", "loss": 0.5}
    assert records[1]["epoch"] == 2

    tuning = JsonlSink(tmp_path / "tune.jsonl", split="tune", sha="abc", step_key="iteration")
    tuning.on_iteration(0, {"best_fitness": 0.8, "avg_fitness": 0.6})
    record = json.loads((tmp_path / "tune.jsonl").read_text())
    assert record["iteration"] == 0 and record["best_fitness"] == 0.8


def test_csv_sink_writes_header_once(tmp_path):
    sink = CsvSink(tmp_path / "metrics.csv")
    sink.on_epoch(1, {"loss": 1.0, "accuracy": 0.5})
    sink.on_epoch(2, {"loss": 0.5, "accuracy": 0.75})
    with (tmp_path / "metrics.csv").open() as handle:
        rows = list(csv.DictReader(handle))
    assert [row["epoch"] for row in rows] == ["1", "2"]
    assert set(rows[0]) == {"accuracy", "epoch", "loss", "split"}


def test_plot_adapter_headless(tmp_path):
    adapter = PlotAdapter(tmp_path, enable_plots=True)
    adapter.on_epoch(1, {"loss": 1.0, "val_loss": 1.2})
    adapter.on_epoch(2, {"loss": 0.5, "val_loss": 0.9})
    adapter.on_iteration(0, {"best_fitness": 0.4, "avg_fitness": 0.2})
    written = adapter.close()
    assert (tmp_path / "loss.png").exists()
    assert (tmp_path / "convergence.png").exists()
    assert len(written) == 2


def test_plot_adapter_disabled_writes_nothing(tmp_path):
    adapter = PlotAdapter(tmp_path / "plots", enable_plots=False)
    adapter.on_epoch(1, {"loss": 1.0})
    assert adapter.close() == []
    assert not (tmp_path / "plots").exists()


def test_summary_skips_counters_and_failed_fitness(tmp_path):
    metrics = tmp_path / "metrics.jsonl"
    rows = [
        {"iteration": 0, "seed": 1, "best_fitness": -math.inf, "avg_fitness": -math.inf},
        {"iteration": 1, "seed": 1, "best_fitness": 0.5, "avg_fitness": 0.25},
        {"iteration": 2, "seed": 1, "best_fitness": 0.75, "avg_fitness": 0.5},
    ]
    metrics.write_text("".join(json.dumps(row) + "\n" for row in rows))
    path = write_summary(metrics, tmp_path / "summary.json", tail=2, extra={"epochs_run": 3})
    summary = json.loads(open(path).read())
    assert summary["records"] == 3
    assert summary["epochs_run"] == 3
    assert set(summary["metrics"]) == {"best_fitness", "avg_fitness"}
    assert summary["metrics"]["best_fitness"]["min"] == 0.5
    assert summary["metrics"]["best_fitness"]["last"] == 0.75
    assert compute_auc([1.0, 1.0, 1.0]) == 2.0


def test_manifest_contains_config_and_provenance(tmp_path):
    path = write_manifest(
        tmp_path / "manifest.json",
        config={"train": {"seed": 1}},
        dataset_provenance={"type": "fixture"},
        extra={"run_id": "abc"},
    )
    manifest = json.loads(open(path).read())
    assert manifest["config"]["train"]["seed"] == 1
    assert manifest["dataset"] == {"type": "fixture"}
    assert manifest["run_id"] == "abc"
    assert "git_sha" in manifest and "generated_at" in manifest
