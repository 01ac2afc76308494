"""Metric sinks for training epochs and optimizer iterations."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Mapping

from .artifacts import _git_sha


def _numeric(metrics: Mapping[str, object]) -> dict[str, float]:
    return {k: float(v) for k, v in metrics.items() if isinstance(v, (int, float))}


class JsonlSink:
    """Append-only JSONL writer for metrics.

    The sink truncates ``path`` on construction, so one instance maps to one
    file. ``step_key`` names the counter column: ``"epoch"`` for a
    :class:`~quantumnets.training.trainer.Trainer` and ``"iteration"`` for a
    :class:`~quantumnets.optim.quantum.QuantumOptimizer`.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        split: str = "train",
        seed: int | None = None,
        sha: str | None = None,
        step_key: str = "epoch",
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.seed = seed
        self.sha = sha or _git_sha()
        self.step_key = step_key

    def _write(self, step: int, metrics: Mapping[str, object]) -> None:
        record: dict[str, object] = {
            self.step_key: int(step),
            "split": self.split,
            "seed": self.seed,
            "sha": self.sha,
        }
        record.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    def on_epoch(self, epoch: int, metrics: Mapping[str, object]) -> None:
        self._write(epoch, metrics)

    def on_iteration(self, iteration: int, metrics: Mapping[str, object]) -> None:
        self._write(iteration, metrics)

    __call__ = on_epoch


class CsvSink:
    """Write metrics to CSV with a stable, sorted column order."""

    def __init__(self, path: str | Path, *, split: str = "train", step_key: str = "epoch") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.step_key = step_key

    def _write(self, step: int, metrics: Mapping[str, object]) -> None:
        row: dict[str, object] = {self.step_key: int(step), "split": self.split}
        row.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=sorted(row.keys()))
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    def on_epoch(self, epoch: int, metrics: Mapping[str, object]) -> None:
        self._write(epoch, metrics)

    def on_iteration(self, iteration: int, metrics: Mapping[str, object]) -> None:
        self._write(iteration, metrics)


__all__ = ["CsvSink", "JsonlSink"]
