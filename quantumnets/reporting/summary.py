"""Deterministic run summarisation helpers."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import numpy as np

_COUNTERS = {"step", "epoch", "iteration", "seed"}


def _area(y: np.ndarray, x: np.ndarray) -> float:
    trapezoid = getattr(np, "trapezoid", None)
    if callable(trapezoid):
        return float(trapezoid(y, x))
    return float(np.trapz(y, x))


def compute_auc(points: Sequence[float]) -> float:
    """Return the area-under-curve of ``points`` along an implicit step axis."""

    if not points:
        return 0.0
    y = np.asarray(points, dtype=np.float64)
    x = np.arange(len(points), dtype=np.float64)
    return _area(y, x)


def _extract_numeric(records: Iterable[Mapping[str, object]]) -> Mapping[str, list[float]]:
    metrics: dict[str, list[float]] = {}
    for record in records:
        for key, value in record.items():
            if key in _COUNTERS or isinstance(value, bool):
                continue
            # Failed optimizer evaluations surface as -inf; keep them out of the stats.
            if isinstance(value, (int, float)) and math.isfinite(value):
                metrics.setdefault(key, []).append(float(value))
    return metrics


def _build_summary(records: list[Mapping[str, object]], tail: int) -> Mapping[str, object]:
    metrics = _extract_numeric(records)
    tail_window = min(tail, len(records)) if records else 0
    summary_metrics: dict[str, Mapping[str, float]] = {}
    for name, values in metrics.items():
        if not values:
            continue
        arr = np.asarray(values, dtype=np.float64)
        tail_arr = arr[-tail_window:] if tail_window else arr[:0]
        summary_metrics[name] = {
            "min": float(np.min(arr)),
            "max": float(np.max(arr)),
            "mean": float(np.mean(arr)),
            "last": float(arr[-1]),
            "tail_auc": compute_auc(tail_arr.tolist()) if tail_window else 0.0,
        }

    return {
        "version": 1,
        "records": len(records),
        "tail_window": tail_window,
        "metrics": summary_metrics,
    }


def read_records(metrics_jsonl: str | Path) -> list[Mapping[str, object]]:
    """Return the JSON records of ``metrics_jsonl``; a missing file yields ``[]``."""

    path = Path(metrics_jsonl)
    records: list[Mapping[str, object]] = []
    if path.exists():
        for line in path.read_text().splitlines():
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records


def write_summary(
    metrics_jsonl: str | Path,
    out_summary_json: str | Path,
    *,
    tail: int = 32,
    extra: Mapping[str, object] | None = None,
) -> str:
    """Write a deterministic summary for ``metrics_jsonl``.

    ``extra`` entries (for instance the final training statistics) are merged
    into the top level of the summary.
    """

    out_path = Path(out_summary_json)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    summary = dict(_build_summary(read_records(metrics_jsonl), tail))
    if extra:
        summary.update(dict(extra))
    out_path.write_text(json.dumps(summary, sort_keys=True, indent=2))
    return str(out_path)


__all__ = ["compute_auc", "read_records", "write_summary"]
