"""Metric helpers for probability outputs of the binary classifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np

from ..core.types import Array

DEFAULT_THRESHOLD = 0.5


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


def default_metrics() -> List[str]:
    return ["accuracy", "precision", "recall", "f1", "mse"]


def _labels(values: Array, threshold: float) -> Array:
    return (np.asarray(values, dtype=np.float64).reshape(-1) > threshold).astype(int)


def compute_metric(
    name: str,
    predictions: Array,
    targets: Array,
    *,
    threshold: float = DEFAULT_THRESHOLD,
) -> MetricResult:
    """Compute ``name`` for sigmoid ``predictions`` against binary ``targets``.

    Predictions above ``threshold`` count as the positive class; targets are
    thresholded at 0.5.
    """

    key = name.lower()
    preds = np.asarray(predictions, dtype=np.float64).reshape(-1)
    targs = np.asarray(targets, dtype=np.float64).reshape(-1)
    if preds.size == 0:
        return MetricResult(name=key, value=0.0)
    if key == "mse":
        value = float(np.mean((preds - targs) ** 2))
    elif key == "mae":
        value = float(np.mean(np.abs(preds - targs)))
    elif key == "accuracy":
        value = float(np.mean(_labels(preds, threshold) == _labels(targs, DEFAULT_THRESHOLD)))
    elif key in {"precision", "recall", "f1"}:
        pred_idx = _labels(preds, threshold)
        targ_idx = _labels(targs, DEFAULT_THRESHOLD)
        tp = float(np.sum((pred_idx == 1) & (targ_idx == 1)))
        fp = float(np.sum((pred_idx == 1) & (targ_idx == 0)))
        fn = float(np.sum((pred_idx == 0) & (targ_idx == 1)))
        precision = tp / (tp + fp + 1e-9)
        recall = tp / (tp + fn + 1e-9)
        if key == "precision":
            value = float(precision)
        elif key == "recall":
            value = float(recall)
        else:
            value = float(2 * precision * recall / (precision + recall + 1e-9))
    else:
        raise KeyError(f"Unknown metric: {name}")
    return MetricResult(name=key, value=value)


def compute_metrics(
    names: Iterable[str],
    predictions: Array,
    targets: Array,
    *,
    threshold: float = DEFAULT_THRESHOLD,
) -> Mapping[str, float]:
    results: Dict[str, float] = {}
    for name in names:
        metric = compute_metric(name, predictions, targets, threshold=threshold)
        results[metric.name] = metric.value
    return results


__all__ = ["MetricResult", "default_metrics", "compute_metric", "compute_metrics"]
