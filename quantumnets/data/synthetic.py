"""Pure in-memory synthetic binary classification datasets."""

from __future__ import annotations

import numpy as np

from .registry import DatasetSpec, register_dataset
from .utils import deterministic_split, to_examples

XOR_FEATURES = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
XOR_TARGETS = np.array([0.0, 1.0, 1.0, 0.0])


def _make_blobs(
    n_points: int, input_dim: int, separation: float, noise: float, seed: int
) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    y = (np.arange(n_points) % 2).astype(np.float64)
    centres = np.where(y[:, None] > 0.5, separation / 2.0, -separation / 2.0)
    x = centres + noise * rng.standard_normal((n_points, input_dim))
    return x, y


@register_dataset("synthetic")
def load_synthetic(
    *,
    n_points: int = 200,
    input_dim: int = 2,
    separation: float = 2.0,
    noise: float = 0.5,
    val_split: float = 0.2,
    test_split: float = 0.2,
    seed: int = 0,
    **_: object,
) -> DatasetSpec:
    """Two Gaussian blobs labelled 0 and 1, centred at -/+ ``separation / 2``."""

    x, y = _make_blobs(n_points, input_dim, separation, noise, seed)
    splits = deterministic_split(
        x.shape[0], val_split=val_split, test_split=test_split, seed=seed
    )
    provenance = {
        "type": "synthetic",
        "n_points": n_points,
        "input_dim": input_dim,
        "separation": separation,
        "noise": noise,
        "seed": seed,
        "val_split": val_split,
        "test_split": test_split,
    }
    return DatasetSpec(
        name="synthetic",
        input_dim=int(input_dim),
        train=to_examples(x, y, splits.train),
        val=to_examples(x, y, splits.val),
        test=to_examples(x, y, splits.test),
        provenance=provenance,
    )


@register_dataset("xor")
def load_xor(*, repeats: int = 1, **_: object) -> DatasetSpec:
    """The four XOR points; every split sees the same examples."""

    if repeats < 1:
        raise ValueError("repeats must be >= 1")
    x = np.tile(XOR_FEATURES, (repeats, 1))
    y = np.tile(XOR_TARGETS, repeats)
    indices = np.arange(x.shape[0])
    examples = to_examples(x, y, indices)
    return DatasetSpec(
        name="xor",
        input_dim=2,
        train=examples,
        val=list(examples),
        test=list(examples),
        provenance={"type": "fixture", "repeats": repeats},
    )


__all__ = ["load_synthetic", "load_xor"]
