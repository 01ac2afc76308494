"""Utility helpers for dataset loaders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping

import numpy as np

from ..core.types import TrainingExample


@dataclass(frozen=True)
class SplitIndices:
    """Indices for train/validation/test partitions."""

    train: np.ndarray
    val: np.ndarray
    test: np.ndarray

    @property
    def sizes(self) -> Mapping[str, int]:
        return {
            "train": int(self.train.size),
            "val": int(self.val.size),
            "test": int(self.test.size),
        }


def deterministic_split(
    n_samples: int,
    *,
    val_split: float = 0.2,
    test_split: float = 0.2,
    seed: int = 0,
) -> SplitIndices:
    """Return seeded shuffled indices for the requested split ratios."""

    if not 0 <= val_split < 1:
        raise ValueError("val_split must be in [0, 1)")
    if not 0 <= test_split < 1:
        raise ValueError("test_split must be in [0, 1)")
    if val_split + test_split >= 1:
        raise ValueError("val_split + test_split must be < 1")

    rng = np.random.default_rng(seed)
    indices = np.arange(n_samples)
    rng.shuffle(indices)

    test_size = int(round(n_samples * test_split))
    val_size = int(round(n_samples * val_split))
    # At least one sample per requested split when possible
    test_size = min(max(test_size, 1 if test_split > 0 else 0), n_samples)
    remaining = n_samples - test_size
    val_size = min(max(val_size, 1 if val_split > 0 else 0), remaining)
    train_size = n_samples - val_size - test_size
    if train_size <= 0:
        raise ValueError("Not enough samples for the requested splits")

    test_idx = indices[:test_size]
    val_idx = indices[test_size : test_size + val_size]
    train_idx = indices[test_size + val_size :]

    return SplitIndices(train=train_idx, val=val_idx, test=test_idx)


def standardize(
    array: np.ndarray,
    *,
    mean: np.ndarray | None = None,
    std: np.ndarray | None = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Apply standard scaling returning the scaled array and parameters."""

    if mean is None or std is None:
        mean = array.mean(axis=0, keepdims=True)
        std = array.std(axis=0, keepdims=True)
        std = np.where(std == 0, 1.0, std)
    scaled = (array - mean) / std
    return scaled, mean, std


def to_examples(features: np.ndarray, targets: np.ndarray, indices: np.ndarray) -> List[TrainingExample]:
    """Build :class:`TrainingExample` objects for the rows in ``indices``."""

    return [
        TrainingExample(features=features[i].tolist(), target=float(targets[i]))
        for i in np.asarray(indices, dtype=int)
    ]
