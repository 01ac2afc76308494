"""Binary classification datasets read from CSV files."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from .registry import DatasetSpec, register_dataset
from .utils import deterministic_split, standardize, to_examples

FIXTURE_DIR = Path(__file__).resolve().parent / "_fixtures"


def _load_csv(path: Path, target_col: str) -> tuple[np.ndarray, np.ndarray, list]:
    df = pd.read_csv(path)
    if target_col not in df.columns:
        raise KeyError(f"Target column {target_col!r} not found in CSV")
    codes, classes = pd.factorize(df.pop(target_col), sort=True)
    if len(classes) != 2:
        raise ValueError(
            f"Target column {target_col!r} must hold exactly two classes, got {len(classes)}"
        )
    X = df.to_numpy(dtype=np.float64)
    return X, codes.astype(np.float64), classes.tolist()


@register_dataset("csv")
def load_csv(
    *,
    csv_path: str | Path | None = None,
    target_col: str = "target",
    val_split: float = 0.2,
    test_split: float = 0.2,
    seed: int = 0,
    standardize_inputs: bool = True,
    **_: object,
) -> DatasetSpec:
    """Load a two-class table; the sorted first class maps to target 0."""

    path = Path(csv_path) if csv_path else FIXTURE_DIR / "csv_binary_fixture.csv"
    X, y, classes = _load_csv(path, target_col)

    normalization: dict[str, dict[str, list[float]]] = {}
    if standardize_inputs:
        X, mean, std = standardize(X)
        normalization["inputs"] = {
            "mean": mean.flatten().tolist(),
            "std": std.flatten().tolist(),
        }

    splits = deterministic_split(
        X.shape[0], val_split=val_split, test_split=test_split, seed=seed
    )
    provenance = {
        "path": str(path),
        "target_col": target_col,
        "classes": classes,
        "val_split": val_split,
        "test_split": test_split,
        "seed": seed,
        "normalization": normalization,
    }
    return DatasetSpec(
        name="csv",
        input_dim=int(X.shape[1]),
        train=to_examples(X, y, splits.train),
        val=to_examples(X, y, splits.val),
        test=to_examples(X, y, splits.test),
        provenance=provenance,
    )


__all__ = ["load_csv"]
