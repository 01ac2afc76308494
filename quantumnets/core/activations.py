"""Activation utilities for QuantumNets."""

from __future__ import annotations

import numpy as np

from .types import Array

SIGMOID_CLAMP = 500.0


def leaky_relu(x: Array, alpha: float = 0.01) -> Array:
    """Return ``x`` where positive, ``alpha * x`` elsewhere."""

    return np.where(x > 0.0, x, alpha * x)


def leaky_relu_deriv(x: Array, alpha: float = 0.01) -> Array:
    return np.where(x > 0.0, 1.0, alpha)


def sigmoid(x: Array) -> Array:
    """Logistic sigmoid with the input clamped to ``[-500, 500]``."""

    z = np.clip(x, -SIGMOID_CLAMP, SIGMOID_CLAMP)
    return 1.0 / (1.0 + np.exp(-z))


def sigmoid_deriv(x: Array) -> Array:
    s = sigmoid(x)
    return s * (1.0 - s)
