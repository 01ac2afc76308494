"""Error taxonomy shared by the network, trainer and optimizer."""

from __future__ import annotations

from typing import Mapping


class QuantumNetsError(Exception):
    """Base class for errors raised by QuantumNets."""


class DimensionError(QuantumNetsError, ValueError):
    """A vector length disagrees with the configured layer dimension."""


class NumericInstabilityError(QuantumNetsError, ArithmeticError):
    """A pass produced non-finite values."""


class InvalidHyperparameterError(QuantumNetsError, ValueError):
    """Malformed bounds, unknown encoding or out-of-range hyperparameter."""


class ObjectiveEvaluationFailure(QuantumNetsError):
    """The externally supplied objective raised for one candidate.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, params: Mapping[str, object], message: str) -> None:
        super().__init__(message)
        self.params = dict(params)


__all__ = [
    "QuantumNetsError",
    "DimensionError",
    "NumericInstabilityError",
    "InvalidHyperparameterError",
    "ObjectiveEvaluationFailure",
]
