"""Core typing contracts for QuantumNets."""

from __future__ import annotations

import dataclasses
import numbers
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from .errors import InvalidHyperparameterError

Array = np.ndarray

Gradients = Dict[str, Array]


@dataclass(frozen=True)
class TrainingExample:
    """A fixed-length feature vector paired with its target."""

    features: Union[Sequence[float], Array]
    target: Union[float, Sequence[float], Array]


@dataclass
class LayerSpec:
    """Weights ``[outputs x inputs]``, biases ``[outputs]`` and activation kind."""

    weights: Array
    biases: Array
    activation: str = "leaky_relu"

    @property
    def fan_in(self) -> int:
        return int(self.weights.shape[1])

    @property
    def fan_out(self) -> int:
        return int(self.weights.shape[0])


@dataclass
class Velocity:
    """Momentum accumulator shaped like a :class:`LayerSpec`."""

    weights: Array
    biases: Array

    @classmethod
    def zeros_like(cls, layer: LayerSpec) -> "Velocity":
        return cls(weights=np.zeros_like(layer.weights), biases=np.zeros_like(layer.biases))


@dataclass(frozen=True)
class Hyperparameters:
    """Training-control scalars of a :class:`~quantumnets.core.network.Network`."""

    learning_rate: float = 0.1
    momentum: float = 0.9
    l2: float = 1e-4
    dropout: float = 0.1
    leaky_alpha: float = 0.01

    def __post_init__(self) -> None:
        for item in dataclasses.fields(self):
            value = getattr(self, item.name)
            if not isinstance(value, numbers.Real) or not np.isfinite(value):
                raise InvalidHyperparameterError(f"{item.name} must be a finite number, got {value!r}")
            object.__setattr__(self, item.name, float(value))
        if self.learning_rate <= 0:
            raise InvalidHyperparameterError("learning_rate must be positive")
        if not 0.0 <= self.momentum < 1.0:
            raise InvalidHyperparameterError("momentum must be in [0, 1)")
        if self.l2 < 0:
            raise InvalidHyperparameterError("l2 must be non-negative")
        if not 0.0 <= self.dropout < 1.0:
            raise InvalidHyperparameterError("dropout must be in [0, 1)")
        if self.leaky_alpha < 0:
            raise InvalidHyperparameterError("leaky_alpha must be non-negative")

    def replace(self, **changes: float) -> "Hyperparameters":
        unknown = set(changes) - set(self.to_dict())
        if unknown:
            names = ", ".join(sorted(unknown))
            raise InvalidHyperparameterError(f"Unknown hyperparameters: {names}")
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, object] | None) -> "Hyperparameters":
        return cls().replace(**dict(mapping or {}))


@dataclass
class ForwardResult:
    """Intermediate values captured during the forward pass.

    ``activations`` starts with the layer input, so ``activations[i]`` feeds
    layer ``i``. ``dropout_masks[i]`` is ``None`` whenever dropout was inactive
    for layer ``i`` (always for the output layer).
    """

    activations: List[Array]
    pre_activations: List[Array]
    dropout_masks: List[Optional[Array]]

    @property
    def output(self) -> Array:
        return self.activations[-1]


@dataclass(frozen=True)
class TrainResult:
    """Summary returned by :meth:`quantumnets.training.trainer.Trainer.train`."""

    epochs_run: int
    final_loss: float | None
    final_val_loss: float | None
    best_val_loss: float | None
    stopped_early: bool
    training_loss: List[float] = field(default_factory=list)
    validation_loss: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`quantumnets.training.pipelines.run_pipeline`."""

    epochs: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    model_path: str = ""
    tuning_path: str = ""
