"""Capability interfaces consumed by the surrounding application."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol, Sequence, runtime_checkable

import numpy as np

from .core.network import Network
from .core.types import Hyperparameters, TrainResult
from .training.trainer import ExampleLike, Trainer


@runtime_checkable
class Predictor(Protocol):
    """Anything that maps a feature vector to a probability."""

    def predict(self, features: Sequence[float]) -> float:
        """Return the predicted probability for ``features``."""


@runtime_checkable
class TrainablePredictor(Predictor, Protocol):
    """A :class:`Predictor` that can also learn from labelled examples."""

    def train(self, examples: Iterable[ExampleLike]) -> TrainResult:
        """Fit on ``examples`` and return training statistics."""


@dataclass
class NetworkPredictor:
    """Expose a :class:`Network` through the predictor interfaces."""

    network: Network
    train_options: Mapping[str, object] = field(default_factory=dict)
    callbacks: Sequence[object] = ()

    @classmethod
    def create(
        cls,
        layer_dims: Sequence[int],
        hyperparameters: Hyperparameters | None = None,
        *,
        seed: int = 0,
        **train_options: object,
    ) -> "NetworkPredictor":
        network = Network(layer_dims, hyperparameters or Hyperparameters(), seed=seed)
        return cls(network=network, train_options=train_options)

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, object], *, seed: int = 0) -> "NetworkPredictor":
        return cls(network=Network.from_snapshot(snapshot, seed=seed))

    def predict(self, features: Sequence[float]) -> float:
        return float(self.network.predict(features))  # type: ignore[arg-type]

    def train(self, examples: Iterable[ExampleLike]) -> TrainResult:
        return Trainer(self.network, callbacks=self.callbacks).train(
            examples, **dict(self.train_options)  # type: ignore[arg-type]
        )

    def retune(self, hyperparameters: Hyperparameters | Mapping[str, object]) -> "NetworkPredictor":
        """Return a predictor over a new network carrying ``hyperparameters``.

        Weights, biases and histories are carried over through a snapshot; the
        momentum state starts from zero. The current network is left untouched.
        """

        if not isinstance(hyperparameters, Hyperparameters):
            hyperparameters = self.network.hyperparameters.replace(**dict(hyperparameters))  # type: ignore[arg-type]
        snapshot = self.network.to_snapshot()
        snapshot["hyperparameters"] = hyperparameters.to_dict()
        child = np.random.default_rng(int(self.network.rng.integers(0, 2**63 - 1)))
        network = Network.from_snapshot(snapshot, rng=child)
        return NetworkPredictor(network=network, train_options=self.train_options, callbacks=self.callbacks)

    def snapshot(self) -> Mapping[str, object]:
        return self.network.to_snapshot()


__all__ = ["NetworkPredictor", "Predictor", "TrainablePredictor"]
