"""Objective closures that score hyperparameters by training a fresh network."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Mapping, Sequence

import numpy as np

from ..core.network import Network
from ..core.types import Hyperparameters
from ..training.metrics import compute_metric
from ..training.trainer import ExampleLike, Trainer, stack_examples
from .quantum import OptimizationResult, QuantumOptimizer
from .space import NETWORK_SEARCH_SPACE, SearchSpace

logger = logging.getLogger(__name__)

# Keys a search space may tune besides the network hyperparameters.
TRAINING_KEYS = ("epochs", "batch_size")


class NetworkObjective:
    """Validation accuracy of a briefly trained network, as a fitness.

    Every call builds a brand-new :class:`Network` (no state is shared between
    candidates) whose generator is seeded from this objective's own seeded
    stream, so a fixed ``seed`` makes the whole evaluation sequence
    reproducible.
    """

    def __init__(
        self,
        examples: Iterable[ExampleLike],
        validation: Iterable[ExampleLike],
        *,
        layer_dims: Sequence[int],
        base: Hyperparameters | None = None,
        epochs: int = 10,
        batch_size: int = 16,
        subset_size: int = 100,
        validation_split: float = 0.0,
        threshold: float = 0.5,
        seed: int = 0,
    ) -> None:
        self.layer_dims = [int(d) for d in layer_dims]
        input_dim, output_dim = self.layer_dims[0], self.layer_dims[-1]
        train_x, train_y = stack_examples(examples, input_dim, output_dim)
        self.train_x = train_x[:subset_size]
        self.train_y = train_y[:subset_size]
        self.val_x, self.val_y = stack_examples(validation, input_dim, output_dim)
        if self.val_x.shape[0] == 0:
            raise ValueError("NetworkObjective needs at least one validation example")
        self.base = base or Hyperparameters()
        self.epochs = int(epochs)
        self.batch_size = int(batch_size)
        self.validation_split = float(validation_split)
        self.threshold = float(threshold)
        self.rng = np.random.default_rng(seed)
        self.calls = 0

    def build_network(self, params: Mapping[str, object]) -> Network:
        network_params, _ = split_params(params)
        hyperparameters = self.base.replace(**network_params)  # type: ignore[arg-type]
        child = np.random.default_rng(int(self.rng.integers(0, 2**63 - 1)))
        return Network(layer_dims=self.layer_dims, hyperparameters=hyperparameters, rng=child)

    def __call__(self, params: Mapping[str, object]) -> float:
        self.calls += 1
        network = self.build_network(params)
        trainer = Trainer(network)
        trainer.train(
            list(zip(self.train_x, self.train_y)),
            epochs=int(params.get("epochs", self.epochs)),  # type: ignore[arg-type]
            batch_size=int(params.get("batch_size", self.batch_size)),  # type: ignore[arg-type]
            validation_split=self.validation_split,
            patience=int(params.get("epochs", self.epochs)),  # type: ignore[arg-type]
        )
        predictions = network.predict_batch(self.val_x)
        accuracy = compute_metric("accuracy", predictions, self.val_y, threshold=self.threshold).value
        logger.debug("Candidate %s scored %.4f", dict(params), accuracy)
        return accuracy


def tune_network(
    examples: Iterable[ExampleLike],
    validation: Iterable[ExampleLike],
    *,
    layer_dims: Sequence[int],
    space: SearchSpace | Mapping[str, object] | None = None,
    population_size: int = 20,
    max_iterations: int = 100,
    seed: int = 0,
    objective_options: Mapping[str, object] | None = None,
    optimizer_options: Mapping[str, object] | None = None,
    callbacks: Sequence[object] | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> OptimizationResult:
    """Search network hyperparameters that maximise validation accuracy."""

    objective = NetworkObjective(
        examples,
        validation,
        layer_dims=layer_dims,
        seed=seed,
        **dict(objective_options or {}),  # type: ignore[arg-type]
    )
    optimizer = QuantumOptimizer(
        space if space is not None else NETWORK_SEARCH_SPACE,
        population_size=population_size,
        max_iterations=max_iterations,
        seed=seed,
        callbacks=callbacks,
        **dict(optimizer_options or {}),  # type: ignore[arg-type]
    )
    result = optimizer.optimize(objective, should_stop=should_stop)
    logger.info(
        "Tuning finished after %d iteration(s) (%s): best accuracy %.4f with %s",
        result.iterations,
        result.state,
        result.best_fitness,
        result.best_params,
    )
    return result


def split_params(params: Mapping[str, object]) -> tuple[Dict[str, object], Dict[str, object]]:
    """Separate network hyperparameters from training options in ``params``."""

    network = {k: v for k, v in params.items() if k not in TRAINING_KEYS}
    training = {k: v for k, v in params.items() if k in TRAINING_KEYS}
    return network, training


__all__ = ["NetworkObjective", "TRAINING_KEYS", "split_params", "tune_network"]
