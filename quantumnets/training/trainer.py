"""Mini-batch training loop with a fixed validation split and early stopping."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Sequence, Union

import numpy as np

from ..core.errors import DimensionError, NumericInstabilityError
from ..core.network import Network
from ..core.types import Array, TrainingExample, TrainResult
from .metrics import compute_metric

logger = logging.getLogger(__name__)

ExampleLike = Union[TrainingExample, Sequence[object], Mapping[str, object]]


def stack_examples(
    examples: Iterable[ExampleLike], input_dim: int, output_dim: int = 1
) -> tuple[Array, Array]:
    """Validate examples and stack them into ``(inputs, targets)`` matrices.

    Accepts :class:`TrainingExample` instances, ``(features, target)`` pairs or
    ``{"features": ..., "target": ...}`` mappings.
    """

    rows: list[Array] = []
    targets: list[Array] = []
    for idx, example in enumerate(examples):
        if isinstance(example, TrainingExample):
            features, target = example.features, example.target
        elif isinstance(example, Mapping):
            features, target = example["features"], example["target"]
        else:
            features, target = example  # type: ignore[misc]
        x = np.asarray(features, dtype=np.float64).reshape(-1)
        y = np.asarray(target, dtype=np.float64).reshape(-1)
        if x.size != input_dim:
            raise DimensionError(f"Example {idx} has {x.size} features, expected {input_dim}")
        if y.size != output_dim:
            raise DimensionError(f"Example {idx} has {y.size} targets, expected {output_dim}")
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
            raise NumericInstabilityError(f"Example {idx} contains non-finite values")
        rows.append(x)
        targets.append(y)
    if not rows:
        return np.zeros((0, input_dim)), np.zeros((0, output_dim))
    return np.vstack(rows), np.vstack(targets)


class Trainer:
    """Drive mini-batch epochs over a :class:`Network`.

    Callbacks are objects with an ``on_epoch(epoch, metrics)`` method or plain
    callables taking the same arguments.
    """

    def __init__(self, network: Network, callbacks: Sequence[object] | None = None) -> None:
        self.network = network
        self.callbacks = list(callbacks or [])

    def train(
        self,
        examples: Iterable[ExampleLike],
        *,
        epochs: int = 50,
        batch_size: int = 32,
        validation_split: float = 0.2,
        patience: int = 10,
        min_loss: float = 1e-5,
        validation: Iterable[ExampleLike] | None = None,
    ) -> TrainResult:
        """Train for up to ``epochs`` epochs and return the loss histories.

        The last ``validation_split`` share of ``examples`` is held out for
        monitoring. Passing ``validation`` monitors that set instead and trains
        on every example; the two options are mutually exclusive.
        """

        if epochs < 0:
            raise ValueError("epochs must be non-negative")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if not 0.0 <= validation_split < 1.0:
            raise ValueError("validation_split must be in [0, 1)")
        if validation is not None and validation_split > 0.0:
            raise ValueError("Pass either validation examples or a validation_split, not both")

        net = self.network
        inputs, targets = stack_examples(examples, net.input_dim, net.output_dim)
        split = int(math.floor(inputs.shape[0] * (1.0 - validation_split)))
        train_x, train_y = inputs[:split], targets[:split]
        val_x, val_y = inputs[split:], targets[split:]
        if validation is not None:
            val_x, val_y = stack_examples(validation, net.input_dim, net.output_dim)
        if epochs and train_x.shape[0] == 0:
            raise ValueError("No training examples left after the validation split")

        checkpoint = net.state_dict(velocities=True)
        epochs_before = net.epochs
        history_before = (len(net.training_loss), len(net.validation_loss), net.best_loss)

        train_history: list[float] = []
        val_history: list[float] = []
        best = math.inf
        stall = 0
        stopped_early = False
        try:
            for epoch in range(1, epochs + 1):
                train_loss, train_acc = self._run_epoch(train_x, train_y, batch_size)
                metrics = {"loss": train_loss, "accuracy": train_acc}
                train_history.append(train_loss)
                net.training_loss.append(train_loss)

                monitored = train_loss
                if val_x.shape[0]:
                    val_pred = net.predict_batch(val_x)
                    val_loss = net.loss(val_pred, val_y)
                    metrics["val_loss"] = val_loss
                    metrics["val_accuracy"] = compute_metric("accuracy", val_pred, val_y).value
                    val_history.append(val_loss)
                    net.validation_loss.append(val_loss)
                    monitored = val_loss
                net.epochs += 1
                self._emit_epoch(net.epochs, metrics)

                if epoch % 10 == 0:
                    logger.info(
                        "Epoch %d/%d - loss: %.6f - val loss: %s",
                        epoch,
                        epochs,
                        train_loss,
                        f"{metrics['val_loss']:.6f}" if "val_loss" in metrics else "n/a",
                    )

                if monitored < best:
                    best = monitored
                    stall = 0
                else:
                    stall += 1
                net.best_loss = min(net.best_loss, best)
                if stall > patience:
                    logger.info("Early stopping at epoch %d (no improvement for %d epochs)", epoch, stall)
                    stopped_early = True
                    break
                if monitored < min_loss:
                    logger.info("Loss %.3g below %.3g at epoch %d; stopping", monitored, min_loss, epoch)
                    stopped_early = True
                    break
        except NumericInstabilityError:
            net.load_state_dict(checkpoint)
            net.epochs = epochs_before
            del net.training_loss[history_before[0]:]
            del net.validation_loss[history_before[1]:]
            net.best_loss = history_before[2]
            raise

        return TrainResult(
            epochs_run=len(train_history),
            final_loss=train_history[-1] if train_history else None,
            final_val_loss=val_history[-1] if val_history else None,
            best_val_loss=min(val_history) if val_history else None,
            stopped_early=stopped_early,
            training_loss=train_history,
            validation_loss=val_history,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _run_epoch(self, train_x: Array, train_y: Array, batch_size: int) -> tuple[float, float]:
        net = self.network
        order = net.rng.permutation(train_x.shape[0])
        predictions = np.empty_like(train_y)
        for start in range(0, order.size, batch_size):
            idx = order[start : start + batch_size]
            result = net.forward(train_x[idx], training=True)
            grads = net.backward(train_x[idx], train_y[idx], result)
            net.apply_gradients(grads)
            predictions[idx] = result.output
        loss = net.loss(predictions, train_y)
        accuracy = compute_metric("accuracy", predictions, train_y).value
        return loss, accuracy

    def _emit_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)


__all__ = ["Trainer", "stack_examples"]
