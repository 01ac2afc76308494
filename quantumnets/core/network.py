"""Feed-forward binary classifier with momentum updates and inverted dropout."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, MutableSequence, Sequence

import numpy as np

from .activations import leaky_relu, leaky_relu_deriv, sigmoid, sigmoid_deriv
from .errors import DimensionError, NumericInstabilityError
from .types import Array, ForwardResult, Gradients, Hyperparameters, LayerSpec, Velocity

SNAPSHOT_VERSION = 1

# Hidden units start slightly in the active region of the leaky ReLU so no
# unit begins dead on non-negative inputs.
HIDDEN_BIAS_INIT = 0.5


def _ensure_finite(values: Array, where: str) -> None:
    if not np.all(np.isfinite(values)):
        raise NumericInstabilityError(f"Non-finite values produced in {where}")


@dataclass
class Network:
    """Fully connected network: leaky ReLU hidden layers, sigmoid output.

    All randomness (initialisation, dropout masks and the trainer's epoch
    shuffles) is drawn from ``rng``; when no generator is supplied one is
    created from ``seed``.
    """

    layer_dims: Sequence[int]
    hyperparameters: Hyperparameters | None = field(default_factory=Hyperparameters)
    seed: int = 0
    rng: np.random.Generator | None = field(default=None, repr=False)
    layers: MutableSequence[LayerSpec] = field(init=False, repr=False)
    velocities: MutableSequence[Velocity] = field(init=False, repr=False)
    epochs: int = field(default=0, init=False)
    training_loss: List[float] = field(default_factory=list, init=False, repr=False)
    validation_loss: List[float] = field(default_factory=list, init=False, repr=False)
    best_loss: float = field(default=math.inf, init=False)

    def __post_init__(self) -> None:
        dims = [int(d) for d in self.layer_dims]
        if len(dims) < 2 or any(d <= 0 for d in dims):
            raise DimensionError(f"layer_dims needs at least two positive sizes, got {dims}")
        self.layer_dims = dims
        if self.hyperparameters is None:
            self.hyperparameters = Hyperparameters()
        if self.rng is None:
            self.rng = np.random.default_rng(self.seed)
        self.reset()

    @property
    def input_dim(self) -> int:
        return self.layer_dims[0]

    @property
    def output_dim(self) -> int:
        return self.layer_dims[-1]

    def reset(self) -> None:
        """Draw fresh Xavier-scaled weights and zero the momentum state.

        Output biases are drawn from ``U(-0.01, 0.01)``; hidden biases get the
        same jitter around :data:`HIDDEN_BIAS_INIT`.
        """

        layers: list[LayerSpec] = []
        dims = self.layer_dims
        for idx, (in_dim, out_dim) in enumerate(zip(dims[:-1], dims[1:])):
            scale = math.sqrt(2.0 / (in_dim + out_dim))
            weights = self.rng.uniform(-scale, scale, size=(out_dim, in_dim))
            biases = self.rng.uniform(-0.01, 0.01, size=out_dim)
            activation = "sigmoid" if idx == len(dims) - 2 else "leaky_relu"
            if activation == "leaky_relu":
                biases += HIDDEN_BIAS_INIT
            layers.append(LayerSpec(weights=weights, biases=biases, activation=activation))
        self.layers = layers
        self.velocities = [Velocity.zeros_like(layer) for layer in layers]

    # ------------------------------------------------------------------
    # Passes

    def forward(self, inputs: Array | Sequence[float], training: bool = False) -> ForwardResult:
        x = self._as_inputs(inputs)
        hp = self.hyperparameters
        activations: list[Array] = [x]
        pre_activations: list[Array] = []
        masks: list[Array | None] = []
        last = len(self.layers) - 1
        a = x
        for idx, layer in enumerate(self.layers):
            z = a @ layer.weights.T + layer.biases
            pre_activations.append(z)
            mask = None
            if idx == last:
                a = sigmoid(z)
            else:
                a = leaky_relu(z, hp.leaky_alpha)
                if training and hp.dropout > 0.0:
                    keep = self.rng.random(a.shape) >= hp.dropout
                    mask = keep / (1.0 - hp.dropout)
                    a = a * mask
            _ensure_finite(a, f"forward pass (layer {idx})")
            masks.append(mask)
            activations.append(a)
        return ForwardResult(
            activations=activations, pre_activations=pre_activations, dropout_masks=masks
        )

    def backward(
        self,
        inputs: Array | Sequence[float],
        targets: Array | Sequence[float] | float,
        result: ForwardResult,
    ) -> Gradients:
        """Return batch-averaged gradients with the L2 term folded in."""

        x = self._as_inputs(inputs)
        batch = x.shape[0]
        y = self._as_targets(targets, batch)
        hp = self.hyperparameters
        layer_inputs = [x, *result.activations[1:-1]]
        pre = result.pre_activations

        grads: Gradients = {}
        delta = (result.output - y) * sigmoid_deriv(pre[-1])
        for idx in reversed(range(len(self.layers))):
            layer = self.layers[idx]
            grads[f"W{idx}"] = delta.T @ layer_inputs[idx] / batch + hp.l2 * layer.weights
            grads[f"b{idx}"] = delta.mean(axis=0)
            if idx > 0:
                delta = (delta @ layer.weights) * leaky_relu_deriv(pre[idx - 1], hp.leaky_alpha)
                mask = result.dropout_masks[idx - 1]
                if mask is not None:
                    delta = delta * mask
        for name, grad in grads.items():
            _ensure_finite(grad, f"gradient {name}")
        return grads

    def apply_gradients(self, grads: Gradients) -> None:
        """Momentum step ``v = m*v - lr*g; p += v``, committed only if finite."""

        hp = self.hyperparameters
        staged: list[tuple[LayerSpec, Velocity]] = []
        for idx, (layer, velocity) in enumerate(zip(self.layers, self.velocities)):
            v_w = hp.momentum * velocity.weights - hp.learning_rate * grads[f"W{idx}"]
            v_b = hp.momentum * velocity.biases - hp.learning_rate * grads[f"b{idx}"]
            weights = layer.weights + v_w
            biases = layer.biases + v_b
            for values in (v_w, v_b, weights, biases):
                _ensure_finite(values, f"parameter update (layer {idx})")
            staged.append(
                (
                    LayerSpec(weights=weights, biases=biases, activation=layer.activation),
                    Velocity(weights=v_w, biases=v_b),
                )
            )
        self.layers = [layer for layer, _ in staged]
        self.velocities = [velocity for _, velocity in staged]

    def loss(self, predictions: Array, targets: Array | Sequence[float]) -> float:
        """Mean squared error plus ``(l2 / 2) * sum(W**2)``, for monitoring."""

        preds = np.asarray(predictions, dtype=np.float64).reshape(-1, self.output_dim)
        y = self._as_targets(targets, preds.shape[0])
        mse = float(np.mean(np.square(preds - y))) if preds.size else 0.0
        penalty = sum(float(np.sum(np.square(layer.weights))) for layer in self.layers)
        return mse + 0.5 * self.hyperparameters.l2 * penalty

    def predict(self, features: Array | Sequence[float]) -> float | Array:
        """Inference-mode output for one feature vector.

        Returns a float for single-output networks and the output vector
        otherwise.
        """

        x = np.asarray(features, dtype=np.float64)
        if x.ndim != 1:
            raise DimensionError(f"predict expects one feature vector, got shape {x.shape}")
        output = self.forward(x, training=False).output[0]
        if self.output_dim == 1:
            return float(output[0])
        return output

    def predict_batch(self, inputs: Array | Sequence[Sequence[float]]) -> Array:
        output = self.forward(inputs, training=False).output
        if self.output_dim == 1:
            return output[:, 0]
        return output

    # ------------------------------------------------------------------
    # State

    def state_dict(self, *, velocities: bool = False) -> Dict[str, Array]:
        state: Dict[str, Array] = {}
        for idx, layer in enumerate(self.layers):
            state[f"W{idx}"] = layer.weights.copy()
            state[f"b{idx}"] = layer.biases.copy()
            if velocities:
                state[f"vW{idx}"] = self.velocities[idx].weights.copy()
                state[f"vb{idx}"] = self.velocities[idx].biases.copy()
        return state

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        """Load weights and biases; velocities reset unless present in ``state``."""

        layers: list[LayerSpec] = []
        velocities: list[Velocity] = []
        for idx, layer in enumerate(self.layers):
            for key in (f"W{idx}", f"b{idx}"):
                if key not in state:
                    raise KeyError(f"Missing parameter {key} in state dict")
            weights = np.array(state[f"W{idx}"], dtype=np.float64)
            biases = np.array(state[f"b{idx}"], dtype=np.float64)
            if weights.shape != layer.weights.shape or biases.shape != layer.biases.shape:
                raise DimensionError(
                    f"Layer {idx} expects weights {layer.weights.shape} and biases "
                    f"{layer.biases.shape}, got {weights.shape} and {biases.shape}"
                )
            restored = LayerSpec(weights=weights, biases=biases, activation=layer.activation)
            layers.append(restored)
            if f"vW{idx}" in state and f"vb{idx}" in state:
                velocities.append(
                    Velocity(
                        weights=np.array(state[f"vW{idx}"], dtype=np.float64),
                        biases=np.array(state[f"vb{idx}"], dtype=np.float64),
                    )
                )
            else:
                velocities.append(Velocity.zeros_like(restored))
        self.layers = layers
        self.velocities = velocities

    def parameter_count(self) -> int:
        return int(sum(layer.weights.size + layer.biases.size for layer in self.layers))

    def to_snapshot(self) -> Dict[str, object]:
        """JSON-compatible snapshot. Momentum accumulators are not included."""

        return {
            "version": SNAPSHOT_VERSION,
            "layer_dims": list(self.layer_dims),
            "weights": [layer.weights.tolist() for layer in self.layers],
            "biases": [layer.biases.tolist() for layer in self.layers],
            "hyperparameters": self.hyperparameters.to_dict(),
            "epochs": int(self.epochs),
            "training_loss": [float(v) for v in self.training_loss],
            "validation_loss": [float(v) for v in self.validation_loss],
            "best_loss": float(self.best_loss),
        }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Mapping[str, object],
        *,
        rng: np.random.Generator | None = None,
        seed: int = 0,
    ) -> "Network":
        """Rebuild a usable network; velocities restart at zero."""

        for key in ("layer_dims", "weights", "biases"):
            if key not in snapshot:
                raise KeyError(f"Snapshot is missing {key!r}")
        network = cls(
            layer_dims=list(snapshot["layer_dims"]),  # type: ignore[arg-type]
            hyperparameters=Hyperparameters.from_mapping(
                snapshot.get("hyperparameters")  # type: ignore[arg-type]
            ),
            seed=seed,
            rng=rng,
        )
        weights = list(snapshot["weights"])  # type: ignore[arg-type]
        biases = list(snapshot["biases"])  # type: ignore[arg-type]
        if len(weights) != len(network.layers) or len(biases) != len(network.layers):
            raise DimensionError(
                f"Snapshot holds {len(weights)} layers, layer_dims imply {len(network.layers)}"
            )
        state: Dict[str, Array] = {}
        for idx, (w, b) in enumerate(zip(weights, biases)):
            state[f"W{idx}"] = np.asarray(w, dtype=np.float64)
            state[f"b{idx}"] = np.asarray(b, dtype=np.float64)
        network.load_state_dict(state)
        network.epochs = int(snapshot.get("epochs", 0))  # type: ignore[arg-type]
        network.training_loss = [float(v) for v in snapshot.get("training_loss", [])]  # type: ignore[union-attr]
        network.validation_loss = [float(v) for v in snapshot.get("validation_loss", [])]  # type: ignore[union-attr]
        network.best_loss = float(snapshot.get("best_loss", math.inf))  # type: ignore[arg-type]
        return network

    def save(self, path: str | Path) -> str:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_snapshot()))
        return str(path)

    @classmethod
    def load(cls, path: str | Path, *, rng: np.random.Generator | None = None, seed: int = 0) -> "Network":
        return cls.from_snapshot(json.loads(Path(path).read_text()), rng=rng, seed=seed)

    # ------------------------------------------------------------------
    # Validation helpers

    def _as_inputs(self, inputs: Array | Sequence[float]) -> Array:
        try:
            x = np.asarray(inputs, dtype=np.float64)
        except ValueError as exc:
            raise DimensionError("Inputs must form a rectangular numeric array") from exc
        if x.ndim == 1:
            x = x.reshape(1, -1)
        if x.ndim != 2:
            raise DimensionError(f"Inputs must be a vector or a matrix, got shape {x.shape}")
        if x.shape[1] != self.input_dim:
            raise DimensionError(f"Expected {self.input_dim} features, got {x.shape[1]}")
        _ensure_finite(x, "inputs")
        return x

    def _as_targets(self, targets: Array | Sequence[float] | float, batch: int) -> Array:
        y = np.asarray(targets, dtype=np.float64)
        if y.size != batch * self.output_dim:
            raise DimensionError(
                f"Expected {self.output_dim} target value(s) per example for {batch} "
                f"example(s), got {y.size}"
            )
        y = y.reshape(batch, self.output_dim)
        _ensure_finite(y, "targets")
        return y


__all__ = ["Network", "SNAPSHOT_VERSION"]
