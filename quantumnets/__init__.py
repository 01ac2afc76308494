"""QuantumNets public API."""

from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.errors import (
    DimensionError,
    InvalidHyperparameterError,
    NumericInstabilityError,
    ObjectiveEvaluationFailure,
    QuantumNetsError,
)
from .core.network import Network
from .core.types import Hyperparameters, TrainingExample, TrainResult
from .models import NetworkPredictor, Predictor, TrainablePredictor
from .optim import NETWORK_SEARCH_SPACE, QuantumOptimizer, SearchSpace, tune_network
from .training.pipelines import config_hash, load_preset, presets, run_pipeline
from .training.trainer import Trainer

__all__ = [
    "DimensionError",
    "Hyperparameters",
    "InvalidHyperparameterError",
    "NETWORK_SEARCH_SPACE",
    "Network",
    "NetworkPredictor",
    "NumericInstabilityError",
    "ObjectiveEvaluationFailure",
    "Predictor",
    "QuantumNetsError",
    "QuantumOptimizer",
    "SearchSpace",
    "TrainResult",
    "TrainablePredictor",
    "Trainer",
    "TrainingExample",
    "activations",
    "config_hash",
    "load_preset",
    "presets",
    "run_pipeline",
    "tune_network",
    "types",
]
