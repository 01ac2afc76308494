"""Quantum-inspired hyperparameter search."""

from .objective import NetworkObjective, tune_network
from .quantum import OptimizationResult, OptimizerState, QuantumOptimizer
from .space import NETWORK_SEARCH_SPACE, Hyperparameter, SearchSpace

__all__ = [
    "Hyperparameter",
    "NETWORK_SEARCH_SPACE",
    "NetworkObjective",
    "OptimizationResult",
    "OptimizerState",
    "QuantumOptimizer",
    "SearchSpace",
    "tune_network",
]
