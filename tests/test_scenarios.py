import numpy as np
import pytest

from quantumnets import Network, QuantumOptimizer, Trainer, TrainingExample

TWO_POINTS = [TrainingExample([0.0, 0.0], 0.0), TrainingExample([1.0, 1.0], 1.0)]


def _assert_learned(network):
    predictions = network.predict_batch([[0.0, 0.0], [1.0, 1.0]])
    mse = float(np.mean((predictions - np.array([0.0, 1.0])) ** 2))
    assert mse < 0.05
    assert network.predict([1.0, 1.0]) > 0.5
    assert network.predict([0.0, 0.0]) < 0.5


def test_small_network_learns_two_point_mapping():
    network = Network([2, 3, 1])
    Trainer(network).train(TWO_POINTS, epochs=200, validation_split=0.0, patience=200)
    _assert_learned(network)


@pytest.mark.parametrize("seed", range(50))
def test_two_point_mapping_holds_across_seeds(seed):
    network = Network([2, 3, 1], seed=seed)
    Trainer(network).train(TWO_POINTS, epochs=200, validation_split=0.0, patience=200)
    _assert_learned(network)


def test_optimizer_finds_quadratic_peak():
    optimizer = QuantumOptimizer(
        {"x": {"min": 0.0, "max": 1.0}}, population_size=10, max_iterations=50, seed=0
    )
    result = optimizer.optimize(lambda params: -((params["x"] - 0.5) ** 2))
    assert abs(result.best_params["x"] - 0.5) < 0.05
    assert result.iterations <= 50
