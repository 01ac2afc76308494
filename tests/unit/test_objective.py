import numpy as np
import pytest

from quantumnets.core.types import TrainingExample
from quantumnets.optim.objective import NetworkObjective, split_params, tune_network
from quantumnets.optim.space import NETWORK_SEARCH_SPACE

PARAMS = {"learning_rate": 0.01, "momentum": 0.8, "l2": 1e-4, "dropout": 0.1}


def _examples(n, seed):
    rng = np.random.default_rng(seed)
    out = []
    for i in range(n):
        label = float(i % 2)
        out.append(TrainingExample(features=(2 * label - 1) + 0.4 * rng.normal(size=2), target=label))
    return out


def test_objective_scores_are_reproducible_accuracies():
    train, val = _examples(40, 0), _examples(20, 1)
    first = NetworkObjective(train, val, layer_dims=[2, 4, 1], epochs=3, seed=5)
    second = NetworkObjective(train, val, layer_dims=[2, 4, 1], epochs=3, seed=5)
    scores = [first(PARAMS), first(PARAMS)]
    assert scores == [second(PARAMS), second(PARAMS)]
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert first.calls == 2


def test_objective_honours_training_keys():
    objective = NetworkObjective(_examples(20, 0), _examples(10, 1), layer_dims=[2, 3, 1], subset_size=8)
    assert objective.train_x.shape == (8, 2)
    network = objective.build_network({**PARAMS, "epochs": 4})
    assert network.hyperparameters.momentum == 0.8
    assert split_params({**PARAMS, "epochs": 4, "batch_size": 2}) == (PARAMS, {"epochs": 4, "batch_size": 2})


def test_objective_needs_validation_examples():
    with pytest.raises(ValueError):
        NetworkObjective(_examples(10, 0), [], layer_dims=[2, 3, 1])


def test_tune_network_returns_decoded_best():
    result = tune_network(
        _examples(30, 0),
        _examples(10, 1),
        layer_dims=[2, 3, 1],
        population_size=3,
        max_iterations=2,
        seed=0,
        objective_options={"epochs": 2, "batch_size": 8},
    )
    assert set(result.best_params) == set(NETWORK_SEARCH_SPACE.names)
    assert 0.0 <= result.best_fitness <= 1.0
    assert result.iterations == 2
    assert result.failures == 0
