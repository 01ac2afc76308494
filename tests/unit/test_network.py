import json

import numpy as np
import pytest

from quantumnets.core.errors import DimensionError, NumericInstabilityError
from quantumnets.core.network import HIDDEN_BIAS_INIT, Network
from quantumnets.core.types import Hyperparameters


def _no_dropout(**changes):
    return Hyperparameters(dropout=0.0, **changes)


def test_forward_shapes_and_sigmoid_range():
    net = Network([3, 5, 4, 2], seed=0)
    result = net.forward(np.ones((6, 3)), training=False)
    assert [a.shape for a in result.activations] == [(6, 3), (6, 5), (6, 4), (6, 2)]
    assert len(result.pre_activations) == 3
    assert np.all((result.output > 0.0) & (result.output < 1.0))


def test_dropout_masks_are_aligned_per_layer():
    net = Network([2, 4, 3, 1], hyperparameters=Hyperparameters(dropout=0.5), seed=1)
    train = net.forward(np.ones((8, 2)), training=True)
    assert len(train.dropout_masks) == 3
    assert train.dropout_masks[0].shape == (8, 4)
    assert train.dropout_masks[1].shape == (8, 3)
    assert train.dropout_masks[-1] is None
    assert set(np.unique(train.dropout_masks[0])) <= {0.0, 2.0}

    inference = net.forward(np.ones((8, 2)), training=False)
    assert all(mask is None for mask in inference.dropout_masks)


def test_dropout_preserves_expected_activation():
    net = Network([3, 8, 1], hyperparameters=Hyperparameters(dropout=0.3), seed=2)
    x = np.array([0.5, -1.0, 2.0])
    expected = net.forward(x, training=False).activations[1][0]
    samples = net.forward(np.tile(x, (5000, 1)), training=True).activations[1]
    np.testing.assert_allclose(samples.mean(axis=0), expected, rtol=0.05, atol=1e-3)


def test_backward_matches_finite_differences():
    hp = _no_dropout(l2=1e-2)
    net = Network([2, 3, 1], hyperparameters=hp, seed=4)
    x = np.array([[0.3, -0.7], [1.2, 0.4], [-0.5, 0.9]])
    y = np.array([[1.0], [0.0], [1.0]])

    def objective():
        preds = net.forward(x).output
        penalty = sum(np.sum(layer.weights**2) for layer in net.layers)
        return 0.5 * np.mean((preds - y) ** 2) + 0.5 * hp.l2 * penalty

    grads = net.backward(x, y, net.forward(x, training=True))
    eps = 1e-6
    for idx, layer in enumerate(net.layers):
        for name, param in ((f"W{idx}", layer.weights), (f"b{idx}", layer.biases)):
            numeric = np.zeros_like(param)
            for pos in np.ndindex(param.shape):
                original = param[pos]
                param[pos] = original + eps
                plus = objective()
                param[pos] = original - eps
                minus = objective()
                param[pos] = original
                numeric[pos] = (plus - minus) / (2 * eps)
            np.testing.assert_allclose(grads[name], numeric, rtol=1e-4, atol=1e-7)


def test_apply_gradients_uses_momentum():
    net = Network([2, 2, 1], hyperparameters=_no_dropout(learning_rate=0.1, momentum=0.5), seed=0)
    before = net.state_dict()
    grads = {key: np.ones_like(value) for key, value in before.items()}
    net.apply_gradients(grads)
    net.apply_gradients(grads)
    # v1 = -0.1, v2 = 0.5 * v1 - 0.1 = -0.15
    np.testing.assert_allclose(net.velocities[0].weights, -0.15)
    np.testing.assert_allclose(net.layers[0].weights, before["W0"] - 0.25)


def test_non_finite_update_is_rejected_without_mutation():
    net = Network([2, 3, 1], seed=0)
    before = net.state_dict(velocities=True)
    grads = {key: np.ones_like(value) for key, value in net.state_dict().items()}
    grads["W1"] = np.full_like(grads["W1"], np.inf)
    with pytest.raises(NumericInstabilityError):
        net.apply_gradients(grads)
    after = net.state_dict(velocities=True)
    for key, value in before.items():
        np.testing.assert_array_equal(after[key], value)


def test_input_validation():
    net = Network([3, 2, 1], seed=0)
    with pytest.raises(DimensionError):
        net.forward(np.ones((2, 4)))
    with pytest.raises(DimensionError):
        net.predict([[1.0, 2.0, 3.0]])
    with pytest.raises(NumericInstabilityError):
        net.forward([1.0, np.nan, 0.0])
    with pytest.raises(DimensionError):
        Network([3], seed=0)


def test_predict_returns_probability_float():
    net = Network([2, 4, 1], seed=3)
    value = net.predict([0.2, 0.4])
    assert isinstance(value, float)
    assert 0.0 < value < 1.0
    assert net.predict_batch([[0.2, 0.4], [1.0, 1.0]]).shape == (2,)


def test_snapshot_round_trip_keeps_predictions(tmp_path):
    net = Network([3, 4, 1], hyperparameters=Hyperparameters(learning_rate=0.02), seed=5)
    grads = {key: np.full_like(value, 0.1) for key, value in net.state_dict().items()}
    net.apply_gradients(grads)
    net.training_loss.extend([0.3, 0.2])
    net.epochs = 2
    inputs = np.random.default_rng(0).normal(size=(10, 3))

    path = net.save(tmp_path / "model.json")
    restored = Network.load(path)

    np.testing.assert_array_equal(restored.predict_batch(inputs), net.predict_batch(inputs))
    assert restored.hyperparameters == net.hyperparameters
    assert restored.training_loss == [0.3, 0.2]
    assert restored.epochs == 2
    assert all(not np.any(v.weights) and not np.any(v.biases) for v in restored.velocities)
    assert json.loads((tmp_path / "model.json").read_text())["version"] == 1


def test_load_state_dict_rejects_wrong_shapes():
    net = Network([2, 3, 1], seed=0)
    state = net.state_dict()
    state["W0"] = np.zeros((2, 2))
    with pytest.raises(DimensionError):
        net.load_state_dict(state)
    del state["b1"]
    with pytest.raises(KeyError):
        net.load_state_dict(state)


def test_same_seed_same_initialisation():
    a = Network([4, 6, 1], seed=11)
    b = Network([4, 6, 1], seed=11)
    c = Network([4, 6, 1], seed=12)
    np.testing.assert_array_equal(a.layers[0].weights, b.layers[0].weights)
    assert not np.array_equal(a.layers[0].weights, c.layers[0].weights)
    bound = np.sqrt(2.0 / (4 + 6))
    assert np.all(np.abs(a.layers[0].weights) <= bound)
    assert a.parameter_count() == 4 * 6 + 6 + 6 + 1


def test_hidden_biases_start_in_active_region():
    net = Network([3, 5, 4, 1], seed=7)
    for layer in net.layers[:-1]:
        np.testing.assert_allclose(layer.biases, HIDDEN_BIAS_INIT, atol=0.01)
    assert np.all(np.abs(net.layers[-1].biases) <= 0.01)
    # All hidden units are active on the zero input.
    hidden = net.forward(np.zeros((1, 3))).pre_activations[0]
    assert np.all(hidden > 0.0)
