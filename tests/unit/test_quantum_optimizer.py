import math

import numpy as np
import pytest

from quantumnets.core.errors import ObjectiveEvaluationFailure
from quantumnets.optim.quantum import (
    HALF_PI,
    THETA_MARGIN,
    Individual,
    OptimizationResult,
    OptimizerState,
    QuantumOptimizer,
)
from quantumnets.optim.space import SearchSpace

SPACE = {"x": {"min": 0.0, "max": 1.0}, "y": {"min": -2.0, "max": 2.0}}


def _sphere(params):
    return -((params["x"] - 0.3) ** 2) - (params["y"] - 1.0) ** 2


class _Recorder:
    def __init__(self):
        self.iterations = []

    def on_iteration(self, iteration, metrics):
        self.iterations.append((iteration, dict(metrics)))


def test_amplitudes_stay_normalised_and_bounded():
    optimizer = QuantumOptimizer(SPACE, population_size=6, max_iterations=15, seed=3, record_trajectory=True)
    optimizer.optimize(_sphere)
    assert optimizer.trajectory
    for positions, thetas in optimizer.trajectory:
        assert np.all((positions >= 0.0) & (positions <= 1.0))
        assert np.all((thetas >= THETA_MARGIN) & (thetas <= HALF_PI - THETA_MARGIN))
        np.testing.assert_allclose(np.cos(thetas) ** 2 + np.sin(thetas) ** 2, 1.0)
    for individual in optimizer.population.individuals:
        np.testing.assert_allclose(individual.alpha**2 + individual.beta**2, 1.0)


def test_best_fitness_never_decreases():
    recorder = _Recorder()
    result = QuantumOptimizer(
        SPACE, population_size=5, max_iterations=25, seed=1, callbacks=[recorder]
    ).optimize(_sphere)
    best = [record.best_fitness for record in result.history]
    assert all(b >= a for a, b in zip(best, best[1:]))
    assert [i for i, _ in recorder.iterations] == list(range(len(result.history)))
    assert result.best_fitness == pytest.approx(_sphere(result.best_params))
    assert best[-1] == result.best_fitness


def test_same_seed_reproduces_the_run():
    first = QuantumOptimizer(SPACE, population_size=8, max_iterations=10, seed=42).optimize(_sphere)
    second = QuantumOptimizer(SPACE, population_size=8, max_iterations=10, seed=42).optimize(_sphere)
    assert first.to_dict() == second.to_dict()

    optimizer = QuantumOptimizer(SPACE, population_size=8, max_iterations=10, seed=42)
    assert optimizer.optimize(_sphere).to_dict() == optimizer.optimize(_sphere).to_dict()


@pytest.mark.parametrize("tunneling_probability", [0.0, 0.5])
def test_same_seed_reproduces_every_trajectory(tunneling_probability):
    def run(seed):
        optimizer = QuantumOptimizer(
            SPACE,
            population_size=8,
            max_iterations=12,
            seed=seed,
            tunneling_probability=tunneling_probability,
            record_trajectory=True,
        )
        optimizer.optimize(_sphere)
        return optimizer.trajectory

    first, second = run(7), run(7)
    assert len(first) == len(second) == 12
    for (pos_a, theta_a), (pos_b, theta_b) in zip(first, second):
        np.testing.assert_array_equal(pos_a, pos_b)
        np.testing.assert_array_equal(theta_a, theta_b)

    other = run(8)
    assert not np.array_equal(first[-1][0], other[-1][0])


def test_rotation_approaches_best_from_both_sides():
    optimizer = QuantumOptimizer({"x": {"min": 0.0, "max": 1.0}}, tunneling_probability=0.0, seed=0)
    best = Individual(position=np.array([0.5]), theta=np.array([0.7]), fitness=0.0)
    below = Individual(position=np.array([0.2]), theta=np.array([0.7]))
    above = Individual(position=np.array([0.8]), theta=np.array([0.7]))

    for _ in range(8):
        for candidate in (below, above):
            gap = abs(best.position[0] - candidate.position[0])
            optimizer.rotate(candidate, best, progress=0.0)
            new_gap = abs(best.position[0] - candidate.position[0])
            assert 0.0 < new_gap < gap
            assert THETA_MARGIN <= candidate.theta[0] <= HALF_PI - THETA_MARGIN
        assert below.position[0] < 0.5 < above.position[0]

    assert 0.5 - below.position[0] < 0.01
    assert above.position[0] - 0.5 < 0.01
    # The best itself is left in place.
    np.testing.assert_array_equal(best.position, [0.5])


def test_update_requires_an_evaluated_population():
    optimizer = QuantumOptimizer(SPACE, population_size=2, max_iterations=3, seed=0)
    optimizer.initialize()
    with pytest.raises(RuntimeError, match="not been evaluated"):
        optimizer.update(1)


def test_failed_evaluations_do_not_abort_the_run(caplog):
    calls = {"n": 0}

    def flaky(params):
        calls["n"] += 1
        if calls["n"] % 3 == 0:
            raise RuntimeError("simulation crashed")
        if calls["n"] % 7 == 0:
            return float("nan")
        return _sphere(params)

    optimizer = QuantumOptimizer(SPACE, population_size=4, max_iterations=6, seed=0)
    with caplog.at_level("WARNING", logger="quantumnets.optim.quantum"):
        result = optimizer.optimize(flaky)

    assert result.iterations == 6
    assert result.failures == len(optimizer.failures) > 0
    assert math.isfinite(result.best_fitness)
    crashed = [f for f in optimizer.failures if f.__cause__ is not None]
    assert crashed and isinstance(crashed[0].__cause__, RuntimeError)
    assert all(isinstance(f, ObjectiveEvaluationFailure) for f in optimizer.failures)
    assert set(crashed[0].params) == {"x", "y"}
    assert "Objective evaluation failed" in caplog.text


def test_all_failures_leave_best_at_negative_infinity():
    def broken(params):
        raise ValueError("nope")

    result = QuantumOptimizer(SPACE, population_size=3, max_iterations=2, seed=0).optimize(broken)
    assert result.best_fitness == -math.inf
    assert result.failures == 6
    assert set(result.best_params) == {"x", "y"}


def test_cancellation_between_iterations():
    checks = {"n": 0}

    def stop_after_three():
        checks["n"] += 1
        return checks["n"] >= 3

    optimizer = QuantumOptimizer(SPACE, population_size=4, max_iterations=50, seed=0)
    result = optimizer.optimize(_sphere, should_stop=stop_after_three)
    assert result.state == OptimizerState.CANCELLED.value
    assert result.iterations == 3
    assert optimizer.state is OptimizerState.DONE


def test_convergence_on_a_flat_objective():
    optimizer = QuantumOptimizer(
        SPACE, population_size=3, max_iterations=100, seed=0, convergence_window=3, convergence_patience=2
    )
    result = optimizer.optimize(lambda params: 1.0)
    assert result.state == OptimizerState.CONVERGED.value
    # stalled checks at the third and fourth records
    assert result.iterations == 4


def test_max_iterations_cap():
    result = QuantumOptimizer(SPACE, population_size=2, max_iterations=3, seed=0).optimize(_sphere)
    assert result.state == OptimizerState.MAX_ITER.value
    assert result.iterations == 3


def test_result_round_trips_through_dict():
    result = QuantumOptimizer(SPACE, population_size=3, max_iterations=4, seed=2).optimize(_sphere)
    restored = OptimizationResult.from_dict(result.to_dict())
    assert restored.to_dict() == result.to_dict()


def test_constructor_validation():
    space = SearchSpace.from_mapping(SPACE)
    with pytest.raises(ValueError):
        QuantumOptimizer(space, population_size=0)
    with pytest.raises(ValueError):
        QuantumOptimizer(space, max_iterations=0)
    with pytest.raises(ValueError):
        QuantumOptimizer(space, tunneling_probability=1.5)
