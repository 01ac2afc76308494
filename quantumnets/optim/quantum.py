"""Quantum-inspired, population-based black-box hyperparameter search.

Every individual carries a position in ``[0, 1]^d`` and one phase angle per
dimension. The amplitude pair ``(cos θ, sin θ)`` is always derived from the
angle, so ``alpha**2 + beta**2 == 1`` holds by construction. Each iteration
evaluates the whole population, rotates the phases towards the best-known
position, blends positions by the squared amplitude that points at the best
(``sin²θ`` when the best lies above, ``cos²θ`` when below) and occasionally
"tunnels" one coordinate to a fresh random value. Angles stay inside
``[THETA_MARGIN, π/2 - THETA_MARGIN]`` so a blend never lands on the best
outright.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import ObjectiveEvaluationFailure
from ..core.types import Array
from .space import SearchSpace

logger = logging.getLogger(__name__)

HALF_PI = 0.5 * math.pi
THETA_MARGIN = math.pi / 16

Objective = Callable[[Dict[str, object]], float]


class OptimizerState(Enum):
    """Lifecycle of one :meth:`QuantumOptimizer.optimize` call."""

    INIT = "init"
    EVALUATE = "evaluate"
    UPDATE = "update"
    CONVERGED = "converged"
    MAX_ITER = "max_iter"
    CANCELLED = "cancelled"
    DONE = "done"


_TRANSITIONS: Dict[OptimizerState, List[OptimizerState]] = {
    OptimizerState.INIT: [OptimizerState.EVALUATE],
    OptimizerState.EVALUATE: [
        OptimizerState.UPDATE,
        OptimizerState.CONVERGED,
        OptimizerState.MAX_ITER,
        OptimizerState.CANCELLED,
    ],
    OptimizerState.UPDATE: [OptimizerState.EVALUATE],
    OptimizerState.CONVERGED: [OptimizerState.DONE],
    OptimizerState.MAX_ITER: [OptimizerState.DONE],
    OptimizerState.CANCELLED: [OptimizerState.DONE],
    OptimizerState.DONE: [],
}


@dataclass
class Individual:
    """Candidate position plus phase angles and last observed fitness."""

    position: Array
    theta: Array
    fitness: float = -math.inf

    @property
    def alpha(self) -> Array:
        return np.cos(self.theta)

    @property
    def beta(self) -> Array:
        return np.sin(self.theta)

    def pull(self, direction: Array) -> Array:
        """Share of the gap to the best closed per update.

        ``|beta|²`` where the best lies above (``direction > 0``) and
        ``|alpha|²`` where it lies below.
        """

        return np.where(direction > 0, self.beta**2, self.alpha**2)

    def copy(self) -> "Individual":
        return Individual(position=self.position.copy(), theta=self.theta.copy(), fitness=self.fitness)


@dataclass
class Population:
    """Individuals plus the best candidate seen over the whole run."""

    individuals: List[Individual]
    best: Optional[Individual] = None

    @property
    def best_fitness(self) -> float:
        return self.best.fitness if self.best is not None else -math.inf

    def consider(self, individual: Individual) -> bool:
        """Record ``individual`` as best if strictly fitter; ties keep the incumbent."""

        if self.best is None or individual.fitness > self.best.fitness:
            self.best = individual.copy()
            return True
        return False

    def positions(self) -> Array:
        return np.vstack([ind.position for ind in self.individuals])

    def thetas(self) -> Array:
        return np.vstack([ind.theta for ind in self.individuals])


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    best_fitness: float
    avg_fitness: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "iteration": self.iteration,
            "best_fitness": self.best_fitness,
            "avg_fitness": self.avg_fitness,
        }


@dataclass
class OptimizationResult:
    """Best hyperparameters, their fitness and the per-iteration history."""

    best_params: Dict[str, object]
    best_fitness: float
    best_position: List[float] = field(default_factory=list)
    iterations: int = 0
    state: str = OptimizerState.DONE.value
    history: List[IterationRecord] = field(default_factory=list)
    failures: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "best_params": dict(self.best_params),
            "best_fitness": self.best_fitness,
            "best_position": list(self.best_position),
            "iterations": self.iterations,
            "state": self.state,
            "history": [record.to_dict() for record in self.history],
            "failures": self.failures,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "OptimizationResult":
        history = [
            IterationRecord(
                iteration=int(item["iteration"]),
                best_fitness=float(item["best_fitness"]),
                avg_fitness=float(item["avg_fitness"]),
            )
            for item in payload.get("history", [])  # type: ignore[union-attr]
        ]
        return cls(
            best_params=dict(payload.get("best_params") or {}),  # type: ignore[arg-type]
            best_fitness=float(payload.get("best_fitness", -math.inf)),  # type: ignore[arg-type]
            best_position=[float(v) for v in payload.get("best_position", [])],  # type: ignore[union-attr]
            iterations=int(payload.get("iterations", len(history))),  # type: ignore[arg-type]
            state=str(payload.get("state", OptimizerState.DONE.value)),
            history=history,
            failures=int(payload.get("failures", 0)),  # type: ignore[arg-type]
        )


class QuantumOptimizer:
    """Maximise a black-box objective over a :class:`SearchSpace`.

    All random decisions (initialisation, direction tie-breaks, rotation
    magnitudes, tunnelling) come from one ``numpy`` generator seeded with
    ``seed``; each :meth:`optimize` call reseeds it, so a deterministic
    objective yields identical trajectories across runs.
    """

    def __init__(
        self,
        space: SearchSpace | Mapping[str, object],
        *,
        population_size: int = 20,
        max_iterations: int = 100,
        seed: int = 0,
        rotation_angle: float = 0.05 * math.pi,
        tunneling_probability: float = 0.1,
        convergence_window: int = 5,
        convergence_threshold: float = 1e-6,
        convergence_patience: int = 10,
        record_trajectory: bool = False,
        callbacks: Sequence[object] | None = None,
    ) -> None:
        if not isinstance(space, SearchSpace):
            space = SearchSpace.from_mapping(space)
        if population_size < 1:
            raise ValueError("population_size must be at least 1")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if not 0.0 <= tunneling_probability <= 1.0:
            raise ValueError("tunneling_probability must be in [0, 1]")
        if rotation_angle < 0:
            raise ValueError("rotation_angle must be non-negative")
        if convergence_window < 1 or convergence_patience < 1:
            raise ValueError("convergence_window and convergence_patience must be positive")
        self.space = space
        self.population_size = int(population_size)
        self.max_iterations = int(max_iterations)
        self.seed = int(seed)
        self.rotation_angle = float(rotation_angle)
        self.tunneling_probability = float(tunneling_probability)
        self.convergence_window = int(convergence_window)
        self.convergence_threshold = float(convergence_threshold)
        self.convergence_patience = int(convergence_patience)
        self.record_trajectory = record_trajectory
        self.callbacks = list(callbacks or [])
        self._reset()

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def state(self) -> OptimizerState:
        return self._state

    def _advance(self, target: OptimizerState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Invalid transition: {self._state.value} -> {target.value}")
        self._state = target

    def _reset(self) -> None:
        self.rng = np.random.default_rng(self.seed)
        self._state = OptimizerState.INIT
        self.population: Population | None = None
        self.history: List[IterationRecord] = []
        self.failures: List[ObjectiveEvaluationFailure] = []
        self.trajectory: List[Tuple[Array, Array]] = []
        self._stall = 0

    def optimize(
        self,
        objective: Objective,
        should_stop: Callable[[], bool] | None = None,
    ) -> OptimizationResult:
        """Run the INIT → EVALUATE → UPDATE loop until convergence or the cap.

        ``should_stop`` is polled only between iterations; when it returns
        true the run ends with the best individual found so far.
        """

        self._reset()
        self.initialize()
        iteration = 0
        while True:
            self.evaluate(objective, iteration)
            if self.has_converged():
                logger.info("Converged at iteration %d", iteration + 1)
                self._advance(OptimizerState.CONVERGED)
                break
            if iteration + 1 >= self.max_iterations:
                self._advance(OptimizerState.MAX_ITER)
                break
            if should_stop is not None and should_stop():
                logger.info("Optimization cancelled after iteration %d", iteration + 1)
                self._advance(OptimizerState.CANCELLED)
                break
            self._advance(OptimizerState.UPDATE)
            iteration += 1
            self.update(iteration)
            self._advance(OptimizerState.EVALUATE)

        reason = self._state.value
        self._advance(OptimizerState.DONE)
        return self._result(reason)

    # ------------------------------------------------------------------
    # Steps

    def initialize(self) -> Population:
        dims = self.space.dims
        individuals = [
            Individual(
                position=self.rng.random(dims),
                theta=self.rng.uniform(THETA_MARGIN, HALF_PI - THETA_MARGIN, size=dims),
            )
            for _ in range(self.population_size)
        ]
        self.population = Population(individuals=individuals)
        self._record_trajectory()
        self._advance(OptimizerState.EVALUATE)
        return self.population

    def evaluate(self, objective: Objective, iteration: int) -> IterationRecord:
        """Score every individual once and fold the results into the best."""

        population = self._require_population()
        for individual in population.individuals:
            params = self.space.decode(individual.position)
            individual.fitness = self._score(objective, params)
            population.consider(individual)

        finite = [ind.fitness for ind in population.individuals if math.isfinite(ind.fitness)]
        avg = float(np.mean(finite)) if finite else -math.inf
        record = IterationRecord(iteration=iteration, best_fitness=population.best_fitness, avg_fitness=avg)
        self.history.append(record)
        self._emit_iteration(record)
        if (iteration + 1) % 10 == 0:
            logger.info("Iteration %d: best fitness = %.6f", iteration + 1, record.best_fitness)
        return record

    def update(self, iteration: int) -> None:
        """Rotate phases, blend positions towards the best and tunnel."""

        population = self._require_population()
        if population.best is None:
            raise RuntimeError("Population has not been evaluated")
        progress = min(iteration / self.max_iterations, 1.0)
        for individual in population.individuals:
            self.rotate(individual, population.best, progress)
            self.tunnel(individual)
        self._record_trajectory()

    def rotate(self, individual: Individual, best: Individual, progress: float) -> None:
        gap = best.position - individual.position
        direction = np.sign(gap)
        ties = direction == 0
        if ties.any():
            direction[ties] = self.rng.choice([-1.0, 1.0], size=int(ties.sum()))
        magnitude = self.rotation_angle * (1.0 - progress) * self.rng.uniform(0.5, 1.0, size=gap.size)
        individual.theta = np.clip(
            individual.theta + direction * magnitude, THETA_MARGIN, HALF_PI - THETA_MARGIN
        )
        individual.position = np.clip(individual.position + individual.pull(direction) * gap, 0.0, 1.0)

    def tunnel(self, individual: Individual) -> bool:
        if self.rng.random() >= self.tunneling_probability:
            return False
        dim = int(self.rng.integers(individual.position.size))
        individual.position[dim] = self.rng.random()
        individual.theta[dim] = self.rng.uniform(THETA_MARGIN, HALF_PI - THETA_MARGIN)
        return True

    def has_converged(self) -> bool:
        """Spread of the last ``window`` best fitnesses stayed small for ``patience`` checks."""

        if len(self.history) < self.convergence_window:
            self._stall = 0
            return False
        recent = [record.best_fitness for record in self.history[-self.convergence_window :]]
        spread = max(recent) - min(recent)
        if math.isfinite(spread) and spread < self.convergence_threshold:
            self._stall += 1
        else:
            self._stall = 0
        return self._stall >= self.convergence_patience

    # ------------------------------------------------------------------
    # Internal helpers

    def _score(self, objective: Objective, params: Dict[str, object]) -> float:
        try:
            value = float(objective(dict(params)))
        except Exception as exc:
            failure = ObjectiveEvaluationFailure(params, f"Objective raised {type(exc).__name__}: {exc}")
            failure.__cause__ = exc
            self.failures.append(failure)
            logger.warning("Objective evaluation failed for %s: %s", params, exc)
            return -math.inf
        if not math.isfinite(value):
            self.failures.append(ObjectiveEvaluationFailure(params, f"Objective returned {value}"))
            logger.warning("Objective returned non-finite fitness %s for %s", value, params)
            return -math.inf
        return value

    def _require_population(self) -> Population:
        if self.population is None:
            raise RuntimeError("Population has not been initialised")
        return self.population

    def _record_trajectory(self) -> None:
        if self.record_trajectory and self.population is not None:
            self.trajectory.append((self.population.positions(), self.population.thetas()))

    def _emit_iteration(self, record: IterationRecord) -> None:
        metrics = {"best_fitness": record.best_fitness, "avg_fitness": record.avg_fitness}
        for callback in self.callbacks:
            if hasattr(callback, "on_iteration"):
                callback.on_iteration(record.iteration, metrics)  # type: ignore[attr-defined]
            elif hasattr(callback, "on_epoch"):
                callback.on_epoch(record.iteration, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(record.iteration, metrics)

    def _result(self, reason: str) -> OptimizationResult:
        population = self._require_population()
        best = population.best if population.best is not None else population.individuals[0]
        return OptimizationResult(
            best_params=self.space.decode(best.position),
            best_fitness=population.best_fitness,
            best_position=[float(v) for v in best.position],
            iterations=len(self.history),
            state=reason,
            history=list(self.history),
            failures=len(self.failures),
        )


__all__ = [
    "HALF_PI",
    "THETA_MARGIN",
    "Individual",
    "IterationRecord",
    "OptimizationResult",
    "OptimizerState",
    "Population",
    "QuantumOptimizer",
]
