"""Bounded hyperparameter declarations and their ``[0, 1]`` encodings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence

import numpy as np

from ..core.errors import DimensionError, InvalidHyperparameterError

ENCODINGS = ("linear", "int", "log")

_ALIASES = {
    "linear": "linear",
    "float": "linear",
    "int": "int",
    "integer": "int",
    "log": "log",
}


@dataclass(frozen=True)
class Hyperparameter:
    """A tunable scalar with bounds ``[low, high]`` and an encoding.

    ``decode`` maps a position in ``[0, 1]`` to a value:

    * ``linear``: ``low + u * (high - low)``
    * ``int``: the linear value rounded to the nearest admissible integer
    * ``log``: interpolation between ``log(low)`` and ``log(high)``
    """

    name: str
    low: float
    high: float
    encoding: str = "linear"

    def __post_init__(self) -> None:
        encoding = _ALIASES.get(str(self.encoding).lower())
        if encoding is None:
            raise InvalidHyperparameterError(
                f"{self.name}: unknown encoding {self.encoding!r}; expected one of {ENCODINGS}"
            )
        object.__setattr__(self, "encoding", encoding)
        try:
            low, high = float(self.low), float(self.high)
        except (TypeError, ValueError) as exc:
            raise InvalidHyperparameterError(f"{self.name}: bounds must be numbers") from exc
        if not (math.isfinite(low) and math.isfinite(high)):
            raise InvalidHyperparameterError(f"{self.name}: bounds must be finite")
        if low > high:
            raise InvalidHyperparameterError(f"{self.name}: low {low} exceeds high {high}")
        if encoding == "log" and low <= 0:
            raise InvalidHyperparameterError(f"{self.name}: log encoding needs positive bounds")
        if encoding == "int" and math.ceil(low) > math.floor(high):
            raise InvalidHyperparameterError(f"{self.name}: no integer lies in [{low}, {high}]")
        object.__setattr__(self, "low", low)
        object.__setattr__(self, "high", high)

    def decode(self, position: float) -> float | int:
        u = min(max(float(position), 0.0), 1.0)
        if self.encoding == "log":
            lo, hi = math.log(self.low), math.log(self.high)
            value = math.exp(lo + u * (hi - lo))
            return min(max(value, self.low), self.high)
        value = self.low + u * (self.high - self.low)
        if self.encoding == "int":
            return int(min(max(round(value), math.ceil(self.low)), math.floor(self.high)))
        return min(max(value, self.low), self.high)

    def to_dict(self) -> Dict[str, object]:
        return {"min": self.low, "max": self.high, "type": self.encoding}


class SearchSpace:
    """Ordered collection of :class:`Hyperparameter` declarations."""

    def __init__(self, params: Iterable[Hyperparameter]) -> None:
        self._params: List[Hyperparameter] = list(params)
        if not self._params:
            raise InvalidHyperparameterError("A search space needs at least one hyperparameter")
        names = [p.name for p in self._params]
        if len(set(names)) != len(names):
            raise InvalidHyperparameterError(f"Duplicate hyperparameter names in {names}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, object]) -> "SearchSpace":
        """Build from ``{"name": {"min": .., "max": .., "type": ..}}``.

        ``low``/``high``/``encoding`` keys and ``(low, high[, encoding])``
        tuples are accepted too.
        """

        params: List[Hyperparameter] = []
        for name, spec in mapping.items():
            if isinstance(spec, Hyperparameter):
                params.append(spec)
                continue
            if isinstance(spec, Mapping):
                try:
                    low = spec["min"] if "min" in spec else spec["low"]
                    high = spec["max"] if "max" in spec else spec["high"]
                except KeyError as exc:
                    raise InvalidHyperparameterError(f"{name}: missing bound {exc}") from exc
                encoding = spec.get("type", spec.get("encoding", "linear"))
            elif isinstance(spec, Sequence) and not isinstance(spec, str) and len(spec) in (2, 3):
                low, high = spec[0], spec[1]
                encoding = spec[2] if len(spec) == 3 else "linear"
            else:
                raise InvalidHyperparameterError(f"{name}: cannot interpret bounds {spec!r}")
            params.append(Hyperparameter(str(name), low, high, str(encoding)))  # type: ignore[arg-type]
        return cls(params)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._params]

    @property
    def dims(self) -> int:
        return len(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def __iter__(self) -> Iterator[Hyperparameter]:
        return iter(self._params)

    def __getitem__(self, name: str) -> Hyperparameter:
        for param in self._params:
            if param.name == name:
                return param
        raise KeyError(name)

    def decode(self, position: Sequence[float] | np.ndarray) -> Dict[str, float | int]:
        vector = np.asarray(position, dtype=np.float64).reshape(-1)
        if vector.size != self.dims:
            raise DimensionError(f"Position has {vector.size} entries, search space has {self.dims}")
        return {p.name: p.decode(u) for p, u in zip(self._params, vector)}

    def to_dict(self) -> Dict[str, Dict[str, object]]:
        return {p.name: p.to_dict() for p in self._params}


NETWORK_SEARCH_SPACE = SearchSpace(
    [
        Hyperparameter("learning_rate", 1e-4, 1e-2, "log"),
        Hyperparameter("momentum", 0.5, 0.99, "linear"),
        Hyperparameter("l2", 1e-5, 1e-3, "log"),
        Hyperparameter("dropout", 0.0, 0.5, "linear"),
    ]
)


__all__ = ["ENCODINGS", "Hyperparameter", "SearchSpace", "NETWORK_SEARCH_SPACE"]
