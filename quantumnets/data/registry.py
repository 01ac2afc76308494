"""Dataset registry and metadata contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, MutableMapping

from ..core.types import TrainingExample

SPLITS = ("train", "val", "test")


@dataclass(frozen=True)
class DatasetSpec:
    """Examples of a registered dataset, already split.

    Attributes
    ----------
    name:
        Registry identifier.
    input_dim:
        Length of every feature vector.
    train, val, test:
        Lists of :class:`TrainingExample` with binary targets.
    provenance:
        Free-form metadata describing how the examples were produced; the
        pipeline copies it verbatim into the run manifest.
    """

    name: str
    input_dim: int
    train: List[TrainingExample]
    val: List[TrainingExample] = field(default_factory=list)
    test: List[TrainingExample] = field(default_factory=list)
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def splits(self) -> Dict[str, int]:
        return {split: len(getattr(self, split)) for split in SPLITS}


DatasetFactory = Callable[..., DatasetSpec]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | DatasetFactory:
    """Register a dataset factory.

    ``register_dataset`` can be used both as a decorator::

        @register_dataset("synthetic")
        def make_synthetic(**kwargs):
            ...

    or directly::

        register_dataset("synthetic", make_synthetic)
    """

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(dataset: str, /, **options: Any) -> DatasetSpec:
    """Return the :class:`DatasetSpec` built by the factory named ``dataset``."""

    if dataset not in _REGISTRY:
        available = ", ".join(available_datasets())
        raise KeyError(f"Unknown dataset {dataset!r}. Available datasets: {available}")
    spec = _REGISTRY[dataset](**options)
    _validate_spec(spec)
    return spec


def available_datasets() -> Iterable[str]:
    """Return the sorted list of available dataset identifiers."""

    return sorted(_REGISTRY)


def _validate_spec(spec: DatasetSpec) -> None:
    if spec.input_dim <= 0:
        raise ValueError(f"Dataset {spec.name!r} has non-positive input_dim {spec.input_dim}")
    if not spec.train:
        raise ValueError(f"Dataset {spec.name!r} has an empty train split")
    for split in SPLITS:
        for idx, example in enumerate(getattr(spec, split)):
            if len(example.features) != spec.input_dim:
                raise ValueError(
                    f"Dataset {spec.name!r} {split}[{idx}] has {len(example.features)} "
                    f"features, expected {spec.input_dim}"
                )


__all__ = [
    "DatasetSpec",
    "SPLITS",
    "available_datasets",
    "get_dataset",
    "register_dataset",
]
