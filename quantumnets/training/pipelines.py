"""Pipeline assembly: dataset, optional hyperparameter search, training, artifacts."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from ..core.network import Network
from ..core.types import Hyperparameters, RunResult, TrainingExample
from ..data import get_dataset
from ..data.registry import DatasetSpec
from ..optim.objective import split_params, tune_network
from ..optim.space import NETWORK_SEARCH_SPACE, SearchSpace
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from .metrics import compute_metrics, default_metrics
from .trainer import Trainer

logger = logging.getLogger(__name__)

RUN_ROOT_ENV = "QUANTUMNETS_RUN_ROOT"

_PRESETS: Dict[str, Mapping[str, object]] = {
    "blobs-basic": {
        "data": {
            "name": "synthetic",
            "options": {"n_points": 120, "input_dim": 2, "seed": 0},
        },
        "model": {"hidden": [4], "learning_rate": 0.05, "momentum": 0.9},
        "train": {
            "epochs": 30,
            "batch_size": 16,
            "validation_split": 0.0,
            "patience": 10,
            "seed": 0,
            "enable_plots": False,
        },
    },
    "blobs-tuned": {
        "data": {
            "name": "synthetic",
            "options": {"n_points": 120, "input_dim": 2, "seed": 1},
        },
        "model": {"hidden": [4]},
        "train": {
            "epochs": 20,
            "batch_size": 16,
            "validation_split": 0.0,
            "patience": 10,
            "seed": 1,
            "enable_plots": False,
        },
        "tune": {
            "enabled": True,
            "population_size": 4,
            "max_iterations": 3,
            "objective": {"epochs": 5, "batch_size": 16, "subset_size": 60},
        },
    },
    "xor-fixture": {
        "data": {"name": "xor", "options": {"repeats": 8}},
        "model": {"hidden": [4], "learning_rate": 0.1, "momentum": 0.9, "dropout": 0.0},
        "train": {
            "epochs": 200,
            "batch_size": 8,
            "validation_split": 0.0,
            "patience": 200,
            "seed": 3,
            "enable_plots": False,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def _read_preset_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported preset file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Preset {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        presets: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = _read_preset_file(file)
                missing = {"data", "model", "train"} - set(data)
                if missing:
                    missing_str = ", ".join(sorted(missing))
                    raise KeyError(f"Preset {file.name} is missing required sections: {missing_str}")
                presets[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = presets
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Mapping[str, object]:
    file_overrides = _file_presets()
    if name in file_overrides:
        return file_overrides[name]
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def _normalise(value):
    if isinstance(value, Mapping):
        return {str(k): _normalise(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise(v) for v in value]
    if isinstance(value, Path):
        return str(value)
    return value


def config_hash(config: Mapping[str, object]) -> str:
    """Return a stable 12-character hash for ``config``."""

    canonical = json.dumps(_normalise(config), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return digest[:12]


class _MetricsCapture:
    def __init__(self) -> None:
        self.last: Mapping[str, float] = {}

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        payload = {k: float(v) for k, v in metrics.items()}
        self.last = payload


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    """Train one network as described by ``config`` and write its artifacts.

    ``config`` holds ``data``, ``model`` and ``train`` sections plus an
    optional ``tune`` section. When ``tune.enabled`` is true the quantum
    optimizer searches the hyperparameters first and the winning values
    override the ``model`` and ``train`` settings of the final run.

    Training uses the whole ``train`` split of the dataset and monitors its
    ``val`` split; ``train.validation_split`` only applies to datasets that
    ship no validation examples.
    """

    for section in ("data", "model", "train"):
        if section not in config:
            raise KeyError(f"Config is missing required section: {section}")
    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    model_cfg = dict(config["model"])  # type: ignore[arg-type]
    train_cfg = dict(config["train"])  # type: ignore[arg-type]
    tune_cfg = dict(config.get("tune") or {})  # type: ignore[arg-type]

    seed = int(train_cfg.get("seed", 0))
    dataset = get_dataset(str(data_cfg["name"]), **dict(data_cfg.get("options") or {}))
    dims = _build_dims(model_cfg, dataset)
    hyperparameters = Hyperparameters.from_mapping(
        {k: model_cfg[k] for k in Hyperparameters().to_dict() if k in model_cfg}
    )

    run_dir = _resolve_run_dir(train_cfg, config)
    run_dir.mkdir(parents=True, exist_ok=True)
    enable_plots = bool(train_cfg.get("enable_plots", False))

    _print_startup_summary(
        dataset_name=dataset.name,
        splits=dataset.splits,
        dims=dims,
        hyperparameters=hyperparameters,
        tune=bool(tune_cfg.get("enabled", False)),
        run_dir=run_dir,
    )

    tuning_path = ""
    if tune_cfg.get("enabled", False):
        tuned, tuning_path = _run_tuning(dataset, dims, tune_cfg, seed, run_dir, enable_plots)
        network_params, training_params = split_params(tuned)
        hyperparameters = hyperparameters.replace(**network_params)  # type: ignore[arg-type]
        train_cfg.update(training_params)
        logger.info("Training with tuned hyperparameters %s", hyperparameters.to_dict())

    network = Network(layer_dims=dims, hyperparameters=hyperparameters, seed=seed)
    train_jsonl = JsonlSink(run_dir / "metrics_train.jsonl", split="train", seed=seed)
    train_csv = CsvSink(run_dir / "metrics_train.csv", split="train")
    capture = _MetricsCapture()
    plots = PlotAdapter(run_dir, enable_plots=enable_plots)
    trainer = Trainer(network, callbacks=[train_jsonl, train_csv, capture, plots])
    outcome = trainer.train(
        dataset.train,
        validation=dataset.val or None,
        epochs=int(train_cfg.get("epochs", 50)),
        batch_size=int(train_cfg.get("batch_size", 32)),
        validation_split=float(train_cfg.get("validation_split", 0.0)),
        patience=int(train_cfg.get("patience", 10)),
        min_loss=float(train_cfg.get("min_loss", 1e-5)),
    )
    plots.close()

    evaluation = {
        split: _evaluate(network, examples, train_cfg)
        for split, examples in (("val", dataset.val), ("test", dataset.test))
        if examples
    }
    (run_dir / "metrics_eval.json").write_text(json.dumps(evaluation, indent=2, sort_keys=True))

    model_path = network.save(run_dir / "model.json")
    resolved = _safe_config(config, dims, hyperparameters, train_cfg)
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=resolved,
        dataset_provenance=dataset.provenance,
        extra={"run_id": config_hash(config)},
    )
    summary_path = write_summary(
        train_jsonl.path,
        run_dir / "summary.json",
        tail=int(train_cfg.get("summary_tail", 32)),
        extra={
            "epochs_run": outcome.epochs_run,
            "stopped_early": outcome.stopped_early,
            "final_loss": outcome.final_loss,
            "best_val_loss": outcome.best_val_loss,
            "final_metrics": dict(capture.last),
            "evaluation": evaluation,
        },
    )
    (run_dir / "config.json").write_text(json.dumps(resolved, indent=2))

    return RunResult(
        epochs=outcome.epochs_run,
        metrics_path=str(train_jsonl.path),
        manifest_path=manifest,
        summary_path=str(summary_path),
        model_path=model_path,
        tuning_path=tuning_path,
    )


def _run_tuning(
    dataset: DatasetSpec,
    dims: Sequence[int],
    tune_cfg: Mapping[str, object],
    seed: int,
    run_dir: Path,
    enable_plots: bool,
) -> tuple[Dict[str, object], str]:
    space_cfg = tune_cfg.get("space")
    space = SearchSpace.from_mapping(space_cfg) if space_cfg else NETWORK_SEARCH_SPACE  # type: ignore[arg-type]
    validation: List[TrainingExample] = dataset.val or dataset.train
    tune_seed = int(tune_cfg.get("seed", seed))
    plots = PlotAdapter(run_dir, enable_plots=enable_plots)
    callbacks = [
        JsonlSink(run_dir / "metrics_tuning.jsonl", split="tune", seed=tune_seed, step_key="iteration"),
        CsvSink(run_dir / "metrics_tuning.csv", split="tune", step_key="iteration"),
        plots,
    ]
    result = tune_network(
        dataset.train,
        validation,
        layer_dims=dims,
        space=space,
        population_size=int(tune_cfg.get("population_size", 20)),
        max_iterations=int(tune_cfg.get("max_iterations", 100)),
        seed=tune_seed,
        objective_options=tune_cfg.get("objective"),  # type: ignore[arg-type]
        optimizer_options=tune_cfg.get("optimizer"),  # type: ignore[arg-type]
        callbacks=callbacks,
    )
    plots.close()
    tuning_path = run_dir / "tuning.json"
    tuning_path.write_text(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    return dict(result.best_params), str(tuning_path)


def _evaluate(
    network: Network, examples: Sequence[TrainingExample], train_cfg: Mapping[str, object]
) -> Mapping[str, float]:
    inputs = [example.features for example in examples]
    targets = [example.target for example in examples]
    predictions = network.predict_batch(inputs)
    names = train_cfg.get("metrics") or default_metrics()
    return compute_metrics(
        names,  # type: ignore[arg-type]
        predictions,
        targets,  # type: ignore[arg-type]
        threshold=float(train_cfg.get("threshold", 0.5)),
    )


def _resolve_run_dir(train_cfg: Mapping[str, object], config: Mapping[str, object]) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    return Path(os.environ.get(RUN_ROOT_ENV, "runs")) / config_hash(config)


def _build_dims(model_cfg: Mapping[str, object], dataset: DatasetSpec) -> List[int]:
    d_in = int(model_cfg.get("d_in", dataset.input_dim))  # type: ignore[arg-type]
    if d_in != dataset.input_dim:
        raise ValueError(f"Configured d_in={d_in} but dataset {dataset.name!r} has {dataset.input_dim}")
    dims = [d_in]
    dims.extend(int(h) for h in model_cfg.get("hidden", []))  # type: ignore[union-attr]
    dims.append(int(model_cfg.get("d_out", 1)))  # type: ignore[arg-type]
    return dims


def _safe_config(
    config: Mapping[str, object],
    dims: Sequence[int],
    hyperparameters: Hyperparameters,
    train_cfg: Mapping[str, object],
) -> Mapping[str, object]:
    copied = json.loads(json.dumps(_normalise(config)))
    model = copied.setdefault("model", {})
    model["layer_dims"] = list(dims)
    model.update(hyperparameters.to_dict())
    copied["train"] = json.loads(json.dumps(_normalise(train_cfg)))
    return copied


def _print_startup_summary(
    *,
    dataset_name: str,
    splits: Mapping[str, int],
    dims: Sequence[int],
    hyperparameters: Hyperparameters,
    tune: bool,
    run_dir: Path,
) -> None:
    logger.info("=== QuantumNets run ===")
    logger.info("Dataset       : %s %s", dataset_name, dict(splits))
    logger.info("Dimensions    : %s", list(dims))
    logger.info("Hyperparams   : %s", hyperparameters.to_dict())
    logger.info("Tuning        : %s", "on" if tune else "off")
    logger.info("Run dir       : %s", run_dir)


__all__ = ["RUN_ROOT_ENV", "config_hash", "load_preset", "presets", "run_pipeline"]
