"""Command line entry point for QuantumNets runs."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

import yaml

from quantumnets.training import pipelines


def _format_result(result, run_id: str) -> str:
    payload = {
        "epochs": result.epochs,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
        "run_id": run_id,
    }
    if result.summary_path:
        payload["summary"] = result.summary_path
    if result.model_path:
        payload["model"] = result.model_path
    if result.tuning_path:
        payload["tuning"] = result.tuning_path
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="blobs-basic",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument("--seed", type=int, help="Seed used for dataset splits and training")
    parser.add_argument(
        "--tune",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Search hyperparameters with the quantum optimizer before training",
    )
    parser.add_argument("--enable-plots", action="store_true", help="Write loss/convergence plots")
    parser.add_argument("--dump-config", type=Path, help="Dump the resolved config to a JSON file")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (messages go to stderr)",
    )
    return parser.parse_args(argv)


def _load_override(path: Path) -> dict:
    text = path.read_text()
    if path.suffix in {".yml", ".yaml"}:
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    config = json.loads(json.dumps(pipelines.load_preset(args.preset)))

    if args.config:
        override = _load_override(args.config)
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = _merge(config, override)

    if args.enable_plots:
        config.setdefault("train", {})["enable_plots"] = True
    if args.tune is not None:
        config.setdefault("tune", {})["enabled"] = bool(args.tune)
    if args.seed is not None:
        config.setdefault("train", {})["seed"] = int(args.seed)
        config.setdefault("data", {}).setdefault("options", {})["seed"] = int(args.seed)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    run_id = pipelines.config_hash(config)
    result = pipelines.run_pipeline(config)
    print(_format_result(result, run_id))


if __name__ == "__main__":
    main()
