"""Headless-safe plotting adapters."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Tuple


class PlotAdapter:
    """Collect loss and fitness curves and optionally emit matplotlib figures.

    Registered as a trainer callback it records ``loss``/``val_loss`` per
    epoch; registered with the optimizer it records ``best_fitness`` and
    ``avg_fitness`` per iteration. Nothing is written unless ``enable_plots``.
    """

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self._epochs: Dict[str, List[Tuple[int, float]]] = {}
        self._iterations: Dict[str, List[Tuple[int, float]]] = {}
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _collect(store, step: int, metrics: Mapping[str, object], keys) -> None:
        for key in keys:
            if key in metrics:
                store.setdefault(key, []).append((int(step), float(metrics[key])))  # type: ignore[arg-type]

    def on_epoch(self, epoch: int, metrics: Mapping[str, object]) -> None:
        if self.enable_plots:
            self._collect(self._epochs, epoch, metrics, ("loss", "val_loss"))

    def on_iteration(self, iteration: int, metrics: Mapping[str, object]) -> None:
        if self.enable_plots:
            self._collect(self._iterations, iteration, metrics, ("best_fitness", "avg_fitness"))

    def _plot(self, curves, xlabel: str, ylabel: str, title: str, filename: str) -> Path:
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        fig, ax = plt.subplots()
        for name, points in sorted(curves.items()):
            steps, values = zip(*points)
            ax.plot(steps, values, label=name)
        ax.set_xlabel(xlabel)
        ax.set_ylabel(ylabel)
        ax.set_title(title)
        ax.legend()
        plot_path = self.run_dir / filename
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path

    def close(self) -> List[Path]:
        if not self.enable_plots:
            return []
        written = []
        if self._epochs:
            written.append(self._plot(self._epochs, "Epoch", "Loss", "Training Curve", "loss.png"))
        if self._iterations:
            written.append(
                self._plot(self._iterations, "Iteration", "Fitness", "Convergence", "convergence.png")
            )
        return written

    __call__ = on_epoch
