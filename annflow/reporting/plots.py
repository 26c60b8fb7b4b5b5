"""Headless-safe plotting adapters."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from ..core.types import LearnEvent


class PlotAdapter:
    """Collect the error curve and emit a matplotlib figure when learning ends."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self.plot_path: Optional[Path] = None
        self._history: List[Tuple[int, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_doing(self, event: LearnEvent) -> None:
        if not self.enable_plots or event.error is None:
            return
        self._history.append((len(self._history) + 1, float(event.error)))

    def on_done(self, event: LearnEvent) -> None:
        self.close()

    def close(self) -> None:
        if not self.enable_plots or not self._history:
            return
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        steps, errors = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(steps, errors)
        ax.set_xlabel("Iteration")
        ax.set_ylabel("Mean error norm")
        ax.set_title("Learning Curve")
        self.plot_path = self.run_dir / "errors.png"
        fig.savefig(self.plot_path)
        plt.close(fig)


__all__ = ["PlotAdapter"]
