"""Pure in-memory synthetic datasets."""

from __future__ import annotations

from typing import List

import numpy as np

from ..core.types import Record
from ..core.values import record
from .registry import DataSpec, DatasetSpec, register_dataset


def _make_sine(freq: float, n_points: int, seed: int, noise: float) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    x = np.linspace(0.0, 1.0, n_points)
    # Targets are squashed into (0, 1) for logistic outputs.
    y = 0.5 + 0.4 * np.sin(freq * np.pi * x)
    y = np.clip(y + noise * rng.standard_normal(size=y.shape), 0.01, 0.99)
    return x, y


def sine_records(freq: float = 1.0, n_points: int = 32, seed: int = 0, noise: float = 0.02) -> List[Record]:
    x, y = _make_sine(freq, n_points, seed, noise)
    return [record([float(xi)], [float(yi)]) for xi, yi in zip(x, y)]


def sine_sequences(
    n_sequences: int = 8,
    length: int = 4,
    seed: int = 0,
    noise: float = 0.02,
) -> List[List[Record]]:
    """Windows of a noisy sine wave; each record predicts the next point."""

    length = max(1, int(length))
    x, y = _make_sine(2.0, n_sequences + length + 1, seed, noise)
    sequences: List[List[Record]] = []
    for start in range(max(1, int(n_sequences))):
        window = []
        for t in range(start, start + length):
            window.append(record([float(y[t])], [float(y[t + 1])]))
        sequences.append(window)
    return sequences


def unit_interval_samples(n_samples: int = 32, dim: int = 2, seed: int = 0) -> List[List[float]]:
    """Observed samples in ``(0, 1)`` drawn from a clipped Gaussian."""

    rng = np.random.default_rng(seed)
    data = np.clip(0.5 + 0.15 * rng.standard_normal((max(1, n_samples), max(1, dim))), 0.01, 0.99)
    return data.tolist()


def _sine_factory(freq: float = 1.0, n_points: int = 32, seed: int = 0, noise: float = 0.02, **_: object) -> DatasetSpec:
    return DatasetSpec(
        name="sine",
        items=sine_records(freq, n_points, seed, noise),
        data_spec=DataSpec(d_in=1, d_out=1, task_type="regression"),
        provenance={"type": "synthetic", "freq": freq, "n_points": n_points, "seed": seed, "noise": noise},
    )


def _sequence_factory(
    n_sequences: int = 8, length: int = 4, seed: int = 0, noise: float = 0.02, **_: object
) -> DatasetSpec:
    return DatasetSpec(
        name="sine-sequence",
        items=sine_sequences(n_sequences, length, seed, noise),
        data_spec=DataSpec(d_in=1, d_out=1, task_type="sequence", length=max(1, int(length))),
        provenance={"type": "synthetic", "n_sequences": n_sequences, "length": length, "seed": seed},
    )


def _gaussian_factory(n_samples: int = 32, dim: int = 2, seed: int = 0, **_: object) -> DatasetSpec:
    return DatasetSpec(
        name="gaussian",
        items=unit_interval_samples(n_samples, dim, seed),
        data_spec=DataSpec(d_in=dim, d_out=dim, task_type="generative"),
        provenance={"type": "synthetic", "n_samples": n_samples, "dim": dim, "seed": seed},
    )


register_dataset("sine", _sine_factory)
register_dataset("sine-sequence", _sequence_factory)
register_dataset("gaussian", _gaussian_factory)


__all__ = ["sine_records", "sine_sequences", "unit_interval_samples"]
