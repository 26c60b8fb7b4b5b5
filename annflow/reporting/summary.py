"""Deterministic learning-run summaries.

The summary is derived from ``metrics.jsonl`` only, so two runs with the
same seed produce byte-identical ``summary.json`` files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np

# Keys of a metrics row that are bookkeeping, not curves.
_SKIP = {"iteration", "seed"}


def _area(y: np.ndarray, x: np.ndarray) -> float:
    trapezoid = getattr(np, "trapezoid", None)
    if callable(trapezoid):
        return float(trapezoid(y, x))
    return float(np.trapz(y, x))


def compute_auc(points: Sequence[float]) -> float:
    """Area under ``points`` with one unit per learning iteration."""

    if not points:
        return 0.0
    y = np.asarray(points, dtype=np.float64)
    return _area(y, np.arange(len(y), dtype=np.float64))


def _read_rows(path: Path) -> List[Mapping[str, object]]:
    if not path.exists():
        return []
    rows = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if line:
            rows.append(json.loads(line))
    return rows


def _curves(rows: Sequence[Mapping[str, object]]) -> Dict[str, List[float]]:
    curves: Dict[str, List[float]] = {}
    for row in rows:
        for key, value in row.items():
            if key in _SKIP or isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            curves.setdefault(key, []).append(float(value))
    return curves


def _curve_stats(values: List[float], tail: int) -> Mapping[str, float]:
    arr = np.asarray(values, dtype=np.float64)
    window = arr[-tail:] if tail else arr[:0]
    return {
        "first": float(arr[0]),
        "last": float(arr[-1]),
        "min": float(arr.min()),
        "max": float(arr.max()),
        "mean": float(arr.mean()),
        "argmin": int(arr.argmin()),
        "tail_auc": compute_auc(window.tolist()),
    }


def summarize(rows: Sequence[Mapping[str, object]], tail: int = 32) -> Mapping[str, object]:
    """Per-curve statistics over the learning iterations in ``rows``."""

    tail_window = min(max(0, tail), len(rows))
    iterations = [int(row["iteration"]) for row in rows if isinstance(row.get("iteration"), int)]
    return {
        "version": 1,
        "records": len(rows),
        "iterations": max(iterations) if iterations else 0,
        "tail_window": tail_window,
        "metrics": {name: _curve_stats(values, tail_window) for name, values in sorted(_curves(rows).items())},
    }


def write_summary(metrics_jsonl: str | Path, out_summary_json: str | Path, *, tail: int = 32) -> str:
    """Summarize ``metrics_jsonl`` into ``out_summary_json``; returns the path."""

    out_path = Path(out_summary_json)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    summary = summarize(_read_rows(Path(metrics_jsonl)), tail)
    out_path.write_text(json.dumps(summary, sort_keys=True, indent=2))
    return str(out_path)


__all__ = ["compute_auc", "summarize", "write_summary"]
