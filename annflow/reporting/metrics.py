"""Metric sinks that listen to learning events."""

from __future__ import annotations

import csv
import json
import math
import subprocess
from pathlib import Path
from typing import Dict, Union

from ..core.types import LearnEvent


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except Exception:  # pragma: no cover - git may be unavailable in tests
        return "unknown"


def _row(event: LearnEvent) -> Dict[str, Union[int, float, str]]:
    row: Dict[str, Union[int, float, str]] = {"iteration": int(event.iteration), "mode": event.name}
    if event.error is not None and math.isfinite(event.error):
        row["error"] = float(event.error)
    return row


class JsonlSink:
    """Append-only JSONL writer, one line per learning iteration."""

    def __init__(
        self,
        path: str | Path,
        *,
        seed: int | None = None,
        sha: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.seed = seed
        self.sha = sha or _git_sha()

    def on_doing(self, event: LearnEvent) -> None:
        record = {"seed": self.seed, "sha": self.sha}
        record.update(_row(event))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    __call__ = on_doing


class CsvSink:
    """Write per-iteration metrics to CSV with a stable schema."""

    FIELDS = ("iteration", "mode", "error")

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")

    def on_doing(self, event: LearnEvent) -> None:
        row = _row(event)
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=self.FIELDS)
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    __call__ = on_doing


__all__ = ["CsvSink", "JsonlSink"]
