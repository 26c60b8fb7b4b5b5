"""Core typing contracts for annflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .values import Value

Array = np.ndarray


@dataclass(frozen=True)
class Record:
    """A single training example: input values and optional targets.

    ``output`` is the real (target) output of the backbone. ``mem_output`` is
    the optional target of the memory layer, learned together with the
    rib-bones after the backbone step.
    """

    input: Tuple["Value", ...] = ()
    output: Optional[Tuple["Value", ...]] = None
    mem_output: Optional[Tuple["Value", ...]] = None


@dataclass(frozen=True)
class LearnEvent:
    """Progress notification emitted by the learning driver."""

    kind: str
    name: str
    iteration: int
    max_iteration: int
    error: Optional[float] = None
    message: str = ""


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`annflow.training.pipelines.run_pipeline`."""

    iterations: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    params_path: str = ""


DOING = "doing"
DONE = "done"

__all__ = ["Array", "DOING", "DONE", "LearnEvent", "Record", "RunResult"]
