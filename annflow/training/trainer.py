"""Learning driver shared by every annflow model.

The :class:`Trainer` owns the iteration loop: learning-rate sanitizing and
schedule, optional resampling, termination checks, the single cooperative
suspension point and listener notification. What one iteration does is
delegated to the model (``backpropagate`` for a batch-mean step,
``backpropagate_each`` for per-record steps), so feed-forward, recurrent and
gated models share the same loop.
"""

from __future__ import annotations

import logging
import math
import sys
import threading
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from ..core.backprop import sanitize_learning_rate
from ..core.types import DOING, DONE, LearnEvent
from ..core.values import Value, norm_mean
from .config import LEARN_MAX_ITERATION_DEFAULT, LEARN_TERMINATED_THRESHOLD_DEFAULT, LearnConfig
from .control import LearnControl

logger = logging.getLogger(__name__)

Errors = Optional[List[Optional[Value]]]


class Learnable(Protocol):
    """Model contract consumed by :class:`Trainer`."""

    name: str
    learn_lock: threading.Lock

    def can_learn(self) -> bool:
        ...

    def backpropagate(self, sample: Sequence[object], learning_rate: float) -> Errors:
        ...

    def backpropagate_each(self, sample: Sequence[object], learning_rate: float) -> Errors:
        ...


class Trainer:
    """Run the learning loop of a model with pluggable listeners."""

    def __init__(
        self,
        model: Learnable,
        config: Optional[LearnConfig] = None,
        listeners: Optional[Sequence[object]] = None,
        control: Optional[LearnControl] = None,
    ) -> None:
        self.model = model
        self.config = config or LearnConfig()
        self.listeners = list(listeners or [])
        self.control = control or LearnControl()
        self.iteration = 0
        self._rng = np.random.default_rng(self.config.seed)

    def add_listener(self, listener: object) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: object) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    # ------------------------------------------------------------------
    # Control shortcuts

    def pause(self) -> bool:
        return self.control.pause()

    def resume(self) -> bool:
        return self.control.resume()

    def stop(self) -> bool:
        return self.control.stop()

    @property
    def running(self) -> bool:
        return self.control.started

    # ------------------------------------------------------------------
    # Learning

    def learn(
        self,
        sample: Iterable[object],
        *,
        learning_rate: Optional[float] = None,
        terminated_threshold: Optional[float] = None,
        max_iteration: Optional[int] = None,
    ) -> Errors:
        """Batch learning: every iteration backpropagates the mean output error."""

        return self._run(
            sample,
            self.model.backpropagate,
            "backpropagate",
            learning_rate,
            terminated_threshold,
            max_iteration,
        )

    def learn_one(
        self,
        sample: Iterable[object],
        *,
        learning_rate: Optional[float] = None,
        terminated_threshold: Optional[float] = None,
        max_iteration: Optional[int] = None,
    ) -> Errors:
        """Stochastic learning: every record updates the weights immediately."""

        return self._run(
            sample,
            self.model.backpropagate_each,
            "backpropagate_one",
            learning_rate,
            terminated_threshold,
            max_iteration,
        )

    def _resolve(
        self,
        learning_rate: Optional[float],
        terminated_threshold: Optional[float],
        max_iteration: Optional[int],
    ) -> tuple[float, float, int]:
        lr = self.config.learning_rate if learning_rate is None else learning_rate
        threshold = self.config.terminated_threshold if terminated_threshold is None else terminated_threshold
        max_iter = self.config.max_iteration if max_iteration is None else max_iteration
        if max_iter < 0:
            max_iter = LEARN_MAX_ITERATION_DEFAULT
        if threshold != threshold or threshold < 0:
            threshold = LEARN_TERMINATED_THRESHOLD_DEFAULT
        return sanitize_learning_rate(lr), float(threshold), int(max_iter)

    def _run(
        self,
        sample: Iterable[object],
        step: Callable[[Sequence[object], float], Errors],
        name: str,
        learning_rate: Optional[float],
        terminated_threshold: Optional[float],
        max_iteration: Optional[int],
    ) -> Errors:
        if not self.model.learn_lock.acquire(blocking=False):
            logger.warning("%s is already learning; call rejected", self.model.name)
            return None
        try:
            if not self.model.can_learn():
                logger.warning("%s has fewer than two layers; nothing to learn", self.model.name)
                return None
            if not self.control.start():
                logger.warning("Control token of %s is already running", self.model.name)
                return None
            return self._loop(list(sample), step, name, learning_rate, terminated_threshold, max_iteration)
        finally:
            self.model.learn_lock.release()

    def _loop(
        self,
        records: List[object],
        step: Callable[[Sequence[object], float], Errors],
        name: str,
        learning_rate: Optional[float],
        terminated_threshold: Optional[float],
        max_iteration: Optional[int],
    ) -> Errors:
        lr, threshold, max_iter = self._resolve(learning_rate, terminated_threshold, max_iteration)
        error: Errors = None
        iteration = 0
        self.iteration = 0
        try:
            while self.control.started and (max_iter <= 0 or iteration < max_iter):
                batch = self.resample(records, iteration)
                rate = self.calc_learning_rate(lr, iteration)
                error = step(batch, rate)
                iteration += 1
                self.iteration = iteration
                error_mean = norm_mean(error) if error else None
                logger.debug("%s iteration %d: error=%s lr=%.6g", name, iteration, error_mean, rate)
                self._fire(self._event(DOING, name, iteration, max_iter, error_mean))

                if not error or (iteration >= max_iter and max_iter == 1):
                    self.control.stop()
                elif (
                    threshold > 0
                    and self.config.terminate_error
                    and error_mean is not None
                    and error_mean < threshold
                ):
                    self.control.stop()
                self.control.checkpoint()
        finally:
            error_mean = norm_mean(error) if error else None
            self._fire(self._event(DONE, name, iteration, max_iter, error_mean))
            self.control.finish()
        return error

    def calc_learning_rate(self, learning_rate: float, iteration: int) -> float:
        """Decay the rate as ``lr / sqrt(iteration)`` unless it is fixed."""

        if iteration <= 1 or self.config.learning_rate_fixed:
            return learning_rate
        return max(learning_rate / math.sqrt(iteration), sys.float_info.min)

    def resample(self, records: List[object], iteration: int) -> List[object]:
        """Bootstrap the sample (with replacement) from the second iteration on."""

        if not self.config.resample or iteration <= 1 or not records:
            return records
        indices = self._rng.integers(0, len(records), size=len(records))
        return [records[int(i)] for i in indices]

    # ------------------------------------------------------------------
    # Notification

    def _event(self, kind: str, name: str, iteration: int, max_iter: int, error: Optional[float]) -> LearnEvent:
        message = ""
        if self.listeners:
            message = f"At final iteration {iteration}\nThe learned result is:\n{self.model}"
        return LearnEvent(
            kind=kind,
            name=name,
            iteration=iteration,
            max_iteration=max_iter,
            error=error,
            message=message,
        )

    def _fire(self, event: LearnEvent) -> None:
        for listener in list(self.listeners):
            try:
                handler = getattr(listener, f"on_{event.kind}", None)
                if handler is not None:
                    handler(event)
                elif not hasattr(listener, "on_doing") and not hasattr(listener, "on_done") and callable(listener):
                    listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s event", listener, event.kind)


__all__ = ["Learnable", "Trainer"]
