"""Shared plumbing of latent-variable generators."""

from __future__ import annotations

import threading
from typing import Iterable, Iterator, List, Optional, Sequence

import numpy as np

from ..core.topology import Network
from ..core.types import Record
from ..core.values import Value, record, to_floats
from ..training.config import LearnConfig
from ..training.control import LearnControl
from ..training.trainer import Trainer


class Generator:
    """Model with a ``Z -> X`` decoder, learned through :class:`Trainer`.

    Subclasses build :attr:`decoder` and provide the ``backpropagate`` and
    ``backpropagate_each`` steps the trainer calls once per iteration.
    """

    decoder: Network

    def __init__(self, *, config: Optional[LearnConfig] = None, name: str = "gen") -> None:
        self.config = config or LearnConfig()
        self.name = name
        self.z_dim = 0
        self.iterations = 0
        self._rng = np.random.default_rng(self.config.seed)

    @property
    def bp(self):
        return self.decoder.bp

    @property
    def learn_lock(self) -> threading.Lock:
        return self.decoder.learn_lock

    def can_learn(self) -> bool:
        return self.decoder.can_learn()

    # ------------------------------------------------------------------
    # Data

    def sample_z(self, n: int) -> np.ndarray:
        if self.config.random_z_data:
            return self._rng.standard_normal((max(0, n), self.z_dim))
        return np.zeros((max(0, n), self.z_dim))

    def make_records(self, samples: Iterable[Sequence[float]]) -> List[Record]:
        """Pair every observed ``X`` with a latent ``Z``."""

        xs = [np.atleast_1d(np.asarray(x, dtype=np.float64)) for x in samples]
        zs = self.sample_z(len(xs))
        return [record(z.tolist(), x.tolist()) for z, x in zip(zs, xs)]

    def _lazy_records(self, samples: Iterable[Sequence[float]]) -> Iterator[Record]:
        # Drawn only once the trainer holds the learn lock.
        yield from self.make_records(samples)

    # ------------------------------------------------------------------
    # Learning

    def learn(
        self,
        samples: Iterable[Sequence[float]],
        *,
        listeners: Optional[Sequence[object]] = None,
        control: Optional[LearnControl] = None,
        per_record: bool = False,
        learning_rate: Optional[float] = None,
        terminated_threshold: Optional[float] = None,
        max_iteration: Optional[int] = None,
    ) -> Optional[List[Optional[Value]]]:
        """Train on observed samples; returns the last output error.

        A call rejected because another learning call holds the model leaves
        the latent stream and :attr:`iterations` untouched.
        """

        trainer = Trainer(self, self.config, listeners, control)
        run = trainer.learn_one if per_record else trainer.learn
        error = run(
            self._lazy_records(samples),
            learning_rate=learning_rate,
            terminated_threshold=terminated_threshold,
            max_iteration=max_iteration,
        )
        if trainer.iteration:
            self.iterations = trainer.iteration
        return error

    # ------------------------------------------------------------------
    # Generation

    def generate(self, n: int = 1) -> List[List[float]]:
        """Decode ``n`` latent draws into observed-space samples."""

        return [to_floats(self.decoder.evaluate(z.tolist())) for z in self.sample_z(n)]

    def decode(self, z: Sequence[float]) -> List[float]:
        return to_floats(self.decoder.evaluate(list(z)))

    def describe(self) -> str:
        return f"{type(self).__name__}({self.name}: z={self.z_dim}, decoder={self.decoder.describe()})"

    def __str__(self) -> str:
        return str(self.decoder)


__all__ = ["Generator"]
