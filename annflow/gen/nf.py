"""Normalizing-flow style generator.

The decoder maps latent data ``Z`` to observed data ``X``. It is trained
either as an ordinary regression ``Z -> X`` or with the inverse learning
rule, which pushes weights toward a bijection of the activation. In
bidirectional mode every learning step runs an ordinary update and then an
inverse update, per record when learning record by record.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from ..core.activations import Activation, Logistic
from ..core.backprop import InverseBackpropagator
from ..core.topology import Network, NetworkAssoc
from ..core.types import Record
from ..core.values import Value
from ..training.config import LearnConfig
from .base import Generator

logger = logging.getLogger(__name__)

Step = Callable[[Sequence[Record], float], Optional[List[Value]]]


class NormalizingFlow(Generator):
    """Generator whose decoder is trained by inverse backpropagation."""

    def __init__(
        self,
        activation: Optional[Activation] = None,
        *,
        config: Optional[LearnConfig] = None,
        name: str = "nf",
    ) -> None:
        super().__init__(config=config, name=name)
        self.decoder = Network(
            activation if activation is not None else Logistic(),
            backpropagator=InverseBackpropagator(self.config.learning_bias, self.config.inverse_learning),
            name=f"{name}.decoder",
        )

    @property
    def inverse_only(self) -> bool:
        return self.config.inverse_learning and not self.config.bidirection_learning

    def initialize(self, x_dim: int, z_dim: Optional[int] = None, hidden: Optional[Sequence[int]] = None) -> bool:
        """Build the ``Z -> X`` decoder.

        Inverse learning divides by the weights, so when it runs alone every
        weight starts at 1.
        """

        self.z_dim = max(1, int(z_dim if z_dim is not None else x_dim))
        self.decoder.initialize(self.z_dim, x_dim, hidden)
        assoc = NetworkAssoc(self.decoder)
        if self.inverse_only:
            assoc.set_weights(1.0)
        else:
            assoc.randomize_weights(self._rng)
        return True

    # ------------------------------------------------------------------
    # Learning steps driven by annflow.training.trainer.Trainer

    def passes(self) -> List[bool]:
        """Inverse-mode flags of the updates making up one step."""

        if not self.config.inverse_learning:
            return [False]
        if self.config.bidirection_learning:
            return [False, True]
        return [True]

    def backpropagate(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        return self._alternate(self.decoder.backpropagate, sample, learning_rate)

    def backpropagate_each(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        """Per-record updates; each record runs every pass before the next record."""

        error = None
        for rec in sample:
            if rec is None:
                continue
            rec_error = self._alternate(self.decoder.backpropagate_each, [rec], learning_rate)
            if rec_error is not None:
                error = rec_error
        return error

    def _alternate(self, step: Step, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        bp = self.decoder.bp
        saved = bp.inverse_mode  # type: ignore[attr-defined]
        error = None
        try:
            for inverse in self.passes():
                bp.inverse_mode = inverse  # type: ignore[attr-defined]
                logger.debug("%s update (inverse=%s) over %d records", self.name, inverse, len(sample))
                pass_error = step(sample, learning_rate)
                if pass_error is not None:
                    error = pass_error
        finally:
            bp.inverse_mode = saved  # type: ignore[attr-defined]
        return error


__all__ = ["NormalizingFlow"]
