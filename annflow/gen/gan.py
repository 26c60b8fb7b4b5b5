"""Generative adversarial training on the shared backpropagation core.

The decoder maps latent ``Z`` to observed ``X`` and the adversary scores an
``X`` in ``(0, 1)``. Every learning step first trains the adversary to score
observed samples high and generated samples low, which is the gradient of
``log D(real) + log(1 - D(fake))``. It then trains the decoder toward the
observed samples while pushing the adversary's score of its output up; that
push is the adversary's error carried back to its input layer.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..core.activations import Activation, Logistic
from ..core.backprop import Backpropagator, Errors
from ..core.topology import Layer, Network, NetworkAssoc, Neuron
from ..core.types import Record
from ..core.values import Value, record
from ..training.config import LearnConfig
from .base import Generator

logger = logging.getLogger(__name__)

REAL = 1.0
FAKE = 0.0


def real_error(neuron: Neuron) -> Value:
    """``f'(a) / y``: ascent direction of ``log y``."""

    y = neuron.output
    v = y.inverse()
    if v is None:
        return y.zero()
    derivative = neuron.derivative()
    scaled = v.multiply_derivative(derivative) if derivative is not None else v
    return scaled if scaled is not None else y.zero()


def fake_error(neuron: Neuron) -> Value:
    """``f'(a) / (y - 1)``: ascent direction of ``log(1 - y)``."""

    y = neuron.output
    shifted = y.subtract(y.unit())
    v = shifted.inverse() if shifted is not None else None
    if v is None:
        return y.zero()
    derivative = neuron.derivative()
    scaled = v.multiply_derivative(derivative) if derivative is not None else v
    return scaled if scaled is not None else y.zero()


class AdversarialBackpropagator(Backpropagator):
    """Scores records labelled :data:`REAL` up and :data:`FAKE` down."""

    def output_errors(self, layer: Layer, real_outputs: Optional[Sequence[Value]]) -> Optional[Errors]:
        if real_outputs is None:
            return None
        labels = layer.adjust(real_outputs)
        return [
            real_error(neuron) if label.mean() >= 0.5 else fake_error(neuron)
            for neuron, label in zip(layer.neurons, labels)
        ]

    def input_errors(self, adversary: Network, x: Sequence[Value]) -> Errors:
        """Error at the adversary's input that raises its score of ``x``."""

        adversary.evaluate(list(x))
        bone = adversary.backbone
        output = [real_error(neuron) for neuron in bone[-1].neurons]
        return self.backward(bone, output, to_input=True)[0] or []


class DecoderBackpropagator(Backpropagator):
    """Squared error toward the observed sample plus the adversarial push."""

    def __init__(self, adversary: Optional[Network] = None, learning_bias: bool = True) -> None:
        super().__init__(learning_bias)
        self.adversary = adversary

    def output_errors(self, layer: Layer, real_outputs: Optional[Sequence[Value]]) -> Optional[Errors]:
        errors = super().output_errors(layer, real_outputs)
        adversary = self.adversary
        if errors is None or adversary is None or not isinstance(adversary.bp, AdversarialBackpropagator):
            return errors
        pushes = adversary.bp.input_errors(adversary, layer.outputs())
        combined: Errors = []
        for neuron, error, push in zip(layer.neurons, errors, pushes):
            derivative = neuron.derivative()
            term = push.multiply_derivative(derivative) if push is not None and derivative is not None else push
            total = error.add(term) if error is not None and term is not None else None
            combined.append(total if total is not None else error)
        return combined


class GenerativeAdversarialNetwork(Generator):
    """Decoder and adversary trained against each other."""

    def __init__(
        self,
        activation: Optional[Activation] = None,
        *,
        config: Optional[LearnConfig] = None,
        name: str = "gan",
    ) -> None:
        super().__init__(config=config, name=name)
        # The score must stay a probability whatever the decoder uses.
        self.adversary = Network(
            Logistic(),
            backpropagator=AdversarialBackpropagator(self.config.learning_bias),
            name=f"{name}.adversary",
        )
        self.decoder = Network(
            activation if activation is not None else Logistic(),
            backpropagator=DecoderBackpropagator(self.adversary, self.config.learning_bias),
            name=f"{name}.decoder",
        )

    def initialize(
        self,
        x_dim: int,
        z_dim: Optional[int] = None,
        hidden: Optional[Sequence[int]] = None,
        adversary_hidden: Optional[Sequence[int]] = None,
    ) -> bool:
        """Build both networks; the adversary mirrors the decoder by default."""

        self.z_dim = max(1, int(z_dim if z_dim is not None else x_dim))
        self.decoder.initialize(self.z_dim, x_dim, hidden)
        mirrored = list(reversed(list(hidden or ()))) if adversary_hidden is None else adversary_hidden
        self.adversary.initialize(x_dim, 1, mirrored)
        NetworkAssoc(self.decoder).randomize_weights(self._rng)
        NetworkAssoc(self.adversary).randomize_weights(self._rng)
        return True

    def can_learn(self) -> bool:
        return self.decoder.can_learn() and self.adversary.can_learn()

    def score(self, x: Sequence[float]) -> float:
        """Adversary's belief that ``x`` is an observed sample."""

        return float(self.adversary.evaluate(list(x))[0].mean())

    # ------------------------------------------------------------------
    # Learning steps driven by annflow.training.trainer.Trainer

    def adversary_records(self, sample: Sequence[Record]) -> List[Record]:
        """Observed samples labelled real, each followed by a generated one labelled fake."""

        observed = [rec for rec in sample if rec is not None and rec.output is not None]
        records: List[Record] = []
        for rec, z in zip(observed, self.sample_z(len(observed))):
            generated = self.decoder.evaluate(z.tolist())
            records.append(record(list(rec.output), [REAL]))  # type: ignore[arg-type]
            records.append(record(generated, [FAKE]))
        return records

    def decoder_records(self, sample: Sequence[Record]) -> List[Record]:
        """Fresh latent draws paired with the observed samples."""

        observed = [rec for rec in sample if rec is not None and rec.output is not None]
        return [record(z.tolist(), rec.output) for rec, z in zip(observed, self.sample_z(len(observed)))]

    def backpropagate(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        for step in range(self.config.discriminate_steps):
            adversary_error = self.adversary.backpropagate(self.adversary_records(sample), learning_rate)
            logger.debug("%s adversary step %d: error=%s", self.name, step + 1, adversary_error)
        return self.decoder.backpropagate(self.decoder_records(sample), learning_rate)

    def backpropagate_each(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        """Per-record steps: adversary updates, then one decoder update."""

        error = None
        for rec in sample:
            if rec is None or rec.output is None:
                continue
            for _ in range(self.config.discriminate_steps):
                self.adversary.backpropagate_each(self.adversary_records([rec]), learning_rate)
            rec_error = self.decoder.backpropagate_each(self.decoder_records([rec]), learning_rate)
            if rec_error is not None:
                error = rec_error
        return error

    def describe(self) -> str:
        return (
            f"{type(self).__name__}({self.name}: z={self.z_dim}, "
            f"decoder={self.decoder.describe()}, adversary={self.adversary.describe()})"
        )

    def __str__(self) -> str:
        return f"{self.decoder}\n{self.adversary}"


__all__ = [
    "AdversarialBackpropagator",
    "DecoderBackpropagator",
    "FAKE",
    "GenerativeAdversarialNetwork",
    "REAL",
    "fake_error",
    "real_error",
]
