"""Backpropagation over arbitrary layered topologies.

The engine walks a *bone* (a list of layers or stacks, output last) from the
output level down to the first hidden level. Edges are discovered through
the neighbour queries of :mod:`annflow.core.topology`, so rib, outside and
stack links are trained exactly like backbone links.

Every learning step first collects its weight and bias terms into a
:class:`Gradient` and only then moves the parameters, so a batch step
applies ``mean(error_j * prev_out)`` over its records regardless of their
order.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .topology import Edge, Layer, Neuron, feeding_neurons
from .values import Value, ValueMean

logger = logging.getLogger(__name__)

LEARN_RATE_DEFAULT = 1.0

Evaluator = Callable[[object], object]
OutputPair = Tuple[Sequence[Optional[Value]], Sequence[Optional[Value]]]
Errors = List[Optional[Value]]


def sanitize_learning_rate(learning_rate: float) -> float:
    """Replace NaN, non-positive or greater-than-one rates by the default."""

    if learning_rate != learning_rate or learning_rate <= 0 or learning_rate > 1:
        return LEARN_RATE_DEFAULT
    return float(learning_rate)


def calc_output_error_default(
    neuron: Neuron,
    real: Optional[Value],
    output: Optional[Value] = None,
    derivative: Optional[Value] = None,
) -> Optional[Value]:
    """Return ``f'(out) * (real - out)``, or ``real - out`` without activation."""

    if real is None:
        return None
    out = output if output is not None else neuron.output
    error = real.subtract(out)
    if error is None or neuron.activation is None:
        return error
    if derivative is None:
        derivative = neuron.derivative()
    return error.multiply_derivative(derivative)


class Gradient:
    """Weight and bias terms collected over one learning step.

    Terms are stored without the learning rate. :meth:`apply` moves every
    weight and bias by the mean of its terms, times the rate.
    """

    def __init__(self) -> None:
        self._weights: Dict[int, Tuple[Edge, ValueMean]] = {}
        self._biases: Dict[int, Tuple[Neuron, ValueMean]] = {}

    def add_weight(self, edge: Edge, term: Optional[Value]) -> None:
        if term is None:
            return
        entry = self._weights.get(id(edge))
        if entry is None:
            entry = self._weights[id(edge)] = (edge, ValueMean())
        entry[1].accum(term)

    def add_bias(self, neuron: Neuron, term: Optional[Value]) -> None:
        if term is None:
            return
        entry = self._biases.get(id(neuron))
        if entry is None:
            entry = self._biases[id(neuron)] = (neuron, ValueMean())
        entry[1].accum(term)

    def weight_term(self, edge: Edge) -> Optional[Value]:
        entry = self._weights.get(id(edge))
        return entry[1].mean() if entry is not None else None

    def bias_term(self, neuron: Neuron) -> Optional[Value]:
        entry = self._biases.get(id(neuron))
        return entry[1].mean() if entry is not None else None

    def __len__(self) -> int:
        return len(self._weights) + len(self._biases)

    def apply(self, learning_rate: float) -> None:
        for edge, acc in self._weights.values():
            mean = acc.mean()
            edge.weight.add_value(mean.multiply(learning_rate) if mean is not None else None)
        for neuron, acc in self._biases.values():
            mean = acc.mean()
            delta = mean.multiply(learning_rate) if mean is not None else None
            bias = neuron.bias.add(delta) if delta is not None else None
            if bias is not None:
                neuron.bias = bias


class Backpropagator:
    """Ordinary squared-error backpropagation."""

    def __init__(self, learning_bias: bool = True) -> None:
        self.learning_bias = learning_bias

    def is_learning_bias(self) -> bool:
        return self.learning_bias

    # ------------------------------------------------------------------
    # Output error

    def calc_output_error(
        self, neuron: Neuron, real: Optional[Value], output: Optional[Value] = None
    ) -> Optional[Value]:
        return calc_output_error_default(neuron, real, output)

    def output_errors(self, layer: Layer, real_outputs: Optional[Sequence[Value]]) -> Optional[Errors]:
        if real_outputs is None:
            return None
        reals = layer.adjust(real_outputs)
        return [self.calc_output_error(neuron, real) for neuron, real in zip(layer.neurons, reals)]

    def output_error_mean(self, layer: Layer, index: int, output_batch: Iterable[OutputPair]) -> Optional[Value]:
        """Mean over ``(real, layer_output)`` pairs of the error at neuron ``index``."""

        neuron = layer[index]
        acc = ValueMean()
        for reals, outputs in output_batch:
            if reals is None or index >= len(reals) or reals[index] is None:
                continue
            out = outputs[index] if outputs is not None and index < len(outputs) else None
            acc.accum(self.calc_output_error(neuron, layer.adapt(reals[index]), out))
        return acc.mean()

    # ------------------------------------------------------------------
    # Error propagation

    def weighted_error(self, neuron: Neuron, next_layer: Layer, next_error: Sequence[Optional[Value]]) -> Value:
        """``sum_k error_k * w(neuron -> k)`` over the edges into ``next_layer``."""

        rsum = neuron.output.zero()
        for edge in neuron.next_edges:
            idx = next_layer.index_of(edge.target)
            if idx < 0 or idx >= len(next_error) or next_error[idx] is None:
                continue
            term = next_error[idx].multiply(edge.weight)  # type: ignore[union-attr]
            summed = rsum.add(term) if term is not None else None
            if summed is not None:
                rsum = summed
        return rsum

    def hidden_error(self, neuron: Neuron, next_layer: Layer, next_error: Sequence[Optional[Value]]) -> Optional[Value]:
        rsum = self.weighted_error(neuron, next_layer, next_error)
        derivative = neuron.derivative()
        return rsum.multiply_derivative(derivative) if derivative is not None else rsum

    def backward(
        self,
        bone: Sequence[Layer],
        last_error: Optional[Sequence[Optional[Value]]] = None,
        *,
        output_batch: Optional[Iterable[OutputPair]] = None,
        to_input: bool = False,
    ) -> List[Optional[Errors]]:
        """Errors of every level of ``bone``, output level last.

        The output error is ``last_error`` when given, otherwise the batch
        mean computed from ``output_batch``. Level 0 is filled only with
        ``to_input``; its error is the weighted sum without a derivative.
        Weights are read, never written.
        """

        levels: List[Optional[Errors]] = [None] * len(bone)
        if len(bone) < 2:
            return levels
        top = len(bone) - 1
        output = bone[top]
        if last_error is not None:
            levels[top] = [last_error[j] if j < len(last_error) else None for j in range(output.size())]
        else:
            batch = list(output_batch) if output_batch is not None else []
            levels[top] = [self.output_error_mean(output, j, batch) for j in range(output.size())]

        for i in range(top - 1, -1 if to_input else 0, -1):
            above = levels[i + 1] or []
            if i == 0:
                levels[i] = [self.weighted_error(n, bone[1], above) for n in bone[0].neurons]
            else:
                levels[i] = [self.hidden_error(n, bone[i + 1], above) for n in bone[i].neurons]
        return levels

    # ------------------------------------------------------------------
    # Weight and bias terms

    def accumulate(
        self,
        bone: Sequence[Layer],
        last_error: Optional[Sequence[Optional[Value]]],
        gradient: Gradient,
        *,
        output_batch: Optional[Iterable[OutputPair]] = None,
    ) -> Optional[Errors]:
        """Add the terms of one backward pass over ``bone``; returns the output error."""

        if len(bone) < 2:
            return None
        levels = self.backward(bone, last_error, output_batch=output_batch)
        for i in range(len(bone) - 1, 0, -1):
            self.accumulate_level(bone[i - 1], bone[i], levels[i] or [], gradient)
        return levels[-1]

    def accumulate_level(
        self, prev_layer: Layer, layer: Layer, error: Sequence[Optional[Value]], gradient: Gradient
    ) -> None:
        if self.is_learning_bias():
            for neuron, e in zip(layer.neurons, error):
                gradient.add_bias(neuron, e)
        for prev_neuron in feeding_neurons(prev_layer, layer):
            for edge in prev_neuron.next_edges:
                idx = layer.index_of(edge.target)
                if idx < 0 or idx >= len(error) or error[idx] is None:
                    continue
                gradient.add_weight(edge, error[idx].multiply(prev_neuron.output))  # type: ignore[union-attr]

    def update_weights_biases(
        self,
        bone: Sequence[Layer],
        last_error: Optional[Sequence[Optional[Value]]] = None,
        learning_rate: float = LEARN_RATE_DEFAULT,
        *,
        output_batch: Optional[Iterable[OutputPair]] = None,
        gradient: Optional[Gradient] = None,
    ) -> Optional[Errors]:
        """Move the weights and biases of ``bone`` in place; returns the output error.

        With ``gradient`` the collected terms are applied as they are and
        ``last_error`` is only passed through. Otherwise one backward pass
        over the current state of ``bone`` produces the terms.
        """

        if len(bone) < 2:
            return None
        learning_rate = sanitize_learning_rate(learning_rate)
        if gradient is None:
            gradient = Gradient()
            output_error = self.accumulate(bone, last_error, gradient, output_batch=output_batch)
        else:
            output_error = list(last_error) if last_error is not None else None
        gradient.apply(learning_rate)
        return output_error

    # ------------------------------------------------------------------
    # Drivers

    def update_one(
        self, bone: Sequence[Layer], real_output: Optional[Sequence[Value]], learning_rate: float
    ) -> Optional[Errors]:
        """Per-record step: the bone must already be evaluated."""

        if len(bone) < 2:
            return None
        errors = self.output_errors(bone[-1], real_output)
        if errors is None:
            return None
        return self.update_weights_biases(bone, errors, learning_rate)

    def learn_batch(
        self,
        sample: Iterable[object],
        bone: Sequence[Layer],
        learning_rate: float,
        evaluate: Evaluator,
        target: Callable[[object], Optional[Sequence[Value]]] = lambda rec: rec.output,  # type: ignore[attr-defined]
    ) -> Optional[Errors]:
        """Batch step: every weight moves by the mean of its per-item terms.

        Items whose evaluation raises, whose target is missing, or whose error
        cannot be computed do not count toward the mean. Returns the mean
        output error.
        """

        if len(bone) < 2:
            return None
        output_layer = bone[-1]
        gradient = Gradient()
        means: Optional[List[ValueMean]] = None
        for item in sample:
            if item is None:
                continue
            try:
                evaluate(item)
            except Exception:
                logger.exception("Evaluation failed; item skipped from the batch")
                continue
            errors = self.output_errors(output_layer, target(item))
            if errors is None or any(e is None for e in errors):
                continue
            self.accumulate(bone, errors, gradient)
            if means is None:
                means = [ValueMean() for _ in errors]
            for acc, error in zip(means, errors):
                acc.accum(error)

        if means is None:
            return None
        mean_error = [acc.mean() for acc in means]
        return self.update_weights_biases(bone, mean_error, learning_rate, gradient=gradient)


class InverseBackpropagator(Backpropagator):
    """Backpropagator with an inverse-learning (normalizing flow) mode.

    In inverse mode the error at a neuron with output ``y`` is
    ``-(f^-1(y) * f^-1'(y))`` and each incoming weight ``w`` moves by
    ``(error / w^2 - 1 / w) * learning_rate``. The bias moves by the mean of
    ``error / w^2`` over the incoming edges.
    """

    def __init__(self, learning_bias: bool = True, inverse_mode: bool = True) -> None:
        super().__init__(learning_bias)
        self.inverse_mode = inverse_mode

    def calc_output_error(
        self, neuron: Neuron, real: Optional[Value], output: Optional[Value] = None
    ) -> Optional[Value]:
        if not self.inverse_mode:
            return super().calc_output_error(neuron, real, output)
        return self.inverse_error(neuron, real if real is not None else output)

    def output_errors(self, layer: Layer, real_outputs: Optional[Sequence[Value]]) -> Optional[Errors]:
        if not self.inverse_mode or real_outputs is not None:
            return super().output_errors(layer, real_outputs)
        return [self.inverse_error(neuron) for neuron in layer.neurons]

    @staticmethod
    def inverse_error(neuron: Neuron, value: Optional[Value] = None) -> Optional[Value]:
        y = value if value is not None else neuron.output
        if y is None:
            return None
        f = neuron.activation
        if f is None or not f.invertible:
            return y.zero()
        inverse_value = y.evaluate_inverse(f)
        inverse_derivative = y.derivative_inverse(f)
        if inverse_value is None or inverse_derivative is None:
            return y.zero()
        product = inverse_value.multiply(inverse_derivative)
        return product.negative() if product is not None else None

    def hidden_error(self, neuron: Neuron, next_layer: Layer, next_error: Sequence[Optional[Value]]) -> Optional[Value]:
        if not self.inverse_mode:
            return super().hidden_error(neuron, next_layer, next_error)
        return self.inverse_error(neuron)

    def accumulate_level(
        self, prev_layer: Layer, layer: Layer, error: Sequence[Optional[Value]], gradient: Gradient
    ) -> None:
        if not self.inverse_mode:
            super().accumulate_level(prev_layer, layer, error, gradient)
            return
        for neuron, e in zip(layer.neurons, error):
            if e is not None:
                self._accumulate_inverse(neuron, e, gradient)

    def _accumulate_inverse(self, neuron: Neuron, error: Value, gradient: Gradient) -> None:
        bias_mean = ValueMean()
        for edge in neuron.prev_neurons_include_outside():
            w = edge.weight.value
            if not w.can_invert():
                continue
            w2 = w.multiply(w)
            error_w2 = error.divide(w2) if w2 is not None else None
            if error_w2 is None:
                continue
            bias_mean.accum(error_w2)
            inverse = w.inverse()
            gradient.add_weight(edge, error_w2.subtract(inverse) if inverse is not None else None)
        if self.is_learning_bias():
            gradient.add_bias(neuron, bias_mean.mean())


__all__ = [
    "Backpropagator",
    "Gradient",
    "InverseBackpropagator",
    "LEARN_RATE_DEFAULT",
    "calc_output_error_default",
    "sanitize_learning_rate",
]
