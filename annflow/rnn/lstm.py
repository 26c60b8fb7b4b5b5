"""Long short-term memory cells on top of the recurrent network.

Every value of a gated layer is an :class:`~annflow.core.values.IndexedValue`
with four slots. A shared :class:`~annflow.core.values.GateCursor` selects
the slot that ordinary arithmetic and backpropagation act on, so the same
neuron is evaluated (and trained) once per gate.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from ..core.activations import Activation, ReLU
from ..core.backprop import Backpropagator, calc_output_error_default
from ..core.topology import Neuron
from ..core.values import GateCursor, IndexedValue, Value, mean_of
from .recurrent import OUTIN, RecordSequence, RecurrentNetwork

logger = logging.getLogger(__name__)

FORGET = 0
INPUT = 1
OUTPUT = 2
CELL = 3
GATES = 4

_DEFAULT_AUX = ReLU()


def _plain(value: Optional[Value]) -> Optional[Value]:
    return value.current if isinstance(value, IndexedValue) else value


def _squash(value: Value, aux: Optional[Activation]) -> Value:
    if aux is None:
        return value
    result = value.evaluate(aux)
    return result if result is not None else value


def fold_gates(
    forget: Value,
    input_gate: Value,
    output_gate: Value,
    cell_gate: Value,
    source_cell_state: Optional[Value],
    activation: Optional[Activation],
) -> Tuple[Optional[Value], Optional[Value]]:
    """Combine the four gate values into ``(cell_state, displayed_output)``.

    ``c = forget * source_cell_state + input * cell`` (just ``input * cell``
    without a source) and ``h = output * f(c)``.
    """

    remember = input_gate.multiply(cell_gate)
    if remember is None:
        return None, None
    if source_cell_state is None:
        cell_state: Optional[Value] = remember
    else:
        kept = forget.multiply(source_cell_state)
        cell_state = kept.add(remember) if kept is not None else None
    if cell_state is None:
        return None, None
    squashed = cell_state.evaluate(activation) if activation is not None else cell_state
    output = output_gate.multiply(squashed) if squashed is not None else None
    return cell_state, output


class CellEvaluator:
    """Replace :meth:`Neuron.evaluate` for the neurons of a gated layer."""

    def __init__(self, aux: Optional[Activation] = _DEFAULT_AUX) -> None:
        self.aux = aux

    def evaluate(self, neuron: Neuron) -> Value:
        layer = neuron.layer
        cursor = layer.cursor if layer.cursor is not None else GateCursor()
        saved = cursor.index
        gates: List[Value] = []
        try:
            for gate in range(GATES):
                cursor.index = gate
                gates.append(_plain(neuron.evaluate()))  # type: ignore[arg-type]
        finally:
            cursor.index = saved

        sources = [
            edge.source.cell_state for edge in neuron.prev_edges if edge.source.cell_state is not None
        ]
        source_state: Optional[Value] = None
        for state in sources:
            summed = state if source_state is None else source_state.add(state)
            if summed is not None:
                source_state = summed

        cell_state, output = fold_gates(
            gates[FORGET], gates[INPUT], gates[OUTPUT], gates[CELL], source_state, neuron.activation
        )
        if cell_state is None or output is None:
            logger.debug("Gate fold failed for %r; keeping gate outputs", neuron)
            return neuron.output

        neuron.cell_state = cell_state
        aux = self.aux
        if aux is None or isinstance(aux, ReLU):
            output = _squash(output, aux)
            neuron.input = IndexedValue([output] * GATES, cursor)
        else:
            neuron.input = IndexedValue([output] * GATES, cursor)
            output = _squash(output, aux)
        neuron.cell_output = output
        neuron.output = IndexedValue([output] * GATES, cursor)
        return neuron.output


class GatedBackpropagator(Backpropagator):
    """Output error taking the auxiliary ReLU into account."""

    def calc_output_error(
        self, neuron: Neuron, real: Optional[Value], output: Optional[Value] = None
    ) -> Optional[Value]:
        aux = getattr(neuron.layer.cell, "aux", None)
        if isinstance(aux, ReLU) and aux != neuron.activation:
            out = output if output is not None else neuron.output
            return calc_output_error_default(neuron, real, output, out.derivative(aux))
        return super().calc_output_error(neuron, real, output)


class LongShortTermMemory(RecurrentNetwork):
    """Recurrent network whose hidden and output neurons are LSTM cells."""

    def __init__(
        self,
        activation: Optional[Activation] = None,
        *,
        channel: int = 1,
        layout: str = OUTIN,
        markov_steps: int = 1,
        aux: Optional[Activation] = _DEFAULT_AUX,
        name: str = "lstm",
    ) -> None:
        super().__init__(
            activation,
            channel=channel,
            layout=layout,
            markov_steps=markov_steps,
            gates=GATES,
            cursor=GateCursor(),
            name=name,
        )
        self.cell = CellEvaluator(aux)

    def create_backpropagator(self) -> Backpropagator:
        return GatedBackpropagator()

    def initialize(
        self,
        n_input: int,
        n_output: int,
        hidden: Optional[Sequence[int]] = None,
        n_states: int = 1,
    ) -> bool:
        super().initialize(n_input, n_output, hidden, n_states)
        for state in self.states:
            for layer in state.layers[1:]:
                layer.cell = self.cell
        return True

    def evaluate(self, inputs) -> List[List[Value]]:  # type: ignore[override]
        return [
            [value.get(0) if isinstance(value, IndexedValue) else value for value in outputs]
            for outputs in super().evaluate(inputs)
        ]

    def _each_gate(
        self,
        step: Callable[[Sequence[RecordSequence], float], Optional[List[Value]]],
        sequences: Sequence[RecordSequence],
        learning_rate: float,
    ) -> Optional[List[Value]]:
        per_gate: List[List[Optional[Value]]] = []
        try:
            for gate in range(GATES):
                self.cursor.index = gate  # type: ignore[union-attr]
                errors = step(sequences, learning_rate)
                if errors is not None:
                    per_gate.append([_plain(error) for error in errors])
        finally:
            self.cursor.index = 0  # type: ignore[union-attr]
        if not per_gate:
            return None
        return [mean_of(column) for column in zip(*per_gate)]  # type: ignore[misc]

    def backpropagate(self, sequences: Sequence[RecordSequence], learning_rate: float) -> Optional[List[Value]]:
        """Batch step once per gate; returns the gate-mean output error."""

        return self._each_gate(super().backpropagate, sequences, learning_rate)

    def backpropagate_each(
        self, sequences: Sequence[RecordSequence], learning_rate: float
    ) -> Optional[List[Value]]:
        return self._each_gate(super().backpropagate_each, sequences, learning_rate)


__all__ = [
    "CELL",
    "CellEvaluator",
    "FORGET",
    "GATES",
    "GatedBackpropagator",
    "INPUT",
    "LongShortTermMemory",
    "OUTPUT",
    "fold_gates",
]
