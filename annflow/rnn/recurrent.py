"""Time-unrolled recurrent networks.

A :class:`RecurrentNetwork` keeps its states in a plain list (an arena
addressed by integer index). States never point at each other; the links
between consecutive states are ordinary edges created through the layer
link operations, so the standard backpropagation engine trains them.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Sequence, Union

from ..core.activations import Activation
from ..core.backprop import Backpropagator
from ..core.topology import Layer, Network
from ..core.types import Record
from ..core.values import GateCursor, Value
from ..training.config import LearnConfig
from ..training.control import LearnControl
from ..training.trainer import Trainer

logger = logging.getLogger(__name__)

OUTIN = "outin"
PARALLEL = "parallel"
LAYOUTS = (OUTIN, PARALLEL)

RecordSequence = Sequence[Record]


class State(Network):
    """One time slice of a recurrent network."""

    def __init__(self, index: int, activation: Optional[Activation] = None, **kwargs) -> None:
        super().__init__(activation, **kwargs)
        self.index = index


class RecurrentNetwork:
    """Sequence of identically shaped states.

    ``outin``: the output layer of state ``t`` feeds the first hidden layer
    (or the output layer when there is none) of state ``t + k`` for every
    ``k`` in ``1..markov_steps``. Every state reads its own input record.

    ``parallel``: each backbone layer ``1..n-1`` of state ``t`` is rib-linked
    to the same layer of state ``t + 1`` (farther steps use outside links).
    Only state 0 reads the input.
    """

    def __init__(
        self,
        activation: Optional[Activation] = None,
        *,
        channel: int = 1,
        layout: str = OUTIN,
        markov_steps: int = 1,
        gates: int = 1,
        cursor: Optional[GateCursor] = None,
        backpropagator: Optional[Backpropagator] = None,
        name: str = "rnn",
    ) -> None:
        if layout not in LAYOUTS:
            raise ValueError(f"Unknown recurrent layout '{layout}'. Available: {', '.join(LAYOUTS)}")
        self.activation = activation
        self.channel = max(1, int(channel))
        self.layout = layout
        self.markov_steps = max(1, int(markov_steps))
        self.gates = max(1, int(gates))
        self.cursor = cursor if cursor is not None else (GateCursor() if self.gates > 1 else None)
        self.name = name
        self.states: List[State] = []
        self.bp = backpropagator if backpropagator is not None else self.create_backpropagator()
        self.learn_lock = threading.Lock()

    def create_backpropagator(self) -> Backpropagator:
        return Backpropagator()

    def new_state(self, index: int) -> State:
        return State(
            index,
            self.activation,
            channel=self.channel,
            gates=self.gates,
            cursor=self.cursor,
            backpropagator=self.bp,
            name=f"{self.name}.state{index}",
        )

    def initialize(
        self,
        n_input: int,
        n_output: int,
        hidden: Optional[Sequence[int]] = None,
        n_states: int = 1,
    ) -> bool:
        self.states = []
        for index in range(max(1, int(n_states))):
            state = self.new_state(index)
            state.initialize(n_input, n_output, hidden)
            self.states.append(state)

        for t in range(1, len(self.states)):
            for k in range(1, self.markov_steps + 1):
                if t - k < 0:
                    break
                self._link(self.states[t - k], self.states[t], k)
        logger.debug("Initialized %s with %d states (%s)", self.name, len(self.states), self.layout)
        return True

    def _link(self, prev: State, state: State, step: int) -> None:
        if self.layout == OUTIN:
            target = state.layers[1] if len(state.layers) > 2 else state.output_layer
            prev.output_layer.add_outside_next_layer(target)  # type: ignore[union-attr]
            return
        for i in range(1, len(state.layers)):
            if step == 1:
                prev.layers[i].set_rib_out_layer(state.layers[i])
            else:
                prev.layers[i].add_outside_next_layer(state.layers[i])

    # ------------------------------------------------------------------
    # Structure

    def __len__(self) -> int:
        return len(self.states)

    def state(self, index: int) -> State:
        return self.states[index]

    def all_layers(self) -> List[Layer]:
        return [layer for state in self.states for layer in state.all_layers()]

    def can_learn(self) -> bool:
        return bool(self.states) and self.states[0].can_learn()

    # ------------------------------------------------------------------
    # Evaluation

    def _state_input(self, index: int, items: Sequence[object]) -> Sequence[Value]:
        if self.layout == PARALLEL and index > 0:
            return ()
        if index >= len(items):
            return ()
        item = items[index]
        if isinstance(item, Record):
            return item.input
        return item or ()  # type: ignore[return-value]

    def evaluate(self, inputs: Optional[Sequence[Union[Record, Sequence[Value]]]]) -> List[List[Value]]:
        """Evaluate every state in order; returns the outputs per state."""

        items = list(inputs or ())
        return [state.evaluate(self._state_input(i, items)) for i, state in enumerate(self.states)]

    # ------------------------------------------------------------------
    # Learning steps driven by annflow.training.trainer.Trainer

    def backpropagate(self, sequences: Sequence[RecordSequence], learning_rate: float) -> Optional[List[Value]]:
        """One batch step per state; returns the error of the last trained state."""

        error = None
        for i, state in enumerate(self.states):
            items = [seq for seq in sequences if seq is not None and len(seq) > i]
            if not items:
                continue
            state_error = self.bp.learn_batch(
                items,
                state.backbone,
                learning_rate,
                self.evaluate,
                target=lambda seq, i=i: seq[i].output,
            )
            if state_error is not None:
                error = state_error
        return error

    def backpropagate_each(self, sequences: Sequence[RecordSequence], learning_rate: float) -> Optional[List[Value]]:
        """Per-sequence updates, last state first."""

        error = None
        for seq in sequences:
            if not seq:
                continue
            try:
                self.evaluate(seq)
            except Exception:
                logger.exception("Evaluation failed in %s; sequence skipped", self.name)
                continue
            seq_error = None
            for i in range(min(len(seq), len(self.states)) - 1, -1, -1):
                state_error = self.bp.update_one(self.states[i].backbone, seq[i].output, learning_rate)
                if state_error is not None and seq_error is None:
                    seq_error = state_error
            if seq_error is not None:
                error = seq_error
        return error

    def learn(
        self,
        sequences: Sequence[RecordSequence],
        *,
        config: Optional[LearnConfig] = None,
        listeners: Optional[Sequence[object]] = None,
        control: Optional[LearnControl] = None,
        **limits: Any,
    ) -> Optional[List[Value]]:
        """Batch-learn ``sequences``; ``limits`` go to :meth:`Trainer.learn`."""

        return Trainer(self, config, listeners, control).learn(sequences, **limits)

    def learn_one(
        self,
        sequences: Sequence[RecordSequence],
        *,
        config: Optional[LearnConfig] = None,
        listeners: Optional[Sequence[object]] = None,
        control: Optional[LearnControl] = None,
        **limits: Any,
    ) -> Optional[List[Value]]:
        return Trainer(self, config, listeners, control).learn_one(sequences, **limits)

    # ------------------------------------------------------------------
    # Text

    def describe(self) -> str:
        shape = self.states[0].describe() if self.states else "empty"
        return f"{type(self).__name__}({self.name}: {len(self.states)} x {shape}, layout={self.layout})"

    def __str__(self) -> str:
        lines = [self.describe()]
        lines.extend(str(state) for state in self.states)
        return "\n".join(lines)


__all__ = ["LAYOUTS", "OUTIN", "PARALLEL", "RecurrentNetwork", "State"]
