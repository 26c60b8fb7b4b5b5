"""Layered network topology.

A :class:`Network` owns a *backbone* of :class:`Layer` objects. Each layer
owns its :class:`Neuron` objects, and every directed :class:`Edge` owns its
:class:`~annflow.core.values.Weight`. Besides backbone edges a layer can be
linked to:

* a rib-in layer (its neurons feed this layer);
* a rib-out layer (this layer feeds it; the target records this layer as its
  implicit previous layer);
* outside layers belonging to another network, e.g. the next state of a
  recurrent model.

A :class:`Stack` groups parallel layers at one depth; a
:class:`StackNetwork` is a backbone of stacks.

The backpropagation engine only walks the graph through the neighbour
queries defined here, so it never needs to know which shape it trains.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
)

import numpy as np

from .activations import Activation
from .types import Record
from .values import (
    GateCursor,
    IndexedValue,
    ScalarValue,
    Value,
    VectorValue,
    Weight,
    adjust_array,
    to_floats,
    to_value,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .backprop import Backpropagator

logger = logging.getLogger(__name__)

NEXT = "next"
RIB = "rib"
OUTSIDE = "outside"


@dataclass(eq=False)
class Edge:
    """Weighted directed connection ``source -> target``."""

    source: "Neuron"
    target: "Neuron"
    weight: Weight
    kind: str = NEXT


class NeuronEvaluator(Protocol):
    """Strategy replacing :meth:`Neuron.evaluate` for special cells."""

    def evaluate(self, neuron: "Neuron") -> Value:
        ...


def _merge_slot(old: Optional[Value], new: Value) -> Value:
    # Gated neurons keep the slots of the other gates.
    if isinstance(old, IndexedValue) and isinstance(new, IndexedValue):
        merged = old.re(new.current)
        return merged if merged is not None else new
    return new


class Neuron:
    """Unit holding input, output and bias values."""

    def __init__(self, layer: "Layer") -> None:
        self.layer = layer
        zero = layer.new_value()
        self.bias: Value = layer.new_bias()
        self.input: Value = zero
        self.output: Value = zero
        self.next_edges: List[Edge] = []
        self.prev_edges: List[Edge] = []
        # Used by gated cells only.
        self.cell_state: Optional[Value] = None
        self.cell_output: Optional[Value] = None

    @property
    def activation(self) -> Optional[Activation]:
        return self.layer.activation

    # ------------------------------------------------------------------
    # Edges

    def edge_to(self, target: "Neuron") -> Optional[Edge]:
        for edge in self.next_edges:
            if edge.target is target:
                return edge
        return None

    def connect(self, target: "Neuron", kind: str = NEXT, weight: Optional[Weight] = None) -> Edge:
        existing = self.edge_to(target)
        if existing is not None:
            return existing
        edge = Edge(self, target, weight if weight is not None else self.layer.new_weight(), kind)
        self.next_edges.append(edge)
        target.prev_edges.append(edge)
        return edge

    def disconnect(self, target: "Neuron") -> bool:
        edge = self.edge_to(target)
        if edge is None:
            return False
        self.next_edges.remove(edge)
        target.prev_edges.remove(edge)
        return True

    def clear_edges(self) -> None:
        for edge in list(self.next_edges):
            self.disconnect(edge.target)
        for edge in list(self.prev_edges):
            edge.source.disconnect(self)

    def next_neurons(self, layer: Optional["Layer"] = None) -> List[Edge]:
        return [e for e in self.next_edges if layer is None or e.target.layer is layer]

    def prev_neurons(self, layer: Optional["Layer"] = None) -> List[Edge]:
        return [e for e in self.prev_edges if layer is None or e.source.layer is layer]

    def outside_prev_neurons(self) -> List[Edge]:
        return [e for e in self.prev_edges if e.kind == OUTSIDE]

    def prev_neurons_include_outside(self) -> List[Edge]:
        return list(self.prev_edges)

    # ------------------------------------------------------------------
    # Evaluation

    def evaluate(self) -> Value:
        """Compute ``output = f(bias + sum(source.output * weight))``.

        A neuron without sources copies its input to its output.
        """

        if not self.prev_edges:
            self.output = self.input
            return self.output

        total = self.bias
        for edge in self.prev_edges:
            term = edge.source.output.multiply(edge.weight)
            summed = total.add(term) if term is not None else None
            if summed is not None:
                total = summed
        f = self.activation
        out = total.evaluate(f) if f is not None and not f.delayed else total
        self.input = _merge_slot(self.input, total)
        self.output = _merge_slot(self.output, out if out is not None else total)
        return self.output

    def derivative(self) -> Optional[Value]:
        f = self.activation
        if f is None:
            return self.bias.unit()
        if f.delayed:
            return self.output.derivative(f)
        source = self.input if self.input is not None else self.output
        return source.derivative(f)

    def __repr__(self) -> str:
        return f"Neuron(layer={self.layer.name!r}, index={self.layer.index_of(self)})"


class Layer:
    """Ordered group of neurons sharing an activation and a value factory."""

    def __init__(
        self,
        size: int = 0,
        activation: Optional[Activation] = None,
        *,
        channel: int = 1,
        gates: int = 1,
        cursor: Optional[GateCursor] = None,
        name: str = "",
    ) -> None:
        self.activation = activation
        self.channel = max(1, int(channel))
        self.gates = max(1, int(gates))
        self.cursor = cursor if cursor is not None else (GateCursor() if self.gates > 1 else None)
        self.name = name
        self.cell: Optional[NeuronEvaluator] = None
        self.neurons: List[Neuron] = []
        self._positions: Dict[int, int] = {}
        self.prev_layer: Optional[Layer] = None
        self.next_layer: Optional[Layer] = None
        self.rib_in_layer: Optional[Layer] = None
        self.rib_out_layer: Optional[Layer] = None
        self.prev_layer_implicit: Optional[Layer] = None
        self.outside_prev_layers: List[Layer] = []
        self.outside_next_layers: List[Layer] = []
        self.resize(size)

    # ------------------------------------------------------------------
    # Value factory

    def zero_value(self) -> Value:
        """Plain (non-indexed) zero of this layer's channel count."""

        if self.channel == 1:
            return ScalarValue(0.0)
        return VectorValue(np.zeros(self.channel))

    def new_value(self) -> Value:
        return self.adapt(self.zero_value())

    def new_bias(self) -> Value:
        return self.new_value()

    def new_weight(self) -> Weight:
        return Weight(self.new_value())

    def adapt(self, value: Value) -> Value:
        """Broadcast a plain value into every gate slot of a gated layer."""

        if self.gates > 1 and not isinstance(value, IndexedValue):
            return IndexedValue([value] * self.gates, self.cursor)
        return value

    def adjust(self, values: Optional[Sequence[Value]]) -> List[Value]:
        padded = adjust_array([to_value(v) for v in values or ()], self.size(), self.zero_value())
        return [self.adapt(v) for v in padded]

    @property
    def gate_index(self) -> int:
        return self.cursor.index if self.cursor is not None else 0

    @gate_index.setter
    def gate_index(self, index: int) -> None:
        if self.cursor is not None:
            self.cursor.index = index

    # ------------------------------------------------------------------
    # Neurons

    def size(self) -> int:
        return len(self.neurons)

    def __len__(self) -> int:
        return len(self.neurons)

    def __iter__(self) -> Iterator[Neuron]:
        return iter(self.neurons)

    def __getitem__(self, index: int) -> Neuron:
        return self.neurons[index]

    def add_neuron(self) -> Neuron:
        neuron = Neuron(self)
        self._positions[id(neuron)] = len(self.neurons)
        self.neurons.append(neuron)
        return neuron

    def resize(self, size: int) -> None:
        size = max(0, int(size))
        while len(self.neurons) > size:
            neuron = self.neurons.pop()
            neuron.clear_edges()
            self._positions.pop(id(neuron), None)
        while len(self.neurons) < size:
            self.add_neuron()

    def index_of(self, neuron: Neuron) -> int:
        """Position of ``neuron`` in this layer, or ``-1`` if foreign."""

        pos = self._positions.get(id(neuron), -1)
        if pos < 0 or pos >= len(self.neurons) or self.neurons[pos] is not neuron:
            return -1
        return pos

    # ------------------------------------------------------------------
    # Links

    def _connect_all(self, target: "Layer", kind: str) -> None:
        for source in self.neurons:
            for neuron in target.neurons:
                source.connect(neuron, kind)

    def set_next_layer(self, layer: Optional["Layer"]) -> None:
        if self.next_layer is not None and self.next_layer is not layer:
            for source in self.neurons:
                for edge in source.next_neurons(self.next_layer):
                    if edge.kind == NEXT:
                        source.disconnect(edge.target)
            self.next_layer.prev_layer = None
        self.next_layer = layer
        if layer is None:
            return
        layer.prev_layer = self
        self._connect_all(layer, NEXT)

    def set_rib_in_layer(self, layer: Optional["Layer"]) -> None:
        self.rib_in_layer = layer
        if layer is not None:
            layer._connect_all(self, RIB)

    def set_rib_out_layer(self, layer: Optional["Layer"]) -> None:
        self.rib_out_layer = layer
        if layer is None:
            return
        layer.prev_layer_implicit = self
        self._connect_all(layer, RIB)

    def add_outside_next_layer(self, layer: "Layer") -> None:
        if layer not in self.outside_next_layers:
            self.outside_next_layers.append(layer)
        if self not in layer.outside_prev_layers:
            layer.outside_prev_layers.append(self)
        self._connect_all(layer, OUTSIDE)

    def all_prev_layers(self) -> List["Layer"]:
        """Every layer with an edge into this one, backbone predecessor first."""

        layers: List[Layer] = []
        candidates = [self.prev_layer, self.rib_in_layer, self.prev_layer_implicit, *self.outside_prev_layers]
        for neuron in self.neurons:
            candidates.extend(edge.source.layer for edge in neuron.prev_edges)
        for layer in candidates:
            if layer is not None and layer is not self and all(layer is not seen for seen in layers):
                layers.append(layer)
        return layers

    def has_sources(self) -> bool:
        return any(neuron.prev_edges for neuron in self.neurons)

    # ------------------------------------------------------------------
    # Evaluation

    def evaluate(self, values: Optional[Sequence[Value]] = None) -> List[Value]:
        """Evaluate every neuron; ``values`` feeds an input layer directly."""

        if values is not None:
            for neuron, value in zip(self.neurons, self.adjust(values)):
                neuron.input = value
                neuron.output = value
            return self.outputs()

        for neuron in self.neurons:
            if self.cell is not None:
                self.cell.evaluate(neuron)
            else:
                neuron.evaluate()
        if self.activation is not None and self.activation.delayed and self.neurons:
            self._apply_delayed(self.activation)
        return self.outputs()

    def _apply_delayed(self, function: Activation) -> None:
        plain = [n.input.current if isinstance(n.input, IndexedValue) else n.input for n in self.neurons]
        stacked = np.stack([value.to_array() for value in plain])
        result = function.evaluate_layer(stacked)
        for neuron, row in zip(self.neurons, result):
            neuron.output = _merge_slot(neuron.output, self.adapt(to_value(row)))

    def outputs(self) -> List[Value]:
        return [neuron.output for neuron in self.neurons]

    def inputs(self) -> List[Value]:
        return [neuron.input for neuron in self.neurons]

    def __repr__(self) -> str:
        return f"Layer(name={self.name!r}, size={self.size()}, gates={self.gates})"


class Stack:
    """Parallel layers at one depth, addressed as a single flat neuron array.

    Neurons are numbered layer after layer, so ``index_of`` stays stable for
    the duration of a backward pass and the engine can treat a stack like a
    layer.
    """

    def __init__(self, layers: Sequence[Layer] = (), name: str = "") -> None:
        self.layers: List[Layer] = list(layers)
        self.name = name
        self.prev_stack: Optional[Stack] = None
        self.next_stack: Optional[Stack] = None
        self.rib_in_layer: Optional[Layer] = None

    @property
    def neurons(self) -> List[Neuron]:
        return [neuron for layer in self.layers for neuron in layer.neurons]

    def size(self) -> int:
        return sum(layer.size() for layer in self.layers)

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[Neuron]:
        return iter(self.neurons)

    def __getitem__(self, index: int) -> Neuron:
        return self.neurons[index]

    def index_of(self, neuron: Neuron) -> int:
        offset = 0
        for layer in self.layers:
            pos = layer.index_of(neuron)
            if pos >= 0:
                return offset + pos
            offset += layer.size()
        return -1

    def zero_value(self) -> Value:
        return self.layers[0].zero_value() if self.layers else ScalarValue(0.0)

    def adapt(self, value: Value) -> Value:
        return self.layers[0].adapt(value) if self.layers else value

    def adjust(self, values: Optional[Sequence[Value]]) -> List[Value]:
        padded = adjust_array([to_value(v) for v in values or ()], self.size(), self.zero_value())
        return [self.adapt(v) for v in padded]

    def set_next_stack(self, stack: "Stack") -> None:
        """Connect every layer of this stack to every layer of ``stack``."""

        self.next_stack = stack
        stack.prev_stack = self
        for layer in self.layers:
            for target in stack.layers:
                layer._connect_all(target, NEXT)

    def all_prev_layers(self) -> List[Layer]:
        layers: List[Layer] = []
        for member in self.layers:
            for layer in member.all_prev_layers():
                if any(layer is m for m in self.layers) or any(layer is seen for seen in layers):
                    continue
                layers.append(layer)
        return layers

    def evaluate(self, values: Optional[Sequence[Value]] = None) -> List[Value]:
        if values is not None:
            items = list(values)
            offset = 0
            for layer in self.layers:
                layer.evaluate(items[offset : offset + layer.size()])
                offset += layer.size()
            return self.outputs()
        for layer in self.layers:
            layer.evaluate()
        return self.outputs()

    def outputs(self) -> List[Value]:
        return [neuron.output for neuron in self.neurons]

    def inputs(self) -> List[Value]:
        return [neuron.input for neuron in self.neurons]

    def __repr__(self) -> str:
        sizes = [layer.size() for layer in self.layers]
        return f"Stack(name={self.name!r}, sizes={sizes})"


def feeding_neurons(prev: Union[Layer, Stack], group: Union[Layer, Stack]) -> List[Neuron]:
    """Neurons of ``prev`` and of every other layer with an edge into ``group``."""

    seen: Dict[int, Neuron] = {}
    for neuron in prev.neurons:
        seen.setdefault(id(neuron), neuron)
    for layer in group.all_prev_layers():
        for neuron in layer.neurons:
            seen.setdefault(id(neuron), neuron)
    return list(seen.values())


class Network:
    """Standard layered network: input, hidden and output layers.

    ``initialize`` builds the backbone once. An optional memory layer is fed
    by the output layer (rib-out) and feeds the first hidden layer (rib-in),
    so the previous output influences the next evaluation.
    """

    def __init__(
        self,
        activation: Optional[Activation] = None,
        *,
        channel: int = 1,
        gates: int = 1,
        cursor: Optional[GateCursor] = None,
        backpropagator: Optional["Backpropagator"] = None,
        name: str = "network",
    ) -> None:
        self.activation = activation
        self.channel = max(1, int(channel))
        self.gates = max(1, int(gates))
        self.cursor = cursor if cursor is not None else (GateCursor() if self.gates > 1 else None)
        self.name = name
        self.layers: List[Layer] = []
        self.memory_layer: Optional[Layer] = None
        self.bp = backpropagator if backpropagator is not None else self.create_backpropagator()
        self.learn_lock = threading.Lock()

    def create_backpropagator(self) -> "Backpropagator":
        from .backprop import Backpropagator

        return Backpropagator()

    def new_layer(self, size: int, name: str = "") -> Layer:
        return Layer(
            size,
            self.activation,
            channel=self.channel,
            gates=self.gates,
            cursor=self.cursor,
            name=name,
        )

    def initialize(
        self,
        n_input: int,
        n_output: int,
        hidden: Optional[Sequence[int]] = None,
        n_memory: int = 0,
    ) -> bool:
        sizes = [max(1, int(n_input))]
        sizes.extend(max(1, int(n)) for n in hidden or ())
        sizes.append(max(1, int(n_output)))

        self.layers = []
        self.memory_layer = None
        for idx, size in enumerate(sizes):
            if idx == 0:
                name = f"{self.name}.input"
            elif idx == len(sizes) - 1:
                name = f"{self.name}.output"
            else:
                name = f"{self.name}.hidden{idx}"
            layer = self.new_layer(size, name)
            if self.layers:
                self.layers[-1].set_next_layer(layer)
            self.layers.append(layer)

        if n_memory > 0:
            if len(self.layers) < 3:
                logger.debug("Memory layer ignored: %s has no hidden layer", self.name)
            else:
                memory = self.new_layer(n_memory, f"{self.name}.memory")
                self.output_layer.set_rib_out_layer(memory)  # type: ignore[union-attr]
                self.layers[1].set_rib_in_layer(memory)
                self.memory_layer = memory
        return True

    # ------------------------------------------------------------------
    # Structure

    @property
    def backbone(self) -> List[Layer]:
        return list(self.layers)

    @property
    def input_layer(self) -> Optional[Layer]:
        return self.layers[0] if self.layers else None

    @property
    def output_layer(self) -> Optional[Layer]:
        return self.layers[-1] if self.layers else None

    @property
    def hidden_layers(self) -> List[Layer]:
        return self.layers[1:-1]

    def all_layers(self) -> List[Layer]:
        layers = list(self.layers)
        if self.memory_layer is not None:
            layers.append(self.memory_layer)
        return layers

    def can_learn(self) -> bool:
        return len(self.layers) >= 2

    # ------------------------------------------------------------------
    # Evaluation

    def evaluate(self, record: Union[Record, Sequence[Value], None]) -> List[Value]:
        inputs = record.input if isinstance(record, Record) else record
        return self.evaluate_bone(self.backbone, inputs)

    def evaluate_bone(self, bone: Sequence[Union[Layer, Stack]], inputs: Optional[Sequence[Value]]) -> List[Value]:
        if not bone:
            return []
        bone[0].evaluate(list(inputs or ()))
        for layer in bone[1:]:
            rib_in = layer.rib_in_layer
            if rib_in is not None and all(rib_in is not other for other in bone):
                rib_in.evaluate()
            layer.evaluate()
        return bone[-1].outputs()

    # ------------------------------------------------------------------
    # Learning steps driven by annflow.training.trainer.Trainer

    def backpropagate(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        """One batch step: mean output error over ``sample``."""

        error = self.bp.learn_batch(sample, self.backbone, learning_rate, self.evaluate)
        self.learn_rib_mem(sample, learning_rate)
        return error

    def backpropagate_each(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        """One pass of per-record updates; returns the last error that was computed."""

        error = None
        for rec in sample:
            if rec is None:
                continue
            try:
                self.evaluate(rec)
            except Exception:
                logger.exception("Evaluation failed in %s; record skipped", self.name)
                continue
            rec_error = self.bp.update_one(self.backbone, rec.output, learning_rate)
            if rec_error is not None:
                error = rec_error
            self._learn_memory_one(rec, learning_rate)
        return error

    def memory_bone(self) -> List[Layer]:
        if self.memory_layer is None or self.memory_layer.prev_layer_implicit is None:
            return []
        return [self.memory_layer.prev_layer_implicit, self.memory_layer]

    def learn_rib_mem(self, sample: Sequence[Record], learning_rate: float) -> Optional[List[Value]]:
        bone = self.memory_bone()
        targets = [rec for rec in sample if rec is not None and rec.mem_output is not None]
        if not bone or not targets:
            return None

        def _evaluate(rec: Record) -> List[Value]:
            self.evaluate(rec)
            return self.memory_layer.evaluate()  # type: ignore[union-attr]

        return self.bp.learn_batch(
            targets, bone, learning_rate, _evaluate, target=lambda rec: rec.mem_output
        )

    def _learn_memory_one(self, rec: Record, learning_rate: float) -> None:
        bone = self.memory_bone()
        if not bone or rec.mem_output is None:
            return
        self.memory_layer.evaluate()  # type: ignore[union-attr]
        self.bp.update_one(bone, rec.mem_output, learning_rate)

    # ------------------------------------------------------------------
    # Text

    def describe(self) -> str:
        sizes = "-".join(str(layer.size()) for layer in self.layers)
        memory = f", memory={self.memory_layer.size()}" if self.memory_layer else ""
        return f"{type(self).__name__}({self.name}: {sizes}{memory})"

    def __str__(self) -> str:
        lines = [self.describe()]
        for layer in self.all_layers():
            biases = to_floats([n.bias for n in layer.neurons])
            lines.append(f"  {layer.name}: bias={np.round(biases, 6).tolist()}")
        return "\n".join(lines)


class StackNetwork(Network):
    """Network whose depths are :class:`Stack` groupings of parallel layers.

    Each hidden depth is given as a list of layer sizes (a bare int is a
    one-layer stack). The input and output depths hold one layer each, so
    records and targets keep their usual shape.
    """

    def __init__(self, activation: Optional[Activation] = None, **kwargs: object) -> None:
        kwargs.setdefault("name", "stack")
        super().__init__(activation, **kwargs)  # type: ignore[arg-type]
        self.stacks: List[Stack] = []

    def initialize(  # type: ignore[override]
        self,
        n_input: int,
        n_output: int,
        hidden: Optional[Sequence[Union[int, Sequence[int]]]] = None,
        n_memory: int = 0,
    ) -> bool:
        depths: List[List[int]] = [[max(1, int(n_input))]]
        for entry in hidden or ():
            sizes = [entry] if isinstance(entry, (int, np.integer)) else list(entry)
            depths.append([max(1, int(s)) for s in sizes] or [1])
        depths.append([max(1, int(n_output))])
        if n_memory > 0:
            logger.debug("Memory layer ignored: %s has no single hidden layer", self.name)

        self.stacks = []
        self.layers = []
        self.memory_layer = None
        for depth, sizes in enumerate(depths):
            if depth == 0:
                prefix = f"{self.name}.input"
            elif depth == len(depths) - 1:
                prefix = f"{self.name}.output"
            else:
                prefix = f"{self.name}.hidden{depth}"
            names = [prefix] if len(sizes) == 1 else [f"{prefix}.{k}" for k in range(len(sizes))]
            stack = Stack([self.new_layer(size, name) for size, name in zip(sizes, names)], prefix)
            if self.stacks:
                self.stacks[-1].set_next_stack(stack)
            self.stacks.append(stack)
            self.layers.extend(stack.layers)
        return True

    @property
    def backbone(self) -> List[Stack]:  # type: ignore[override]
        return list(self.stacks)

    def can_learn(self) -> bool:
        return len(self.stacks) >= 2

    def describe(self) -> str:
        sizes = "-".join("+".join(str(layer.size()) for layer in stack.layers) for stack in self.stacks)
        return f"{type(self).__name__}({self.name}: {sizes})"


class NetworkAssoc:
    """Bulk helpers over the weights of a network."""

    def __init__(self, network: Network) -> None:
        self.network = network

    def edges(self) -> Iterable[Edge]:
        for layer in self.network.all_layers():
            for neuron in layer:
                yield from neuron.next_edges

    def set_weights(self, weight: float) -> "NetworkAssoc":
        for edge in self.edges():
            edge.weight.value = edge.weight.value.value_of(weight)
        return self

    def randomize_weights(
        self,
        rng: "np.random.Generator | int | None" = None,
        low: float = -0.5,
        high: float = 0.5,
    ) -> "NetworkAssoc":
        if not isinstance(rng, np.random.Generator):
            rng = np.random.default_rng(rng)
        for edge in self.edges():
            value = edge.weight.value
            slots = value.slots() if isinstance(value, IndexedValue) else [value]
            fresh = [to_value(rng.uniform(low, high, size=np.shape(s.to_array()))) for s in slots]
            if isinstance(value, IndexedValue):
                edge.weight.value = IndexedValue(fresh, value.cursor)
            else:
                edge.weight.value = fresh[0]
        return self

    def evaluate(self, *values: float) -> List[Value]:
        layer = self.network.input_layer
        if layer is None:
            return []
        zero = layer.zero_value()
        return self.network.evaluate([zero.value_of(v) for v in values])

    def evaluate_by_one(self, value: float) -> List[Value]:
        layer = self.network.input_layer
        if layer is None:
            return []
        return self.evaluate(*([value] * layer.size()))

    def parameters(self) -> Mapping[str, object]:
        """JSON-ready snapshot of biases and weights per layer."""

        payload: Dict[str, object] = {"name": self.network.name, "layers": []}
        for layer in self.network.all_layers():
            weights = []
            for neuron in layer:
                for edge in neuron.next_edges:
                    target_layer = edge.target.layer
                    weights.append(
                        {
                            "source": layer.index_of(neuron),
                            "target_layer": target_layer.name,
                            "target": target_layer.index_of(edge.target),
                            "kind": edge.kind,
                            "value": to_floats([edge.weight.value]),
                        }
                    )
            payload["layers"].append(  # type: ignore[union-attr]
                {
                    "name": layer.name,
                    "size": layer.size(),
                    "bias": [to_floats([n.bias]) for n in layer],
                    "weights": weights,
                }
            )
        return payload


__all__ = [
    "Edge",
    "Layer",
    "Network",
    "NetworkAssoc",
    "Neuron",
    "NeuronEvaluator",
    "NEXT",
    "OUTSIDE",
    "RIB",
    "Stack",
    "StackNetwork",
    "feeding_neurons",
]
