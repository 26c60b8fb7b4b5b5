"""Neuron value algebra.

Every activation, bias and weight magnitude in a network is a :class:`Value`.
The set of representations is closed:

* :class:`ScalarValue` - one real number;
* :class:`VectorValue` - a fixed-size real vector (one neuron with several
  channels);
* :class:`IndexedValue` - a fixed array of sub-values addressed by a shared
  :class:`GateCursor`. Gated neurons use it to carry several gate signals in
  a single slot while the rest of the engine stays unaware of the gates.

Values are immutable. Binary operations between incompatible representations
(scalar and vector, indexed and plain, vectors of different sizes) return
``None`` instead of raising; callers are expected to check the result.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from numbers import Real
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Sequence, Union

import numpy as np

from .types import Array, Record

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .activations import Activation

Operand = Union["Value", "Weight", Real]


class Value(ABC):
    """Abstract neuron value."""

    __slots__ = ()

    # ------------------------------------------------------------------
    # Construction

    @abstractmethod
    def zero(self) -> "Value":
        """Return the additive identity with the same shape."""

    @abstractmethod
    def unit(self) -> "Value":
        """Return the multiplicative identity with the same shape."""

    @abstractmethod
    def value_of(self, number: float) -> "Value":
        """Return a value of the same shape filled with ``number``."""

    # ------------------------------------------------------------------
    # Arithmetic

    @abstractmethod
    def add(self, other: Operand) -> Optional["Value"]:
        ...

    @abstractmethod
    def subtract(self, other: Operand) -> Optional["Value"]:
        ...

    @abstractmethod
    def multiply(self, other: Operand) -> Optional["Value"]:
        ...

    @abstractmethod
    def divide(self, other: Operand) -> Optional["Value"]:
        ...

    @abstractmethod
    def power(self, exponent: float) -> Optional["Value"]:
        ...

    def negative(self) -> Optional["Value"]:
        return self.multiply(-1.0)

    def multiply_derivative(self, derivative: Optional["Value"]) -> Optional["Value"]:
        """Multiply by a precomputed activation derivative."""

        if derivative is None:
            return None
        return self.multiply(derivative)

    # ------------------------------------------------------------------
    # Activation

    @abstractmethod
    def evaluate(self, function: "Activation") -> Optional["Value"]:
        ...

    @abstractmethod
    def derivative(self, function: "Activation") -> Optional["Value"]:
        ...

    @abstractmethod
    def evaluate_inverse(self, function: "Activation") -> Optional["Value"]:
        ...

    @abstractmethod
    def derivative_inverse(self, function: "Activation") -> Optional["Value"]:
        ...

    # ------------------------------------------------------------------
    # Measures

    @abstractmethod
    def norm(self) -> float:
        ...

    @abstractmethod
    def mean(self) -> float:
        ...

    @abstractmethod
    def can_invert(self) -> bool:
        ...

    @abstractmethod
    def inverse(self) -> Optional["Value"]:
        """Return the multiplicative inverse (reciprocal)."""

    # ------------------------------------------------------------------
    # Matrix-level operations

    def matrix_det(self) -> Optional["Value"]:
        raise NotImplementedError(f"{type(self).__name__}.matrix_det not implemented")

    def matrix_inverse(self) -> Optional["Value"]:
        raise NotImplementedError(f"{type(self).__name__}.matrix_inverse not implemented")

    def matrix_sqrt(self) -> Optional["Value"]:
        raise NotImplementedError(f"{type(self).__name__}.matrix_sqrt not implemented")

    def flatten(self) -> List["Value"]:
        raise NotImplementedError(f"{type(self).__name__}.flatten not implemented")

    def aggregate(self, values: Sequence["Value"]) -> Optional["Value"]:
        raise NotImplementedError(f"{type(self).__name__}.aggregate not implemented")

    # ------------------------------------------------------------------
    # Weight conversion

    def to_weight(self) -> "Weight":
        return Weight(self)

    @abstractmethod
    def to_array(self) -> Array:
        """Return the numeric content as a fresh numpy array."""


class _PlainValue(Value):
    """Shared numpy-backed implementation of scalar and vector values."""

    __slots__ = ("_data",)

    def __init__(self, data: Array) -> None:
        data = np.array(data, dtype=np.float64)
        data.setflags(write=False)
        self._data = data

    def _wrap(self, data: Array) -> "_PlainValue":
        return type(self)(data)

    def _operand(self, other: Operand) -> Optional[Array]:
        if isinstance(other, Weight):
            other = other.value
        if isinstance(other, Real):
            return np.float64(other)
        if type(other) is not type(self):
            return None
        if other._data.shape != self._data.shape:  # type: ignore[union-attr]
            return None
        return other._data  # type: ignore[union-attr]

    def zero(self) -> "_PlainValue":
        return self._wrap(np.zeros_like(self._data))

    def unit(self) -> "_PlainValue":
        return self._wrap(np.ones_like(self._data))

    def value_of(self, number: float) -> "_PlainValue":
        return self._wrap(np.full_like(self._data, float(number)))

    def add(self, other: Operand) -> Optional["_PlainValue"]:
        rhs = self._operand(other)
        return None if rhs is None else self._wrap(self._data + rhs)

    def subtract(self, other: Operand) -> Optional["_PlainValue"]:
        rhs = self._operand(other)
        return None if rhs is None else self._wrap(self._data - rhs)

    def multiply(self, other: Operand) -> Optional["_PlainValue"]:
        rhs = self._operand(other)
        return None if rhs is None else self._wrap(self._data * rhs)

    def divide(self, other: Operand) -> Optional["_PlainValue"]:
        rhs = self._operand(other)
        if rhs is None or np.any(rhs == 0):
            return None
        return self._wrap(self._data / rhs)

    def power(self, exponent: float) -> Optional["_PlainValue"]:
        with np.errstate(all="ignore"):
            result = np.power(self._data, exponent)
        if not np.all(np.isfinite(result)):
            return None
        return self._wrap(result)

    def _apply(self, fn: Callable[[Array], Optional[Array]]) -> Optional["_PlainValue"]:
        result = fn(self._data)
        if result is None:
            return None
        return self._wrap(np.asarray(result, dtype=np.float64).reshape(self._data.shape))

    def evaluate(self, function: "Activation") -> Optional["_PlainValue"]:
        return self._apply(function.evaluate)

    def derivative(self, function: "Activation") -> Optional["_PlainValue"]:
        return self._apply(function.derivative)

    def evaluate_inverse(self, function: "Activation") -> Optional["_PlainValue"]:
        return self._apply(function.evaluate_inverse)

    def derivative_inverse(self, function: "Activation") -> Optional["_PlainValue"]:
        return self._apply(function.derivative_inverse)

    def mean(self) -> float:
        return float(np.mean(self._data))

    def can_invert(self) -> bool:
        return bool(np.all(self._data != 0))

    def inverse(self) -> Optional["_PlainValue"]:
        if not self.can_invert():
            return None
        return self._wrap(1.0 / self._data)

    def to_array(self) -> Array:
        return np.array(self._data, dtype=np.float64)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return bool(np.array_equal(self._data, other._data))  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._data.tobytes()))


class ScalarValue(_PlainValue):
    """Single real number."""

    __slots__ = ()

    def __init__(self, value: float = 0.0) -> None:
        super().__init__(np.asarray(value, dtype=np.float64).reshape(()))

    def get(self) -> float:
        return float(self._data)

    def norm(self) -> float:
        return abs(float(self._data))

    def matrix_det(self) -> "ScalarValue":
        return self

    def matrix_inverse(self) -> Optional["ScalarValue"]:
        return self.inverse()  # type: ignore[return-value]

    def matrix_sqrt(self) -> Optional["ScalarValue"]:
        v = float(self._data)
        return ScalarValue(math.sqrt(v)) if v >= 0 else None

    def flatten(self) -> List[Value]:
        return [self]

    def aggregate(self, values: Sequence[Value]) -> Optional[Value]:
        return mean_of([self, *values])

    def __float__(self) -> float:
        return self.get()

    def __repr__(self) -> str:
        return f"ScalarValue({float(self._data)!r})"


class VectorValue(_PlainValue):
    """Fixed-size real vector; operations are element-wise."""

    __slots__ = ()

    def __init__(self, values: Union[Sequence[float], Array]) -> None:
        super().__init__(np.asarray(values, dtype=np.float64).reshape(-1))

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def dim(self) -> int:
        return len(self)

    def get(self, index: int) -> float:
        return float(self._data[index])

    def product(self, other: "VectorValue") -> Optional[float]:
        """Return the dot product, or ``None`` on a size mismatch."""

        rhs = self._operand(other)
        if rhs is None or np.ndim(rhs) == 0:
            return None
        return float(np.dot(self._data, rhs))

    def norm(self) -> float:
        return float(np.linalg.norm(self._data))

    def flatten(self) -> List[Value]:
        return [ScalarValue(float(v)) for v in self._data]

    def aggregate(self, values: Sequence[Value]) -> Optional[Value]:
        return mean_of([self, *values])

    def __repr__(self) -> str:
        return f"VectorValue({self._data.tolist()!r})"


class GateCursor:
    """Mutable pointer shared by the indexed values of one gated model."""

    __slots__ = ("index",)

    def __init__(self, index: int = 0) -> None:
        self.index = index

    def __repr__(self) -> str:
        return f"GateCursor({self.index})"


class IndexedValue(Value):
    """Composite of sub-values addressed by a shared current index.

    Arithmetic with another indexed value combines the two currently selected
    sub-values and returns a clone of ``self`` with the result stored at the
    current index (see :meth:`re`). Other slots are copied untouched. ``get``
    and ``set`` act directly on the backing array.
    """

    __slots__ = ("_slots", "_cursor")

    def __init__(self, slots: Sequence[Value], cursor: Union[GateCursor, int] = 0) -> None:
        if not slots:
            raise ValueError("IndexedValue requires at least one slot")
        if any(isinstance(slot, IndexedValue) for slot in slots):
            raise TypeError("IndexedValue slots must be plain values")
        self._slots: List[Value] = list(slots)
        self._cursor = cursor if isinstance(cursor, GateCursor) else GateCursor(int(cursor))

    @property
    def cursor(self) -> GateCursor:
        return self._cursor

    @property
    def index(self) -> int:
        return self._cursor.index

    @property
    def current(self) -> Value:
        return self._slots[self.index]

    def v(self) -> Value:
        return self.current

    def size(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, index: int) -> Value:
        return self._slots[index]

    def set(self, index: int, value: Value) -> None:
        if isinstance(value, IndexedValue):
            raise TypeError("cannot nest indexed values")
        self._slots[index] = value

    def slots(self) -> List[Value]:
        return list(self._slots)

    def re(self, value: Optional[Value]) -> Optional["IndexedValue"]:
        """Clone this container, replacing only the current slot."""

        if value is None or isinstance(value, IndexedValue):
            return None
        clone = IndexedValue(self._slots, self._cursor)
        clone._slots[self.index] = value
        return clone

    renew = re

    def _map(self, fn: Callable[[Value], Optional[Value]]) -> "IndexedValue":
        return IndexedValue([fn(slot) for slot in self._slots], self._cursor)  # type: ignore[misc]

    def zero(self) -> "IndexedValue":
        return self._map(lambda slot: slot.zero())

    def unit(self) -> "IndexedValue":
        return self._map(lambda slot: slot.unit())

    def value_of(self, number: float) -> "IndexedValue":
        return self._map(lambda slot: slot.value_of(number))

    def _binary(self, other: Operand, op: str) -> Optional["IndexedValue"]:
        if isinstance(other, Weight):
            other = other.value
        if isinstance(other, Real):
            rhs: Operand = other
        elif isinstance(other, IndexedValue):
            rhs = other.current
        else:
            return None
        return self.re(getattr(self.current, op)(rhs))

    def add(self, other: Operand) -> Optional["IndexedValue"]:
        return self._binary(other, "add")

    def subtract(self, other: Operand) -> Optional["IndexedValue"]:
        return self._binary(other, "subtract")

    def multiply(self, other: Operand) -> Optional["IndexedValue"]:
        return self._binary(other, "multiply")

    def divide(self, other: Operand) -> Optional["IndexedValue"]:
        return self._binary(other, "divide")

    def power(self, exponent: float) -> Optional["IndexedValue"]:
        return self.re(self.current.power(exponent))

    def evaluate(self, function: "Activation") -> Optional["IndexedValue"]:
        return self.re(self.current.evaluate(function))

    def derivative(self, function: "Activation") -> Optional["IndexedValue"]:
        return self.re(self.current.derivative(function))

    def evaluate_inverse(self, function: "Activation") -> Optional["IndexedValue"]:
        return self.re(self.current.evaluate_inverse(function))

    def derivative_inverse(self, function: "Activation") -> Optional["IndexedValue"]:
        return self.re(self.current.derivative_inverse(function))

    def norm(self) -> float:
        return self.current.norm()

    def mean(self) -> float:
        return self.current.mean()

    def can_invert(self) -> bool:
        return self.current.can_invert()

    def inverse(self) -> Optional["IndexedValue"]:
        return self.re(self.current.inverse())

    def to_array(self) -> Array:
        return np.stack([slot.to_array() for slot in self._slots])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IndexedValue):
            return NotImplemented
        return self.index == other.index and self._slots == other._slots

    def __hash__(self) -> int:
        return hash((self.index, tuple(self._slots)))

    def __repr__(self) -> str:
        return f"IndexedValue({self._slots!r}, index={self.index})"


class Weight:
    """Mutable weight holder owned by exactly one edge."""

    __slots__ = ("value",)

    def __init__(self, value: Value) -> None:
        self.value = value

    def add_value(self, delta: Optional[Value]) -> "Weight":
        """Add ``delta`` in place; incompatible deltas are ignored."""

        if delta is None:
            return self
        updated = self.value.add(delta)
        if updated is not None:
            self.value = updated
        return self

    def to_value(self) -> Value:
        return self.value

    def __repr__(self) -> str:
        return f"Weight({self.value!r})"


class ValueMean:
    """Running mean accumulator over values of one representation."""

    def __init__(self, first: Optional[Value] = None) -> None:
        self._sum: Optional[Value] = None
        self.count = 0
        if first is not None:
            self.accum(first)

    def accum(self, value: Optional[Value]) -> bool:
        if value is None:
            return False
        total = value if self._sum is None else self._sum.add(value)
        if total is None:
            return False
        self._sum = total
        self.count += 1
        return True

    def mean(self) -> Optional[Value]:
        if self._sum is None or self.count == 0:
            return None
        return self._sum if self.count == 1 else self._sum.divide(self.count)


# ----------------------------------------------------------------------
# Array helpers


def mean_of(values: Iterable[Optional[Value]]) -> Optional[Value]:
    acc = ValueMean()
    for value in values:
        acc.accum(value)
    return acc.mean()


def norm_mean(values: Optional[Sequence[Optional[Value]]]) -> float:
    """Return the mean of the norms of ``values``, ignoring ``None`` entries."""

    if not values:
        return float("nan")
    norms = [v.norm() for v in values if v is not None]
    return float(np.mean(norms)) if norms else float("nan")


def make_array(size: int, zero: Value) -> List[Value]:
    return [zero.zero() for _ in range(max(0, size))]


def adjust_array(values: Optional[Sequence[Value]], size: int, zero: Value) -> List[Value]:
    """Pad ``values`` with zeros (or truncate) to exactly ``size`` entries."""

    values = list(values or ())
    if len(values) >= size:
        return values[:size]
    return values + make_array(size - len(values), zero)


def to_value(item: Union[Value, float, Sequence[float], Array]) -> Value:
    if isinstance(item, Value):
        return item
    if isinstance(item, Real):
        return ScalarValue(float(item))
    arr = np.asarray(item, dtype=np.float64)
    if arr.ndim == 0:
        return ScalarValue(float(arr))
    return VectorValue(arr)


def to_values(items: Optional[Iterable[Union[Value, float, Sequence[float]]]]) -> Optional[tuple]:
    if items is None:
        return None
    return tuple(to_value(item) for item in items)


def record(
    inputs: Iterable[Union[Value, float, Sequence[float]]],
    outputs: Optional[Iterable[Union[Value, float, Sequence[float]]]] = None,
    *,
    mem_output: Optional[Iterable[Union[Value, float, Sequence[float]]]] = None,
) -> Record:
    """Build a :class:`Record` from numbers, arrays or values."""

    return Record(
        input=to_values(inputs) or (),
        output=to_values(outputs),
        mem_output=to_values(mem_output),
    )


def to_floats(values: Optional[Sequence[Optional[Value]]]) -> List[float]:
    """Flatten plain values to floats; indexed values contribute their current slot."""

    floats: List[float] = []
    for value in values or ():
        if value is None:
            floats.append(float("nan"))
            continue
        if isinstance(value, IndexedValue):
            value = value.current
        floats.extend(np.atleast_1d(value.to_array()).tolist())
    return floats


__all__ = [
    "GateCursor",
    "IndexedValue",
    "ScalarValue",
    "Value",
    "ValueMean",
    "VectorValue",
    "Weight",
    "adjust_array",
    "make_array",
    "mean_of",
    "norm_mean",
    "record",
    "to_floats",
    "to_value",
    "to_values",
]
