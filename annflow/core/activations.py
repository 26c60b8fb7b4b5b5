"""Activation functions and the activation registry.

Functions operate on numpy arrays. :class:`~annflow.core.values.Value`
instances dispatch to them per representation, so a single implementation
serves scalars, vectors and the current slot of indexed values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional

import numpy as np

from .types import Array


class Activation:
    """Base activation; subclasses override the array kernels."""

    name = "activation"
    #: Delayed functions are applied by the layer after every neuron has
    #: computed its input (softmax needs all of them).
    delayed = False

    @property
    def invertible(self) -> bool:
        return False

    def evaluate(self, x: Array) -> Array:
        raise NotImplementedError

    def derivative(self, x: Array) -> Array:
        raise NotImplementedError

    def evaluate_inverse(self, y: Array) -> Optional[Array]:
        return None

    def derivative_inverse(self, y: Array) -> Optional[Array]:
        return None

    def evaluate_layer(self, inputs: Array) -> Array:
        """Evaluate across a whole layer (``inputs`` stacked on axis 0)."""

        return self.evaluate(inputs)

    def __call__(self, x: Array) -> Array:
        return self.evaluate(x)


@dataclass(frozen=True)
class Identity(Activation):
    name = "identity"

    @property
    def invertible(self) -> bool:
        return True

    def evaluate(self, x: Array) -> Array:
        return np.asarray(x, dtype=np.float64)

    def derivative(self, x: Array) -> Array:
        return np.ones_like(x, dtype=np.float64)

    def evaluate_inverse(self, y: Array) -> Optional[Array]:
        return self.evaluate(y)

    def derivative_inverse(self, y: Array) -> Optional[Array]:
        return self.derivative(y)


@dataclass(frozen=True)
class ReLU(Activation):
    """Ramp clamped to ``[min, max]``; ``max=None`` leaves it unbounded."""

    min: float = 0.0
    max: Optional[float] = None
    name = "relu"

    @property
    def invertible(self) -> bool:
        return True

    def evaluate(self, x: Array) -> Array:
        upper = np.inf if self.max is None else self.max
        return np.clip(np.asarray(x, dtype=np.float64), self.min, upper)

    def derivative(self, x: Array) -> Array:
        x = np.asarray(x, dtype=np.float64)
        inside = x >= self.min
        if self.max is not None:
            inside &= x <= self.max
        return inside.astype(np.float64)

    def evaluate_inverse(self, y: Array) -> Optional[Array]:
        return self.evaluate(y)

    def derivative_inverse(self, y: Array) -> Optional[Array]:
        return self.derivative(y)


def _calc_mid(lo: float, hi: float) -> float:
    if abs(hi - lo) / 2 <= 1:
        return (lo + hi) / 2
    return 0.0


@dataclass(frozen=True)
class Logistic(Activation):
    """Generalised logistic ``(max-min) / (1 + exp(k*(mid-x))) + min``."""

    min: float = 0.0
    max: float = 1.0
    slope: float = 0.5
    name = "logistic"

    @property
    def invertible(self) -> bool:
        return True

    @property
    def mid(self) -> float:
        return _calc_mid(self.min, self.max)

    @property
    def _k(self) -> float:
        return self.slope

    def evaluate(self, x: Array) -> Array:
        x = np.asarray(x, dtype=np.float64)
        with np.errstate(over="ignore"):
            return (self.max - self.min) / (1.0 + np.exp(self._k * (self.mid - x))) + self.min

    def derivative(self, x: Array) -> Array:
        v = self.evaluate(x)
        return self._k * (v - self.min) * (self.max - v) / (self.max - self.min)

    def _in_range(self, y: Array) -> bool:
        return bool(np.all((y > self.min) & (y < self.max)))

    def evaluate_inverse(self, y: Array) -> Optional[Array]:
        y = np.asarray(y, dtype=np.float64)
        if not self._in_range(y):
            return None
        return self.mid - np.log((self.max - y) / (y - self.min)) / self._k

    def derivative_inverse(self, y: Array) -> Optional[Array]:
        y = np.asarray(y, dtype=np.float64)
        if not self._in_range(y):
            return None
        return (1.0 / (self.max - y) + 1.0 / (y - self.min)) / self._k


@dataclass(frozen=True)
class Tanh(Logistic):
    """Scaled hyperbolic tangent; with ``min=-1, max=1`` it equals ``tanh(slope*x)``."""

    min: float = -1.0
    max: float = 1.0
    slope: float = 1.0
    name = "tanh"

    @property
    def _k(self) -> float:
        return 2.0 * self.slope


@dataclass(frozen=True)
class Softmax(Activation):
    """Layer-wide softmax; the derivative takes the softmax output ``s``."""

    name = "softmax"
    delayed = True

    def evaluate(self, x: Array) -> Array:
        return self.evaluate_layer(x)

    def evaluate_layer(self, inputs: Array) -> Array:
        inputs = np.asarray(inputs, dtype=np.float64)
        if inputs.size == 0:
            return inputs
        shifted = inputs - np.max(inputs, axis=0, keepdims=True)
        exp = np.exp(shifted)
        total = np.sum(exp, axis=0, keepdims=True)
        if not np.all(np.isfinite(total)) or np.any(total == 0):
            return np.full_like(inputs, 1.0 / inputs.shape[0])
        return np.minimum(exp / total, 1.0)

    def derivative(self, s: Array) -> Array:
        s = np.asarray(s, dtype=np.float64)
        return s * (1.0 - s)


ActivationFactory = Callable[..., Activation]


class ActivationRegistry:
    """Central registry for activation functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, ActivationFactory] = {}

    def register(self, name: str, factory: ActivationFactory) -> None:
        self._registry[name] = factory

    def get(self, name: str, **params: float) -> Activation:
        try:
            factory = self._registry[name]
        except KeyError as exc:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown activation {name!r}. Available activations: {available}") from exc
        return factory(**params)

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def resolve(self, spec: "str | Mapping[str, object] | Activation | None") -> Optional[Activation]:
        """Resolve a name, ``{"name": ..., **params}`` mapping or instance."""

        if spec is None or isinstance(spec, Activation):
            return spec
        if isinstance(spec, str):
            if spec in {"", "none"}:
                return None
            return self.get(spec)
        if isinstance(spec, Mapping):
            params = dict(spec)
            name = params.pop("name", None)
            if not isinstance(name, str):
                raise ValueError("activation mapping requires a 'name' entry")
            return self.get(name, **params)  # type: ignore[arg-type]
        raise TypeError(f"Cannot resolve activation from {type(spec).__name__}")


REGISTRY = ActivationRegistry()
REGISTRY.register("identity", Identity)
REGISTRY.register("relu", ReLU)
REGISTRY.register("logistic", Logistic)
REGISTRY.register("sigmoid", Logistic)
REGISTRY.register("tanh", Tanh)
REGISTRY.register("softmax", Softmax)


__all__ = [
    "Activation",
    "ActivationRegistry",
    "Identity",
    "Logistic",
    "REGISTRY",
    "ReLU",
    "Softmax",
    "Tanh",
]
