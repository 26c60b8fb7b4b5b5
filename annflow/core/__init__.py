"""Core numerical primitives for annflow."""

from . import activations, backprop, topology, types, values

__all__ = ["activations", "backprop", "topology", "types", "values"]
