"""Recurrent and gated (LSTM) networks."""

from .lstm import CellEvaluator, GatedBackpropagator, LongShortTermMemory, fold_gates
from .recurrent import LAYOUTS, OUTIN, PARALLEL, RecurrentNetwork, State

__all__ = [
    "CellEvaluator",
    "GatedBackpropagator",
    "LAYOUTS",
    "LongShortTermMemory",
    "OUTIN",
    "PARALLEL",
    "RecurrentNetwork",
    "State",
    "fold_gates",
]
