"""annflow public API."""

from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.topology import Network, NetworkAssoc, Stack, StackNetwork
from .core.values import record
from .gen import GenerativeAdversarialNetwork, NormalizingFlow
from .rnn import LongShortTermMemory, RecurrentNetwork
from .training.config import LearnConfig, load_config
from .training.control import LearnControl
from .training.pipelines import load_preset, presets, run_pipeline
from .training.trainer import Trainer

__all__ = [
    "GenerativeAdversarialNetwork",
    "LearnConfig",
    "LearnControl",
    "LongShortTermMemory",
    "Network",
    "NetworkAssoc",
    "NormalizingFlow",
    "RecurrentNetwork",
    "Stack",
    "StackNetwork",
    "Trainer",
    "activations",
    "load_config",
    "load_preset",
    "presets",
    "record",
    "run_pipeline",
    "types",
]
