"""Learning driver, control token, configuration and pipelines."""

from .config import LearnConfig, load_config
from .control import LearnControl
from .trainer import Trainer

__all__ = ["LearnConfig", "LearnControl", "Trainer", "load_config"]
