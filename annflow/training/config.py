"""Learning configuration.

The learning knobs arrive as a flat string-keyed map (often from a JSON or
YAML file). :class:`LearnConfig` reads them once through typed getters,
falls back to defaults for absent or malformed entries, and is immutable
afterwards; use :meth:`LearnConfig.merge` to derive a modified copy.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

LEARN_MAX_ITERATION_FIELD = "net_learn_max_iteration"
LEARN_MAX_ITERATION_DEFAULT = 1000
LEARN_TERMINATED_THRESHOLD_FIELD = "net_learn_terminated_threshold"
LEARN_TERMINATED_THRESHOLD_DEFAULT = 0.001
LEARN_RATE_FIELD = "net_learn_rate"
LEARN_RATE_DEFAULT = 1.0
LEARN_RATE_FIXED_FIELD = "net_learn_rate_fixed"
LEARN_TERMINATE_ERROR_FIELD = "net_learn_terminate_error"
RESAMPLE_FIELD = "net_resample"
LEARNING_BIAS_FIELD = "net_learning_bias"
INVERSE_LEARNING_FIELD = "nf_inverse_learning"
BIDIRECTION_LEARNING_FIELD = "nf_bidirection_learning"
RANDOM_Z_DATA_FIELD = "gen_random_z_data"
MARKOV_STEPS_FIELD = "rn_markov_steps"
MARKOV_STEPS_DEFAULT = 1
DISCRIMINATE_STEPS_FIELD = "gan_discriminate_steps"
DISCRIMINATE_STEPS_DEFAULT = 1
SEED_FIELD = "seed"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _as_int(raw: Any, key: str, default: int) -> int:
    if isinstance(raw, bool):
        logger.warning("Config %s expects an integer, got %r; using %s", key, raw, default)
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Config %s expects an integer, got %r; using %s", key, raw, default)
        return default


def _as_float(raw: Any, key: str, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Config %s expects a number, got %r; using %s", key, raw, default)
        return default
    if value != value:
        logger.warning("Config %s is NaN; using %s", key, default)
        return default
    return value


def _as_bool(raw: Any, key: str, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    logger.warning("Config %s expects a boolean, got %r; using %s", key, raw, default)
    return default


@dataclass(frozen=True)
class LearnConfig:
    """Immutable learning configuration with the toolkit defaults."""

    max_iteration: int = LEARN_MAX_ITERATION_DEFAULT
    terminated_threshold: float = LEARN_TERMINATED_THRESHOLD_DEFAULT
    learning_rate: float = LEARN_RATE_DEFAULT
    learning_rate_fixed: bool = False
    terminate_error: bool = False
    resample: bool = False
    learning_bias: bool = True
    inverse_learning: bool = True
    bidirection_learning: bool = False
    random_z_data: bool = True
    markov_steps: int = MARKOV_STEPS_DEFAULT
    discriminate_steps: int = DISCRIMINATE_STEPS_DEFAULT
    seed: Optional[int] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    _KEYS = {
        LEARN_MAX_ITERATION_FIELD: ("max_iteration", _as_int),
        LEARN_TERMINATED_THRESHOLD_FIELD: ("terminated_threshold", _as_float),
        LEARN_RATE_FIELD: ("learning_rate", _as_float),
        LEARN_RATE_FIXED_FIELD: ("learning_rate_fixed", _as_bool),
        LEARN_TERMINATE_ERROR_FIELD: ("terminate_error", _as_bool),
        RESAMPLE_FIELD: ("resample", _as_bool),
        LEARNING_BIAS_FIELD: ("learning_bias", _as_bool),
        INVERSE_LEARNING_FIELD: ("inverse_learning", _as_bool),
        BIDIRECTION_LEARNING_FIELD: ("bidirection_learning", _as_bool),
        RANDOM_Z_DATA_FIELD: ("random_z_data", _as_bool),
        MARKOV_STEPS_FIELD: ("markov_steps", _as_int),
        DISCRIMINATE_STEPS_FIELD: ("discriminate_steps", _as_int),
    }

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None) -> "LearnConfig":
        """Build a config from flat keys (``net_learn_rate``) or field names."""

        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        names = {f.name for f in fields(cls)} - {"extra"}
        for key, raw in (mapping or {}).items():
            if key in cls._KEYS:
                attr, parse = cls._KEYS[key]
            elif key in names and key != SEED_FIELD:
                attr = key
                parse = next(p for a, p in cls._KEYS.values() if a == key)
            elif key == SEED_FIELD:
                values["seed"] = None if raw is None else _as_int(raw, key, 0)
                continue
            else:
                extra[key] = raw
                continue
            default = getattr(cls, attr)
            values[attr] = parse(raw, key, default)
        if values.get("markov_steps", MARKOV_STEPS_DEFAULT) < MARKOV_STEPS_DEFAULT:
            values["markov_steps"] = MARKOV_STEPS_DEFAULT
        if values.get("discriminate_steps", DISCRIMINATE_STEPS_DEFAULT) < DISCRIMINATE_STEPS_DEFAULT:
            values["discriminate_steps"] = DISCRIMINATE_STEPS_DEFAULT
        return cls(extra=extra, **values)

    def merge(self, overrides: Optional[Mapping[str, Any]] = None) -> "LearnConfig":
        if not overrides:
            return self
        merged = LearnConfig.from_mapping({**self.to_mapping(), **overrides})
        return replace(merged, extra={**self.extra, **merged.extra})

    def to_mapping(self) -> Dict[str, Any]:
        """Return the flat-key representation."""

        data = asdict(self)
        payload: Dict[str, Any] = {key: data[attr] for key, (attr, _) in self._KEYS.items()}
        payload[SEED_FIELD] = self.seed
        payload.update(self.extra)
        return payload

    def get(self, key: str, default: Any = None) -> Any:
        return self.to_mapping().get(key, default)


def load_config(path: "str | Path") -> LearnConfig:
    """Load a :class:`LearnConfig` from a JSON or YAML file."""

    path = Path(path)
    text = path.read_text()
    if path.suffix.lower() in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    elif path.suffix.lower() == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")
    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return LearnConfig.from_mapping(data)


__all__ = [
    "BIDIRECTION_LEARNING_FIELD",
    "DISCRIMINATE_STEPS_FIELD",
    "INVERSE_LEARNING_FIELD",
    "LEARN_MAX_ITERATION_DEFAULT",
    "LEARN_MAX_ITERATION_FIELD",
    "LEARN_RATE_DEFAULT",
    "LEARN_RATE_FIELD",
    "LEARN_RATE_FIXED_FIELD",
    "LEARN_TERMINATE_ERROR_FIELD",
    "LEARN_TERMINATED_THRESHOLD_DEFAULT",
    "LEARN_TERMINATED_THRESHOLD_FIELD",
    "LEARNING_BIAS_FIELD",
    "LearnConfig",
    "MARKOV_STEPS_FIELD",
    "RANDOM_Z_DATA_FIELD",
    "RESAMPLE_FIELD",
    "load_config",
]
