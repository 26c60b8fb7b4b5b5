"""Pipeline assembly: dataset, model, learning run and artifacts."""

from __future__ import annotations

import json
import logging
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np

from ..core.activations import REGISTRY as ACTIVATIONS
from ..core.topology import Network, NetworkAssoc, StackNetwork
from ..core.types import RunResult
from ..data import registry
from ..gen.base import Generator
from ..gen.gan import GenerativeAdversarialNetwork
from ..gen.nf import NormalizingFlow
from ..reporting.artifacts import write_manifest, write_parameters
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from ..rnn.lstm import LongShortTermMemory
from ..rnn.recurrent import RecurrentNetwork
from .config import LearnConfig
from .trainer import Trainer

logger = logging.getLogger(__name__)

MODEL_KINDS = ("network", "stack", "rnn", "lstm", "nf", "gan")

_PRESETS: Dict[str, Mapping[str, object]] = {
    "sine-mlp": {
        "data": {"name": "sine", "options": {"freq": 1.0, "n_points": 24, "seed": 0}},
        "model": {"kind": "network", "hidden": [4], "activation": "logistic", "init": "random"},
        "train": {
            "mode": "batch",
            "seed": 7,
            "run_dir": "runs/sine-mlp",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 40, "net_learn_rate": 0.5, "net_learn_rate_fixed": True},
        },
    },
    "sine-mlp-online": {
        "data": {"name": "sine", "options": {"freq": 1.0, "n_points": 24, "seed": 0}},
        "model": {"kind": "network", "hidden": [4], "activation": "logistic", "init": "random"},
        "train": {
            "mode": "each",
            "seed": 7,
            "run_dir": "runs/sine-mlp-online",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 20, "net_learn_rate": 0.3},
        },
    },
    "sine-stack": {
        "data": {"name": "sine", "options": {"freq": 1.0, "n_points": 24, "seed": 0}},
        "model": {"kind": "stack", "hidden": [[3, 2]], "activation": "logistic", "init": "random"},
        "train": {
            "mode": "batch",
            "seed": 5,
            "run_dir": "runs/sine-stack",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 30, "net_learn_rate": 0.5, "net_learn_rate_fixed": True},
        },
    },
    "sequence-rnn": {
        "data": {"name": "sine-sequence", "options": {"n_sequences": 6, "length": 3, "seed": 0}},
        "model": {"kind": "rnn", "hidden": [3], "activation": "logistic", "layout": "outin", "init": "random"},
        "train": {
            "mode": "batch",
            "seed": 11,
            "run_dir": "runs/sequence-rnn",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 15, "net_learn_rate": 0.5, "rn_markov_steps": 1},
        },
    },
    "sequence-lstm": {
        "data": {"name": "sine-sequence", "options": {"n_sequences": 4, "length": 3, "seed": 0}},
        "model": {"kind": "lstm", "hidden": [2], "activation": "logistic", "layout": "outin", "init": "random"},
        "train": {
            "mode": "batch",
            "seed": 13,
            "run_dir": "runs/sequence-lstm",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 8, "net_learn_rate": 0.3, "net_learn_rate_fixed": True},
        },
    },
    "nf-flow": {
        "data": {"name": "gaussian", "options": {"n_samples": 16, "dim": 2, "seed": 0}},
        "model": {"kind": "nf", "hidden": [], "activation": "logistic", "z_dim": 2},
        "train": {
            "seed": 3,
            "run_dir": "runs/nf-flow",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 10, "net_learn_rate": 0.05, "nf_inverse_learning": True},
        },
    },
    "gan-gaussian": {
        "data": {"name": "gaussian", "options": {"n_samples": 12, "dim": 2, "seed": 0}},
        "model": {"kind": "gan", "hidden": [3], "activation": "logistic", "z_dim": 2},
        "train": {
            "mode": "batch",
            "seed": 17,
            "run_dir": "runs/gan-gaussian",
            "enable_plots": False,
            "learn": {"net_learn_max_iteration": 8, "net_learn_rate": 0.1, "gan_discriminate_steps": 1},
        },
    },
}


def presets() -> Mapping[str, Mapping[str, object]]:
    return {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}


def load_preset(name: str) -> Mapping[str, object]:
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    model_cfg = dict(config["model"])  # type: ignore[arg-type]
    train_cfg = dict(config["train"])  # type: ignore[arg-type]

    dataset = registry.get_dataset(str(data_cfg["name"]), **dict(data_cfg.get("options", {})))
    seed = int(train_cfg.get("seed", 0))
    learn_cfg = LearnConfig.from_mapping({**dict(train_cfg.get("learn", {})), "seed": seed})

    kind = str(model_cfg.get("kind", "network"))
    model, networks = _build_model(kind, model_cfg, dataset.data_spec, learn_cfg, seed)

    run_dir = _resolve_run_dir(train_cfg, dataset.name, kind)
    run_dir.mkdir(parents=True, exist_ok=True)

    mode = str(train_cfg.get("mode", "batch"))
    if mode not in {"batch", "each"}:
        raise ValueError(f"Unknown learning mode: {mode}")
    _log_startup_summary(dataset.name, model, mode, learn_cfg, networks)

    jsonl = JsonlSink(run_dir / "metrics.jsonl", seed=seed)
    csv_sink = CsvSink(run_dir / "metrics.csv")
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))
    listeners = [jsonl, csv_sink, plots]

    if isinstance(model, Generator):
        model.learn(dataset.items, listeners=listeners, per_record=mode == "each")
        iterations = model.iterations
    else:
        trainer = Trainer(model, learn_cfg, listeners)
        if mode == "batch":
            trainer.learn(dataset.items)
        else:
            trainer.learn_one(dataset.items)
        iterations = trainer.iteration

    manifest = write_manifest(
        run_dir / "manifest.json",
        config=_safe_config(config),
        dataset_provenance=dataset.provenance,
        model=model.describe(),  # type: ignore[attr-defined]
    )
    summary_path = write_summary(jsonl.path, run_dir / "summary.json", tail=int(train_cfg.get("summary_tail", 32)))
    params_path = write_parameters(run_dir / "params.json", networks)
    (run_dir / "config.json").write_text(json.dumps(_safe_config(config), indent=2))

    return RunResult(
        iterations=iterations,
        metrics_path=str(jsonl.path),
        manifest_path=manifest,
        summary_path=str(summary_path),
        params_path=params_path,
    )


def _build_model(
    kind: str,
    model_cfg: Mapping[str, object],
    data_spec: registry.DataSpec,
    learn_cfg: LearnConfig,
    seed: int,
) -> Tuple[object, List[Network]]:
    if kind not in MODEL_KINDS:
        raise ValueError(f"Unknown model kind '{kind}'. Available: {', '.join(MODEL_KINDS)}")
    activation = ACTIVATIONS.resolve(model_cfg.get("activation"))
    raw_hidden = list(model_cfg.get("hidden", []))  # type: ignore[call-overload]

    if kind == "stack":
        stacks = [[int(s) for s in (h if isinstance(h, (list, tuple)) else [h])] for h in raw_hidden]
        model = StackNetwork(activation)
        model.initialize(data_spec.d_in, data_spec.d_out, stacks)
        networks: List[Network] = [model]
        return _finish_model(model, networks, model_cfg, learn_cfg, seed)

    hidden = [int(h) for h in raw_hidden]
    if kind in {"nf", "gan"}:
        factory = NormalizingFlow if kind == "nf" else GenerativeAdversarialNetwork
        generator = factory(activation, config=learn_cfg)
        generator.initialize(data_spec.d_out, int(model_cfg.get("z_dim", data_spec.d_in)), hidden)  # type: ignore[arg-type]
        if isinstance(generator, GenerativeAdversarialNetwork):
            return generator, [generator.decoder, generator.adversary]
        return generator, [generator.decoder]

    if kind == "network":
        model = Network(activation)
        model.initialize(data_spec.d_in, data_spec.d_out, hidden, int(model_cfg.get("memory", 0)))  # type: ignore[arg-type]
        networks = [model]
    else:
        cls = RecurrentNetwork if kind == "rnn" else LongShortTermMemory
        model = cls(
            activation,
            layout=str(model_cfg.get("layout", "outin")),
            markov_steps=learn_cfg.markov_steps,
        )
        model.initialize(data_spec.d_in, data_spec.d_out, hidden, int(model_cfg.get("states", data_spec.length)))  # type: ignore[arg-type]
        networks = list(model.states)
    return _finish_model(model, networks, model_cfg, learn_cfg, seed)


def _finish_model(
    model: object,
    networks: List[Network],
    model_cfg: Mapping[str, object],
    learn_cfg: LearnConfig,
    seed: int,
) -> Tuple[object, List[Network]]:
    model.bp.learning_bias = learn_cfg.learning_bias  # type: ignore[attr-defined]
    if str(model_cfg.get("init", "zero")) == "random":
        rng = np.random.default_rng(seed)
        for net in networks:
            NetworkAssoc(net).randomize_weights(rng)
    return model, networks


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str, kind: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset / kind


def _safe_config(config: Mapping[str, object]) -> Mapping[str, object]:
    return json.loads(json.dumps(config))


def _log_startup_summary(
    dataset_name: str,
    model: object,
    mode: str,
    learn_cfg: LearnConfig,
    networks: Sequence[Network],
) -> None:
    weights = sum(1 for net in networks for _ in NetworkAssoc(net).edges())
    logger.info("=== annflow run ===")
    logger.info("Dataset       : %s", dataset_name)
    logger.info("Model         : %s", model.describe())  # type: ignore[attr-defined]
    logger.info("Mode          : %s", mode)
    logger.info("Max iteration : %s", learn_cfg.max_iteration)
    logger.info("Learning rate : %s (fixed=%s)", learn_cfg.learning_rate, learn_cfg.learning_rate_fixed)
    logger.info("Weights       : %d", weights)


__all__ = ["MODEL_KINDS", "load_preset", "presets", "run_pipeline"]
