"""Run artifact helpers."""

from __future__ import annotations

import json
import platform
import time
from pathlib import Path
from typing import Mapping

from ..core.topology import Network, NetworkAssoc
from .metrics import _git_sha


def write_manifest(
    path: str | Path,
    *,
    config: Mapping[str, object],
    dataset_provenance: Mapping[str, object],
    model: str = "",
) -> str:
    """Write a manifest JSON file capturing reproducibility metadata."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    manifest = {
        "git_sha": _git_sha(),
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "config": config,
        "dataset": dict(dataset_provenance),
        "model": model,
        "environment": {"python": platform.python_version()},
    }
    path.write_text(json.dumps(manifest, indent=2, default=str))
    return str(path)


def write_parameters(path: str | Path, networks: "Network | list[Network]") -> str:
    """Dump biases and weights of one or more networks as JSON."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    items = networks if isinstance(networks, list) else [networks]
    payload = {"networks": [NetworkAssoc(net).parameters() for net in items]}
    path.write_text(json.dumps(payload, indent=2, sort_keys=True))
    return str(path)


__all__ = ["write_manifest", "write_parameters"]
