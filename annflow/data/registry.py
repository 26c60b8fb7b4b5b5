"""Dataset registry and metadata contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, MutableMapping

TASK_TYPES = ("regression", "sequence", "generative")


@dataclass(frozen=True)
class DataSpec:
    """Structural information about a dataset.

    Attributes
    ----------
    d_in:
        Number of input values per record (latent size for generative data).
    d_out:
        Number of target values per record (observed size for generative data).
    task_type:
        One of ``{"regression", "sequence", "generative"}``.
    length:
        Sequence length for ``"sequence"`` data, otherwise ``1``.
    extra:
        Free-form metadata kept for reproducibility.
    """

    d_in: int
    d_out: int
    task_type: str
    length: int = 1
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DatasetSpec:
    """Description of a dataset registered in the system.

    ``items`` holds records (regression), lists of records (sequence) or
    observed float vectors (generative).
    """

    name: str
    items: List[Any]
    data_spec: DataSpec
    provenance: Dict[str, Any]

    def __len__(self) -> int:
        return len(self.items)


DatasetFactory = Callable[..., DatasetSpec]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | DatasetFactory:
    """Register a dataset factory, directly or as a decorator."""

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(dataset: str, /, **options: Any) -> DatasetSpec:
    """Return the :class:`DatasetSpec` for ``dataset``."""

    if dataset not in _REGISTRY:
        raise KeyError(f"Unknown dataset: {dataset}")
    spec = _REGISTRY[dataset](**options)
    _validate_spec(spec)
    return spec


def available_datasets() -> Iterable[str]:
    return sorted(_REGISTRY)


def _validate_spec(spec: DatasetSpec) -> None:
    if spec.data_spec.task_type not in TASK_TYPES:
        raise ValueError(f"Invalid task type: {spec.data_spec.task_type}")
    if spec.data_spec.d_in < 1 or spec.data_spec.d_out < 1:
        raise ValueError(f"Dataset {spec.name!r} must have positive dimensions")


__all__ = [
    "DataSpec",
    "DatasetSpec",
    "TASK_TYPES",
    "available_datasets",
    "get_dataset",
    "register_dataset",
]
