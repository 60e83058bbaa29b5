from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Protocol, Tuple

import numpy as np

from dualtreex import config as dx_config
from dualtreex.core._distance_numba import (
    NUMBA_DISTANCE_AVAILABLE,
    euclidean_block_numba,
)
from dualtreex.errors import InvalidArgumentError


class PairwiseKernel(Protocol):
    def __call__(self, lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        ...


class PointwiseKernel(Protocol):
    def __call__(self, lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        ...


@dataclass(frozen=True)
class Metric:
    """Container for the distance kernels used by search engines.

    Pruning is only sound for metrics that are symmetric and satisfy the
    triangle inequality; the tree bounds additionally assume Euclidean
    geometry.
    """

    name: str
    pairwise_kernel: PairwiseKernel
    pointwise_kernel: PointwiseKernel

    def pairwise(self, lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        return self.pairwise_kernel(lhs, rhs)

    def pointwise(self, lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        return self.pointwise_kernel(lhs, rhs)


class MetricRegistry:
    """Minimal registry for runtime-selectable metrics."""

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}

    def register(self, metric: Metric, *, overwrite: bool = False) -> None:
        name = metric.name.lower()
        if not overwrite and name in self._metrics:
            raise ValueError(f"Metric '{metric.name}' already registered.")
        self._metrics[name] = metric

    def get(self, name: str) -> Metric:
        key = name.lower()
        if key not in self._metrics:
            raise KeyError(f"Metric '{name}' not registered.")
        return self._metrics[key]

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._metrics.keys()))


def _ensure_2d(array: np.ndarray) -> np.ndarray:
    arr = np.asarray(array, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[None, :]
    return arr


def _euclidean_pairwise(lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    lhs_arr = _ensure_2d(lhs)
    rhs_arr = _ensure_2d(rhs)
    if lhs_arr.size == 0 or rhs_arr.size == 0:
        return np.zeros((lhs_arr.shape[0], rhs_arr.shape[0]), dtype=np.float64)
    if dx_config.runtime_config().enable_numba and NUMBA_DISTANCE_AVAILABLE:
        return euclidean_block_numba(lhs_arr, rhs_arr)
    diff = lhs_arr[:, None, :] - rhs_arr[None, :, :]
    return np.sqrt(np.sum(diff * diff, axis=-1))


def _euclidean_pointwise(lhs: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    lhs_arr = np.asarray(lhs, dtype=np.float64)
    rhs_arr = np.asarray(rhs, dtype=np.float64)
    if lhs_arr.shape != rhs_arr.shape:
        raise ValueError("Pointwise metric operands must have identical shapes.")
    diff = lhs_arr - rhs_arr
    if lhs_arr.ndim == 1:
        return np.sqrt(np.sum(diff * diff))
    return np.sqrt(np.sum(diff * diff, axis=-1))


def _load_runtime_registry() -> MetricRegistry:
    registry = MetricRegistry()
    registry.register(
        Metric(
            name="euclidean",
            pairwise_kernel=_euclidean_pairwise,
            pointwise_kernel=_euclidean_pointwise,
        )
    )
    return registry


_REGISTRY = _load_runtime_registry()


def get_metric(name: str | None = None) -> Metric:
    """Return a registered metric, defaulting to the runtime-selected metric."""

    if name is None:
        name = dx_config.runtime_config().metric
    try:
        return _REGISTRY.get(name)
    except KeyError as exc:
        raise InvalidArgumentError(
            f"Unknown metric '{name}'. Expected one of {list(available_metrics())}."
        ) from exc


def available_metrics() -> Tuple[str, ...]:
    return _REGISTRY.names()


__all__ = [
    "Metric",
    "MetricRegistry",
    "available_metrics",
    "get_metric",
]
