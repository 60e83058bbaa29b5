from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

import numpy as np

from dualtreex.core.tree import SpatialTree
from dualtreex.diagnostics import log_operation
from dualtreex.errors import InvalidArgumentError
from dualtreex.logging import get_logger

LOGGER = get_logger("trees.registry")


@dataclass(frozen=True)
class _TreeBuilderSpec:
    name: str
    builder: Callable[..., SpatialTree]
    parameters: Tuple[str, ...]


_TREE_REGISTRY: Dict[str, _TreeBuilderSpec] = {}


def register_tree_builder(
    name: str,
    builder: Callable[..., SpatialTree],
    *,
    parameters: Tuple[str, ...] = (),
) -> None:
    """Register or replace the builder used for tree kind ``name``."""

    _TREE_REGISTRY[name] = _TreeBuilderSpec(name=name, builder=builder, parameters=parameters)
    LOGGER.debug("Registered tree builder: %s", name)


def registered_tree_kinds() -> Tuple[str, ...]:
    return tuple(_TREE_REGISTRY.keys())


def tree_parameters(kind: str) -> Tuple[str, ...]:
    return _lookup(kind).parameters


def _lookup(kind: str) -> _TreeBuilderSpec:
    spec = _TREE_REGISTRY.get(kind)
    if spec is None:
        raise InvalidArgumentError(
            f"Unknown tree kind '{kind}'. Expected one of {registered_tree_kinds()}."
        )
    return spec


def build_tree(kind: str, points: np.ndarray, **params: Any) -> SpatialTree:
    """Build a ``kind`` tree over ``points``; ``params`` must be known to the builder."""

    spec = _lookup(kind)
    unknown = sorted(set(params) - set(spec.parameters))
    if unknown:
        raise InvalidArgumentError(f"Tree kind '{kind}' does not accept parameters {unknown}.")
    with log_operation(LOGGER, "build_tree") as op_log:
        tree = spec.builder(points, **params)
        op_log.add_metadata(
            kind=kind,
            points=tree.num_points,
            nodes=tree.num_nodes(),
            depth=tree.depth(),
        )
    return tree


__all__ = [
    "build_tree",
    "register_tree_builder",
    "registered_tree_kinds",
    "tree_parameters",
]
