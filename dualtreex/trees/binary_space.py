"""Binary space partitioning trees (kd-tree and ball tree).

Both split at the midpoint of the widest dimension of a node's points and
stop once a node holds at most ``leaf_size`` points. They differ only in
the bound stored on each node.
"""

from __future__ import annotations

from typing import Type

import numpy as np

from dualtreex.core.bounds import BallBound, HRectBound
from dualtreex.core.points import as_point_set
from dualtreex.core.tree import SpatialTree, TreeNode, finalize_tree
from dualtreex.errors import InvalidArgumentError


def _check_leaf_size(leaf_size: int) -> int:
    size = int(leaf_size)
    if size < 1:
        raise InvalidArgumentError(f"leaf_size must be at least 1, got {leaf_size}.")
    return size


def midpoint_split(coords: np.ndarray) -> tuple[int, float] | None:
    """Return ``(dimension, value)`` splitting the widest extent in half."""

    lo = coords.min(axis=0)
    hi = coords.max(axis=0)
    widths = hi - lo
    dim = int(np.argmax(widths))
    if widths[dim] <= 0.0:
        return None
    return dim, float(0.5 * (lo[dim] + hi[dim]))


def _split_node(
    points: np.ndarray,
    node: TreeNode,
    leaf_size: int,
    bound_cls: Type[HRectBound] | Type[BallBound],
) -> None:
    indices = node.point_indices
    if indices.shape[0] <= leaf_size:
        return
    coords = points[indices]
    split = midpoint_split(coords)
    if split is None:
        return
    dim, value = split
    go_left = coords[:, dim] <= value
    node.split_dim = dim
    node.split_value = value
    node.children = [
        _make_node(points, indices[go_left], bound_cls),
        _make_node(points, indices[~go_left], bound_cls),
    ]


def _make_node(
    points: np.ndarray,
    indices: np.ndarray,
    bound_cls: Type[HRectBound] | Type[BallBound],
) -> TreeNode:
    return TreeNode(bound=bound_cls.from_points(points[indices]), point_indices=indices)


def _build_binary_space_tree(
    kind: str,
    points: np.ndarray,
    leaf_size: int,
    bound_cls: Type[HRectBound] | Type[BallBound],
) -> SpatialTree:
    data = as_point_set(points)
    size = _check_leaf_size(leaf_size)
    root = _make_node(data, np.arange(data.shape[0], dtype=np.int64), bound_cls)
    # Explicit stack: skewed inputs can make the tree as deep as it has points.
    pending = [root]
    while pending:
        node = pending.pop()
        _split_node(data, node, size, bound_cls)
        pending.extend(node.children)
    return finalize_tree(kind, data, root, {"leaf_size": size})


def build_kd_tree(points: np.ndarray, *, leaf_size: int = 20) -> SpatialTree:
    return _build_binary_space_tree("kd", points, leaf_size, HRectBound)


def build_ball_tree(points: np.ndarray, *, leaf_size: int = 20) -> SpatialTree:
    return _build_binary_space_tree("ball", points, leaf_size, BallBound)


__all__ = ["build_ball_tree", "build_kd_tree", "midpoint_split"]
