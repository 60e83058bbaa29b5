"""Spill trees: hyperplane trees whose children may overlap.

A node splits at the midpoint of its widest dimension. With ``tau > 0``
both children also receive the points lying within ``tau`` of the
hyperplane, unless that would leave either child with more than ``rho`` of
the parent's points, in which case the node falls back to a disjoint split.
Points are never reordered, so the permutation is the identity.
"""

from __future__ import annotations

import numpy as np

from dualtreex.core.bounds import HRectBound
from dualtreex.core.permutation import identity_permutation
from dualtreex.core.points import as_point_set
from dualtreex.core.tree import SpatialTree, TreeNode
from dualtreex.errors import InvalidArgumentError
from dualtreex.trees.binary_space import midpoint_split

DEFAULT_RHO = 0.7


def _split_node(
    points: np.ndarray, node: TreeNode, tau: float, leaf_size: int, rho: float
) -> None:
    indices = node.point_indices
    if indices.shape[0] <= leaf_size:
        return
    coords = points[indices]
    split = midpoint_split(coords)
    if split is None:
        return
    dim, value = split
    column = coords[:, dim]
    overlap = 0.0
    if tau > 0.0:
        left = indices[column <= value + tau]
        right = indices[column > value - tau]
        if max(left.shape[0], right.shape[0]) <= rho * indices.shape[0]:
            overlap = tau
    if overlap == 0.0:
        left = indices[column <= value]
        right = indices[column > value]
    node.split_dim = dim
    node.split_value = value
    node.overlap = overlap
    node.children = [
        TreeNode(bound=HRectBound.from_points(points[left]), point_indices=left),
        TreeNode(bound=HRectBound.from_points(points[right]), point_indices=right),
    ]


def build_spill_tree(
    points: np.ndarray,
    *,
    tau: float = 0.0,
    leaf_size: int = 20,
    rho: float = DEFAULT_RHO,
) -> SpatialTree:
    data = as_point_set(points)
    if tau < 0:
        raise InvalidArgumentError(f"tau must be non-negative, got {tau}.")
    if int(leaf_size) < 1:
        raise InvalidArgumentError(f"leaf_size must be at least 1, got {leaf_size}.")
    if not 0.5 <= rho < 1.0:
        raise InvalidArgumentError(f"rho must lie in [0.5, 1), got {rho}.")
    indices = np.arange(data.shape[0], dtype=np.int64)
    root = TreeNode(bound=HRectBound.from_points(data), point_indices=indices)
    pending = [root]
    while pending:
        node = pending.pop()
        _split_node(data, node, float(tau), int(leaf_size), float(rho))
        pending.extend(node.children)
    return SpatialTree(
        kind="spill",
        points=data,
        old_from_new=identity_permutation(data.shape[0]),
        root=root,
        params={"tau": float(tau), "leaf_size": int(leaf_size), "rho": float(rho)},
    )


__all__ = ["DEFAULT_RHO", "build_spill_tree"]
