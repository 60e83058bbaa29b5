"""Batch-built cover-style tree.

Each node is a ball centred on one of its own points. Its children are a
greedy net at half the node's radius: every point lies within
``radius / base`` of the centre of the child that holds it, and the node's
own centre always starts the first child (the nesting property of cover
trees). Leaves hold a single point or a set of duplicates.
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np

from dualtreex.core.bounds import BallBound
from dualtreex.core.points import as_point_set
from dualtreex.core.tree import SpatialTree, TreeNode, finalize_tree
from dualtreex.errors import InvalidArgumentError


def _distances_to(points: np.ndarray, indices: np.ndarray, center: int) -> np.ndarray:
    diff = points[indices] - points[center][None, :]
    return np.sqrt(np.sum(diff * diff, axis=1))


def _greedy_net(
    points: np.ndarray, indices: np.ndarray, center: int, scale: float
) -> List[Tuple[int, np.ndarray]]:
    centers = [center]
    nearest = _distances_to(points, indices, center)
    owner = np.zeros(indices.shape[0], dtype=np.int64)
    while nearest.max() > scale:
        far = int(indices[int(np.argmax(nearest))])
        dist = _distances_to(points, indices, far)
        closer = dist < nearest
        owner[closer] = len(centers)
        nearest = np.where(closer, dist, nearest)
        centers.append(far)
    return [(c, indices[owner == slot]) for slot, c in enumerate(centers)]


def _make_node(points: np.ndarray, indices: np.ndarray, center: int) -> TreeNode:
    bound = BallBound.around(points[center], points[indices])
    return TreeNode(bound=bound, point_indices=indices)


def build_cover_tree(points: np.ndarray, *, base: float = 2.0) -> SpatialTree:
    data = as_point_set(points)
    if base <= 1.0:
        raise InvalidArgumentError(f"Cover tree base must exceed 1, got {base}.")
    indices = np.arange(data.shape[0], dtype=np.int64)
    root = _make_node(data, indices, 0)
    pending = [(root, 0)]
    while pending:
        node, center = pending.pop()
        radius = node.bound.radius
        if node.count == 1 or radius == 0.0:
            continue
        for child_center, members in _greedy_net(data, node.point_indices, center, radius / base):
            child = _make_node(data, members, child_center)
            node.children.append(child)
            pending.append((child, child_center))
    return finalize_tree("cover", data, root, {"base": float(base)})


__all__ = ["build_cover_tree"]
