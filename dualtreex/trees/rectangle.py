"""Rectangle trees packed bottom-up with Sort-Tile-Recursive (STR).

Leaves hold at most ``max_leaf_size`` points and internal nodes at most
``max_num_children`` children. The R*-tree flavour tiles the widest
dimensions first, which tends to reduce sibling overlap; the X-tree flavour
packs super-nodes with twice the fan-out.
"""

from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from dualtreex.core.bounds import HRectBound
from dualtreex.core.points import as_point_set
from dualtreex.core.tree import SpatialTree, TreeNode, finalize_tree
from dualtreex.errors import InvalidArgumentError


def sort_tile_recursive(
    centers: np.ndarray,
    members: np.ndarray,
    capacity: int,
    dims: Sequence[int],
) -> List[np.ndarray]:
    """Group ``members`` (rows of ``centers``) into pages of at most ``capacity``."""

    count = int(members.shape[0])
    if count <= capacity:
        return [members]
    ordered = members[np.argsort(centers[members, dims[0]], kind="stable")]
    if len(dims) == 1:
        return [ordered[start : start + capacity] for start in range(0, count, capacity)]
    pages = math.ceil(count / capacity)
    slabs = math.ceil(pages ** (1.0 / len(dims)))
    slab_size = capacity * math.ceil(pages / slabs)
    groups: List[np.ndarray] = []
    for start in range(0, count, slab_size):
        groups.extend(
            sort_tile_recursive(centers, ordered[start : start + slab_size], capacity, dims[1:])
        )
    return groups


def _merge_bounds(children: Sequence[TreeNode]) -> HRectBound:
    lo = np.min(np.stack([child.bound.lo for child in children]), axis=0)
    hi = np.max(np.stack([child.bound.hi for child in children]), axis=0)
    return HRectBound(lo=lo, hi=hi)


def _pack(
    kind: str,
    points: np.ndarray,
    *,
    max_leaf_size: int,
    max_num_children: int,
    dims: Sequence[int],
) -> SpatialTree:
    if max_leaf_size < 1:
        raise InvalidArgumentError(f"max_leaf_size must be at least 1, got {max_leaf_size}.")
    if max_num_children < 2:
        raise InvalidArgumentError(
            f"max_num_children must be at least 2, got {max_num_children}."
        )
    all_indices = np.arange(points.shape[0], dtype=np.int64)
    level = [
        TreeNode(bound=HRectBound.from_points(points[group]), point_indices=group)
        for group in sort_tile_recursive(points, all_indices, max_leaf_size, dims)
    ]
    while len(level) > 1:
        centers = np.stack([node.bound.center for node in level])
        groups = sort_tile_recursive(
            centers, np.arange(len(level), dtype=np.int64), max_num_children, dims
        )
        parents: List[TreeNode] = []
        for group in groups:
            children = [level[int(i)] for i in group]
            parents.append(
                TreeNode(
                    bound=_merge_bounds(children),
                    point_indices=np.concatenate([child.point_indices for child in children]),
                    children=children,
                )
            )
        level = parents
    params = {"max_leaf_size": int(max_leaf_size), "max_num_children": int(max_num_children)}
    return finalize_tree(kind, points, level[0], params)


def build_r_tree(
    points: np.ndarray, *, max_leaf_size: int = 20, max_num_children: int = 5
) -> SpatialTree:
    data = as_point_set(points)
    return _pack(
        "r",
        data,
        max_leaf_size=max_leaf_size,
        max_num_children=max_num_children,
        dims=tuple(range(data.shape[1])),
    )


def build_r_star_tree(
    points: np.ndarray, *, max_leaf_size: int = 20, max_num_children: int = 5
) -> SpatialTree:
    data = as_point_set(points)
    spread = data.max(axis=0) - data.min(axis=0)
    dims = tuple(int(d) for d in np.argsort(-spread, kind="stable"))
    return _pack(
        "r-star",
        data,
        max_leaf_size=max_leaf_size,
        max_num_children=max_num_children,
        dims=dims,
    )


def build_x_tree(
    points: np.ndarray, *, max_leaf_size: int = 20, max_num_children: int = 10
) -> SpatialTree:
    data = as_point_set(points)
    return _pack(
        "x",
        data,
        max_leaf_size=max_leaf_size,
        max_num_children=max_num_children,
        dims=tuple(range(data.shape[1])),
    )


__all__ = ["build_r_star_tree", "build_r_tree", "build_x_tree", "sort_tile_recursive"]
