from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

import numpy as np

from dualtreex.core.bounds import Bound
from dualtreex.core.permutation import identity_permutation, validate_permutation
from dualtreex.errors import TreeReleasedError


class Ownership(enum.Enum):
    """Who is responsible for releasing a tree held by an engine."""

    OWNED = "owned"
    BORROWED = "borrowed"


@dataclass
class TreeNode:
    """One node of a spatial tree.

    ``point_indices`` index into the owning tree's ``points`` (tree order).
    For overlapping spill nodes the children's index sets intersect inside
    the band ``|x[split_dim] - split_value| <= overlap``.
    """

    bound: Bound
    point_indices: np.ndarray
    children: List["TreeNode"] = field(default_factory=list)
    split_dim: int | None = None
    split_value: float | None = None
    overlap: float = 0.0
    node_id: int = -1

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def count(self) -> int:
        return int(self.point_indices.shape[0])

    @property
    def overlapping(self) -> bool:
        return self.overlap > 0.0 and bool(self.children)

    def iter_nodes(self) -> Iterator["TreeNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


def _index_nodes(root: TreeNode) -> Tuple[List[int], List[List[int]]]:
    """Number nodes in pre-order and return their parent and child id tables."""

    parents: List[int] = []
    children: List[List[int]] = []
    stack: List[Tuple[TreeNode, int]] = [(root, -1)]
    while stack:
        node, parent = stack.pop()
        node.node_id = len(parents)
        parents.append(parent)
        children.append([])
        if parent >= 0:
            children[parent].append(node.node_id)
        stack.extend((child, node.node_id) for child in reversed(node.children))
    return parents, children


class SpatialTree:
    """A built spatial index plus the permutation from tree to caller order."""

    def __init__(
        self,
        *,
        kind: str,
        points: np.ndarray,
        old_from_new: np.ndarray,
        root: TreeNode,
        params: Dict[str, Any] | None = None,
    ) -> None:
        self.kind = kind
        self._points = points
        self._old_from_new = validate_permutation(old_from_new, points.shape[0])
        self._root: TreeNode | None = root
        self.params: Dict[str, Any] = dict(params or {})
        self._released = False
        self._parents, self._children = _index_nodes(root)

    def _require_live(self) -> None:
        if self._released:
            raise TreeReleasedError(f"{self.kind} tree has been released.")

    @property
    def is_released(self) -> bool:
        return self._released

    @property
    def points(self) -> np.ndarray:
        self._require_live()
        return self._points

    @property
    def old_from_new(self) -> np.ndarray:
        self._require_live()
        return self._old_from_new

    @property
    def root(self) -> TreeNode:
        if self._released or self._root is None:
            raise TreeReleasedError(f"{self.kind} tree has been released.")
        return self._root

    @property
    def node_parents(self) -> List[int]:
        """Parent id of every node, indexed by ``TreeNode.node_id`` (-1 for the root)."""

        self._require_live()
        return self._parents

    @property
    def node_children(self) -> List[List[int]]:
        self._require_live()
        return self._children

    @property
    def num_points(self) -> int:
        return int(self._points.shape[0])

    @property
    def dimension(self) -> int:
        return int(self._points.shape[1])

    @property
    def rearranges(self) -> bool:
        return not np.array_equal(self._old_from_new, identity_permutation(self.num_points))

    def num_nodes(self) -> int:
        self._require_live()
        return len(self._parents)

    def leaves(self) -> List[TreeNode]:
        return [node for node in self.root.iter_nodes() if node.is_leaf]

    def depth(self) -> int:
        best = 0
        stack = [(self.root, 1)]
        while stack:
            node, level = stack.pop()
            best = max(best, level)
            stack.extend((child, level + 1) for child in node.children)
        return best

    def release(self) -> None:
        """Drop the node structure. Only the owner of the tree may call this."""

        self._require_live()
        self._root = None
        self._parents, self._children = [], []
        self._released = True

    def __repr__(self) -> str:
        state = "released" if self._released else f"points={self.num_points}"
        return f"SpatialTree(kind={self.kind!r}, {state}, params={self.params!r})"


def finalize_tree(
    kind: str,
    points: np.ndarray,
    root: TreeNode,
    params: Dict[str, Any] | None = None,
) -> SpatialTree:
    """Renumber a tree whose leaves partition caller indices into contiguous tree order.

    Builders create nodes holding caller-order indices; this walks the
    leaves depth-first, derives ``old_from_new``, rewrites every node's
    ``point_indices`` to tree positions and permutes the points to match.
    """

    order: List[np.ndarray] = []
    offset = 0
    # A start offset marks a node whose children were already laid out.
    stack: List[Tuple[TreeNode, int | None]] = [(root, None)]
    while stack:
        node, start = stack.pop()
        if start is not None:
            node.point_indices = np.arange(start, offset, dtype=np.int64)
        elif node.is_leaf:
            order.append(node.point_indices)
            node.point_indices = np.arange(offset, offset + node.count, dtype=np.int64)
            offset += len(order[-1])
        else:
            stack.append((node, offset))
            stack.extend((child, None) for child in reversed(node.children))
    old_from_new = np.concatenate(order).astype(np.int64) if order else np.empty(0, np.int64)
    permuted = np.ascontiguousarray(points[old_from_new])
    permuted.flags.writeable = False
    return SpatialTree(
        kind=kind,
        points=permuted,
        old_from_new=old_from_new,
        root=root,
        params=params,
    )


__all__ = ["Ownership", "SpatialTree", "TreeNode", "finalize_tree"]
