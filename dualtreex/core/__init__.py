"""Core data structures: bounds, sort policies, permutations, result lists and trees."""

from .bounds import BallBound, Bound, HRectBound
from .metrics import Metric, MetricRegistry, available_metrics, get_metric
from .permutation import (
    identity_permutation,
    invert_permutation,
    map_rows,
    unmap_rows,
    validate_permutation,
)
from .results import NeighborResults, QueryNodeBounds
from .sort import (
    FURTHEST,
    NEAREST,
    FurthestNeighborSort,
    NearestNeighborSort,
    SortPolicy,
    get_sort_policy,
)
from .tree import Ownership, SpatialTree, TreeNode, finalize_tree

__all__ = [
    "BallBound",
    "Bound",
    "HRectBound",
    "Metric",
    "MetricRegistry",
    "available_metrics",
    "get_metric",
    "identity_permutation",
    "invert_permutation",
    "map_rows",
    "unmap_rows",
    "validate_permutation",
    "NeighborResults",
    "QueryNodeBounds",
    "FURTHEST",
    "NEAREST",
    "FurthestNeighborSort",
    "NearestNeighborSort",
    "SortPolicy",
    "get_sort_policy",
    "Ownership",
    "SpatialTree",
    "TreeNode",
    "finalize_tree",
]
