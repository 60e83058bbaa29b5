"""Ordering policies shared by nearest- and furthest-neighbour search.

The engine never compares distances directly: every comparison, sentinel
and pruning relaxation goes through one of the two policies below, so a
single traversal serves both problems.
"""

from __future__ import annotations

import math
from typing import Dict

import numpy as np

from dualtreex.core.bounds import Bound
from dualtreex.errors import InvalidArgumentError


class SortPolicy:
    name: str = ""
    worst_distance: float = math.inf

    def is_better(self, value: float, reference: float) -> bool:
        raise NotImplementedError

    def better_mask(self, values: np.ndarray, reference: float) -> np.ndarray:
        raise NotImplementedError

    def best_distance(self, lhs: Bound, rhs: Bound) -> float:
        """Best distance achievable between any point of ``lhs`` and any of ``rhs``."""

        raise NotImplementedError

    def best_point_distance(self, point: np.ndarray, bound: Bound) -> float:
        raise NotImplementedError

    def relax(self, value: float, epsilon: float) -> float:
        """Loosen a pruning bound by ``1 + epsilon`` in the direction of more pruning."""

        raise NotImplementedError

    def sort_key(self, distances: np.ndarray) -> np.ndarray:
        """Map distances to keys whose ascending order is best-first."""

        raise NotImplementedError

    def worst_of(self, values: np.ndarray) -> float:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NearestNeighborSort(SortPolicy):
    name = "nearest"
    worst_distance = math.inf

    def is_better(self, value: float, reference: float) -> bool:
        return value < reference

    def better_mask(self, values: np.ndarray, reference: float) -> np.ndarray:
        return values < reference

    def best_distance(self, lhs: Bound, rhs: Bound) -> float:
        return lhs.min_distance(rhs)

    def best_point_distance(self, point: np.ndarray, bound: Bound) -> float:
        return bound.min_point_distance(point)

    def relax(self, value: float, epsilon: float) -> float:
        if epsilon == 0.0 or math.isinf(value):
            return value
        return value / (1.0 + epsilon)

    def sort_key(self, distances: np.ndarray) -> np.ndarray:
        return distances

    def worst_of(self, values: np.ndarray) -> float:
        return float(np.max(values))


class FurthestNeighborSort(SortPolicy):
    name = "furthest"
    worst_distance = 0.0

    def is_better(self, value: float, reference: float) -> bool:
        return value > reference

    def better_mask(self, values: np.ndarray, reference: float) -> np.ndarray:
        return values > reference

    def best_distance(self, lhs: Bound, rhs: Bound) -> float:
        return lhs.max_distance(rhs)

    def best_point_distance(self, point: np.ndarray, bound: Bound) -> float:
        return bound.max_point_distance(point)

    def relax(self, value: float, epsilon: float) -> float:
        if epsilon == 0.0:
            return value
        return value * (1.0 + epsilon)

    def sort_key(self, distances: np.ndarray) -> np.ndarray:
        return -distances

    def worst_of(self, values: np.ndarray) -> float:
        return float(np.min(values))


NEAREST = NearestNeighborSort()
FURTHEST = FurthestNeighborSort()

_POLICIES: Dict[str, SortPolicy] = {NEAREST.name: NEAREST, FURTHEST.name: FURTHEST}


def get_sort_policy(policy: str | SortPolicy) -> SortPolicy:
    if isinstance(policy, SortPolicy):
        return policy
    key = str(policy).strip().lower()
    if key not in _POLICIES:
        raise InvalidArgumentError(
            f"Unknown sort policy '{policy}'. Expected one of {sorted(_POLICIES)}."
        )
    return _POLICIES[key]


__all__ = [
    "SortPolicy",
    "NearestNeighborSort",
    "FurthestNeighborSort",
    "NEAREST",
    "FURTHEST",
    "get_sort_policy",
]
