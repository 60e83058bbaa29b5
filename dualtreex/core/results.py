from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from dualtreex.core.sort import SortPolicy


class NeighborResults:
    """Fixed-capacity candidate lists, one row per query.

    Rows are kept best-first under ``policy``. A candidate only enters a full
    row when it is strictly better than the current worst entry, and equal
    distances keep their encounter order, so ties resolve deterministically.
    A reference identity appears at most once per row.
    """

    __slots__ = ("k", "policy", "distances", "indices", "counts")

    def __init__(self, num_queries: int, k: int, policy: SortPolicy) -> None:
        self.k = int(k)
        self.policy = policy
        self.distances = np.full((num_queries, self.k), policy.worst_distance, dtype=np.float64)
        self.indices = np.full((num_queries, self.k), -1, dtype=np.int64)
        self.counts = np.zeros(num_queries, dtype=np.int64)

    @property
    def num_queries(self) -> int:
        return int(self.counts.shape[0])

    def is_full(self, row: int) -> bool:
        return int(self.counts[row]) == self.k

    def worst(self, row: int) -> float:
        return float(self.distances[row, self.k - 1])

    def insert(self, row: int, index: int, distance: float) -> bool:
        inserted = self.update_block(
            np.asarray([row], dtype=np.int64),
            np.asarray([index], dtype=np.int64),
            np.asarray([[distance]], dtype=np.float64),
        )
        return inserted == 1

    def update_block(
        self,
        rows: np.ndarray,
        candidates: np.ndarray,
        block: np.ndarray,
        *,
        exclude: np.ndarray | None = None,
    ) -> int:
        """Merge ``block[i, j]`` into row ``rows[i]`` as candidate ``candidates[j]``.

        Current entries and offered candidates are ranked together with one
        stable sort, so current entries win ties against new ones and the
        first ``k`` of the merged order become the new row.
        """

        rows = np.asarray(rows, dtype=np.int64)
        candidates = np.asarray(candidates, dtype=np.int64)
        if rows.shape[0] == 0 or candidates.shape[0] == 0:
            return 0
        k = self.k
        block = np.asarray(block, dtype=np.float64).reshape(rows.shape[0], candidates.shape[0])
        current_dist = self.distances[rows]
        current_idx = self.indices[rows]
        counts = self.counts[rows]

        current_keys = np.array(self.policy.sort_key(current_dist), dtype=np.float64, copy=True)
        current_keys[np.arange(k)[None, :] >= counts[:, None]] = np.inf
        offered_keys = np.array(self.policy.sort_key(block), dtype=np.float64, copy=True)
        rejected = np.any(current_idx[:, :, None] == candidates[None, None, :], axis=1)
        if exclude is not None:
            rejected |= exclude
        offered_keys[rejected] = np.inf

        keys = np.concatenate([current_keys, offered_keys], axis=1)
        merged_dist = np.concatenate([current_dist, block], axis=1)
        merged_idx = np.concatenate(
            [current_idx, np.broadcast_to(candidates, block.shape)], axis=1
        )
        order = np.argsort(keys, axis=1, kind="stable")[:, :k]
        kept = np.isfinite(np.take_along_axis(keys, order, axis=1))
        new_dist = np.where(
            kept, np.take_along_axis(merged_dist, order, axis=1), self.policy.worst_distance
        )
        new_idx = np.where(kept, np.take_along_axis(merged_idx, order, axis=1), -1)

        self.distances[rows] = new_dist
        self.indices[rows] = new_idx
        self.counts[rows] = kept.sum(axis=1)
        return int(np.count_nonzero(kept & (order >= k)))

    def node_bound(self, rows: np.ndarray) -> float | None:
        """Worst k-th distance over ``rows``; ``None`` while any row is still filling."""

        if rows.shape[0] == 0:
            return None
        if int(self.counts[rows].min()) < self.k:
            return None
        return self.policy.worst_of(self.distances[rows, self.k - 1])

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.indices.copy(), self.distances.copy()


class QueryNodeBounds:
    """Pruning statistic of every query-tree node for one search.

    A node's value is the worst k-th candidate distance over the query rows
    beneath it and is unset until all of those rows hold ``k`` candidates.
    Leaves are refreshed from the result rows after each base case and the
    change is pushed up through the ancestors; values only ever improve, so
    an ancestor refreshed later than its descendants stays a valid bound.
    """

    def __init__(
        self,
        parents: Sequence[int],
        children: Sequence[Sequence[int]],
        policy: SortPolicy,
    ) -> None:
        self.policy = policy
        self._parents = parents
        self._children = children
        self._values: List[float | None] = [None] * len(parents)

    def get(self, node_id: int) -> float | None:
        return self._values[node_id]

    def refresh_leaf(self, node_id: int, results: NeighborResults, rows: np.ndarray) -> None:
        value = results.node_bound(rows)
        if value is None or value == self._values[node_id]:
            return
        self._values[node_id] = value
        node = self._parents[node_id]
        while node >= 0:
            child_values = [self._values[child] for child in self._children[node]]
            if any(v is None for v in child_values):
                return
            value = self.policy.worst_of(np.asarray(child_values, dtype=np.float64))
            if value == self._values[node]:
                return
            self._values[node] = value
            node = self._parents[node]


__all__ = ["NeighborResults", "QueryNodeBounds"]
